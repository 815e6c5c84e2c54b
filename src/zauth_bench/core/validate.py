from __future__ import annotations

from typing import Any

from zauth_bench.core.records import ValidationOutcome

# Keys that typically hold the record array in DeFi / analytics payloads.
# Order matters: the first array-valued key wins.
COMMON_ARRAY_KEYS: tuple[str, ...] = (
    "topProtocols",
    "topPools",
    "topCoins",
    "pools",
    "protocols",
    "items",
    "results",
    "entries",
    "data",
    "whales",
    "transactions",
    "moves",
    "trades",
    "scores",
    "sentiment",
    "tokens",
    "coins",
)


def validate_response(payload: Any, declared_schema: dict[str, Any] | None = None) -> ValidationOutcome:
    """Locate the record array inside an arbitrary decoded JSON payload.

    A declared schema (from discovery metadata) is tried first; when it is
    missing or does not fit, structural patterns are tried in a fixed order and
    the first match wins.
    """

    if payload is None:
        return _invalid("Response is null or undefined")

    if declared_schema:
        outcome = _validate_with_declared_schema(payload, declared_schema)
        if outcome.valid:
            return outcome

    return _validate_with_patterns(payload)


def find_array_in_object(obj: Any) -> list[Any] | None:
    if not isinstance(obj, dict):
        return None
    for key in COMMON_ARRAY_KEYS:
        if isinstance(obj.get(key), list):
            return obj[key]
    for value in obj.values():
        if isinstance(value, list):
            return value
    return None


def _validate_with_declared_schema(payload: Any, schema: dict[str, Any]) -> ValidationOutcome:
    schema_type = schema.get("type") if isinstance(schema, dict) else None
    if not schema_type:
        return _invalid("Invalid declared schema: missing type")

    if schema_type == "object" and isinstance(payload, dict):
        records = find_array_in_object(payload)
        if records is not None:
            return ValidationOutcome(valid=True, records=records, schema_source="declared-schema")

    if schema_type == "array" and isinstance(payload, list):
        return ValidationOutcome(valid=True, records=payload, schema_source="declared-schema")

    return _invalid("Response does not match declared schema")


def _validate_with_patterns(payload: Any) -> ValidationOutcome:
    if isinstance(payload, list):
        # Only pattern 5 can match a bare array.
        return _matched(payload)
    if not isinstance(payload, dict):
        return _invalid("No recognized response pattern found")

    data = payload.get("data")
    success = payload.get("success") is True

    # 1. {success: true, data: [...]}
    if success and isinstance(data, list):
        return _matched(data)
    # 2. {success: true, data: {<key>: [...]}}
    if success and isinstance(data, dict):
        nested = find_array_in_object(data)
        if nested is not None:
            return _matched(nested)
    # 3. {data: [...]}
    if isinstance(data, list):
        return _matched(data)
    # 4. {data: {<key>: [...]}}
    if isinstance(data, dict):
        nested = find_array_in_object(data)
        if nested is not None:
            return _matched(nested)
    # 6. {result: [...]}
    if isinstance(payload.get("result"), list):
        return _matched(payload["result"])
    # 7. {response: {data: [...]}}
    inner = payload.get("response")
    if isinstance(inner, dict) and isinstance(inner.get("data"), list):
        return _matched(inner["data"])
    # 8. any array, well-known keys first
    records = find_array_in_object(payload)
    if records is not None:
        return _matched(records)

    return _invalid("No recognized response pattern found")


def _matched(records: list[Any]) -> ValidationOutcome:
    return ValidationOutcome(valid=True, records=records, schema_source="pattern-match")


def _invalid(error: str) -> ValidationOutcome:
    return ValidationOutcome(valid=False, records=[], schema_source="none", error=error)
