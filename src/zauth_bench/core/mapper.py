"""Field extraction and unit normalization for pool, whale and sentiment records.

Endpoints in the wild disagree on field names and units. Each logical
attribute has an ordered list of candidate field names; the first present,
non-null one wins. Numbers are normalized per semantic unit so records from
different providers can be compared.

The impermanent-loss and significance scores are illustrative heuristics, not
validated against ground truth; their thresholds live in `Heuristics`.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from zauth_bench.core.records import PoolData, SentimentScore, WhaleMove

POOL_FIELD_MAPPINGS: dict[str, list[str]] = {
    "pool_id": ["poolId", "pool_id", "pool", "id", "address", "pairAddress"],
    "token_a": ["tokenA", "token0", "baseToken", "base", "token_a"],
    "token_b": ["tokenB", "token1", "quoteToken", "quote", "token_b"],
    "tvl": ["tvl", "totalValueLocked", "liquidity", "totalLiquidity"],
    "tvl_raw": ["tvlRaw"],
    "apy": ["apy", "apr.total", "apr", "yield", "yieldRate", "returns"],
    "volume_24h": ["volume24h", "volume", "dailyVolume", "volume_24h"],
    "fee_rate": ["feeRate", "fee", "fees", "fee_rate"],
}

WHALE_FIELD_MAPPINGS: dict[str, list[str]] = {
    "wallet": ["wallet", "address", "from", "account", "sender"],
    "action": ["action", "type", "event", "operation", "kind"],
    "token": ["token", "asset", "symbol", "currency"],
    "amount": ["amount", "value", "quantity", "size"],
    "timestamp": ["timestamp", "time", "date", "created_at", "createdAt"],
}

SENTIMENT_FIELD_MAPPINGS: dict[str, list[str]] = {
    "token": ["token", "symbol", "asset", "currency", "coin"],
    "score": ["score", "sentiment", "rating", "value"],
    "confidence": ["confidence", "weight", "certainty", "strength"],
}

POOL_NAME_SEPARATORS: tuple[str, ...] = ("-", "/", "_", " ")

CURRENCY_MULTIPLIERS: dict[str, float] = {
    "K": 1e3,
    "M": 1e6,
    "B": 1e9,
    "T": 1e12,
}

# Epoch values below this are seconds, above are milliseconds (year 3000 in seconds).
_EPOCH_SECONDS_CUTOFF = 32503680000

_FLOAT_PREFIX = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


@dataclass(frozen=True)
class Heuristics:
    il_low_ratio: float = 0.1
    il_high_ratio: float = 0.5
    significance_log_scale: float = 7.0  # log10($10M)
    default_significance: float = 0.5
    default_fee_rate: float = 0.003
    default_confidence: float = 0.5
    missing_field_penalty: float = 0.25


DEFAULT_HEURISTICS = Heuristics()


def resolve_path(item: Any, path: str) -> Any:
    value = item
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return None
    return value


def extract_field(item: Any, field_names: Iterable[str]) -> Any:
    if not isinstance(item, dict):
        return None
    for name in field_names:
        value = resolve_path(item, name) if "." in name else item.get(name)
        if value is not None:
            return value
    return None


def parse_float(value: Any) -> float | None:
    """Leading-number parse: "12.5abc" -> 12.5, "abc" -> None."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if not isinstance(value, str):
        return None
    m = _FLOAT_PREFIX.match(value)
    if not m:
        return None
    return float(m.group(0))


def normalize_numeric(value: Any, unit: str = "raw") -> float | None:
    num = parse_float(value)
    if num is None:
        return None

    if unit == "percentage":
        # 50 -> 0.50; values <= 10 are taken as already fractional.
        return num / 100 if num > 10 else num
    if unit == "probability":
        return num / 100 if num > 1 else num
    if unit == "sentiment":
        if -1 <= num <= 1:
            return num
        if -100 <= num <= 100:
            return num / 100
        return max(-1.0, min(1.0, num / 100))
    return num


def parse_currency_string(value: Any) -> float | None:
    """"$1.13M" -> 1130000.0, "$1,234.56" -> 1234.56."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    cleaned = value.replace("$", "").replace(",", "").strip()
    multiplier = 1.0
    suffix = cleaned[-1:].upper()
    if suffix in CURRENCY_MULTIPLIERS:
        multiplier = CURRENCY_MULTIPLIERS[suffix]
        cleaned = cleaned[:-1]

    num = parse_float(cleaned)
    if num is None:
        return None
    return num * multiplier


def parse_percentage_string(value: Any) -> float | None:
    """"461398.90%" -> 4613.989; bare numbers go through the percentage rule."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return normalize_numeric(value, "percentage")
    if not isinstance(value, str):
        return None

    num = parse_float(value.replace("%", ""))
    if num is None:
        return None
    return num / 100


def split_pool_name(pool_name: Any) -> tuple[str, str] | None:
    if not isinstance(pool_name, str):
        return None
    for sep in POOL_NAME_SEPARATORS:
        if sep in pool_name:
            parts = pool_name.split(sep)
            return parts[0].strip(), parts[1].strip()
    return None


def normalize_action(action: Any) -> str:
    normalized = str(action).lower()
    if "buy" in normalized or "purchase" in normalized:
        return "buy"
    if "sell" in normalized or "sold" in normalized:
        return "sell"
    return "transfer"


def parse_timestamp(value: Any, *, now: datetime | None = None) -> datetime:
    fallback = now or datetime.now(timezone.utc)
    if not value or isinstance(value, bool):
        return fallback
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value if value < _EPOCH_SECONDS_CUTOFF else value / 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return fallback


def estimate_impermanent_loss_risk(
    tvl: float | None,
    volume_24h: float | None,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> str:
    # High volume relative to TVL reads as volatile.
    if not tvl or not volume_24h:
        return "medium"
    ratio = volume_24h / tvl
    if ratio < heuristics.il_low_ratio:
        return "low"
    if ratio < heuristics.il_high_ratio:
        return "medium"
    return "high"


def estimate_significance(amount: float | None, heuristics: Heuristics = DEFAULT_HEURISTICS) -> float:
    if not amount:
        return heuristics.default_significance
    significance = math.log10(max(1.0, amount)) / heuristics.significance_log_scale
    return max(0.0, min(1.0, significance))


def extract_pool_data(
    records: Iterable[Any],
    mapping: Mapping[str, list[str]] | None = None,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> list[PoolData]:
    fields = {**POOL_FIELD_MAPPINGS, **(mapping or {})}
    pools: list[PoolData] = []

    for item in records:
        if not isinstance(item, dict):
            continue

        pool_id = extract_field(item, fields["pool_id"])
        token_a = extract_field(item, fields["token_a"])
        token_b = extract_field(item, fields["token_b"])

        # "AVNT-USDC" style ids carry the tokens themselves.
        if pool_id and not token_a and not token_b:
            tokens = split_pool_name(pool_id)
            if tokens:
                token_a, token_b = tokens

        if not pool_id or not token_a or not token_b:
            continue

        tvl = normalize_numeric(extract_field(item, fields["tvl_raw"]), "raw")
        if not tvl:
            tvl = parse_currency_string(extract_field(item, fields["tvl"]))
        apy = parse_percentage_string(extract_field(item, fields["apy"]))
        volume = normalize_numeric(extract_field(item, fields["volume_24h"]), "raw")
        fee_rate = normalize_numeric(extract_field(item, fields["fee_rate"]), "percentage")

        missing = tuple(
            name
            for name, value in (("tvl", tvl), ("apy", apy), ("volume_24h", volume))
            if value is None
        )

        pools.append(
            PoolData(
                pool_id=str(pool_id),
                token_a=str(token_a),
                token_b=str(token_b),
                tvl=tvl or 0.0,
                apy=apy or 0.0,
                volume_24h=volume or 0.0,
                fee_rate=fee_rate if fee_rate is not None else heuristics.default_fee_rate,
                impermanent_loss_risk=estimate_impermanent_loss_risk(tvl, volume, heuristics),
                missing_fields=missing,
            )
        )

    return pools


def extract_whale_data(
    records: Iterable[Any],
    mapping: Mapping[str, list[str]] | None = None,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> list[WhaleMove]:
    fields = {**WHALE_FIELD_MAPPINGS, **(mapping or {})}
    moves: list[WhaleMove] = []

    for item in records:
        if not isinstance(item, dict):
            continue

        wallet = extract_field(item, fields["wallet"])
        action = extract_field(item, fields["action"])
        token = extract_field(item, fields["token"])
        if not wallet or not action or not token:
            continue

        amount = normalize_numeric(extract_field(item, fields["amount"]), "raw")
        moves.append(
            WhaleMove(
                wallet=str(wallet),
                action=normalize_action(action),
                token=str(token),
                amount=amount or 0.0,
                timestamp=parse_timestamp(extract_field(item, fields["timestamp"])),
                significance=estimate_significance(amount, heuristics),
            )
        )

    return moves


def extract_sentiment_data(
    records: Iterable[Any],
    mapping: Mapping[str, list[str]] | None = None,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
    source: str | None = None,
) -> list[SentimentScore]:
    fields = {**SENTIMENT_FIELD_MAPPINGS, **(mapping or {})}
    scores: list[SentimentScore] = []

    for item in records:
        if not isinstance(item, dict):
            continue

        token = extract_field(item, fields["token"])
        score = normalize_numeric(extract_field(item, fields["score"]), "sentiment")
        if not token or score is None:
            continue

        confidence = normalize_numeric(extract_field(item, fields["confidence"]), "probability")
        scores.append(
            SentimentScore(
                token=str(token),
                score=score,
                confidence=confidence if confidence else heuristics.default_confidence,
                sources=(source,) if source else (),
            )
        )

    return scores


def extract_category_data(category: str, records: Iterable[Any], source: str | None = None) -> list[Any]:
    if category == "pool":
        return list(extract_pool_data(records))
    if category == "whale":
        return list(extract_whale_data(records))
    if category == "sentiment":
        return list(extract_sentiment_data(records, source=source))
    return []
