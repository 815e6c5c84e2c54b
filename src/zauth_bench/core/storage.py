from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from zauth_bench.core.records import EndpointComparison, TrialResult


def to_jsonable(obj: Any) -> Any:
    if isinstance(obj, EndpointComparison):
        return {
            "endpoint": to_jsonable(obj.endpoint),
            "no_zauth": to_jsonable(obj.no_zauth),
            "with_zauth": to_jsonable(obj.with_zauth),
            "burn_savings": obj.burn_savings,
            "net_savings": obj.net_savings,
        }
    if isinstance(obj, TrialResult):
        return {
            "condition": obj.condition,
            "seed": obj.seed,
            "total_spent": obj.total_spent,
            "total_burn": obj.total_burn,
            "total_zauth_cost": obj.total_zauth_cost,
            "burn_rate": obj.burn_rate,
            "avg_latency_ms": obj.avg_latency_ms,
            "cycles": [to_jsonable(c) for c in obj.cycles],
        }
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


def append_jsonl(path: Path, records: Iterable[Any]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("a", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(to_jsonable(rec), ensure_ascii=False))
            f.write("\n")
            n += 1
    return n


def write_json(path: Path, obj: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(to_jsonable(obj), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return path
