from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from zauth_bench.core.records import DEFAULT_PRICE_FLOOR_USDC, Endpoint


@dataclass(frozen=True)
class StudyConfig:
    study_id: str
    trials_per_condition: int
    cycles_per_trial: int
    base_seed: int
    budget_usdc: float | None = None
    # Pre-flight estimate per cycle: 3 queries at ~$0.01.
    estimated_cost_per_cycle: float = 0.03
    mock_failure_rate: float = 0.30
    endpoints_path: Path | None = None
    verbose: bool = False


@dataclass(frozen=True)
class Settings:
    zauth_check_url: str
    bazaar_base_url: str
    mock_failure_rate: float
    max_usdc_spend: float
    output_dir: Path
    timeout_s: float
    verbose: bool

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            zauth_check_url=os.environ.get(
                "ZAUTH_CHECK_URL", "https://back.zauthx402.com/api/verification/check"
            ),
            bazaar_base_url=os.environ.get(
                "BAZAAR_BASE_URL", "https://api.cdp.coinbase.com/platform/v2/x402"
            ),
            mock_failure_rate=float(os.environ.get("MOCK_FAILURE_RATE", "0.30")),
            max_usdc_spend=float(os.environ.get("MAX_USDC_SPEND", "1.00")),
            output_dir=Path(os.environ.get("OUTPUT_DIR", "./results")),
            timeout_s=float(os.environ.get("ZAUTH_BENCH_TIMEOUT_S", "30.0")),
            verbose=os.environ.get("VERBOSE", "").lower() == "true",
        )


def load_study_config(path: Path) -> StudyConfig:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Study file must be a YAML mapping")

    defaults = raw.get("defaults") or {}
    budget = defaults.get("budget_usdc")

    endpoints_path = None
    if raw.get("endpoints_path"):
        endpoints_path = (path.parent / str(raw["endpoints_path"])).resolve()
        if not endpoints_path.exists():
            raise FileNotFoundError(f"endpoints_path not found: {endpoints_path}")

    config = StudyConfig(
        study_id=str(raw.get("id") or path.stem),
        trials_per_condition=int(defaults.get("trials_per_condition", 10)),
        cycles_per_trial=int(defaults.get("cycles_per_trial", 5)),
        base_seed=int(defaults.get("base_seed", 42)),
        budget_usdc=float(budget) if budget is not None else None,
        estimated_cost_per_cycle=float(defaults.get("estimated_cost_per_cycle", 0.03)),
        mock_failure_rate=float(defaults.get("mock_failure_rate", 0.30)),
        endpoints_path=endpoints_path,
        verbose=bool(raw.get("verbose", False)),
    )
    validate_study_config(config)
    return config


def validate_study_config(config: StudyConfig) -> None:
    if config.trials_per_condition < 1 or config.trials_per_condition > 500:
        raise ValueError("trials_per_condition must be between 1 and 500")
    if config.cycles_per_trial < 1:
        raise ValueError("cycles_per_trial must be >= 1")
    if config.budget_usdc is not None and config.budget_usdc <= 0:
        raise ValueError("budget_usdc must be positive")
    if config.estimated_cost_per_cycle < 0:
        raise ValueError("estimated_cost_per_cycle must be >= 0")
    if not 0 <= config.mock_failure_rate <= 1:
        raise ValueError("mock_failure_rate must be between 0 and 1")


def detect_network_from_path(stage1_path: Path) -> str:
    # Stage-1 folders are named YYYY-MM-DDTHH-MM-SS_stage1_{network}
    name = stage1_path.name
    if name.endswith("_stage1_base"):
        return "base"
    if name.endswith("_stage1_solana"):
        return "solana"
    raise ValueError(
        f"Cannot detect network from Stage 1 path: {stage1_path}. "
        "Expected folder name ending with '_stage1_base' or '_stage1_solana'"
    )


def load_endpoints(path: Path) -> list[Endpoint]:
    """Read endpoints from a Stage-1 `endpoints.json` file or its folder."""

    if path.is_dir():
        path = path / "endpoints.json"
    if not path.exists():
        raise FileNotFoundError(f"Stage 1 endpoints not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    items = data.get("endpoints") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ValueError("Invalid endpoints.json format: missing 'endpoints' array")
    return [endpoint_from_json(item) for item in items]


def endpoint_from_json(item: dict[str, Any]) -> Endpoint:
    metadata = item.get("metadata") or {}
    declared = item.get("declared_price", item.get("price"))
    requested = item.get("requested_price", item.get("requested402Price"))
    return Endpoint(
        url=str(item["url"]),
        name=str(item.get("name") or item["url"]),
        category=str(item.get("category") or "unknown"),
        declared_price=float(declared) if declared is not None else DEFAULT_PRICE_FLOOR_USDC,
        requested_price=float(requested) if requested is not None else None,
        requires_payment=bool(item.get("requires_payment", item.get("requires402", True))),
        output_schema=item.get("output_schema") or metadata.get("outputSchema"),
        network=item.get("network"),
        mock_failure_rate=item.get("mock_failure_rate"),
        mock_latency_ms=item.get("mock_latency_ms"),
    )
