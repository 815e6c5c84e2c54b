from __future__ import annotations

import json
from pathlib import Path

import pytest

from zauth_bench.core.config import (
    Settings,
    detect_network_from_path,
    load_endpoints,
    load_study_config,
)
from zauth_bench.core.records import Endpoint


def _write_study(tmp_path: Path, body: str) -> Path:
    p = tmp_path / "study.yaml"
    p.write_text(body, encoding="utf-8")
    return p


def test_load_study_config(tmp_path) -> None:
    (tmp_path / "stage1").mkdir()
    p = _write_study(
        tmp_path,
        """
id: pilot
endpoints_path: stage1
defaults:
  trials_per_condition: 20
  cycles_per_trial: 3
  base_seed: 1
  budget_usdc: 2.5
  mock_failure_rate: 0.4
""",
    )
    c = load_study_config(p)
    assert c.study_id == "pilot"
    assert (c.trials_per_condition, c.cycles_per_trial, c.base_seed) == (20, 3, 1)
    assert c.budget_usdc == 2.5
    assert c.mock_failure_rate == 0.4
    assert c.endpoints_path == (tmp_path / "stage1").resolve()


def test_study_config_defaults_and_id_from_filename(tmp_path) -> None:
    c = load_study_config(_write_study(tmp_path, "defaults: {}\n"))
    assert c.study_id == "study"
    assert (c.trials_per_condition, c.cycles_per_trial, c.base_seed) == (10, 5, 42)
    assert c.budget_usdc is None


@pytest.mark.parametrize(
    "defaults",
    [
        "trials_per_condition: 0",
        "trials_per_condition: 501",
        "cycles_per_trial: 0",
        "budget_usdc: 0",
        "mock_failure_rate: 1.5",
    ],
)
def test_study_config_validation(tmp_path, defaults) -> None:
    with pytest.raises(ValueError):
        load_study_config(_write_study(tmp_path, f"defaults:\n  {defaults}\n"))


def test_missing_endpoints_path_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_study_config(_write_study(tmp_path, "endpoints_path: nowhere\n"))


def test_settings_from_env(monkeypatch) -> None:
    for name in ("ZAUTH_CHECK_URL", "BAZAAR_BASE_URL", "MAX_USDC_SPEND", "VERBOSE", "OUTPUT_DIR"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert s.bazaar_base_url == "https://api.cdp.coinbase.com/platform/v2/x402"
    assert s.max_usdc_spend == 1.0
    assert not s.verbose

    monkeypatch.setenv("MAX_USDC_SPEND", "0.25")
    monkeypatch.setenv("VERBOSE", "true")
    monkeypatch.setenv("OUTPUT_DIR", "/tmp/out")
    s = Settings.from_env()
    assert s.max_usdc_spend == 0.25
    assert s.verbose
    assert s.output_dir == Path("/tmp/out")


def test_detect_network_from_path() -> None:
    assert detect_network_from_path(Path("results/2025-01-01T00-00-00_stage1_base")) == "base"
    assert detect_network_from_path(Path("2025-01-01T00-00-00_stage1_solana")) == "solana"
    with pytest.raises(ValueError):
        detect_network_from_path(Path("results/run"))


def test_load_endpoints_accepts_stage1_keys(tmp_path) -> None:
    folder = tmp_path / "2025-01-01T00-00-00_stage1_base"
    folder.mkdir()
    (folder / "endpoints.json").write_text(
        json.dumps(
            {
                "network": "base",
                "endpoints": [
                    {
                        "url": "https://a.example/pools",
                        "name": "A",
                        "category": "pool",
                        "price": 0.05,
                        "requested402Price": 0.02,
                        "requires402": True,
                        "metadata": {"outputSchema": {"type": "object"}},
                    },
                    {"url": "https://b.example/free", "category": "whale", "requires402": False},
                ],
            }
        ),
        encoding="utf-8",
    )

    a, b = load_endpoints(folder)
    assert a.effective_price == 0.02
    assert a.output_schema == {"type": "object"}
    assert b.name == "https://b.example/free"
    assert not b.requires_payment
    assert b.effective_price == 0.01


def test_load_endpoints_requires_array(tmp_path) -> None:
    p = tmp_path / "endpoints.json"
    p.write_text(json.dumps({"items": []}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_endpoints(p)
    with pytest.raises(FileNotFoundError):
        load_endpoints(tmp_path / "missing.json")


def test_effective_price_order() -> None:
    assert Endpoint("u", "n", "pool", declared_price=0.05, requested_price=0.0).effective_price == 0.0
    assert Endpoint("u", "n", "pool", declared_price=0.05).effective_price == 0.05
    assert Endpoint("u", "n", "pool", declared_price=None).effective_price == 0.01
