from __future__ import annotations

import json

import pytest

from zauth_bench.cli import load_signer, main


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("OUTPUT_DIR", "MAX_USDC_SPEND", "MOCK_FAILURE_RATE", "VERBOSE"):
        monkeypatch.delenv(name, raising=False)


def test_study_in_mock_mode_writes_verdict(tmp_path) -> None:
    rc = main(["study", "--trials", "2", "--cycles", "1", "--no-progress", "--output-dir", str(tmp_path / "out")])
    assert rc == 0

    (verdict_path,) = (tmp_path / "out").glob("*/verdict.json")
    verdict = json.loads(verdict_path.read_text(encoding="utf-8"))
    assert verdict["state"] == "completed"
    assert verdict["pairs_completed"] == 2

    trials = (verdict_path.parent / "trials.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(trials) == 4


def test_study_reads_yaml_config(tmp_path) -> None:
    cfg = tmp_path / "pilot.yaml"
    cfg.write_text("id: pilot\ndefaults:\n  trials_per_condition: 1\n  cycles_per_trial: 1\n", encoding="utf-8")
    rc = main(["study", "--config", str(cfg), "--no-progress", "--output-dir", str(tmp_path / "out")])
    assert rc == 0
    assert (tmp_path / "out" / "pilot" / "verdict.json").exists()


def test_compare_in_mock_mode_writes_report(tmp_path) -> None:
    rc = main(["compare", "--budget", "1.0", "--output-dir", str(tmp_path / "out")])
    assert rc == 0

    (path,) = (tmp_path / "out").glob("*_stage2/comparison.json")
    report = json.loads(path.read_text(encoding="utf-8"))
    assert report["summary"]["endpoints_compared"] >= 1
    assert report["state"] in ("completed", "budget-exhausted")


def test_real_mode_needs_endpoints_and_signer(tmp_path) -> None:
    assert main(["compare", "--mode", "real"]) == 1
    assert main(["study", "--mode", "real", "--no-progress"]) == 1


def test_load_signer_rejects_bad_targets() -> None:
    with pytest.raises(ValueError):
        load_signer("no_colon_here")
    with pytest.raises(ValueError):
        load_signer("json:dumps")


def test_study_without_a_complete_pair_still_exports_paid_trials(tmp_path) -> None:
    rc = main(
        ["study", "--trials", "3", "--cycles", "2", "--budget", "0.05", "--no-progress", "--output-dir", str(tmp_path / "out")]
    )
    assert rc == 1

    (trials_path,) = (tmp_path / "out").glob("*/trials.jsonl")
    (row,) = [json.loads(line) for line in trials_path.read_text(encoding="utf-8").splitlines()]
    assert row["condition"] == "no-zauth"
    assert row["total_spent"] > 0
    assert not list((tmp_path / "out").glob("*/verdict.json"))
