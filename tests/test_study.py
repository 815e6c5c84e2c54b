from __future__ import annotations

import random
import threading

import pytest
from rich.console import Console

from zauth_bench.adapters.mock import MOCK_ENDPOINTS, mock_reliability_factory, mock_transport_factory
from zauth_bench.adapters.types import PaymentOutcome
from zauth_bench.core.budget import BudgetTracker
from zauth_bench.core.config import StudyConfig
from zauth_bench.core.errors import InsufficientSampleError
from zauth_bench.core.records import CycleMetrics, Endpoint, TrialResult
from zauth_bench.core.storage import to_jsonable
from zauth_bench.core.study import RunState, build_verdict, run_study, run_trial

QUIET = Console(quiet=True)

POOL = Endpoint(url="https://p.example/pools", name="Pools", category="pool", declared_price=0.125)
PAYLOAD = {"success": True, "data": [{"poolId": "SOL-USDC", "tvl": 1_000_000, "apy": 20, "volume24h": 10_000}]}


class FlatTransport:
    """Every query succeeds at the endpoint's price; optionally trips an event."""

    def __init__(self, rng: random.Random, trip_after: int | None = None, event: threading.Event | None = None) -> None:
        self.rng = rng
        self.trip_after = trip_after
        self.event = event
        self.calls = 0

    def query(self, endpoint: Endpoint) -> PaymentOutcome:
        self.calls += 1
        if self.event is not None and self.trip_after is not None and self.calls >= self.trip_after:
            self.event.set()
        return PaymentOutcome(True, endpoint.effective_price, PAYLOAD, 1.0)


def _config(**kw) -> StudyConfig:
    base = dict(study_id="t", trials_per_condition=3, cycles_per_trial=2, base_seed=7)
    base.update(kw)
    return StudyConfig(**base)


def _mock_study(config: StudyConfig):
    return run_study(
        config,
        endpoints=MOCK_ENDPOINTS,
        transport_factory=mock_transport_factory(0.3),
        reliability_factory=mock_reliability_factory(0.3),
        console=QUIET,
        show_progress=False,
    )


def test_conditions_are_paired_by_seed() -> None:
    outcome = _mock_study(_config())
    assert outcome.state is RunState.COMPLETED
    assert [t.seed for t in outcome.no_zauth_trials] == [7, 8, 9]
    assert [t.seed for t in outcome.with_zauth_trials] == [7, 8, 9]
    assert outcome.verdict.pairs_completed == 3
    assert not outcome.verdict.partial


def test_same_seed_gives_identical_verdict() -> None:
    a = _mock_study(_config())
    b = _mock_study(_config())
    assert to_jsonable(a.verdict) == to_jsonable(b.verdict)
    assert [t.total_burn for t in a.no_zauth_trials] == [t.total_burn for t in b.no_zauth_trials]


def test_reliability_check_lowers_burn_in_mock() -> None:
    outcome = _mock_study(_config(trials_per_condition=10, cycles_per_trial=5))
    v = outcome.verdict
    # whale and sentiment endpoints sit below the uptime threshold, so they are never paid for
    assert v.with_zauth.mean_total_burn < v.no_zauth.mean_total_burn
    assert v.with_zauth.mean_queries_failed < v.no_zauth.mean_queries_failed


def test_run_trial_reports_budget_stop() -> None:
    budget = BudgetTracker(0.25)
    trial, exhausted = run_trial(
        "no-zauth",
        cycles=5,
        seed=1,
        endpoints=[POOL],
        transport_factory=lambda rng: FlatTransport(rng),
        budget=budget,
        estimated_cost_per_cycle=0.125,
    )
    assert exhausted
    assert len(trial.cycles) == 2
    assert budget.spent_usdc == 0.25


def test_budget_exhaustion_keeps_matched_pairs_only() -> None:
    outcome = run_study(
        _config(budget_usdc=0.625, estimated_cost_per_cycle=0.125),
        endpoints=[POOL],
        transport_factory=lambda rng: FlatTransport(rng),
        console=QUIET,
        show_progress=False,
    )
    # no-zauth #2 got one cycle before the pre-flight check failed; it has no partner
    assert outcome.state is RunState.BUDGET_EXHAUSTED
    assert len(outcome.no_zauth_trials) == len(outcome.with_zauth_trials) == 1
    assert outcome.verdict.partial
    assert outcome.verdict.state == "budget-exhausted"
    assert outcome.verdict.pairs_requested == 3
    assert outcome.verdict.budget_spent == 0.625
    # the paid but unpartnered trial is still exported
    (leftover,) = outcome.unpaired_trials
    assert (leftover.condition, leftover.seed, len(leftover.cycles)) == ("no-zauth", 8, 1)
    assert len(outcome.all_trials) == 3


def test_no_complete_pair_raises_with_the_spent_trials() -> None:
    with pytest.raises(InsufficientSampleError) as excinfo:
        run_study(
            _config(budget_usdc=0.25, estimated_cost_per_cycle=0.125),
            endpoints=[POOL],
            transport_factory=lambda rng: FlatTransport(rng),
            console=QUIET,
            show_progress=False,
        )
    (trial,) = excinfo.value.trials
    assert trial.condition == "no-zauth"
    assert trial.total_spent == 0.25


def test_interrupt_is_honored_at_trial_boundary() -> None:
    event = threading.Event()
    calls = {"n": 0}

    def factory(rng: random.Random) -> FlatTransport:
        calls["n"] += 1
        # The third trial (no-zauth, seed 8) trips the interrupt on its first query.
        return FlatTransport(rng, trip_after=1 if calls["n"] == 3 else None, event=event)

    outcome = run_study(
        _config(cycles_per_trial=1),
        endpoints=[POOL],
        transport_factory=factory,
        interrupt=event,
        console=QUIET,
        show_progress=False,
    )
    assert outcome.state is RunState.INTERRUPTED
    assert outcome.verdict.pairs_completed == 1
    assert outcome.verdict.state == "interrupted"
    assert outcome.no_zauth_trials[0].seed == outcome.with_zauth_trials[0].seed == 7


def test_net_savings_uses_cycles_actually_run() -> None:
    def failing_trial(condition: str, seed: int, cycles: int) -> TrialResult:
        metrics = CycleMetrics(spent=0.125, burn=0.125, zauth_cost=0.0, attempted=1, failed=1, latency_ms=1.0)
        return TrialResult(condition=condition, seed=seed, cycles=[metrics] * cycles)

    # the with-zauth partners were cut to one cycle by the budget
    verdict = build_verdict(
        [failing_trial("no-zauth", 1, 2), failing_trial("no-zauth", 2, 2)],
        [failing_trial("with-zauth", 1, 1), failing_trial("with-zauth", 2, 1)],
        state=RunState.BUDGET_EXHAUSTED,
        pairs_requested=2,
    )
    assert verdict.net_savings_per_cycle == 0.0
    assert verdict.partial
