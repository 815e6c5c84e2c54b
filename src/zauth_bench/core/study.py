from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from rich.console import Console
from tqdm import tqdm

from zauth_bench.adapters.types import PaymentTransport, ReliabilityCheck
from zauth_bench.core.agent import YieldAgent
from zauth_bench.core.budget import BudgetTracker
from zauth_bench.core.config import StudyConfig
from zauth_bench.core.errors import InsufficientSampleError
from zauth_bench.core.records import (
    CONDITIONS,
    ConditionResults,
    Endpoint,
    StudyVerdict,
    TrialResult,
)
from zauth_bench.core.stats import (
    break_even_failure_rate,
    burn_reduction_percent,
    cohens_d,
    confidence_interval,
    interpret_effect_size,
    mean,
    paired_t_test,
    standard_deviation,
)

# Both receive the per-trial RNG so the two arms of a pair see identical draws.
TransportFactory = Callable[[random.Random], PaymentTransport]
ReliabilityFactory = Callable[[random.Random], ReliabilityCheck]


class RunState(str, Enum):
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    BUDGET_EXHAUSTED = "budget-exhausted"
    COMPLETED = "completed"


@dataclass
class StudyState:
    state: RunState = RunState.RUNNING
    no_zauth: list[TrialResult] = field(default_factory=list)
    with_zauth: list[TrialResult] = field(default_factory=list)
    unpaired: list[TrialResult] = field(default_factory=list)

    def add(self, trial: TrialResult) -> None:
        if trial.condition == "no-zauth":
            self.no_zauth.append(trial)
        else:
            self.with_zauth.append(trial)

    def truncate_to_pairs(self) -> int:
        # An odd trailing trial (A ran, B never started) is not analyzed, only exported.
        n = min(len(self.no_zauth), len(self.with_zauth))
        self.unpaired += self.no_zauth[n:] + self.with_zauth[n:]
        del self.no_zauth[n:]
        del self.with_zauth[n:]
        return n


@dataclass(frozen=True)
class StudyOutcome:
    verdict: StudyVerdict
    state: RunState
    no_zauth_trials: list[TrialResult]
    with_zauth_trials: list[TrialResult]
    unpaired_trials: list[TrialResult] = field(default_factory=list)

    @property
    def all_trials(self) -> list[TrialResult]:
        return [*self.no_zauth_trials, *self.with_zauth_trials, *self.unpaired_trials]


def trial_rngs(seed: int) -> tuple[random.Random, random.Random]:
    return random.Random(seed), random.Random(f"reliability:{seed}")


def run_trial(
    condition: str,
    *,
    cycles: int,
    seed: int,
    endpoints: Sequence[Endpoint],
    transport_factory: TransportFactory,
    reliability_factory: ReliabilityFactory | None = None,
    budget: BudgetTracker | None = None,
    estimated_cost_per_cycle: float = 0.03,
    console: Console | None = None,
    verbose: bool = False,
) -> tuple[TrialResult, bool]:
    """Run `cycles` optimization cycles for one condition.

    Returns the trial and whether the budget pre-flight check stopped it early.
    """

    transport_rng, reliability_rng = trial_rngs(seed)
    reliability = None
    if condition == "with-zauth" and reliability_factory is not None:
        reliability = reliability_factory(reliability_rng)

    agent = YieldAgent(
        condition,
        transport=transport_factory(transport_rng),
        reliability=reliability,
        endpoints=endpoints,
        console=console,
        verbose=verbose,
    )

    trial = TrialResult(condition=condition, seed=seed)
    for _ in range(cycles):
        if budget is not None and not budget.can_spend(estimated_cost_per_cycle):
            return trial, True
        outcome = agent.run_cycle()
        if budget is not None:
            budget.record_spend(outcome.metrics.spent)
        trial.cycles.append(outcome.metrics)

    return trial, False


def run_study(
    config: StudyConfig,
    *,
    endpoints: Sequence[Endpoint],
    transport_factory: TransportFactory,
    reliability_factory: ReliabilityFactory | None = None,
    budget: BudgetTracker | None = None,
    interrupt: threading.Event | None = None,
    console: Console | None = None,
    show_progress: bool = True,
) -> StudyOutcome:
    """Run matched trial pairs and reduce them into a verdict.

    Trial i uses seed `base_seed + i` for both conditions, `no-zauth` first.
    The interrupt event is only sampled between trials; a budget pre-flight
    failure stops the run before the next cycle. Either way the completed
    trials are truncated to matched pairs and still analyzed.
    """

    console = console or Console()
    if budget is None and config.budget_usdc is not None:
        budget = BudgetTracker(config.budget_usdc)

    console.print(
        f"Study {config.study_id}: {config.trials_per_condition} trials x "
        f"{config.cycles_per_trial} cycles, base seed {config.base_seed}"
    )
    if budget is not None:
        console.print(f"Budget: ${budget.cap_usdc:.2f} USDC")

    state = StudyState()
    pbar = tqdm(
        total=config.trials_per_condition * len(CONDITIONS),
        unit="trial",
        desc="Study",
        dynamic_ncols=True,
        disable=not show_progress,
    )
    try:
        for trial_index in range(config.trials_per_condition):
            seed = config.base_seed + trial_index
            for condition in CONDITIONS:
                if interrupt is not None and interrupt.is_set():
                    state.state = RunState.INTERRUPTED
                    break

                pbar.set_postfix_str(f"pair {trial_index + 1}/{config.trials_per_condition} {condition}")
                trial, exhausted = run_trial(
                    condition,
                    cycles=config.cycles_per_trial,
                    seed=seed,
                    endpoints=endpoints,
                    transport_factory=transport_factory,
                    reliability_factory=reliability_factory,
                    budget=budget,
                    estimated_cost_per_cycle=config.estimated_cost_per_cycle,
                    console=console,
                    verbose=config.verbose,
                )
                if trial.cycles:
                    state.add(trial)
                pbar.update(1)

                if exhausted:
                    state.state = RunState.BUDGET_EXHAUSTED
                    break

            if state.state is not RunState.RUNNING:
                break
    finally:
        pbar.close()

    if state.state is RunState.RUNNING:
        state.state = RunState.COMPLETED

    pairs = state.truncate_to_pairs()
    if state.state is RunState.BUDGET_EXHAUSTED:
        console.print(f"Budget exhausted: {budget.summary() if budget else ''}")
        console.print(f"Partial study saved: {pairs}/{config.trials_per_condition} trial pairs completed")
    elif state.state is RunState.INTERRUPTED:
        console.print(f"Partial study completed: {pairs}/{config.trials_per_condition} trial pairs")
    else:
        console.print("Study completed successfully")
        if budget is not None:
            console.print(f"Final spend: {budget.summary()}")

    if pairs == 0:
        raise InsufficientSampleError(
            "Study stopped too early - no complete trial pairs to analyze",
            trials=state.unpaired,
        )

    verdict = build_verdict(
        state.no_zauth,
        state.with_zauth,
        state=state.state,
        pairs_requested=config.trials_per_condition,
        budget_spent=budget.spent_usdc if budget is not None else None,
    )
    return StudyOutcome(
        verdict=verdict,
        state=state.state,
        no_zauth_trials=list(state.no_zauth),
        with_zauth_trials=list(state.with_zauth),
        unpaired_trials=list(state.unpaired),
    )


def aggregate_condition(condition: str, trials: Sequence[TrialResult]) -> ConditionResults:
    burn_rates = [t.burn_rate for t in trials]
    return ConditionResults(
        condition=condition,
        n_trials=len(trials),
        mean_burn_rate=mean(burn_rates),
        std_burn_rate=standard_deviation(burn_rates),
        mean_total_spent=mean([t.total_spent for t in trials]),
        mean_total_burn=mean([t.total_burn for t in trials]),
        mean_queries_attempted=mean([t.queries_attempted for t in trials]),
        mean_queries_failed=mean([t.queries_failed for t in trials]),
    )


def mean_burn_per_cycle(trials: Sequence[TrialResult]) -> float:
    # Budget-cut trials ran fewer cycles than configured.
    return mean([t.total_burn / len(t.cycles) for t in trials if t.cycles])


def build_verdict(
    no_zauth_trials: Sequence[TrialResult],
    with_zauth_trials: Sequence[TrialResult],
    *,
    state: RunState,
    pairs_requested: int,
    budget_spent: float | None = None,
) -> StudyVerdict:
    if not no_zauth_trials or not with_zauth_trials:
        raise InsufficientSampleError("Cannot compute a verdict from an empty sample")

    no_zauth = aggregate_condition("no-zauth", no_zauth_trials)
    with_zauth = aggregate_condition("with-zauth", with_zauth_trials)

    no_rates = [t.burn_rate for t in no_zauth_trials]
    with_rates = [t.burn_rate for t in with_zauth_trials]

    per_pair_reduction = [burn_reduction_percent(a, b) for a, b in zip(no_rates, with_rates)]
    test = paired_t_test(no_rates, with_rates)
    d = cohens_d(no_rates, with_rates)

    return StudyVerdict(
        no_zauth=no_zauth,
        with_zauth=with_zauth,
        burn_reduction_percent=burn_reduction_percent(no_zauth.mean_burn_rate, with_zauth.mean_burn_rate),
        confidence_interval_95=confidence_interval(per_pair_reduction, 0.95),
        p_value=test.p_value,
        exact_p_value=test.exact_p_value,
        t_statistic=test.t_statistic,
        effect_size=d,
        effect_size_label=interpret_effect_size(d),
        net_savings_per_cycle=mean_burn_per_cycle(no_zauth_trials) - mean_burn_per_cycle(with_zauth_trials),
        break_even_failure_rate=break_even_failure_rate(),
        state=state.value,
        partial=state is not RunState.COMPLETED,
        pairs_completed=len(no_zauth_trials),
        pairs_requested=pairs_requested,
        budget_spent=budget_spent,
    )
