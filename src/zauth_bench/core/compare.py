from __future__ import annotations

import threading
import time
from typing import Sequence

from rich.console import Console

from zauth_bench.adapters.types import PaymentTransport, ReliabilityCheck
from zauth_bench.core.agent import YieldAgent
from zauth_bench.core.allocation import best_apy_allocation, compare_allocations
from zauth_bench.core.budget import BudgetTracker
from zauth_bench.core.records import (
    CATEGORIES,
    ComparisonReport,
    ComparisonSummary,
    Endpoint,
    EndpointComparison,
    ModeResults,
)
from zauth_bench.core.stats import burn_reduction_percent
from zauth_bench.core.study import RunState

CATEGORY_WEIGHTS: dict[str, float] = {
    "pool": 0.33,
    "whale": 0.33,
    "sentiment": 0.34,
}


def split_budget(budget_usdc: float, weights: dict[str, float] = CATEGORY_WEIGHTS) -> dict[str, float]:
    return {category: budget_usdc * weights[category] for category in CATEGORIES}


def run_comparison(
    endpoints: Sequence[Endpoint],
    budget_usdc: float,
    *,
    transport: PaymentTransport,
    reliability: ReliabilityCheck | None = None,
    interrupt: threading.Event | None = None,
    console: Console | None = None,
    weights: dict[str, float] = CATEGORY_WEIGHTS,
    verbose: bool = False,
) -> ComparisonReport:
    """Compare both conditions on every affordable endpoint, one endpoint at a time.

    The budget is split per category. Within a category the cheapest endpoints
    go first so the sub-budget buys as many comparisons as possible. Each
    endpoint is queried blind and then gated, back to back, so both arms see
    the endpoint in nearly the same state.
    """

    if budget_usdc <= 0:
        raise ValueError("budget_usdc must be positive")

    console = console or Console()
    started = time.perf_counter()

    paying = [e for e in endpoints if e.requires_payment]
    console.print(f"[Compare] Filtered to {len(paying)} endpoints requiring payment")

    sub_budgets = split_budget(budget_usdc, weights)
    for category, amount in sub_budgets.items():
        console.print(f"[Compare] {category} budget: ${amount:.3f}")

    no_zauth_agent = YieldAgent("no-zauth", transport=transport, console=console, verbose=verbose)
    with_zauth_agent = YieldAgent(
        "with-zauth",
        transport=transport,
        reliability=reliability,
        console=console,
        verbose=verbose,
    )

    state = RunState.RUNNING
    comparisons: list[EndpointComparison] = []
    skipped_for_budget: dict[str, list[str]] = {}

    for category in CATEGORIES:
        if interrupt is not None and interrupt.is_set():
            state = RunState.INTERRUPTED
            break
        done, skipped = run_category_comparison(
            [e for e in paying if e.category == category],
            sub_budgets[category],
            category=category,
            no_zauth_agent=no_zauth_agent,
            with_zauth_agent=with_zauth_agent,
            console=console,
            verbose=verbose,
        )
        comparisons.extend(done)
        if skipped:
            skipped_for_budget[category] = skipped

    if state is RunState.RUNNING:
        state = RunState.BUDGET_EXHAUSTED if skipped_for_budget else RunState.COMPLETED

    no_zauth = extract_mode_results(comparisons, "no-zauth")
    with_zauth = extract_mode_results(comparisons, "with-zauth")

    return ComparisonReport(
        no_zauth=no_zauth,
        with_zauth=with_zauth,
        comparisons=comparisons,
        summary=summarize_comparisons(comparisons),
        allocation_comparison=compare_allocations(no_zauth.allocation, with_zauth.allocation),
        state=state.value,
        skipped_for_budget=skipped_for_budget,
        duration_s=time.perf_counter() - started,
    )


def run_category_comparison(
    endpoints: Sequence[Endpoint],
    category_budget: float,
    *,
    category: str,
    no_zauth_agent: YieldAgent,
    with_zauth_agent: YieldAgent,
    console: Console,
    verbose: bool = False,
) -> tuple[list[EndpointComparison], list[str]]:
    """Returns the comparisons made and the names of endpoints left unfunded."""

    if not endpoints:
        console.print(f"[{category}] No endpoints available")
        return [], []

    ordered = sorted(endpoints, key=lambda e: e.effective_price)
    tracker = BudgetTracker(category_budget)
    comparisons: list[EndpointComparison] = []

    for i, endpoint in enumerate(ordered):
        # Room for both queries, not just the first.
        if not tracker.can_spend(endpoint.effective_price * 2):
            console.print(f"[{category}] Budget exhausted after {len(comparisons)} comparisons")
            return comparisons, [e.name for e in ordered[i:]]

        no_zauth = no_zauth_agent.query_with_validation(endpoint)
        tracker.record_spend(no_zauth.spent)

        with_zauth = with_zauth_agent.query_with_validation(endpoint)
        tracker.record_spend(with_zauth.spent + with_zauth.zauth_cost)

        comparison = EndpointComparison(endpoint=endpoint, no_zauth=no_zauth, with_zauth=with_zauth)
        comparisons.append(comparison)

        if verbose:
            console.print(
                f"[{category}] {endpoint.name}: "
                f"no-zauth {'ok' if no_zauth.success else 'FAIL'} (${no_zauth.spent:.3f}, burn ${no_zauth.burn:.3f}) | "
                f"with-zauth {'ok' if with_zauth.success else 'FAIL'} (${with_zauth.spent:.3f}, "
                f"burn ${with_zauth.burn:.3f}, zauth ${with_zauth.zauth_cost:.3f}) | "
                f"net savings ${comparison.net_savings:.3f}"
            )

    console.print(
        f"[{category}] Completed {len(comparisons)} comparisons, spent: ${tracker.spent_usdc:.3f}"
    )
    return comparisons, []


def extract_mode_results(comparisons: Sequence[EndpointComparison], condition: str) -> ModeResults:
    attempts = [c.no_zauth if condition == "no-zauth" else c.with_zauth for c in comparisons]

    usable = [a for a in attempts if a.success]
    pools = [r for a in usable if a.category == "pool" for r in a.extracted]
    whales = [r for a in usable if a.category == "whale" for r in a.extracted]
    sentiments = [r for a in usable if a.category == "sentiment" for r in a.extracted]

    total_spent = sum(a.spent for a in attempts)
    total_burn = sum(a.burn for a in attempts)

    return ModeResults(
        condition=condition,
        allocation=best_apy_allocation(pools, whales, sentiments),
        total_spent=total_spent,
        total_burn=total_burn,
        burn_rate=total_burn / total_spent if total_spent > 0 else 0.0,
        zauth_cost=sum(a.zauth_cost for a in attempts),
        queries_attempted=len(attempts),
        queries_failed=sum(1 for a in attempts if a.failed),
        queries_skipped=sum(1 for a in attempts if a.skipped_by_reliability_check),
        pool_data=pools,
        whale_data=whales,
        sentiment_data=sentiments,
    )


def summarize_comparisons(comparisons: Sequence[EndpointComparison]) -> ComparisonSummary:
    no_spent = sum(c.no_zauth.spent for c in comparisons)
    no_burn = sum(c.no_zauth.burn for c in comparisons)
    with_spent = sum(c.with_zauth.spent for c in comparisons)
    with_burn = sum(c.with_zauth.burn for c in comparisons)
    zauth_cost = sum(c.with_zauth.zauth_cost for c in comparisons)

    return ComparisonSummary(
        endpoints_compared=len(comparisons),
        budget_used=no_spent + with_spent + zauth_cost,
        no_zauth_total_spent=no_spent,
        no_zauth_total_burn=no_burn,
        no_zauth_burn_rate=no_burn / no_spent if no_spent > 0 else 0.0,
        with_zauth_total_spent=with_spent,
        with_zauth_total_burn=with_burn,
        with_zauth_burn_rate=with_burn / with_spent if with_spent > 0 else 0.0,
        with_zauth_zauth_cost=zauth_cost,
        total_burn_savings=sum(c.burn_savings for c in comparisons),
        total_net_savings=sum(c.net_savings for c in comparisons),
        burn_reduction_percent=burn_reduction_percent(no_burn, with_burn),
    )
