from __future__ import annotations

from typing import Sequence

from zauth_bench.core.mapper import DEFAULT_HEURISTICS, Heuristics
from zauth_bench.core.records import Allocation, AllocationComparison, PoolData, SentimentScore, WhaleMove

IL_PENALTY = {"low": 0.0, "medium": 0.1, "high": 0.2}


def data_quality_for_cycle(
    pools: Sequence[PoolData],
    whales: Sequence[WhaleMove],
    sentiments: Sequence[SentimentScore],
) -> float:
    return (
        min(len(pools) / 3, 1) * 0.33
        + min(len(whales) / 3, 1) * 0.33
        + min(len(sentiments) / 3, 1) * 0.34
    )


def data_quality_for_comparison(
    pools: Sequence[PoolData],
    whales: Sequence[WhaleMove],
    sentiments: Sequence[SentimentScore],
) -> float:
    pool_score = min(1.0, len(pools) / 5)
    whale_score = min(1.0, len(whales) / 10)
    sentiment_score = min(1.0, len(sentiments) / 5)
    return (pool_score + whale_score + sentiment_score) / 3


def pool_completeness(pool: PoolData, heuristics: Heuristics = DEFAULT_HEURISTICS) -> float:
    return max(0.0, 1.0 - heuristics.missing_field_penalty * len(pool.missing_fields))


def score_pool(
    pool: PoolData,
    whales: Sequence[WhaleMove],
    sentiments: Sequence[SentimentScore],
    data_quality: float,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> float:
    # apy is fractional after normalization; 0.5 (50%) maps to the full 0.4 weight.
    score = min(pool.apy / 0.5, 1.0) * 0.4
    score += min(pool.tvl / 100_000_000, 1) * 0.2
    score += min(pool.volume_24h / 10_000_000, 1) * 0.1
    score -= IL_PENALTY.get(pool.impermanent_loss_risk, 0.1)

    pair = {pool.token_a, pool.token_b}
    score += sum(w.significance for w in whales if w.token in pair and w.action == "buy") * 0.1

    related = [s for s in sentiments if s.token in pair]
    if related:
        score += sum(s.score * s.confidence for s in related) / len(related) * 0.2

    return score * data_quality * pool_completeness(pool, heuristics)


def score_allocation(
    pools: Sequence[PoolData],
    whales: Sequence[WhaleMove],
    sentiments: Sequence[SentimentScore],
) -> Allocation:
    """Multi-factor allocation used by the cyclical agent."""

    quality = data_quality_for_cycle(pools, whales, sentiments)
    if not pools:
        return Allocation(
            pool_id="none",
            percentage=0,
            reasoning="No pool data available - cannot allocate",
            confidence=0.0,
            data_quality=quality,
        )

    scored = [(score_pool(p, whales, sentiments, quality), p) for p in pools]
    best_score, best = max(scored, key=lambda sp: sp[0])
    return Allocation(
        pool_id=best.pool_id,
        percentage=100,
        reasoning=(
            f"Selected {best.token_a}-{best.token_b} (APY: {best.apy * 100:.2f}%, "
            f"TVL: ${best.tvl / 1_000_000:.2f}M, Score: {best_score:.3f})"
        ),
        confidence=quality,
        data_quality=quality,
    )


def best_apy_allocation(
    pools: Sequence[PoolData],
    whales: Sequence[WhaleMove],
    sentiments: Sequence[SentimentScore],
) -> Allocation:
    """Highest-APY pool; used to summarize one side of an endpoint comparison."""

    quality = data_quality_for_comparison(pools, whales, sentiments)
    if not pools:
        return Allocation(
            pool_id="N/A",
            percentage=0,
            reasoning="No pool data available",
            confidence=0.0,
            data_quality=quality,
        )

    best = pools[0]
    for pool in pools[1:]:
        if pool.apy > best.apy:
            best = pool
    return Allocation(
        pool_id=best.pool_id,
        percentage=100,
        reasoning=f"Selected pool {best.pool_id} with highest APY ({best.apy * 100:.2f}%)",
        confidence=quality,
        data_quality=quality,
    )


def compare_allocations(no_zauth: Allocation, with_zauth: Allocation) -> AllocationComparison:
    return AllocationComparison(
        no_zauth=no_zauth,
        with_zauth=with_zauth,
        same_decision=no_zauth.pool_id == with_zauth.pool_id,
        confidence_delta=with_zauth.confidence - no_zauth.confidence,
    )
