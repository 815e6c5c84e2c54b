from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Category = Literal["pool", "whale", "sentiment"]
Condition = Literal["no-zauth", "with-zauth"]
SchemaSource = Literal["declared-schema", "pattern-match", "none"]

CATEGORIES: tuple[str, ...] = ("pool", "whale", "sentiment")
CONDITIONS: tuple[str, ...] = ("no-zauth", "with-zauth")

# Used when an endpoint advertises neither a requested nor a declared price.
DEFAULT_PRICE_FLOOR_USDC = 0.01


@dataclass(frozen=True)
class Endpoint:
    url: str
    name: str
    category: str
    declared_price: float | None = DEFAULT_PRICE_FLOOR_USDC
    # Price demanded by the endpoint's 402 response; may differ from the catalog.
    requested_price: float | None = None
    requires_payment: bool = True
    output_schema: dict[str, Any] | None = None
    network: str | None = None

    # Mock-only knobs; real endpoints leave these unset.
    mock_failure_rate: float | None = None
    mock_latency_ms: float | None = None

    @property
    def effective_price(self) -> float:
        if self.requested_price is not None:
            return self.requested_price
        if self.declared_price is not None:
            return self.declared_price
        return DEFAULT_PRICE_FLOOR_USDC


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    records: list[Any]
    schema_source: str  # declared-schema|pattern-match|none
    error: str | None = None


@dataclass(frozen=True)
class PoolData:
    pool_id: str
    token_a: str
    token_b: str
    tvl: float
    apy: float
    volume_24h: float
    fee_rate: float
    impermanent_loss_risk: str  # low|medium|high
    # Numeric attributes that could not be parsed and were zero-filled.
    missing_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class WhaleMove:
    wallet: str
    action: str  # buy|sell|transfer
    token: str
    amount: float
    timestamp: datetime
    significance: float


@dataclass(frozen=True)
class SentimentScore:
    token: str
    score: float
    confidence: float
    sources: tuple[str, ...] = ()


@dataclass(frozen=True)
class Allocation:
    pool_id: str
    percentage: float
    reasoning: str
    confidence: float = 0.0
    data_quality: float = 0.0


@dataclass(frozen=True)
class QueryAttempt:
    endpoint_url: str
    endpoint_name: str
    category: str
    condition: str
    success: bool
    spent: float
    burn: float
    zauth_cost: float
    latency_ms: float
    skipped_by_reliability_check: bool
    validation: ValidationOutcome
    error: str | None = None
    # Normalized records (PoolData / WhaleMove / SentimentScore) from a usable payload.
    extracted: tuple[Any, ...] = ()

    @property
    def failed(self) -> bool:
        return not self.success and not self.skipped_by_reliability_check


@dataclass(frozen=True)
class CycleMetrics:
    spent: float  # includes reliability-check cost
    burn: float
    zauth_cost: float
    attempted: int
    failed: int
    latency_ms: float
    skipped: int = 0


@dataclass
class TrialResult:
    condition: str
    seed: int
    cycles: list[CycleMetrics] = field(default_factory=list)

    @property
    def total_spent(self) -> float:
        return sum(c.spent for c in self.cycles)

    @property
    def total_burn(self) -> float:
        return sum(c.burn for c in self.cycles)

    @property
    def total_zauth_cost(self) -> float:
        return sum(c.zauth_cost for c in self.cycles)

    @property
    def burn_rate(self) -> float:
        spent = self.total_spent
        return self.total_burn / spent if spent > 0 else 0.0

    @property
    def queries_attempted(self) -> int:
        return sum(c.attempted for c in self.cycles)

    @property
    def queries_failed(self) -> int:
        return sum(c.failed for c in self.cycles)

    @property
    def avg_latency_ms(self) -> float:
        if not self.cycles:
            return 0.0
        return sum(c.latency_ms for c in self.cycles) / len(self.cycles)


@dataclass(frozen=True)
class ConditionResults:
    condition: str
    n_trials: int
    mean_burn_rate: float
    std_burn_rate: float
    mean_total_spent: float
    mean_total_burn: float
    mean_queries_attempted: float
    mean_queries_failed: float


@dataclass(frozen=True)
class StudyVerdict:
    no_zauth: ConditionResults
    with_zauth: ConditionResults
    burn_reduction_percent: float
    confidence_interval_95: tuple[float, float]
    p_value: float  # bucketed approximation, see core.stats
    exact_p_value: float | None
    t_statistic: float
    effect_size: float  # Cohen's d
    effect_size_label: str
    net_savings_per_cycle: float
    break_even_failure_rate: float
    state: str
    partial: bool
    pairs_completed: int
    pairs_requested: int
    budget_spent: float | None = None


@dataclass(frozen=True)
class EndpointComparison:
    endpoint: Endpoint
    no_zauth: QueryAttempt
    with_zauth: QueryAttempt

    @property
    def burn_savings(self) -> float:
        return self.no_zauth.burn - self.with_zauth.burn

    @property
    def net_savings(self) -> float:
        return self.burn_savings - self.with_zauth.zauth_cost


@dataclass(frozen=True)
class ModeResults:
    condition: str
    allocation: Allocation
    total_spent: float
    total_burn: float
    burn_rate: float
    zauth_cost: float
    queries_attempted: int
    queries_failed: int
    queries_skipped: int
    pool_data: list[PoolData]
    whale_data: list[WhaleMove]
    sentiment_data: list[SentimentScore]


@dataclass(frozen=True)
class ComparisonSummary:
    endpoints_compared: int
    budget_used: float
    no_zauth_total_spent: float
    no_zauth_total_burn: float
    no_zauth_burn_rate: float
    with_zauth_total_spent: float
    with_zauth_total_burn: float
    with_zauth_burn_rate: float
    with_zauth_zauth_cost: float
    total_burn_savings: float
    total_net_savings: float
    burn_reduction_percent: float


@dataclass(frozen=True)
class AllocationComparison:
    no_zauth: Allocation
    with_zauth: Allocation
    same_decision: bool
    confidence_delta: float


@dataclass(frozen=True)
class ComparisonReport:
    no_zauth: ModeResults
    with_zauth: ModeResults
    comparisons: list[EndpointComparison]
    summary: ComparisonSummary
    allocation_comparison: AllocationComparison
    state: str
    # category -> names of endpoints the sub-budget could not cover
    skipped_for_budget: dict[str, list[str]]
    duration_s: float
