"""Descriptive statistics and the significance test behind a study verdict.

Two of these are approximations:

- `confidence_interval` looks up t critical values in a small table bucketed by
  sample size (n<=5, <=10, <=20, <=30, >30) for 95% and 99% confidence and
  falls back to the z-score for large n. It is not an inverse Student-t CDF.
- `paired_t_test` reports `p_value` from a coarse threshold table
  (t<1.96 -> 0.05, <2.576 -> 0.01, <3.291 -> 0.001, else 0.0001). Treat it as
  a bucket, not a probability. `exact_p_value` carries the two-sided Student-t
  p-value from scipy alongside it.

`cohens_d` uses the pooled variance of two independent samples even though
study samples are paired; the reported "effect size" uses this definition.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from scipy import stats as sp_stats

# confidence -> ((max n, t critical), ...), last entry is the large-sample z-score
T_CRITICAL_TABLE: dict[float, tuple[tuple[float, float], ...]] = {
    0.95: ((5, 2.776), (10, 2.228), (20, 2.086), (30, 2.042), (math.inf, 1.96)),
    0.99: ((5, 4.604), (10, 3.169), (20, 2.845), (30, 2.750), (math.inf, 2.576)),
}

# (t upper bound, bucketed p-value)
P_VALUE_BUCKETS: tuple[tuple[float, float], ...] = (
    (1.96, 0.05),
    (2.576, 0.01),
    (3.291, 0.001),
)

# Break-even inputs: ~10 reliability checks at $0.001 per cycle vs $0.01 per query.
ZAUTH_CHECK_COST_PER_CYCLE = 0.001 * 10
AVG_QUERY_COST = 0.01


@dataclass(frozen=True)
class TTestResult:
    t_statistic: float
    p_value: float
    exact_p_value: float | None
    degrees_of_freedom: int


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    # Population, not sample, variance.
    if not values:
        return 0.0
    avg = mean(values)
    return math.sqrt(mean([(v - avg) ** 2 for v in values]))


def t_critical_value(n: int, confidence: float) -> float:
    table = T_CRITICAL_TABLE.get(confidence)
    if table is None:
        return 1.96
    for max_n, t_crit in table:
        if n <= max_n:
            return t_crit
    return table[-1][1]


def confidence_interval(values: Sequence[float], confidence: float = 0.95) -> tuple[float, float]:
    if not values:
        return (0.0, 0.0)
    n = len(values)
    avg = mean(values)
    margin = t_critical_value(n, confidence) * (standard_deviation(values) / math.sqrt(n))
    return (avg - margin, avg + margin)


def approximate_p_value(t_statistic: float) -> float:
    t_abs = abs(t_statistic)
    for upper, p in P_VALUE_BUCKETS:
        if t_abs < upper:
            return p
    return 0.0001


def exact_two_sided_p_value(t_statistic: float, degrees_of_freedom: int) -> float | None:
    if degrees_of_freedom < 1:
        return None
    return float(2 * sp_stats.t.sf(abs(t_statistic), degrees_of_freedom))


def paired_t_test(group_a: Sequence[float], group_b: Sequence[float]) -> TTestResult:
    if len(group_a) != len(group_b):
        raise ValueError(
            f"paired_t_test needs matched samples, got {len(group_a)} and {len(group_b)}"
        )
    n = len(group_a)
    if n == 0:
        return TTestResult(t_statistic=0.0, p_value=1.0, exact_p_value=None, degrees_of_freedom=0)

    differences = [a - b for a, b in zip(group_a, group_b)]
    mean_diff = mean(differences)
    sd_diff = standard_deviation(differences)
    df = n - 1

    if sd_diff == 0:
        p = 1.0 if mean_diff == 0 else 0.0
        return TTestResult(t_statistic=0.0, p_value=p, exact_p_value=p, degrees_of_freedom=df)

    t_stat = mean_diff / (sd_diff / math.sqrt(n))
    return TTestResult(
        t_statistic=t_stat,
        p_value=approximate_p_value(t_stat),
        exact_p_value=exact_two_sided_p_value(t_stat, df),
        degrees_of_freedom=df,
    )


def cohens_d(group_a: Sequence[float], group_b: Sequence[float]) -> float:
    if not group_a or not group_b:
        return 0.0
    n1, n2 = len(group_a), len(group_b)
    if n1 + n2 <= 2:
        return 0.0

    var1 = standard_deviation(group_a) ** 2
    var2 = standard_deviation(group_b) ** 2
    pooled_sd = math.sqrt(((n1 - 1) * var1 + (n2 - 1) * var2) / (n1 + n2 - 2))
    if pooled_sd == 0:
        return 0.0
    return (mean(group_a) - mean(group_b)) / pooled_sd


def interpret_effect_size(d: float) -> str:
    abs_d = abs(d)
    if abs_d < 0.2:
        return "negligible"
    if abs_d < 0.5:
        return "small"
    if abs_d < 0.8:
        return "medium"
    return "large"


def break_even_failure_rate(
    check_cost_per_cycle: float = ZAUTH_CHECK_COST_PER_CYCLE,
    avg_query_cost: float = AVG_QUERY_COST,
) -> float:
    """Failure rate above which the reliability check pays for itself.

    Derived from fixed cost assumptions, not measured.
    """

    return check_cost_per_cycle / avg_query_cost


def burn_reduction_percent(no_zauth_burn: float, with_zauth_burn: float) -> float:
    if no_zauth_burn <= 0:
        return 0.0
    return (no_zauth_burn - with_zauth_burn) / no_zauth_burn * 100
