from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Sequence

from rich.console import Console

from zauth_bench.adapters.types import PaymentTransport, ReliabilityCheck
from zauth_bench.core.allocation import score_allocation
from zauth_bench.core.mapper import extract_category_data
from zauth_bench.core.records import (
    CATEGORIES,
    CONDITIONS,
    Allocation,
    CycleMetrics,
    Endpoint,
    PoolData,
    QueryAttempt,
    SentimentScore,
    ValidationOutcome,
    WhaleMove,
)
from zauth_bench.core.validate import validate_response


@dataclass(frozen=True)
class CycleOutcome:
    attempts: list[QueryAttempt]
    pool_data: list[PoolData]
    whale_data: list[WhaleMove]
    sentiment_data: list[SentimentScore]
    allocation: Allocation
    metrics: CycleMetrics


class YieldAgent:
    """Buys pool, whale and sentiment data, optionally behind a reliability check.

    The same class serves both conditions; only `with-zauth` consults the
    reliability checker.
    """

    def __init__(
        self,
        condition: str,
        *,
        transport: PaymentTransport,
        reliability: ReliabilityCheck | None = None,
        endpoints: Sequence[Endpoint] = (),
        console: Console | None = None,
        verbose: bool = False,
    ) -> None:
        if condition not in CONDITIONS:
            raise ValueError(f"Unknown condition: {condition}")
        self.condition = condition
        self.transport = transport
        self.reliability = reliability
        self.endpoints = list(endpoints)
        self.console = console or Console(quiet=True)
        self.verbose = verbose

    @property
    def gated(self) -> bool:
        return self.condition == "with-zauth" and self.reliability is not None

    def query_with_validation(self, endpoint: Endpoint) -> QueryAttempt:
        zauth_cost = 0.0
        check_latency_ms = 0.0

        if self.gated:
            report = self.reliability.check(endpoint)  # type: ignore[union-attr]
            zauth_cost = report.cost
            check_latency_ms = report.latency_ms
            if report.should_skip:
                if self.verbose:
                    self.console.print(f"[Zauth] Skipping {endpoint.name}: {report.reason}")
                return QueryAttempt(
                    endpoint_url=endpoint.url,
                    endpoint_name=endpoint.name,
                    category=endpoint.category,
                    condition=self.condition,
                    success=False,
                    spent=0.0,
                    burn=0.0,
                    zauth_cost=zauth_cost,
                    latency_ms=check_latency_ms,
                    skipped_by_reliability_check=True,
                    validation=ValidationOutcome(
                        valid=False,
                        records=[],
                        schema_source="none",
                        error="Skipped by reliability check",
                    ),
                    error=report.reason,
                )

        outcome = self.transport.query(endpoint)

        extracted: list[Any] = []
        if outcome.success:
            validation = validate_response(outcome.payload, endpoint.output_schema)
            if validation.valid:
                extracted = extract_category_data(endpoint.category, validation.records, source=endpoint.name)
                if not extracted:
                    # Paid for a payload with no usable record: burn all the same.
                    validation = dataclasses.replace(
                        validation,
                        valid=False,
                        error="No records with mandatory fields",
                    )
        else:
            validation = ValidationOutcome(
                valid=False,
                records=[],
                schema_source="none",
                error=outcome.error or "Query failed",
            )

        success = outcome.success and validation.valid
        if not success and self.verbose:
            self.console.print(f"[Burn] {endpoint.name} failed: {outcome.error or validation.error}")

        return QueryAttempt(
            endpoint_url=endpoint.url,
            endpoint_name=endpoint.name,
            category=endpoint.category,
            condition=self.condition,
            success=success,
            spent=outcome.spent,
            burn=0.0 if success else outcome.spent,
            zauth_cost=zauth_cost,
            latency_ms=check_latency_ms + outcome.latency_ms,
            skipped_by_reliability_check=False,
            validation=validation,
            error=None if success else (outcome.error or validation.error),
            extracted=tuple(extracted),
        )

    def run_cycle(self) -> CycleOutcome:
        attempts: list[QueryAttempt] = []
        for category in CATEGORIES:
            for endpoint in self.endpoints:
                if endpoint.category == category:
                    attempts.append(self.query_with_validation(endpoint))

        pools = [r for a in attempts if a.category == "pool" for r in a.extracted]
        whales = [r for a in attempts if a.category == "whale" for r in a.extracted]
        sentiments = [r for a in attempts if a.category == "sentiment" for r in a.extracted]

        zauth_cost = sum(a.zauth_cost for a in attempts)
        metrics = CycleMetrics(
            spent=sum(a.spent for a in attempts) + zauth_cost,
            burn=sum(a.burn for a in attempts),
            zauth_cost=zauth_cost,
            attempted=len(attempts),
            failed=sum(1 for a in attempts if a.failed),
            latency_ms=sum(a.latency_ms for a in attempts),
            skipped=sum(1 for a in attempts if a.skipped_by_reliability_check),
        )

        return CycleOutcome(
            attempts=attempts,
            pool_data=pools,
            whale_data=whales,
            sentiment_data=sentiments,
            allocation=score_allocation(pools, whales, sentiments),
            metrics=metrics,
        )
