from __future__ import annotations

import random
from typing import Any, Callable

from zauth_bench.adapters.types import PaymentOutcome, ReliabilityReport
from zauth_bench.core.records import Endpoint

# Uptime below this is considered unreliable.
RELIABILITY_THRESHOLD = 0.70
ZAUTH_CHECK_COST_USDC = 0.001

# Fixed reference time so mock whale timestamps are reproducible.
MOCK_EPOCH_S = 1_735_689_600  # 2025-01-01T00:00:00Z

MOCK_ENDPOINTS: list[Endpoint] = [
    Endpoint(
        url="https://mock-api.raydium.io/v1/pools",
        name="Raydium Pools",
        category="pool",
        declared_price=0.03,
        mock_failure_rate=0.15,
        mock_latency_ms=200,
    ),
    Endpoint(
        url="https://mock-api.orca.so/v1/whirlpools",
        name="Orca Whirlpools",
        category="pool",
        declared_price=0.04,
        mock_failure_rate=0.20,
        mock_latency_ms=250,
    ),
    Endpoint(
        url="https://mock-api.kamino.finance/v1/vaults",
        name="Kamino Vaults",
        category="pool",
        declared_price=0.05,
        mock_failure_rate=0.25,
        mock_latency_ms=300,
    ),
    Endpoint(
        url="https://mock-api.ainalyst.io/v1/whale-moves",
        name="AInalyst Whale Tracking",
        category="whale",
        declared_price=0.05,
        mock_failure_rate=0.40,
        mock_latency_ms=500,
    ),
    Endpoint(
        url="https://mock-api.tokenmetrics.com/v1/sentiment",
        name="Token Metrics Sentiment",
        category="sentiment",
        declared_price=0.04,
        mock_failure_rate=0.35,
        mock_latency_ms=400,
    ),
]

MOCK_ERROR_PAYLOADS: list[Any] = [
    {"success": False, "error": "Rate limit exceeded"},
    {"success": False, "error": "Internal server error"},
    {"success": False, "error": "Service temporarily unavailable"},
    {"success": False, "error": "Timeout"},
    {"success": False, "data": None},
    {},
]

_POOLS = ("SOL-USDC", "RAY-SOL", "ORCA-USDC", "JTO-SOL", "BONK-SOL")
_TOKENS = ("SOL", "JTO", "BONK", "WIF", "PYTH")


def mock_pool_records(rng: random.Random) -> list[dict[str, Any]]:
    records = []
    for i, pool in enumerate(_POOLS):
        token_a, token_b = pool.split("-")
        records.append(
            {
                "poolId": f"pool_{i}_{pool}",
                "tokenA": token_a,
                "tokenB": token_b,
                "tvl": rng.random() * 10_000_000 + 100_000,
                # Kept above 10 so the percentage rule always reads it as percent.
                "apy": rng.random() * 48 + 12,
                "volume24h": rng.random() * 5_000_000 + 50_000,
            }
        )
    return records


def mock_whale_records(rng: random.Random) -> list[dict[str, Any]]:
    return [
        {
            "address": f"whale_{rng.getrandbits(32):08x}",
            "action": rng.choice(("buy", "sell")),
            "token": token,
            "amount": rng.random() * 1_000_000 + 10_000,
            "timestamp": MOCK_EPOCH_S - int(rng.random() * 3600),
        }
        for token in _TOKENS
    ]


def mock_sentiment_records(rng: random.Random) -> list[dict[str, Any]]:
    return [
        {
            "token": token,
            "sentiment": rng.choice(("bullish", "bearish", "neutral")),
            "score": rng.random() * 2 - 1,
            "confidence": rng.random() * 0.5 + 0.5,
        }
        for token in _TOKENS
    ]


def mock_payload(endpoint: Endpoint, rng: random.Random) -> dict[str, Any]:
    if endpoint.category == "pool":
        return {"success": True, "data": mock_pool_records(rng)}
    if endpoint.category == "whale":
        return {"success": True, "data": mock_whale_records(rng)}
    if endpoint.category == "sentiment":
        return {"success": True, "data": mock_sentiment_records(rng)}
    return {"success": True, "data": []}


class MockPaymentTransport:
    """Seeded stand-in for a paid endpoint.

    Payment always goes through; a failing call returns one of the garbage
    payloads, so every failure is burn. Latency is simulated, not slept.
    """

    def __init__(self, rng: random.Random, default_failure_rate: float = 0.30) -> None:
        self.rng = rng
        self.default_failure_rate = default_failure_rate

    def query(self, endpoint: Endpoint) -> PaymentOutcome:
        latency_ms = (endpoint.mock_latency_ms or 200) + self.rng.random() * 100
        failure_rate = (
            endpoint.mock_failure_rate
            if endpoint.mock_failure_rate is not None
            else self.default_failure_rate
        )
        spent = endpoint.effective_price

        if self.rng.random() < failure_rate:
            return PaymentOutcome(
                success=False,
                spent=spent,
                payload=self.rng.choice(MOCK_ERROR_PAYLOADS),
                latency_ms=latency_ms,
                error="Endpoint returned invalid response after payment",
                status_code=200,
            )

        return PaymentOutcome(
            success=True,
            spent=spent,
            payload=mock_payload(endpoint, self.rng),
            latency_ms=latency_ms,
            status_code=200,
        )


class MockReliabilityCheck:
    """Knows each mock endpoint's failure rate and reports uptime from it."""

    def __init__(
        self,
        rng: random.Random,
        default_failure_rate: float = 0.30,
        threshold: float = RELIABILITY_THRESHOLD,
        cost: float = ZAUTH_CHECK_COST_USDC,
    ) -> None:
        self.rng = rng
        self.default_failure_rate = default_failure_rate
        self.threshold = threshold
        self.cost = cost

    def check(self, endpoint: Endpoint) -> ReliabilityReport:
        latency_ms = 50 + self.rng.random() * 50
        failure_rate = (
            endpoint.mock_failure_rate
            if endpoint.mock_failure_rate is not None
            else self.default_failure_rate
        )
        uptime = 1 - failure_rate
        # The live probe has better odds than the long-run uptime.
        working = self.rng.random() > failure_rate * 0.5
        reliable = uptime >= self.threshold

        reason = None
        if not working:
            reason = "Endpoint currently not working"
        elif not reliable:
            reason = f"Low uptime: {uptime * 100:.1f}% < {self.threshold * 100:.0f}%"

        return ReliabilityReport(
            working=working,
            uptime_fraction=uptime,
            should_skip=not reliable or not working,
            cost=self.cost,
            reason=reason,
            latency_ms=latency_ms,
        )


def mock_transport_factory(default_failure_rate: float = 0.30) -> Callable[[random.Random], MockPaymentTransport]:
    return lambda rng: MockPaymentTransport(rng, default_failure_rate)


def mock_reliability_factory(default_failure_rate: float = 0.30) -> Callable[[random.Random], MockReliabilityCheck]:
    return lambda rng: MockReliabilityCheck(rng, default_failure_rate)
