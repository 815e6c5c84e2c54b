from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from zauth_bench.core.records import Endpoint


@dataclass(frozen=True)
class PaymentOutcome:
    success: bool
    # Charged on every attempt once payment was initiated, failures included.
    spent: float
    payload: Any
    latency_ms: float
    error: str | None = None
    status_code: int | None = None


@dataclass(frozen=True)
class ReliabilityReport:
    working: bool
    uptime_fraction: float
    should_skip: bool
    cost: float
    checked: bool = True
    reason: str | None = None
    latency_ms: float = 0.0


@dataclass(frozen=True)
class PaymentRequirement:
    scheme: str
    network: str
    amount: str  # atomic units
    asset: str
    pay_to: str = ""
    amount_usdc: float | None = None
    max_timeout_seconds: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DiscoveryPage:
    endpoints: list[Endpoint]
    next_offset: int | None  # None when there are no more pages
    total: int | None = None


class PaymentTransport(Protocol):
    def query(self, endpoint: Endpoint) -> PaymentOutcome:
        """Issue one paid request.

        Ordinary HTTP and validation failures come back as an unsuccessful
        outcome; only transport-level exceptions propagate.
        """
        ...


class ReliabilityCheck(Protocol):
    def check(self, endpoint: Endpoint) -> ReliabilityReport:
        """Must fail open: an incomplete check reports should_skip=False."""
        ...


class DiscoveryService(Protocol):
    def list_page(self, filters: dict[str, Any] | None = None, offset: int = 0) -> DiscoveryPage: ...


class PaymentSigner(Protocol):
    def payment_header(self, requirement: PaymentRequirement, endpoint: Endpoint) -> str:
        """Return the value for the X-PAYMENT header authorizing `requirement`."""
        ...
