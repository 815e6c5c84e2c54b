from __future__ import annotations

import time
from typing import Any

import httpx

from zauth_bench.adapters.payments import select_requirement
from zauth_bench.adapters.retry import request_with_429_retries
from zauth_bench.adapters.types import PaymentSigner, ReliabilityReport
from zauth_bench.adapters.x402 import payment_requirements
from zauth_bench.core.records import Endpoint

RELIABILITY_THRESHOLD = 0.70
ZAUTH_CHECK_COST_USDC = 0.001


class HttpReliabilityCheck:
    """Asks the reliability service about an endpoint before it is paid for.

    The service answers `{"working": bool, "uptime": <percent>}`. When it asks
    for payment itself and a signer is configured, the check is paid once.
    Any failure to get a usable answer fails open: the endpoint is queried.
    """

    def __init__(
        self,
        check_url: str,
        *,
        signer: PaymentSigner | None = None,
        threshold: float = RELIABILITY_THRESHOLD,
        cost: float = ZAUTH_CHECK_COST_USDC,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.check_url = check_url
        self.signer = signer
        self.threshold = threshold
        self.cost = cost
        self.timeout_s = timeout_s
        self.client = httpx.Client(
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self.client.close()

    def check(self, endpoint: Endpoint) -> ReliabilityReport:
        started = time.perf_counter()
        body = {"url": endpoint.url}
        paid: float | None = None

        try:
            r = request_with_429_retries(self.client, "POST", self.check_url, json=body, timeout_s=self.timeout_s)
            if r.status_code == 402 and self.signer is not None:
                requirement = select_requirement(payment_requirements(r))
                if requirement is not None and requirement.amount_usdc is not None:
                    header = self.signer.payment_header(requirement, endpoint)
                    paid = requirement.amount_usdc
                    r = self.client.post(self.check_url, json=body, headers={"X-PAYMENT": header})
        except httpx.HTTPError as e:
            return self._fail_open(started, paid, f"Reliability check failed: {e}")

        if not r.is_success:
            return self._fail_open(started, paid, f"Reliability service error: {r.status_code}")

        try:
            data = r.json()
        except ValueError:
            return self._fail_open(started, paid, "Reliability service returned non-JSON")

        report = self._report(data, started, paid)
        if report is None:
            return self._fail_open(started, paid, "Reliability service returned an unexpected shape")
        return report

    def _report(self, data: Any, started: float, paid: float | None) -> ReliabilityReport | None:
        if not isinstance(data, dict):
            return None
        uptime = data.get("uptime")
        if isinstance(uptime, bool) or not isinstance(uptime, (int, float)):
            return None

        uptime_fraction = float(uptime) / 100
        working = bool(data.get("working"))
        reliable = uptime_fraction >= self.threshold

        reason = None
        if not working:
            reason = "Endpoint currently not working"
        elif not reliable:
            reason = f"Low uptime: {float(uptime):.1f}% < {self.threshold * 100:.0f}%"

        return ReliabilityReport(
            working=working,
            uptime_fraction=uptime_fraction,
            should_skip=not reliable or not working,
            cost=paid if paid is not None else self.cost,
            reason=reason,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    def _fail_open(self, started: float, paid: float | None, reason: str) -> ReliabilityReport:
        return ReliabilityReport(
            working=True,
            uptime_fraction=1.0,
            should_skip=False,
            cost=paid or 0.0,
            checked=False,
            reason=reason,
            latency_ms=(time.perf_counter() - started) * 1000,
        )
