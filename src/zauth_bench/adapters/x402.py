from __future__ import annotations

import time
from typing import Any

import httpx

from zauth_bench.adapters.payments import (
    parse_payment_required_header,
    requirements_from_body,
    select_requirement,
)
from zauth_bench.adapters.retry import request_with_429_retries
from zauth_bench.adapters.types import PaymentOutcome, PaymentRequirement, PaymentSigner
from zauth_bench.core.records import Endpoint


def payment_requirements(response: httpx.Response) -> list[PaymentRequirement]:
    """Payment options advertised by a 402, from the JSON body or the header."""

    try:
        body: Any = response.json()
    except ValueError:
        body = None
    accepts = requirements_from_body(body)
    if accepts:
        return accepts

    header = response.headers.get("payment-required")
    if header:
        return requirements_from_body(parse_payment_required_header(header))
    return []


class HttpPaymentTransport:
    """x402 client: unpaid GET, read the 402 terms, pay, GET again.

    Signing is delegated to `signer`. Once the paid request has been sent the
    price counts as spent, whatever happens next; the paid request is never
    retried.
    """

    def __init__(
        self,
        signer: PaymentSigner,
        *,
        timeout_s: float = 30.0,
        network: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.signer = signer
        self.network = network
        self.timeout_s = timeout_s
        self.client = httpx.Client(
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "HttpPaymentTransport":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def query(self, endpoint: Endpoint) -> PaymentOutcome:
        started = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        try:
            first = request_with_429_retries(self.client, "GET", endpoint.url, timeout_s=self.timeout_s)
        except httpx.HTTPError as e:
            return PaymentOutcome(False, 0.0, None, elapsed(), error=f"Request failed before payment: {e}")

        if first.status_code != 402:
            # Nothing was paid, so nothing can burn.
            if first.is_success:
                return _decoded(first, 0.0, elapsed())
            return PaymentOutcome(
                False,
                0.0,
                None,
                elapsed(),
                error=f"HTTP {first.status_code} before payment",
                status_code=first.status_code,
            )

        requirement = select_requirement(payment_requirements(first), self.network)
        if requirement is None or requirement.amount_usdc is None:
            return PaymentOutcome(
                False,
                0.0,
                None,
                elapsed(),
                error="No USDC payment option in 402 response",
                status_code=402,
            )

        header = self.signer.payment_header(requirement, endpoint)
        spent = requirement.amount_usdc

        try:
            paid = self.client.get(endpoint.url, headers={"X-PAYMENT": header})
        except httpx.HTTPError as e:
            return PaymentOutcome(False, spent, None, elapsed(), error=f"Request failed after payment: {e}")

        if not paid.is_success:
            return PaymentOutcome(
                False,
                spent,
                None,
                elapsed(),
                error=f"HTTP {paid.status_code}: {paid.reason_phrase}",
                status_code=paid.status_code,
            )
        return _decoded(paid, spent, elapsed())


def _decoded(response: httpx.Response, spent: float, latency_ms: float) -> PaymentOutcome:
    try:
        payload = response.json()
    except ValueError:
        return PaymentOutcome(
            False,
            spent,
            response.text,
            latency_ms,
            error="Response is not JSON",
            status_code=response.status_code,
        )
    return PaymentOutcome(True, spent, payload, latency_ms, status_code=response.status_code)
