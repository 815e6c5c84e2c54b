from __future__ import annotations

import dataclasses
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Sequence

import httpx
from tqdm import tqdm

from zauth_bench.adapters.payments import (
    PaymentOptionsSummary,
    find_primary_usdc_price,
    summarize_payment_options,
)
from zauth_bench.adapters.x402 import payment_requirements
from zauth_bench.core.records import Endpoint


@dataclass(frozen=True)
class PrepaymentProbe:
    url: str
    requires_payment: bool
    status: int  # 0 when no response was received
    requested_price: float | None = None
    payment_options: PaymentOptionsSummary | None = None
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None


def probe_prepayment(url: str, *, timeout_s: float = 5.0, client: httpx.Client | None = None) -> PrepaymentProbe:
    """Unpaid GET to see whether `url` answers 402 and at what price."""

    owned = client is None
    client = client or httpx.Client(timeout=timeout_s, headers={"Accept": "application/json"})
    try:
        r = client.get(url, timeout=timeout_s)
    except httpx.TimeoutException:
        return PrepaymentProbe(url=url, requires_payment=False, status=0, error=f"Timeout after {timeout_s:g}s")
    except httpx.HTTPError as e:
        return PrepaymentProbe(url=url, requires_payment=False, status=0, error=str(e))
    finally:
        if owned:
            client.close()

    requested_price = None
    payment_options = None
    if r.status_code == 402:
        accepts = payment_requirements(r)
        requested_price = find_primary_usdc_price(accepts)
        payment_options = summarize_payment_options(accepts)

    return PrepaymentProbe(
        url=url,
        requires_payment=r.status_code == 402,
        status=r.status_code,
        requested_price=requested_price,
        payment_options=payment_options,
        headers=dict(r.headers),
    )


def probe_prepayment_batch(
    urls: Sequence[str],
    *,
    concurrency: int = 5,
    timeout_s: float = 5.0,
    transport: httpx.BaseTransport | None = None,
    show_progress: bool = True,
) -> list[PrepaymentProbe]:
    """Probe many URLs concurrently. Results come back in input order."""

    results: dict[str, PrepaymentProbe] = {}
    with httpx.Client(timeout=timeout_s, transport=transport, headers={"Accept": "application/json"}) as client:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as ex:
            future_to_url = {ex.submit(probe_prepayment, url, timeout_s=timeout_s, client=client): url for url in urls}
            for fut in tqdm(
                as_completed(future_to_url),
                total=len(future_to_url),
                unit="url",
                desc="402 probe",
                dynamic_ncols=True,
                disable=not show_progress,
            ):
                results[future_to_url[fut]] = fut.result()
    return [results[url] for url in urls]


def enrich_endpoints(endpoints: Sequence[Endpoint], probes: Sequence[PrepaymentProbe]) -> list[Endpoint]:
    by_url = {p.url: p for p in probes}
    enriched = []
    for endpoint in endpoints:
        probe = by_url.get(endpoint.url)
        if probe is None:
            enriched.append(endpoint)
            continue
        enriched.append(
            dataclasses.replace(
                endpoint,
                requires_payment=probe.requires_payment,
                requested_price=probe.requested_price,
            )
        )
    return enriched
