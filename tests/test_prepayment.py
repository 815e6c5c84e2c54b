from __future__ import annotations

import httpx

from zauth_bench.adapters.payments import USDC_ADDRESSES
from zauth_bench.adapters.prepayment import (
    PrepaymentProbe,
    enrich_endpoints,
    probe_prepayment,
    probe_prepayment_batch,
)
from zauth_bench.core.records import Endpoint

PAID = "https://paid.example/pools"
FREE = "https://free.example/pools"
SLOW = "https://slow.example/pools"


def handler(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if url == PAID:
        return httpx.Response(
            402,
            json={"accepts": [{"scheme": "exact", "asset": USDC_ADDRESSES["base"], "amount": "75000"}]},
        )
    if url == SLOW:
        raise httpx.ReadTimeout("timed out", request=request)
    return httpx.Response(200, json={"data": []})


def test_batch_keeps_input_order() -> None:
    probes = probe_prepayment_batch(
        [FREE, PAID, SLOW],
        concurrency=3,
        transport=httpx.MockTransport(handler),
        show_progress=False,
    )
    assert [p.url for p in probes] == [FREE, PAID, SLOW]
    free, paid, slow = probes
    assert not free.requires_payment and free.status == 200
    assert paid.requires_payment and paid.requested_price == 0.075
    assert paid.payment_options is not None
    assert paid.payment_options.count == 1
    assert paid.payment_options.min_price_usdc == paid.payment_options.max_price_usdc == 0.075
    assert free.payment_options is None
    assert slow.status == 0
    assert slow.error == "Timeout after 5s"


def test_single_probe_with_shared_client() -> None:
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        probe = probe_prepayment(PAID, client=client)
    assert probe.status == 402
    assert probe.requested_price == 0.075


def test_enrich_endpoints() -> None:
    endpoints = [
        Endpoint(url=PAID, name="paid", category="pool", declared_price=0.05),
        Endpoint(url="https://unprobed.example", name="other", category="pool"),
    ]
    probes = [PrepaymentProbe(url=PAID, requires_payment=True, status=402, requested_price=0.075)]
    enriched = enrich_endpoints(endpoints, probes)
    assert enriched[0].requested_price == 0.075
    assert enriched[0].effective_price == 0.075
    assert enriched[1] == endpoints[1]
