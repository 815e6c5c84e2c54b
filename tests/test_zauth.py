from __future__ import annotations

import json

import httpx

from zauth_bench.adapters.payments import USDC_ADDRESSES
from zauth_bench.adapters.types import PaymentRequirement
from zauth_bench.adapters.zauth import HttpReliabilityCheck
from zauth_bench.core.records import Endpoint

CHECK_URL = "https://zauth.example/api/verification/check"
ENDPOINT = Endpoint(url="https://api.example/whales", name="Whales", category="whale")


def _checker(handler) -> HttpReliabilityCheck:
    return HttpReliabilityCheck(CHECK_URL, transport=httpx.MockTransport(handler))


def test_healthy_endpoint_is_not_skipped() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"working": True, "uptime": 95})

    report = _checker(handler).check(ENDPOINT)
    assert bodies == [{"url": ENDPOINT.url}]
    assert report.checked
    assert not report.should_skip
    assert report.uptime_fraction == 0.95
    assert report.cost == 0.001


def test_low_uptime_is_skipped() -> None:
    report = _checker(lambda r: httpx.Response(200, json={"working": True, "uptime": 60})).check(ENDPOINT)
    assert report.should_skip
    assert report.reason == "Low uptime: 60.0% < 70%"


def test_not_working_is_skipped() -> None:
    report = _checker(lambda r: httpx.Response(200, json={"working": False, "uptime": 99})).check(ENDPOINT)
    assert report.should_skip
    assert report.reason == "Endpoint currently not working"


def test_service_errors_fail_open() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    for handler in (
        lambda r: httpx.Response(500),
        lambda r: httpx.Response(200, text="not json"),
        lambda r: httpx.Response(200, json={"working": True}),
        boom,
    ):
        report = _checker(handler).check(ENDPOINT)
        assert not report.should_skip
        assert not report.checked
        assert report.cost == 0.0


def test_paid_check_charges_requested_amount() -> None:
    class Signer:
        def payment_header(self, requirement: PaymentRequirement, endpoint: Endpoint) -> str:
            return "sig"

    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("x-payment") != "sig":
            return httpx.Response(
                402,
                json={"accepts": [{"scheme": "exact", "asset": USDC_ADDRESSES["base"], "amount": "2000"}]},
            )
        return httpx.Response(200, json={"working": True, "uptime": 88.5})

    checker = HttpReliabilityCheck(CHECK_URL, signer=Signer(), transport=httpx.MockTransport(handler))
    report = checker.check(ENDPOINT)
    assert report.checked
    assert report.cost == 0.002
    assert report.uptime_fraction == 0.885
