from __future__ import annotations

import httpx
import pytest

from zauth_bench.adapters.bazaar import (
    BazaarDiscoveryClient,
    classify_category,
    derive_name,
    extract_price_usdc,
    matches_network,
)
from zauth_bench.adapters.payments import USDC_ADDRESSES
from zauth_bench.core.errors import DiscoveryError

BASE_ACCEPTS = [{"scheme": "exact", "network": "eip155:8453", "asset": USDC_ADDRESSES["base"], "amount": "30000"}]
SOL_ACCEPTS = [{"scheme": "exact", "network": "solana", "asset": USDC_ADDRESSES["solana"], "amount": "10000"}]

ITEMS = [
    {"url": "https://a.example/v1/whale-tracker", "accepts": BASE_ACCEPTS},
    {"url": "https://b.example/v1/weather", "accepts": BASE_ACCEPTS},
    {"url": "https://c.example/v1/top-pools", "accepts": SOL_ACCEPTS, "metadata": {"name": "Top Pools"}},
]


def test_classify_category_by_keyword_order() -> None:
    assert classify_category({"url": "https://x/whale-moves"}) == "whale"
    assert classify_category({"url": "https://x/api", "metadata": {"description": "pool price feed"}}) == "pool"
    assert classify_category({"url": "https://x/market-trend"}) == "sentiment"
    assert classify_category({"url": "https://x/weather"}) is None


def test_matches_network() -> None:
    assert matches_network({"accepts": BASE_ACCEPTS}, "base")
    assert not matches_network({"accepts": BASE_ACCEPTS}, "solana")
    assert matches_network({"accepts": SOL_ACCEPTS}, "solana")
    assert not matches_network({"accepts": []}, "base")


def test_extract_price_usdc_defaults_to_floor() -> None:
    assert extract_price_usdc(BASE_ACCEPTS) == 0.03
    assert extract_price_usdc([{"scheme": "upto", "asset": USDC_ADDRESSES["base"], "amount": "30000"}]) == 0.01
    assert extract_price_usdc([]) == 0.01


def test_derive_name() -> None:
    assert derive_name({"url": "https://api.example.com/v1/top-pools"}) == "Top Pools"
    assert derive_name({"url": "https://x", "metadata": {"name": "Named"}}) == "Named"


def test_list_page_maps_and_filters() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/platform/v2/x402/discovery/resources"
        return httpx.Response(200, json={"items": ITEMS, "total": 3})

    client = BazaarDiscoveryClient(
        "https://api.example/platform/v2/x402/", transport=httpx.MockTransport(handler)
    )
    page = client.list_page()
    assert [e.name for e in page.endpoints] == ["Whale Tracker"]
    assert page.endpoints[0].category == "whale"
    assert page.endpoints[0].declared_price == 0.03
    assert page.endpoints[0].network == "base"
    assert page.next_offset is None
    assert page.total == 3


def test_pages_are_cached() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"items": ITEMS, "total": 3})

    client = BazaarDiscoveryClient("https://api.example", transport=httpx.MockTransport(handler))
    client.list_page()
    client.list_page()
    assert calls["n"] == 1
    client.list_page(offset=2)
    assert calls["n"] == 2

    uncached = BazaarDiscoveryClient("https://api.example", cache_ttl_s=0, transport=httpx.MockTransport(handler))
    uncached.list_page()
    uncached.list_page()
    assert calls["n"] == 4


def test_iter_endpoints_follows_offsets() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params.get("offset", "0"))
        return httpx.Response(200, json={"items": ITEMS[offset : offset + 2], "total": 3})

    client = BazaarDiscoveryClient(
        "https://api.example", network="solana", page_size=2, transport=httpx.MockTransport(handler)
    )
    assert [e.name for e in client.iter_endpoints()] == ["Top Pools"]


def test_malformed_or_failed_discovery_raises() -> None:
    for response in (
        httpx.Response(200, json={"resources": []}),
        httpx.Response(200, json=[1, 2]),
        httpx.Response(503),
        httpx.Response(200, text="<html>"),
    ):
        client = BazaarDiscoveryClient("https://api.example", transport=httpx.MockTransport(lambda r, resp=response: resp))
        with pytest.raises(DiscoveryError):
            client.list_page()


@pytest.mark.parametrize(
    "item",
    [
        {"url": "https://a.example/v1/pools", "metadata": "oops", "accepts": BASE_ACCEPTS},
        {"url": "https://a.example/v1/pools", "accepts": ["eip155:8453"]},
        {"url": "https://a.example/v1/pools", "accepts": {"network": "base"}},
    ],
)
def test_malformed_resource_raises_discovery_error(item) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [item], "total": 1})

    client = BazaarDiscoveryClient("https://api.example", transport=httpx.MockTransport(handler))
    with pytest.raises(DiscoveryError):
        client.list_page()
