from __future__ import annotations

import json
import re
import time
from typing import Any, Iterator
from urllib.parse import urlparse

import httpx
from rich.console import Console

from zauth_bench.adapters.payments import USDC_ADDRESSES, atomic_to_usdc, is_usdc
from zauth_bench.adapters.retry import request_with_429_retries
from zauth_bench.adapters.types import DiscoveryPage
from zauth_bench.core.errors import DiscoveryError
from zauth_bench.core.records import DEFAULT_PRICE_FLOOR_USDC, Endpoint

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "pool": ("pool", "yield", "liquidity", "vault", "tvl", "apy", "lending", "borrow"),
    "whale": ("whale", "movement", "wallet", "tracker", "flow", "holder", "transfer"),
    "sentiment": ("sentiment", "analysis", "price", "signal", "market", "trend", "indicator"),
}

_BASE58 = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def _metadata(resource: dict[str, Any]) -> dict[str, Any]:
    metadata = resource.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise DiscoveryError(f"Invalid Bazaar resource {resource.get('url')!r}: metadata is not an object")
    return metadata


def _accepts(resource: dict[str, Any]) -> list[dict[str, Any]]:
    accepts = resource.get("accepts") or []
    if not isinstance(accepts, list) or not all(isinstance(a, dict) for a in accepts):
        raise DiscoveryError(f"Invalid Bazaar resource {resource.get('url')!r}: accepts is not a list of objects")
    return accepts


def classify_category(resource: dict[str, Any]) -> str | None:
    """First category whose keywords appear in the URL or metadata text."""

    metadata = _metadata(resource)
    text = " ".join(
        str(part or "")
        for part in (
            resource.get("url"),
            metadata.get("name"),
            metadata.get("description"),
            metadata.get("category"),
        )
    ).lower()

    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(kw in text for kw in keywords):
            return category
    return None


def matches_network(resource: dict[str, Any], network: str) -> bool:
    for requirement in _accepts(resource):
        req_network = requirement.get("network")
        asset = str(requirement.get("asset") or "")
        if network == "base":
            if req_network in ("eip155:8453", "eip155:84532", "base", "base-sepolia"):
                return True
            if asset.lower() in (USDC_ADDRESSES["base"], USDC_ADDRESSES["base-sepolia"]):
                return True
        elif network == "solana":
            if asset == USDC_ADDRESSES["solana"] or _BASE58.match(asset):
                return True
    return False


def extract_price_usdc(accepts: list[dict[str, Any]]) -> float:
    for requirement in accepts:
        if requirement.get("scheme") != "exact":
            continue
        amount = requirement.get("amount") or requirement.get("maxAmountRequired")
        if is_usdc(requirement.get("asset")) and amount:
            price = atomic_to_usdc(amount)
            if price is not None:
                return price
    return DEFAULT_PRICE_FLOOR_USDC


def derive_name(resource: dict[str, Any]) -> str:
    metadata = _metadata(resource)
    if metadata.get("name"):
        return str(metadata["name"])

    path = urlparse(str(resource.get("url") or "")).path
    parts = [p for p in path.split("/") if p]
    if not parts:
        return "Endpoint" if resource.get("url") else "Unknown Endpoint"
    return re.sub(r"[-_]", " ", parts[-1]).title()


def endpoint_from_resource(resource: dict[str, Any], network: str) -> Endpoint | None:
    """None when the resource is on another network or fits no category."""

    if not resource.get("url") or not matches_network(resource, network):
        return None
    category = classify_category(resource)
    if category is None:
        return None

    metadata = _metadata(resource)
    return Endpoint(
        url=str(resource["url"]),
        name=derive_name(resource),
        category=category,
        declared_price=extract_price_usdc(_accepts(resource)),
        output_schema=metadata.get("outputSchema"),
        network=network,
    )


class BazaarDiscoveryClient:
    """Paginated reader for the x402 Bazaar `/discovery/resources` listing.

    Pages are cached in memory for `cache_ttl_s`. HTTP failures, malformed
    pages and malformed resources raise `DiscoveryError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        network: str = "base",
        page_size: int = 100,
        cache_ttl_s: float = 3600.0,
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        console: Console | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.page_size = page_size
        self.cache_ttl_s = cache_ttl_s
        self.timeout_s = timeout_s
        self.console = console or Console(quiet=True)
        self.client = httpx.Client(timeout=timeout_s, transport=transport, headers={"Accept": "application/json"})
        self._cache: dict[str, tuple[float, dict[str, Any]]] = {}

    def close(self) -> None:
        self.client.close()

    def fetch_raw(self, filters: dict[str, Any] | None = None, offset: int = 0) -> dict[str, Any]:
        params: dict[str, Any] = {k: v for k, v in (filters or {}).items() if v is not None}
        params.setdefault("limit", self.page_size)
        if offset:
            params["offset"] = offset

        key = json.dumps(params, sort_keys=True, default=str)
        cached = self._cache.get(key)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl_s:
            return cached[1]

        url = f"{self.base_url}/discovery/resources"
        try:
            r = request_with_429_retries(self.client, "GET", url, params=params, timeout_s=self.timeout_s)
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Bazaar request failed: {e}") from e
        if not r.is_success:
            raise DiscoveryError(f"Bazaar API error: {r.status_code} {r.reason_phrase}")

        try:
            data = r.json()
        except ValueError as e:
            raise DiscoveryError("Invalid Bazaar response: not JSON") from e
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise DiscoveryError("Invalid Bazaar response: missing items array")

        self._cache[key] = (time.monotonic(), data)
        self.console.print(f"[Bazaar] Discovered {len(data['items'])} resources (total: {data.get('total')})")
        return data

    def list_page(self, filters: dict[str, Any] | None = None, offset: int = 0) -> DiscoveryPage:
        data = self.fetch_raw(filters, offset)
        items = data["items"]

        endpoints = []
        for item in items:
            if not isinstance(item, dict):
                continue
            endpoint = endpoint_from_resource(item, self.network)
            if endpoint is not None:
                endpoints.append(endpoint)

        total = data.get("total") if isinstance(data.get("total"), int) else None
        limit = int((filters or {}).get("limit") or self.page_size)
        next_offset: int | None = offset + len(items)
        if total is not None:
            if next_offset >= total:
                next_offset = None
        elif len(items) < limit:
            next_offset = None
        if not items:
            next_offset = None

        return DiscoveryPage(endpoints=endpoints, next_offset=next_offset, total=total)

    def iter_endpoints(self, filters: dict[str, Any] | None = None, max_pages: int = 50) -> Iterator[Endpoint]:
        offset: int | None = 0
        pages = 0
        while offset is not None and pages < max_pages:
            page = self.list_page(filters, offset)
            yield from page.endpoints
            offset = page.next_offset
            pages += 1
