"""Helpers for x402 `402 Payment Required` responses.

A 402 carries an `accepts` list of payment options, either as the JSON body
or base64-encoded in the `payment-required` header. Amounts are atomic units
of the asset; USDC has 6 decimals.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Iterable

from zauth_bench.adapters.types import PaymentRequirement

USDC_ADDRESSES = {
    "base": "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
    "base-sepolia": "0x036cbd53842c5426634e7929541ec2318f3dcf7e",
    "solana": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
}
USDC_DECIMALS = 6

BASE_NETWORKS = ("base", "base-sepolia", "eip155:8453", "eip155:84532")

NETWORK_LABELS = {
    "eip155:8453": "Base",
    "eip155:84532": "Base Testnet",
    "base": "Base",
    "base-sepolia": "Base Testnet",
    "solana": "Solana",
}


@dataclass(frozen=True)
class PaymentOptionsSummary:
    count: int
    networks: list[str]
    min_price_usdc: float
    max_price_usdc: float


def is_usdc(asset: str | None) -> bool:
    if not isinstance(asset, str) or not asset:
        return False
    # EVM addresses are case-insensitive, Solana mints are not.
    return (
        asset.lower() in (USDC_ADDRESSES["base"], USDC_ADDRESSES["base-sepolia"])
        or asset == USDC_ADDRESSES["solana"]
    )


def parse_payment_required_header(value: str) -> dict[str, Any] | None:
    """Decode a base64 `payment-required` header; None when malformed."""

    try:
        decoded = base64.b64decode(value, validate=False).decode("utf-8")
        parsed = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if not isinstance(parsed, dict) or not isinstance(parsed.get("accepts"), list):
        return None
    return parsed


def requirement_from_json(item: dict[str, Any]) -> PaymentRequirement:
    amount = str(item.get("amount") or item.get("maxAmountRequired") or "")
    asset = str(item.get("asset") or "")
    timeout = item.get("maxTimeoutSeconds")
    return PaymentRequirement(
        scheme=str(item.get("scheme") or "exact"),
        network=str(item.get("network") or ""),
        amount=amount,
        asset=asset,
        pay_to=str(item.get("payTo") or ""),
        amount_usdc=atomic_to_usdc(amount) if is_usdc(asset) else None,
        max_timeout_seconds=int(timeout) if isinstance(timeout, (int, float)) else None,
        extra=item.get("extra") if isinstance(item.get("extra"), dict) else {},
    )


def requirements_from_body(body: Any) -> list[PaymentRequirement]:
    if not isinstance(body, dict) or not isinstance(body.get("accepts"), list):
        return []
    return [requirement_from_json(a) for a in body["accepts"] if isinstance(a, dict)]


def atomic_to_usdc(amount: str | int | None) -> float | None:
    if amount is None or amount == "":
        return None
    try:
        return int(amount) / 10**USDC_DECIMALS
    except (TypeError, ValueError):
        return None


def extract_usdc_price(requirement: PaymentRequirement | dict[str, Any]) -> float | None:
    if isinstance(requirement, dict):
        requirement = requirement_from_json(requirement)
    if not is_usdc(requirement.asset):
        return None
    return atomic_to_usdc(requirement.amount)


def find_primary_usdc_price(accepts: Iterable[PaymentRequirement | dict[str, Any]]) -> float | None:
    for requirement in accepts:
        price = extract_usdc_price(requirement)
        if price is not None:
            return price
    return None


def select_requirement(accepts: Iterable[PaymentRequirement], network: str | None = None) -> PaymentRequirement | None:
    """First USDC option, preferring one on `network` when given."""

    usdc = [r for r in accepts if r.amount_usdc is not None]
    if network:
        for r in usdc:
            if network_matches(r.network, network):
                return r
    return usdc[0] if usdc else None


def summarize_payment_options(accepts: Iterable[PaymentRequirement | dict[str, Any]]) -> PaymentOptionsSummary:
    networks: list[str] = []
    prices: list[float] = []
    count = 0
    for requirement in accepts:
        count += 1
        network = requirement.get("network") if isinstance(requirement, dict) else requirement.network
        if network and network not in networks:
            networks.append(network)
        price = extract_usdc_price(requirement)
        if price is not None:
            prices.append(price)

    return PaymentOptionsSummary(
        count=count,
        networks=networks,
        min_price_usdc=min(prices) if prices else 0.0,
        max_price_usdc=max(prices) if prices else 0.0,
    )


def network_matches(network: str | None, wanted: str) -> bool:
    if not network:
        return False
    n = network.lower()
    if wanted == "base":
        return n in BASE_NETWORKS
    if wanted == "solana":
        return n.startswith("solana")
    return n == wanted.lower()


def format_price(usdc: float) -> str:
    if usdc >= 0.01:
        return f"${usdc:.2f}"
    if usdc >= 0.001:
        return f"${usdc:.3f}"
    return f"${usdc:.4f}"


def format_network(network: str) -> str:
    return NETWORK_LABELS.get(network, network)
