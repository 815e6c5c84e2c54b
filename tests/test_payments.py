from __future__ import annotations

import base64
import json

from zauth_bench.adapters.payments import (
    USDC_ADDRESSES,
    extract_usdc_price,
    find_primary_usdc_price,
    format_network,
    format_price,
    parse_payment_required_header,
    requirements_from_body,
    select_requirement,
    summarize_payment_options,
)

BASE_USDC = USDC_ADDRESSES["base"]
SOL_USDC = USDC_ADDRESSES["solana"]


def _b64(obj: object) -> str:
    return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")


def test_parse_payment_required_header() -> None:
    header = {"x402Version": 1, "accepts": [{"scheme": "exact", "amount": "10000", "asset": BASE_USDC}]}
    assert parse_payment_required_header(_b64(header)) == header


def test_parse_payment_required_header_rejects_garbage() -> None:
    assert parse_payment_required_header("%%%") is None
    assert parse_payment_required_header(_b64([1, 2])) is None
    assert parse_payment_required_header(_b64({"x402Version": 1})) is None


def test_extract_usdc_price() -> None:
    assert extract_usdc_price({"asset": BASE_USDC.upper().replace("0X", "0x"), "amount": "50000"}) == 0.05
    assert extract_usdc_price({"asset": SOL_USDC, "amount": "1000"}) == 0.001
    # Solana mints are case-sensitive
    assert extract_usdc_price({"asset": SOL_USDC.lower(), "amount": "1000"}) is None
    assert extract_usdc_price({"asset": "0xdeadbeef", "amount": "1000"}) is None
    assert extract_usdc_price({"asset": BASE_USDC}) is None


def test_find_primary_usdc_price_takes_first_usdc_option() -> None:
    accepts = [
        {"asset": "0xdeadbeef", "amount": "1"},
        {"asset": BASE_USDC, "amount": "20000"},
        {"asset": SOL_USDC, "amount": "30000"},
    ]
    assert find_primary_usdc_price(accepts) == 0.02
    assert find_primary_usdc_price([]) is None


def test_summarize_payment_options() -> None:
    s = summarize_payment_options(
        [
            {"network": "base", "asset": BASE_USDC, "amount": "20000"},
            {"network": "solana", "asset": SOL_USDC, "amount": "10000"},
            {"network": "base", "asset": "0xother", "amount": "5"},
        ]
    )
    assert s.count == 3
    assert s.networks == ["base", "solana"]
    assert (s.min_price_usdc, s.max_price_usdc) == (0.01, 0.02)


def test_select_requirement_prefers_network() -> None:
    accepts = requirements_from_body(
        {
            "accepts": [
                {"network": "eip155:8453", "asset": BASE_USDC, "amount": "20000"},
                {"network": "solana", "asset": SOL_USDC, "amount": "10000"},
            ]
        }
    )
    assert select_requirement(accepts, "solana").amount_usdc == 0.01
    assert select_requirement(accepts).amount_usdc == 0.02
    assert select_requirement([]) is None


def test_formatting() -> None:
    assert format_price(0.05) == "$0.05"
    assert format_price(0.005) == "$0.005"
    assert format_price(0.0005) == "$0.0005"
    assert format_network("eip155:8453") == "Base"
    assert format_network("eip155:84532") == "Base Testnet"
    assert format_network("polygon") == "polygon"
