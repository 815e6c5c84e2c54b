from __future__ import annotations

import email.utils
import os
import random
import time
from datetime import datetime, timezone
from typing import Any

import httpx


def request_with_429_retries(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json: Any = None,
    timeout_s: float | None = None,
) -> httpx.Response:
    """Send a request, retrying on HTTP 429.

    Only for unpaid calls (discovery, reliability checks, 402 probes). A paid
    request is never sent through here: a retry would pay twice.

    Behavior:
    - Retries only on HTTP 429
    - Honors `Retry-After` when present (seconds or HTTP-date)
    - Otherwise uses exponential backoff with jitter

    Tuning via env vars:
    - ZAUTH_BENCH_RETRY_429_MAX_ATTEMPTS (default 5)
    - ZAUTH_BENCH_RETRY_429_BASE_DELAY_S (default 1.0)
    - ZAUTH_BENCH_RETRY_429_MAX_DELAY_S (default 30.0)
    """

    max_attempts = int(os.environ.get("ZAUTH_BENCH_RETRY_429_MAX_ATTEMPTS", "5"))
    base_delay_s = float(os.environ.get("ZAUTH_BENCH_RETRY_429_BASE_DELAY_S", "1.0"))
    max_delay_s = float(os.environ.get("ZAUTH_BENCH_RETRY_429_MAX_DELAY_S", "30.0"))

    attempt = 0
    while True:
        r = client.request(method, url, headers=headers, params=params, json=json, timeout=timeout_s)
        if r.status_code != 429:
            return r

        attempt += 1
        if attempt >= max_attempts:
            return r

        delay = _retry_after_seconds(r.headers.get("retry-after"))
        if delay is None:
            # attempt=1 -> base_delay_s
            delay = min(max_delay_s, base_delay_s * (2 ** (attempt - 1)))
        else:
            delay = min(max_delay_s, max(0.0, delay))

        jitter = random.uniform(0.0, min(1.0, 0.25 * delay))
        time.sleep(delay + jitter)


def _retry_after_seconds(value: str | None) -> float | None:
    if not value:
        return None

    v = value.strip()
    # delta-seconds
    if v.isdigit():
        return float(int(v))

    # HTTP-date
    try:
        dt = email.utils.parsedate_to_datetime(v)
    except (TypeError, ValueError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())
