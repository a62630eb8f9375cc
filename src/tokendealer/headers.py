"""Helpers turning rate-limit response headers into exhaust() arguments.

    def work(token, exhaust):
        resp = session.get(url, headers={"Authorization": f"token {token}"})
        if is_exhausted(resp.headers) or resp.status_code == 429:
            exhaust(reset_from_headers(resp.headers), resp.status_code == 429)
        resp.raise_for_status()
        return resp.json()
"""

import email.utils as eut
import math
import time
from collections.abc import Mapping
from typing import Union


def _header(headers: Mapping[str, str], name: str) -> Union[str, None]:
    name = name.lower()
    for k, v in headers.items():
        if k.lower() == name:
            return v
    return None


def parse_retry_after(headers: Mapping[str, str], now: float) -> float:
    ra = _header(headers, "retry-after")
    if ra is None:
        return 0.0
    try:
        delay = float(ra)
    except ValueError:
        # Try HTTP-date per RFC7231
        try:
            ts = eut.parsedate_to_datetime(ra)
        except (TypeError, ValueError):
            ts = None
        if ts is not None:
            # Round up to the next whole second to avoid truncation
            # making short delays appear too short
            return max(0.0, float(math.ceil(ts.timestamp() - now)))
        return 1.0
    # inf/nan would block a waiting dealer forever
    if not math.isfinite(delay):
        return 1.0
    return max(0.0, delay)


def reset_from_headers(
    headers: Mapping[str, str], now: Union[float, None] = None
) -> Union[float, None]:
    """Absolute reset timestamp from Retry-After or X-RateLimit-Reset, else None."""
    now = time.time() if now is None else now
    if _header(headers, "retry-after") is not None:
        return now + parse_retry_after(headers, now)
    reset = _header(headers, "x-ratelimit-reset")
    if reset is None:
        return None
    try:
        value = float(reset)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def is_exhausted(headers: Mapping[str, str]) -> bool:
    remaining = _header(headers, "x-ratelimit-remaining")
    if remaining is None:
        return False
    try:
        return int(remaining) <= 0
    except ValueError:
        return False
