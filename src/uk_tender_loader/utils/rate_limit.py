from __future__ import annotations

import time
from urllib.parse import urlparse

_NEXT_ALLOWED_AT: dict[str, float] = {}


def _host_key(url: str) -> str:
    return urlparse(url).netloc or url


def wait_for_slot(url: str, rpm: int) -> float:
    """Sleep until the host behind ``url`` may receive another request.

    Returns the number of seconds slept. ``rpm`` of zero or less disables pacing.
    """
    if not rpm or rpm <= 0:
        return 0.0
    key = _host_key(url)
    interval = 60.0 / float(rpm)
    now = time.monotonic()
    next_allowed = _NEXT_ALLOWED_AT.get(key, 0.0)
    sleep_s = max(0.0, next_allowed - now)
    _NEXT_ALLOWED_AT[key] = max(now, next_allowed) + interval
    if sleep_s > 0:
        time.sleep(sleep_s)
    return sleep_s


def reset_rate_limits() -> None:
    _NEXT_ALLOWED_AT.clear()
