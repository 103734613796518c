"""Backoff for signing-key downloads.

A key fetch is retried when the server is unreachable or answers 5xx. Any
other response, including 4xx, goes straight back to the caller.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

log = logging.getLogger(__name__)

TRANSIENT_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry number ``attempt + 1``: doubles each time up to ``cap``."""
    return min(base * 2 ** attempt, cap)


def retry_request(
    func: Callable[..., httpx.Response],
    *args,
    attempts: int = 4,
    backoff_base: float = 1.0,
    backoff_max: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> httpx.Response:
    """Call ``func(*args, **kwargs)`` up to ``attempts`` times.

    The last response is returned even when it is a 5xx; the last transient
    error is re-raised.
    """
    for attempt in range(attempts):
        final = attempt == attempts - 1
        try:
            response = func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            if final:
                raise
            reason = exc.__class__.__name__
        else:
            if response.status_code < 500 or final:
                return response
            reason = f"HTTP {response.status_code}"
        delay = backoff_delay(attempt, backoff_base, backoff_max)
        log.debug("Retrying after %s (attempt %d/%d, waiting %.1fs)", reason, attempt + 1, attempts, delay)
        sleep(delay)
    raise ValueError("attempts must be at least 1")
