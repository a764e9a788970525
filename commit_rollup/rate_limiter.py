"""Helpers for coordinating GitHub REST rate limits across concurrent fetches."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Mapping

from .config import RateLimitInfo, UTC

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Async budget tracker fed by the ``X-RateLimit-*`` response headers.

    Every REST call costs one unit of the primary rate limit. Concurrent tasks
    reserve a unit before sending a request; once the last known budget is
    spent they sleep until the advertised reset time.
    """

    def __init__(self, *, minimum_sleep: float = 0.05, maximum_sleep: float | None = None) -> None:
        self._lock = asyncio.Lock()
        self._info: RateLimitInfo | None = None
        self._minimum_sleep = max(minimum_sleep, 0.0)
        self._maximum_sleep = maximum_sleep

    async def acquire(self) -> None:
        """Wait until the budget allows one more request."""

        while True:
            async with self._lock:
                info = self._info
                if info is None:
                    return
                if info.remaining >= 1:
                    info.remaining -= 1
                    return
                remaining = info.remaining
                reset_at = info.reset_at

            delay = (reset_at - datetime.now(tz=UTC)).total_seconds()
            delay = max(delay, self._minimum_sleep)
            if self._maximum_sleep is not None:
                delay = min(delay, self._maximum_sleep)
            LOGGER.warning(
                "GitHub rate limit low (%s remaining); sleeping %.2fs until reset",
                remaining,
                delay,
            )
            await asyncio.sleep(delay)
            async with self._lock:
                if self._info is info:
                    self._info = None

    async def record(self, info: RateLimitInfo) -> None:
        """Update the limiter with the latest rate limit snapshot."""

        async with self._lock:
            self._info = RateLimitInfo(
                limit=info.limit,
                remaining=info.remaining,
                reset_at=info.reset_at,
            )

    async def reset(self) -> None:
        """Clear cached rate limit information after a failed request."""

        async with self._lock:
            self._info = None

    async def remaining(self) -> int | None:
        """Return the last known remaining budget, if any."""

        async with self._lock:
            return self._info.remaining if self._info else None


def rate_limit_from_headers(headers: Mapping[str, str]) -> RateLimitInfo | None:
    """Build a :class:`RateLimitInfo` from REST response headers, if present."""

    remaining = headers.get("X-RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset")
    if remaining is None or reset is None:
        return None
    try:
        return RateLimitInfo(
            limit=int(headers.get("X-RateLimit-Limit", 0)),
            remaining=int(remaining),
            reset_at=datetime.fromtimestamp(int(reset), tz=UTC),
        )
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring malformed rate limit headers (remaining=%r, reset=%r)", remaining, reset)
        return None


__all__ = ["RateLimiter", "rate_limit_from_headers"]
