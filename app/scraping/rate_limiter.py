"""
Per-host request throttling shared by every crawl worker.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlparse


class HostRateLimiter:
    """
    Enforces a minimum interval between requests to the same host.

    One instance is shared across worker threads so that two jobs crawling
    the same site never exceed its combined budget.
    """

    def __init__(
        self,
        *,
        requests_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._requests_per_second = max(0.1, requests_per_second)
        self._clock = clock
        self._sleeper = sleeper
        self._next_slot_by_host: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, *, url: str, crawl_delay_seconds: float | None = None) -> float:
        """
        Block until `url` may be requested. Returns the seconds slept.
        """

        host = urlparse(url).netloc.lower()
        if not host:
            return 0.0

        interval = 1.0 / self._requests_per_second
        if crawl_delay_seconds is not None:
            interval = max(interval, max(0.0, crawl_delay_seconds))

        # Reserve the slot under the lock, sleep outside it so other hosts
        # are not held up.
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot_by_host.get(host, 0.0))
            self._next_slot_by_host[host] = slot + interval
        delay = slot - now
        if delay > 0:
            self._sleeper(delay)
            return delay
        return 0.0
