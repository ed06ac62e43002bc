"""
robots.txt rules consulted before every crawl fetch.

Rules are cached per origin and refreshed after `ttl_seconds`, so a
long-running service notices when a site changes its robots.txt.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests

from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

ALLOW_ALL = ("User-agent: *", "Allow: /")
DISALLOW_ALL = ("User-agent: *", "Disallow: /")


@dataclass(frozen=True)
class _CachedRules:
    parser: RobotFileParser
    expires_at: float


class RobotsPolicyManager:
    """
    Thread-safe per-origin robots.txt cache.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        timeout_seconds: float = 10.0,
        allow_when_unreachable: bool = True,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._allow_when_unreachable = allow_when_unreachable
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._rules: dict[str, _CachedRules] = {}
        self._lock = threading.Lock()

    def can_fetch(self, *, url: str, user_agent: str) -> bool:
        return self._rules_for(url).can_fetch(user_agent, url)

    def crawl_delay(self, *, url: str, user_agent: str) -> float | None:
        """
        Crawl-delay for `user_agent`, else the wildcard group's, else None.
        """

        parser = self._rules_for(url)
        for agent in (user_agent, "*"):
            delay = parser.crawl_delay(agent)
            if delay is not None:
                return float(delay)
        return None

    def _rules_for(self, url: str) -> RobotFileParser:
        origin = _origin(url)
        now = self._clock()
        with self._lock:
            cached = self._rules.get(origin)
        if cached is not None and cached.expires_at > now:
            return cached.parser

        # Two workers may both load an expired origin; the last write wins.
        parser = self._load(origin)
        with self._lock:
            self._rules[origin] = _CachedRules(parser=parser, expires_at=now + self._ttl_seconds)
        return parser

    def _load(self, origin: str) -> RobotFileParser:
        robots_url = f"{origin}/robots.txt"
        parser = RobotFileParser(robots_url)
        try:
            response = self._session.get(robots_url, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            return self._fallback(parser, origin, reason=str(exc))

        if response.status_code in (404, 410):
            parser.parse([])
        elif response.ok:
            parser.parse(response.text.splitlines())
            log_event(logger, logging.DEBUG, "robots_loaded", origin=origin)
        else:
            return self._fallback(parser, origin, reason=f"HTTP {response.status_code}")
        return parser

    def _fallback(self, parser: RobotFileParser, origin: str, *, reason: str) -> RobotFileParser:
        parser.parse(ALLOW_ALL if self._allow_when_unreachable else DISALLOW_ALL)
        log_event(
            logger,
            logging.WARNING,
            "robots_unavailable",
            origin=origin,
            reason=reason,
            fallback_allow=self._allow_when_unreachable,
        )
        return parser


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme or 'https'}://{parsed.netloc.lower()}"
