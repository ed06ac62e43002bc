"""
Compliant HTML fetch mechanics shared by discovery and extraction.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

from app.config import ScrapeSettings
from app.scraping.errors import DiscoveryError
from app.scraping.logging_utils import log_event
from app.scraping.rate_limiter import HostRateLimiter
from app.scraping.robots import RobotsPolicyManager

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class RobotsBlockedError(DiscoveryError):
    """Raised when robots.txt excludes a URL for our user agent."""


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    html: str


class PageFetcher:
    """
    Fetches HTML pages honouring robots.txt, per-host throttling and retries.
    """

    def __init__(
        self,
        *,
        settings: ScrapeSettings,
        session: requests.Session | None = None,
        robots_policy: RobotsPolicyManager | None = None,
        rate_limiter: HostRateLimiter | None = None,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._robots_policy = robots_policy or RobotsPolicyManager(
            session=self._session,
            timeout_seconds=settings.timeout_seconds,
            allow_when_unreachable=settings.allow_when_robots_unreachable,
        )
        self._rate_limiter = rate_limiter or HostRateLimiter(
            requests_per_second=settings.rate_limit_per_second,
        )
        self._sleeper = sleeper
        self._headers = {
            "User-Agent": settings.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5",
        }

    def fetch(self, url: str) -> FetchedPage:
        """
        Return the HTML for `url`.

        Raises `RobotsBlockedError` when excluded and `DiscoveryError` for
        any network failure, non-HTML body or exhausted retries.
        """

        user_agent = self._settings.user_agent
        if not self._robots_policy.can_fetch(url=url, user_agent=user_agent):
            raise RobotsBlockedError(f"Blocked by robots.txt url={url}")

        self._rate_limiter.wait(
            url=url,
            crawl_delay_seconds=self._robots_policy.crawl_delay(url=url, user_agent=user_agent),
        )
        response = self._request_with_retry(url)

        content_type = response.headers.get("Content-Type", "text/html").lower()
        if not content_type.startswith(HTML_CONTENT_TYPES):
            raise DiscoveryError(f"Non-HTML content type={content_type} url={url}")

        return FetchedPage(
            url=url,
            final_url=response.url or url,
            html=response.text[: self._settings.max_content_chars],
        )

    def _request_with_retry(self, url: str) -> requests.Response:
        last_error: Exception | None = None

        for attempt in range(self._settings.max_retries + 1):
            try:
                response = self._session.get(
                    url,
                    headers=self._headers,
                    timeout=self._settings.timeout_seconds,
                    allow_redirects=True,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable status={response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except (requests.Timeout, requests.ConnectionError, requests.HTTPError) as exc:
                last_error = exc
                if isinstance(exc, requests.HTTPError):
                    status_code = exc.response.status_code if exc.response is not None else None
                    if status_code not in RETRYABLE_STATUS_CODES:
                        raise DiscoveryError(f"HTTP {status_code} url={url}") from exc
            except requests.RequestException as exc:
                raise DiscoveryError(f"Request failed url={url} error={exc}") from exc

            if attempt >= self._settings.max_retries:
                break

            backoff_seconds = self._settings.backoff_initial_seconds * (
                self._settings.backoff_multiplier**attempt
            )
            log_event(
                logger,
                logging.WARNING,
                "fetch_retry",
                url=url,
                attempt=attempt + 1,
                wait_seconds=round(backoff_seconds, 2),
            )
            self._sleeper(backoff_seconds)

        raise DiscoveryError(f"Failed to fetch {url} after retries: {last_error}")
