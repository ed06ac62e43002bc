"""
Breadth-first page discovery for one domain.

Honours a per-domain re-crawl cooldown, hard depth / page bounds and resumes
an interrupted crawl from the checkpoint its job left in the store.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlparse, urlunparse

from bs4 import BeautifulSoup

from app.config import ScrapeSettings
from app.domain.scrape_job import CrawlCheckpoint, CrawlSnapshot, DiscoveryOptions, Page, utc_now
from app.scraping.errors import DiscoveryError, JobCancelled
from app.scraping.extractors.html import absolute_url, page_title, parse_html
from app.scraping.fetcher import PageFetcher, RobotsBlockedError
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import JobStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

DISCOVERY_START_PROGRESS = 10
DISCOVERY_END_PROGRESS = 25

SKIPPED_EXTENSIONS = re.compile(
    r"\.(?:pdf|jpe?g|png|gif|svg|webp|ico|css|js|json|xml|zip|gz|mp3|mp4|mov|avi|woff2?|ttf|eot)$",
    re.IGNORECASE,
)


def normalize_domain(value: str) -> str:
    """
    Reduce user input (`https://Example.com/path`) to a bare host name.
    """

    raw = value.strip().lower()
    if not raw:
        raise ValueError("Domain must not be empty.")
    parsed = urlparse(raw if "://" in raw else f"//{raw}")
    host = (parsed.hostname or "").strip(".")
    if not host or "." not in host:
        raise ValueError(f"Invalid domain '{value}'.")
    return host


def root_url(domain: str) -> str:
    return f"https://{domain}/"


def _site_key(host: str) -> str:
    host = host.lower().split(":")[0]
    return host[4:] if host.startswith("www.") else host


def canonical_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse((parsed.scheme, parsed.netloc.lower(), path, "", parsed.query, ""))


class DiscoveryEngine:
    """
    Crawls a domain breadth-first and returns the fetched pages.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        fetcher: PageFetcher,
        settings: ScrapeSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._settings = settings
        self._clock = clock

    def discover(
        self,
        domain: str,
        depth: int,
        job_id: str,
        options: DiscoveryOptions,
        *,
        progress: ProgressCallback | None = None,
    ) -> list[Page]:
        """
        Return discovered pages in breadth-first order.

        Never raises for fetch failures; an unreachable site yields an empty
        list. A job that left a checkpoint resumes it, even inside the
        cooldown window. Store failures propagate as `PersistenceError`.
        """

        report = progress or (lambda _value, _message: None)

        checkpoint = self._saved_checkpoint(job_id, domain)
        if checkpoint is None:
            cached = self._pages_within_cooldown(domain, options)
            if cached is not None:
                log_event(
                    logger,
                    logging.INFO,
                    "discovery_cooldown_hit",
                    job_id=job_id,
                    domain=domain,
                    pages=len(cached),
                )
                report(DISCOVERY_END_PROGRESS, f"Using {len(cached)} recently crawled pages")
                return cached
            start = root_url(domain)
            checkpoint = CrawlCheckpoint(job_id=job_id, domain=domain, frontier=[(start, 0)], visited=[start])

        try:
            pages, failures = self._crawl(domain, depth, job_id, checkpoint, options, report)
        except JobCancelled:
            # A cancelled job is never resumed.
            self._store.clear_crawl_checkpoint(job_id)
            raise

        self._store.save_crawl_snapshot(CrawlSnapshot(domain=domain, crawled_at=self._clock(), pages=list(pages)))
        self._store.clear_crawl_checkpoint(job_id)

        log_event(
            logger,
            logging.INFO if pages else logging.WARNING,
            "discovery_completed",
            job_id=job_id,
            domain=domain,
            pages=len(pages),
            failed_fetches=failures,
            resumed=bool(checkpoint.pages),
        )
        report(DISCOVERY_END_PROGRESS, f"Discovered {len(pages)} pages")
        return pages

    def _crawl(
        self,
        domain: str,
        depth: int,
        job_id: str,
        checkpoint: CrawlCheckpoint,
        options: DiscoveryOptions,
        report: ProgressCallback,
    ) -> tuple[list[Page], int]:
        frontier: deque[tuple[str, int]] = deque(checkpoint.frontier)
        visited: set[str] = set(checkpoint.visited)
        pages: list[Page] = list(checkpoint.pages)
        failures = 0
        since_checkpoint = 0
        max_pages = max(1, options.max_pages)

        while frontier and len(pages) < max_pages:
            report(
                DISCOVERY_START_PROGRESS
                + (DISCOVERY_END_PROGRESS - DISCOVERY_START_PROGRESS) * len(pages) // max_pages,
                f"Discovering pages ({len(pages)} found)",
            )
            url, level = frontier.popleft()
            try:
                fetched = self._fetcher.fetch(url)
            except RobotsBlockedError as exc:
                log_event(logger, logging.INFO, "page_blocked_by_robots", job_id=job_id, url=url, error=str(exc))
                continue
            except DiscoveryError as exc:
                failures += 1
                log_event(logger, logging.WARNING, "page_fetch_failed", job_id=job_id, url=url, error=str(exc))
                continue

            soup = parse_html(fetched.html)
            pages.append(Page(url=url, depth=level, title=page_title(soup), content=fetched.html))

            if level < depth:
                for link in self._same_site_links(soup, fetched.final_url, domain):
                    if link not in visited:
                        visited.add(link)
                        frontier.append((link, level + 1))

            since_checkpoint += 1
            if since_checkpoint >= self._settings.checkpoint_interval and frontier:
                self._store.save_crawl_checkpoint(
                    CrawlCheckpoint(
                        job_id=job_id,
                        domain=domain,
                        frontier=list(frontier),
                        visited=sorted(visited),
                        pages=list(pages),
                    )
                )
                since_checkpoint = 0

        return pages, failures

    def _pages_within_cooldown(self, domain: str, options: DiscoveryOptions) -> list[Page] | None:
        if options.bypass_cooldown or options.cooldown_minutes <= 0:
            return None
        snapshot = self._store.get_crawl_snapshot(domain)
        if snapshot is None:
            return None
        if self._clock() - snapshot.crawled_at >= timedelta(minutes=options.cooldown_minutes):
            return None
        return list(snapshot.pages)

    def _saved_checkpoint(self, job_id: str, domain: str) -> CrawlCheckpoint | None:
        """
        Partial state left by an interrupted attempt of `job_id`, if any.
        """

        if not self._store.can_resume_job(job_id):
            return None
        saved = self._store.load_crawl_checkpoint(job_id)
        if saved is not None:
            log_event(
                logger,
                logging.INFO,
                "discovery_resumed",
                job_id=job_id,
                domain=domain,
                pages=len(saved.pages),
                frontier=len(saved.frontier),
            )
        return saved

    @staticmethod
    def _same_site_links(soup: BeautifulSoup, base_url: str, domain: str) -> list[str]:
        """
        Same-site HTML links in document order, without duplicates.
        """

        site = _site_key(domain)
        links: list[str] = []
        seen: set[str] = set()
        for anchor in soup.find_all("a", href=True):
            url = absolute_url(base_url, anchor.get("href"))
            if not url:
                continue
            parsed = urlparse(url)
            if _site_key(parsed.netloc) != site or SKIPPED_EXTENSIONS.search(parsed.path):
                continue
            url = canonical_url(url)
            if url not in seen:
                seen.add(url)
                links.append(url)
        return links
