"""
tests/conftest.py

Shared fakes and fixtures. Nothing here touches the network or PostgreSQL.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from app.config import ScrapeSettings
from app.domain.scrape_job import DiscoveryOptions, Page
from app.scraping.errors import DiscoveryError
from app.scraping.fetcher import FetchedPage, RobotsBlockedError
from app.scraping.storage.memory import InMemoryJobStore
from app.scraping.storage.sqlalchemy_storage import SQLAlchemyJobStore
from db.base import Base
from db.session import build_session_factory


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher:
    """
    Serves canned HTML by URL; unknown URLs fail like a 404.
    """

    def __init__(self, pages: dict[str, str], *, blocked: set[str] | None = None) -> None:
        self.pages = pages
        self.blocked = blocked or set()
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        if url in self.blocked:
            raise RobotsBlockedError(f"Blocked by robots.txt url={url}")
        if url not in self.pages:
            raise DiscoveryError(f"HTTP 404 url={url}")
        return FetchedPage(url=url, final_url=url, html=self.pages[url])


class StubDiscovery:
    """
    Returns fixed pages; `on_discover(job_id, progress)` runs mid-crawl.
    """

    def __init__(
        self,
        pages: list[Page] | None = None,
        *,
        error: Exception | None = None,
        on_discover: Callable[[str, Callable[[int, str], None]], None] | None = None,
    ) -> None:
        self.pages = pages or []
        self.error = error
        self.on_discover = on_discover
        self.calls: list[tuple[str, int, str, DiscoveryOptions]] = []

    def discover(
        self,
        domain: str,
        depth: int,
        job_id: str,
        options: DiscoveryOptions,
        *,
        progress: Callable[[int, str], None] | None = None,
    ) -> list[Page]:
        self.calls.append((domain, depth, job_id, options))
        report = progress or (lambda _value, _message: None)
        report(15, "Discovering pages")
        if self.on_discover is not None:
            self.on_discover(job_id, report)
        if self.error is not None:
            raise self.error
        report(25, f"Discovered {len(self.pages)} pages")
        return list(self.pages)


class ManualExecutor:
    """
    Collects worker tasks; tests run them explicitly.
    """

    def __init__(self) -> None:
        self.tasks: list[tuple[Callable[..., None], tuple[Any, ...]]] = []

    def submit(self, task: Callable[..., None], *args: Any) -> None:
        self.tasks.append((task, args))

    def run_next(self) -> None:
        task, args = self.tasks.pop(0)
        task(*args)

    def run_all(self) -> None:
        while self.tasks:
            self.run_next()


class RecordingPublisher:
    def __init__(self, hook: Callable[[str, str, dict[str, Any]], None] | None = None) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []
        self.hook = hook

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((channel, event, dict(payload)))
        if self.hook is not None:
            self.hook(channel, event, payload)

    def for_job(self, job_id: str) -> list[dict[str, Any]]:
        return [payload for channel, _, payload in self.events if channel == f"job-{job_id}"]


# ---------------------------------------------------------------------------
# HTML builders
# ---------------------------------------------------------------------------


def html_page(title: str, body: str = "", head: str = "") -> str:
    return f"<html lang='en'><head><title>{title}</title>{head}</head><body>{body}</body></html>"


def links(*hrefs: str) -> str:
    return "".join(f"<a href='{href}'>{href.strip('/') or 'home'}</a>" for href in hrefs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> ScrapeSettings:
    return ScrapeSettings(
        max_concurrent_jobs=2,
        completed_cache_size=10,
        default_depth=1,
        default_max_pages=10,
        cooldown_minutes=60,
        checkpoint_interval=2,
        store_backend="memory",
    )


@pytest.fixture()
def memory_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture()
def sql_store() -> SQLAlchemyJobStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield SQLAlchemyJobStore(session_factory=build_session_factory(engine))
    finally:
        engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def job_store(request: pytest.FixtureRequest):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture()
def executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
