"""
app/domain/scrape_job.py

Domain models for scrape jobs and crawled pages.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class JobStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {JobStatus.COMPLETE, JobStatus.FAILED, JobStatus.CANCELLED}
)
ALL_STATUSES: frozenset[str] = frozenset({JobStatus.QUEUED, JobStatus.PROCESSING}) | TERMINAL_STATUSES

# DomainRecord status before its first successful crawl; afterwards "complete".
DOMAIN_PENDING_STATUS = "pending"

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    # processing -> queued only happens when startup recovery demotes a job
    # whose worker died with the previous process.
    JobStatus.PROCESSING: TERMINAL_STATUSES | {JobStatus.QUEUED},
}


class JobPriority:
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# Dispatch order, highest tier first.
PRIORITY_ORDER: tuple[str, ...] = (JobPriority.HIGH, JobPriority.NORMAL, JobPriority.LOW)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid.uuid4().hex


def can_transition(current: str, target: str) -> bool:
    """
    Return whether a job in `current` may be written with status `target`.

    Rewriting the same non-terminal status (progress updates) is allowed;
    terminal statuses accept nothing.
    """

    if current in TERMINAL_STATUSES:
        return False
    return target == current or target in _ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class ScrapeJob:
    """
    One request to crawl and extract a single domain.
    """

    domain: str
    depth: int
    max_pages: int
    priority: str = JobPriority.NORMAL
    extractors: list[str] = field(default_factory=list)
    bypass_cooldown: bool = False
    job_id: str = field(default_factory=new_job_id)
    status: str = JobStatus.QUEUED
    progress: int = 0
    message: str = "Job queued"
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def event_payload(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "domain": self.domain,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
        }


@dataclass(frozen=True)
class Page:
    """
    One discovered crawl unit. Lives only for the duration of a job.
    """

    url: str
    depth: int
    title: str | None = None
    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "depth": self.depth,
            "title": self.title,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Page":
        return cls(
            url=str(data["url"]),
            depth=int(data.get("depth", 0)),
            title=data.get("title"),
            content=data.get("content") or "",
        )


@dataclass(frozen=True)
class SubmitResult:
    job_id: str
    status: str
    estimated_time: str


@dataclass(frozen=True)
class CancelResult:
    success: bool
    message: str


@dataclass(frozen=True)
class DiscoveryOptions:
    """
    Per-job crawl bounds.
    """

    max_pages: int
    bypass_cooldown: bool = False
    cooldown_minutes: int = 60


@dataclass
class CrawlCheckpoint:
    """
    Partial crawl state saved so an interrupted job can resume.
    """

    job_id: str
    domain: str
    frontier: list[tuple[str, int]] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    pages: list[Page] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "frontier": [[url, depth] for url, depth in self.frontier],
            "visited": list(self.visited),
            "pages": [page.to_dict() for page in self.pages],
        }

    @classmethod
    def from_dict(cls, *, job_id: str, domain: str, data: dict[str, Any]) -> "CrawlCheckpoint":
        return cls(
            job_id=job_id,
            domain=domain,
            frontier=[(str(url), int(depth)) for url, depth in data.get("frontier", [])],
            visited=[str(url) for url in data.get("visited", [])],
            pages=[Page.from_dict(item) for item in data.get("pages", [])],
        )


@dataclass(frozen=True)
class CrawlSnapshot:
    """
    Page set from the last finished crawl of a domain, used for cooldown.
    """

    domain: str
    crawled_at: datetime
    pages: list[Page] = field(default_factory=list)
