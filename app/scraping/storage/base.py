"""
Job store interface: the durable record behind the job manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.domain.scrape_job import CrawlCheckpoint, CrawlSnapshot, ScrapeJob
from app.scraping.errors import PersistenceError


class JobStore(ABC):
    """
    Storage abstraction for scrape jobs, crawl state and per-domain results.

    Implementations raise `PersistenceError` for any backend failure.
    """

    @abstractmethod
    def save_job(self, job: ScrapeJob) -> None:
        """
        Insert a newly submitted job.
        """

    @abstractmethod
    def update_job_status(
        self,
        job_id: str,
        status: str,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        progress: int | None = None,
        message: str | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Update the stored lifecycle fields of one job.

        Returns False when the job is unknown or already terminal; terminal
        rows are never modified.
        """

    @abstractmethod
    def get_job_status(self, job_id: str) -> ScrapeJob | None:
        """
        Return the stored job, or None.
        """

    @abstractmethod
    def list_jobs(
        self,
        *,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScrapeJob]:
        """
        Return jobs newest first.
        """

    @abstractmethod
    def get_pending_jobs(self) -> list[ScrapeJob]:
        """
        Return every non-terminal job, oldest first.
        """

    @abstractmethod
    def can_resume_job(self, job_id: str) -> bool:
        """
        Return whether an earlier attempt of this job left crawl state behind.
        """

    @abstractmethod
    def load_crawl_checkpoint(self, job_id: str) -> CrawlCheckpoint | None:
        ...

    @abstractmethod
    def save_crawl_checkpoint(self, checkpoint: CrawlCheckpoint) -> None:
        ...

    @abstractmethod
    def clear_crawl_checkpoint(self, job_id: str) -> None:
        ...

    @abstractmethod
    def get_crawl_snapshot(self, domain: str) -> CrawlSnapshot | None:
        """
        Return the page set of the last finished crawl of `domain`.
        """

    @abstractmethod
    def save_crawl_snapshot(self, snapshot: CrawlSnapshot) -> None:
        ...

    @abstractmethod
    def save_results(self, job_id: str, result: dict[str, Any]) -> None:
        """
        Upsert the domain record for `result["domain"]` with the aggregate.
        """

    @abstractmethod
    def get_domain_result(self, domain: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def list_stale_domains(self, *, older_than: datetime, limit: int = 100) -> list[str]:
        """
        Return domains whose stored result was last updated before `older_than`.
        """

    def execute(self, statement: Any, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """
        Run one parametrized statement against the backing database.

        Stores without a SQL engine cannot honour this and raise
        `PersistenceError`.
        """

        raise PersistenceError(f"{type(self).__name__} does not run SQL statements")
