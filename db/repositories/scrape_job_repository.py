"""
Repository for scrape job lifecycle persistence, crawl state and domain results.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.crawl_state import CrawlCheckpointRecord, CrawlSnapshotRecord
from db.models.domain_record import DomainRecord
from db.models.scrape_job import ScrapeJobRecord

_TERMINAL_STATUSES = ("complete", "failed", "cancelled")
_PENDING_STATUSES = ("queued", "processing")


class ScrapeJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # -- jobs ---------------------------------------------------------------

    def create_job(self, record: ScrapeJobRecord) -> ScrapeJobRecord:
        self._session.add(record)
        self._session.flush()
        return record

    def get_job(self, job_id: str) -> ScrapeJobRecord | None:
        return self._session.get(ScrapeJobRecord, job_id)

    def list_jobs(
        self,
        *,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScrapeJobRecord]:
        stmt: Select[tuple[ScrapeJobRecord]] = select(ScrapeJobRecord)
        if status:
            stmt = stmt.where(ScrapeJobRecord.status == status)

        stmt = (
            stmt.order_by(ScrapeJobRecord.created_at.desc())
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_pending_jobs(self) -> list[ScrapeJobRecord]:
        stmt = (
            select(ScrapeJobRecord)
            .where(ScrapeJobRecord.status.in_(_PENDING_STATUSES))
            .order_by(ScrapeJobRecord.created_at.asc())
        )
        return list(self._session.scalars(stmt).all())

    def update_status(
        self,
        *,
        job_id: str,
        status: str,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        progress: int | None = None,
        message: str | None = None,
        error_message: str | None = None,
        can_move: Callable[[str, str], bool] | None = None,
    ) -> ScrapeJobRecord | None:
        """
        Apply a status write. `can_move(current, target)` vetoes illegal
        transitions; without it only terminal records are protected.
        """
        job = self.get_job(job_id)
        if job is None:
            return None
        if can_move is not None and not can_move(job.status, status):
            return None
        if can_move is None and job.status in _TERMINAL_STATUSES:
            return None
        job.status = status
        if started_at is not None:
            job.started_at = started_at
        if completed_at is not None:
            job.completed_at = completed_at
        if progress is not None:
            job.progress = progress
        if message is not None:
            job.message = message
        if error_message is not None:
            job.error_message = error_message
        return job

    # -- crawl state --------------------------------------------------------

    def get_checkpoint(self, job_id: str) -> CrawlCheckpointRecord | None:
        return self._session.get(CrawlCheckpointRecord, job_id)

    def upsert_checkpoint(
        self,
        *,
        job_id: str,
        domain: str,
        state: dict[str, Any],
    ) -> CrawlCheckpointRecord:
        record = self.get_checkpoint(job_id)
        if record is None:
            record = CrawlCheckpointRecord(job_id=job_id, domain=domain, state=state)
            self._session.add(record)
        else:
            record.state = state
        return record

    def delete_checkpoint(self, job_id: str) -> None:
        record = self.get_checkpoint(job_id)
        if record is not None:
            self._session.delete(record)

    def get_snapshot(self, domain: str) -> CrawlSnapshotRecord | None:
        return self._session.get(CrawlSnapshotRecord, domain)

    def upsert_snapshot(
        self,
        *,
        domain: str,
        crawled_at: datetime,
        pages: list[dict[str, Any]],
    ) -> CrawlSnapshotRecord:
        record = self.get_snapshot(domain)
        if record is None:
            record = CrawlSnapshotRecord(domain=domain, crawled_at=crawled_at, pages=pages)
            self._session.add(record)
        else:
            record.crawled_at = crawled_at
            record.pages = pages
        return record

    # -- domains ------------------------------------------------------------

    def get_domain(self, domain: str) -> DomainRecord | None:
        stmt = select(DomainRecord).where(DomainRecord.domain == domain)
        return self._session.scalars(stmt).first()

    def list_stale_domains(self, *, older_than: datetime, limit: int = 100) -> list[str]:
        stmt = (
            select(DomainRecord.domain)
            .where(DomainRecord.status == "complete", DomainRecord.updated_at < older_than)
            .order_by(DomainRecord.updated_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())
