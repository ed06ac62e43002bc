"""
SQLAlchemy-backed job store.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, TextClause, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.scrape_job import (
    DOMAIN_PENDING_STATUS,
    CrawlCheckpoint,
    CrawlSnapshot,
    JobStatus,
    Page,
    ScrapeJob,
    can_transition,
)
from app.scraping.errors import PersistenceError
from app.scraping.storage.base import JobStore
from db.base import JSONType
from db.models.scrape_job import ScrapeJobRecord
from db.repositories.scrape_job_repository import ScrapeJobRepository

logger = logging.getLogger(__name__)

_UPSERT_DOMAIN_SQL = text(
    """
    INSERT INTO domains (id, domain, status, data, last_job_id, created_at, updated_at)
    VALUES (:id, :domain, :status, :data, :last_job_id, :now, :now)
    ON CONFLICT (domain) DO UPDATE SET
        status = excluded.status,
        data = excluded.data,
        last_job_id = excluded.last_job_id,
        updated_at = excluded.updated_at
    """
).bindparams(
    bindparam("data", type_=JSONType),
    bindparam("now", type_=DateTime(timezone=True)),
)

# First job for a domain; `data` stays NULL until a crawl succeeds.
_INSERT_PENDING_DOMAIN_SQL = text(
    """
    INSERT INTO domains (id, domain, status, last_job_id, created_at, updated_at)
    VALUES (:id, :domain, :status, :last_job_id, :now, :now)
    ON CONFLICT (domain) DO NOTHING
    """
).bindparams(bindparam("now", type_=DateTime(timezone=True)))


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_domain(record: ScrapeJobRecord) -> ScrapeJob:
    return ScrapeJob(
        job_id=record.id,
        domain=record.domain,
        depth=record.depth,
        max_pages=record.max_pages,
        priority=record.priority,
        extractors=list(record.extractors or []),
        bypass_cooldown=record.bypass_cooldown,
        status=record.status,
        progress=record.progress,
        message=record.message or "",
        created_at=_as_utc(record.created_at),
        started_at=_as_utc(record.started_at),
        completed_at=_as_utc(record.completed_at),
        error=record.error_message,
    )


class SQLAlchemyJobStore(JobStore):
    """
    Persist scrape jobs through the repository, one short session per call.
    """

    def __init__(self, *, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Job store operation failed: %s", exc)
            raise PersistenceError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def execute(
        self,
        statement: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run one parametrized statement and return any rows as dicts.
        """

        clause = text(statement) if isinstance(statement, str) else statement
        with self._session_scope() as session:
            result = session.execute(clause, dict(params or {}))
            if not result.returns_rows:
                return []
            return [dict(row._mapping) for row in result]

    def save_job(self, job: ScrapeJob) -> None:
        with self._session_scope() as session:
            ScrapeJobRepository(session).create_job(
                ScrapeJobRecord(
                    id=job.job_id,
                    domain=job.domain,
                    depth=job.depth,
                    max_pages=job.max_pages,
                    priority=job.priority,
                    extractors=list(job.extractors),
                    bypass_cooldown=job.bypass_cooldown,
                    status=job.status,
                    progress=job.progress,
                    message=job.message,
                    created_at=job.created_at,
                )
            )
            session.execute(
                _INSERT_PENDING_DOMAIN_SQL,
                {
                    "id": str(uuid.uuid4()),
                    "domain": job.domain,
                    "status": DOMAIN_PENDING_STATUS,
                    "last_job_id": job.job_id,
                    "now": datetime.now(timezone.utc),
                },
            )

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
        with self._session_scope() as session:
            updated = ScrapeJobRepository(session).update_status(
                job_id=job_id,
                status=status,
                started_at=started_at,
                completed_at=completed_at,
                progress=progress,
                message=message,
                error_message=error,
                can_move=can_transition,
            )
            return updated is not None

    def get_job_status(self, job_id: str) -> ScrapeJob | None:
        with self._session_scope() as session:
            record = ScrapeJobRepository(session).get_job(job_id)
            return _to_domain(record) if record is not None else None

    def list_jobs(
        self,
        *,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScrapeJob]:
        with self._session_scope() as session:
            records = ScrapeJobRepository(session).list_jobs(status=status, limit=limit, offset=offset)
            return [_to_domain(record) for record in records]

    def get_pending_jobs(self) -> list[ScrapeJob]:
        with self._session_scope() as session:
            return [_to_domain(record) for record in ScrapeJobRepository(session).list_pending_jobs()]

    def can_resume_job(self, job_id: str) -> bool:
        with self._session_scope() as session:
            return ScrapeJobRepository(session).get_checkpoint(job_id) is not None

    def load_crawl_checkpoint(self, job_id: str) -> CrawlCheckpoint | None:
        with self._session_scope() as session:
            record = ScrapeJobRepository(session).get_checkpoint(job_id)
            if record is None:
                return None
            return CrawlCheckpoint.from_dict(job_id=record.job_id, domain=record.domain, data=record.state)

    def save_crawl_checkpoint(self, checkpoint: CrawlCheckpoint) -> None:
        with self._session_scope() as session:
            ScrapeJobRepository(session).upsert_checkpoint(
                job_id=checkpoint.job_id,
                domain=checkpoint.domain,
                state=checkpoint.to_dict(),
            )

    def clear_crawl_checkpoint(self, job_id: str) -> None:
        with self._session_scope() as session:
            ScrapeJobRepository(session).delete_checkpoint(job_id)

    def get_crawl_snapshot(self, domain: str) -> CrawlSnapshot | None:
        with self._session_scope() as session:
            record = ScrapeJobRepository(session).get_snapshot(domain)
            if record is None:
                return None
            return CrawlSnapshot(
                domain=record.domain,
                crawled_at=_as_utc(record.crawled_at),
                pages=[Page.from_dict(item) for item in record.pages or []],
            )

    def save_crawl_snapshot(self, snapshot: CrawlSnapshot) -> None:
        with self._session_scope() as session:
            ScrapeJobRepository(session).upsert_snapshot(
                domain=snapshot.domain,
                crawled_at=snapshot.crawled_at,
                pages=[page.to_dict() for page in snapshot.pages],
            )

    def save_results(self, job_id: str, result: dict[str, Any]) -> None:
        domain = result.get("domain")
        if not domain:
            raise PersistenceError(f"Result for job {job_id} has no domain")
        self.execute(
            _UPSERT_DOMAIN_SQL,
            {
                "id": str(uuid.uuid4()),
                "domain": domain,
                "status": JobStatus.COMPLETE,
                "data": result,
                "last_job_id": job_id,
                "now": datetime.now(timezone.utc),
            },
        )

    def get_domain_result(self, domain: str) -> dict[str, Any] | None:
        with self._session_scope() as session:
            record = ScrapeJobRepository(session).get_domain(domain)
            return dict(record.data) if record is not None and record.data is not None else None

    def list_stale_domains(self, *, older_than: datetime, limit: int = 100) -> list[str]:
        with self._session_scope() as session:
            return ScrapeJobRepository(session).list_stale_domains(older_than=older_than, limit=limit)
