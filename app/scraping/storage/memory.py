"""
In-process job store.

Keeps the same contract as the SQLAlchemy store; used by tests and by local
runs that have no database configured.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any

from app.domain.scrape_job import (
    DOMAIN_PENDING_STATUS,
    CrawlCheckpoint,
    CrawlSnapshot,
    JobStatus,
    ScrapeJob,
    can_transition,
    utc_now,
)
from app.scraping.errors import PersistenceError
from app.scraping.storage.base import JobStore


class InMemoryJobStore(JobStore):
    def __init__(self) -> None:
        self._jobs: dict[str, ScrapeJob] = {}
        self._checkpoints: dict[str, CrawlCheckpoint] = {}
        self._snapshots: dict[str, CrawlSnapshot] = {}
        self._domains: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_job(self, job: ScrapeJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise PersistenceError(f"Duplicate job id: {job.job_id}")
            self._jobs[job.job_id] = replace(job, extractors=list(job.extractors))
            if job.domain not in self._domains:
                now = utc_now()
                self._domains[job.domain] = {
                    "domain": job.domain,
                    "status": DOMAIN_PENDING_STATUS,
                    "data": None,
                    "job_id": job.job_id,
                    "created_at": now,
                    "updated_at": now,
                }

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
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not can_transition(job.status, status):
                return False
            job.status = status
            if started_at is not None:
                job.started_at = started_at
            if completed_at is not None:
                job.completed_at = completed_at
            if progress is not None:
                job.progress = progress
            if message is not None:
                job.message = message
            if error is not None:
                job.error = error
            return True

    def get_job_status(self, job_id: str) -> ScrapeJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job, extractors=list(job.extractors)) if job else None

    def list_jobs(
        self,
        *,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScrapeJob]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if status is None or job.status == status]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return [replace(job) for job in jobs[offset : offset + max(1, limit)]]

    def get_pending_jobs(self) -> list[ScrapeJob]:
        with self._lock:
            jobs = [
                replace(job)
                for job in self._jobs.values()
                if job.status in {JobStatus.QUEUED, JobStatus.PROCESSING}
            ]
        jobs.sort(key=lambda job: job.created_at)
        return jobs

    def can_resume_job(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._checkpoints

    def load_crawl_checkpoint(self, job_id: str) -> CrawlCheckpoint | None:
        with self._lock:
            checkpoint = self._checkpoints.get(job_id)
            return copy.deepcopy(checkpoint)

    def save_crawl_checkpoint(self, checkpoint: CrawlCheckpoint) -> None:
        with self._lock:
            self._checkpoints[checkpoint.job_id] = copy.deepcopy(checkpoint)

    def clear_crawl_checkpoint(self, job_id: str) -> None:
        with self._lock:
            self._checkpoints.pop(job_id, None)

    def get_crawl_snapshot(self, domain: str) -> CrawlSnapshot | None:
        with self._lock:
            return self._snapshots.get(domain)

    def save_crawl_snapshot(self, snapshot: CrawlSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.domain] = replace(snapshot, pages=list(snapshot.pages))

    def save_results(self, job_id: str, result: dict[str, Any]) -> None:
        domain = result.get("domain")
        if not domain:
            raise PersistenceError(f"Result for job {job_id} has no domain")
        now = utc_now()
        with self._lock:
            record = self._domains.get(domain)
            if record is None:
                record = {"domain": domain, "created_at": now}
                self._domains[domain] = record
            record.update(
                status=JobStatus.COMPLETE,
                data=copy.deepcopy(result),
                job_id=job_id,
                updated_at=now,
            )

    def get_domain_result(self, domain: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._domains.get(domain)
            if record is None or record.get("data") is None:
                return None
            return copy.deepcopy(record["data"])

    def list_stale_domains(self, *, older_than: datetime, limit: int = 100) -> list[str]:
        with self._lock:
            stale = [
                (record["updated_at"], domain)
                for domain, record in self._domains.items()
                if record["status"] == JobStatus.COMPLETE and record["updated_at"] < older_than
            ]
        stale.sort()
        return [domain for _, domain in stale[:limit]]
