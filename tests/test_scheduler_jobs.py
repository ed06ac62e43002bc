"""
tests/test_scheduler_jobs.py

Stale domain refresh: resubmission as low-priority jobs and the cron wiring.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from app.domain.scrape_job import JobPriority, JobStatus, utc_now
from app.scheduler.jobs import build_scheduler, run_stale_domain_refresh
from app.scraping.errors import PersistenceError
from app.scraping.orchestrator import ExtractionOrchestrator
from app.scraping.storage.memory import InMemoryJobStore
from app.services.job_manager import JobManager
from conftest import StubDiscovery


class StaleDomainStore(InMemoryJobStore):
    def __init__(self, domains: list[str], *, fail: bool = False) -> None:
        super().__init__()
        self.domains = domains
        self.fail = fail
        self.cutoffs: list[datetime] = []

    def list_stale_domains(self, *, older_than: datetime, limit: int = 100) -> list[str]:
        self.cutoffs.append(older_than)
        if self.fail:
            raise PersistenceError("database unavailable")
        return list(self.domains[:limit])


def _manager(store, settings, executor) -> JobManager:
    return JobManager(
        store=store,
        discovery=StubDiscovery(),
        orchestrator=ExtractionOrchestrator(),
        settings=settings,
        executor=executor,
    )


# ---------------------------------------------------------------------------
# run_stale_domain_refresh
# ---------------------------------------------------------------------------


def test_stale_domains_are_resubmitted_as_low_priority(settings, executor) -> None:
    store = StaleDomainStore(["shop.test", "Blog.Test"])
    manager = _manager(store, replace(settings, refresh_after_days=7), executor)

    submitted = run_stale_domain_refresh(manager, store, replace(settings, refresh_after_days=7))

    assert submitted == 2
    queued = manager.queued_job_ids()[JobPriority.LOW]
    jobs = [store.get_job_status(job_id) for job_id in queued]
    assert [job.domain for job in jobs] == ["shop.test", "blog.test"]
    assert all(job.bypass_cooldown for job in jobs)
    assert all(job.status == JobStatus.QUEUED for job in jobs)
    age = utc_now() - store.cutoffs[0]
    assert 6.9 < age.total_seconds() / 86400 < 7.1


def test_invalid_domain_is_skipped(settings, executor) -> None:
    store = StaleDomainStore(["localhost", "shop.test"])
    manager = _manager(store, settings, executor)

    assert run_stale_domain_refresh(manager, store, settings) == 1


def test_store_failure_submits_nothing(settings, executor) -> None:
    store = StaleDomainStore(["shop.test"], fail=True)
    manager = _manager(store, settings, executor)

    assert run_stale_domain_refresh(manager, store, settings) == 0
    assert manager.queued_job_ids()[JobPriority.LOW] == []


def test_nothing_stale(settings, executor) -> None:
    store = StaleDomainStore([])

    assert run_stale_domain_refresh(_manager(store, settings, executor), store, settings) == 0


def test_domains_with_a_pending_job_are_not_resubmitted(settings, executor) -> None:
    store = StaleDomainStore(["shop.test", "blog.test"])
    manager = _manager(store, settings, executor)

    assert run_stale_domain_refresh(manager, store, settings) == 2
    assert run_stale_domain_refresh(manager, store, settings) == 0

    first = manager.queued_job_ids()[JobPriority.LOW][0]
    manager.cancel(first)

    assert run_stale_domain_refresh(manager, store, settings) == 1
    assert len(manager.queued_job_ids()[JobPriority.LOW]) == 2


# ---------------------------------------------------------------------------
# build_scheduler
# ---------------------------------------------------------------------------


def test_scheduler_registers_daily_refresh(settings, executor) -> None:
    store = StaleDomainStore([])

    scheduler = build_scheduler(_manager(store, settings, executor), store, settings)

    job = scheduler.get_job("stale_domain_refresh")
    assert job is not None
    assert job.name == "Stale domain refresh"
    assert "hour='2'" in str(job.trigger)
    assert scheduler.running is False
