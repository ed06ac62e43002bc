"""
app/scheduler/jobs.py

APScheduler-based periodic re-crawl of stale domains.

Schedule (all times UTC)
--------------------------
  stale_domain_refresh: 02:00 every day

Domains whose stored result is older than ``SCRAPE_REFRESH_AFTER_DAYS`` are
resubmitted as low-priority jobs, so refreshes never overtake user requests.
A domain that already has a queued or processing job is left alone.

Lifecycle
----------
Call ``build_scheduler(manager, store)`` once to get a configured
``BackgroundScheduler``. Start it on app boot; shut it down on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import ScrapeSettings, get_scrape_settings
from app.domain.scrape_job import JobPriority, utc_now
from app.scraping.errors import PersistenceError
from app.scraping.storage.base import JobStore
from app.services.job_manager import JobManager

logger = logging.getLogger(__name__)

REFRESH_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Job: Stale domain refresh
# ---------------------------------------------------------------------------


def run_stale_domain_refresh(
    manager: JobManager,
    store: JobStore,
    settings: ScrapeSettings | None = None,
) -> int:
    """
    Queue a low-priority re-crawl for each stale domain.

    Returns the number of jobs submitted.
    """
    resolved = settings or get_scrape_settings()
    logger.info("Scheduler: stale_domain_refresh starting")
    cutoff = utc_now() - timedelta(days=resolved.refresh_after_days)

    try:
        domains = store.list_stale_domains(older_than=cutoff, limit=REFRESH_BATCH_SIZE)
    except PersistenceError as exc:
        logger.warning("Scheduler: stale_domain_refresh could not list domains: %s", exc)
        return 0

    if not domains:
        logger.info("Scheduler: stale_domain_refresh found no stale domains")
        return 0

    try:
        pending = {job.domain for job in store.get_pending_jobs()}
    except PersistenceError as exc:
        logger.warning("Scheduler: stale_domain_refresh could not list pending jobs: %s", exc)
        return 0

    submitted = 0
    for domain in domains:
        try:
            job = manager.build_job(domain=domain, priority=JobPriority.LOW, bypass_cooldown=True)
            if job.domain in pending:
                logger.info("Scheduler: stale_domain_refresh skipped domain=%r, a job is already pending", domain)
                continue
            pending.add(job.domain)
            result = manager.submit(job)
            submitted += 1
            logger.info("Scheduler: stale_domain_refresh domain=%r job_id=%s", domain, result.job_id)
        except (ValueError, PersistenceError) as exc:
            logger.warning("Scheduler: stale_domain_refresh failed domain=%r: %s", domain, exc)

    logger.info("Scheduler: stale_domain_refresh complete submitted=%d", submitted)
    return submitted


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(
    manager: JobManager,
    store: JobStore,
    settings: ScrapeSettings | None = None,
) -> BackgroundScheduler:
    """
    Build and register the periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_stale_domain_refresh,
        trigger="cron",
        hour=2,
        minute=0,
        args=[manager, store, settings],
        id="stale_domain_refresh",
        name="Stale domain refresh",
        replace_existing=True,
        misfire_grace_time=3600,
    )

    return scheduler
