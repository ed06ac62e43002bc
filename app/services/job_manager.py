"""
app/services/job_manager.py

Scrape job scheduler.

Owns the three-tier priority queue, the admission-controlled worker slots and
every lifecycle transition of a job. Jobs move strictly forward:

    queued -> processing -> complete | failed | cancelled
    queued -> cancelled

Threading model
---------------
All scheduling state (tiers, active map, completed cache) is guarded by one
re-entrant lock that covers the whole dispatch decision. Workers run on a
thread pool. A finished worker never dispatches inline; it posts a
"slot freed" signal that the single dispatcher thread consumes. When the
dispatcher thread is not running (``start(background=False)``), dispatch
happens synchronously on the caller's thread.

Cancellation is cooperative: a worker observes it at its next progress
checkpoint and stops without emitting further events.
"""

from __future__ import annotations

import logging
import math
import queue
import threading
from collections import OrderedDict, deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Protocol

from app.config import ScrapeSettings, get_scrape_settings
from app.domain.scrape_job import (
    PRIORITY_ORDER,
    CancelResult,
    DiscoveryOptions,
    JobPriority,
    JobStatus,
    ScrapeJob,
    SubmitResult,
    utc_now,
)
from app.scraping.discovery import DiscoveryEngine, normalize_domain
from app.scraping.errors import DiscoveryError, JobCancelled, PersistenceError, PipelineError
from app.scraping.extractors import ExtractionContext, normalize_extractor_kinds
from app.scraping.fetcher import PageFetcher
from app.scraping.logging_utils import log_event, truncate_error
from app.scraping.orchestrator import ExtractionOrchestrator
from app.scraping.storage.base import JobStore
from app.services.event_publisher import JOB_UPDATE_EVENT, EventPublisher, NullEventPublisher, job_channel

logger = logging.getLogger(__name__)

STARTED_PROGRESS = 5
DISCOVERY_PROGRESS = 10
SAVING_PROGRESS = 90

SUCCESS_MESSAGE = "Scrape completed successfully"
MINIMAL_RESULTS_MESSAGE = "Scrape completed with minimal results"

# Rough per-job duration used for queue wait estimates.
BASE_JOB_SECONDS = 30
PER_DEPTH_SECONDS = 30

MAX_DEPTH = 10
MAX_PAGES_LIMIT = 1000

_SLOT_FREED = "slot-freed"
_STOP = "stop"


class JobTaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any) -> None:
        ...


class ThreadPoolTaskExecutor:
    def __init__(self, *, max_workers: int) -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scrape-worker")

    def submit(self, task: Callable[..., None], *args: Any) -> None:
        self._pool.submit(task, *args)

    def shutdown(self, wait: bool = False) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)


class CompletedJobCache:
    """
    Fixed-capacity cache of terminal jobs; the oldest completion is evicted first.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = max(1, capacity)
        self._jobs: OrderedDict[str, ScrapeJob] = OrderedDict()

    def add(self, job: ScrapeJob) -> None:
        self._jobs.pop(job.job_id, None)
        self._jobs[job.job_id] = job
        while len(self._jobs) > self._capacity:
            self._jobs.popitem(last=False)

    def get(self, job_id: str) -> ScrapeJob | None:
        return self._jobs.get(job_id)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)


class JobManager:
    """
    Priority queue + bounded worker slots driving discovery and extraction.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        discovery: DiscoveryEngine,
        orchestrator: ExtractionOrchestrator,
        publisher: EventPublisher | None = None,
        settings: ScrapeSettings | None = None,
        executor: JobTaskExecutor | None = None,
    ) -> None:
        self._store = store
        self._discovery = discovery
        self._orchestrator = orchestrator
        self._publisher: EventPublisher = publisher or NullEventPublisher()
        self._settings = settings or get_scrape_settings()
        self._capacity = max(1, self._settings.max_concurrent_jobs)
        self._executor: JobTaskExecutor = executor or ThreadPoolTaskExecutor(
            max_workers=self._capacity * 2,
        )

        self._lock = threading.RLock()
        self._tiers: dict[str, deque[ScrapeJob]] = {priority: deque() for priority in PRIORITY_ORDER}
        self._queued: dict[str, ScrapeJob] = {}
        self._active: dict[str, ScrapeJob] = {}
        self._finalizing: set[str] = set()
        self._completed = CompletedJobCache(self._settings.completed_cache_size)

        self._signals: queue.Queue[str] = queue.Queue()
        self._dispatcher: threading.Thread | None = None
        self._started = False
        self._stopping = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, *, background: bool = True) -> int:
        """
        Recover unfinished jobs from the store and begin dispatching.

        Returns the number of recovered jobs.
        """

        recovered = self._recover_pending_jobs()
        with self._lock:
            self._started = True
            self._stopping = False
        if background:
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop,
                name="scrape-dispatcher",
                daemon=True,
            )
            self._dispatcher.start()
        logger.info(
            "Job manager started capacity=%d recovered=%d background=%s",
            self._capacity,
            recovered,
            background,
        )
        self._request_dispatch()
        return recovered

    def shutdown(self, *, wait: bool = False) -> None:
        """
        Stop dispatching. Jobs still processing stay `processing` in the store
        and are re-queued by the next `start()`.
        """

        with self._lock:
            self._stopping = True
            self._started = False
        if self._dispatcher is not None:
            self._signals.put(_STOP)
            self._dispatcher.join(timeout=5)
            self._dispatcher = None
        shutdown = getattr(self._executor, "shutdown", None)
        if callable(shutdown):
            shutdown(wait=wait)
        logger.info("Job manager shut down")

    def _recover_pending_jobs(self) -> int:
        pending = self._store.get_pending_jobs()
        recovered = 0
        for job in pending:
            with self._lock:
                if job.job_id in self._queued or job.job_id in self._active:
                    continue
            if job.status == JobStatus.PROCESSING:
                # The previous process died mid-job; nothing can be running now.
                self._store.update_job_status(
                    job.job_id,
                    JobStatus.QUEUED,
                    progress=0,
                    message="Re-queued after restart",
                )
                job.status = JobStatus.QUEUED
                job.message = "Re-queued after restart"
            job.progress = 0
            with self._lock:
                tier = job.priority if job.priority in self._tiers else JobPriority.NORMAL
                self._tiers[tier].append(job)
                self._queued[job.job_id] = job
            recovered += 1
        return recovered

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_job(
        self,
        *,
        domain: str,
        depth: int | None = None,
        priority: str | None = None,
        max_pages: int | None = None,
        extractors: list[str] | None = None,
        bypass_cooldown: bool = False,
    ) -> ScrapeJob:
        """
        Validate a submission request and return a new queued job.

        Raises ValueError for invalid input.
        """

        resolved_priority = (priority or JobPriority.NORMAL).strip().lower()
        if resolved_priority not in PRIORITY_ORDER:
            raise ValueError(
                f"Invalid priority '{priority}'. Allowed values: {', '.join(PRIORITY_ORDER)}."
            )
        resolved_depth = self._settings.default_depth if depth is None else depth
        if not 0 <= resolved_depth <= MAX_DEPTH:
            raise ValueError(f"depth must be between 0 and {MAX_DEPTH}.")
        resolved_max_pages = self._settings.default_max_pages if max_pages is None else max_pages
        if not 1 <= resolved_max_pages <= MAX_PAGES_LIMIT:
            raise ValueError(f"maxPages must be between 1 and {MAX_PAGES_LIMIT}.")

        return ScrapeJob(
            domain=normalize_domain(domain),
            depth=resolved_depth,
            max_pages=resolved_max_pages,
            priority=resolved_priority,
            extractors=normalize_extractor_kinds(extractors),
            bypass_cooldown=bypass_cooldown,
        )

    def submit(self, job: ScrapeJob) -> SubmitResult:
        """
        Persist `job` then enqueue it. Raises PersistenceError when the store
        write fails; the job is not enqueued in that case.
        """

        if job.status != JobStatus.QUEUED:
            raise ValueError(f"Only queued jobs can be submitted (got '{job.status}').")
        if job.priority not in self._tiers:
            raise ValueError(f"Invalid priority '{job.priority}'.")

        try:
            self._store.save_job(job)
        except PersistenceError:
            log_event(logger, logging.ERROR, "job_submit_failed", job_id=job.job_id, domain=job.domain)
            raise
        except Exception as exc:
            log_event(logger, logging.ERROR, "job_submit_failed", job_id=job.job_id, domain=job.domain)
            raise PersistenceError(truncate_error(exc)) from exc

        with self._lock:
            self._tiers[job.priority].append(job)
            self._queued[job.job_id] = job
            estimated_time = self._estimate_time_locked(job)
            self._publish_locked(job)

        log_event(
            logger,
            logging.INFO,
            "job_queued",
            job_id=job.job_id,
            domain=job.domain,
            priority=job.priority,
            depth=job.depth,
        )
        self._request_dispatch()
        return SubmitResult(job_id=job.job_id, status=JobStatus.QUEUED, estimated_time=estimated_time)

    def status(self, job_id: str) -> ScrapeJob | None:
        """
        Look up a job: active set, then completed cache, then the store.
        """

        with self._lock:
            job = self._active.get(job_id) or self._queued.get(job_id) or self._completed.get(job_id)
            if job is not None:
                return replace(job, extractors=list(job.extractors))
        return self._store.get_job_status(job_id)

    def cancel(self, job_id: str) -> CancelResult:
        """
        Cancel a queued or processing job. Never raises.
        """

        now = utc_now()
        was_active = False
        with self._lock:
            if job_id in self._finalizing:
                return CancelResult(success=False, message="Job is already finishing")

            job = self._active.pop(job_id, None)
            if job is not None:
                was_active = True
            else:
                job = self._queued.pop(job_id, None)
                if job is not None:
                    tier = self._tiers[job.priority]
                    self._tiers[job.priority] = deque(item for item in tier if item.job_id != job_id)

            if job is not None:
                job.status = JobStatus.CANCELLED
                job.completed_at = now
                job.message = "Job cancelled"
                self._completed.add(job)
                self._publish_locked(job)
            else:
                cached = self._completed.get(job_id)
                if cached is not None:
                    return CancelResult(success=False, message=f"Job already {cached.status}")

        if job is not None:
            try:
                self._store.update_job_status(
                    job_id,
                    JobStatus.CANCELLED,
                    completed_at=now,
                    progress=job.progress,
                    message=job.message,
                )
            except PersistenceError as exc:
                log_event(logger, logging.ERROR, "job_cancel_persist_failed", job_id=job_id, error=str(exc))
            log_event(logger, logging.INFO, "job_cancelled", job_id=job_id, was_active=was_active)
            self._discard_crawl_state(job_id)
            if was_active:
                self._request_dispatch()
            return CancelResult(success=True, message="Job cancelled")

        return self._cancel_stored_job(job_id, now)

    def _cancel_stored_job(self, job_id: str, now: Any) -> CancelResult:
        try:
            stored = self._store.get_job_status(job_id)
            if stored is None:
                return CancelResult(success=False, message=f"Job not found: {job_id}")
            if stored.is_terminal:
                return CancelResult(success=False, message=f"Job already {stored.status}")
            updated = self._store.update_job_status(
                job_id,
                JobStatus.CANCELLED,
                completed_at=now,
                message="Job cancelled",
            )
        except PersistenceError as exc:
            log_event(logger, logging.ERROR, "job_cancel_persist_failed", job_id=job_id, error=str(exc))
            return CancelResult(success=False, message="Job store unavailable; cancellation not recorded")
        if not updated:
            return CancelResult(success=False, message="Job could not be cancelled")
        self._discard_crawl_state(job_id)
        return CancelResult(success=True, message="Job cancelled")

    def list_jobs(self, *, status: str | None = None, limit: int = 20, offset: int = 0) -> list[ScrapeJob]:
        return self._store.list_jobs(status=status, limit=limit, offset=offset)

    def get_results(self, job_id: str) -> dict[str, Any] | None:
        """
        Return the stored aggregate for a completed job's domain.
        """

        job = self.status(job_id)
        if job is None or job.status != JobStatus.COMPLETE:
            return None
        return self._store.get_domain_result(job.domain)

    # Introspection used by health checks and tests.

    def processing_count(self) -> int:
        with self._lock:
            return len(self._active)

    def queued_job_ids(self) -> dict[str, list[str]]:
        with self._lock:
            return {priority: [job.job_id for job in tier] for priority, tier in self._tiers.items()}

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def process_next_job(self) -> list[str]:
        """
        Start queued jobs while capacity remains, strictly high > normal > low.

        Returns the ids of the jobs started.
        """

        started: list[ScrapeJob] = []
        with self._lock:
            if not self._started or self._stopping:
                return []
            while len(self._active) < self._capacity:
                job = self._pop_next_locked()
                if job is None:
                    break
                job.status = JobStatus.PROCESSING
                job.started_at = utc_now()
                job.completed_at = None
                job.progress = STARTED_PROGRESS
                job.message = "Job started"
                self._active[job.job_id] = job
                self._publish_locked(job)
                started.append(job)

        for job in started:
            log_event(logger, logging.INFO, "job_started", job_id=job.job_id, domain=job.domain)
            try:
                self._executor.submit(self._run_job, job.job_id)
            except Exception as exc:  # noqa: BLE001
                # The store still says queued; failed is only reachable from processing.
                try:
                    self._store.update_job_status(job.job_id, JobStatus.PROCESSING, started_at=job.started_at)
                except PersistenceError as store_exc:
                    log_event(
                        logger,
                        logging.ERROR,
                        "job_start_persist_failed",
                        job_id=job.job_id,
                        error=str(store_exc),
                    )
                self._fail(job.job_id, PipelineError(f"Could not schedule worker: {exc}"))
        return [job.job_id for job in started]

    def _pop_next_locked(self) -> ScrapeJob | None:
        for priority in PRIORITY_ORDER:
            tier = self._tiers[priority]
            if tier:
                job = tier.popleft()
                self._queued.pop(job.job_id, None)
                return job
        return None

    def _request_dispatch(self) -> None:
        dispatcher = self._dispatcher
        if dispatcher is not None and dispatcher.is_alive():
            self._signals.put(_SLOT_FREED)
        else:
            self.process_next_job()

    def _dispatch_loop(self) -> None:
        while True:
            signal = self._signals.get()
            if signal == _STOP:
                return
            try:
                self.process_next_job()
            except Exception:  # noqa: BLE001
                logger.exception("Dispatch failed")

    def _estimate_time_locked(self, job: ScrapeJob) -> str:
        rank = PRIORITY_ORDER.index(job.priority)
        ahead = len(self._active) + sum(len(self._tiers[priority]) for priority in PRIORITY_ORDER[: rank + 1]) - 1
        waves = max(0, ahead) // self._capacity + 1
        seconds = waves * (BASE_JOB_SECONDS + PER_DEPTH_SECONDS * job.depth)
        minutes = max(1, math.ceil(seconds / 60))
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run_job(self, job_id: str) -> None:
        with self._lock:
            job = self._active.get(job_id)
            if job is None:
                return
            snapshot = replace(job, extractors=list(job.extractors))

        def checkpoint(progress: int, message: str) -> None:
            self._update_progress(job_id, progress, message)

        try:
            self._store.update_job_status(
                job_id,
                JobStatus.PROCESSING,
                started_at=snapshot.started_at,
                progress=snapshot.progress,
                message=snapshot.message,
            )
            checkpoint(DISCOVERY_PROGRESS, "Discovering pages")
            try:
                pages = self._discovery.discover(
                    snapshot.domain,
                    snapshot.depth,
                    job_id,
                    DiscoveryOptions(
                        max_pages=snapshot.max_pages,
                        bypass_cooldown=snapshot.bypass_cooldown,
                        cooldown_minutes=self._settings.cooldown_minutes,
                    ),
                    progress=checkpoint,
                )
            except DiscoveryError as exc:
                log_event(logger, logging.WARNING, "discovery_failed", job_id=job_id, error=str(exc))
                pages = []

            result = self._orchestrator.run(
                pages,
                ExtractionContext(
                    domain=snapshot.domain,
                    job_id=job_id,
                    options={"depth": snapshot.depth, "maxPages": snapshot.max_pages},
                ),
                extractors=snapshot.extractors or None,
                progress=checkpoint,
            )

            checkpoint(SAVING_PROGRESS, "Saving results")
            self._begin_finalizing(job_id)
            self._store.save_results(job_id, result.to_dict())
            self._finish(
                job_id,
                JobStatus.COMPLETE,
                MINIMAL_RESULTS_MESSAGE if result.is_minimal else SUCCESS_MESSAGE,
            )
            log_event(
                logger,
                logging.INFO,
                "job_completed",
                job_id=job_id,
                domain=snapshot.domain,
                pages=result.page_count,
                failed_sections=result.failed_sections,
            )
        except JobCancelled:
            log_event(logger, logging.INFO, "job_worker_stopped", job_id=job_id, reason="cancelled")
            self._discard_crawl_state(job_id)
        except Exception as exc:  # noqa: BLE001
            self._fail(job_id, exc)

    def _update_progress(self, job_id: str, progress: int, message: str) -> None:
        """
        Record a progress milestone. Raises JobCancelled once the job is no
        longer processing, which stops the worker at this checkpoint.
        """

        with self._lock:
            job = self._active.get(job_id)
            if job is None or job.status != JobStatus.PROCESSING or job_id in self._finalizing:
                raise JobCancelled(job_id)
            bounded = max(job.progress, min(99, int(progress)))
            if bounded == job.progress and message == job.message:
                return
            job.progress = bounded
            job.message = message
            self._publish_locked(job)

    def _begin_finalizing(self, job_id: str) -> None:
        with self._lock:
            job = self._active.get(job_id)
            if job is None or job.status != JobStatus.PROCESSING:
                raise JobCancelled(job_id)
            self._finalizing.add(job_id)

    def _fail(self, job_id: str, exc: Exception) -> None:
        error = exc if isinstance(exc, PipelineError) else PipelineError(truncate_error(exc))
        logger.error("Scrape job failed id=%s error=%s", job_id, error, exc_info=exc)
        with self._lock:
            job = self._active.get(job_id)
            if job is None:
                return
            self._finalizing.add(job_id)
        self._finish(job_id, JobStatus.FAILED, f"Scrape failed: {error}", error=str(error))
        self._discard_crawl_state(job_id)

    def _discard_crawl_state(self, job_id: str) -> None:
        """
        Drop the crawl checkpoint of a job that reached a terminal state.
        Only jobs interrupted by a process exit are ever resumed.
        """

        try:
            self._store.clear_crawl_checkpoint(job_id)
        except PersistenceError as exc:
            log_event(logger, logging.WARNING, "crawl_checkpoint_clear_failed", job_id=job_id, error=str(exc))

    def _finish(self, job_id: str, status: str, message: str, *, error: str | None = None) -> None:
        """
        Persist then apply a terminal transition and free the slot.
        """

        completed_at = utc_now()
        with self._lock:
            job = self._active.get(job_id)
            progress = 100 if status == JobStatus.COMPLETE else (job.progress if job else 0)

        try:
            self._store.update_job_status(
                job_id,
                status,
                completed_at=completed_at,
                progress=progress,
                message=message,
                error=error,
            )
        except PersistenceError as exc:
            if status == JobStatus.COMPLETE:
                # Could not record success; the job ends failed instead.
                error = truncate_error(exc)
                status, message = JobStatus.FAILED, f"Scrape failed: {error}"
                progress = job.progress if job else 0
                try:
                    self._store.update_job_status(
                        job_id, status, completed_at=completed_at, message=message, error=error
                    )
                except PersistenceError:
                    logger.error("Failed to persist failed state id=%s", job_id)
            else:
                logger.error("Failed to persist terminal state id=%s status=%s: %s", job_id, status, exc)

        with self._lock:
            self._finalizing.discard(job_id)
            job = self._active.pop(job_id, None)
            if job is not None:
                job.status = status
                job.progress = progress
                job.message = message
                job.completed_at = completed_at
                job.error = error
                self._completed.add(job)
                self._publish_locked(job)
        self._request_dispatch()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _publish_locked(self, job: ScrapeJob) -> None:
        try:
            self._publisher.publish(job_channel(job.job_id), JOB_UPDATE_EVENT, job.event_payload())
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "job_event_publish_failed", job_id=job.job_id, error=str(exc))


def build_job_manager(
    *,
    store: JobStore,
    publisher: EventPublisher | None = None,
    settings: ScrapeSettings | None = None,
    executor: JobTaskExecutor | None = None,
) -> JobManager:
    """
    Wire fetcher, discovery and extraction around `store`.
    """

    resolved = settings or get_scrape_settings()
    fetcher = PageFetcher(settings=resolved)
    return JobManager(
        store=store,
        discovery=DiscoveryEngine(store=store, fetcher=fetcher, settings=resolved),
        orchestrator=ExtractionOrchestrator(fetcher=fetcher),
        publisher=publisher,
        settings=resolved,
        executor=executor,
    )
