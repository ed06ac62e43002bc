"""
tests/test_job_manager.py

Scheduler behaviour: priority dispatch, admission control, lifecycle
transitions, cancellation, failure handling and restart recovery.

Workers run on a manual executor so every test is deterministic; one test
exercises the real dispatcher thread and thread pool.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Any

import pytest

from app.domain.scrape_job import CrawlCheckpoint, JobStatus, Page, ScrapeJob, utc_now
from app.scraping.errors import DiscoveryError, PersistenceError
from app.scraping.orchestrator import ExtractionOrchestrator
from app.scraping.storage.memory import InMemoryJobStore
from app.services.job_manager import (
    MINIMAL_RESULTS_MESSAGE,
    SUCCESS_MESSAGE,
    CompletedJobCache,
    JobManager,
)
from conftest import ManualExecutor, RecordingPublisher, StubDiscovery, html_page, links

ROOT_PAGE = Page(
    url="https://shop.test/",
    depth=0,
    title="Shop Co",
    content=html_page(
        "Shop Co",
        "<nav>" + links("/about", "/blog") + "</nav><a href='https://facebook.com/shopco'>fb</a>",
        "<meta name='description' content='Gear for makers'>",
    ),
)


def _manager(
    store: InMemoryJobStore,
    settings,
    executor: ManualExecutor | None,
    publisher: RecordingPublisher | None = None,
    *,
    discovery: StubDiscovery | None = None,
    orchestrator: Any = None,
    capacity: int | None = None,
) -> JobManager:
    if capacity is not None:
        settings = replace(settings, max_concurrent_jobs=capacity)
    return JobManager(
        store=store,
        discovery=discovery or StubDiscovery([ROOT_PAGE]),
        orchestrator=orchestrator or ExtractionOrchestrator(),
        publisher=publisher,
        settings=settings,
        executor=executor,
    )


def _submit(manager: JobManager, domain: str, **options: Any) -> str:
    return manager.submit(manager.build_job(domain=domain, **options)).job_id


def _started_order(publisher: RecordingPublisher) -> list[str]:
    return [
        payload["jobId"]
        for _, _, payload in publisher.events
        if payload["status"] == JobStatus.PROCESSING and payload["message"] == "Job started"
    ]


# ---------------------------------------------------------------------------
# Dispatch order and capacity
# ---------------------------------------------------------------------------


def test_dispatch_prefers_higher_priority_tiers(memory_store, settings, executor, publisher) -> None:
    manager = _manager(memory_store, settings, executor, publisher, capacity=1)

    h1 = _submit(manager, "h1.test", priority="high")
    n1 = _submit(manager, "n1.test", priority="normal")
    l1 = _submit(manager, "l1.test", priority="low")
    h2 = _submit(manager, "h2.test", priority="high")
    n2 = _submit(manager, "n2.test")
    assert executor.tasks == []

    manager.start(background=False)
    executor.run_all()

    assert _started_order(publisher) == [h1, h2, n1, n2, l1]


def test_processing_count_never_exceeds_capacity(memory_store, settings, executor) -> None:
    observed: list[int] = []
    holder: dict[str, JobManager] = {}
    publisher = RecordingPublisher(hook=lambda *_: observed.append(holder["manager"].processing_count()))
    manager = _manager(memory_store, settings, executor, publisher, capacity=2)
    holder["manager"] = manager
    manager.start(background=False)

    job_ids = [_submit(manager, f"site{index}.test") for index in range(5)]

    assert manager.processing_count() == 2
    assert len(executor.tasks) == 2
    executor.run_all()

    assert max(observed) <= 2
    assert manager.processing_count() == 0
    assert [manager.status(job_id).status for job_id in job_ids] == [JobStatus.COMPLETE] * 5


def test_estimated_time_grows_with_queue_position(memory_store, settings, executor) -> None:
    manager = _manager(memory_store, settings, executor, capacity=1)

    first = manager.submit(manager.build_job(domain="a.test", depth=2))
    second = manager.submit(manager.build_job(domain="b.test", depth=2))

    assert first.status == JobStatus.QUEUED
    assert first.estimated_time == "2 minutes"
    assert second.estimated_time == "3 minutes"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_successful_job_reaches_complete_with_monotonic_progress(
    memory_store, settings, executor, publisher
) -> None:
    manager = _manager(memory_store, settings, executor, publisher)
    manager.start(background=False)

    job_id = _submit(manager, "shop.test", priority="high")
    executor.run_all()

    events = publisher.for_job(job_id)
    statuses = [event["status"] for event in events]
    progress = [event["progress"] for event in events]
    assert statuses[0] == JobStatus.QUEUED
    assert statuses[-1] == JobStatus.COMPLETE
    assert set(statuses) == {JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETE}
    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert all(value < 100 for value in progress[:-1])
    assert events[-1]["message"] == SUCCESS_MESSAGE

    stored = memory_store.get_job_status(job_id)
    assert stored.status == JobStatus.COMPLETE
    assert stored.progress == 100
    assert stored.started_at is not None
    assert stored.completed_at is not None

    result = memory_store.get_domain_result("shop.test")
    assert result["pageCount"] == 1
    assert result["general"]["title"] == "Shop Co"
    assert result["socialMedia"]["links"] == {"facebook": "https://facebook.com/shopco"}


def test_job_options_reach_discovery(memory_store, settings, executor) -> None:
    discovery = StubDiscovery([ROOT_PAGE])
    manager = _manager(memory_store, settings, executor, discovery=discovery)
    manager.start(background=False)

    _submit(manager, "https://Shop.test/landing", depth=3, max_pages=7, bypass_cooldown=True)
    executor.run_all()

    domain, depth, _, options = discovery.calls[0]
    assert domain == "shop.test"
    assert depth == 3
    assert options.max_pages == 7
    assert options.bypass_cooldown is True
    assert options.cooldown_minutes == settings.cooldown_minutes


def test_zero_pages_completes_with_minimal_results(memory_store, settings, executor) -> None:
    manager = _manager(memory_store, settings, executor, discovery=StubDiscovery([]))
    manager.start(background=False)

    job_id = _submit(manager, "empty.test")
    executor.run_all()

    job = manager.status(job_id)
    assert job.status == JobStatus.COMPLETE
    assert job.progress == 100
    assert job.message == MINIMAL_RESULTS_MESSAGE

    result = memory_store.get_domain_result("empty.test")
    assert result["pageCount"] == 0
    assert result["general"]["description"] == "Website content for empty.test"
    assert result["blog"] == {"hasBlog": False, "blogUrl": None, "articles": []}


def test_discovery_error_is_treated_as_zero_pages(memory_store, settings, executor) -> None:
    discovery = StubDiscovery(error=DiscoveryError("connection refused"))
    manager = _manager(memory_store, settings, executor, discovery=discovery)
    manager.start(background=False)

    job_id = _submit(manager, "down.test")
    executor.run_all()

    job = manager.status(job_id)
    assert job.status == JobStatus.COMPLETE
    assert job.message == MINIMAL_RESULTS_MESSAGE


def test_store_failure_while_saving_results_fails_job(settings, executor, publisher) -> None:
    class ResultsUnavailableStore(InMemoryJobStore):
        def save_results(self, job_id: str, result: dict[str, Any]) -> None:
            raise PersistenceError("disk full")

    store = ResultsUnavailableStore()
    manager = _manager(store, settings, executor, publisher, capacity=1)
    manager.start(background=False)

    failing = _submit(manager, "a.test")
    waiting = _submit(manager, "b.test")
    executor.run_next()

    job = manager.status(failing)
    assert job.status == JobStatus.FAILED
    assert job.progress < 100
    assert "disk full" in job.error
    assert store.get_job_status(failing).status == JobStatus.FAILED
    assert publisher.for_job(failing)[-1]["status"] == JobStatus.FAILED
    # The freed slot goes to the next queued job.
    assert manager.status(waiting).status == JobStatus.PROCESSING


def test_unexpected_pipeline_exception_fails_job(memory_store, settings, executor) -> None:
    class ExplodingOrchestrator:
        def run(self, pages, context, *, extractors=None, progress=None):
            raise RuntimeError("parser crashed")

    manager = _manager(memory_store, settings, executor, orchestrator=ExplodingOrchestrator())
    manager.start(background=False)

    job_id = _submit(manager, "a.test")
    executor.run_all()

    job = memory_store.get_job_status(job_id)
    assert job.status == JobStatus.FAILED
    assert "RuntimeError: parser crashed" in job.error
    assert job.message.startswith("Scrape failed")


def test_failed_job_drops_its_crawl_checkpoint(memory_store, settings, executor) -> None:
    def crash_mid_crawl(job_id: str, _report) -> None:
        memory_store.save_crawl_checkpoint(
            CrawlCheckpoint(job_id=job_id, domain="a.test", frontier=[("https://a.test/x", 1)])
        )
        raise RuntimeError("worker crashed")

    manager = _manager(memory_store, settings, executor, discovery=StubDiscovery(on_discover=crash_mid_crawl))
    manager.start(background=False)

    job_id = _submit(manager, "a.test")
    executor.run_all()

    assert memory_store.get_job_status(job_id).status == JobStatus.FAILED
    assert memory_store.can_resume_job(job_id) is False


def test_executor_rejection_fails_job_in_store(memory_store, settings) -> None:
    class RejectingExecutor:
        def submit(self, task, *args) -> None:
            raise RuntimeError("pool is shut down")

    manager = _manager(memory_store, settings, RejectingExecutor())
    manager.start(background=False)

    job_id = _submit(manager, "a.test")

    stored = memory_store.get_job_status(job_id)
    assert stored.status == JobStatus.FAILED
    assert "Could not schedule worker" in stored.error
    assert manager.processing_count() == 0


def test_publisher_failure_does_not_affect_job(memory_store, settings, executor) -> None:
    class BrokenPublisher:
        def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
            raise ConnectionError("socket closed")

    manager = _manager(memory_store, settings, executor, BrokenPublisher())
    manager.start(background=False)

    job_id = _submit(manager, "shop.test")
    executor.run_all()

    assert manager.status(job_id).status == JobStatus.COMPLETE


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def test_submit_persists_before_enqueueing(settings, executor) -> None:
    class BrokenStore(InMemoryJobStore):
        def save_job(self, job: ScrapeJob) -> None:
            raise PersistenceError("database unavailable")

    manager = _manager(BrokenStore(), settings, executor)
    manager.start(background=False)

    with pytest.raises(PersistenceError):
        manager.submit(manager.build_job(domain="a.test"))

    assert manager.queued_job_ids() == {"high": [], "normal": [], "low": []}
    assert manager.processing_count() == 0


@pytest.mark.parametrize(
    "options",
    [
        {"domain": ""},
        {"domain": "localhost"},
        {"domain": "a.test", "priority": "urgent"},
        {"domain": "a.test", "depth": -1},
        {"domain": "a.test", "max_pages": 0},
        {"domain": "a.test", "extractors": ["general", "weather"]},
    ],
)
def test_build_job_rejects_invalid_requests(memory_store, settings, executor, options) -> None:
    manager = _manager(memory_store, settings, executor)
    with pytest.raises(ValueError):
        manager.build_job(**options)


def test_build_job_applies_defaults(memory_store, settings, executor) -> None:
    manager = _manager(memory_store, settings, executor)

    job = manager.build_job(domain="HTTPS://Example.COM/about", extractors=["socialMedia", "general"])

    assert job.domain == "example.com"
    assert job.priority == "normal"
    assert job.depth == settings.default_depth
    assert job.max_pages == settings.default_max_pages
    assert job.extractors == ["social", "general"]
    assert job.status == JobStatus.QUEUED


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def test_cancel_queued_job_removes_it_from_queue(memory_store, settings, executor, publisher) -> None:
    manager = _manager(memory_store, settings, executor, publisher, capacity=1)
    manager.start(background=False)
    running = _submit(manager, "a.test")
    queued = _submit(manager, "b.test", priority="high")

    outcome = manager.cancel(queued)

    assert outcome.success is True
    assert manager.status(queued).status == JobStatus.CANCELLED
    assert memory_store.get_job_status(queued).status == JobStatus.CANCELLED
    assert manager.queued_job_ids()["high"] == []

    executor.run_all()
    assert queued not in _started_order(publisher)
    assert manager.status(running).status == JobStatus.COMPLETE
    assert manager.status(queued).status == JobStatus.CANCELLED


def test_cancelling_a_recovered_job_drops_its_crawl_checkpoint(memory_store, settings, executor) -> None:
    interrupted = ScrapeJob(domain="a.test", depth=1, max_pages=5)
    memory_store.save_job(interrupted)
    memory_store.update_job_status(interrupted.job_id, JobStatus.PROCESSING, started_at=utc_now())
    memory_store.save_crawl_checkpoint(
        CrawlCheckpoint(job_id=interrupted.job_id, domain="a.test", frontier=[("https://a.test/x", 1)])
    )
    manager = _manager(memory_store, settings, executor)
    manager.start(background=False)

    assert manager.cancel(interrupted.job_id).success is True
    assert memory_store.can_resume_job(interrupted.job_id) is False


def test_cancel_processing_job_stops_worker_and_frees_slot(
    memory_store, settings, executor, publisher
) -> None:
    holder: dict[str, Any] = {}

    def cancel_first_job(job_id: str, report) -> None:
        if job_id == holder["target"]:
            assert holder["manager"].cancel(job_id).success is True
            report(20, "Still crawling")

    manager = _manager(
        memory_store,
        settings,
        executor,
        publisher,
        discovery=StubDiscovery([ROOT_PAGE], on_discover=cancel_first_job),
        capacity=1,
    )
    holder["manager"] = manager
    manager.start(background=False)
    target = _submit(manager, "shop.test")
    holder["target"] = target
    follower = _submit(manager, "next.test")

    executor.run_next()

    events = publisher.for_job(target)
    assert events[-1]["status"] == JobStatus.CANCELLED
    assert [event["status"] for event in events].count(JobStatus.CANCELLED) == 1
    assert memory_store.get_job_status(target).status == JobStatus.CANCELLED
    assert memory_store.get_domain_result("shop.test") is None
    assert manager.status(follower).status == JobStatus.PROCESSING

    executor.run_all()
    assert publisher.for_job(target)[-1]["status"] == JobStatus.CANCELLED
    assert manager.status(target).status == JobStatus.CANCELLED


def test_cancel_terminal_or_unknown_job_reports_failure(memory_store, settings, executor) -> None:
    manager = _manager(memory_store, settings, executor)
    manager.start(background=False)
    job_id = _submit(manager, "shop.test")
    executor.run_all()

    finished = manager.cancel(job_id)
    unknown = manager.cancel("missing")

    assert finished.success is False
    assert "complete" in finished.message
    assert unknown.success is False
    assert manager.status(job_id).status == JobStatus.COMPLETE


def test_cancel_job_known_only_to_store(memory_store, settings, executor) -> None:
    job = ScrapeJob(domain="a.test", depth=1, max_pages=5)
    memory_store.save_job(job)
    manager = _manager(memory_store, settings, executor)

    outcome = manager.cancel(job.job_id)

    assert outcome.success is True
    assert memory_store.get_job_status(job.job_id).status == JobStatus.CANCELLED


# ---------------------------------------------------------------------------
# Status lookup and cache
# ---------------------------------------------------------------------------


def test_status_falls_back_to_store(memory_store, settings, executor) -> None:
    job = ScrapeJob(domain="a.test", depth=1, max_pages=5, status=JobStatus.QUEUED)
    memory_store.save_job(job)
    manager = _manager(memory_store, settings, executor)

    assert manager.status(job.job_id).domain == "a.test"
    assert manager.status("missing") is None


def test_status_returns_a_copy(memory_store, settings, executor) -> None:
    manager = _manager(memory_store, settings, executor)
    job_id = _submit(manager, "a.test")

    snapshot = manager.status(job_id)
    snapshot.status = JobStatus.FAILED

    assert manager.status(job_id).status == JobStatus.QUEUED


def test_completed_cache_evicts_oldest_first() -> None:
    cache = CompletedJobCache(2)
    jobs = [ScrapeJob(domain=f"{name}.test", depth=1, max_pages=1) for name in ("a", "b", "c")]
    for job in jobs:
        cache.add(job)

    assert len(cache) == 2
    assert jobs[0].job_id not in cache
    assert cache.get(jobs[2].job_id) is jobs[2]


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


def test_start_requeues_unfinished_jobs(memory_store, settings, executor, publisher) -> None:
    interrupted = ScrapeJob(domain="a.test", depth=1, max_pages=5, priority="low")
    memory_store.save_job(interrupted)
    memory_store.update_job_status(interrupted.job_id, JobStatus.PROCESSING, started_at=utc_now(), progress=40)
    waiting = ScrapeJob(domain="b.test", depth=1, max_pages=5, priority="high")
    memory_store.save_job(waiting)
    finished = ScrapeJob(domain="c.test", depth=1, max_pages=5)
    memory_store.save_job(finished)
    memory_store.update_job_status(finished.job_id, JobStatus.PROCESSING)
    memory_store.update_job_status(finished.job_id, JobStatus.COMPLETE, progress=100)

    manager = _manager(memory_store, settings, executor, publisher, capacity=1)
    recovered = manager.start(background=False)

    assert recovered == 2
    assert memory_store.get_job_status(interrupted.job_id).status == JobStatus.QUEUED
    assert manager.status(waiting.job_id).status == JobStatus.PROCESSING

    executor.run_all()
    assert _started_order(publisher) == [waiting.job_id, interrupted.job_id]
    assert memory_store.get_job_status(interrupted.job_id).status == JobStatus.COMPLETE
    assert memory_store.get_job_status(finished.job_id).status == JobStatus.COMPLETE


# ---------------------------------------------------------------------------
# Threaded dispatch
# ---------------------------------------------------------------------------


def test_background_dispatcher_runs_jobs_to_completion(memory_store, settings) -> None:
    manager = _manager(memory_store, settings, executor=None)
    manager.start()
    try:
        job_ids = [_submit(manager, f"site{index}.test") for index in range(3)]
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            if all(manager.status(job_id).is_terminal for job_id in job_ids):
                break
            time.sleep(0.02)
    finally:
        manager.shutdown(wait=True)

    assert [manager.status(job_id).status for job_id in job_ids] == [JobStatus.COMPLETE] * 3
