from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import Depends, FastAPI

from app.api.dependencies import get_job_manager
from app.config import ScrapeSettings, get_scrape_settings
from app.schemas.scrape_jobs import HealthResponse
from app.services.job_manager import JobManager

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.

    Does NOT auto-migrate; the operator runs `alembic upgrade head`.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    missing = set(Base.metadata.tables.keys()) - actual

    if missing:
        logger.critical(
            "Schema mismatch: %d table(s) absent from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


def _build_lifespan(settings: ScrapeSettings):
    @asynccontextmanager
    async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
        """Build the store and job manager, recover pending jobs, start the scheduler."""
        from app.scheduler.jobs import build_scheduler
        from app.scraping.storage import build_job_store
        from app.services.event_publisher import ChannelBroadcaster
        from app.services.job_manager import build_job_manager

        if settings.store_backend == "sql":
            from db.session import get_engine

            _check_db()
            logger.info("Database connectivity confirmed url=%s", get_engine().url)
            _check_schema()
            logger.info("Database schema validated")

        store = build_job_store(settings)
        broadcaster = ChannelBroadcaster()
        manager = build_job_manager(store=store, publisher=broadcaster, settings=settings)
        recovered = manager.start()
        logger.info("Job manager ready recovered=%d", recovered)

        application.state.broadcaster = broadcaster
        application.state.job_manager = manager

        scheduler = None
        if settings.refresh_enabled:
            scheduler = build_scheduler(manager, store, settings)
            scheduler.start()
            logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=True)
                logger.info("Scheduler shut down")
            manager.shutdown()
            application.state.job_manager = None
            if settings.store_backend == "sql":
                from db.session import dispose_engine

                dispose_engine()

    return _lifespan


def create_app(settings: ScrapeSettings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    resolved = settings or get_scrape_settings()

    application = FastAPI(
        title="Domain Scrape Service",
        version="1.0.0",
        lifespan=_build_lifespan(resolved),
    )

    from app.api.routers import job_events_router, scrape_jobs_router

    application.include_router(scrape_jobs_router)
    application.include_router(job_events_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck(manager: JobManager = Depends(get_job_manager)) -> HealthResponse:
        queued = manager.queued_job_ids()
        return HealthResponse(
            status="ok",
            processing_jobs=manager.processing_count(),
            queued_jobs={priority: len(ids) for priority, ids in queued.items()},
        )

    return application


app = create_app()
