"""
Job store exports.
"""

from app.config import ScrapeSettings
from app.scraping.storage.base import JobStore
from app.scraping.storage.memory import InMemoryJobStore
from app.scraping.storage.sqlalchemy_storage import SQLAlchemyJobStore


def build_job_store(settings: ScrapeSettings) -> JobStore:
    if settings.store_backend == "memory":
        return InMemoryJobStore()
    if settings.store_backend == "sql":
        return SQLAlchemyJobStore()
    raise RuntimeError(f"Unknown SCRAPE_STORE_BACKEND '{settings.store_backend}'. Use 'sql' or 'memory'.")


__all__ = ["InMemoryJobStore", "JobStore", "SQLAlchemyJobStore", "build_job_store"]
