"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.crawl_state import CrawlCheckpointRecord, CrawlSnapshotRecord
from db.models.domain_record import DomainRecord
from db.models.scrape_job import ScrapeJobRecord

__all__ = [
    "CrawlCheckpointRecord",
    "CrawlSnapshotRecord",
    "DomainRecord",
    "ScrapeJobRecord",
]
