"""
app/domain package marker.
"""

from app.domain.scrape_job import (
    CancelResult,
    CrawlCheckpoint,
    CrawlSnapshot,
    DiscoveryOptions,
    JobPriority,
    JobStatus,
    Page,
    ScrapeJob,
    SubmitResult,
)

__all__ = [
    "CancelResult",
    "CrawlCheckpoint",
    "CrawlSnapshot",
    "DiscoveryOptions",
    "JobPriority",
    "JobStatus",
    "Page",
    "ScrapeJob",
    "SubmitResult",
]
