"""
app/schemas package marker.
"""

from app.schemas.scrape_jobs import (
    CancelJobResponse,
    HealthResponse,
    ScrapeJobAcceptedResponse,
    ScrapeJobListResponse,
    ScrapeJobRequest,
    ScrapeJobStatusResponse,
    ScrapeResultResponse,
)

__all__ = [
    "CancelJobResponse",
    "HealthResponse",
    "ScrapeJobAcceptedResponse",
    "ScrapeJobListResponse",
    "ScrapeJobRequest",
    "ScrapeJobStatusResponse",
    "ScrapeResultResponse",
]
