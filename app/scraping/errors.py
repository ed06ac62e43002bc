"""
Exception taxonomy for the scrape pipeline.
"""

from __future__ import annotations


class ScrapeError(Exception):
    """Base exception for scrape pipeline failures."""


class PersistenceError(ScrapeError):
    """Raised when the job store is unavailable or a write fails."""


class DiscoveryError(ScrapeError):
    """Raised when fetching pages for a domain fails."""


class ExtractorError(ScrapeError):
    """Raised by an extractor; always contained to that extractor's section."""

    def __init__(self, extractor: str, message: str) -> None:
        super().__init__(f"{extractor}: {message}")
        self.extractor = extractor


class PipelineError(ScrapeError):
    """Raised when a job cannot be completed and must be marked failed."""


class JobCancelled(Exception):
    """Raised at a worker checkpoint once its job is no longer active."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job cancelled: {job_id}")
        self.job_id = job_id
