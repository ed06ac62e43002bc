"""
Schemas for scrape job submission, status and result endpoints.

Wire fields are camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapeJobRequest(_CamelModel):
    domain: str = Field(min_length=1, max_length=255)
    depth: int | None = Field(default=None, ge=0)
    priority: str | None = None
    max_pages: int | None = Field(default=None, ge=1)
    extractors: list[str] | None = None
    bypass_cooldown: bool = False


class ScrapeJobAcceptedResponse(_CamelModel):
    job_id: str
    status: str
    estimated_time: str


class ScrapeJobStatusResponse(_CamelModel):
    job_id: str
    domain: str
    status: str
    progress: int
    message: str
    priority: str
    depth: int
    max_pages: int
    extractors: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class ScrapeJobListResponse(_CamelModel):
    jobs: list[ScrapeJobStatusResponse] = Field(default_factory=list)
    limit: int
    offset: int


class CancelJobResponse(_CamelModel):
    success: bool
    message: str


class ScrapeResultResponse(_CamelModel):
    job_id: str
    domain: str
    result: dict[str, Any]


class HealthResponse(_CamelModel):
    status: str
    processing_jobs: int
    queued_jobs: dict[str, int]
