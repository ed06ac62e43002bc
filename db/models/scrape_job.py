"""
db/models/scrape_job.py

Scrape job model: durable lifecycle record for one domain crawl request.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class ScrapeJobRecord(Base, TimestampMixin):
    __tablename__ = "scrape_jobs"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Opaque job id (uuid4 hex)",
    )
    domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    depth: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    max_pages: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    priority: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="high, normal, low",
    )
    extractors: Mapped[list[str] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Selected extractor kinds; empty means all",
    )
    bypass_cooldown: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="queued, processing, complete, failed, cancelled",
    )
    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_scrape_jobs_status", "status"),
        Index("ix_scrape_jobs_domain", "domain"),
        Index("ix_scrape_jobs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ScrapeJobRecord id={self.id} domain={self.domain!r} status={self.status!r}>"
