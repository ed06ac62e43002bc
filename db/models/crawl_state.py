"""
db/models/crawl_state.py

Crawl bookkeeping: per-job resume checkpoints and per-domain page snapshots
used to honour the re-crawl cooldown.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class CrawlCheckpointRecord(Base, TimestampMixin):
    __tablename__ = "crawl_checkpoints"

    job_id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
    )
    domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    state: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        comment="frontier, visited and fetched pages of an unfinished crawl",
    )


class CrawlSnapshotRecord(Base, TimestampMixin):
    __tablename__ = "crawl_snapshots"

    domain: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    crawled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    pages: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
    )
