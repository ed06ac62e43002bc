"""
db/models/domain_record.py

Durable anchor per crawled domain holding the latest aggregate result.
Created with the first job for a domain, updated in place by each successful
crawl, never deleted.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class DomainRecord(Base, TimestampMixin):
    __tablename__ = "domains"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Serialized aggregate result; null until the first successful crawl",
    )
    last_job_id: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )

    __table_args__ = (Index("ix_domains_updated_at", "updated_at"),)

    def __repr__(self) -> str:
        return f"<DomainRecord domain={self.domain!r} status={self.status!r}>"
