"""create scrape job, domain and crawl state tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


# JSONB on PostgreSQL, JSON on SQLite.
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "scrape_jobs",
        sa.Column("id", sa.String(length=32), nullable=False, comment="Opaque job id (uuid4 hex)"),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("max_pages", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False, comment="high, normal, low"),
        sa.Column(
            "extractors",
            JSON_TYPE,
            nullable=True,
            comment="Selected extractor kinds; empty means all",
        ),
        sa.Column("bypass_cooldown", sa.Boolean(), nullable=False),
        sa.Column(
            "status",
            sa.String(length=32),
            nullable=False,
            comment="queued, processing, complete, failed, cancelled",
        ),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_scrape_jobs"),
    )
    op.create_index("ix_scrape_jobs_status", "scrape_jobs", ["status"], unique=False)
    op.create_index("ix_scrape_jobs_domain", "scrape_jobs", ["domain"], unique=False)
    op.create_index("ix_scrape_jobs_created_at", "scrape_jobs", ["created_at"], unique=False)

    op.create_table(
        "domains",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "data",
            JSON_TYPE,
            nullable=True,
            comment="Serialized aggregate result; null until the first successful crawl",
        ),
        sa.Column("last_job_id", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_domains"),
        sa.UniqueConstraint("domain", name="uq_domains_domain"),
    )
    op.create_index("ix_domains_updated_at", "domains", ["updated_at"], unique=False)

    op.create_table(
        "crawl_checkpoints",
        sa.Column("job_id", sa.String(length=32), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column(
            "state",
            JSON_TYPE,
            nullable=False,
            comment="frontier, visited and fetched pages of an unfinished crawl",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("job_id", name="pk_crawl_checkpoints"),
    )

    op.create_table(
        "crawl_snapshots",
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("crawled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pages", JSON_TYPE, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("domain", name="pk_crawl_snapshots"),
    )


def downgrade() -> None:
    op.drop_table("crawl_snapshots")
    op.drop_table("crawl_checkpoints")
    op.drop_index("ix_domains_updated_at", table_name="domains")
    op.drop_table("domains")
    op.drop_index("ix_scrape_jobs_created_at", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_domain", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_status", table_name="scrape_jobs")
    op.drop_table("scrape_jobs")
