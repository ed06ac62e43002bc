"""
tests/test_db_config.py

Database URL resolution for the job store.
"""

from __future__ import annotations

import pytest

from db import config as db_config

_URL_VARS = (
    "SCRAPE_DATABASE_URL",
    "DATABASE_URL",
    "CLOUD_DATABASE_URL",
    "LOCAL_DATABASE_URL",
    "ENVIRONMENT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _URL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(db_config, "load_env_files", lambda: None)


def test_scrape_url_wins_and_is_normalized(monkeypatch) -> None:
    monkeypatch.setenv("SCRAPE_DATABASE_URL", "postgres://u:p@db:5432/scrape")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@other/other")

    assert db_config.resolve_database_url() == "postgresql+psycopg://u:p@db:5432/scrape"


def test_cloud_environment_requires_a_url(monkeypatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "production")

    with pytest.raises(RuntimeError, match="ENVIRONMENT=production"):
        db_config.resolve_database_url()

    monkeypatch.setenv("CLOUD_DATABASE_URL", "postgresql://u:p@cloud/scrape")
    assert db_config.resolve_database_url() == "postgresql+psycopg://u:p@cloud/scrape"


def test_local_runs_fall_back_to_sqlite(monkeypatch) -> None:
    assert db_config.resolve_database_url() == db_config.DEFAULT_SQLITE_URL

    monkeypatch.setenv("LOCAL_DATABASE_URL", "postgresql://u:p@localhost/scrape")
    assert db_config.resolve_database_url().startswith("postgresql+psycopg://")


def test_mask_database_url() -> None:
    assert (
        db_config.mask_database_url("postgresql+psycopg://scraper:secret@db:5432/scrape")
        == "postgresql+psycopg://scraper:***@db:5432/scrape"
    )
    assert db_config.mask_database_url("sqlite:///scrape_jobs.db") == "sqlite:///scrape_jobs.db"
