"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

DEFAULT_USER_AGENT = "DomainScrapeBot/1.0 (+https://example.com/bot)"


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class ScrapeSettings:
    """
    Runtime settings for the scrape job manager and crawl pipeline.
    """

    max_concurrent_jobs: int = 3
    completed_cache_size: int = 100
    default_depth: int = 2
    default_max_pages: int = 50
    cooldown_minutes: int = 60
    checkpoint_interval: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 15.0
    max_retries: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 2.0
    allow_when_robots_unreachable: bool = True
    max_content_chars: int = 500_000
    refresh_enabled: bool = False
    refresh_after_days: int = 30
    store_backend: str = "sql"


@lru_cache(maxsize=1)
def get_scrape_settings() -> ScrapeSettings:
    """
    Return cached scrape settings from environment variables.
    """

    return ScrapeSettings(
        max_concurrent_jobs=max(1, _get_int_env("SCRAPE_MAX_CONCURRENT_JOBS", 3)),
        completed_cache_size=max(1, _get_int_env("SCRAPE_COMPLETED_CACHE_SIZE", 100)),
        default_depth=max(0, _get_int_env("SCRAPE_DEFAULT_DEPTH", 2)),
        default_max_pages=max(1, _get_int_env("SCRAPE_DEFAULT_MAX_PAGES", 50)),
        cooldown_minutes=max(0, _get_int_env("SCRAPE_COOLDOWN_MINUTES", 60)),
        checkpoint_interval=max(1, _get_int_env("SCRAPE_CHECKPOINT_INTERVAL", 5)),
        user_agent=_get_str_env("SCRAPE_USER_AGENT", DEFAULT_USER_AGENT),
        timeout_seconds=max(1.0, _get_float_env("SCRAPE_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("SCRAPE_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.1, _get_float_env("SCRAPE_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("SCRAPE_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("SCRAPE_RATE_LIMIT_PER_SECOND", 2.0)),
        allow_when_robots_unreachable=_get_bool_env(
            "SCRAPE_ALLOW_WHEN_ROBOTS_UNREACHABLE",
            True,
        ),
        max_content_chars=max(1_000, _get_int_env("SCRAPE_MAX_CONTENT_CHARS", 500_000)),
        refresh_enabled=_get_bool_env("SCRAPE_REFRESH_ENABLED", False),
        refresh_after_days=max(1, _get_int_env("SCRAPE_REFRESH_AFTER_DAYS", 30)),
        store_backend=_get_str_env("SCRAPE_STORE_BACKEND", "sql").lower(),
    )
