"""
Structured logging helpers for the scrape pipeline.

Every pipeline event is one compact JSON line: `{"event": ..., **fields}`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

MAX_FIELD_CHARS = 500
MAX_ERROR_CHARS = 2000


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
        return value[:MAX_FIELD_CHARS] + "..."
    return value


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line. None-valued fields are dropped and long
    strings (page URLs, error text) are clipped.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event}
    payload.update((key, _clip(value)) for key, value in fields.items() if value is not None)
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def truncate_error(exc: BaseException, limit: int = MAX_ERROR_CHARS) -> str:
    """
    Render an exception as `Type: message`, clipped to fit the job's error
    column.
    """

    message = str(exc).strip() or "no details"
    return f"{type(exc).__name__}: {message}"[:limit]
