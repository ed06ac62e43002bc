"""
app/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.services.event_publisher import ChannelBroadcaster
from app.services.job_manager import JobManager


def get_job_manager(request: Request) -> JobManager:
    """
    Return the job manager created by the application lifespan.
    """

    manager: JobManager | None = getattr(request.app.state, "job_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job manager is not running.",
        )
    return manager


def get_broadcaster(request: Request) -> ChannelBroadcaster:
    broadcaster: ChannelBroadcaster | None = getattr(request.app.state, "broadcaster", None)
    if broadcaster is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event broadcaster is not running.",
        )
    return broadcaster
