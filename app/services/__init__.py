"""
app/services package marker.
"""

from app.services.event_publisher import (
    JOB_UPDATE_EVENT,
    ChannelBroadcaster,
    EventPublisher,
    NullEventPublisher,
    job_channel,
)
from app.services.job_manager import JobManager, build_job_manager

__all__ = [
    "JOB_UPDATE_EVENT",
    "ChannelBroadcaster",
    "EventPublisher",
    "JobManager",
    "NullEventPublisher",
    "build_job_manager",
    "job_channel",
]
