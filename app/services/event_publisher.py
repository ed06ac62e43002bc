"""
app/services/event_publisher.py

Job progress broadcasting over job-scoped channels.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

JOB_UPDATE_EVENT = "job-update"

Subscriber = Callable[[str, dict[str, Any]], None]


def job_channel(job_id: str) -> str:
    return f"job-{job_id}"


class EventPublisher(Protocol):
    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        ...


class NullEventPublisher:
    """
    Publisher used when no transport is wired; drops every event.
    """

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        return None


class ChannelBroadcaster:
    """
    In-process publisher: subscribers join and leave channels explicitly.

    Delivery is best-effort. A failing subscriber is logged and skipped;
    it never affects other subscribers or the publishing job.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(channel, []).append(subscriber)

    def unsubscribe(self, channel: str, subscriber: Subscriber) -> None:
        with self._lock:
            subscribers = self._subscribers.get(channel)
            if not subscribers:
                return
            if subscriber in subscribers:
                subscribers.remove(subscriber)
            if not subscribers:
                del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(channel, []))
        for subscriber in subscribers:
            try:
                subscriber(event, dict(payload))
            except Exception:  # noqa: BLE001
                logger.warning("Event subscriber failed channel=%s event=%s", channel, event, exc_info=True)
