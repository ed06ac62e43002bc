"""
app/api/routers/job_events.py

WebSocket transport for job progress events.

A connection joins channel `job-{job_id}` and receives every `job-update`
published on it until the client disconnects, which leaves the channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.event_publisher import ChannelBroadcaster, job_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["job-events"])


@router.websocket("/ws/jobs/{job_id}")
async def job_events(websocket: WebSocket, job_id: str) -> None:
    broadcaster: ChannelBroadcaster | None = getattr(websocket.app.state, "broadcaster", None)
    await websocket.accept()
    if broadcaster is None:
        await websocket.close(code=1013)
        return

    loop = asyncio.get_running_loop()
    events: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()

    # Called from worker threads.
    def forward(event: str, payload: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(events.put_nowait, (event, payload))

    channel = job_channel(job_id)
    broadcaster.subscribe(channel, forward)
    logger.info("Subscriber joined channel=%s", channel)

    receiver = asyncio.create_task(_drain_client(websocket))
    try:
        while not receiver.done():
            getter = asyncio.create_task(events.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            event, payload = getter.result()
            await websocket.send_json({"event": event, "data": payload})
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(channel, forward)
        receiver.cancel()
        logger.info("Subscriber left channel=%s", channel)


async def _drain_client(websocket: WebSocket) -> None:
    # Returns when the client disconnects.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
