from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List

CAPTURE_TAKEN = "capture-taken"
CAPTURE_DELETED = "capture-deleted"
QUEUES_RESET = "queues-reset"
ACTIVITY_RECORDED = "activity-recorded"
PERIODIC_STARTED = "periodic-started"
PERIODIC_STOPPED = "periodic-stopped"


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any = None
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventChannel:
    """Fan-out channel: the core publishes, presentation layers drain their own queue."""

    def __init__(self, maxsize: int = 100):
        self._maxsize = maxsize
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, name: str, payload: Any = None) -> None:
        event = Event(name=name, payload=payload)
        for queue in list(self._subscribers):
            if queue.full():
                # A slow subscriber loses its oldest event rather than blocking the core.
                queue.get_nowait()
            queue.put_nowait(event)
