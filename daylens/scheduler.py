from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, Set
from uuid import uuid4

from . import events
from .capture_queue import CaptureQueue
from .events import EventChannel
from .models import Capture
from .utils import ensure_directory

PRIMARY = "primary"
EXTRA = "extra"
CONTEXTS = (PRIMARY, EXTRA)

DEFAULT_INTERVAL_SECONDS = 45.0

CaptureHandler = Callable[[Capture], Awaitable[None]]


class CaptureError(RuntimeError):
    pass


class CaptureScheduler:
    """Drives on-demand and periodic capture around a shared hide/capture/show cycle.

    Both paths take ``_capture_lock`` for the whole cycle. A periodic tick that finds the
    lock held by an on-demand capture skips its turn instead of waiting.
    """

    def __init__(
        self,
        source,
        window,
        primary_queue: CaptureQueue,
        extra_queue: CaptureQueue,
        productivity_dir: Path,
        log,
        channel: EventChannel | None = None,
        idle_monitor=None,
    ):
        self._source = source
        self._window = window
        self._queues = {PRIMARY: primary_queue, EXTRA: extra_queue}
        self._productivity_dir = ensure_directory(productivity_dir)
        self._logger = log
        self._channel = channel
        self._idle_monitor = idle_monitor
        self._context = PRIMARY
        self._capture_lock = asyncio.Lock()

        self._periodic_task: Optional[asyncio.Task] = None
        self._periodic_enabled = False
        self._generation = 0
        self._ticks_in_flight: Set[int] = set()

    @property
    def context(self) -> str:
        return self._context

    def set_context(self, context: str) -> None:
        if context not in CONTEXTS:
            raise ValueError(f"Unknown capture context: {context}")
        self._context = context

    def queue_for(self, context: str | None = None) -> CaptureQueue:
        return self._queues[context or self._context]

    async def take_capture(self) -> Capture:
        if not self._window.is_healthy():
            raise CaptureError("No main window available")

        queue = self.queue_for()
        destination = queue.directory / f"{uuid4()}.png"
        async with self._capture_lock:
            capture = await self._hidden_capture(destination)
        queue.push(capture)

        self._logger.info("On-demand capture stored in %s queue (%s/%s)", queue.name, len(queue), queue.capacity)
        self._publish(events.CAPTURE_TAKEN, {"path": str(capture.path), "context": self._context})
        return capture

    def clear_queues(self) -> None:
        for queue in self._queues.values():
            queue.clear()
        self._context = PRIMARY
        self._publish(events.QUEUES_RESET)

    def start_periodic(self, on_capture: CaptureHandler, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        if self._periodic_task is not None:
            self.stop_periodic()

        interval_seconds = max(0.0, float(interval_seconds))
        self._generation += 1
        self._periodic_enabled = True
        self._periodic_task = asyncio.get_running_loop().create_task(
            self._run_periodic(self._generation, interval_seconds, on_capture),
            name="daylens-periodic-capture",
        )
        self._logger.info("Periodic capture started (every %.0fs)", interval_seconds)
        self._publish(events.PERIODIC_STARTED, {"interval_seconds": interval_seconds})

    def stop_periodic(self) -> None:
        task = self._periodic_task
        self._periodic_task = None
        self._periodic_enabled = False
        stopped_generation = self._generation
        self._generation += 1
        # An in-flight tick runs to completion and the loop then sees the new generation.
        if task is not None and stopped_generation not in self._ticks_in_flight:
            task.cancel()
        self._logger.info("Periodic capture stopped")
        self._publish(events.PERIODIC_STOPPED)

    def is_periodic_active(self) -> bool:
        return self._periodic_enabled and self._periodic_task is not None

    async def _run_periodic(self, generation: int, interval_seconds: float, on_capture: CaptureHandler) -> None:
        while self._generation == generation:
            await asyncio.sleep(interval_seconds)
            if self._generation != generation or not self._periodic_enabled:
                return
            self._ticks_in_flight.add(generation)
            try:
                await self.periodic_tick(on_capture)
            finally:
                self._ticks_in_flight.discard(generation)

    async def periodic_tick(self, on_capture: CaptureHandler) -> Capture | None:
        if not self._periodic_enabled:
            return None
        try:
            if self._capture_lock.locked():
                self._logger.info("Skipping periodic capture: on-demand capture in progress")
                return None
            if self._idle_monitor is not None and self._idle_monitor.is_idle():
                self._logger.info("Skipping periodic capture: input idle")
                return None

            destination = self._productivity_dir / f"productivity_{uuid4()}.png"
            async with self._capture_lock:
                capture = await self._hidden_capture(destination)
            await on_capture(capture)
            return capture
        except Exception as exc:
            self._logger.exception("Periodic capture failed: %s", exc)
            return None

    async def _hidden_capture(self, destination: Path) -> Capture:
        self._window.hide()
        try:
            return await asyncio.to_thread(self._source.capture, destination)
        finally:
            self._window.show()

    def _publish(self, name: str, payload=None) -> None:
        if self._channel is not None:
            self._channel.publish(name, payload)
