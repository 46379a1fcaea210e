"""Application wiring and the caller-facing surface.

``build_context`` constructs every component once at process start. ``AssistantAPI``
is what UI or CLI layers call; every method returns an :class:`OperationResult`
and logs (rather than returns) internal exception details.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from . import events
from .capture_queue import CaptureQueue
from .classifier import ActivityClassifier
from .config import AppSettings
from .events import EventChannel
from .health import HealthSupervisor
from .images import ImageStore
from .insights import InsightsGenerationError, InsightSynthesizer
from .logging_utils import component_logger
from .models import ActivityRecord, Capture, OperationResult
from .scheduler import CONTEXTS, EXTRA, PRIMARY, CaptureError, CaptureScheduler
from .stats import compute_daily_stats, hourly_breakdown
from .storage import ActivityRepository


@dataclass
class AppContext:
    settings: AppSettings
    logger: object
    images: ImageStore
    repository: Optional[ActivityRepository]
    scheduler: CaptureScheduler
    classifier: Optional[ActivityClassifier]
    synthesizer: Optional[InsightSynthesizer]
    health: HealthSupervisor
    channel: EventChannel


def create_model_service(settings: AppSettings, log):
    if settings.analyzer.backend == "local":
        from .local_llm_client import LocalLLMService

        return LocalLLMService(settings.local_llm, log)

    from .gemini_client import GeminiService

    return GeminiService(settings.gemini, log)


def build_context(settings: AppSettings, log, *, source=None, window=None, service=None, idle_monitor=None) -> AppContext:
    """Wire the pipeline. ``source``/``window``/``service`` default to the real collaborators."""
    health = HealthSupervisor(component_logger(log, "health"))
    channel = EventChannel()
    images = ImageStore(component_logger(log, "images"))

    repository: Optional[ActivityRepository] = None
    try:
        repository = ActivityRepository(settings.storage.db_path, settings.timezone, component_logger(log, "storage"))
        health.mark_store(repository.ping())
    except (sqlite3.Error, OSError) as exc:
        log.error("Failed to initialize activity store at %s: %s", settings.storage.db_path, exc)
        health.mark_store(False)

    if service is None:
        try:
            service = create_model_service(settings, component_logger(log, "model"))
        except Exception as exc:
            log.error("Failed to initialize %s model service: %s", settings.analyzer.backend, exc)
    health.mark_classifier(service is not None)

    classifier = synthesizer = None
    if service is not None:
        classifier = ActivityClassifier(
            service, images, component_logger(log, "classifier"), timeout_seconds=settings.analyzer.timeout_seconds
        )
        synthesizer = InsightSynthesizer(
            service,
            settings.insights,
            component_logger(log, "insights"),
            timeout_seconds=settings.analyzer.timeout_seconds,
            tz=settings.timezone,
        )

    if source is None:
        from .screen import ScreenshotSource

        source = ScreenshotSource(settings.timezone, component_logger(log, "screen"))
    if window is None:
        from .window import HeadlessWindow

        window = HeadlessWindow(component_logger(log, "window"))

    capture = settings.capture
    queue_log = component_logger(log, "queue")
    scheduler = CaptureScheduler(
        source=source,
        window=window,
        primary_queue=CaptureQueue(PRIMARY, capture.primary_dir, images, queue_log, capture.queue_capacity),
        extra_queue=CaptureQueue(EXTRA, capture.extra_dir, images, queue_log, capture.queue_capacity),
        productivity_dir=capture.productivity_dir,
        log=component_logger(log, "scheduler"),
        channel=channel,
        idle_monitor=idle_monitor,
    )

    return AppContext(
        settings=settings,
        logger=log,
        images=images,
        repository=repository,
        scheduler=scheduler,
        classifier=classifier,
        synthesizer=synthesizer,
        health=health,
        channel=channel,
    )


class AssistantAPI:
    def __init__(self, context: AppContext):
        self._ctx = context
        self._logger = context.logger

    # Captures

    async def take_capture(self) -> OperationResult:
        try:
            capture = await self._ctx.scheduler.take_capture()
        except CaptureError as exc:
            return OperationResult.fail(str(exc))
        except Exception as exc:
            self._logger.exception("Error taking capture: %s", exc)
            return OperationResult.fail("Failed to take capture")

        # The capture is already queued; a missing preview does not undo it.
        try:
            preview = await asyncio.to_thread(self._ctx.images.preview, capture.path)
        except OSError as exc:
            self._logger.warning("Preview unavailable for %s: %s", capture.path, exc)
            preview = None
        return OperationResult.ok({"id": capture.id, "path": str(capture.path), "preview": preview})

    async def list_captures(self) -> OperationResult:
        queue = self._ctx.scheduler.queue_for()
        items = []
        for capture in queue.items():
            try:
                preview = await asyncio.to_thread(self._ctx.images.preview, capture.path)
            except OSError as exc:
                self._logger.warning("Preview unavailable for %s: %s", capture.path, exc)
                preview = None
            items.append({"id": capture.id, "path": str(capture.path), "preview": preview})
        return OperationResult.ok(items)

    async def delete_capture(self, key: str) -> OperationResult:
        queue = self._ctx.scheduler.queue_for()
        if not queue.remove(key):
            return OperationResult.fail("Capture not found")
        self._ctx.channel.publish(events.CAPTURE_DELETED, {"key": str(key)})
        return OperationResult.ok()

    async def reset_queues(self) -> OperationResult:
        try:
            self._ctx.scheduler.clear_queues()
        except Exception as exc:
            self._logger.exception("Error resetting queues: %s", exc)
            return OperationResult.fail("Failed to reset capture queues")
        return OperationResult.ok()

    async def set_context(self, context: str) -> OperationResult:
        if context not in CONTEXTS:
            return OperationResult.fail(f"Unknown capture context: {context}")
        self._ctx.scheduler.set_context(context)
        return OperationResult.ok({"context": context})

    # Periodic capture

    async def record_activity(self, capture: Capture) -> OperationResult:
        """Classify one periodic capture and persist the resulting record."""
        classifier = self._ctx.classifier
        repository = self._ctx.repository
        if classifier is None or repository is None:
            return OperationResult.fail("Classification pipeline not ready")

        record = await classifier.classify(capture)
        try:
            stored = await asyncio.to_thread(repository.insert_activity, record)
        except (sqlite3.Error, ValueError) as exc:
            self._logger.error("Failed to store activity record: %s", exc)
            return OperationResult.fail("Failed to store activity record")
        finally:
            if self._ctx.settings.capture.delete_after_analysis:
                self._discard(capture)

        self._ctx.channel.publish(events.ACTIVITY_RECORDED, stored.to_dict())
        return OperationResult.ok(stored)

    async def start_periodic_capture(self) -> OperationResult:
        allowed, reason = self._ctx.health.can_start_periodic_capture()
        if not allowed:
            self._logger.error("%s", reason)
            return OperationResult.fail(reason, data=self._ctx.health.status())

        async def on_capture(capture: Capture) -> None:
            await self.record_activity(capture)

        try:
            self._ctx.scheduler.start_periodic(on_capture, self._ctx.settings.capture.interval_seconds)
        except Exception as exc:
            self._logger.exception("Failed to start periodic capture: %s", exc)
            self._ctx.health.mark_periodic_capture(False)
            return OperationResult.fail("Failed to start periodic capture")
        self._ctx.health.mark_periodic_capture(True)
        return OperationResult.ok()

    async def stop_periodic_capture(self) -> OperationResult:
        self._ctx.scheduler.stop_periodic()
        self._ctx.health.mark_periodic_capture(False)
        return OperationResult.ok()

    async def health(self) -> OperationResult:
        return OperationResult.ok({"healthy": self._ctx.health.is_healthy(), "status": self._ctx.health.status()})

    # Daily analysis

    async def get_daily_stats(self, day: date | None = None) -> OperationResult:
        day = day or self._today()
        records = await self._load_day(day)
        if records is None:
            return OperationResult.fail("Failed to load activity records")
        stats = compute_daily_stats(records, self._ctx.settings.capture.interval_seconds, tz=self._ctx.settings.timezone)
        return OperationResult.ok(stats)

    async def get_hourly_breakdown(self, day: date | None = None) -> OperationResult:
        day = day or self._today()
        records = await self._load_day(day)
        if records is None:
            return OperationResult.fail("Failed to load activity records")
        return OperationResult.ok(hourly_breakdown(records, tz=self._ctx.settings.timezone))

    async def generate_daily_insights(self, day: date | None = None) -> OperationResult:
        day = day or self._today()
        records = await self._load_day(day)
        if records is None:
            return OperationResult.fail("Failed to load activity records")

        stats = compute_daily_stats(records, self._ctx.settings.capture.interval_seconds, tz=self._ctx.settings.timezone)
        minimum = self._ctx.settings.insights.min_records
        if len(records) < minimum:
            return OperationResult.fail(
                f"Need at least {minimum} activities to generate meaningful insights",
                data={"stats": stats, "activities": len(records), "min_required": minimum},
            )

        synthesizer = self._ctx.synthesizer
        if synthesizer is None:
            return OperationResult.fail("Insight generation is not configured")

        try:
            insights = await synthesizer.generate(records)
        except InsightsGenerationError as exc:
            self._logger.error("%s", exc)
            return OperationResult.fail(f"Daily insights generation failed after {exc.attempts} attempts")

        return OperationResult.ok(
            {"insights": insights, "stats": stats, "date": day.isoformat(), "activity_count": len(records)}
        )

    async def _load_day(self, day: date) -> list[ActivityRecord] | None:
        repository = self._ctx.repository
        if repository is None:
            self._logger.error("Activity store is not available")
            return None
        try:
            return await asyncio.to_thread(repository.daily_activities, day)
        except sqlite3.Error as exc:
            self._logger.error("Error loading activities for %s: %s", day.isoformat(), exc)
            return None

    def _today(self) -> date:
        return datetime.now(tz=self._ctx.settings.timezone).date()

    def _discard(self, capture: Capture) -> None:
        try:
            self._ctx.images.delete(capture.path)
        except OSError as exc:
            self._logger.warning("Failed to delete %s: %s", capture.path, exc)
