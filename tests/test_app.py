from __future__ import annotations

import json
import logging
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from daylens import events
from daylens.app import AssistantAPI, build_context
from daylens.config import (
    AnalyzerSettings,
    AppSettings,
    CaptureSettings,
    InsightSettings,
    LocalLLMSettings,
    LoggingSettings,
    OutputSettings,
    StorageSettings,
)
from daylens.models import ActivityRecord, Capture
from daylens.scheduler import EXTRA

LOG = logging.getLogger("daylens.test.app")
UTC = timezone.utc

CLASSIFICATION = json.dumps(
    {
        "app_classification": "Code - app.py",
        "goal_relevance": "goal_related",
        "cognitive_state": "deep_focus",
        "context_switching": "continuing_task",
        "attention_residue": "clean_focus",
        "procrastination_signal": "none",
        "energy_level": "high_focus_work",
    }
)
INSIGHTS = json.dumps(
    {
        "executive_summary": "A short focused day.",
        "productivity_narrative": "Coding from 09:00.",
        "behavioral_patterns": "One session.",
        "recommendations": "Start at 09:00 again.",
    }
)


class _Service:
    def __init__(self, synth_replies=None):
        self.synth_replies = list(synth_replies or [])

    def classify(self, image_bytes: bytes, prompt: str) -> str:
        return CLASSIFICATION

    def synthesize(self, prompt: str) -> str:
        reply = self.synth_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class _Source:
    def capture(self, destination: Path) -> Capture:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"\x89PNG")
        return Capture(id=destination.stem, path=destination, captured_at=datetime.now(UTC))


class _Window:
    def __init__(self, healthy: bool = True):
        self.healthy = healthy

    def hide(self) -> None:
        pass

    def show(self) -> None:
        pass

    def is_healthy(self) -> bool:
        return self.healthy


def _settings(root: Path, delete_after_analysis: bool = True, db_path: Path | None = None) -> AppSettings:
    return AppSettings(
        timezone=UTC,
        capture=CaptureSettings(
            interval_seconds=45,
            capture_root=root / "captures",
            queue_capacity=5,
            delete_after_analysis=delete_after_analysis,
            skip_when_idle=False,
            idle_threshold_minutes=5,
        ),
        analyzer=AnalyzerSettings(backend="local", timeout_seconds=5),
        gemini=None,
        local_llm=LocalLLMSettings(
            base_url="http://localhost:1234/v1",
            api_key=None,
            model="test-model",
            max_tokens=256,
            temperature=0.0,
            timeout_seconds=5,
        ),
        insights=InsightSettings(retry_base_delay_seconds=0),
        storage=StorageSettings(db_path=db_path or root / "data" / "daylens.db"),
        logging=LoggingSettings(directory=root / "logs"),
        output=OutputSettings(summary_dir=root / "output"),
    )


def _record(created_at: datetime) -> ActivityRecord:
    return ActivityRecord(
        app_classification="Code - app.py",
        goal_relevance="goal_related",
        cognitive_state="deep_focus",
        context_switching="continuing_task",
        attention_residue="clean_focus",
        procrastination_signal="none",
        energy_level="high_focus_work",
        created_at=created_at,
    )


class AssistantAPITests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _api(self, service=None, window=None, **settings_kwargs) -> AssistantAPI:
        self.context = build_context(
            _settings(self.root, **settings_kwargs),
            LOG,
            source=_Source(),
            window=window or _Window(),
            service=service or _Service(),
        )
        return AssistantAPI(self.context)

    async def test_capture_list_delete_reset(self) -> None:
        api = self._api()

        taken = await api.take_capture()
        self.assertTrue(taken.success)
        self.assertTrue(taken.data["preview"].startswith("data:image/png;base64,"))

        listed = await api.list_captures()
        self.assertEqual([item["id"] for item in listed.data], [taken.data["id"]])

        self.assertTrue((await api.delete_capture(taken.data["id"])).success)
        missing = await api.delete_capture(taken.data["id"])
        self.assertFalse(missing.success)
        self.assertEqual(missing.error, "Capture not found")

        self.assertTrue((await api.set_context(EXTRA)).success)
        await api.take_capture()
        self.assertEqual(len(self.context.scheduler.queue_for(EXTRA)), 1)
        self.assertTrue((await api.reset_queues()).success)
        self.assertEqual(len(self.context.scheduler.queue_for(EXTRA)), 0)
        self.assertEqual(self.context.scheduler.context, "primary")

    async def test_capture_succeeds_when_preview_is_unavailable(self) -> None:
        api = self._api()
        with mock.patch.object(self.context.images, "preview", side_effect=OSError("unreadable")):
            result = await api.take_capture()

        self.assertTrue(result.success)
        self.assertIsNone(result.data["preview"])
        queued = self.context.scheduler.queue_for().items()
        self.assertEqual([capture.id for capture in queued], [result.data["id"]])

    async def test_capture_without_window_fails_cleanly(self) -> None:
        api = self._api(window=_Window(healthy=False))
        result = await api.take_capture()
        self.assertFalse(result.success)
        self.assertEqual(result.error, "No main window available")

    async def test_unknown_context(self) -> None:
        result = await self._api().set_context("somewhere")
        self.assertFalse(result.success)

    async def test_record_activity_persists_and_deletes_image(self) -> None:
        api = self._api()
        inbox = self.context.channel.subscribe()
        path = self.root / "productivity_1.png"
        path.write_bytes(b"\x89PNG")

        result = await api.record_activity(Capture(id="p1", path=path, captured_at=datetime.now(UTC)))

        self.assertTrue(result.success)
        self.assertIsNotNone(result.data.id)
        self.assertEqual(result.data.app_name, "Code")
        self.assertFalse(path.exists())
        self.assertEqual(inbox.get_nowait().name, events.ACTIVITY_RECORDED)
        self.assertIsNotNone(self.context.repository.latest_activity())

    async def test_record_activity_keeps_image_when_configured(self) -> None:
        api = self._api(delete_after_analysis=False)
        path = self.root / "productivity_2.png"
        path.write_bytes(b"\x89PNG")
        await api.record_activity(Capture(id="p2", path=path, captured_at=datetime.now(UTC)))
        self.assertTrue(path.exists())

    async def test_periodic_capture_lifecycle(self) -> None:
        api = self._api()
        started = await api.start_periodic_capture()
        self.assertTrue(started.success)
        self.assertTrue((await api.health()).data["healthy"])

        await api.stop_periodic_capture()
        health = await api.health()
        self.assertFalse(health.data["healthy"])
        self.assertFalse(health.data["status"].periodic_capture_active)

    async def test_periodic_capture_refused_without_classifier(self) -> None:
        with mock.patch("daylens.app.create_model_service", side_effect=RuntimeError("no backend")):
            context = build_context(_settings(self.root), LOG, source=_Source(), window=_Window())
        api = AssistantAPI(context)

        result = await api.start_periodic_capture()
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Cannot start periodic capture: classifier not initialized")
        self.assertFalse(context.scheduler.is_periodic_active())

    async def test_periodic_capture_refused_without_store(self) -> None:
        blocker = self.root / "not-a-directory"
        blocker.write_text("x")
        context = build_context(
            _settings(self.root, db_path=blocker / "daylens.db"),
            LOG,
            source=_Source(),
            window=_Window(),
            service=_Service(),
        )
        api = AssistantAPI(context)

        result = await api.start_periodic_capture()
        self.assertFalse(result.success)
        self.assertIn("store not initialized", result.error)
        self.assertFalse((await api.get_daily_stats()).success)

    async def test_daily_stats_and_hourly_breakdown(self) -> None:
        api = self._api()
        base = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
        for minutes in (0, 1, 2, 70):
            self.context.repository.insert_activity(_record(base + timedelta(minutes=minutes)))

        stats = await api.get_daily_stats(base.date())
        self.assertTrue(stats.success)
        self.assertEqual(stats.data.total_records, 4)
        self.assertEqual(stats.data.top_app, "Code")

        hourly = await api.get_hourly_breakdown(base.date())
        self.assertEqual([(b.hour, b.count) for b in hourly.data], [(9, 3), (10, 1)])

    async def test_insights_need_minimum_records(self) -> None:
        api = self._api()
        base = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
        for minutes in range(3):
            self.context.repository.insert_activity(_record(base + timedelta(minutes=minutes)))

        result = await api.generate_daily_insights(base.date())
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Need at least 5 activities to generate meaningful insights")
        self.assertEqual(result.data["activities"], 3)
        self.assertEqual(result.data["min_required"], 5)
        self.assertEqual(result.data["stats"].total_records, 3)

    async def test_insights_generated(self) -> None:
        api = self._api(service=_Service([INSIGHTS]))
        base = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
        for minutes in range(6):
            self.context.repository.insert_activity(_record(base + timedelta(minutes=minutes)))

        result = await api.generate_daily_insights(base.date())
        self.assertTrue(result.success)
        self.assertEqual(result.data["insights"].executive_summary, "A short focused day.")
        self.assertEqual(result.data["activity_count"], 6)
        self.assertEqual(result.data["date"], "2026-02-01")

    async def test_insight_failure_is_sanitized(self) -> None:
        failures = [RuntimeError("api key sk-secret rejected")] * 3
        api = self._api(service=_Service(failures))
        base = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
        for minutes in range(6):
            self.context.repository.insert_activity(_record(base + timedelta(minutes=minutes)))

        result = await api.generate_daily_insights(base.date())
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Daily insights generation failed after 3 attempts")
        self.assertNotIn("sk-secret", result.error)


if __name__ == "__main__":
    unittest.main()
