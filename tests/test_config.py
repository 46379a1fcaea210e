from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from daylens.config import get_settings


class SettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()
        self._tmp.cleanup()

    def _env(self, **values: str) -> dict:
        base = {"DATA_DIR": str(self.root / "data"), "LOG_DIR": str(self.root / "logs")}
        base.update(values)
        return base

    def test_local_backend_defaults(self) -> None:
        with mock.patch.dict(os.environ, self._env(ANALYZER_BACKEND="local"), clear=True):
            settings = get_settings()

        self.assertEqual(settings.timezone.key, "UTC")
        self.assertEqual(settings.capture.interval_seconds, 45)
        self.assertEqual(settings.capture.queue_capacity, 5)
        self.assertTrue(settings.capture.delete_after_analysis)
        self.assertFalse(settings.capture.skip_when_idle)
        self.assertIsNone(settings.gemini)
        self.assertEqual(settings.insights.min_gap_minutes, 5)
        self.assertEqual(settings.insights.max_attempts, 3)
        self.assertEqual(settings.storage.db_path, (self.root / "data" / "daylens.db").resolve())
        self.assertEqual(settings.capture.primary_dir.name, "screenshots")

    def test_gemini_backend_requires_key(self) -> None:
        with mock.patch.dict(os.environ, self._env(ANALYZER_BACKEND="gemini"), clear=True):
            with self.assertRaises(RuntimeError):
                get_settings()

    def test_gemini_backend_with_key(self) -> None:
        env = self._env(ANALYZER_BACKEND="gemini", GEMINI_API_KEY="test-key-1234567890", TIMEZONE="Asia/Tokyo")
        with mock.patch.dict(os.environ, env, clear=True):
            settings = get_settings()
        self.assertEqual(settings.gemini.api_key, "test-key-1234567890")
        self.assertEqual(settings.timezone.key, "Asia/Tokyo")

    def test_unknown_backend_is_rejected(self) -> None:
        with mock.patch.dict(os.environ, self._env(ANALYZER_BACKEND="mystery"), clear=True):
            with self.assertRaises(RuntimeError):
                get_settings()

    def test_boolean_flags(self) -> None:
        env = self._env(ANALYZER_BACKEND="local", DELETE_CAPTURE_AFTER_ANALYSIS="no", SKIP_CAPTURE_WHEN_IDLE="yes")
        with mock.patch.dict(os.environ, env, clear=True):
            settings = get_settings()
        self.assertFalse(settings.capture.delete_after_analysis)
        self.assertTrue(settings.capture.skip_when_idle)


if __name__ == "__main__":
    unittest.main()
