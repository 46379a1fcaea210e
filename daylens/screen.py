from __future__ import annotations

from datetime import datetime
from pathlib import Path
from uuid import uuid4

import pyautogui

from .models import Capture
from .utils import ensure_directory

pyautogui.FAILSAFE = False


class ScreenshotSource:
    """Grabs the full screen into a PNG file with pyautogui."""

    def __init__(self, timezone, log):
        self._timezone = timezone
        self._logger = log

    def capture(self, destination: Path) -> Capture:
        ensure_directory(destination.parent)
        captured_at = datetime.now(tz=self._timezone)

        screenshot = pyautogui.screenshot()
        screenshot.save(destination)

        self._logger.info("Captured screenshot %s", destination.name)
        return Capture(id=uuid4().hex, path=destination, captured_at=captured_at)
