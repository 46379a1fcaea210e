from __future__ import annotations

import threading
import time
from typing import Optional

from pynput import keyboard, mouse


class InputIdleMonitor:
    """Tracks the last keyboard/mouse event so periodic capture can skip idle intervals."""

    def __init__(self, idle_threshold_seconds: float, log):
        self._idle_threshold = idle_threshold_seconds
        self._logger = log
        self._last_input = time.monotonic()
        self._lock = threading.Lock()
        self._mouse_listener: Optional[mouse.Listener] = None
        self._keyboard_listener: Optional[keyboard.Listener] = None

    def start(self) -> None:
        if self._mouse_listener or self._keyboard_listener:
            return

        self._mouse_listener = mouse.Listener(on_move=self._touch, on_click=self._touch, on_scroll=self._touch)
        self._keyboard_listener = keyboard.Listener(on_press=self._touch)
        self._mouse_listener.start()
        self._keyboard_listener.start()
        self._logger.debug("Input listeners started (idle threshold %.0fs)", self._idle_threshold)

    def stop(self) -> None:
        if self._mouse_listener:
            self._mouse_listener.stop()
            self._mouse_listener = None
        if self._keyboard_listener:
            self._keyboard_listener.stop()
            self._keyboard_listener = None

    def _touch(self, *args, **kwargs) -> None:
        with self._lock:
            self._last_input = time.monotonic()

    def idle_seconds(self) -> float:
        with self._lock:
            return time.monotonic() - self._last_input

    def is_idle(self) -> bool:
        return self.idle_seconds() > self._idle_threshold
