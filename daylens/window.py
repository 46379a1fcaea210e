from __future__ import annotations

from typing import Protocol


class WindowController(Protocol):
    def hide(self) -> None: ...

    def show(self) -> None: ...

    def is_healthy(self) -> bool: ...


class HeadlessWindow:
    """Window controller for unattended runs: there is no window to hide, so it only tracks visibility."""

    def __init__(self, log):
        self._logger = log
        self.visible = True

    def hide(self) -> None:
        self.visible = False
        self._logger.debug("Window hidden for capture")

    def show(self) -> None:
        self.visible = True
        self._logger.debug("Window restored after capture")

    def is_healthy(self) -> bool:
        return True
