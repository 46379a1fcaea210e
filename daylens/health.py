from __future__ import annotations

from dataclasses import replace
from typing import Tuple

from .models import HealthStatus


class HealthSupervisor:
    """Readiness flags for the store, the classifier and periodic capture.

    Flags change only at startup and when periodic capture is started or stopped.
    """

    def __init__(self, log):
        self._logger = log
        self._status = HealthStatus()

    def mark_store(self, ready: bool) -> None:
        self._status.store_ready = ready
        self._log_transition("store", ready)

    def mark_classifier(self, ready: bool) -> None:
        self._status.classifier_ready = ready
        self._log_transition("classifier", ready)

    def mark_periodic_capture(self, active: bool) -> None:
        self._status.periodic_capture_active = active
        self._log_transition("periodic capture", active)

    def can_start_periodic_capture(self) -> Tuple[bool, str | None]:
        if not self._status.store_ready:
            return False, "Cannot start periodic capture: store not initialized"
        if not self._status.classifier_ready:
            return False, "Cannot start periodic capture: classifier not initialized"
        return True, None

    def is_healthy(self) -> bool:
        status = self._status
        return status.store_ready and status.classifier_ready and status.periodic_capture_active

    def status(self) -> HealthStatus:
        return replace(self._status)

    def _log_transition(self, name: str, ready: bool) -> None:
        if ready:
            self._logger.info("Health: %s ready", name)
        else:
            self._logger.warning("Health: %s not ready", name)
