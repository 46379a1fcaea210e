from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List

from .images import ImageStore
from .models import Capture
from .utils import ensure_directory

DEFAULT_CAPACITY = 5


class CaptureQueue:
    """Fixed-capacity FIFO of captures; the oldest entry is evicted (and its image deleted) on overflow."""

    def __init__(self, name: str, directory: Path, images: ImageStore, log, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.name = name
        self.directory = ensure_directory(directory)
        self.capacity = capacity
        self._images = images
        self._logger = log
        self._entries: Deque[Capture] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Capture]:
        return iter(list(self._entries))

    def items(self) -> List[Capture]:
        return list(self._entries)

    def push(self, capture: Capture) -> Capture | None:
        self._entries.append(capture)
        if len(self._entries) <= self.capacity:
            return None

        evicted = self._entries.popleft()
        self._logger.debug("Queue %s full (%s); evicting %s", self.name, self.capacity, evicted.path.name)
        self._delete_image(evicted)
        return evicted

    def remove(self, key: str | Path) -> bool:
        """Remove the capture whose id or path matches ``key``. Returns False when absent."""
        for capture in self._entries:
            if capture.id == str(key) or capture.path == Path(key):
                self._entries.remove(capture)
                self._delete_image(capture)
                return True
        return False

    def find(self, key: str | Path) -> Capture | None:
        for capture in self._entries:
            if capture.id == str(key) or capture.path == Path(key):
                return capture
        return None

    def clear(self) -> int:
        entries = list(self._entries)
        self._entries.clear()
        failures = 0
        for capture in entries:
            if not self._delete_image(capture):
                failures += 1
        if failures:
            self._logger.warning("Queue %s cleared with %s undeleted image(s)", self.name, failures)
        return len(entries)

    def _delete_image(self, capture: Capture) -> bool:
        try:
            self._images.delete(capture.path)
            return True
        except OSError as exc:
            self._logger.warning("Failed to delete %s: %s", capture.path, exc)
            return False
