from __future__ import annotations

from pathlib import Path

from .utils import png_data_url


class ImageStore:
    """Plain file I/O for captured images."""

    def __init__(self, log):
        self._logger = log

    def read(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def delete(self, path: Path) -> None:
        Path(path).unlink()
        self._logger.debug("Deleted capture %s", path)

    def preview(self, path: Path) -> str:
        return png_data_url(self.read(path))
