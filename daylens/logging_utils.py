from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .config import LoggingSettings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


def init_logger(name: str, settings: LoggingSettings) -> logging.Logger:
    """Return the script-level logger, writing to ``<log dir>/<name>.log`` and the console."""
    settings.directory.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(f"daylens.{name}")
    logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    logger.propagate = False

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        file_handler = RotatingFileHandler(
            settings.directory / f"{name}.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)

        logger.addHandler(file_handler)
        logger.addHandler(console_handler)

    return logger


def component_logger(parent: logging.Logger, component: str) -> logging.Logger:
    # Child loggers share the parent's handlers through propagation.
    return parent.getChild(component)
