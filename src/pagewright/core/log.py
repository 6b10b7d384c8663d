"""Logging setup and secret masking."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagewright.config.schema import LoggingConfig

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(config: LoggingConfig) -> None:
    """Install handlers on the ``pagewright`` logger from config."""
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter: logging.Formatter = (
        JsonFormatter() if config.structured else logging.Formatter(_PLAIN_FORMAT)
    )

    logger = logging.getLogger("pagewright")
    logger.handlers.clear()
    logger.setLevel(level)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if config.file:
        path = Path(config.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def mask_secret(value: str | None) -> str:
    """Mask a secret for display: first 4 and last 3 characters survive."""
    if not value:
        return "(empty)"
    if len(value) <= 7:
        return "*" * len(value)
    return f"{value[:4]}…{value[-3:]}"
