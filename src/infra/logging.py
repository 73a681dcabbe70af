"""Logging configuration helpers."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per record; ``extra`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 - logging interface name
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        extras = {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}
        payload.update(extras)
        return json.dumps(payload, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(default_level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure the root logger.

    ``LOG_LEVEL`` overrides the level and ``LOG_FORMAT`` (``json`` or ``text``)
    the output format; JSON is the default so that log shippers can parse the
    structured ``extra`` fields.
    """

    level_name = os.getenv("LOG_LEVEL", default_level)
    level = getattr(logging, level_name.upper(), logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(TEXT_FORMAT) if fmt == "text" else JsonFormatter())
    root.addHandler(handler)

    # websockets logs every frame at DEBUG; keep it quiet unless asked for.
    logging.getLogger("websockets").setLevel(max(level, logging.INFO))
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = ["configure_logging", "JsonFormatter"]
