"""Structured JSON logging for StockRelay.

Every record becomes one JSON object on a single line:

    {"timestamp", "level", "logger", "message",
     <delivery context>, <other extra fields>, "exception"?}

The delivery context is whatever of event_id, event_type, aggregate_id,
subscriber, queue, routing_key and attempt the caller passed through
``extra``; those keys come first and in that order so log lines for one
fact line up when read side by side.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

ROOT_LOGGER = "stockrelay"

_CONTEXT_ORDER = (
    "event_id",
    "event_type",
    "aggregate_id",
    "subscriber",
    "queue",
    "routing_key",
    "attempt",
)

# Attributes every LogRecord has; anything else on a record came from extra={}
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}

_level: int = logging.INFO


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRIBUTES}
    ordered = {k: extras.pop(k) for k in _CONTEXT_ORDER if k in extras}
    ordered.update(extras)
    return ordered


class JSONFormatter(logging.Formatter):
    """JSON formatter with UTC ISO8601 timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _extras(record).items():
            entry.setdefault(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        try:
            return json.dumps(entry, default=str)
        except (TypeError, ValueError):
            return str(entry)


def get_logger(name: str = ROOT_LOGGER, level: int | None = None) -> logging.Logger:
    """Return a logger that writes JSON lines to stderr.

    The handler is attached once per logger. Without an explicit level the
    logger follows the last set_log_level() call (INFO until then).
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(_level if level is None else level)
    return logger


def set_log_level(level: int | str) -> None:
    """Set the level of every stockrelay logger, including ones created later."""
    global _level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    _level = level
    for name in list(logging.root.manager.loggerDict):
        if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
            logging.getLogger(name).setLevel(level)
