"""
JSON logging for the Sage Codex backend.

Every logger under the ``sage`` namespace writes one JSON object per line.
With ``LOG_FILE`` set, all records go to that file and WARNING and above are
mirrored to stderr; with ``LOG_FILE`` empty, stderr gets everything at the
configured level.

Usage::

    from src.utils.logging_config import get_logger

    logger = get_logger("sage.tools.inscribing")
    logger.info("Wave populated", extra={"scene_arc_id": arc, "metadata": {"wave": 1}})

Handlers that log many records for one session can bind it once::

    log = ContextAdapter(get_logger("sage.ws.runner"), session_id=session_id)
    log.info("Turn complete")
    log.bind(scene_arc_id=arc).warning("Persistence failed")
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

ROOT_LOGGER = "sage"

# LogRecord attributes copied into the JSON entry when a caller sets them
CONTEXT_FIELDS = ("session_id", "scene_arc_id", "tool", "tool_use_id", "turn_id", "duration_ms", "metadata")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, context."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed context (session id, scene arc...) to every record.

    Per-call ``extra`` values win over the bound ones.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, context)

    def bind(self, **context: Any) -> "ContextAdapter":
        return ContextAdapter(self.logger, **{**self.extra, **context})

    def process(
        self,
        msg: str,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


_configured = False


def _handlers(log_file: str, level: int | str) -> list[logging.Handler]:
    formatter = JSONFormatter()
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setFormatter(formatter)
    if not log_file:
        stderr.setLevel(level)
        return [stderr]

    stderr.setLevel(logging.WARNING)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    return [file_handler, stderr]


def setup_logging(log_file: str | None = None, level: int | str | None = None) -> None:
    """Attach JSON handlers to the ``sage`` logger.

    Arguments override ``Settings.log_file`` and ``Settings.log_level``. Only
    the first call configures anything.
    """
    global _configured
    if _configured:
        return
    _configured = True

    from src.config import get_settings
    settings = get_settings()
    level = level or settings.log_level

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    for handler in _handlers(settings.log_file if log_file is None else log_file, level):
        root.addHandler(handler)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under the ``sage`` namespace; configures logging on first use."""
    setup_logging()
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
