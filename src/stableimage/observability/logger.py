"""Structured JSON logger for stableimage.

Every log record is emitted as a single-line JSON object.  Before a record
is serialised, any ``Bearer <credential>`` sequence in the message or in the
structured fields is replaced with a redacted marker, so a credential that
slips into a log call never reaches the stream in full.

Typical structured output::

    {"ts": "2026-01-01T12:00:00.123456+00:00", "level": "INFO",
     "logger": "stableimage.poller", "message": "Task completed",
     "op": "wait_for_result", "task_id": "a1b2", "attempts": 3}

Usage::

    from stableimage.observability import get_logger

    log = get_logger("stableimage.transport")
    log.debug("sending", extra={"extra_fields": {"endpoint": "/v2beta/..."}})

Components take an optional ``logger`` argument and fall back to
:func:`get_logger`, so tests can hand each instance its own logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from stableimage.utils.redact import mask_bearer, redact


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys: ``ts`` (ISO-8601 UTC), ``level``, ``logger`` and
    ``message``.  Fields passed via ``extra={"extra_fields": {...}}`` are
    redacted and merged into the top-level object.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_bearer(record.getMessage()),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(redact(extra_fields))

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = mask_bearer(self.formatException(record.exc_info))

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


# One handler per logger name so that ``get_logger`` is idempotent.
_configured_loggers: set[str] = set()


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        return resolved
    return level


def get_logger(
    name: str = "stableimage",
    *,
    level: int | str | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Defaults to ``"stableimage"``.
    level:
        Minimum log level as an ``int`` or case-insensitive name
        (``"debug"``, ``"INFO"``...).  Applied on every call where it is
        given; when omitted a new logger starts at ``INFO`` and an existing
        one keeps its level.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.  Only
        used the first time a given *name* is configured.

    Returns
    -------
    logging.Logger
        A logger with a single :class:`StructuredFormatter` handler.
        Repeated calls with the same *name* never add duplicate handlers.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        logger.setLevel(logging.INFO)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    if level is not None:
        logger.setLevel(_resolve_level(level))

    return logger
