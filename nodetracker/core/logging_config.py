"""Node tracker logging configuration.

Call ``configure_logging()`` once at process startup (the CLI does this in
:mod:`nodetracker.__main__`).  Every other module defines its own logger at
module scope:

    import logging
    logger = logging.getLogger(__name__)

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default: INFO)
    LOG_FORMAT  text | json                      (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = ["configure_logging", "JsonFormatter", "SWEEP_ID_CTX", "SweepContextFilter"]

#: Short hex id of the sweep currently running in this async context.  Set by
#: :meth:`~nodetracker.tracker.service.NodeTracker.ping_all` and inherited by
#: every worker task it spawns.  ``"-"`` outside a sweep.
SWEEP_ID_CTX: ContextVar[str] = ContextVar("sweep_id", default="-")

logger = logging.getLogger(__name__)

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_FORMATS = {"text", "json"}

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(sweep_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Libraries that are chatty at INFO; held at WARNING unless DEBUG is active.
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "websockets")


class SweepContextFilter(logging.Filter):
    """Attach ``record.sweep_id`` from :data:`SWEEP_ID_CTX` to every record.

    Installed on the handler so it runs after propagation, just before
    formatting.  Never suppresses a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.sweep_id = SWEEP_ID_CTX.get("-")
        return True


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the entire process.

    Args:
        level: Logging level name.  Falls back to ``$LOG_LEVEL``, then "INFO".
        fmt: ``"text"`` or ``"json"``.  Falls back to ``$LOG_FORMAT``, then
            "text".
        force: Replace handlers installed by an earlier call (or by pytest).

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    resolved_fmt = (fmt or os.environ.get("LOG_FORMAT", "text")).lower()

    if resolved_level not in _VALID_LEVELS:
        raise ValueError(
            f"Unknown LOG_LEVEL {resolved_level!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_LEVELS))}"
        )
    if resolved_fmt not in _VALID_FORMATS:
        raise ValueError(
            f"Unknown LOG_FORMAT {resolved_fmt!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_FORMATS))}"
        )

    root = logging.getLogger()

    if root.handlers and not force:
        root.setLevel(resolved_level)
        return

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(SweepContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.setLevel(resolved_level)
    root.addHandler(handler)

    if resolved_level != "DEBUG":
        for noisy in _NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Output shape::

        {
            "ts":      "2026-10-16T12:34:56.789Z",
            "level":   "INFO",
            "logger":  "nodetracker.tracker.service",
            "message": "Sweep complete: 12 reachable, 3 failed",
            "extra":   {"event": "SWEEP_COMPLETE", "sweep_id": "a3f2b1c0"}
        }

    ``exc_info`` is added when the record carries an exception.
    """

    _RECORD_ATTRS: frozenset[str] = frozenset(
        {
            "args",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        ts = (
            datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.")
            + f"{int(record.msecs):03d}Z"
        )

        payload: dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "extra": {k: v for k, v in record.__dict__.items() if k not in self._RECORD_ATTRS},
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text

        return json.dumps(payload, default=str)
