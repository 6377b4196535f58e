"""Logging setup: JSON lines in staging/production, colored text in development.

Records carry workflow correlation through ``extra=``: ``execution_id``,
``step_id``, ``contract_address`` and ``tx_hash``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_EXTRA_FIELDS = (
    "execution_id",
    "workflow_id",
    "step_id",
    "contract_address",
    "tx_hash",
    "duration_ms",
    "status_code",
    "method",
    "path",
)

_QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "asyncio")


def _exception_payload(formatter: logging.Formatter, record: logging.LogRecord) -> dict[str, Any] | None:
    if not record.exc_info or not record.exc_info[1]:
        return None
    exc_type, exc, _ = record.exc_info
    return {
        "type": exc_type.__name__ if exc_type else "Unknown",
        "message": str(exc),
        "traceback": formatter.formatException(record.exc_info),
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the correlation fields lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update({key: getattr(record, key) for key in _EXTRA_FIELDS if hasattr(record, key)})

        exception = _exception_payload(self, record)
        if exception is not None:
            entry["exception"] = exception
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """``HH:MM:SS [LEVEL] logger: [execution/step] message (tx 0x...)``"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        message = record.getMessage()

        tag = "/".join(
            str(value)
            for value in (getattr(record, "execution_id", None), getattr(record, "step_id", None))
            if value
        )
        if tag:
            message = f"[{tag}] {message}"
        tx_hash = getattr(record, "tx_hash", None)
        if tx_hash:
            message = f"{message} (tx {tx_hash})"

        line = f"{color}{ts} [{record.levelname:>8s}]{self.RESET} {record.name}: {message}"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Replace root handlers with one stdout handler for ``env``."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
