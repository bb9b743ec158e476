"""JSON log lines tagged with the active run and phase."""
from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="")
phase_var: contextvars.ContextVar[str] = contextvars.ContextVar("phase", default="")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    ``run_id`` is always present (empty outside a run); ``phase`` only
    while a phase is executing.
    """

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "run_id": run_id_var.get(),
            "message": record.getMessage(),
        }
        phase = phase_var.get()
        if phase:
            entry["phase"] = phase
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exception"] = f"{type(exc).__name__}: {exc}"
        return json.dumps(entry)


def setup_logging(
    service_name: str,
    level: str = "INFO",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Attach a single JSON handler to the *service_name* logger.

    Args:
        service_name: Logger name; also written into every entry.
        level: Level name such as "INFO" or "DEBUG"; unknown names mean INFO.
        stream: Where lines go; defaults to stderr.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    logger.addHandler(handler)
    return logger
