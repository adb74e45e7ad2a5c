"""Observability: structured logging and run-time console log level control."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any


# ---------------------------------------------------------------------------
# Structured JSON logging
# ---------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_dict["exception"] = self.formatException(record.exc_info)
        # Propagate extra fields (step_id, etc.)
        for key in ("step_id", "project", "command", "iteration"):
            val = getattr(record, key, None)
            if val is not None:
                log_dict[key] = val
        return json.dumps(log_dict, default=str)


TEXT_FORMAT = "%(levelname)-8s %(name)s: %(message)s"


class LogSettings:
    """Handle on the console log handler so its level can change mid-run."""

    LEVELS = ("debug", "info", "warning", "error")

    def __init__(self, handler: logging.Handler) -> None:
        self.handler = handler

    @property
    def console_level(self) -> str:
        return logging.getLevelName(self.handler.level).lower()

    def set_console_level(self, level: str) -> bool:
        name = level.strip().lower()
        if name not in self.LEVELS:
            return False
        value = getattr(logging, name.upper())
        self.handler.setLevel(value)
        root = logging.getLogger()
        if root.level > value:
            root.setLevel(value)
        logging.getLogger("upgrader.observability").info("Console log level set to %s", name)
        return True


def setup_logging(level: str = "INFO", fmt: str = "text") -> LogSettings:
    """Configure the root logger with one console handler on stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    value = getattr(logging, level.upper(), logging.INFO)
    handler.setLevel(value)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(value)
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return LogSettings(handler)
