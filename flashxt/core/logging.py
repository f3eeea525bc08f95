"""Logging Configuration

Records emitted during a flash run carry ``serial``, ``partition`` and
``step`` through ``extra=``; both formatters render them when present.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from flashxt.config import Settings

CONTEXT_FIELDS = ("serial", "partition", "step")

# Third-party loggers kept at WARNING unless DEBUG is on
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "urllib3", "sqlalchemy.engine")


def flash_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(flash_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Console format; flash context is appended in brackets"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = flash_context(record)
        if not context:
            return line
        tags = " ".join(f"{key}={value}" for key, value in context.items())
        head, newline, rest = line.partition("\n")
        return f"{head} [{tags}]{newline}{rest}"


def setup_logging(settings: Settings) -> logging.Logger:
    """Route all records to stdout in the configured format"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    handler.setFormatter(JSONFormatter() if settings.LOG_FORMAT == "json" else TextFormatter())
    root.addHandler(handler)

    quiet_level = logging.INFO if settings.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    return root
