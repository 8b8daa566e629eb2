"""
Logging setup for the command line and embedding applications.

Library modules only create ``logging.getLogger(__name__)`` loggers; this
module installs the one handler, on the ``semconv_policy`` logger, either
as JSON lines (for log pipelines such as Loki) or as plain text.

Logs go to stderr so that report output on stdout stays machine-readable.

Usage:
    from semconv_policy.log import configure_logging

    configure_logging("debug", "json")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

ROOT_LOGGER = "semconv_policy"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "warning", fmt: str = "text") -> logging.Logger:
    """Install (or replace) the package log handler.

    Args:
        level: debug, info, warning or error.
        fmt: ``json`` or ``text``.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_LEVELS.get(level.lower(), logging.WARNING))

    for handler in list(logger.handlers):
        if getattr(handler, "_semconv_policy", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler._semconv_policy = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
