"""
Structured JSON logging for the chat gateway.

One JSON object per line on stdout. ``provider`` and ``model`` from
``extra={"_extra": {...}}`` are lifted to the top level so a log query can
filter a single vendor; every other structured field stays under ``extra``.
Vendor credentials that end up in messages (Gemini puts its key in the query
string, httpx errors echo the URL) are masked before the line is written.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any

_TOP_LEVEL_FIELDS = ("provider", "model")

_SECRET_PATTERNS = [
    re.compile(r"([?&]key=)[^&\s\"']+"),
    re.compile(r"\b(sk-[A-Za-z0-9_-]{4})[A-Za-z0-9_-]+"),
    re.compile(r"(Bearer )[A-Za-z0-9._-]+"),
]


def redact_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


class JSONFormatter(logging.Formatter):

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": redact_secrets(record.getMessage()),
        }

        extra = dict(getattr(record, "_extra", None) or {})
        for key in _TOP_LEVEL_FIELDS:
            if extra.get(key):
                entry[key] = extra.pop(key)
        if extra:
            entry["extra"] = extra

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = redact_secrets(self.formatException(record.exc_info))

        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(service_name: str, level_name: str | None = None) -> logging.Logger:
    """
    Route the root logger to stdout through JSONFormatter.

    Called once from the FastAPI lifespan; returns the service logger.
    """
    level_name = (level_name or os.environ.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # one INFO line per vendor request otherwise
    for noisy in ("uvicorn.access", "httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.info("Logging initialized", extra={"_extra": {"level": level_name}})
    return logger


def preview(text: str, limit: int = 50) -> str:
    """Shorten user content for log lines."""
    text = text or ""
    return text if len(text) <= limit else f"{text[:limit]}..."
