"""
Logging configuration.

Two output modes, selected by LOG_JSON:
  text  "<time> [LEVEL] logger [request_id]: message"   (local development)
  json  one object per line with timestamp, level, logger, message,
        request_id and, when present, duration_ms / exception
"""

import json
import logging
from datetime import datetime, timezone

from app.middleware.request_context import get_request_id

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach the current request id so text formats can reference it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        if hasattr(record, "duration_ms"):
            log_entry["duration_ms"] = record.duration_ms

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Install a single root handler in the requested format."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Per-request access lines come from RequestContextMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
