"""
Structured JSON Logging Module.

Every log line is a JSON object. Request-scoped identifiers (correlation id,
event id, acting user) live in context vars set by TracingMiddleware and the
auth dependency; the formatter stamps them onto each line so a failed
transition can be followed from the HTTP request to the audit event it wrote.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
event_id_ctx: ContextVar[Optional[str]] = ContextVar("event_id", default=None)
actor_id_ctx: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)

_CONTEXT_FIELDS = (
    ("correlation_id", correlation_id_ctx),
    ("event_id", event_id_ctx),
    ("actor_id", actor_id_ctx),
)


class JSONFormatter(logging.Formatter):
    """
    Formatter that dumps records as JSON.
    """

    def __init__(self, service: str = "rcfa-backend"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "func": record.funcName,
            "line": record.lineno,
            "service": self.service,
        }

        for key, ctx in _CONTEXT_FIELDS:
            value = ctx.get()
            if value:
                log_data[key] = value

        # Structured fields passed as extra={"extra_data": {...}}
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO"):
    """
    Configures the root logger to use JSON formatting.
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    # Request lines come from TracingMiddleware
    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("httpx").setLevel("WARNING")
    logging.getLogger("aiosqlite").setLevel("WARNING")
    logging.getLogger("google_genai").setLevel("WARNING")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
