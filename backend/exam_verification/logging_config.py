"""
Structured JSON logging configuration.

Every log line is a single JSON object written to stdout so that the hosting
platform can aggregate it. Entries are grouped into channels (http, sheets,
students, analytics) and carry the current request ID.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# ──────────────────────────────────────────────────────────────
# Request ID for the request currently being served. Set by the
# middleware in main.py and read by the formatter.
# ──────────────────────────────────────────────────────────────
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "sheets", "students", "analytics"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats a record as one JSON object:

    - timestamp: ISO 8601 in UTC with millisecond precision
    - level: INFO, WARNING, ERROR, DEBUG
    - message: human-readable text
    - channel: http, sheets, students, analytics or app
    - context: business context (request_id, mobile_no, row_number ...)
    - extra: metadata such as duration_ms or status_code
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO"):
    """
    Install the JSON formatter on the root logger and set the level of
    every channel logger.

    Uvicorn's own access log is left alone; the request middleware already
    logs each request with its latency.
    """
    formatter = StructuredJsonFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"exam_verification.{channel}").setLevel(log_level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Return the logger for ``channel`` (http, sheets, students, analytics)."""
    return logging.getLogger(f"exam_verification.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info=None):
    """
    Emit a structured log entry.

    Args:
        logger: channel logger from get_logger()
        level: INFO, WARNING, ERROR or DEBUG
        message: human-readable text
        context: business context (mobile_no, row_number ...)
        extra_data: metadata (duration_ms, status_code ...)
        exc_info: exception (or True for the active one) whose traceback to attach
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
