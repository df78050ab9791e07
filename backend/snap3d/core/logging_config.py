"""
Structured JSON logging for the capture-to-3D service.

Every record carries the request ID of the HTTP request that produced it,
taken from the record itself or from the request context variable that the
middleware sets. Background work (render loop, progress ticks) logs with
`request_id: null`.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAMESPACE = "snap3d"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "trimesh", "google_genai", "PIL")

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_RECORD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "request_id"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line; `extra=` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": LOGGER_NAMESPACE,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None) or request_id_context.get(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack_trace": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key in _RECORD_FIELDS or key in log_data:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the service logger with JSON output to stdout and, optionally, a file.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; parent directories are created
    """
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the `snap3d.` namespace."""
    if name:
        return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
    return logging.getLogger(LOGGER_NAMESPACE)


def set_request_id(request_id: str) -> None:
    request_id_context.set(request_id)


def clear_request_id() -> None:
    request_id_context.set(None)


class RequestLogger(logging.LoggerAdapter):
    """Adds the request ID to every record while keeping per-call `extra` fields."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        request_id = self.extra.get("request_id") or request_id_context.get()
        if request_id:
            extra["request_id"] = request_id
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: Optional[str] = None, request_id: Optional[str] = None) -> RequestLogger:
    return RequestLogger(get_logger(name), {"request_id": request_id})
