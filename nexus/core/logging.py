"""Structured logging for Nexus.

Every record can carry two kinds of structured fields:

- ``data``: passed per call through :class:`ContextLogger` (``logger.info(msg, data={...})``)
- context: request-scoped fields held in :data:`request_context`, set by the
  request middleware and extended with :func:`bind_context` (the relay binds
  its session id so provider logs can be correlated with a stream)

Both are passed through :func:`redact_sensitive_data` before output.
"""

import json
import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Dict, Iterator, Optional, Set

# Request-scoped fields (request_id, path, method, relay_session)
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Keys whose values are always redacted in log data
SENSITIVE_KEYS: Set[str] = {
    "authorization",
    "x-api-key",
    "api_key",
    "openai_compat_api_key",
    "token",
    "access_token",
}

_COOKIE_VALUE = re.compile(r"=[^;]*")
_TOKEN_CHARS = re.compile(r"^[A-Za-z0-9._-]{20,}$")

# Context fields shown in console output, with their display width
_CONSOLE_CONTEXT = (("request_id", 8), ("relay_session", 8))


@contextmanager
def bind_context(**fields: Any) -> Iterator[None]:
    """Add fields to the logging context for the duration of the block.

    Tasks created inside the block inherit the bound fields.
    """
    token = request_context.set({**request_context.get(), **fields})
    try:
        yield
    finally:
        request_context.reset(token)


def _mask(value: Any) -> str:
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) < 12:
        return "<REDACTED>"
    return f"{value[:3]}***{value[-3:]}"


def redact_sensitive_data(data: Any) -> Any:
    """Return a copy of ``data`` safe to write to logs.

    Values under sensitive keys keep only their first and last 3 characters
    (short values are fully masked). Cookie values are replaced one by one.
    Bare strings that look like bearer or API tokens are masked wherever
    they appear.
    """
    if isinstance(data, dict):
        return {key: _redact_field(str(key).lower(), value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    if isinstance(data, str) and _TOKEN_CHARS.match(data):
        return _mask(data)
    return data


def _redact_field(key: str, value: Any) -> Any:
    if key == "id" or key.endswith("_id"):
        return value
    if "cookie" in key:
        return _COOKIE_VALUE.sub("=<REDACTED>", value) if isinstance(value, str) else "[REDACTED]"
    if key in SENSITIVE_KEYS:
        return _mask(value)
    return redact_sensitive_data(value)


def _record_data(record: logging.LogRecord) -> Optional[Any]:
    data = getattr(record, "data", None)
    return redact_sensitive_data(data) if data else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in request_context.get().items() if v is not None})

        data = _record_data(record)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured single-line output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ctx = request_context.get()
        parts = [
            datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S"),
            f"{self.COLORS.get(record.levelname, '')}{record.levelname:8}{self.RESET}",
            *(str(ctx.get(field) or "-")[:width] for field, width in _CONSOLE_CONTEXT),
            record.name,
            record.getMessage(),
        ]
        data = _record_data(record)
        if data:
            parts.append(str(data))

        line = " | ".join(parts)
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter accepting a ``data=`` dict of structured fields."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        data = kwargs.pop("data", None)
        if data is not None:
            kwargs["extra"] = {**kwargs.get("extra", {}), "data": data}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    return ContextLogger(logging.getLogger(name), {})


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Console output is JSON when ``json_output`` is set, coloured text
    otherwise. The optional log file always receives JSON.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
