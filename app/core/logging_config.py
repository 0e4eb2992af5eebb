"""Logging setup and request-scoped log context."""
import json
import logging
import logging.config
from contextvars import ContextVar
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID


_actor_id: ContextVar[Optional[str]] = ContextVar("log_actor_id", default=None)
_request_id: ContextVar[Optional[str]] = ContextVar("log_request_id", default=None)

_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName", "actor_id", "request_id"}


def bind_log_context(actor_id: Optional[str] = None, request_id: Optional[str] = None) -> None:
    """Attach actor/request identifiers to every record logged in this context."""
    if actor_id is not None:
        _actor_id.set(actor_id)
    if request_id is not None:
        _request_id.set(request_id)


def clear_log_context() -> None:
    _actor_id.set(None)
    _request_id.set(None)


class ContextFilter(logging.Filter):
    """Copies context variables onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.actor_id = _actor_id.get()
        record.request_id = _request_id.get()
        return True


def _json_default(obj):
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return repr(obj)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("actor_id", "request_id"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        # Structured `extra=` fields
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Install root handlers for the application."""
    formatter = "json" if json_output else "plain"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "context": {"()": ContextFilter},
        },
        "formatters": {
            "plain": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "filters": ["context"],
            },
        },
        "root": {
            "level": level.upper(),
            "handlers": ["console"],
        },
        "loggers": {
            # SQL echo is controlled by DEBUG on the engine
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })
