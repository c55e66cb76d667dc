"""Shared ``dictConfig`` for structlog and stdlib loggers.

Everything, including uvicorn, httpx and SQLAlchemy records, goes through one ProcessorFormatter.
Outside local/test environments records are rendered as one JSON object per line and written from
a background queue listener; locally they are rendered by structlog's console renderer.
"""

from __future__ import annotations

import atexit
import os
import sys
from contextvars import ContextVar
from decimal import Decimal
from enum import Enum
from logging import Filter, Handler, LogRecord
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import Any

import structlog
from pydantic import BaseModel
from structlog.typing import EventDict, Processor, WrappedLogger

from common.core.request_context import RequestContext
from common.utils import encode_json_str, is_dict

_LOCAL_ENVS = ("development", "local", "test", "testing")
_TRUTHY = ("true", "1", "t", "yes")

# Never written to logs, wherever they appear in an event
_REDACTED_KEYS = {"password", "api_key", "client_secret", "access_token", "authorization", "token"}

_MULTILINE_KEYS = {"stack", "traceback", "exception", "error"}


def use_json_logs() -> bool:
    if os.getenv("APP_ENV", "local").lower() not in _LOCAL_ENVS:
        return True
    return os.getenv("LOG_JSON_FORMAT", "").lower() in _TRUTHY


class LoggingQueueListener(QueueListener):
    """A QueueListener that runs from construction until interpreter exit."""

    def __init__(self, queue: Queue[LogRecord], *handlers: Handler, respect_handler_level: bool = False) -> None:
        super().__init__(queue, *handlers, respect_handler_level=respect_handler_level)
        self.start()
        _ = atexit.register(self.stop)


class QuietPollingFilter(Filter):
    """Drops uvicorn access lines for health probes."""

    def filter(self, record: LogRecord) -> bool:
        message = record.getMessage()
        return "GET /health" not in message and "GET /api/v1/health" not in message


def _attach_request_context(_logger: WrappedLogger, _name: str, event_dict: EventDict) -> EventDict:
    request_context = RequestContext.get_or_none()
    if request_context is not None:
        event_dict.setdefault("requestContext", request_context)
    return event_dict


def _clean_values(_logger: WrappedLogger, _name: str, event_dict: EventDict) -> EventDict:
    """Redact secrets, drop empty values and flatten models, enums and decimals."""
    _clean_mapping(event_dict)
    return event_dict


def _clean_mapping(mapping: dict[str, Any]) -> None:
    for key, value in list(mapping.items()):
        if isinstance(value, ContextVar):
            value = value.get(None)
        if value is None:
            del mapping[key]
            continue
        if key.lower() in _REDACTED_KEYS:
            mapping[key] = "***"
            continue

        if isinstance(value, BaseModel):
            value = value.model_dump(exclude_none=True, by_alias=True, mode="json")
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, str) and key in _MULTILINE_KEYS and "\n" in value:
            value = [line.rstrip() for line in value.strip().splitlines() if line]

        if is_dict(value):
            value = dict(value)
            _clean_mapping(value)
        mapping[key] = value


def _wrap_foreign_message(_logger: WrappedLogger, _name: str, event_dict: Any) -> EventDict:
    if isinstance(event_dict, dict):
        return event_dict
    return {"event": "" if event_dict is None else str(event_dict)}


def _json_default(value: Any) -> str:
    return encode_json_str(value)


class StdLoggingConfig:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _attach_request_context,
        _clean_values,
    ]

    # Records from stdlib loggers pass through these before rendering
    foreign_pre_chain: list[Processor] = [_wrap_foreign_message, *shared_processors]

    # Records from structlog loggers
    structlog_processors: list[Processor] = [*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter]

    logger_factory = structlog.stdlib.LoggerFactory()

    @classmethod
    def formatters(cls) -> dict[str, Any]:
        return {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": cls.foreign_pre_chain,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.dict_tracebacks,
                    structlog.processors.JSONRenderer(sort_keys=True, default=_json_default),
                ],
            },
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": cls.foreign_pre_chain,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
                ],
            },
        }

    @classmethod
    def handlers(cls, json_logs: bool) -> dict[str, Any]:
        stream = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "json" if json_logs else "console",
            "filters": ["quiet_polling"],
        }
        if not json_logs:
            # Console output stays synchronous so tracebacks interleave with test output
            return {"stream": stream, "default": stream}
        return {
            "stream": stream,
            "default": {"class": QueueHandler, "listener": LoggingQueueListener, "handlers": ["stream"], "filters": ["quiet_polling"]},
        }


def _library_logger(level: str) -> dict[str, Any]:
    return {"handlers": ["default"], "propagate": False, "level": level}


def build_logging_config(json_logs: bool | None = None, root_level: str | None = None) -> dict[str, Any]:
    """The ``dictConfig`` for the current environment, read when called rather than at import."""
    json_logs = use_json_logs() if json_logs is None else json_logs
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"quiet_polling": {"()": QuietPollingFilter}},
        "formatters": StdLoggingConfig.formatters(),
        "handlers": StdLoggingConfig.handlers(json_logs),
        "root": {"handlers": ["default"], "level": (root_level or os.getenv("LOG_LEVEL") or "INFO").upper()},
        "loggers": {
            "httpx": _library_logger("WARNING"),
            "httpcore": _library_logger("WARNING"),
            "stripe": _library_logger("WARNING"),
            "sqlalchemy.engine": _library_logger("WARNING"),
            "uvicorn": _library_logger("INFO"),
            "uvicorn.error": _library_logger("INFO"),
            "uvicorn.access": _library_logger("WARNING"),
        },
    }
