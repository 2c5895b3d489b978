"""
Structured logging for Rankstream.

Every record passes through a ContextVar-backed filter that stamps it with
whatever the current request or socket has declared about itself
(participant, connection, route, correlation id), then lands on a bounded
queue. A listener thread drains the queue into the console and, outside
tests, a daily rotating JSON file, so that handler I/O never runs on the
event loop.

Console output is JSON in production and plain or coloured text otherwise;
``LOG_JSON`` forces either mode. When the queue is full the record is dropped
and counted, and the counters are reported by the health endpoint.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from rankstream.core.config.config import Config

_context: ContextVar[Dict[str, Any]] = ContextVar("rankstream_log_context", default={})

# Fields every record carries, "N/A" when the current context does not set them.
CONTEXT_FIELDS = ("participant_id", "connection_id", "route", "correlation_id", "operation")

_ROOT_MARKER = "_rankstream_logging"
_NOISY_LOGGERS = ("asyncio", "uvicorn.access", "websockets", "sqlalchemy.engine")


@dataclass(frozen=True)
class LogSettings:
    """Derived from Config on each access so tests can flip ENVIRONMENT."""

    text_format: str = "%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s"
    date_format: str = "%H:%M:%S"
    file_name: str = "rankstream.json.log"
    file_backups: int = 3
    queue_capacity: int = 10_000

    @property
    def level(self) -> int:
        return getattr(logging, Config.LOG_LEVEL, logging.INFO)

    @property
    def json_console(self) -> bool:
        if Config.LOG_JSON is not None:
            return Config.LOG_JSON
        return Config.is_production()

    @property
    def directory(self) -> Path:
        return Path(Config.LOGS_DIR)


SETTINGS = LogSettings()


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_depth: int
    queue_capacity: int
    enqueued: int
    dropped: int
    handler_errors: int


class _Counters:
    enqueued = 0
    dropped = 0
    handler_errors = 0

    @classmethod
    def reset(cls) -> None:
        cls.enqueued = cls.dropped = cls.handler_errors = 0


_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


class ContextStamp(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _context.get()
        for name in CONTEXT_FIELDS:
            setattr(record, name, context.get(name, "N/A"))
        for name, value in context.items():
            if name not in CONTEXT_FIELDS and not hasattr(record, name):
                setattr(record, name, value)
        return True


class TerminalFormatter(logging.Formatter):
    _PALETTE = {
        logging.DEBUG: "\033[2m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        text = super().format(record)
        colour = self._PALETTE.get(record.levelno)
        return f"{colour}{text}\033[0m" if colour else text


class JSONFormatter(logging.Formatter):
    """One JSON object per line; context fields and ``extra=`` keys at top level."""

    _RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        document: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        for name, value in vars(record).items():
            if name in self._RESERVED or name.startswith("_") or value == "N/A":
                continue
            document[name] = value
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return json.dumps(document, ensure_ascii=False, default=str)


class _DroppingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
            _Counters.enqueued += 1
        except queue.Full:
            _Counters.dropped += 1


class _CountingListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _Counters.handler_errors += 1


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if SETTINGS.json_console:
        handler.setFormatter(JSONFormatter())
    elif sys.stdout.isatty():
        handler.setFormatter(TerminalFormatter(SETTINGS.text_format, SETTINGS.date_format))
    else:
        handler.setFormatter(logging.Formatter(SETTINGS.text_format, SETTINGS.date_format))
    return handler


def _file_handler() -> logging.Handler:
    SETTINGS.directory.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        SETTINGS.directory / SETTINGS.file_name,
        when="midnight",
        backupCount=SETTINGS.file_backups,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Route the root logger through the queue. Calling it twice is a no-op."""
    global _queue, _listener

    root = logging.getLogger()
    if getattr(root, _ROOT_MARKER, False):
        return

    _Counters.reset()
    sinks = [_console_handler()]
    if not Config.is_testing():
        sinks.append(_file_handler())

    _queue = queue.Queue(SETTINGS.queue_capacity)
    _listener = _CountingListener(_queue, *sinks)
    _listener.start()

    front = _DroppingQueueHandler(_queue)
    front.addFilter(ContextStamp())
    root.handlers[:] = [front]
    root.setLevel(SETTINGS.level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    setattr(root, _ROOT_MARKER, True)
    logging.getLogger(__name__).debug(
        "Logging ready",
        extra={"json_console": SETTINGS.json_console, "logs_dir": str(SETTINGS.directory)},
    )


def shutdown_logging() -> None:
    """Flush the queue and detach. Records logged afterwards go nowhere."""
    global _queue, _listener

    root = logging.getLogger()
    if not getattr(root, _ROOT_MARKER, False):
        return

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
    root.handlers.clear()
    _listener = None
    _queue = None
    setattr(root, _ROOT_MARKER, False)


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _ROOT_MARKER, False)),
        queue_depth=_queue.qsize() if _queue is not None else 0,
        queue_capacity=_queue.maxsize if _queue is not None else 0,
        enqueued=_Counters.enqueued,
        dropped=_Counters.dropped,
        handler_errors=_Counters.handler_errors,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scope log fields to a block, sync or async.

    A correlation id is inherited from the enclosing scope or minted fresh.

        async with LogContext(participant_id="p-1", operation="apply_delta"):
            logger.info("Applying delta")
    """

    def __init__(self, correlation_id: Optional[str] = None, **fields: Any) -> None:
        outer = _context.get()
        self._fields = {
            **outer,
            **{name: str(value) if name == "participant_id" else value
               for name, value in fields.items() if value is not None},
            "correlation_id": correlation_id or outer.get("correlation_id") or uuid.uuid4().hex[:8],
        }
        self._token: Optional[Token] = None

    def __enter__(self) -> "LogContext":
        self._token = _context.set(self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


def set_log_context(**fields: Any) -> None:
    """Merge fields into the current context without opening a scope."""
    merged = dict(_context.get())
    merged.update({name: value for name, value in fields.items() if value is not None})
    _context.set(merged)


setup_logging()
