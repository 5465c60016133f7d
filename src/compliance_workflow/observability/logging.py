"""
compliance-workflow — structured logging.

Purpose
- Write one JSON object per log record to ``<log_dir>/<session_id>/compliance.jsonl``
  without blocking the thread that drives a workflow.

Behaviour
- Records pass through a bounded queue to a listener thread; a full queue drops
  the record and counts it instead of stalling ``submit_artifact``.
- ``correlation_scope`` binds ``workflow_id``, ``task_id`` and ``phase`` for every
  record emitted inside it, across nested scopes.
- Values under credential-looking keys, ``key=value`` credential assignments and
  bearer tokens are replaced with ``***REDACTED***`` unless redaction is disabled.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
LOG_FILENAME: Final[str] = "compliance.jsonl"
CORRELATION_KEYS: Final[tuple[str, ...]] = ("session_id", "workflow_id", "task_id", "phase")

_CREDENTIAL_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)
_CREDENTIAL_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_EMPTY_CONTEXT: Final[Mapping[str, str]] = MappingProxyType({})
_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "compliance_workflow_correlation", default=_EMPTY_CONTEXT
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    session_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "compliance_workflow"
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redact: bool = True

    def validated(self) -> tuple[str, str, int]:
        """Return ``(session_id, log_filename, level)`` or raise ``ValueError``."""
        session_id = _required_text(self.session_id, "session_id")
        _required_text(self.logger_name, "logger_name")
        filename = _required_text(self.log_filename, "log_filename")
        if Path(filename).name != filename:
            raise ValueError("log_filename must not include path separators")
        if isinstance(self.queue_size, bool) or not isinstance(self.queue_size, int):
            raise ValueError("queue_size must be an integer")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        return session_id, filename, parse_log_level(self.level)


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Snapshots the caller's correlation fields and never blocks on a full queue."""

    def __init__(self, records: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(records)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread runs in its own context.
        record.correlation = dict(_correlation.get())
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, *, session_id: str, redactor: LogRedactor) -> None:
        super().__init__()
        self._session_id = session_id
        self._redactor = redactor

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": _text(self._redactor(record.getMessage())),
            "session_id": self._session_id,
        }
        event.update(getattr(record, "correlation", None) or {})
        for key in CORRELATION_KEYS:
            explicit = getattr(record, key, None)
            if isinstance(explicit, str) and explicit.strip():
                event[key] = explicit.strip()

        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in CORRELATION_KEYS and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._redactor(extras)
        if record.exc_info is not None:
            event["exception"] = _text(self._redactor(self.formatException(record.exc_info)))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(eq=False)
class StructuredLoggingHandle:
    """A running logging session; ``shutdown`` drains the queue and closes the sinks."""

    logger: logging.Logger
    session_id: str
    log_path: Path
    _records: queue.Queue[logging.LogRecord]
    _queue_handler: _DroppingQueueHandler
    _sinks: tuple[logging.Handler, ...]
    _listener: logging.handlers.QueueListener
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._records.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


class _ActiveSession:
    """Process-wide slot for the one logging session a CLI run owns."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: StructuredLoggingHandle | None = None
        self._atexit = False

    def replace(self, handle: StructuredLoggingHandle | None) -> StructuredLoggingHandle | None:
        with self._lock:
            previous, self._handle = self._handle, handle
            if handle is not None and not self._atexit:
                atexit.register(shutdown_logging)
                self._atexit = True
            return previous

    def current(self) -> StructuredLoggingHandle | None:
        with self._lock:
            return self._handle

    def clear_if(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None


_active = _ActiveSession()


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    session_id: str,
    log_dir: Path | str | None = None,
) -> StructuredLoggingHandle:
    """Start logging from an ``[observability]`` section; ``log_dir`` overrides its directory."""
    section = observability_config or {}
    level = section.get("log_level", "INFO")
    directory = log_dir if log_dir is not None else section.get("log_dir", "logs")
    return setup_structured_logging(
        LoggingConfig(
            session_id=session_id,
            base_log_dir=directory if isinstance(directory, (Path, str)) else "logs",
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=section.get("log_to_stdout") is True,
            redact=section.get("redact_secrets", True) is not False,
        )
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Attach a queue-backed JSON-lines pipeline to ``config.logger_name``.

    Any session started earlier is shut down first, and the logger stops
    propagating to the root logger.
    """
    session_id, filename, level = config.validated()
    previous = _active.replace(None)
    if previous is not None:
        previous.shutdown()

    log_path = Path(config.base_log_dir) / session_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = _JsonLinesFormatter(
        session_id=session_id,
        redactor=default_log_redactor if config.redact else _unchanged,
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name.strip())
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(records)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        session_id=session_id,
        log_path=log_path,
        _records=records,
        _queue_handler=queue_handler,
        _sinks=tuple(sinks),
        _listener=listener,
    )
    _active.replace(handle)
    return handle


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop ``handle`` (default: the active session). Safe to call repeatedly."""
    target = handle if handle is not None else _active.current()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    _active.clear_if(target)


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields until the block exits; ``None`` unbinds a key."""
    bound = dict(_correlation.get())
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        else:
            bound[key] = _required_text(value, f"correlation field {key!r}")
    token = _correlation.set(MappingProxyType(bound))
    try:
        yield
    finally:
        _correlation.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    return _redact(value, under_key=None)


def parse_log_level(value: int | str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    resolved = logging.getLevelName(value.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return resolved


def _required_text(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError(f"{name} must not be empty")
    return text


def _text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return "" if value is None else json.dumps(value, sort_keys=True, ensure_ascii=False)


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Enum):
        return _jsonable(value.value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    return repr(value)


def _unchanged(value: JSONValue) -> JSONValue:
    return value


def _redact(value: JSONValue, *, under_key: str | None) -> JSONValue:
    if under_key is not None and any(term in under_key.lower() for term in _CREDENTIAL_KEY_TERMS):
        return REDACTED
    if isinstance(value, str):
        masked = _CREDENTIAL_ASSIGNMENT.sub(lambda found: f"{found[1]}{found[2]}{REDACTED}", value)
        return _BEARER.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [_redact(item, under_key=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact(item, under_key=key) for key, item in value.items()}
    return value


__all__ = [
    "CORRELATION_KEYS",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "parse_log_level",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
