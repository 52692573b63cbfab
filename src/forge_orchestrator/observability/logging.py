"""
forge-orchestrator — process logging

File: src/forge_orchestrator/observability/logging.py
Last updated: 2026-10-19

Purpose
- Queue-backed JSON-lines sink for one CLI run, plus the structlog bridge that routes
  decision logs (``structlog.get_logger(__name__)`` in every plane) into it.

Functional requirements
- One JSON object per line: timestamp, level, logger, message, correlation fields,
  and event keywords under ``fields``.
- Correlation fields (``suite_id``, ``package``) come from ``correlation_scope`` and
  follow asyncio tasks through context copying.
- Secrets are redacted by key name and by value pattern unless disabled.

Non-functional requirements
- Emitting never blocks: a full queue drops the record and counts the drop.
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
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, cast

import structlog

from forge_orchestrator.domain.models import JSONValue

LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED: Final[str] = "***REDACTED***"
_SECRET_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)
_SECRET_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_REGISTRY_TOKEN: Final[re.Pattern[str]] = re.compile(r"\b(?:npm|ghp|pypi)[-_][A-Za-z0-9]{16,}\b")

# Keywords with these names would clobber LogRecord attributes.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}

_CORRELATION: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "forge_correlation", default=()
)

_ACTIVE_LOCK = threading.Lock()
_ACTIVE: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for the queue-backed JSON-lines sink."""

    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "forge_orchestrator"
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = "forge.jsonl"
    log_to_stderr: bool = False
    redact_secrets: bool = True
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> StructuredLoggingHandle:
    """Configure logging from the ``[observability]`` config section and bridge structlog."""

    section = dict(observability_config or {})
    level = section.get("log_level", "INFO")
    directory: object = log_dir if log_dir is not None else section.get("log_dir", "logs")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=directory if isinstance(directory, Path | str) else "logs",
            level=level if isinstance(level, int | str) else "INFO",
            redact_secrets=bool(section.get("redact_secrets", True)),
        )
    )
    configure_structlog()
    return handle


class _JsonLinesQueueHandler(logging.handlers.QueueHandler):
    """Stamps correlation fields on the record and enqueues without blocking."""

    def __init__(self, log_queue: queue.Queue[object]) -> None:
        super().__init__(log_queue)
        self._drop_lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        bound = get_correlation_context()
        if bound:
            record.correlation = bound
        return cast("logging.LogRecord", super().prepare(record))

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, *, redactor: LogRedactor, run_id: str) -> None:
        super().__init__()
        self._redactor = redactor
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": _utc_stamp(datetime.fromtimestamp(record.created, tz=UTC)),
            "level": record.levelname,
            "logger": record.name,
            "run_id": self._run_id,
            "message": _as_text(self._redactor(record.getMessage())),
        }
        correlation = getattr(record, "correlation", None)
        if isinstance(correlation, Mapping):
            line.update({str(key): str(value) for key, value in correlation.items()})

        fields = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        if fields:
            line["fields"] = self._redactor(fields)
        if record.exc_info:
            line["exception"] = _as_text(self._redactor(self.formatException(record.exc_info)))
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(eq=False)
class StructuredLoggingHandle:
    """The installed sink for one run. ``shutdown`` drains the queue and closes files."""

    logger: logging.Logger
    run_id: str
    log_path: Path
    _queue: queue.Queue[object] = field(repr=False)
    _queue_handler: _JsonLinesQueueHandler = field(repr=False)
    _listener: logging.handlers.QueueListener = field(repr=False)
    _sinks: tuple[logging.Handler, ...] = field(repr=False)
    is_shutdown: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with _ACTIVE_LOCK:
            if self.is_shutdown:
                return
            self.is_shutdown = True
        self.flush(timeout_seconds=timeout_seconds)
        self._listener.stop()
        self.logger.removeHandler(self._queue_handler)
        self._queue_handler.close()
        for sink in self._sinks:
            sink.close()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the sink for one run; any previously active handle is shut down first."""

    run_id = _nonblank(config.run_id, "run_id")
    logger_name = _nonblank(config.logger_name, "logger_name")
    filename = _nonblank(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _level_number(config.level)

    previous = get_active_logging_handle()
    if previous is not None:
        shutdown_logging(previous)

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _JsonLineFormatter(redactor=_pick_redactor(config), run_id=run_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[object] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _JsonLinesQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        _queue=log_queue,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
    )
    global _ACTIVE
    with _ACTIVE_LOCK:
        _ACTIVE = handle
    return handle


def configure_structlog() -> None:
    """Route ``structlog.get_logger(...)`` events through stdlib logging.

    Event keywords become ``LogRecord`` extras, so they land under ``fields`` in the
    JSON-lines output. Keywords that collide with record attributes get a ``field_`` prefix.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            _prefix_reserved_keys,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _prefix_reserved_keys(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    reserved = [
        key
        for key in event_dict
        if key in _RECORD_ATTRIBUTES and key not in {"exc_info", "stack_info"}
    ]
    for key in reserved:
        event_dict[f"field_{key}"] = event_dict.pop(key)
    return event_dict


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Shut down ``handle`` (default: the active one) and forget it if it was active."""

    global _ACTIVE
    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _ACTIVE_LOCK:
        if _ACTIVE is target:
            _ACTIVE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_LOCK:
        return _ACTIVE


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for every record emitted in scope; ``None`` unbinds."""

    bound = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        else:
            bound[_nonblank(key, "correlation key")] = _nonblank(value, "correlation value")
    token = _CORRELATION.set(tuple(bound.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction of secret-named keys and token-looking strings."""

    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: _REDACTED if _is_secret_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(term in lowered for term in _SECRET_KEY_TERMS)


def _redact_text(text: str) -> str:
    text = _SECRET_ASSIGNMENT.sub(lambda m: f"{m.group(1)}{m.group(2)}{_REDACTED}", text)
    text = _BEARER.sub(f"Bearer {_REDACTED}", text)
    return _REGISTRY_TOKEN.sub(_REDACTED, text)


def _pick_redactor(config: LoggingConfig) -> LogRedactor:
    if config.redactor is not None:
        return config.redactor
    if config.redact_secrets:
        return default_log_redactor
    return lambda value: value


def _nonblank(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    number = logging.getLevelName(value.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return number


def _utc_stamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _jsonable(value: object) -> JSONValue:
    match value:
        case None | bool() | int() | str():
            return value
        case float():
            return value if math.isfinite(value) else str(value)
        case datetime():
            return _utc_stamp(value)
        case Path():
            return value.as_posix()
        case bytes():
            return value.decode("utf-8", errors="replace")
        case Mapping():
            return {str(key): _jsonable(item) for key, item in value.items()}
        case list() | tuple():
            return [_jsonable(item) for item in value]
        case set() | frozenset():
            return sorted((_jsonable(item) for item in value), key=_as_text)
    return repr(value)


atexit.register(shutdown_logging)


__all__ = [
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
