"""Run log for one review: ``<log_dir>/<run_id>/review.jsonl``.

Every record, whether it comes from ``logging.getLogger`` or from
``structlog.get_logger``, ends up as one JSON object per line:

    {"fields": {...}, "level": "INFO", "logger": "...", "message": "...",
     "repo": "alpha", "run_id": "...", "timestamp": "...Z", "use_case_id": "UC-001"}

Records are handed to a background ``QueueListener`` so engine coroutines
never block on file I/O. Correlation keys are captured on the emitting
thread, because the listener thread does not see the caller's contextvars.
"""

from __future__ import annotations

import atexit
import contextvars
import copy
import logging
import logging.handlers
import math
import queue
import threading
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import structlog

from usecase_review.domain.models import JSONValue

CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "repo", "use_case_id")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_BUILTINS: Final[frozenset[str]] = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "correlation", "exception"}

_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "usecase_review_correlation", default={}
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "usecase_review"
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = "review.jsonl"
    log_to_stdout: bool = False


def parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelNamesMapping().get(value.strip().upper())
    if level is None:
        raise ValueError(f"unsupported logging level {value!r}")
    return level


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation keys for everything logged inside the block.

    Passing ``None`` for a key hides an outer binding until the block exits.
    """

    merged = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            merged.pop(key, None)
        elif value.strip():
            merged[key] = value.strip()
    token = _correlation.set(merged)
    try:
        yield
    finally:
        _correlation.reset(token)


class _CapturingQueueHandler(logging.handlers.QueueHandler):
    """Snapshots message, traceback and correlation before the record changes threads."""

    _traceback_formatter = logging.Formatter()

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        snapshot = copy.copy(record)
        snapshot.message = snapshot.msg = record.getMessage()
        snapshot.args = None
        if record.exc_info:
            snapshot.exception = self._traceback_formatter.formatException(record.exc_info)
        snapshot.exc_info = None
        snapshot.exc_text = None
        snapshot.correlation = get_correlation_context()
        return snapshot

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


class _RecordShaper:
    """structlog pre-chain step turning a stdlib record into the run-log layout."""

    def __init__(self, run_id: str) -> None:
        self._run_id = run_id

    def __call__(
        self, _logger: object, _method: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        record: logging.LogRecord = event_dict["_record"]
        shaped: dict[str, Any] = {
            "message": event_dict["event"],
            "level": record.levelname,
            "logger": record.name,
            "run_id": self._run_id,
        }
        shaped.update(getattr(record, "correlation", {}))
        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_BUILTINS and not key.startswith("_")
        }
        for key in CORRELATION_KEYS:
            value = extras.pop(key, None)
            if isinstance(value, str) and value.strip():
                shaped[key] = value.strip()
        if extras:
            shaped["fields"] = extras
        if hasattr(record, "exception"):
            shaped["exception"] = record.exception
        return shaped


def _run_log_formatter(run_id: str) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[_RecordShaper(run_id)],
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ],
    )


def configure_structlog() -> None:
    """Send ``structlog.get_logger(__name__)`` events through stdlib logging.

    The event name becomes the message and bound key/values arrive as
    ``extra``, which the run log renders under ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@dataclass(eq=False)
class ReviewLoggingHandle:
    logger: logging.Logger
    run_id: str
    log_path: Path
    _queue_handler: _CapturingQueueHandler
    _listener: logging.handlers.QueueListener
    _sinks: tuple[logging.Handler, ...]
    _lock: threading.Lock = field(default_factory=threading.Lock)
    is_shutdown: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    def shutdown(self) -> None:
        """Drain the queue, detach from the logger and close the sinks. Safe to repeat."""
        with self._lock:
            if self.is_shutdown:
                return
            self.is_shutdown = True
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()


_active: ReviewLoggingHandle | None = None
_active_lock = threading.Lock()


def setup_logging(config: LoggingConfig) -> ReviewLoggingHandle:
    """Start the run log under ``<base_log_dir>/<run_id>/``, replacing any active one."""

    global _active

    run_id = config.run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    if config.queue_size < 1:
        raise ValueError("queue_size must be at least 1")
    if not config.log_filename or Path(config.log_filename).name != config.log_filename:
        raise ValueError(f"log_filename must be a bare file name, got {config.log_filename!r}")
    level = parse_log_level(config.level)

    shutdown_logging()

    log_path = Path(config.base_log_dir) / run_id / config.log_filename
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = _run_log_formatter(run_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    for stale in logger.handlers[:]:
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    records: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _CapturingQueueHandler(records)
    listener = logging.handlers.QueueListener(records, *sinks)
    listener.start()
    logger.addHandler(queue_handler)
    configure_structlog()

    handle = ReviewLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
    return handle


def shutdown_logging(handle: ReviewLoggingHandle | None = None) -> None:
    global _active
    with _active_lock:
        target = handle or _active
        if target is _active:
            _active = None
    if target is not None:
        target.shutdown()


def get_active_logging_handle() -> ReviewLoggingHandle | None:
    return _active


atexit.register(shutdown_logging)


def _jsonable(value: object) -> JSONValue:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    return str(value) if isinstance(value, Path) else repr(value)


__all__ = [
    "CORRELATION_KEYS",
    "LoggingConfig",
    "ReviewLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "parse_log_level",
    "setup_logging",
    "shutdown_logging",
]
