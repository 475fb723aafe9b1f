"""Run log: JSON lines behind a queue, with correlation fields and redaction.

Library modules log through ``structlog.get_logger(__name__)``.
:func:`configure_structlog` hands those events to the stdlib
``deploy_sequencer`` logger. From there a non-blocking queue handler passes
them to a listener thread that writes
``<log_dir>/<run_id>/deploy-sequencer.jsonl``.

Correlation fields (``run_id``, ``plan_id``, ``batch_number``, ``attempt``)
are bound with :func:`correlation_scope` and promoted to top-level keys of
every line; anything else passed with an event lands under ``fields``.
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, cast

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED: Final[str] = "***REDACTED***"
_LOG_FILENAME: Final[str] = "deploy-sequencer.jsonl"
_ROOT_LOGGER: Final[str] = "deploy_sequencer"
_DEFAULT_LOG_DIR: Final[Path] = Path(".deploy-sequencer/logs")

CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "plan_id", "batch_number", "attempt")

# Attributes every LogRecord carries; anything else on a record is an extra field.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}

_SECRET_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    "session_id",
    "sfdx_auth_url",
)

# (pattern, replacement) pairs applied in order to every string value.
_SECRET_TEXT_RULES: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(access[_-]?token|token|password|secret|client_secret|authorization|sid)\b"
            r"\s*([:=])\s*[^\s,;]+"
        ),
        rf"\1\2{_REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {_REDACTED}"),
    # Session ids: org id prefix, "!", opaque tail.
    (re.compile(r"\b00D\w{12,}![\w.]+"), _REDACTED),
    (re.compile(r"force://[^\s\"']+"), _REDACTED),
)

_ACTIVE_LOCK = threading.Lock()
_ACTIVE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one run logs. Invalid values raise ``ValueError`` on construction."""

    run_id: str
    base_log_dir: Path | str = _DEFAULT_LOG_DIR
    logger_name: str = _ROOT_LOGGER
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = _LOG_FILENAME
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None

    def __post_init__(self) -> None:
        for name in ("run_id", "logger_name", "log_filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must not be empty")
        if Path(self.log_filename).name != self.log_filename:
            raise ValueError("log_filename must not include path separators")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        _level_number(self.level)

    @property
    def log_path(self) -> Path:
        return Path(self.base_log_dir) / self.run_id.strip() / self.log_filename


def configure_structlog() -> None:
    """Send structlog events through stdlib logging, carrying bound context along."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = _ROOT_LOGGER,
) -> StructuredLoggingHandle:
    """Install the run log from the ``[observability]`` config section.

    Reads ``log_level``, ``log_to_stdout`` and ``redact_secrets``; ``log_dir``
    is the already-normalized ``paths.log_dir``.
    """

    cfg = dict(observability_config or {})
    level = cfg.get("log_level", "INFO")
    configure_structlog()
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=log_dir if log_dir is not None else _DEFAULT_LOG_DIR,
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(cfg.get("log_to_stdout", False)),
            redactor=None if cfg.get("redact_secrets", True) else _keep,
        )
    )


class _RunQueueHandler(logging.handlers.QueueHandler):
    """Drops records instead of blocking when the listener falls behind.

    Correlation context is read here, in the logging thread or task, because
    the listener thread cannot see it.
    """

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        record.correlation = get_correlation_context()
        return cast("logging.LogRecord", super().prepare(record))

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, *, run_id: str, redactor: LogRedactor) -> None:
        super().__init__()
        self._run_id = run_id
        self._redactor = redactor

    def format(self, record: logging.LogRecord) -> str:
        # QueueHandler.prepare has already folded any traceback into the message.
        line: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": str(self._redactor(record.getMessage())),
        }
        line.update(_correlation_of(record, self._run_id))

        extras = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            line["fields"] = self._redactor(extras)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """The installed run log; :meth:`shutdown` drains the queue and closes the file."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        queue_handler: _RunQueueHandler,
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.logger.removeHandler(self._queue_handler)
            # stop() processes everything still queued before the thread exits.
            self._listener.stop()
            for sink in self._listener.handlers:
                sink.close()
            self._queue_handler.close()
            self.logger.propagate = True
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install a queue-backed JSON-lines log for one run, replacing any active one."""

    global _ACTIVE
    with _ACTIVE_LOCK:
        previous, _ACTIVE = _ACTIVE, None
    if previous is not None:
        previous.shutdown()

    level = _level_number(config.level)
    run_id = config.run_id.strip()
    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _JsonLineFormatter(
        run_id=run_id,
        redactor=config.redactor if config.redactor is not None else default_log_redactor,
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        # stderr: stdout is reserved for command output.
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name.strip())
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _RunQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
    )
    with _ACTIVE_LOCK:
        _ACTIVE = handle
    _register_atexit_shutdown()
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle`` (default: the active run log). Safe to call repeatedly."""

    global _ACTIVE
    with _ACTIVE_LOCK:
        resolved = handle if handle is not None else _ACTIVE
        if resolved is not None and resolved is _ACTIVE:
            _ACTIVE = None
    if resolved is not None:
        resolved.shutdown()


def get_correlation_context() -> dict[str, str]:
    """Correlation fields currently bound through ``structlog.contextvars``."""

    bound = structlog.contextvars.get_contextvars()
    return {
        key: str(bound[key]).strip()
        for key in CORRELATION_KEYS
        if bound.get(key) is not None and str(bound[key]).strip()
    }


@contextmanager
def correlation_scope(**fields: str | int | None) -> Iterator[None]:
    """Bind correlation fields for every log event in scope; ``None`` values are skipped."""

    unknown = sorted(set(fields) - set(CORRELATION_KEYS))
    if unknown:
        raise ValueError(f"unknown correlation field(s): {', '.join(unknown)}")
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask secret-named keys and credential-looking text, recursively."""

    if isinstance(value, str):
        for pattern, replacement in _SECRET_TEXT_RULES:
            value = pattern.sub(replacement, value)
        return value
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


def _keep(value: JSONValue) -> JSONValue:
    return value


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    number = logging.getLevelName(str(value).strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return number


def _correlation_of(record: logging.LogRecord, run_id: str) -> dict[str, JSONValue]:
    merged: dict[str, JSONValue] = {"run_id": run_id}
    captured = getattr(record, "correlation", None)
    if isinstance(captured, Mapping):
        merged.update({str(key): str(value) for key, value in captured.items()})
    # structlog delivers bound context as record attributes.
    for key in CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            merged[key] = str(value).strip()
    return merged


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return repr(value)


def _register_atexit_shutdown() -> None:
    global _ATEXIT_REGISTERED
    if not _ATEXIT_REGISTERED:
        atexit.register(shutdown_logging)
        _ATEXIT_REGISTERED = True


__all__ = [
    "CORRELATION_KEYS",
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
