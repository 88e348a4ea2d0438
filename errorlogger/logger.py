"""logger.py - ErrorLogger, the public entry point.

ErrorLogger wires the pieces together for every call::

    log(level, message, context)
        -> GatePipeline.evaluate()          suppress, or merge the context
        -> payload.assemble()               file line + remote document
        -> TransportDispatcher.dispatch()   file / HTTP / platform log

There is no process-wide singleton: construct one ErrorLogger at startup and
pass it to the code that needs it. ``reset()`` clears all gate state, which
keeps test cases independent.

Typical usage::

    from errorlogger import ErrorLogger, LoggerConfig

    log = ErrorLogger(LoggerConfig.from_env(use_remote_logging=False))
    log.error("payment failed", {"order_id": 42, "tags": ["billing"]})

    with log.context({"job": "nightly-sync"}):
        log.warning("slow upstream")
"""

import logging
import os
import random
import threading
import time
import traceback
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

import psutil

from .codeframe import (
    enhanced_trace_from_error,
    enhanced_trace_from_exception,
    exception_origin,
    qualified_name,
)
from .config import LoggerConfig
from .context import ContextStack, get_request, get_request_id
from .environment import CLI, WEB, SystemProbe, cli_snapshot, environment_snapshot
from .gates import Clock, GatePipeline, local_now
from .levels import LogLevel, coerce_level
from .payload import LogRecord, Payload, assemble
from .sanitizer import Sanitizer
from .transport import FileTransport, HttpTransport, PlatformLogTransport, TransportDispatcher

logger = logging.getLogger(__name__)

LevelLike = Union[LogLevel, int, str]


def build_dispatcher(config: LoggerConfig, platform: Optional[PlatformLogTransport] = None) -> TransportDispatcher:
    """Create the transports selected by ``config``."""
    file = None
    if config.use_file_logging:
        file = FileTransport(config.log_file_path, max_bytes=config.log_file_max_bytes)
    remotes = []
    if config.use_remote_logging and config.remote_endpoint:
        remotes.append(HttpTransport(config.remote_endpoint, timeout=config.request_timeout))
    return TransportDispatcher(
        file=file,
        remotes=remotes,
        platform=platform,
        use_error_log=config.use_error_log,
        async_processing=config.async_processing,
    )


class ErrorLogger:
    """Gate, enrich, redact and dispatch application log records.

    Args:
        config: Resolved configuration. Defaults to ``LoggerConfig.from_env()``.
        dispatcher: Transport dispatcher. Built from ``config`` when omitted.
        clock: Returns the current aware datetime; drives timestamps and the
            per-minute buckets.
        rng: Random source for the sampler.
        probe: Source of the system snapshot.

    Raises:
        ConfigurationError: If ``config`` is missing the project hash, or
            enables remote logging without an endpoint.
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        *,
        dispatcher: Optional[TransportDispatcher] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        probe: Optional[SystemProbe] = None,
    ) -> None:
        self.config = config if config is not None else LoggerConfig.from_env()
        self.config.validate()

        self.dispatcher = dispatcher or build_dispatcher(self.config)
        self.sanitizer = Sanitizer(self.config.sensitive_keys)
        self.context_stack = ContextStack()
        self._clock = clock or local_now
        self.gates = GatePipeline(
            self.config,
            self.context_stack,
            clock=self._clock,
            rng=rng,
            warn=self.dispatcher.warn,
        )
        self.probe = probe or SystemProbe()

        self._lock = threading.RLock()
        self._default_tags: Tuple[str, ...] = tuple(self.config.default_tags)
        self._timers: Dict[str, Tuple[float, int]] = {}

        if self.config.use_file_logging:
            self._ensure_log_directory()

    # ---------------------------------------------------------------------- #
    # Logging
    # ---------------------------------------------------------------------- #

    def log(self, level: LevelLike, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        """Record ``message`` at ``level`` if it survives the gates.

        Never raises: internal failures are reported to the platform log.

        Returns:
            True if the record passed the gates and was handed to the
            transports.
        """
        try:
            level = coerce_level(level)
            message = str(message)
            decision = self.gates.evaluate(level, message, context)
            if not decision.emit:
                return False

            record = LogRecord(
                level=level,
                message=message,
                context=decision.context,
                timestamp=self._clock(),
                request_id=get_request_id(),
            )
            self.dispatcher.dispatch(level, message, self.build_payload(record))
            return True
        except Exception:
            logger.error("errorlogger failed to record a log entry", exc_info=True)
            return False

    def debug(self, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(LogLevel.DEBUG, message, context)

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(LogLevel.INFO, message, context)

    def warning(self, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(LogLevel.WARNING, message, context)

    def error(self, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(LogLevel.ERROR, message, context)

    def critical(self, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(LogLevel.CRITICAL, message, context)

    def log_exception(
        self,
        exc: BaseException,
        level: LevelLike = LogLevel.CRITICAL,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Record ``exc`` with its formatted traceback and code context."""
        try:
            file, line = exception_origin(exc)
            details = {
                "exception": qualified_name(type(exc)),
                "file": file,
                "line": line,
                "trace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                "enhanced_trace": enhanced_trace_from_exception(exc),
            }
        except Exception:
            logger.error("errorlogger failed to describe an exception", exc_info=True)
            details = {"exception": type(exc).__name__}
        return self.log(level, str(exc) or type(exc).__name__, {**details, **(context or {})})

    def log_error(
        self,
        file: str,
        line: int,
        message: str,
        severity: int = 0,
        level: LevelLike = LogLevel.ERROR,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Record a raw error known only by its location (e.g. a warning)."""
        try:
            details = {
                "file": file,
                "line": line,
                "severity": severity,
                "trace": "".join(traceback.format_stack()[:-1]),
                "enhanced_trace": enhanced_trace_from_error(file, line, message, severity),
            }
        except Exception:
            logger.error("errorlogger failed to describe a raw error", exc_info=True)
            details = {"file": file, "line": line, "severity": severity}
        return self.log(level, message, {**details, **(context or {})})

    def build_payload(self, record: LogRecord) -> Payload:
        """Assemble ``record`` with the current environment facts."""
        request = get_request()
        mode = WEB if request is not None else CLI
        return assemble(
            record,
            project_hash=self.config.project_hash,
            sanitizer=self.sanitizer,
            default_tags=self._default_tags,
            system=self._system_snapshot(),
            environment=environment_snapshot(self.config.environment_name, mode),
            cli=cli_snapshot() if mode == CLI else None,
            web=request,
        )

    # ---------------------------------------------------------------------- #
    # Timers
    # ---------------------------------------------------------------------- #

    def start_timer(self, name: str) -> None:
        """Start (or restart) the timer called ``name``."""
        memory = self._memory_usage()
        with self._lock:
            self._timers[name] = (time.perf_counter(), memory)

    def stop_timer(
        self,
        name: str,
        message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        level: LevelLike = LogLevel.DEBUG,
    ) -> Optional[float]:
        """Stop ``name`` and log its duration and memory delta.

        The record carries ``timer: {name, duration_ms, memory_bytes}``.

        Returns:
            The elapsed time in milliseconds, or ``None`` if no such timer was
            started.
        """
        with self._lock:
            started = self._timers.pop(name, None)
        if started is None:
            self.dispatcher.warn(f"Timer '{name}' was stopped without being started")
            return None

        start, start_memory = started
        duration_ms = round((time.perf_counter() - start) * 1000, 3)
        timer = {
            "name": name,
            "duration_ms": duration_ms,
            "memory_bytes": self._memory_usage() - start_memory,
        }
        self.log(level, message or f"Timer '{name}' finished", {**(context or {}), "timer": timer})
        return duration_ms

    # ---------------------------------------------------------------------- #
    # Context and tags
    # ---------------------------------------------------------------------- #

    def push_context(self, context: Mapping[str, Any]) -> None:
        self.context_stack.push(context)

    def pop_context(self) -> Dict[str, Any]:
        return self.context_stack.pop()

    @contextmanager
    def context(self, context: Mapping[str, Any]) -> Iterator[None]:
        """Push ``context`` for the duration of a ``with`` block."""
        self.push_context(context)
        try:
            yield
        finally:
            self.pop_context()

    def set_default_tags(self, tags: Iterable[str]) -> None:
        """Replace the tags added to every remote document."""
        with self._lock:
            self._default_tags = tuple(str(tag) for tag in tags)

    @property
    def default_tags(self) -> Tuple[str, ...]:
        return self._default_tags

    # ---------------------------------------------------------------------- #
    # Lifecycle
    # ---------------------------------------------------------------------- #

    def reset(self) -> None:
        """Clear gate counters, circuit state, context stack, timers and tags."""
        self.gates.reset()
        with self._lock:
            self._timers.clear()
            self._default_tags = tuple(self.config.default_tags)

    def close(self) -> None:
        """Wait for asynchronous deliveries and release transports."""
        self.dispatcher.close()

    def __enter__(self) -> "ErrorLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ---------------------------------------------------------------------- #
    # Private helpers
    # ---------------------------------------------------------------------- #

    def _ensure_log_directory(self) -> None:
        log_dir = os.path.dirname(os.path.abspath(self.config.log_file_path))
        try:
            os.makedirs(log_dir, exist_ok=True)
        except OSError as exc:
            self.dispatcher.warn(f"Failed to create log directory: {log_dir} ({exc})", LogLevel.ERROR)
            return
        if not os.access(log_dir, os.W_OK):
            self.dispatcher.warn(f"Log directory is not writable: {log_dir}", LogLevel.ERROR)

    def _system_snapshot(self) -> Dict[str, Any]:
        try:
            return self.probe.snapshot()
        except (psutil.Error, OSError) as exc:
            self.dispatcher.warn(f"System snapshot unavailable: {exc}")
            return {}

    def _memory_usage(self) -> int:
        try:
            return self.probe.memory_usage()
        except (psutil.Error, OSError):
            return 0
