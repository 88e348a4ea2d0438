"""errorlogger/__init__.py - Public API for the errorlogger package.

errorlogger is an application-level error and event logger. It gates every
record through a level filter, a per-minute rate limiter, a sampler, a
circuit breaker and message/context filters; enriches the survivors with
system, CLI or web request facts and source code context; redacts sensitive
fields; and delivers them to a log file, a remote HTTP endpoint and the
platform log.

Quick start:
    from errorlogger import ErrorLogger, LoggerConfig, install_hooks

    # 1. Build the logger once at startup (values fall back to ERRORLOGGER_* env vars)
    log = ErrorLogger(LoggerConfig.from_env(
        project_hash="3f9a...",
        remote_endpoint="https://logs.example.com/ingest",
    ))

    # 2. Route uncaught exceptions and warnings into it
    install_hooks(log)

    # 3. Log with structured context; secrets are redacted before delivery
    log.error("payment failed", {"order_id": 42, "api_key": "sk_live_..."})

    # 4. Time an operation
    log.start_timer("sync")
    ...
    log.stop_timer("sync", level="info")

Exported names:
    ErrorLogger:          Gate pipeline + payload assembly + dispatch.
    LoggerConfig:         Immutable configuration (explicit > env > default).
    ContextFilter:        Context-based suppression rule.
    LogLevel:             DEBUG=100 ... CRITICAL=500.
    ErrorLoggerHandler:   stdlib ``logging`` bridge.
    ErrorLoggerMiddleware: WSGI middleware binding request context.
    install_hooks:        sys/threading excepthook and warnings adapter.
    Sanitizer:            Sensitive-key redaction.
    get_context:          Source lines around a file/line.
"""

from .codeframe import enhanced_trace_from_error, enhanced_trace_from_exception, get_context
from .config import ContextFilter, LoggerConfig
from .errors import ConfigurationError, ErrorLoggerError, TransportError
from .handler import ErrorLoggerHandler
from .hooks import ErrorLoggerMiddleware, install_hooks
from .levels import LogLevel
from .logger import ErrorLogger
from .sanitizer import REDACTED, Sanitizer

__version__ = "0.1.0"

__all__ = [
    "ErrorLogger",
    "LoggerConfig",
    "ContextFilter",
    "LogLevel",
    "ErrorLoggerHandler",
    "ErrorLoggerMiddleware",
    "install_hooks",
    "Sanitizer",
    "REDACTED",
    "get_context",
    "enhanced_trace_from_exception",
    "enhanced_trace_from_error",
    "ErrorLoggerError",
    "ConfigurationError",
    "TransportError",
]
