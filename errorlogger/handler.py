"""handler.py - Bridge from the stdlib ``logging`` module into an ErrorLogger.

ErrorLoggerHandler lets applications that already log through ``logging``
feed those records through the gate pipeline and transports without changing
their call sites.

Typical usage::

    import logging
    from errorlogger import ErrorLogger, ErrorLoggerHandler

    error_logger = ErrorLogger()
    logging.getLogger().addHandler(ErrorLoggerHandler(error_logger))

    log = logging.getLogger("billing")
    log.warning("card declined", extra={"order_id": 42})   # context: order_id
    log.exception("charge failed")                          # enhanced trace attached
"""

import logging
from typing import Any, Dict

from .codeframe import enhanced_trace_from_exception, qualified_name
from .levels import from_stdlib

# Records from these loggers are errorlogger's own diagnostics; feeding them
# back into the pipeline could loop.
_OWN_NAMESPACE = "errorlogger"

# Standard LogRecord attributes that are not treated as context.
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


class ErrorLoggerHandler(logging.Handler):
    """A logging.Handler that forwards records to an ErrorLogger.

    Level mapping rounds down to the nearest errorlogger level (DEBUG=10 ->
    100, INFO=20 -> 200, ...). The context of each forwarded record holds the
    ``logger``, ``file``, ``line`` and ``function`` of the call site plus any
    ``extra`` attributes; ``exc_info`` adds the exception class and its
    enhanced trace.

    Args:
        error_logger: Destination for forwarded records.
        level: Handler level, as for any ``logging.Handler``.
    """

    def __init__(self, error_logger, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.error_logger = error_logger

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == _OWN_NAMESPACE or record.name.startswith(_OWN_NAMESPACE + "."):
            return
        try:
            self.error_logger.log(from_stdlib(record.levelno), record.getMessage(), self._context(record))
        except Exception:
            self.handleError(record)

    def _context(self, record: logging.LogRecord) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            "logger": record.name,
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and not key.startswith("_"):
                context[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            context["exception"] = qualified_name(type(exc))
            context["enhanced_trace"] = enhanced_trace_from_exception(exc)
        return context
