"""hooks.py - Process entry-point adapters.

The core never registers global handlers by itself. These adapters are the
explicit seam between the interpreter (or a WSGI server) and an ErrorLogger:

    install_hooks(logger)          uncaught exceptions, thread exceptions,
                                   warnings, flush at interpreter exit
    ErrorLoggerMiddleware(app, l)  per-request id and request snapshot for the
                                   call and the response iteration,
                                   unhandled exceptions logged as CRITICAL

Typical usage::

    from errorlogger import ErrorLogger, install_hooks

    error_logger = ErrorLogger()
    hooks = install_hooks(error_logger)
    ...
    hooks.uninstall()   # e.g. in tests
"""

import atexit
import sys
import threading
import warnings
from typing import Any, Callable, Iterable, Iterator, Optional

from .context import request_scope
from .environment import web_snapshot
from .levels import LogLevel

# Warnings that announce future breakage are reported like notices.
_NOTICE_CATEGORIES = (DeprecationWarning, PendingDeprecationWarning)


class InstalledHooks:
    """Handle returned by ``install_hooks()``; restores the previous hooks."""

    def __init__(self, error_logger, chain: bool = True) -> None:
        self.error_logger = error_logger
        self.chain = chain
        self._previous_excepthook = sys.excepthook
        self._previous_threading_hook = threading.excepthook
        self._previous_showwarning = warnings.showwarning
        self._installed = False

    def install(self) -> "InstalledHooks":
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook
        warnings.showwarning = self._showwarning
        atexit.register(self.error_logger.close)
        self._installed = True
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return
        sys.excepthook = self._previous_excepthook
        threading.excepthook = self._previous_threading_hook
        warnings.showwarning = self._previous_showwarning
        atexit.unregister(self.error_logger.close)
        self._installed = False

    # ---------------------------------------------------------------------- #
    # Hooks
    # ---------------------------------------------------------------------- #

    def _excepthook(self, exc_type, exc_value, exc_tb) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            if exc_value.__traceback__ is None:
                exc_value = exc_value.with_traceback(exc_tb)
            self.error_logger.log_exception(exc_value, LogLevel.CRITICAL, {"uncaught": True})
        if self.chain:
            self._previous_excepthook(exc_type, exc_value, exc_tb)

    def _threading_excepthook(self, args) -> None:
        if args.exc_type is not SystemExit and args.exc_value is not None:
            thread_name = args.thread.name if args.thread is not None else None
            self.error_logger.log_exception(
                args.exc_value, LogLevel.CRITICAL, {"uncaught": True, "thread": thread_name}
            )
        if self.chain:
            self._previous_threading_hook(args)

    def _showwarning(self, message, category, filename, lineno, file=None, line=None) -> None:
        level = LogLevel.INFO if issubclass(category, _NOTICE_CATEGORIES) else LogLevel.WARNING
        self.error_logger.log_error(
            filename,
            lineno,
            f"{category.__name__}: {message}",
            severity=int(level),
            level=level,
            context={"category": category.__name__},
        )


def install_hooks(error_logger, chain: bool = True) -> InstalledHooks:
    """Route uncaught exceptions and warnings into ``error_logger``.

    Args:
        error_logger: The ErrorLogger receiving the reports.
        chain: Also call the previously installed exception hooks, so the
            usual traceback is still printed.

    Returns:
        An InstalledHooks handle whose ``uninstall()`` restores the previous
        hooks.
    """
    return InstalledHooks(error_logger, chain=chain).install()


class ErrorLoggerMiddleware:
    """WSGI middleware binding request context around each request.

    Within a request every record carries the request snapshot (mode ``web``)
    and a request id unique to that request. This covers both the call to
    the wrapped application and the iteration of the response it returns, so
    streamed bodies and generator applications are reported like any other
    request. Exceptions escaping either phase are logged at CRITICAL and
    re-raised.

    The request body is not read, since that would consume ``wsgi.input``.

    Args:
        app: The WSGI application to wrap.
        error_logger: The ErrorLogger to report to.
        session_key: Optional environ key holding the session mapping (e.g.
            ``"beaker.session"``); its keys are summarised in the report.
    """

    def __init__(self, app: Callable, error_logger, session_key: Optional[str] = None) -> None:
        self.app = app
        self.error_logger = error_logger
        self.session_key = session_key

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[Any]:
        session = environ.get(self.session_key) if self.session_key else None
        snapshot = web_snapshot(environ, session=session)
        with request_scope(snapshot) as request_id:
            try:
                response = self.app(environ, start_response)
            except Exception as exc:
                self.error_logger.log_exception(exc, LogLevel.CRITICAL)
                raise
        return _ScopedResponse(response, self.error_logger, snapshot, request_id)


class _ScopedResponse:
    """Response iterable that re-enters the request scope for each chunk.

    ``close()`` is forwarded to the wrapped iterable, as PEP 3333 requires.
    """

    def __init__(self, response: Iterable[Any], error_logger, snapshot: dict, request_id: str) -> None:
        self._response = response
        self._iterator: Optional[Iterator[Any]] = None
        self._error_logger = error_logger
        self._snapshot = snapshot
        self._request_id = request_id

    def __iter__(self) -> "_ScopedResponse":
        return self

    def __next__(self) -> Any:
        with request_scope(self._snapshot, self._request_id):
            try:
                if self._iterator is None:
                    self._iterator = iter(self._response)
                return next(self._iterator)
            except StopIteration:
                raise
            except Exception as exc:
                self._error_logger.log_exception(exc, LogLevel.CRITICAL)
                raise

    def close(self) -> None:
        close = getattr(self._response, "close", None)
        if close is None:
            return
        with request_scope(self._snapshot, self._request_id):
            try:
                close()
            except Exception as exc:
                self._error_logger.log_exception(exc, LogLevel.CRITICAL)
                raise
