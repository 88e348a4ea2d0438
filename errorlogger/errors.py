"""errors.py - Exception types raised by errorlogger.

Only ConfigurationError ever reaches application code: it is raised when an
ErrorLogger is constructed from an unusable configuration. TransportError is
raised by the individual transports and always caught by the dispatcher.
"""


class ErrorLoggerError(Exception):
    """Base class for all errorlogger exceptions."""


class ConfigurationError(ErrorLoggerError):
    """The configuration cannot produce a working logger."""


class TransportError(ErrorLoggerError):
    """A transport failed to deliver a record (file, HTTP, timeout)."""

    def __init__(self, transport: str, message: str) -> None:
        super().__init__(f"{transport}: {message}")
        self.transport = transport
