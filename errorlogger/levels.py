"""levels.py - Ordinal severities used throughout errorlogger.

Levels are spaced by 100 so that they compare numerically and leave room for
callers who want intermediate values. The stdlib ``logging`` module uses a
different scale (DEBUG=10 ... CRITICAL=50), so this module also provides the
two mappings needed by the platform log transport and the logging bridge.
"""

import logging
from enum import IntEnum
from typing import Union


class LogLevel(IntEnum):
    """Severity of a log record.

    Example:
        >>> LogLevel.ERROR > LogLevel.WARNING
        True
        >>> LogLevel.parse("critical")
        <LogLevel.CRITICAL: 500>
    """

    DEBUG = 100
    INFO = 200
    WARNING = 300
    ERROR = 400
    CRITICAL = 500

    @classmethod
    def parse(cls, value: Union[str, int, "LogLevel"]) -> "LogLevel":
        """Convert a level name or number to a LogLevel.

        Args:
            value: A level name (case-insensitive, ``"warn"`` accepted) or one
                of the numeric values above.

        Raises:
            ValueError: If the value does not name a known level.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name == "WARN":
                name = "WARNING"
            try:
                return cls[name]
            except KeyError:
                raise ValueError(f"unknown log level: {value!r}") from None
        return cls(int(value))


def coerce_level(value: Union[str, int, "LogLevel"]) -> int:
    """Convert a level for a log call.

    Names and defined numbers become a LogLevel, exactly as ``LogLevel.parse``.
    Any other integer is kept as is: it is compared numerically by the gates
    and named ``"UNKNOWN"`` in the output.

    Raises:
        ValueError: If ``value`` is a string that does not name a level.
    """
    if isinstance(value, str):
        return LogLevel.parse(value)
    number = int(value)
    try:
        return LogLevel(number)
    except ValueError:
        return number


def level_name(level: int) -> str:
    """Return the canonical name for ``level``, or ``"UNKNOWN"``."""
    try:
        return LogLevel(level).name
    except ValueError:
        return "UNKNOWN"


_TO_STDLIB = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def to_stdlib(level: int) -> int:
    """Map an errorlogger level onto the closest stdlib ``logging`` level."""
    for ours in sorted(_TO_STDLIB, reverse=True):
        if level >= ours:
            return _TO_STDLIB[ours]
    return logging.DEBUG


def from_stdlib(levelno: int) -> LogLevel:
    """Map a stdlib ``logging`` level number onto a LogLevel.

    Values between the stdlib constants round down, e.g. 35 becomes WARNING.
    """
    if levelno >= logging.CRITICAL:
        return LogLevel.CRITICAL
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARNING
    if levelno >= logging.INFO:
        return LogLevel.INFO
    return LogLevel.DEBUG
