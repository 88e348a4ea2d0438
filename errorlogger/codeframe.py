"""codeframe.py - Source-line context and enhanced stack traces.

Given a file and a line number, ``get_context()`` returns a bounded window of
source lines with the offending line flagged. The two ``enhanced_trace_*``
functions walk a traceback and attach such a window to every frame, producing
a JSON-shaped structure suitable for a remote error report.

Everything here is read-only with respect to the file system and never
raises for missing or unreadable files: a frame whose source cannot be read
simply has ``code_context`` set to ``None``.

Window shape:
    For ``line`` and ``window_size`` the window covers the 1-indexed lines
    ``[line - window_size, line + window_size - 1]`` clamped to the file. It
    shows one more line above the error than below it, e.g. lines 5-14 for
    line 10 with the default window of 5.
"""

import io
import socket
import sys
import traceback
from types import FrameType, TracebackType
from typing import Any, Dict, List, Mapping, Optional, Tuple

CONTEXT_LINES = 5
MAX_ARG_LENGTH = 100

# Stand-in for frames that have no source file (builtins, exec'd strings).
INTERNAL_FILE = "[internal function]"


class RaisedError(Exception):
    """Synthetic exception describing a raw error reported by file and line.

    Used by ``enhanced_trace_from_error()`` to carry the caller's stack, in
    the way a warning or a hooked platform error has a location but no
    exception object of its own.
    """

    def __init__(self, message: str, filename: str, lineno: int, severity: int = 0) -> None:
        super().__init__(message)
        self.filename = filename
        self.lineno = lineno
        self.severity = severity


# -------------------------------------------------------------------------- #
# Source windows
# -------------------------------------------------------------------------- #


def get_context(file: str, line: int, window_size: int = CONTEXT_LINES) -> Optional[Dict[str, Any]]:
    """Return the source lines surrounding ``line`` in ``file``.

    Args:
        file: Path to the source file.
        line: 1-indexed line number of interest.
        window_size: Number of lines of context around ``line``.

    Returns:
        A dict ``{file, line, start_line, end_line, context}`` where
        ``context`` maps each line number to ``{content, is_error_line}``, or
        ``None`` if the file does not exist or cannot be read.

    Example:
        >>> frame = get_context("app.py", 10)
        >>> frame["start_line"], frame["end_line"]   # for a 20-line file
        (5, 14)
    """
    if not file or line is None:
        return None
    try:
        with open(file, "r", encoding="utf-8", errors="replace") as f:
            lines = f.readlines()
    except (OSError, ValueError):
        return None

    total = len(lines)
    start = max(0, line - window_size - 1)
    end = min(total - 1, line + window_size - 2)

    context: Dict[int, Dict[str, Any]] = {}
    for i in range(start, end + 1):
        number = i + 1
        context[number] = {
            "content": lines[i].rstrip(),
            "is_error_line": number == line,
        }

    return {
        "file": file,
        "line": line,
        "start_line": start + 1,
        "end_line": end + 1,
        "context": context,
    }


# -------------------------------------------------------------------------- #
# Enhanced traces
# -------------------------------------------------------------------------- #


def enhanced_trace_from_exception(exc: BaseException) -> Dict[str, Any]:
    """Build a structured trace with code context for ``exc``.

    The first frame is the exception's own origin (function, class and type
    all ``None``). It is followed by one frame per traceback entry, innermost
    first.
    """
    origin_file, origin_line = exception_origin(exc)
    frames: List[Dict[str, Any]] = [
        {
            "file": origin_file,
            "line": origin_line,
            "function": None,
            "class": None,
            "type": None,
            "args": {},
            "code_context": get_context(origin_file, origin_line) if origin_file else None,
        }
    ]

    entries = list(traceback.walk_tb(exc.__traceback__))
    for frame, lineno in reversed(entries):
        frames.append(_describe_frame(frame, lineno))

    return {
        "frames": frames,
        "exception_class": qualified_name(type(exc)),
        "message": str(exc),
        "code": _exception_code(exc),
    }


def enhanced_trace_from_error(file: str, line: int, message: str, severity: int = 0) -> Dict[str, Any]:
    """Build a structured trace for a raw error reported by location.

    The trace frames are the stack as it was where this function was called.
    """
    error = RaisedError(message, file, line, severity)
    caller = sys._getframe(1)
    return enhanced_trace_from_exception(error.with_traceback(_traceback_from_frame(caller)))


def sanitize_args(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Render call arguments as short, JSON-safe values.

    Strings are truncated, containers are summarised by size and objects by
    class name so a trace never drags a deep object graph into the payload.
    """
    return {str(name): _render_arg(value) for name, value in args.items()}


# -------------------------------------------------------------------------- #
# Private helpers
# -------------------------------------------------------------------------- #


def _render_arg(value: Any) -> Any:
    if isinstance(value, str):
        if len(value) > MAX_ARG_LENGTH:
            return value[: MAX_ARG_LENGTH - 3] + "..."
        return value
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return f"[array({len(value)})]"
    if isinstance(value, (io.IOBase, socket.socket)):
        return f"[resource({type(value).__name__})]"
    return f"[object({type(value).__name__})]"


def _describe_frame(frame: FrameType, lineno: Optional[int]) -> Dict[str, Any]:
    code = frame.f_code
    filename = code.co_filename
    has_source = bool(filename) and not filename.startswith("<")

    first_arg = code.co_varnames[0] if code.co_argcount else None
    cls_name = None
    call_type = None
    if first_arg == "self" and "self" in frame.f_locals:
        cls_name = type(frame.f_locals["self"]).__name__
        call_type = "->"
    elif first_arg == "cls" and isinstance(frame.f_locals.get("cls"), type):
        cls_name = frame.f_locals["cls"].__name__
        call_type = "::"

    return {
        "file": filename if has_source else INTERNAL_FILE,
        "line": lineno or 0,
        "function": code.co_name,
        "class": cls_name,
        "type": call_type,
        "args": sanitize_args(_frame_args(frame)),
        "code_context": get_context(filename, lineno) if has_source and lineno else None,
    }


def _frame_args(frame: FrameType) -> Dict[str, Any]:
    code = frame.f_code
    count = code.co_argcount + code.co_kwonlyargcount
    if code.co_flags & 0x04:  # CO_VARARGS
        count += 1
    if code.co_flags & 0x08:  # CO_VARKEYWORDS
        count += 1
    args = {}
    for name in code.co_varnames[:count]:
        if name in ("self", "cls"):
            continue
        if name in frame.f_locals:
            args[name] = frame.f_locals[name]
    return args


def _traceback_from_frame(frame: Optional[FrameType]) -> Optional[TracebackType]:
    """Chain ``frame`` and its callers into a traceback, outermost first."""
    tb = None
    while frame is not None:
        tb = TracebackType(tb, frame, frame.f_lasti, frame.f_lineno)
        frame = frame.f_back
    return tb


def exception_origin(exc: BaseException) -> Tuple[Optional[str], Optional[int]]:
    """Return the file and line where ``exc`` was raised, if known."""
    if isinstance(exc, RaisedError):
        return exc.filename, exc.lineno
    if isinstance(exc, SyntaxError) and exc.filename:
        return exc.filename, exc.lineno
    entries = list(traceback.walk_tb(exc.__traceback__))
    if not entries:
        return None, None
    frame, lineno = entries[-1]
    return frame.f_code.co_filename, lineno


def _exception_code(exc: BaseException) -> int:
    if isinstance(exc, RaisedError):
        return exc.severity
    for attr in ("code", "errno"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


def qualified_name(cls: type) -> str:
    module = cls.__module__
    if module in ("builtins", "__main__"):
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"
