"""context.py - Execution context shared by every record.

Two kinds of context live here:

    Context stack:   Caller-managed key/value scopes (``ContextStack``) that
                     are deep-merged into every record emitted while they are
                     pushed. The stack belongs to one ErrorLogger and is
                     guarded by a lock.

    Request scope:   The request id and, in web mode, the current request
                     snapshot, bound by ``request_scope()`` in
                     ``contextvars.ContextVar`` instances so concurrent
                     requests on other threads or asyncio Tasks do not see
                     them. Outside a request every thread shares one
                     process-wide id.
"""

import contextvars
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "errorlogger_request_id", default=""
)
_request: contextvars.ContextVar[Optional[Dict[str, Any]]] = contextvars.ContextVar(
    "errorlogger_request", default=None
)

# Request id used outside any request scope.
_process_rid: Optional[str] = None
_process_rid_lock = threading.Lock()


# -------------------------------------------------------------------------- #
# Deep merge
# -------------------------------------------------------------------------- #


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` on top of ``base`` and return a new dict.

    Rules, applied per key:
        - both values are mappings: merged recursively;
        - both values are lists: concatenated, ``base`` items first;
        - otherwise the value from ``override`` wins.

    Example:
        >>> deep_merge({"a": {"x": 1}, "t": [1]}, {"a": {"y": 2}, "t": [2]})
        {'a': {'x': 1, 'y': 2}, 't': [1, 2]}
    """
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            merged[key] = current + value
        else:
            merged[key] = value
    return merged


class ContextStack:
    """Ordered stack of context mappings.

    Example:
        >>> stack = ContextStack()
        >>> stack.push({"a": 1})
        >>> stack.push({"b": 2})
        >>> stack.merged({"c": 3})
        {'a': 1, 'b': 2, 'c': 3}
        >>> stack.pop()
        {'b': 2}
    """

    def __init__(self) -> None:
        self._frames: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    def push(self, context: Mapping[str, Any]) -> None:
        with self._lock:
            self._frames.append(dict(context))

    def pop(self) -> Dict[str, Any]:
        """Remove and return the most recently pushed mapping.

        Returns an empty dict when the stack is already empty.
        """
        with self._lock:
            if not self._frames:
                return {}
            return self._frames.pop()

    def merged(self, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Merge the stack bottom-to-top, then ``context`` on top of it."""
        with self._lock:
            frames = list(self._frames)
        result: Dict[str, Any] = {}
        for frame in frames:
            result = deep_merge(result, frame)
        if context:
            result = deep_merge(result, context)
        return result

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)


# -------------------------------------------------------------------------- #
# Request scope
# -------------------------------------------------------------------------- #


def get_request_id() -> str:
    """Return the id of the current request, or of the process outside one.

    Inside ``request_scope()`` this is the id bound for that web request.
    Elsewhere it is a single id generated once per process, shared by every
    thread of the CLI run.
    """
    rid = _request_id.get()
    if rid:
        return rid
    return _process_request_id()


def _process_request_id() -> str:
    global _process_rid
    with _process_rid_lock:
        if _process_rid is None:
            _process_rid = uuid.uuid4().hex
        return _process_rid


def get_request() -> Optional[Dict[str, Any]]:
    """Return the web request snapshot bound to this context, if any."""
    return _request.get()


@contextmanager
def request_scope(snapshot: Dict[str, Any], request_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``snapshot`` and a fresh request id for the duration of the block.

    Yields:
        The request id in effect inside the block.
    """
    rid = request_id or uuid.uuid4().hex
    rid_token = _request_id.set(rid)
    req_token = _request.set(snapshot)
    try:
        yield rid
    finally:
        _request.reset(req_token)
        _request_id.reset(rid_token)
