"""transport.py - Delivery of assembled payloads.

Three transports, each with a narrow contract:

    FileTransport         appends one line to a log file (with rotation)
    HttpTransport         POSTs the JSON document to the remote endpoint
    PlatformLogTransport  writes to the stdlib logger ``errorlogger.platform``

TransportDispatcher decides which of them receive a record and folds every
failure back into the platform log. Failures never propagate to the caller
of ``ErrorLogger.log()``.

Typical usage::

    dispatcher = TransportDispatcher(
        file=FileTransport("/var/log/app/application.log"),
        remotes=[HttpTransport("https://logs.example.com/ingest", timeout=2)],
        platform=PlatformLogTransport(),
    )
    dispatcher.dispatch(LogLevel.ERROR, "db down", payload)
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Sequence

import httpx

from .errors import TransportError
from .levels import LogLevel, level_name, to_stdlib
from .payload import Payload, to_json

PLATFORM_LOGGER = "errorlogger.platform"


class FileTransport:
    """Append log lines to a file on disk.

    The file and any missing parent directories are created on first write.

    Attributes:
        path (str): Absolute or relative path of the log file.
        max_bytes (int): Size past which the file is moved to ``<path>.bak``
            before the next write. 0 disables rotation.
    """

    def __init__(self, path: str, max_bytes: int = 0, encoding: str = "utf-8") -> None:
        if max_bytes < 0:
            raise ValueError(f"max_bytes must be >= 0, got {max_bytes}")
        self.path = path
        self.max_bytes = max_bytes
        self._encoding = encoding
        self._lock = threading.Lock()

    def write(self, line: str) -> None:
        """Append ``line`` followed by a newline.

        Raises:
            TransportError: If the directory cannot be created or the file
                cannot be written.
        """
        try:
            with self._lock:
                self._ensure_dir()
                if self.max_bytes > 0:
                    self._rotate_if_needed()
                with open(self.path, "a", encoding=self._encoding) as f:
                    f.write(line + "\n")
        except OSError as exc:
            raise TransportError(
                "file",
                f"Failed to write to log file: {self.path} - {exc.strerror or exc}",
            ) from exc

    def _ensure_dir(self) -> None:
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)

    def _rotate_if_needed(self) -> None:
        try:
            if os.path.getsize(self.path) >= self.max_bytes:
                os.replace(self.path, self.path + ".bak")
        except FileNotFoundError:
            pass  # Nothing written yet.


class RemoteTransport(ABC):
    """Destination for the remote JSON document."""

    name = "remote"

    @abstractmethod
    def post(self, document: Dict[str, Any]) -> None:
        """Deliver ``document``.

        Raises:
            TransportError: On any delivery failure, including timeouts.
        """

    def close(self) -> None:
        """Release any held resources."""


class HttpTransport(RemoteTransport):
    """POST documents as JSON to an HTTP endpoint using httpx.

    Args:
        endpoint: Absolute URL of the ingest endpoint.
        timeout: Request timeout in seconds.
        client: Pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``). When omitted a client is created and owned
            by this transport.
    """

    name = "http"

    def __init__(self, endpoint: str, timeout: float = 2, client: Optional[httpx.Client] = None) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def post(self, document: Dict[str, Any]) -> None:
        try:
            response = self._client.post(
                self.endpoint,
                content=to_json(document).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(self.name, f"Error reporting failed: {exc}") from exc

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class PlatformLogTransport:
    """Write ``[LEVEL] message`` lines to a stdlib logger.

    This is the always-available fallback. Configure the
    ``errorlogger.platform`` logger like any other to decide where these
    lines end up; with no configuration, Python's last-resort handler prints
    WARNING and above to stderr.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(PLATFORM_LOGGER)

    def write(self, message: str, level: int = LogLevel.ERROR) -> None:
        self.logger.log(to_stdlib(level), "[%s] %s", level_name(level), message)


class TransportDispatcher:
    """Route a payload to the configured transports.

    Routing:
        - ``file`` receives ``payload.file_line`` when set.
        - ``remotes`` are tried in order until one accepts the document; the
          later ones act as fallbacks for the earlier ones.
        - ``platform`` receives ``[LEVEL] message`` when ``use_error_log`` is
          set, and always for ERROR and above.

    Any TransportError is written to the platform log, followed by the
    record's file line if the platform log had not received it yet.

    When ``async_processing`` is set, delivery runs on a single background
    thread and ``dispatch()`` returns immediately. Call ``close()`` to wait
    for queued deliveries.
    """

    def __init__(
        self,
        file: Optional[FileTransport] = None,
        remotes: Sequence[RemoteTransport] = (),
        platform: Optional[PlatformLogTransport] = None,
        *,
        use_error_log: bool = True,
        async_processing: bool = False,
    ) -> None:
        self.file = file
        self.remotes = list(remotes)
        self.platform = platform or PlatformLogTransport()
        self.use_error_log = use_error_log
        self._executor: Optional[ThreadPoolExecutor] = None
        if async_processing:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="errorlogger")

    def dispatch(self, level: int, message: str, payload: Payload) -> None:
        if self._executor is not None:
            self._executor.submit(self._deliver_safely, level, message, payload)
        else:
            self._deliver(level, message, payload)

    def warn(self, message: str, level: int = LogLevel.WARNING) -> None:
        """Write an internal diagnostic straight to the platform log."""
        self.platform.write(message, level)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        for remote in self.remotes:
            remote.close()

    # ---------------------------------------------------------------------- #
    # Private helpers
    # ---------------------------------------------------------------------- #

    def _deliver(self, level: int, message: str, payload: Payload) -> None:
        failed = False

        if self.file is not None:
            try:
                self.file.write(payload.file_line)
            except TransportError as exc:
                self.platform.write(str(exc), LogLevel.ERROR)
                failed = True

        if self.remotes:
            for remote in self.remotes:
                try:
                    remote.post(payload.document)
                    break
                except TransportError as exc:
                    self.platform.write(str(exc), LogLevel.ERROR)
            else:
                failed = True

        platform_written = False
        if self.use_error_log or level >= LogLevel.ERROR:
            self.platform.write(message, level)
            platform_written = True

        if failed and not platform_written:
            self.platform.write(payload.file_line, level)

    def _deliver_safely(self, level: int, message: str, payload: Payload) -> None:
        # Runs on the executor thread, where an exception would go unobserved.
        try:
            self._deliver(level, message, payload)
        except Exception as exc:
            self.platform.write(f"Asynchronous log delivery failed: {exc!r}", LogLevel.ERROR)
