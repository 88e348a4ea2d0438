"""Shared fakes and fixtures for the errorlogger test suite."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from errorlogger.config import LoggerConfig
from errorlogger.errors import TransportError
from errorlogger.logger import ErrorLogger
from errorlogger.transport import (
    FileTransport,
    PlatformLogTransport,
    RemoteTransport,
    TransportDispatcher,
)


class FakeClock:
    """Controllable replacement for ``local_now``."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingPlatform(PlatformLogTransport):
    """Platform log that keeps ``(level, message)`` pairs in memory."""

    def __init__(self) -> None:
        super().__init__()
        self.lines: List[Tuple[int, str]] = []

    def write(self, message: str, level: int = 400) -> None:
        self.lines.append((int(level), message))

    def messages(self) -> List[str]:
        return [message for _, message in self.lines]


class RecordingRemote(RemoteTransport):
    """Remote transport that stores documents, or fails when told to."""

    name = "recording"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.documents: List[Dict[str, Any]] = []

    def post(self, document: Dict[str, Any]) -> None:
        if self.fail:
            raise TransportError(self.name, "endpoint unreachable")
        self.documents.append(document)


class Harness:
    """An ErrorLogger wired to in-memory transports and a fake clock."""

    def __init__(self, tmp_path: Path, **overrides: Any) -> None:
        settings = {
            "project_hash": "test-project",
            "remote_endpoint": "https://logs.example.test/ingest",
            "log_file_path": str(tmp_path / "logs" / "application.log"),
            "min_log_level": "debug",
        }
        settings.update(overrides)
        self.config = LoggerConfig.from_env(settings, environ={})
        self.clock = FakeClock()
        self.platform = RecordingPlatform()
        self.remote = RecordingRemote()
        self.file_path = Path(self.config.log_file_path)
        self.dispatcher = TransportDispatcher(
            file=FileTransport(str(self.file_path)) if self.config.use_file_logging else None,
            remotes=[self.remote] if self.config.use_remote_logging else [],
            platform=self.platform,
            use_error_log=self.config.use_error_log,
        )
        self.logger = ErrorLogger(self.config, dispatcher=self.dispatcher, clock=self.clock)

    def file_lines(self) -> List[str]:
        if not self.file_path.exists():
            return []
        return self.file_path.read_text(encoding="utf-8").splitlines()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_harness(tmp_path):
    """Factory fixture: ``make_harness(rate_limit_per_minute=3)``."""

    def factory(**overrides: Any) -> Harness:
        return Harness(tmp_path, **overrides)

    return factory
