"""test_transport.py - Unit tests for transports and the dispatcher.

Covers:
    - FileTransport appends lines, creates directories, rotates past max_bytes
    - FileTransport raises TransportError when the path is unusable
    - HttpTransport posts JSON, maps HTTP errors and timeouts to TransportError
    - PlatformLogTransport writes '[LEVEL] message' at the mapped stdlib level
    - Dispatcher routing per flags, ERROR+ always on the platform log
    - Remote fallback order and failure folding into the platform log
    - Async mode delivers on a background thread and drains on close()
"""

import json
import logging

import httpx
import pytest

from conftest import RecordingPlatform, RecordingRemote
from errorlogger.errors import TransportError
from errorlogger.levels import LogLevel
from errorlogger.payload import Payload
from errorlogger.transport import (
    FileTransport,
    HttpTransport,
    PlatformLogTransport,
    TransportDispatcher,
)

_PAYLOAD = Payload(file_line="[ts] [ERROR] boom", document={"message": "boom", "level": 400})


# ---------------------------------------------------------------------------
# FileTransport
# ---------------------------------------------------------------------------


class TestFileTransport:
    def test_file_transport_appends_lines(self, tmp_path):
        """Each write appends one newline-terminated line."""
        path = tmp_path / "app.log"
        transport = FileTransport(str(path))
        transport.write("first")
        transport.write("second")
        assert path.read_text(encoding="utf-8") == "first\nsecond\n"

    def test_file_transport_creates_parent_directories(self, tmp_path):
        """Missing parent directories are created on first write."""
        path = tmp_path / "a" / "b" / "app.log"
        FileTransport(str(path)).write("x")
        assert path.exists()

    def test_file_transport_rotates_past_max_bytes(self, tmp_path):
        """Once the file reaches max_bytes it is moved to .bak."""
        path = tmp_path / "app.log"
        transport = FileTransport(str(path), max_bytes=10)
        transport.write("0123456789")
        transport.write("next")
        assert (tmp_path / "app.log.bak").read_text(encoding="utf-8") == "0123456789\n"
        assert path.read_text(encoding="utf-8") == "next\n"

    def test_file_transport_rejects_negative_max_bytes(self, tmp_path):
        """A negative rotation size is a programming error."""
        with pytest.raises(ValueError):
            FileTransport(str(tmp_path / "x.log"), max_bytes=-1)

    def test_file_transport_raises_transport_error(self, tmp_path):
        """Writing where a directory sits raises TransportError."""
        with pytest.raises(TransportError, match="Failed to write to log file"):
            FileTransport(str(tmp_path)).write("x")


# ---------------------------------------------------------------------------
# HttpTransport
# ---------------------------------------------------------------------------


class TestHttpTransport:
    def _client(self, handler):
        return httpx.Client(transport=httpx.MockTransport(handler))

    def test_http_transport_posts_json(self):
        """The document is POSTed as JSON with the right content type."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["type"] = request.headers["content-type"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        transport = HttpTransport("https://logs.example.test/ingest", client=self._client(handler))
        transport.post({"message": "boom"})

        assert seen == {
            "method": "POST",
            "url": "https://logs.example.test/ingest",
            "type": "application/json",
            "body": {"message": "boom"},
        }

    def test_http_transport_error_status_raises(self):
        """A 5xx response becomes a TransportError."""
        transport = HttpTransport(
            "https://logs.example.test/ingest",
            client=self._client(lambda request: httpx.Response(503)),
        )
        with pytest.raises(TransportError, match="Error reporting failed"):
            transport.post({})

    def test_http_transport_timeout_raises(self):
        """A timeout is surfaced as a TransportError, never propagated raw."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        transport = HttpTransport("https://logs.example.test/ingest", client=self._client(handler))
        with pytest.raises(TransportError):
            transport.post({})

    def test_http_transport_invalid_url_raises_transport_error(self):
        """A malformed endpoint is a TransportError like any other failure."""

        def handler(request):
            raise httpx.InvalidURL("Invalid port: 'abc'")

        transport = HttpTransport("https://logs.example.test/ingest", client=self._client(handler))
        with pytest.raises(TransportError, match="Error reporting failed"):
            transport.post({})

    def test_http_transport_does_not_close_borrowed_client(self):
        """A client passed in by the caller stays open after close()."""
        client = self._client(lambda request: httpx.Response(200))
        HttpTransport("https://logs.example.test/ingest", client=client).close()
        assert not client.is_closed


# ---------------------------------------------------------------------------
# PlatformLogTransport
# ---------------------------------------------------------------------------


class TestPlatformLogTransport:
    def test_platform_log_writes_level_prefixed_line(self, caplog):
        """The line is '[LEVEL] message' at the mapped stdlib level."""
        caplog.set_level(logging.DEBUG, logger="errorlogger.platform")
        PlatformLogTransport().write("disk full", LogLevel.CRITICAL)
        record = caplog.records[-1]
        assert record.name == "errorlogger.platform"
        assert record.levelno == logging.CRITICAL
        assert record.getMessage() == "[CRITICAL] disk full"


# ---------------------------------------------------------------------------
# TransportDispatcher
# ---------------------------------------------------------------------------


class TestDispatcher:
    def setup_method(self):
        self.platform = RecordingPlatform()

    def test_dispatch_writes_every_configured_transport(self, tmp_path):
        """File, remote and platform all receive the record."""
        remote = RecordingRemote()
        dispatcher = TransportDispatcher(
            file=FileTransport(str(tmp_path / "app.log")), remotes=[remote], platform=self.platform
        )
        dispatcher.dispatch(LogLevel.WARNING, "careful", _PAYLOAD)

        assert (tmp_path / "app.log").read_text(encoding="utf-8") == _PAYLOAD.file_line + "\n"
        assert remote.documents == [_PAYLOAD.document]
        assert self.platform.lines == [(300, "careful")]

    def test_dispatch_skips_platform_below_error_when_disabled(self):
        """use_error_log=False keeps sub-ERROR records off the platform log."""
        dispatcher = TransportDispatcher(platform=self.platform, use_error_log=False)
        dispatcher.dispatch(LogLevel.WARNING, "careful", _PAYLOAD)
        assert self.platform.lines == []

    def test_dispatch_error_always_reaches_platform(self):
        """ERROR+ records hit the platform log even with use_error_log=False."""
        remote = RecordingRemote()
        dispatcher = TransportDispatcher(remotes=[remote], platform=self.platform, use_error_log=False)
        dispatcher.dispatch(LogLevel.ERROR, "boom", _PAYLOAD)
        assert remote.documents == [_PAYLOAD.document]
        assert self.platform.lines == [(400, "boom")]

    def test_dispatch_uses_fallback_remote(self):
        """When the first remote fails the next one is tried."""
        broken, backup = RecordingRemote(fail=True), RecordingRemote()
        dispatcher = TransportDispatcher(remotes=[broken, backup], platform=self.platform, use_error_log=False)
        dispatcher.dispatch(LogLevel.INFO, "m", _PAYLOAD)
        assert backup.documents == [_PAYLOAD.document]
        assert any("endpoint unreachable" in m for m in self.platform.messages())

    def test_dispatch_folds_failures_into_platform_log(self, tmp_path):
        """If every remote fails, the file line lands on the platform log."""
        dispatcher = TransportDispatcher(
            remotes=[RecordingRemote(fail=True)], platform=self.platform, use_error_log=False
        )
        dispatcher.dispatch(LogLevel.INFO, "m", _PAYLOAD)
        messages = self.platform.messages()
        assert "recording: endpoint unreachable" in messages
        assert _PAYLOAD.file_line in messages

    def test_dispatch_reports_invalid_endpoint_on_platform_log(self):
        """A malformed endpoint is reported and the record still reaches the platform log."""

        def handler(request):
            raise httpx.InvalidURL("Invalid port: 'abc'")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        remote = HttpTransport("https://logs.example.test/ingest", client=client)
        dispatcher = TransportDispatcher(remotes=[remote], platform=self.platform, use_error_log=False)
        dispatcher.dispatch(LogLevel.ERROR, "boom", _PAYLOAD)

        messages = self.platform.messages()
        assert any(m.startswith("http: Error reporting failed") for m in messages)
        assert "boom" in messages

    def test_dispatch_file_failure_is_reported_not_raised(self, tmp_path):
        """A broken file transport never raises out of dispatch()."""
        dispatcher = TransportDispatcher(file=FileTransport(str(tmp_path)), platform=self.platform)
        dispatcher.dispatch(LogLevel.ERROR, "boom", _PAYLOAD)
        assert any("Failed to write to log file" in m for m in self.platform.messages())

    def test_async_dispatch_delivers_after_close(self):
        """In async mode close() waits for queued deliveries."""
        remote = RecordingRemote()
        dispatcher = TransportDispatcher(remotes=[remote], platform=self.platform, async_processing=True)
        for _ in range(5):
            dispatcher.dispatch(LogLevel.ERROR, "boom", _PAYLOAD)
        dispatcher.close()
        assert len(remote.documents) == 5
