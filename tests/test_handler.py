"""test_handler.py - Tests for the stdlib logging bridge.

Covers:
    - Level mapping from logging levels onto errorlogger levels
    - Call-site fields and ``extra`` attributes become context
    - exc_info adds the exception class and enhanced trace
    - Records from errorlogger's own loggers are ignored
    - Records suppressed by the gates are dropped silently
    - handleError() is used when forwarding fails
"""

import logging

import pytest

from errorlogger.handler import ErrorLoggerHandler
from errorlogger.levels import LogLevel, from_stdlib


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def bridged(make_harness):
    """A harness plus a 'billing' logger wired through ErrorLoggerHandler."""
    harness = make_harness()
    handler = ErrorLoggerHandler(harness.logger)
    log = logging.getLogger("billing")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    log.addHandler(handler)
    yield harness, log, handler
    log.removeHandler(handler)
    log.propagate = True
    log.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Level mapping
# ---------------------------------------------------------------------------


class TestLevelMapping:
    @pytest.mark.parametrize(
        "levelno, expected",
        [
            (logging.DEBUG, LogLevel.DEBUG),
            (logging.INFO, LogLevel.INFO),
            (logging.WARNING, LogLevel.WARNING),
            (logging.ERROR, LogLevel.ERROR),
            (logging.CRITICAL, LogLevel.CRITICAL),
            (35, LogLevel.WARNING),
            (5, LogLevel.DEBUG),
        ],
    )
    def test_from_stdlib_rounds_down(self, levelno, expected):
        """Stdlib level numbers round down to the nearest errorlogger level."""
        assert from_stdlib(levelno) == expected

    def test_forwarded_records_keep_their_level(self, bridged):
        """Each stdlib call lands at the mapped level."""
        harness, log, _ = bridged
        log.info("a")
        log.error("b")
        assert [d["level_name"] for d in harness.remote.documents] == ["INFO", "ERROR"]


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestContext:
    def test_call_site_and_extra_become_context(self, bridged):
        """logger, file, line, function and extra attributes are forwarded."""
        harness, log, _ = bridged
        log.warning("card declined for %s", "ada", extra={"order_id": 42})

        doc = harness.remote.documents[0]
        context = doc["context"]
        assert doc["message"] == "card declined for ada"
        assert context["logger"] == "billing"
        assert context["file"] == __file__
        assert context["function"] == "test_call_site_and_extra_become_context"
        assert isinstance(context["line"], int)
        assert context["order_id"] == 42
        assert "msg" not in context
        assert "levelno" not in context

    def test_exc_info_adds_enhanced_trace(self, bridged):
        """log.exception() attaches the exception class and trace."""
        harness, log, _ = bridged
        try:
            {}["missing"]
        except KeyError:
            log.exception("lookup failed")

        context = harness.remote.documents[0]["context"]
        assert context["exception"] == "KeyError"
        assert context["enhanced_trace"]["exception_class"] == "KeyError"
        assert len(context["enhanced_trace"]["frames"]) >= 2


# ---------------------------------------------------------------------------
# Filtering and failures
# ---------------------------------------------------------------------------


class TestFiltering:
    def test_own_namespace_is_ignored(self, bridged):
        """Records from errorlogger.* loggers never re-enter the pipeline."""
        harness, _, handler = bridged
        for name in ("errorlogger", "errorlogger.logger", "errorlogger.platform"):
            record = logging.LogRecord(name, logging.ERROR, __file__, 1, "internal", (), None)
            handler.emit(record)
        assert harness.remote.documents == []

    def test_similar_namespace_is_forwarded(self, bridged):
        """Only the exact namespace is excluded, not a shared prefix."""
        harness, _, handler = bridged
        handler.emit(logging.LogRecord("errorloggerish", logging.ERROR, __file__, 1, "m", (), None))
        assert len(harness.remote.documents) == 1

    def test_records_below_min_level_are_dropped(self, make_harness):
        """The gate pipeline still applies to bridged records."""
        harness = make_harness(min_log_level="error")
        handler = ErrorLoggerHandler(harness.logger)
        handler.emit(logging.LogRecord("billing", logging.WARNING, __file__, 1, "m", (), None))
        assert harness.remote.documents == []

    def test_forwarding_failure_calls_handle_error(self, bridged, monkeypatch):
        """An exception while forwarding goes to handleError()."""
        _, log, handler = bridged
        seen = []

        def broken(*args, **kwargs):
            raise RuntimeError("down")

        monkeypatch.setattr(handler.error_logger, "log", broken)
        monkeypatch.setattr(handler, "handleError", seen.append)
        log.error("boom")
        assert len(seen) == 1
        assert seen[0].getMessage() == "boom"
