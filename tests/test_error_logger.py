"""
Tests for the structured error logger.
"""

import asyncio
import csv
import io
import json
import sys
from unittest.mock import Mock, patch

import httpx
import pytest

from chronotask.config import ERROR_LOGS_KEY, SESSION_ID_KEY
from chronotask.error_handling.error_logger import ErrorLogger, fingerprint
from chronotask.error_handling.storage import read_json
from chronotask.models import LoggerConfig, LogLevel

DAY = 24 * 60 * 60


class TestLogging:
    """Test accepting entries into the buffer."""

    def test_entry_fields(self, error_logger):
        """Test a logged entry carries the kind snapshot and environment."""
        entry = error_logger.error("API_TIMEOUT", {"component": "TaskList", "action": "load"})

        assert entry.id.startswith("log_")
        assert entry.level == LogLevel.ERROR
        assert entry.error_type.code == "API_TIMEOUT"
        assert entry.error_type.severity == "medium"
        assert entry.context["component"] == "TaskList"
        assert entry.environment.python_version
        assert entry.environment.storage_available is True
        assert entry.session_id.startswith("session_")
        assert entry.stack
        assert error_logger.buffer == [entry]

    def test_min_level_filter(self, storage, clock):
        """Test entries below the minimum level are dropped silently."""
        logger = ErrorLogger(
            config=LoggerConfig(enable_console_output=False), storage=storage, clock=clock
        )
        assert logger.config.log_level == LogLevel.WARN

        assert logger.info("API_TIMEOUT") is None
        assert logger.debug("API_TIMEOUT") is None
        assert logger.warn("API_TIMEOUT") is not None
        assert len(logger.buffer) == 1

    def test_excluded_categories(self, storage, clock):
        logger = ErrorLogger(
            config=LoggerConfig(
                log_level="debug", enable_console_output=False, exclude_categories=["ui"]
            ),
            storage=storage,
            clock=clock,
        )
        assert logger.error("UI_COMPONENT_CRASH") is None
        assert logger.error("TASK_NOT_FOUND") is not None

    def test_unknown_code_logged_as_unknown(self, error_logger):
        entry = error_logger.error("SOMETHING_ELSE")
        assert entry.error_type.code == "UNKNOWN_ERROR"

    def test_log_never_raises(self, error_logger):
        """Test a bad level falls back to stderr instead of raising."""
        assert error_logger.log("loud", "API_TIMEOUT") is None
        assert error_logger.buffer == []

    def test_original_error_stack(self, error_logger):
        try:
            raise ValueError("bad payload")
        except ValueError as e:
            entry = error_logger.error("UNKNOWN_ERROR", {}, e)
        assert "ValueError: bad payload" in entry.stack

    def test_console_output_uses_stdlib_logging(self, storage, clock, caplog):
        logger = ErrorLogger(config=LoggerConfig(), storage=storage, clock=clock)
        with caplog.at_level("ERROR", logger="chronotask.error_handling.error_logger"):
            logger.error("API_SERVER_ERROR")
        assert "API_SERVER_ERROR" in caplog.text


class TestSanitization:
    """Test sensitive fields never reach storage."""

    def test_nested_redaction(self, error_logger):
        error_logger.error(
            "API_UNAUTHORIZED",
            {
                "token": "abc",
                "user": {"name": "Ana", "Password": "hunter2"},
                "contacts": [{"email": "a@b.c", "label": "home"}],
            },
        )
        error_logger.flush()

        context = error_logger.get_logs()[0].context
        assert context["token"] == "[REDACTED]"
        assert context["user"] == {"name": "Ana", "Password": "[REDACTED]"}
        assert context["contacts"] == [{"email": "[REDACTED]", "label": "home"}]

    def test_values_made_serializable(self, error_logger):
        entry = error_logger.error("UNKNOWN_ERROR", {"reason": ValueError("x"), "ids": (1, 2)})
        assert entry.context == {"reason": "x", "ids": [1, 2]}


class TestFingerprint:
    """Test fingerprint stability."""

    def test_stable_and_distinct(self, error_logger):
        a = error_logger.error("API_TIMEOUT", {"component": "A", "action": "load"})
        b = error_logger.error("API_TIMEOUT", {"component": "A", "action": "load"})
        c = error_logger.error("API_TIMEOUT", {"component": "B", "action": "load"})
        assert a.fingerprint == b.fingerprint
        assert a.fingerprint != c.fingerprint

    def test_base36(self):
        assert fingerprint([]) == "0"
        assert fingerprint(["a"]) == "2p"  # ord("a") == 97
        value = fingerprint(["API_TIMEOUT", "api", "", "TaskList", "load"])
        assert value == value.lower()
        assert int(value, 36) < 2**31 + 1


class TestFlushPolicy:
    """Test when the buffer is persisted."""

    def test_buffer_size_trigger(self, storage, clock):
        logger = ErrorLogger(
            config=LoggerConfig(
                log_level="debug", enable_console_output=False, buffer_flush_size=3
            ),
            storage=storage,
            clock=clock,
        )
        logger.error("API_TIMEOUT")
        logger.error("API_TIMEOUT")
        assert read_json(storage, ERROR_LOGS_KEY) is None

        logger.error("API_TIMEOUT")
        assert len(read_json(storage, ERROR_LOGS_KEY)) == 3
        assert logger.buffer == []

    def test_critical_trigger(self, error_logger, storage):
        """Test a CRITICAL entry is persisted immediately."""
        error_logger.fatal("STORAGE_CORRUPTION")
        assert len(read_json(storage, ERROR_LOGS_KEY)) == 1

    def test_interval_trigger(self, error_logger, storage, clock):
        error_logger.error("API_TIMEOUT")
        clock.advance(61)
        error_logger.error("API_TIMEOUT")
        assert len(read_json(storage, ERROR_LOGS_KEY)) == 2

    def test_max_logs_bound(self, storage, clock):
        """Test the store never exceeds max_logs and keeps the newest."""
        logger = ErrorLogger(
            config=LoggerConfig(
                log_level="debug",
                enable_console_output=False,
                max_logs=5,
                buffer_flush_size=2,
            ),
            storage=storage,
            clock=clock,
        )
        created = []
        for _ in range(12):
            clock.advance(1)
            created.append(logger.error("API_TIMEOUT"))
            assert len(read_json(storage, ERROR_LOGS_KEY, default=[])) <= 5

        logs = logger.get_logs()
        assert [e.id for e in logs] == [e.id for e in reversed(created[-5:])]

    def test_storage_failure_is_contained(self, error_logger, storage):
        storage.quota_bytes = 10
        error_logger.fatal("STORAGE_CORRUPTION")
        assert error_logger.buffer == []
        assert error_logger.get_stored_logs() == []

    def test_corrupt_store_is_ignored(self, error_logger, storage):
        storage.set_item(ERROR_LOGS_KEY, "{oops")
        assert error_logger.get_logs() == []


class TestRetention:
    """Test the age ceiling."""

    def test_startup_cleanup(self, logger_config, storage, clock):
        old_logger = ErrorLogger(config=logger_config, storage=storage, clock=clock)
        old_logger.error("API_TIMEOUT")
        old_logger.flush()

        clock.advance(3 * DAY)
        recent = old_logger.error("TASK_NOT_FOUND")
        old_logger.flush()

        clock.advance(5 * DAY)
        logger = ErrorLogger(config=logger_config, storage=storage, clock=clock)

        assert [e.id for e in logger.get_stored_logs()] == [recent.id]


class TestSession:
    """Test session scoping."""

    def test_reused_within_timeout(self, error_logger, clock):
        first = error_logger.error("API_TIMEOUT")
        clock.advance(29 * 60)
        second = error_logger.error("API_TIMEOUT")
        assert first.session_id == second.session_id

    def test_new_session_after_timeout(self, error_logger, clock):
        first = error_logger.error("API_TIMEOUT")
        clock.advance(31 * 60)
        second = error_logger.error("API_TIMEOUT")
        assert first.session_id != second.session_id

    def test_session_survives_restart(self, logger_config, storage, clock):
        first = ErrorLogger(config=logger_config, storage=storage, clock=clock)
        session = first.session_id
        clock.advance(60)

        second = ErrorLogger(config=logger_config, storage=storage, clock=clock)
        assert second.session_id == session
        assert read_json(storage, SESSION_ID_KEY)["id"] == session

    def test_end_session(self, error_logger, storage):
        session = error_logger.session_id
        error_logger.fatal("STORAGE_CORRUPTION")

        assert error_logger.end_session() is True
        assert error_logger.get_logs() == []
        assert error_logger.session_id != session


class TestReadApi:
    """Test queries, stats and exports."""

    def _populate(self, logger, clock):
        logger.warn("API_TIMEOUT", {"component": "TaskList", "action": "load"})
        logger.warn("API_TIMEOUT", {"component": "TaskList", "action": "load"})
        logger.warn("API_TIMEOUT", {"component": "TaskList", "action": "load"})
        clock.advance(2 * 60 * 60)
        logger.error("API_UNAUTHORIZED", {"component": "Login", "action": "submit"})
        logger.info("NETWORK_SLOW", {"component": "App"})

    def test_filters(self, error_logger, clock):
        self._populate(error_logger, clock)

        assert len(error_logger.get_logs()) == 5
        assert len(error_logger.get_logs({"level": "warn"})) == 3
        assert len(error_logger.get_logs({"category": "authentication"})) == 1
        assert len(error_logger.get_logs({"severity": "low"})) == 1

    def test_time_filters(self, error_logger, clock):
        self._populate(error_logger, clock)
        logs = error_logger.get_logs()
        newest = logs[0].timestamp

        assert len(error_logger.get_logs({"since": newest})) == 2
        assert len(error_logger.get_logs({"until": logs[-1].timestamp})) == 3

    def test_stats(self, error_logger, clock):
        self._populate(error_logger, clock)
        stats = error_logger.get_stats()

        assert stats.total == 5
        assert stats.last_hour == 2
        assert stats.last_day == 5
        assert stats.by_level == {"warn": 3, "error": 1, "info": 1}
        assert stats.by_category["api"] == 3
        assert stats.top_errors[0].code == "API_TIMEOUT"
        assert stats.top_errors[0].count == 3

    def test_json_export_round_trip(self, error_logger, clock):
        """Test parsing the JSON export yields the same entries as get_logs."""
        self._populate(error_logger, clock)

        exported = json.loads(error_logger.export_logs("json"))
        assert [e["id"] for e in exported] == [e.id for e in error_logger.get_logs({})]

    def test_csv_export(self, error_logger, clock):
        self._populate(error_logger, clock)
        text = error_logger.export_logs("csv")

        lines = text.split("\n")
        assert lines[0].startswith('"timestamp","level","code"')
        assert len(lines) == 6

        rows = list(csv.DictReader(io.StringIO(text)))
        assert {rows[0]["code"], rows[1]["code"]} == {"API_UNAUTHORIZED", "NETWORK_SLOW"}
        assert rows[-1]["component"] == "TaskList"

    def test_csv_export_empty(self, error_logger):
        assert error_logger.export_logs("csv") == ""

    def test_unknown_export_format(self, error_logger):
        with pytest.raises(ValueError):
            error_logger.export_logs("xml")

    def test_clear_logs(self, error_logger, clock):
        self._populate(error_logger, clock)
        error_logger.error("API_TIMEOUT")

        assert error_logger.clear_logs() is True
        assert error_logger.buffer == []
        assert error_logger.get_logs() == []

    def test_update_config(self, error_logger, storage):
        config = error_logger.update_config(max_logs=10, log_level="ERROR")
        assert config.max_logs == 10
        assert error_logger.config.log_level == LogLevel.ERROR
        assert read_json(storage, "chronotask_log_settings")["max_logs"] == 10


class TestRemoteSink:
    """Test shipping batches to the remote endpoint."""

    def _remote_logger(self, storage, clock, transport):
        return ErrorLogger(
            config=LoggerConfig(
                log_level="debug",
                enable_console_output=False,
                enable_remote_logging=True,
                remote_endpoint="https://logs.example.test/ingest",
            ),
            storage=storage,
            transport=transport,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_batch_payload(self, storage, clock):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        logger = self._remote_logger(storage, clock, httpx.MockTransport(handler))
        entry = logger.error("API_TIMEOUT", {"password": "secret"})
        await logger.aflush()

        assert len(requests) == 1
        payload = json.loads(requests[0].content)
        assert [log["id"] for log in payload["logs"]] == [entry.id]
        assert payload["logs"][0]["context"]["password"] == "[REDACTED]"
        assert payload["metadata"]["source"] == "chronotask-web"
        assert payload["metadata"]["version"] == "1.0.0"
        assert payload["metadata"]["sessionId"] == entry.session_id

    @pytest.mark.asyncio
    async def test_failure_rebuffers(self, storage, clock):
        """Test a failing sink puts the batch back without breaking the flush."""
        logger = self._remote_logger(
            storage, clock, httpx.MockTransport(lambda request: httpx.Response(503))
        )
        entry = logger.error("API_TIMEOUT")
        await logger.aflush()

        assert logger.buffer == [entry]
        assert [e.id for e in logger.get_stored_logs()] == [entry.id]

    def test_failing_sink_keeps_buffer_bounded(self, storage, clock):
        """Test retries neither grow past max_logs nor force a send on every log call."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(503)

        logger = ErrorLogger(
            config=LoggerConfig(
                log_level="debug",
                enable_console_output=False,
                enable_remote_logging=True,
                remote_endpoint="https://logs.example.test/ingest",
                buffer_flush_size=10,
                max_logs=20,
            ),
            storage=storage,
            transport=httpx.MockTransport(handler),
            clock=clock,
        )

        for i in range(300):
            logger.error("TASK_UPDATE_FAILED", {"attempt": i})

        assert len(requests) == 30
        assert len(logger.buffer) == 20
        assert logger.buffer[-1].context["attempt"] == 299

        clock.advance(61)
        logger.warn("TASK_UPDATE_FAILED")

        assert len(requests) == 31
        assert len(json.loads(requests[-1].content)["logs"]) == 21
        assert len(logger.buffer) == 20

    @pytest.mark.asyncio
    async def test_scheduled_send(self, storage, clock):
        """Test flush() inside a running loop schedules the send."""
        requests = []
        logger = self._remote_logger(
            storage,
            clock,
            httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(200)),
        )
        logger.fatal("STORAGE_CORRUPTION")
        await logger.wait_pending()
        assert len(requests) == 1

    def test_sync_send_without_loop(self, storage, clock):
        requests = []
        logger = self._remote_logger(
            storage,
            clock,
            httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(200)),
        )
        logger.fatal("STORAGE_CORRUPTION")
        assert len(requests) == 1


class TestGlobalCapture:
    """Test uncaught exception hooks."""

    def test_excepthook(self, error_logger):
        previous = Mock()
        with patch.object(sys, "excepthook", previous):
            error_logger.install_global_handlers()
            try:
                error = RuntimeError("crashed")
                sys.excepthook(RuntimeError, error, None)
            finally:
                error_logger.uninstall_global_handlers()
            assert sys.excepthook is previous

        previous.assert_called_once_with(RuntimeError, error, None)
        entry = error_logger.get_logs()[0]
        assert entry.error_type.code == "UI_COMPONENT_CRASH"
        assert entry.level == LogLevel.ERROR
        assert entry.context["action"] == "unhandled_error"

    @pytest.mark.asyncio
    async def test_loop_exception_handler(self, error_logger):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            error_logger.install_global_handlers(loop)
            loop.call_exception_handler(
                {"message": "Task exception was never retrieved", "exception": KeyError("id")}
            )
            error_logger.uninstall_global_handlers()
            assert loop.get_exception_handler() is previous
        finally:
            loop.set_exception_handler(None)

        previous.assert_called_once()
        entry = error_logger.get_logs()[0]
        assert entry.error_type.code == "UNKNOWN_ERROR"
        assert entry.context["action"] == "unhandled_promise_rejection"
        assert entry.context["reason"] == "Task exception was never retrieved"
