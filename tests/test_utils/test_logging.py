"""Tests for the structured logging utilities."""

import logging
from unittest.mock import MagicMock

import pytest

from datamine_exporter.utils.logging import (
    LogContext,
    PerformanceMetrics,
    ProgressTracker,
    StructuredLogFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_extra_context,
    get_logger,
    get_run_id,
    set_extra_context,
    set_run_id,
    timed_operation,
)


class TestContextVariables:
    """Tests for context variable management."""

    def setup_method(self) -> None:
        """Clear context before each test."""
        clear_context()

    def teardown_method(self) -> None:
        """Clear context after each test."""
        clear_context()

    def test_run_id_default_none(self) -> None:
        assert get_run_id() is None

    def test_set_and_get_run_id(self) -> None:
        set_run_id("run-123")
        assert get_run_id() == "run-123"

    def test_extra_context_default_empty(self) -> None:
        assert get_extra_context() == {}

    def test_set_and_get_extra_context(self) -> None:
        set_extra_context({"sheet": "Food"})
        assert get_extra_context() == {"sheet": "Food"}

    def test_clear_context(self) -> None:
        set_run_id("run-123")
        set_extra_context({"sheet": "Food"})
        clear_context()
        assert get_run_id() is None
        assert get_extra_context() == {}


class TestLogContext:
    """Tests for LogContext."""

    def setup_method(self) -> None:
        clear_context()

    def test_sets_and_restores_run_id(self) -> None:
        with LogContext(run_id="run-1"):
            assert get_run_id() == "run-1"
        assert get_run_id() is None

    def test_merges_extra_context(self) -> None:
        with LogContext(command="export"):
            with LogContext(sheet="Food"):
                assert get_extra_context() == {"command": "export", "sheet": "Food"}
            assert get_extra_context() == {"command": "export"}
        assert get_extra_context() == {}

    def test_run_id_not_in_extra_context(self) -> None:
        with LogContext(run_id="run-1", sheet="Food"):
            assert "run_id" not in get_extra_context()

    def test_restores_on_exception(self) -> None:
        with pytest.raises(RuntimeError):
            with LogContext(run_id="run-1", sheet="Food"):
                raise RuntimeError("boom")
        assert get_run_id() is None
        assert get_extra_context() == {}


class TestStructuredLogFormatter:
    """Tests for StructuredLogFormatter."""

    def setup_method(self) -> None:
        clear_context()

    def teardown_method(self) -> None:
        clear_context()

    def _record(self, message: str) -> logging.LogRecord:
        return logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=message,
            args=None,
            exc_info=None,
        )

    def test_without_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        assert formatter.format(self._record("hello")) == "hello"

    def test_with_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        with LogContext(run_id="run-1", sheet="Food"):
            output = formatter.format(self._record("hello"))
        assert output == "[run_id=run-1 sheet=Food] hello"

    def test_record_message_restored(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = self._record("hello")
        with LogContext(run_id="run-1"):
            formatter.format(record)
        assert record.msg == "hello"


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger(self) -> None:
        logger = get_logger("datamine_exporter.test")
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "datamine_exporter.test"

    def test_key_value_message(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("datamine_exporter.test")
        with caplog.at_level(logging.INFO):
            logger.info("Exported sheet", sheet="Food", records=3)
        assert "Exported sheet | sheet=Food, records=3" in caplog.text

    def test_plain_message(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("datamine_exporter.test")
        with caplog.at_level(logging.WARNING):
            logger.warning("Careful")
        assert caplog.records[-1].getMessage() == "Careful"

    def test_log_progress(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("datamine_exporter.test")
        with caplog.at_level(logging.INFO):
            logger.log_progress("Downloading images", 1, 4, details="apple")
        assert "Downloading images | done=1/4, percent=25%, last=apple" in caplog.text


class TestPerformanceMetrics:
    """Tests for PerformanceMetrics and timed_operation."""

    def test_finish_sets_duration(self) -> None:
        metrics = PerformanceMetrics(operation="download")
        metrics.finish()
        assert metrics.finished
        assert metrics.duration_seconds is not None
        assert metrics.duration_seconds >= 0

    def test_to_dict_omits_zero_counters(self) -> None:
        metrics = PerformanceMetrics(operation="download")
        data = metrics.to_dict()
        assert data == {"operation": "download"}
        assert "items_processed" not in data
        assert "bytes_transferred" not in data

    def test_to_dict_includes_counters(self) -> None:
        metrics = PerformanceMetrics(
            operation="download", bytes_transferred=10, custom_metrics={"sheets": 2}
        )
        data = metrics.to_dict()
        assert data["bytes_transferred"] == 10
        assert data["sheets"] == 2

    def test_timed_operation_logs_on_exit(self) -> None:
        logger = MagicMock(spec=StructuredLogger)
        with timed_operation(logger, "build") as metrics:
            metrics.items_processed = 5
        logger.log_performance.assert_called_once_with(metrics)
        assert metrics.finished

    def test_timed_operation_logs_on_error(self) -> None:
        logger = MagicMock(spec=StructuredLogger)
        with pytest.raises(ValueError):
            with timed_operation(logger, "build"):
                raise ValueError("boom")
        logger.log_performance.assert_called_once()


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_counts_updates(self) -> None:
        logger = MagicMock(spec=StructuredLogger)
        tracker = ProgressTracker(logger, "Downloading images", total=3)
        tracker.update()
        tracker.update(details="pear")
        assert tracker.current == 2
        assert logger.log_progress.call_count == 2

    def test_log_interval(self) -> None:
        logger = MagicMock(spec=StructuredLogger)
        tracker = ProgressTracker(logger, "Downloading images", total=5, log_interval=2)
        for _ in range(5):
            tracker.update()
        # Logged at 2, 4 and at the final item.
        assert logger.log_progress.call_count == 3

    def test_complete(self) -> None:
        logger = MagicMock(spec=StructuredLogger)
        tracker = ProgressTracker(logger, "Downloading images", total=1)
        duration = tracker.complete()
        assert duration >= 0
        logger.info.assert_called_once()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def setup_method(self) -> None:
        root = logging.getLogger()
        self._handlers = root.handlers[:]
        self._level = root.level

    def teardown_method(self) -> None:
        root = logging.getLogger()
        root.handlers[:] = self._handlers
        root.setLevel(self._level)

    def test_string_level(self) -> None:
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_structured_formatter(self) -> None:
        configure_logging(logging.INFO)
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, StructuredLogFormatter)

    def test_plain_formatter(self) -> None:
        configure_logging(logging.INFO, use_structured_formatter=False)
        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, StructuredLogFormatter)


class TestPerformanceLogging:
    """Tests for StructuredLogger.log_performance."""

    def test_logs_operation_and_counters(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("datamine_exporter.test")
        metrics = PerformanceMetrics(operation="build_dataset", items_processed=3)
        metrics.finish()

        with caplog.at_level(logging.INFO):
            logger.log_performance(metrics)

        assert "Finished build_dataset" in caplog.text
        assert "items_processed=3" in caplog.text

    def test_disabled_level_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("datamine_exporter.test")
        with caplog.at_level(logging.WARNING):
            logger.debug("hidden", field="x")
        assert "hidden" not in caplog.text
