"""Tests for observability module."""

import json
import logging

import pytest

from s3kv.observability import (
    LogContext,
    LogLevel,
    OperationContext,
    StructuredFormatter,
    StructuredLogger,
    Timer,
    bucket_var,
    clear_metric_callbacks,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    operation_var,
    register_metric_callback,
    request_id_var,
)


@pytest.fixture
def collected():
    """Collect metric events."""
    events: list[tuple[str, float, dict]] = []
    register_metric_callback(lambda name, value, labels: events.append((name, value, labels)))
    yield events
    clear_metric_callbacks()


def make_record(message: str = "hello", **attrs) -> logging.LogRecord:
    record = logging.LogRecord("s3kv.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    """Tests for LogContext."""

    def test_current_returns_empty_when_no_context(self) -> None:
        """Current returns empty context when no vars set."""
        context = LogContext.current()
        assert context.request_id is None
        assert context.operation is None
        assert context.bucket is None

    def test_to_dict_excludes_none_values(self) -> None:
        """to_dict excludes None values and includes extra."""
        context = LogContext(operation="get_item", extra={"key": "a"})
        assert context.to_dict() == {"operation": "get_item", "key": "a"}


class TestOperationContext:
    """Tests for OperationContext."""

    def test_sets_and_resets_vars(self) -> None:
        """Context vars are set inside and restored after."""
        with OperationContext("clear", bucket="b", request_id="req-1"):
            assert operation_var.get() == "clear"
            assert bucket_var.get() == "b"
            assert request_id_var.get() == "req-1"
        assert operation_var.get() is None
        assert bucket_var.get() is None
        assert request_id_var.get() is None

    def test_nested_keeps_request_id(self) -> None:
        """A nested operation reuses the outer request id."""
        with OperationContext("clear", request_id="req-1"):
            with OperationContext("remove_item"):
                assert request_id_var.get() == "req-1"
                assert operation_var.get() == "remove_item"
            assert operation_var.get() == "clear"

    @pytest.mark.asyncio
    async def test_async_usage(self) -> None:
        """Works as an async context manager."""
        async with OperationContext("get_keys"):
            assert operation_var.get() == "get_keys"
            assert request_id_var.get() is not None


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_formats_json_with_context(self) -> None:
        """Records become JSON including context vars and record context."""
        with OperationContext("get_item", bucket="b", request_id="req-1"):
            output = StructuredFormatter().format(make_record(context={"key": "a"}))

        data = json.loads(output)
        assert data["level"] == "INFO"
        assert data["message"] == "hello"
        assert data["logger"] == "s3kv.test"
        assert data["context"] == {"request_id": "req-1", "operation": "get_item", "bucket": "b", "key": "a"}

    def test_includes_error_and_duration(self) -> None:
        """Exception info and duration are serialized."""
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            record = make_record(duration_ms=1.5)
            record.exc_info = (type(e), e, e.__traceback__)

        data = json.loads(StructuredFormatter().format(record))
        assert data["error"] == {"type": "RuntimeError", "message": "boom"}
        assert data["duration_ms"] == 1.5


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_passes_context_and_error(self, caplog) -> None:
        """Context and error reach the log record."""
        logger = get_logger("s3kv.test.logger")
        assert isinstance(logger, StructuredLogger)

        with caplog.at_level(logging.WARNING, logger="s3kv.test.logger"):
            logger.warning("careful", context={"key": "a"}, error=ValueError("bad"))

        record = caplog.records[-1]
        assert record.getMessage() == "careful"
        assert record.context == {"key": "a"}
        assert record.exc_info[0] is ValueError

    def test_configure_logging(self) -> None:
        """configure_logging installs one JSON handler on the s3kv logger."""
        configure_logging(LogLevel.DEBUG)
        configure_logging(LogLevel.DEBUG)
        root = logging.getLogger("s3kv")
        try:
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers.clear()
            root.setLevel(logging.NOTSET)


class TestMetrics:
    """Tests for metric hooks."""

    def test_emit_metric_adds_context_labels(self, collected) -> None:
        """Operation and bucket are added as labels."""
        with OperationContext("clear", bucket="b"):
            emit_metric("s3kv.clear.keys", 3.0, {"extra": "x"})
        assert collected == [("s3kv.clear.keys", 3.0, {"extra": "x", "bucket": "b", "operation": "clear"})]

    def test_counter_and_timer(self, collected) -> None:
        """Counters default to 1, timers carry the duration."""
        emit_counter("c")
        emit_timer("t", 12.5)
        assert [(n, v) for n, v, _ in collected] == [("c", 1.0), ("t", 12.5)]

    def test_failing_callback_does_not_raise(self, collected) -> None:
        """A broken callback does not affect other callbacks."""
        def broken(name, value, labels):
            raise RuntimeError("broken")

        register_metric_callback(broken)
        emit_counter("c")
        assert len(collected) == 1


class TestTimer:
    """Tests for Timer."""

    def test_measures_duration(self) -> None:
        """Duration is non-negative after the block."""
        with Timer() as t:
            sum(range(1000))
        assert t.duration_ms >= 0
