"""
Unit tests for utility modules.

Tests for error_handling, advanced_logging and notify.
"""

import time

import pytest
from unittest.mock import Mock

from colclust.utils.advanced_logging import (
    LogContext,
    PerformanceLogger,
    add_run_context,
    get_logger,
    log_exceptions,
)
from colclust.utils.error_handling import (
    ClusteringError,
    ClusteringServiceError,
    ConfigurationError,
    DistanceNotImplementedError,
    InsufficientDataError,
    InvalidInputError,
    NumericalInstabilityError,
    log_error,
)
from colclust.utils.notify import (
    NULL_NOTIFIER,
    CallbackNotifier,
    LoggingNotifier,
    NullNotifier,
)


@pytest.mark.unit
class TestErrorHandling:
    """Test error handling utilities."""

    def test_to_dict(self):
        error = ConfigurationError("bad value", details={"field": "lambda"})
        data = error.to_dict()

        assert data["error_type"] == "ConfigurationError"
        assert data["error_code"] == "ConfigurationError"
        assert data["message"] == "bad value"
        assert data["details"] == {"field": "lambda"}
        assert str(error) == "bad value"

    def test_custom_error_code(self):
        assert ClusteringError("x", error_code="E42").error_code == "E42"

    def test_hierarchy(self):
        assert issubclass(InsufficientDataError, InvalidInputError)
        assert issubclass(InvalidInputError, ValueError)
        assert issubclass(NumericalInstabilityError, ArithmeticError)
        assert issubclass(DistanceNotImplementedError, NotImplementedError)
        for cls in (ConfigurationError, ClusteringError, DistanceNotImplementedError):
            assert issubclass(cls, ClusteringServiceError)

    def test_log_error(self):
        log_error("fit", InvalidInputError("empty"), {"n_instances": 0})
        log_error("fit", RuntimeError("boom"))


@pytest.mark.unit
class TestAdvancedLogging:
    """Test structured logging helpers."""

    def test_run_context(self):
        assert LogContext.get_run_id() is None

        with LogContext.run_context("outer"):
            assert LogContext.get_run_id() == "outer"
            with LogContext.run_context("inner"):
                assert LogContext.get_run_id() == "inner"
            assert LogContext.get_run_id() == "outer"

        assert LogContext.get_run_id() is None

    def test_run_id_stamped_on_events(self):
        processor = add_run_context("colclust-test")

        assert processor(None, "info", {"event": "fit"}) == {
            "event": "fit",
            "service": "colclust-test",
        }
        with LogContext.run_context("kmeans-1"):
            event = processor(None, "info", {"event": "fit"})
        assert event["run_id"] == "kmeans-1"

    def test_get_logger(self):
        assert get_logger(__name__) is not None

    def test_performance_logger(self):
        logger = Mock()

        with PerformanceLogger("unit_op", logger=logger, item_count=10, dim=3) as perf:
            time.sleep(0.01)

        assert perf.elapsed_time >= 0.01
        logger.info.assert_called_once()
        event, = logger.info.call_args.args
        assert event == "operation_completed"
        assert logger.info.call_args.kwargs["operation"] == "unit_op"
        assert logger.info.call_args.kwargs["dim"] == 3
        assert logger.info.call_args.kwargs["duration_seconds"] == pytest.approx(
            perf.elapsed_time, abs=1e-3
        )

    def test_performance_logger_failure(self):
        logger = Mock()

        with pytest.raises(RuntimeError):
            with PerformanceLogger("unit_op", logger=logger):
                raise RuntimeError("boom")

        logger.error.assert_called_once()
        assert logger.error.call_args.kwargs["error_type"] == "RuntimeError"

    def test_log_exceptions(self):
        logger = Mock()

        with pytest.raises(ValueError):
            with log_exceptions(logger, operation="parse"):
                raise ValueError("bad")
        assert logger.error.call_args.kwargs["operation"] == "parse"
        assert logger.error.call_args.kwargs["error_type"] == "ValueError"


@pytest.mark.unit
class TestNotifiers:
    """Test progress notification sinks."""

    def test_null_notifier(self):
        assert isinstance(NULL_NOTIFIER, NullNotifier)
        NULL_NOTIFIER.notify("ignored")

    def test_callback_notifier(self):
        messages = []
        notifier = CallbackNotifier(messages.append)

        notifier.notify("one")
        notifier.notify("two", level="debug")

        assert messages == ["one", "two"]

    def test_logging_notifier(self):
        logger = Mock()
        notifier = LoggingNotifier(logger)

        notifier.notify("merging", level="debug")
        notifier.notify("done")

        logger.debug.assert_called_once_with("progress", message="merging")
        logger.info.assert_called_once_with("progress", message="done")
