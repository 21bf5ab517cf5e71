"""Tests for logging, metrics and error tracking."""

import json
import logging

import pytest

from review_assistant.observability import errors, metrics
from review_assistant.observability.errors import ErrorSeverity, ErrorTracker, capture_exception
from review_assistant.observability.logging import (
    ContextFormatter,
    JSONFormatter,
    LogContext,
    add_log_context,
    get_log_context,
)
from review_assistant.observability.metrics import (
    MetricNames,
    MetricsCollector,
    MetricType,
    record_metric,
    setup_metrics,
)


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("review_assistant.test", level, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:
    """Tests for formatters and log context."""

    def test_json_formatter_includes_context_and_extra(self):
        with LogContext(session_id="s1", operation="review"):
            output = json.loads(JSONFormatter().format(make_record(language="python")))

        assert output["message"] == "hello"
        assert output["level"] == "INFO"
        assert output["context"] == {"session_id": "s1", "operation": "review"}
        assert output["language"] == "python"
        assert "source" not in output

    def test_json_formatter_adds_source_for_errors(self):
        output = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert output["source"]["line"] == 10

    def test_context_formatter(self):
        formatter = ContextFormatter(fmt="%(message)s")
        with LogContext(review_id="r1"):
            assert formatter.format(make_record()) == "hello [review_id=r1]"

    def test_context_is_restored(self):
        with LogContext(session_id="outer"):
            with LogContext(session_id="inner"):
                assert get_log_context()["session_id"] == "inner"
            assert get_log_context()["session_id"] == "outer"
        assert "session_id" not in get_log_context()

    def test_add_log_context(self):
        with LogContext():
            add_log_context(user_id="u1")
            assert get_log_context()["user_id"] == "u1"


class TestMetrics:
    """Tests for the metrics collector."""

    @pytest.fixture(autouse=True)
    def reset_collector(self, monkeypatch):
        monkeypatch.setattr(metrics, "_metrics_collector", None)

    def test_record_metric_before_setup_is_noop(self):
        record_metric(MetricNames.REVIEW_STARTED)

    def test_counters_and_timers(self, settings):
        collector = setup_metrics(settings)

        record_metric(MetricNames.REVIEW_STARTED)
        record_metric(MetricNames.REVIEW_STARTED)
        record_metric(MetricNames.LLM_RESPONSE_TIME_MS, 120.0, MetricType.TIMER)
        record_metric(MetricNames.LLM_RESPONSE_TIME_MS, 80.0, MetricType.TIMER)

        summary = collector.get_metric_summary()
        assert summary["counters"][MetricNames.REVIEW_STARTED] == 2.0
        timer = summary["timers"][MetricNames.LLM_RESPONSE_TIME_MS]
        assert timer["count"] == 2
        assert timer["avg_ms"] == pytest.approx(100.0)
        assert timer["max_ms"] == 120.0

    def test_timer_context(self, settings):
        collector = MetricsCollector(settings)
        with collector.timer_context("block"):
            pass

        assert collector.metrics[0].name == "block"
        assert collector.metrics[0].metric_type == MetricType.TIMER

    def test_disabled_collector(self, settings):
        collector = MetricsCollector(settings.model_copy(update={"METRICS_ENABLED": False}))
        collector.record_counter("x")
        assert collector.counters == {}


class TestErrorTracking:
    """Tests for the error tracker."""

    @pytest.fixture(autouse=True)
    def reset_tracker(self, monkeypatch):
        monkeypatch.setattr(errors, "_error_tracker", None)

    def test_capture_and_summarize(self, settings):
        tracker = ErrorTracker(settings)
        try:
            raise ValueError("bad input")
        except ValueError as e:
            error_id = tracker.capture_exception(e, ErrorSeverity.WARNING, tags={"component": "llm"})

        assert error_id
        record = tracker.get_errors()[0]
        assert record.exception_type == "ValueError"
        assert "bad input" in record.traceback
        assert tracker.get_error_summary()["type_counts"] == {"ValueError": 1}

    def test_disabled_tracker(self, settings):
        tracker = ErrorTracker(settings.model_copy(update={"ERROR_TRACKING_ENABLED": False}))
        assert tracker.capture_exception(RuntimeError("x")) == ""
        assert tracker.errors == []

    def test_capture_before_setup_logs(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert capture_exception(RuntimeError("lost"), ErrorSeverity.WARNING) == ""
        assert "RuntimeError: lost" in caplog.text

    def test_capture_after_setup(self, settings):
        errors.setup_error_tracking(settings)
        assert capture_exception(RuntimeError("kept"))
        assert errors.get_error_tracker().get_error_summary()["total_errors"] == 1

    def test_capture_includes_log_context(self, settings):
        tracker = ErrorTracker(settings)
        with LogContext(session_id="s1", operation="chat"):
            tracker.capture_exception(RuntimeError("x"), context={"operation": "override"})

        context = tracker.get_errors()[0].context
        assert context == {"session_id": "s1", "operation": "override"}
