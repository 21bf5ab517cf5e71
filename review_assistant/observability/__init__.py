"""
Observability module for logging, metrics, and error tracking.

This module provides:
- Structured logging setup
- Metrics collection
- Error tracking and reporting
"""

from review_assistant.observability.logging import setup_logging, LogContext
from review_assistant.observability.metrics import MetricsCollector, get_metrics_collector, record_metric
from review_assistant.observability.errors import ErrorTracker, get_error_tracker, capture_exception

__all__ = [
    "setup_logging",
    "LogContext",
    "MetricsCollector",
    "get_metrics_collector",
    "record_metric",
    "ErrorTracker",
    "get_error_tracker",
    "capture_exception",
]
