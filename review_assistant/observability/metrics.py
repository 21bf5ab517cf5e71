"""
Metrics collection for monitoring and performance tracking.

Provides utilities for recording counters and latencies. Metrics are kept
in memory and summarized by the readiness endpoint.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from review_assistant.config import Settings
from review_assistant.llm.schemas import utcnow

logger = logging.getLogger(__name__)

MAX_RETAINED_METRICS = 10_000


class MetricType(str, Enum):
    """Types of metrics."""
    COUNTER = "counter"
    TIMER = "timer"


@dataclass
class Metric:
    """Individual metric data point."""

    name: str
    metric_type: MetricType
    value: float
    timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.metric_type.value,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "tags": self.tags,
        }


class MetricsCollector:
    """
    Collector for application metrics.

    Counters are also aggregated by name so summaries stay cheap after the
    raw point buffer rolls over.
    """

    def __init__(self, settings: Settings):
        self.enabled = settings.METRICS_ENABLED
        self.metrics: List[Metric] = []
        self.counters: Dict[str, float] = {}
        self._start_time = utcnow()

        logger.info(f"Metrics collector initialized (enabled: {self.enabled})")

    def _record(self, metric: Metric) -> None:
        self.metrics.append(metric)
        if len(self.metrics) > MAX_RETAINED_METRICS:
            self.metrics = self.metrics[-MAX_RETAINED_METRICS:]

    def record_counter(
        self,
        name: str,
        value: float = 1.0,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Record a counter metric.

        Args:
            name: Metric name
            value: Increment value (default: 1.0)
            tags: Optional tags/labels
        """
        if not self.enabled:
            return

        self.counters[name] = self.counters.get(name, 0.0) + value
        self._record(Metric(
            name=name,
            metric_type=MetricType.COUNTER,
            value=value,
            timestamp=utcnow(),
            tags=tags or {},
        ))
        logger.debug(f"Counter recorded: {name}={value} {tags}")

    def record_timer(
        self,
        name: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        if not self.enabled:
            return

        self._record(Metric(
            name=name,
            metric_type=MetricType.TIMER,
            value=duration_ms,
            timestamp=utcnow(),
            tags=tags or {},
        ))
        logger.debug(f"Timer recorded: {name}={duration_ms:.1f}ms {tags}")

    @contextmanager
    def timer_context(self, name: str, tags: Optional[Dict[str, str]] = None):
        """
        Context manager for timing code blocks.

        Usage:
            with metrics.timer_context(MetricNames.LLM_RESPONSE_TIME_MS):
                text = await client.complete(...)
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.record_timer(name, (time.perf_counter() - start_time) * 1000, tags)

    def get_metric_summary(self) -> Dict[str, Any]:
        timers: Dict[str, List[float]] = {}
        for metric in self.metrics:
            if metric.metric_type == MetricType.TIMER:
                timers.setdefault(metric.name, []).append(metric.value)

        timer_stats = {
            name: {
                "count": len(values),
                "avg_ms": sum(values) / len(values),
                "max_ms": max(values),
            }
            for name, values in timers.items()
        }

        return {
            "counters": dict(self.counters),
            "timers": timer_stats,
            "uptime_seconds": (utcnow() - self._start_time).total_seconds(),
        }


class MetricNames:
    """Standard metric names used throughout the application."""

    REVIEW_STARTED = "review.started"
    REVIEW_COMPLETED = "review.completed"
    REVIEW_DEGRADED = "review.degraded"
    REVIEW_PARSE_TIER = "review.parse_tier"

    CHAT_COMPLETED = "chat.completed"
    CHAT_DEGRADED = "chat.degraded"
    CHAT_PERSIST_FAILED = "chat.persist_failed"

    LLM_RESPONSE_TIME_MS = "llm.response_time_ms"
    LLM_ERROR = "llm.error"

    STORAGE_ERROR = "storage.error"
    S3_UPLOAD = "s3.upload"


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """
    Get the global metrics collector instance.

    Raises:
        RuntimeError: If collector not initialized
    """
    if _metrics_collector is None:
        raise RuntimeError("Metrics collector not initialized. Call setup_metrics() first.")
    return _metrics_collector


def setup_metrics(settings: Settings) -> MetricsCollector:
    """Initialize the global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(settings)
    return _metrics_collector


def record_metric(
    name: str,
    value: float = 1.0,
    metric_type: MetricType = MetricType.COUNTER,
    tags: Optional[Dict[str, str]] = None,
) -> None:
    """Convenience function to record a metric; no-op before setup."""
    try:
        collector = get_metrics_collector()
    except RuntimeError:
        return

    if metric_type == MetricType.COUNTER:
        collector.record_counter(name, value, tags)
    elif metric_type == MetricType.TIMER:
        collector.record_timer(name, value, tags)
