"""
Error tracking and reporting.

Captures recovered failures (completion outages, storage write failures)
so they stay visible even though requests degrade instead of failing.
Forwards to Sentry when a DSN is configured.
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from review_assistant.config import Settings
from review_assistant.llm.schemas import utcnow
from review_assistant.observability.logging import get_log_context

logger = logging.getLogger(__name__)

MAX_RETAINED_ERRORS = 500


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_LOG_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorRecord:
    """Record of a captured error."""

    error_id: str
    timestamp: datetime
    severity: ErrorSeverity
    exception_type: str
    exception_message: str
    traceback: str
    context: Dict[str, Any] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "exception_type": self.exception_type,
            "exception_message": self.exception_message,
            "traceback": self.traceback,
            "context": self.context,
            "tags": self.tags,
        }


class ErrorTracker:
    """
    Error tracker for capturing and reporting errors.

    Keeps a bounded in-memory record of recent errors and forwards them to
    Sentry when configured.
    """

    def __init__(self, settings: Settings):
        self.enabled = settings.ERROR_TRACKING_ENABLED
        self.errors: List[ErrorRecord] = []
        self.sentry_enabled = False

        if self.enabled and settings.SENTRY_DSN:
            try:
                import sentry_sdk
                sentry_sdk.init(
                    dsn=settings.SENTRY_DSN,
                    environment=settings.ENVIRONMENT,
                    traces_sample_rate=0.1,
                )
                self.sentry_enabled = True
                logger.info("Sentry error tracking initialized")
            except Exception as e:
                logger.error(f"Failed to initialize Sentry: {e}")

        logger.info(f"Error tracker initialized (enabled: {self.enabled})")

    def capture_exception(
        self,
        exception: BaseException,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Capture an exception.

        Args:
            exception: The exception to capture
            severity: Error severity level
            context: Additional context data, merged over the active log context
            tags: Tags for filtering/grouping

        Returns:
            Error ID, or an empty string when tracking is disabled
        """
        if not self.enabled:
            return ""

        error_record = ErrorRecord(
            error_id=str(uuid.uuid4()),
            timestamp=utcnow(),
            severity=severity,
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            traceback="".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )),
            context={**get_log_context(), **(context or {})},
            tags=tags or {},
        )

        self.errors.append(error_record)
        if len(self.errors) > MAX_RETAINED_ERRORS:
            self.errors = self.errors[-MAX_RETAINED_ERRORS:]

        logger.log(
            _LOG_LEVELS.get(severity, logging.ERROR),
            f"Error captured: {error_record.exception_type}: {error_record.exception_message}",
            extra={"error_id": error_record.error_id, "tags": tags},
        )

        if self.sentry_enabled:
            self._send_to_sentry(exception, error_record)

        return error_record.error_id

    def get_errors(self, limit: int = 100) -> List[ErrorRecord]:
        """Most recent errors first."""
        return list(reversed(self.errors))[:limit]

    def get_error_summary(self) -> Dict[str, Any]:
        type_counts: Dict[str, int] = {}
        for error in self.errors:
            type_counts[error.exception_type] = type_counts.get(error.exception_type, 0) + 1

        return {
            "total_errors": len(self.errors),
            "type_counts": type_counts,
            "latest_error": self.errors[-1].timestamp.isoformat() if self.errors else None,
        }

    def _send_to_sentry(self, exception: BaseException, error_record: ErrorRecord) -> None:
        try:
            import sentry_sdk

            with sentry_sdk.new_scope() as scope:
                for key, value in error_record.context.items():
                    scope.set_extra(key, value)
                for key, value in error_record.tags.items():
                    scope.set_tag(key, value)
                scope.set_level(error_record.severity.value)
                sentry_sdk.capture_exception(exception)

        except Exception as e:
            logger.error(f"Failed to send error to Sentry: {e}")


# Global error tracker instance
_error_tracker: Optional[ErrorTracker] = None


def get_error_tracker() -> ErrorTracker:
    """
    Get the global error tracker instance.

    Raises:
        RuntimeError: If tracker not initialized
    """
    if _error_tracker is None:
        raise RuntimeError("Error tracker not initialized. Call setup_error_tracking() first.")
    return _error_tracker


def setup_error_tracking(settings: Settings) -> ErrorTracker:
    """Initialize the global error tracker."""
    global _error_tracker
    _error_tracker = ErrorTracker(settings)
    return _error_tracker


def capture_exception(
    exception: BaseException,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> str:
    """
    Convenience function to capture an exception.

    Falls back to plain logging when the tracker is not initialized.
    """
    try:
        tracker = get_error_tracker()
    except RuntimeError:
        logger.log(
            _LOG_LEVELS.get(severity, logging.ERROR),
            f"{type(exception).__name__}: {exception}",
            extra={"tags": tags},
        )
        return ""

    return tracker.capture_exception(
        exception=exception,
        severity=severity,
        context=context,
        tags=tags,
    )
