"""
Monitoring-specific exception classes.

Errors raised inside the monitoring engine: health probe timeouts, scheduler
misuse and document store failures. Each carries a standardized error code and
context details and serializes to a dictionary for JSON error responses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class MonitoringError(Exception):
    """
    Base exception class for all monitoring errors.

    Attributes:
        message: Human-readable error description
        error_code: Standardized error code for logs and responses
        details: Additional error context
        timestamp: Error occurrence timestamp
    """

    def __init__(
        self,
        message: str,
        error_code: str = "MONITORING_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

        logger.debug(
            "Monitoring error raised",
            error_code=self.error_code,
            message=message,
            details=self.details
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON serialization.

        Returns:
            Dictionary containing error information suitable for HTTP responses
        """
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class ProbeTimeoutError(MonitoringError):
    """Raised when a health probe exceeds its deadline."""

    def __init__(self, probe_name: str, timeout: float):
        super().__init__(
            f"Health probe '{probe_name}' timed out after {timeout}s",
            error_code="PROBE_TIMEOUT",
            details={"probe": probe_name, "timeout_seconds": timeout}
        )
        self.probe_name = probe_name
        self.timeout = timeout


class SchedulerError(MonitoringError):
    """Raised for invalid scheduler operations."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="SCHEDULER_ERROR", details=details)


class UnknownTaskError(SchedulerError):
    """Raised when a periodic task name is not registered."""

    def __init__(self, task_name: str):
        super().__init__(f"Unknown periodic task '{task_name}'", details={"task": task_name})
        self.error_code = "UNKNOWN_TASK"
        self.task_name = task_name


class DocumentStoreError(MonitoringError):
    """Raised when the document store canary operation fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error is not None:
            details["original_error"] = type(original_error).__name__
        super().__init__(message, error_code="DOCUMENT_STORE_ERROR", details=details)
        self.operation = operation
        self.original_error = original_error


__all__ = [
    'MonitoringError',
    'ProbeTimeoutError',
    'SchedulerError',
    'UnknownTaskError',
    'DocumentStoreError',
]
