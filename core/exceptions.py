"""
Exception Hierarchy & Error Handling Framework
===============================================
Exception taxonomy for the generation engine with structured context,
severity classification and retry metadata.

Recovery policy by family:
- LLM errors: converted to fallback results by the dispatcher
- Cache errors: swallowed by the caches and counted as misses
- Schedule errors: caught per run, schedule stays active
- Configuration errors: recurrence falls back to the default rule
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class ContentAutomationException(Exception):
    """
    Root exception for all application errors.

    Carries a unique error ID, severity, structured context, an error code
    and a retry hint.
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.utcnow()

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# LLM EXCEPTIONS
# =============================================================================


class LLMException(ContentAutomationException):
    """Base exception for generation backend errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)


LLMProviderError = LLMException


class LLMRateLimitError(LLMException):
    """Backend quota or rate limit exceeded."""

    def __init__(
        self,
        message: str = "LLM API rate limit exceeded",
        *,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"retry_after_seconds": retry_after},
            error_code="LLM_RATE_LIMIT",
            **kwargs,
        )
        self.retry_after = retry_after


class LLMTimeoutError(LLMException):
    """Backend request timed out."""

    def __init__(
        self,
        message: str = "LLM API request timed out",
        *,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"timeout_seconds": timeout_seconds},
            error_code="LLM_TIMEOUT",
            **kwargs,
        )


class LLMAuthenticationError(LLMException):
    """Missing or rejected API credentials."""

    def __init__(self, message: str = "LLM API authentication failed", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            error_code="LLM_AUTH_FAILED",
            **kwargs,
        )


class LLMInvalidResponseError(LLMException):
    """Backend returned an empty or malformed response."""

    def __init__(
        self,
        message: str = "LLM returned invalid response",
        *,
        response_text: Optional[str] = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={
                "response_preview": response_text[:500] if response_text else None,
                "expected_format": expected_format,
            },
            error_code="LLM_INVALID_RESPONSE",
            **kwargs,
        )


class CircuitOpenError(LLMException):
    """Calls are short-circuited while the backend is considered down."""

    def __init__(self, message: str = "Circuit breaker is OPEN - service unavailable", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=True,
            error_code="LLM_CIRCUIT_OPEN",
            **kwargs,
        )


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================


class DatabaseException(ContentAutomationException):
    """Base exception for relational store errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message, **kwargs)


class DatabaseConnectionError(DatabaseException):
    """Failed to establish database connection."""

    def __init__(
        self,
        message: str = "Database connection failed",
        *,
        url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"url": url},
            error_code="DB_CONNECTION_FAILED",
            **kwargs,
        )


class DatabaseQueryError(DatabaseException):
    """Statement execution failed."""

    def __init__(
        self,
        message: str = "Database query failed",
        *,
        query_preview: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"query_preview": query_preview[:200] if query_preview else None},
            error_code="DB_QUERY_FAILED",
            **kwargs,
        )


class EntityNotFoundError(DatabaseException):
    """Requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: Any, message: Optional[str] = None, **kwargs):
        message = message or f"{entity_type} with ID {entity_id} not found"
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"entity_type": entity_type, "entity_id": str(entity_id)},
            error_code="ENTITY_NOT_FOUND",
            **kwargs,
        )


# =============================================================================
# GENERATION & SCHEDULING EXCEPTIONS
# =============================================================================


class GenerationError(ContentAutomationException):
    """Content generation for a single request failed."""

    def __init__(
        self,
        message: str = "Content generation failed",
        *,
        request_id: Optional[str] = None,
        generation_step: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"request_id": request_id, "generation_step": generation_step},
            error_code="GENERATION_ERROR",
            **kwargs,
        )


class ScheduleExecutionError(ContentAutomationException):
    """A scheduled run failed; the schedule itself stays active."""

    def __init__(
        self,
        message: str = "Scheduled run failed",
        *,
        schedule_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"schedule_id": schedule_id},
            error_code="SCHEDULE_EXECUTION_FAILED",
            **kwargs,
        )


class InvalidScheduleError(ContentAutomationException):
    """Malformed recurrence rule or schedule definition."""

    def __init__(
        self,
        message: str = "Invalid schedule configuration",
        *,
        expression: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"expression": expression},
            error_code="INVALID_SCHEDULE",
            **kwargs,
        )


__all__ = [
    "ContentAutomationException",
    "LLMException",
    "LLMProviderError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMAuthenticationError",
    "LLMInvalidResponseError",
    "CircuitOpenError",
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "EntityNotFoundError",
    "GenerationError",
    "ScheduleExecutionError",
    "InvalidScheduleError",
]
