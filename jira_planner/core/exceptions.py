"""
Custom exception hierarchy for the Jira planner.
Provides structured error handling with proper HTTP status codes.

Messages are phrased so the heuristic classifier in
``jira_planner.resilience.error_handler`` maps each error to its own category.
"""

from typing import Any, Optional


class PlannerError(Exception):
    """Base exception for all Jira planner errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PlannerError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Validation / Parsing Errors (400, 422)
# =============================================================================


class ValidationError(PlannerError):
    """Input validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=f"Invalid input: {message}",
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidRequestError(ValidationError):
    """Invalid command or request parameters."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_REQUEST"


class ParsingError(PlannerError):
    """Generated text could not be parsed into the expected JSON shape."""

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=f"Could not parse JSON from response: {reason}",
            code="PARSING_ERROR",
            details=details,
            status_code=422,
        )
        self.reason = reason


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class NotFoundError(PlannerError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class SessionNotFoundError(NotFoundError):
    """Planning session not found."""

    def __init__(self, session_id: str) -> None:
        super().__init__(resource_type="Session", resource_id=session_id)
        self.code = "SESSION_NOT_FOUND"


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(PlannerError):
    """Session data is unusable (e.g. a snapshot missing mandatory fields)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="SESSION_ERROR",
            details=details,
            status_code=422,
        )


# =============================================================================
# External Service Errors (502, 503)
# =============================================================================


class ExternalServiceError(PlannerError):
    """Error communicating with an external service."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            message=f"{service_name} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=status_code,
        )


class GenerationServiceError(ExternalServiceError):
    """The text-generation service failed or produced no usable text."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="AI service", message=message, details=details)
        self.code = "AI_SERVICE_ERROR"


class NetworkError(ExternalServiceError):
    """Transport-level failure reaching an external service."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            service_name="Network",
            message=f"connection failed: {message}",
            details=details,
            status_code=503,
        )
        self.code = "NETWORK_ERROR"


# =============================================================================
# Rate Limiting Errors (429)
# =============================================================================


class RateLimitError(PlannerError):
    """Rate limit exceeded."""

    def __init__(self, retry_after: Optional[int] = None) -> None:
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after

        super().__init__(
            message="Rate limit exceeded. Please wait before making more requests.",
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            status_code=429,
        )
        self.retry_after = retry_after


# =============================================================================
# Timeout Errors (504)
# =============================================================================


class GenerationTimeoutError(PlannerError):
    """Operation did not finish within its time budget."""

    def __init__(self, timeout_ms: int, operation: Optional[str] = None) -> None:
        details: dict[str, Any] = {"timeout_ms": timeout_ms}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=f"AI service timeout after {timeout_ms}ms",
            code="TIMEOUT",
            details=details,
            status_code=504,
        )


# =============================================================================
# Export / Workflow Errors
# =============================================================================


class ExportError(PlannerError):
    """Exporting or saving artifacts failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=f"Export failed: {message}",
            code="EXPORT_ERROR",
            details=details,
            status_code=500,
        )


class WorkflowError(PlannerError):
    """Error during workflow execution."""

    def __init__(
        self,
        message: str = "Workflow execution failed",
        step: Optional[str] = None,
    ) -> None:
        details = {"step": step} if step else {}
        super().__init__(
            message=message,
            code="WORKFLOW_ERROR",
            details=details,
            status_code=409,
        )
