"""
Error Taxonomy
==============
Standard error hierarchy for the legal case-management platform.

Every error carries an HTTP status, a stable error code and optional details.
Operational errors (expected failures such as a tripped circuit) are safe to
surface to callers; non-operational ones indicate programming or wiring bugs.

CRITICAL: Never expose internal error details to end users.
Use to_http_exception() at the HTTP boundary.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


# User-friendly message for temporary upstream failures
USER_FRIENDLY_MESSAGE = "This service is temporarily unavailable. Please try again shortly."


class LegalCaseError(Exception):
    """Base class for all platform errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    is_operational: bool = False

    def __init__(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "details": self.details,
        }


class ValidationError(LegalCaseError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    is_operational = True


class AuthorizationError(LegalCaseError):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"
    is_operational = True

    def __init__(self, message: str = "Insufficient permissions", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(LegalCaseError):
    status_code = 404
    error_code = "NOT_FOUND_ERROR"
    is_operational = True

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, **kwargs)


class AIServiceError(LegalCaseError):
    """An AI provider (or the protection around it) could not serve the call."""

    status_code = 503
    error_code = "AI_SERVICE_ERROR"
    is_operational = True


class CircuitOpenError(AIServiceError):
    """Raised when a circuit is open and the call is rejected without running."""

    error_code = "CIRCUIT_OPEN"

    def __init__(self, service_name: str, state: Any, retry_after: float):
        self.service_name = service_name
        self.state = state
        self.retry_after = retry_after
        state_value = getattr(state, "value", state)
        super().__init__(
            f"Circuit breaker is OPEN for '{service_name}' (state={state_value}). "
            f"Retry after {retry_after:.1f}s",
            details={"service": service_name, "retry_after": retry_after},
        )


class OperationTimeoutError(AIServiceError):
    """Raised when a protected operation exceeds its time budget."""

    status_code = 504
    error_code = "OPERATION_TIMEOUT"

    def __init__(self, service_name: str, timeout: float):
        self.service_name = service_name
        self.timeout = timeout
        super().__init__(
            f"Operation timed out after {timeout:.3f}s for '{service_name}'",
            details={"service": service_name, "timeout": timeout},
        )


class NoProviderAvailableError(AIServiceError):
    error_code = "NO_AI_PROVIDER_AVAILABLE"


class NoHandlerRegisteredError(LegalCaseError):
    """The command bus has no handler for the command's kind."""

    error_code = "NO_HANDLER_REGISTERED"

    def __init__(self, command_name: str):
        self.command_name = command_name
        super().__init__(
            f"No handler registered for command: {command_name}",
            details={"command": command_name},
        )


def to_http_exception(error: Exception) -> HTTPException:
    """
    Convert an error into an HTTPException that is safe to show to users.

    Operational 4xx errors keep their message. Everything else gets the
    generic message, with the technical detail logged under the error code.

    Args:
        error: Any exception raised while serving a request

    Returns:
        HTTPException with a user-facing payload
    """
    if not isinstance(error, LegalCaseError):
        logger.error("unhandled_error", error_type=type(error).__name__, error=str(error))
        return HTTPException(
            status_code=500,
            detail={
                "error": "Internal server error",
                "message": USER_FRIENDLY_MESSAGE,
                "code": LegalCaseError.error_code,
            },
        )

    if error.is_operational and error.status_code < 500:
        return HTTPException(
            status_code=error.status_code,
            detail={"error": error.message, "code": error.error_code},
        )

    logger.warning(f"[{error.error_code}] {error.message}", details=error.details)

    headers = None
    if isinstance(error, CircuitOpenError):
        headers = {"Retry-After": str(max(1, int(round(error.retry_after))))}

    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": "Service temporarily unavailable",
            "message": USER_FRIENDLY_MESSAGE,
            "code": error.error_code,
        },
        headers=headers,
    )


async def legalcase_error_handler(request: Request, error: LegalCaseError) -> JSONResponse:
    """FastAPI exception handler rendering LegalCaseError via to_http_exception()."""
    http_error = to_http_exception(error)
    return JSONResponse(
        status_code=http_error.status_code,
        content=http_error.detail,
        headers=http_error.headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """
    Install the platform error handler on a FastAPI app.

    Usage:
        app = FastAPI()
        register_error_handlers(app)
    """
    app.add_exception_handler(LegalCaseError, legalcase_error_handler)
