"""
Tests for the error taxonomy and HTTP conversion.
"""

from legalcase_core.circuit_breaker import CircuitState
from legalcase_core.errors import (
    USER_FRIENDLY_MESSAGE,
    AIServiceError,
    AuthorizationError,
    CircuitOpenError,
    LegalCaseError,
    NoHandlerRegisteredError,
    OperationTimeoutError,
    ValidationError,
    to_http_exception,
)


class TestErrorTaxonomy:
    """Tests for error attributes."""

    def test_circuit_open_error(self):
        """Should carry service, state and retry hint."""
        error = CircuitOpenError("openai", CircuitState.OPEN, 12.0)

        assert isinstance(error, AIServiceError)
        assert error.status_code == 503
        assert error.error_code == "CIRCUIT_OPEN"
        assert "Circuit breaker is OPEN for 'openai'" in error.message
        assert error.details == {"service": "openai", "retry_after": 12.0}

    def test_timeout_error(self):
        """Should use 504 and name the budget."""
        error = OperationTimeoutError("ollama", 30.0)

        assert error.status_code == 504
        assert "timed out after 30.000s" in str(error)

    def test_no_handler_is_not_operational(self):
        """Should flag missing handlers as a wiring bug."""
        error = NoHandlerRegisteredError("CreateClientCommand")

        assert error.is_operational is False
        assert error.status_code == 500

    def test_to_dict(self):
        """Should serialize the error envelope."""
        data = ValidationError("Email is invalid", correlation_id="req_1").to_dict()

        assert data["name"] == "ValidationError"
        assert data["status_code"] == 400
        assert data["correlation_id"] == "req_1"
        assert data["details"] == {}


class TestHttpConversion:
    """Tests for to_http_exception."""

    def test_operational_client_error_keeps_message(self):
        """Should pass 4xx messages through."""
        exc = to_http_exception(AuthorizationError())

        assert exc.status_code == 403
        assert exc.detail == {"error": "Insufficient permissions", "code": "AUTHORIZATION_ERROR"}

    def test_circuit_open_is_friendly(self):
        """Should hide internals and add Retry-After."""
        exc = to_http_exception(CircuitOpenError("openai", CircuitState.OPEN, 12.4))

        assert exc.status_code == 503
        assert exc.detail["message"] == USER_FRIENDLY_MESSAGE
        assert "openai" not in str(exc.detail)
        assert exc.headers == {"Retry-After": "12"}

    def test_unknown_error_is_500(self):
        """Should map foreign exceptions to a generic 500."""
        exc = to_http_exception(KeyError("secret_column"))

        assert exc.status_code == 500
        assert "secret_column" not in str(exc.detail)
        assert exc.detail["code"] == LegalCaseError.error_code


class TestErrorHandlers:
    """Tests for the FastAPI exception handler."""

    def test_handler_renders_errors(self):
        """Should render LegalCaseError subclasses as JSON responses."""
        from fastapi import FastAPI
        from fastapi.testclient import TestClient

        from legalcase_core.errors import register_error_handlers

        app = FastAPI()
        register_error_handlers(app)

        @app.get("/analyze")
        async def analyze():
            raise CircuitOpenError("openai", CircuitState.OPEN, 30.0)

        @app.get("/clients")
        async def create_client():
            raise AuthorizationError("Not authorized to execute CreateClientCommand")

        client = TestClient(app)

        response = client.get("/analyze")
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["code"] == "CIRCUIT_OPEN"

        response = client.get("/clients")
        assert response.status_code == 403
        assert response.json()["error"] == "Not authorized to execute CreateClientCommand"
