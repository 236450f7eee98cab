"""
Legalcase Core Library
======================
Reliability core for the legal case-management platform: circuit breakers,
retries, policy-based authorization and the command bus.
"""

__version__ = "0.1.0"

# Errors
from legalcase_core.errors import (
    LegalCaseError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    AIServiceError,
    CircuitOpenError,
    OperationTimeoutError,
    NoProviderAvailableError,
    NoHandlerRegisteredError,
    to_http_exception,
    register_error_handlers,
)

# Circuit Breaker
from legalcase_core.circuit_breaker import (
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitBreaker,
    CircuitBreakerManager,
    circuit_breaker,
)

# Retry
from legalcase_core.retry import (
    RetryConfig,
    RetryHandler,
    not_circuit_open,
    with_retry,
)

# Policy
from legalcase_core.policy import (
    Actor,
    Policy,
    PolicyService,
    Role,
    Rule,
    DEFAULT_POLICIES,
)

# Commands
from legalcase_core.commands import (
    Command,
    CommandBus,
    CommandHandler,
)

# AI Gateway
from legalcase_core.ai import AIGateway, AIRequest, AIResult

# Health & config
from legalcase_core.health import create_health_router
from legalcase_core.config import ReliabilitySettings
from legalcase_core.container import ReliabilityContainer, build_container

__all__ = [
    # Errors
    "LegalCaseError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "AIServiceError",
    "CircuitOpenError",
    "OperationTimeoutError",
    "NoProviderAvailableError",
    "NoHandlerRegisteredError",
    "to_http_exception",
    "register_error_handlers",
    # Circuit Breaker
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerStats",
    "CircuitBreaker",
    "CircuitBreakerManager",
    "circuit_breaker",
    # Retry
    "RetryConfig",
    "RetryHandler",
    "not_circuit_open",
    "with_retry",
    # Policy
    "Actor",
    "Policy",
    "PolicyService",
    "Role",
    "Rule",
    "DEFAULT_POLICIES",
    # Commands
    "Command",
    "CommandBus",
    "CommandHandler",
    # AI Gateway
    "AIGateway",
    "AIRequest",
    "AIResult",
    # Health & config
    "create_health_router",
    "ReliabilitySettings",
    "ReliabilityContainer",
    "build_container",
]
