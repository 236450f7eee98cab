"""
Legalcase Core - Circuit Breaker
================================
Async circuit breaker for calls to external AI providers.

Circuit breaker pattern prevents cascade failures when a downstream service
is unavailable. States:

1. CLOSED: Normal operation, requests flow through
2. OPEN: Service is failing, requests are immediately rejected
3. HALF-OPEN: One trial request is testing whether the service recovered

Usage:
    from legalcase_core.circuit_breaker import CircuitBreakerManager

    breakers = CircuitBreakerManager()
    result = await breakers.get_circuit_breaker("openai").execute(
        lambda: openai_client.analyze(contract)
    )
"""

from ..errors import CircuitOpenError, OperationTimeoutError

from .models import (
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitBreakerStats,
)

from .breaker import CircuitBreaker

from .manager import CircuitBreakerManager, HealthBucket

from .decorators import circuit_breaker

__all__ = [
    # Errors
    "CircuitOpenError",
    "OperationTimeoutError",
    # Models
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitBreakerStats",
    # Breaker
    "CircuitBreaker",
    # Manager
    "CircuitBreakerManager",
    "HealthBucket",
    # Decorator
    "circuit_breaker",
]
