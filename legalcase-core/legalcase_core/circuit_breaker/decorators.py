"""
Circuit Breaker Decorator
=========================
Decorator for wrapping async functions with circuit breaker protection.
"""

from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import CircuitOpenError
from .manager import CircuitBreakerManager
from .models import CircuitBreakerConfig

T = TypeVar("T")


def circuit_breaker(
    manager: CircuitBreakerManager,
    service_name: str,
    config: Optional[CircuitBreakerConfig] = None,
    fallback: Optional[Callable[..., Awaitable[T]]] = None,
):
    """
    Decorator to wrap async functions with a managed circuit breaker.

    The fallback only runs when the circuit rejects the call; genuine
    downstream failures still propagate.

    Example:
        @circuit_breaker(breakers, "anthropic")
        async def summarize(document_id: str):
            return await anthropic_client.summarize(document_id)

        @circuit_breaker(breakers, "legal-bert", fallback=keyword_classifier)
        async def classify_clause(text: str):
            return await legal_bert.classify(text)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        breaker = manager.get_circuit_breaker(service_name, config)

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await breaker.execute(lambda: func(*args, **kwargs))
            except CircuitOpenError:
                if fallback is None:
                    raise
                return await fallback(*args, **kwargs)

        wrapper.breaker = breaker
        return wrapper

    return decorator
