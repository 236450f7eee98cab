"""
Retry Logic with Exponential Backoff
=====================================
Retry mechanism for transient AI-provider failures.
"""

from .handler import RetryConfig, RetryHandler, not_circuit_open, with_retry

__all__ = [
    "RetryConfig",
    "RetryHandler",
    "not_circuit_open",
    "with_retry",
]
