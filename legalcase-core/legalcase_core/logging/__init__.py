"""
Legalcase Logging Module

Structured logging shared by the API, workers and the reliability core.
"""

from .structured import (
    # Setup
    setup_logging,
    get_logger,
    JSONFormatter,

    # Logging functions
    log_event,
    log_audit,

    # Context
    request_id_var,
    user_id_var,
    service_name_var,
)
from .middleware import RequestLoggingMiddleware

__all__ = [
    "setup_logging",
    "get_logger",
    "JSONFormatter",
    "log_event",
    "log_audit",
    "request_id_var",
    "user_id_var",
    "service_name_var",
    "RequestLoggingMiddleware",
]
