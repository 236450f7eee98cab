"""
Structured Logging
==================

Structured JSON logging for the case-management API and its workers.
Includes audit events for executed commands and domain events.

Usage:
    from legalcase_core.logging import setup_logging, log_event, log_audit

    # Setup at startup
    setup_logging(service_name="legalcase-api")

    # Log events
    log_event("ai.analysis.completed", provider="ollama", matter_id="mat_123")
    log_audit("CreateClientCommand", actor_id="user_123", resource_type="Client")
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

# Bound by RequestLoggingMiddleware, read by JSONFormatter and log_audit
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per log line.

    Records from structlog carry their event dict in ``record.msg``; its
    ``event`` becomes the message and the remaining keys (service, failures,
    command, ...) are lifted to the top level next to the request context.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": service_name_var.get(),
            "request_id": request_id_var.get() or None,
            "user_id": user_id_var.get() or None,
        }

        if isinstance(record.msg, dict):
            payload.update(self._event_fields(record.msg))
        if hasattr(record, "extra_data"):
            payload.update(record.extra_data)
        if record.exc_info:
            payload["exception"] = self._exception_fields(record.exc_info)

        payload["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }
        return json.dumps(payload, default=str)

    @staticmethod
    def _event_fields(event_dict: Dict[str, Any]) -> Dict[str, Any]:
        fields = dict(event_dict)
        # level/logger from structlog would shadow the record's own values
        fields.pop("level", None)
        fields.pop("logger", None)
        fields["message"] = fields.pop("event", "")
        return fields

    @staticmethod
    def _exception_fields(exc_info) -> Dict[str, Any]:
        exc_type, exc_value, _ = exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "traceback": traceback.format_exception(*exc_info),
        }


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> logging.Logger:
    """
    Route structlog through stdlib logging to stdout.

    With ``json_output`` every line is rendered by JSONFormatter; otherwise
    a plain console format is used for local development. Called once by
    ``build_container(configure_logging=True)`` or by the application.

    Returns:
        The root logger
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        JSONFormatter() if json_output
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        # JSONFormatter needs the event dict, the console wants rendered text
        _event_dict_as_message if json_output else structlog.dev.ConsoleRenderer(colors=False),
    ]
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    structlog.get_logger(__name__).info("logging_configured", service=service_name, level=level.upper())
    return root_logger


def _event_dict_as_message(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    return {"msg": event_dict}


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger with the given name."""
    return structlog.get_logger(name)


def log_event(
    event_type: str,
    level: str = "INFO",
    **kwargs,
) -> None:
    """Log a domain event such as "ai.analysis.completed"; kwargs land in event_data."""
    logger = structlog.get_logger("events")
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(log_level, event_type, event_data=kwargs)


def log_audit(
    action: str,
    actor_id: Optional[str] = None,
    actor_type: str = "user",
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    outcome: str = "success",
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record who executed which command against which resource.

    The command bus calls this once per command with outcome "success" or
    "failure"; anything but success is logged at WARNING. Without an explicit
    actor_id the user bound by RequestLoggingMiddleware is used.
    """
    logger = structlog.get_logger("audit")

    level = logging.INFO if outcome == "success" else logging.WARNING
    logger.log(
        level,
        "command_audit",
        audit=True,
        action=action,
        actor={"id": actor_id or user_id_var.get() or None, "type": actor_type},
        resource={"type": resource_type, "id": resource_id},
        outcome=outcome,
        metadata=metadata or {},
    )
