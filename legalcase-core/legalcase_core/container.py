"""
Reliability Container
=====================
Composition root for the process-scoped reliability components.

Usage:
    from legalcase_core.container import build_container

    container = build_container()
    app.include_router(container.health_router(version="2.1.0"))
    register_client_handlers(container.command_bus, repository, users, container.policies)
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

import structlog
from fastapi import APIRouter

from .circuit_breaker import CircuitBreakerManager
from .commands import CommandBus
from .config import ReliabilitySettings
from .health import create_health_router
from .logging import setup_logging
from .policy import DEFAULT_POLICIES, Policy, PolicyService
from .retry import RetryHandler

logger = structlog.get_logger(__name__)


@dataclass
class ReliabilityContainer:
    """The shared instances one process works with."""
    settings: ReliabilitySettings
    breakers: CircuitBreakerManager
    retry: RetryHandler
    policies: PolicyService
    command_bus: CommandBus

    def health_router(self, version: str = "1.0.0") -> APIRouter:
        return create_health_router(
            service_name=self.settings.service_name,
            version=version,
            breakers=self.breakers,
            policy_service=self.policies,
        )


def build_container(
    settings: Optional[ReliabilitySettings] = None,
    policies: Iterable[Union[Policy, Mapping[str, Any]]] = DEFAULT_POLICIES,
    configure_logging: bool = False,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ReliabilityContainer:
    """
    Construct and wire the reliability components.

    Args:
        settings: Settings to use; read from the environment when omitted
        policies: Policies registered on the PolicyService
        configure_logging: Also run setup_logging() from the settings
        clock: Clock shared by every circuit breaker
        sleep: Sleep used between retries

    Returns:
        ReliabilityContainer
    """
    settings = settings or ReliabilitySettings.from_env()

    if configure_logging:
        setup_logging(
            service_name=settings.service_name,
            level=settings.log_level,
            json_output=settings.log_json,
        )

    breakers = CircuitBreakerManager(
        default_config=settings.circuit_breaker_config(),
        failure_rate_threshold=settings.cb_failure_rate_threshold,
        clock=clock,
    )
    retry = RetryHandler(settings.retry_config(), sleep=sleep, name=settings.service_name)

    policy_service = PolicyService(cache_enabled=settings.policy_cache_enabled)
    for policy in policies:
        policy_service.register_policy(policy)

    container = ReliabilityContainer(
        settings=settings,
        breakers=breakers,
        retry=retry,
        policies=policy_service,
        command_bus=CommandBus(),
    )
    logger.info(
        "reliability_container_built",
        service=settings.service_name,
        policies=policy_service.get_stats()["policies_count"],
    )
    return container
