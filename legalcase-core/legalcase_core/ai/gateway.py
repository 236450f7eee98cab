"""
AI Gateway
==========
Routes analysis requests to external AI providers with failover.

Every provider sits behind its own circuit breaker. A call is retried with
backoff while the provider's circuit stays closed; once every provider has
failed or is open, the gateway gives up with NoProviderAvailableError.

Usage:
    gateway = AIGateway(
        providers=[OpenAIProvider(...), AnthropicProvider(...)],
        breakers=container.breakers,
        retry_handler=container.retry,
    )
    result = await gateway.analyze(AIRequest("contract_review", {"text": contract}))
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import structlog

from ..circuit_breaker import CircuitBreakerManager
from ..errors import CircuitOpenError, NoProviderAvailableError
from ..retry import RetryHandler, not_circuit_open

logger = structlog.get_logger(__name__)


@dataclass
class AIRequest:
    analysis_type: str
    payload: Dict[str, Any]
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AIResult:
    provider: str
    output: Any
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class AIProvider(Protocol):
    """An external model endpoint."""

    name: str

    async def analyze(self, request: AIRequest) -> AIResult:
        ...


class AIGateway:
    """Provider failover on top of the circuit breaker registry."""

    def __init__(
        self,
        providers: Sequence[AIProvider],
        breakers: CircuitBreakerManager,
        retry_handler: Optional[RetryHandler] = None,
    ):
        if not providers:
            raise ValueError("AIGateway requires at least one provider")
        self.providers: Dict[str, AIProvider] = {p.name: p for p in providers}
        self.breakers = breakers
        self.retry_handler = retry_handler or RetryHandler(name="ai_gateway")

        for name in self.providers:
            self.breakers.get_circuit_breaker(name)

    def _ordered(self, preferred: Optional[str]) -> List[AIProvider]:
        ordered = list(self.providers.values())
        if preferred in self.providers:
            ordered.remove(self.providers[preferred])
            ordered.insert(0, self.providers[preferred])
        return ordered

    async def analyze(self, request: AIRequest, preferred: Optional[str] = None) -> AIResult:
        """
        Run an analysis on the first provider that succeeds.

        Args:
            request: The analysis request
            preferred: Provider name to try first

        Returns:
            AIResult from the provider that answered

        Raises:
            NoProviderAvailableError: Every provider failed or was open
        """
        last_error: Optional[Exception] = None
        attempted: List[str] = []

        for provider in self._ordered(preferred):
            breaker = self.breakers.get_circuit_breaker(provider.name)
            attempted.append(provider.name)

            async def call(provider=provider, breaker=breaker) -> AIResult:
                return await breaker.execute(lambda: provider.analyze(request))

            try:
                result = await self.retry_handler.execute(call, should_retry=not_circuit_open)
            except CircuitOpenError as e:
                logger.info("ai_provider_skipped", provider=provider.name, retry_after=e.retry_after)
                last_error = e
                continue
            except Exception as e:
                logger.warning(
                    "ai_provider_failed",
                    provider=provider.name,
                    analysis_type=request.analysis_type,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                last_error = e
                continue

            if len(attempted) > 1:
                logger.info("ai_provider_failover", provider=provider.name, attempted=attempted)
            return result

        logger.error(
            "ai_providers_exhausted",
            analysis_type=request.analysis_type,
            attempted=attempted,
        )
        raise NoProviderAvailableError(
            "No AI provider is currently available",
            details={"attempted": attempted, "analysis_type": request.analysis_type},
        ) from last_error

    def get_provider_status(self) -> Dict[str, Dict[str, Any]]:
        """Per-provider breaker state for dashboards and health checks."""
        status = {}
        for name in self.providers:
            breaker = self.breakers.get_circuit_breaker(name)
            status[name] = {
                "state": breaker.state.value,
                "healthy": breaker.is_healthy(),
                "failure_rate": breaker.get_failure_rate(),
            }
        return status
