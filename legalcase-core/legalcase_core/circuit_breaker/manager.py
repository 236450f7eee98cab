"""
Circuit Breaker Manager
=======================
Registry owning one circuit breaker per named external service.

The manager is constructed once by the application's composition root
(see legalcase_core.container) and passed to whoever needs breakers.
"""

import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from .breaker import CircuitBreaker
from .models import CircuitBreakerConfig, CircuitState

logger = structlog.get_logger(__name__)


class HealthBucket:
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


class CircuitBreakerManager:
    """
    Get-or-create registry for circuit breakers.

    get_circuit_breaker() never awaits between the lookup and the insert,
    so concurrent first access on one event loop yields a single instance.

    Args:
        default_config: Config for breakers created without an explicit one
        failure_rate_threshold: Windowed failure rate at which a closed
            breaker is reported as degraded / unhealthy
        clock: Monotonic clock shared with every breaker
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        failure_rate_threshold: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not 0.0 < failure_rate_threshold <= 1.0:
            raise ValueError("failure_rate_threshold must be in (0, 1]")
        self.default_config = default_config or CircuitBreakerConfig()
        self.failure_rate_threshold = failure_rate_threshold
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_circuit_breaker(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """
        Get or create the circuit breaker for a service.

        Args:
            service_name: Name of the external service
            config: Optional configuration (only used if creating new breaker)

        Returns:
            CircuitBreaker instance, identical across calls for one name
        """
        breaker = self._breakers.get(service_name)
        if breaker is None:
            breaker = CircuitBreaker(
                name=service_name,
                config=config or self.default_config,
                clock=self._clock,
            )
            self._breakers[service_name] = breaker
            logger.info("circuit_registered", service=service_name)
        return breaker

    def get_all_breakers(self) -> Dict[str, CircuitBreaker]:
        """Get all registered circuit breakers."""
        return dict(self._breakers)

    def get_aggregate_stats(self) -> Dict[str, Any]:
        """Sum counters across every managed breaker."""
        services = [breaker.get_stats() for breaker in self._breakers.values()]
        return {
            "total_services": len(services),
            "total_requests": sum(s.total_requests for s in services),
            "total_successes": sum(s.successes for s in services),
            "total_failures": sum(s.total_failures for s in services),
            "total_rejections": sum(s.rejections for s in services),
            "services": [s.to_dict() for s in services],
        }

    def get_unhealthy_services(self) -> List[Dict[str, Any]]:
        """Breakers that are open or failing above the rate threshold."""
        unhealthy = []
        for name, breaker in self._breakers.items():
            failure_rate = breaker.get_failure_rate()
            if breaker.state == CircuitState.OPEN or failure_rate >= self.failure_rate_threshold:
                unhealthy.append({
                    "name": name,
                    "state": breaker.state,
                    "failure_rate": failure_rate,
                })
        return unhealthy

    def classify(self, breaker: CircuitBreaker) -> str:
        """Place one breaker into a health bucket."""
        if breaker.state == CircuitState.OPEN:
            return HealthBucket.FAILED
        if breaker.state == CircuitState.HALF_OPEN:
            return HealthBucket.DEGRADED
        if breaker.get_failure_rate() >= self.failure_rate_threshold:
            return HealthBucket.DEGRADED
        return HealthBucket.HEALTHY

    def get_health_report(self) -> Dict[str, Any]:
        """Classify every service as healthy, degraded or failed."""
        services: Dict[str, Dict[str, Any]] = {}
        counts = {
            HealthBucket.HEALTHY: 0,
            HealthBucket.DEGRADED: 0,
            HealthBucket.FAILED: 0,
        }

        for name, breaker in self._breakers.items():
            bucket = self.classify(breaker)
            counts[bucket] += 1
            services[name] = {
                "state": breaker.state.value,
                "health": bucket,
                "failure_rate": breaker.get_failure_rate(),
            }

        total = len(services)
        if total and counts[HealthBucket.FAILED] == total:
            overall = "unhealthy"
        elif counts[HealthBucket.FAILED] or counts[HealthBucket.DEGRADED]:
            overall = "degraded"
        else:
            overall = "healthy"

        return {
            "overall": overall,
            "total_services": total,
            "healthy_services": counts[HealthBucket.HEALTHY],
            "degraded_services": counts[HealthBucket.DEGRADED],
            "failed_services": counts[HealthBucket.FAILED],
            "services": services,
        }

    def reset_all(self) -> None:
        """Force-close every circuit breaker (for admin/testing)."""
        for breaker in self._breakers.values():
            breaker.force_close()
        logger.info("circuits_reset", count=len(self._breakers))
