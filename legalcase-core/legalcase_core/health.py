"""
Health Check Module
===================
Health endpoints reporting the state of every circuit breaker.
"""

import time
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel

from .circuit_breaker import CircuitBreakerManager
from .policy import PolicyService

logger = structlog.get_logger(__name__)


class HealthStatus:
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CircuitHealth(BaseModel):
    state: str
    health: str
    failure_rate: float


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    healthy_services: int
    degraded_services: int
    failed_services: int
    circuits: Dict[str, CircuitHealth]
    policies: Optional[Dict[str, int]] = None
    timestamp: float


def create_health_router(
    service_name: str,
    version: str = "1.0.0",
    breakers: Optional[CircuitBreakerManager] = None,
    policy_service: Optional[PolicyService] = None,
) -> APIRouter:
    """
    Create a health check router backed by the circuit breaker registry.

    Args:
        service_name: Name of the service (e.g., "legalcase-api")
        version: Service version
        breakers: Circuit breaker registry to report on
        policy_service: Policy service whose counters are included (optional)

    Returns:
        FastAPI router with /health, /health/live, /health/ready and
        /health/circuits endpoints
    """
    router = APIRouter(tags=["Health"])
    breakers = breakers or CircuitBreakerManager()

    def build_response() -> HealthResponse:
        report = breakers.get_health_report()
        return HealthResponse(
            status=report["overall"],
            service=service_name,
            version=version,
            healthy_services=report["healthy_services"],
            degraded_services=report["degraded_services"],
            failed_services=report["failed_services"],
            circuits={
                name: CircuitHealth(**detail)
                for name, detail in report["services"].items()
            },
            policies=policy_service.get_stats() if policy_service is not None else None,
            timestamp=time.time(),
        )

    @router.get("/health", response_model=HealthResponse)
    async def health_check(response: Response) -> HealthResponse:
        """Overall status with per-circuit detail; 503 when every circuit has failed."""
        health = build_response()
        if health.status == HealthStatus.UNHEALTHY:
            logger.warning("health_unhealthy", service=service_name, failed=health.failed_services)
            response.status_code = 503
        return health

    @router.get("/health/live")
    async def liveness_probe():
        """Kubernetes liveness probe - always returns 200 if service is running."""
        return {"status": "alive"}

    @router.get("/health/ready")
    async def readiness_probe():
        """Kubernetes readiness probe - not ready while every circuit is open."""
        report = breakers.get_health_report()
        if report["overall"] == HealthStatus.UNHEALTHY:
            return Response(
                content='{"status": "not_ready", "reason": "all_circuits_open"}',
                status_code=503,
                media_type="application/json",
            )
        return {"status": "ready"}

    @router.get("/health/circuits")
    async def circuit_stats() -> Dict[str, Any]:
        """Aggregate circuit breaker counters plus the unhealthy services."""
        stats = breakers.get_aggregate_stats()
        stats["unhealthy_services"] = [
            {**entry, "state": entry["state"].value}
            for entry in breakers.get_unhealthy_services()
        ]
        return stats

    return router
