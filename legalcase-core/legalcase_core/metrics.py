"""
Reliability Metrics
===================
Prometheus metrics for circuit breakers, retries, policy decisions and
command execution.

Usage:
    from fastapi import FastAPI
    from legalcase_core.metrics import get_metrics_app

    app = FastAPI()
    app.mount("/metrics", get_metrics_app())
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    make_asgi_app,
)

# Custom registry so the library never collides with application metrics
RELIABILITY_REGISTRY = CollectorRegistry()

CIRCUIT_STATE_VALUES = {
    "closed": 0,
    "half_open": 1,
    "open": 2,
}

CIRCUIT_BREAKER_STATE = Gauge(
    name="circuit_breaker_state",
    documentation="Circuit breaker state (0=closed, 1=half-open, 2=open)",
    labelnames=["service"],
    registry=RELIABILITY_REGISTRY,
)

CIRCUIT_BREAKER_CALLS = Counter(
    name="circuit_breaker_calls_total",
    documentation="Calls through a circuit breaker by outcome",
    labelnames=["service", "outcome"],
    registry=RELIABILITY_REGISTRY,
)

RETRY_ATTEMPTS = Counter(
    name="retry_attempts_total",
    documentation="Retries scheduled after a failed attempt",
    labelnames=["operation"],
    registry=RELIABILITY_REGISTRY,
)

POLICY_DECISIONS = Counter(
    name="policy_decisions_total",
    documentation="Authorization decisions by resource.action and outcome",
    labelnames=["permission", "outcome"],
    registry=RELIABILITY_REGISTRY,
)

COMMAND_DURATION = Histogram(
    name="command_duration_seconds",
    documentation="Time spent executing commands on the command bus",
    labelnames=["command", "status"],
    buckets=[
        0.001, 0.005, 0.01, 0.025, 0.05,
        0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
    ],
    registry=RELIABILITY_REGISTRY,
)


def record_circuit_state(service: str, state: str) -> None:
    """
    Record circuit breaker state.

    Args:
        service: Protected service name
        state: State value (closed, half_open, open)
    """
    CIRCUIT_BREAKER_STATE.labels(service=service).set(CIRCUIT_STATE_VALUES.get(state, 0))


def record_circuit_call(service: str, outcome: str) -> None:
    """Count one breaker call (success, failure, timeout, rejected)."""
    CIRCUIT_BREAKER_CALLS.labels(service=service, outcome=outcome).inc()


def record_retry(operation: str) -> None:
    RETRY_ATTEMPTS.labels(operation=operation).inc()


def record_policy_decision(permission: str, allowed: bool) -> None:
    """Count one decision; permission is "Resource.action" or "unknown"."""
    POLICY_DECISIONS.labels(permission=permission, outcome="allow" if allowed else "deny").inc()


def record_command(command: str, status: str, duration_seconds: float) -> None:
    COMMAND_DURATION.labels(command=command, status=status).observe(duration_seconds)


def get_metrics_app():
    """
    Get ASGI app for /metrics endpoint.

    Usage:
        app.mount("/metrics", get_metrics_app())
    """
    return make_asgi_app(registry=RELIABILITY_REGISTRY)


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format."""
    return generate_latest(RELIABILITY_REGISTRY).decode("utf-8")
