"""
Circuit Breaker Models
======================
Data models and enums for the circuit breaker pattern.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Single trial call in flight


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for a circuit breaker. Durations are in seconds."""
    failure_threshold: int = 5              # Consecutive failures before opening
    reset_timeout: float = 60.0             # Seconds to stay open before a trial
    timeout: Optional[float] = None         # Per-call time budget, None = unbounded
    monitoring_period: float = 300.0        # Window for failure-rate tracking
    excluded_exceptions: Tuple[Type[BaseException], ...] = ()  # Not counted as failures

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be non-negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive when set")
        if self.monitoring_period <= 0:
            raise ValueError("monitoring_period must be positive")


@dataclass
class CircuitBreakerState:
    """Runtime state of a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0                   # Consecutive, reset on success
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    trial_in_flight: bool = False

    # Lifetime metrics, never reset
    total_requests: int = 0
    success_count: int = 0
    total_failures: int = 0
    timeout_count: int = 0
    rejected_count: int = 0
    total_response_time: float = 0.0


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Point-in-time snapshot returned by CircuitBreaker.get_stats()."""
    name: str
    state: CircuitState
    failures: int
    successes: int
    total_requests: int
    uptime: float
    total_failures: int = 0
    timeouts: int = 0
    rejections: int = 0
    failure_rate: float = 0.0
    average_response_time: float = 0.0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data
