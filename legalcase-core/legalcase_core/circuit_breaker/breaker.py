"""
Circuit Breaker Core
====================
The main CircuitBreaker class protecting calls to external AI providers.

State bookkeeping happens in synchronous sections that never span an await,
so on a single event loop every admit/record step is atomic. Only one trial
call is admitted once the reset window elapses; concurrent callers are
rejected until the trial settles.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional, Tuple, TypeVar

import structlog

from ..errors import CircuitOpenError, OperationTimeoutError
from ..metrics import record_circuit_call, record_circuit_state
from .models import (
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitBreakerStats,
    CircuitState,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """
    Async circuit breaker for a single named service.

    Example:
        breaker = CircuitBreaker("openai", CircuitBreakerConfig(timeout=30.0))

        try:
            result = await breaker.execute(lambda: client.analyze(contract))
        except CircuitOpenError:
            return fallback_value
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitBreakerState()
        self._created_at = clock()
        self._history: Deque[Tuple[float, bool]] = deque()

        record_circuit_state(self.name, CircuitState.CLOSED.value)
        logger.info(
            "circuit_initialized",
            service=self.name,
            failure_threshold=self.config.failure_threshold,
            reset_timeout=self.config.reset_timeout,
            timeout=self.config.timeout,
        )

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.state

    def get_state(self) -> CircuitState:
        return self._state.state

    def get_stats(self) -> CircuitBreakerStats:
        """Snapshot of counters. Never blocks or mutates state."""
        s = self._state
        completed = s.success_count + s.total_failures
        return CircuitBreakerStats(
            name=self.name,
            state=s.state,
            failures=s.failure_count,
            successes=s.success_count,
            total_requests=s.total_requests,
            uptime=self._clock() - self._created_at,
            total_failures=s.total_failures,
            timeouts=s.timeout_count,
            rejections=s.rejected_count,
            failure_rate=self._failure_rate(prune=False),
            average_response_time=(s.total_response_time / completed) if completed else 0.0,
            last_failure_time=s.last_failure_time,
            last_success_time=s.last_success_time,
        )

    def get_failure_rate(self) -> float:
        """Share of failed calls inside the monitoring period."""
        return self._failure_rate(prune=True)

    def is_healthy(self) -> bool:
        s = self._state
        if s.state == CircuitState.CLOSED:
            return True
        return s.state == CircuitState.HALF_OPEN and s.success_count > 0

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an async operation with circuit breaker protection.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: The circuit is open; the operation was not invoked
            OperationTimeoutError: The operation exceeded config.timeout
            Exception: Whatever the operation raised, unchanged
        """
        is_trial = self._before_call()
        started = self._clock()

        try:
            result = await self._call_with_timeout(operation)
        except asyncio.CancelledError:
            if is_trial:
                self._release_trial()
            raise
        except OperationTimeoutError as exc:
            self._state.timeout_count += 1
            self._record_failure(exc, is_trial, started, outcome="timeout")
            raise
        except Exception as exc:
            if isinstance(exc, self.config.excluded_exceptions):
                if is_trial:
                    self._release_trial()
                raise
            self._record_failure(exc, is_trial, started)
            raise

        self._record_success(is_trial, started)
        return result

    def force_open(self) -> None:
        """Open the circuit now; the reset window starts from this moment."""
        self._state.last_failure_time = self._clock()
        self._state.trial_in_flight = False
        self._transition(CircuitState.OPEN)
        logger.warning("circuit_force_opened", service=self.name)

    def force_close(self) -> None:
        """Close the circuit and clear the consecutive-failure counter."""
        self._state.failure_count = 0
        self._state.trial_in_flight = False
        self._transition(CircuitState.CLOSED)
        logger.info("circuit_force_closed", service=self.name)

    async def _call_with_timeout(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.config.timeout is None:
            return await operation()

        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # Cancel the slow call so the provider request does not keep running
            task.cancel()
            raise OperationTimeoutError(self.name, self.config.timeout)
        return task.result()

    def _before_call(self) -> bool:
        """Admit or reject a call. Returns True when the call is the recovery trial."""
        s = self._state
        now = self._clock()
        s.total_requests += 1

        if s.state == CircuitState.CLOSED:
            return False

        if s.state == CircuitState.OPEN and not s.trial_in_flight:
            elapsed = now - (s.last_failure_time if s.last_failure_time is not None else now)
            if elapsed >= self.config.reset_timeout:
                s.trial_in_flight = True
                self._transition(CircuitState.HALF_OPEN)
                return True

        s.rejected_count += 1
        record_circuit_call(self.name, "rejected")
        raise CircuitOpenError(self.name, s.state, self._retry_after(now))

    def _record_success(self, is_trial: bool, started: float) -> None:
        s = self._state
        now = self._clock()
        s.success_count += 1
        s.last_success_time = now
        s.total_response_time += now - started
        self._append_history(now, True)
        record_circuit_call(self.name, "success")

        if is_trial:
            s.trial_in_flight = False
            s.failure_count = 0
            self._transition(CircuitState.CLOSED)
        elif s.state == CircuitState.CLOSED:
            s.failure_count = 0

        logger.debug(
            "circuit_call_succeeded",
            service=self.name,
            state=s.state.value,
            duration=now - started,
        )

    def _record_failure(
        self,
        exc: Exception,
        is_trial: bool,
        started: float,
        outcome: str = "failure",
    ) -> None:
        s = self._state
        now = self._clock()
        s.failure_count += 1
        s.total_failures += 1
        s.last_failure_time = now
        s.total_response_time += now - started
        self._append_history(now, False)
        record_circuit_call(self.name, outcome)

        logger.warning(
            "circuit_call_failed",
            service=self.name,
            state=s.state.value,
            error=str(exc),
            failure_count=s.failure_count,
            threshold=self.config.failure_threshold,
        )

        if is_trial:
            s.trial_in_flight = False
            self._transition(CircuitState.OPEN)
        elif s.state == CircuitState.CLOSED and s.failure_count >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _release_trial(self) -> None:
        """Trial ended without a verdict; back to OPEN so the next caller may probe."""
        self._state.trial_in_flight = False
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        if old_state == new_state:
            return
        self._state.state = new_state
        record_circuit_state(self.name, new_state.value)

        if new_state == CircuitState.OPEN:
            logger.warning(
                "circuit_opened",
                service=self.name,
                previous_state=old_state.value,
                failures=self._state.failure_count,
            )
        elif new_state == CircuitState.HALF_OPEN:
            logger.info("circuit_half_open", service=self.name)
        else:
            logger.info("circuit_closed", service=self.name, previous_state=old_state.value)

    def _retry_after(self, now: float) -> float:
        last_failure = self._state.last_failure_time
        if last_failure is None:
            return self.config.reset_timeout
        return max(0.0, self.config.reset_timeout - (now - last_failure))

    def _append_history(self, now: float, success: bool) -> None:
        self._history.append((now, success))
        self._prune_history(now)

    def _prune_history(self, now: float) -> None:
        window_start = now - self.config.monitoring_period
        while self._history and self._history[0][0] < window_start:
            self._history.popleft()

    def _failure_rate(self, prune: bool) -> float:
        now = self._clock()
        if prune:
            self._prune_history(now)
        window_start = now - self.config.monitoring_period
        recent = [success for ts, success in self._history if ts >= window_start]
        if not recent:
            return 0.0
        return recent.count(False) / len(recent)

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self.state.value})"
