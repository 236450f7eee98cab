"""
Unit Tests for the Circuit Breaker
==================================
State machine, timeouts and single-trial recovery.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from legalcase_core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerManager,
    CircuitState,
    circuit_breaker,
)
from legalcase_core.errors import CircuitOpenError, OperationTimeoutError


class ProviderDown(Exception):
    pass


async def trip(breaker: CircuitBreaker, times: int) -> None:
    failing = AsyncMock(side_effect=ProviderDown("503 from provider"))
    for _ in range(times):
        with pytest.raises(ProviderDown):
            await breaker.execute(failing)


class TestCircuitBreakerStates:
    """Tests for the CLOSED -> OPEN -> HALF_OPEN -> CLOSED cycle."""

    def test_starts_closed(self, clock):
        """Should start CLOSED with no failures."""
        breaker = CircuitBreaker("openai", clock=clock)

        stats = breaker.get_stats()
        assert breaker.get_state() == CircuitState.CLOSED
        assert stats.failures == 0
        assert stats.successes == 0
        assert stats.total_requests == 0

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, clock):
        """Should open after exactly failure_threshold consecutive failures."""
        breaker = CircuitBreaker("openai", CircuitBreakerConfig(failure_threshold=3), clock=clock)

        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_stats().failures == 3

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self, clock):
        """Should reject while OPEN without invoking the operation."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=60.0),
            clock=clock,
        )
        await trip(breaker, 1)

        operation = AsyncMock(return_value="ok")
        for _ in range(3):
            clock.advance(10)
            with pytest.raises(CircuitOpenError) as exc_info:
                await breaker.execute(operation)
            assert exc_info.value.service_name == "openai"

        assert operation.await_count == 0
        assert operation.call_count == 0
        assert exc_info.value.retry_after == pytest.approx(30.0)
        assert breaker.get_stats().rejections == 3

    @pytest.mark.asyncio
    async def test_trial_success_closes(self, clock):
        """Should close and reset failures when the trial succeeds."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=2, reset_timeout=5.0),
            clock=clock,
        )
        await trip(breaker, 2)

        clock.advance(5.0)
        result = await breaker.execute(AsyncMock(return_value="summary"))

        assert result == "summary"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats().failures == 0

    @pytest.mark.asyncio
    async def test_trial_failure_reopens(self, clock):
        """Should reopen and restart the reset window when the trial fails."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=2, reset_timeout=5.0),
            clock=clock,
        )
        await trip(breaker, 2)

        clock.advance(5.0)
        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        clock.advance(4.0)
        operation = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await breaker.execute(operation)
        assert operation.call_count == 0

    @pytest.mark.asyncio
    async def test_success_resets_failures(self, clock):
        """Should reset the consecutive failure count on any success."""
        breaker = CircuitBreaker("openai", CircuitBreakerConfig(failure_threshold=3), clock=clock)

        await trip(breaker, 2)
        await breaker.execute(AsyncMock(return_value=1))
        await trip(breaker, 2)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats().failures == 2
        assert breaker.get_stats().total_failures == 4

    @pytest.mark.asyncio
    async def test_errors_propagate_unchanged(self, clock):
        """Should re-raise the operation's own error object."""
        breaker = CircuitBreaker("openai", clock=clock)
        error = ProviderDown("rate limited")

        with pytest.raises(ProviderDown) as exc_info:
            await breaker.execute(AsyncMock(side_effect=error))

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_recovery_scenario(self, clock):
        """Should open after 3 failures, reject, then recover after the reset window."""
        breaker = CircuitBreaker(
            "legal-bert",
            CircuitBreakerConfig(failure_threshold=3, reset_timeout=1.0),
            clock=clock,
        )
        failing = AsyncMock(side_effect=ProviderDown("down"))

        for _ in range(3):
            with pytest.raises(ProviderDown):
                await breaker.execute(failing)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.execute(failing)
        assert failing.call_count == 3

        clock.advance(1.1)
        result = await breaker.execute(AsyncMock(return_value="classified"))

        assert result == "classified"
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerConcurrency:
    """Tests for the single-trial HALF_OPEN guarantee."""

    @pytest.mark.asyncio
    async def test_single_trial_in_flight(self, clock):
        """Should admit one trial and reject concurrent callers until it settles."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=5.0),
            clock=clock,
        )
        await trip(breaker, 1)
        clock.advance(5.0)

        release = asyncio.Event()
        calls = []

        async def slow_probe():
            calls.append("probe")
            await release.wait()
            return "recovered"

        trial = asyncio.ensure_future(breaker.execute(slow_probe))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.execute(slow_probe)

        release.set()
        assert await trial == "recovered"
        assert calls == ["probe"]
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_releases(self, clock):
        """Should return to OPEN so a later caller can probe when the trial is cancelled."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=5.0),
            clock=clock,
        )
        await trip(breaker, 1)
        clock.advance(5.0)

        trial = asyncio.ensure_future(breaker.execute(lambda: asyncio.sleep(10)))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert breaker.state == CircuitState.OPEN
        assert await breaker.execute(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_late_success_keeps_circuit_open(self, clock):
        """Should count a success that lands after the circuit opened without closing it."""
        breaker = CircuitBreaker("openai", CircuitBreakerConfig(failure_threshold=1), clock=clock)
        release = asyncio.Event()

        async def slow_call():
            await release.wait()
            return "late"

        pending = asyncio.ensure_future(breaker.execute(slow_call))
        await asyncio.sleep(0)
        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        release.set()
        assert await pending == "late"

        stats = breaker.get_stats()
        assert breaker.state == CircuitState.OPEN
        assert stats.successes == 1
        assert stats.failures == 1

    @pytest.mark.asyncio
    async def test_late_failure_restarts_reset_window(self, clock):
        """Should move last_failure_time forward when a failure lands after the circuit opened."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=5.0),
            clock=clock,
        )
        release = asyncio.Event()

        async def slow_failure():
            await release.wait()
            raise ProviderDown("late 502")

        pending = asyncio.ensure_future(breaker.execute(slow_failure))
        await asyncio.sleep(0)
        await trip(breaker, 1)

        clock.advance(3.0)
        release.set()
        with pytest.raises(ProviderDown):
            await pending

        assert breaker.state == CircuitState.OPEN
        assert breaker.get_stats().last_failure_time == clock.now

        clock.advance(3.0)
        operation = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await breaker.execute(operation)
        assert operation.call_count == 0


class TestCircuitBreakerTimeout:
    """Tests for per-call timeouts."""

    @pytest.mark.asyncio
    async def test_timeout_raises_and_counts(self):
        """Should raise OperationTimeoutError and count it as a failure."""
        breaker = CircuitBreaker("ollama", CircuitBreakerConfig(failure_threshold=1, timeout=0.05))

        with pytest.raises(OperationTimeoutError) as exc_info:
            await breaker.execute(lambda: asyncio.sleep(5))

        assert exc_info.value.timeout == 0.05
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_stats().timeouts == 1

    @pytest.mark.asyncio
    async def test_timeout_cancels_operation(self):
        """Should cancel the slow operation instead of leaving it running."""
        breaker = CircuitBreaker("ollama", CircuitBreakerConfig(timeout=0.05))
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(OperationTimeoutError):
            await breaker.execute(slow)

        await asyncio.wait_for(cancelled.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_fast_operation_within_timeout(self):
        """Should return normally when the operation beats the timeout."""
        breaker = CircuitBreaker("ollama", CircuitBreakerConfig(timeout=1.0))

        assert await breaker.execute(AsyncMock(return_value=42)) == 42
        assert breaker.get_stats().successes == 1

    @pytest.mark.asyncio
    async def test_trial_timeout_reopens(self, clock):
        """Should reopen and restart the reset window when the recovery trial times out."""
        breaker = CircuitBreaker(
            "ollama",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=5.0, timeout=0.05),
            clock=clock,
        )
        await trip(breaker, 1)
        clock.advance(5.0)

        with pytest.raises(OperationTimeoutError):
            await breaker.execute(lambda: asyncio.sleep(5))

        stats = breaker.get_stats()
        assert breaker.state == CircuitState.OPEN
        assert stats.timeouts == 1
        assert stats.last_failure_time == clock.now

        operation = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await breaker.execute(operation)
        assert operation.call_count == 0


class TestCircuitBreakerAdmin:
    """Tests for stats, exclusions and admin overrides."""

    @pytest.mark.asyncio
    async def test_excluded_exceptions_not_counted(self, clock):
        """Should let excluded exceptions through without counting them."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=1, excluded_exceptions=(ValueError,)),
            clock=clock,
        )

        with pytest.raises(ValueError):
            await breaker.execute(AsyncMock(side_effect=ValueError("bad prompt")))

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats().total_failures == 0

    @pytest.mark.asyncio
    async def test_force_open_and_close(self, clock):
        """Should honor admin overrides and keep lifetime counters."""
        breaker = CircuitBreaker("openai", clock=clock)
        await trip(breaker, 2)

        breaker.force_open()
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(AsyncMock())

        breaker.force_close()
        stats = breaker.get_stats()
        assert breaker.state == CircuitState.CLOSED
        assert stats.failures == 0
        assert stats.total_failures == 2
        assert stats.total_requests == 3

    @pytest.mark.asyncio
    async def test_stats_snapshot(self, clock):
        """Should report uptime and failure rate without mutating state."""
        breaker = CircuitBreaker("openai", clock=clock)
        await breaker.execute(AsyncMock(return_value=1))
        await trip(breaker, 1)
        clock.advance(12.5)

        stats = breaker.get_stats()
        assert stats.uptime == pytest.approx(12.5)
        assert stats.failure_rate == pytest.approx(0.5)
        assert stats.to_dict()["state"] == "closed"
        assert breaker.get_stats() == stats

    @pytest.mark.asyncio
    async def test_failure_rate_window(self, clock):
        """Should forget outcomes older than the monitoring period."""
        breaker = CircuitBreaker(
            "openai",
            CircuitBreakerConfig(failure_threshold=10, monitoring_period=60.0),
            clock=clock,
        )
        await trip(breaker, 3)
        clock.advance(61.0)
        await breaker.execute(AsyncMock(return_value=1))

        assert breaker.get_failure_rate() == 0.0

    def test_invalid_config(self):
        """Should reject nonsensical configuration."""
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreakerConfig(timeout=0)


class TestCircuitBreakerDecorator:
    """Tests for the circuit_breaker decorator."""

    @pytest.mark.asyncio
    async def test_decorator_uses_managed_breaker(self, clock):
        """Should route calls through the manager's breaker."""
        manager = CircuitBreakerManager(clock=clock)

        @circuit_breaker(manager, "anthropic")
        async def summarize(text: str) -> str:
            return text.upper()

        assert await summarize("nda") == "NDA"
        assert summarize.breaker is manager.get_circuit_breaker("anthropic")
        assert summarize.breaker.get_stats().successes == 1

    @pytest.mark.asyncio
    async def test_decorator_fallback_on_open(self, clock):
        """Should call the fallback only when the circuit is open."""
        manager = CircuitBreakerManager(clock=clock)
        fallback = AsyncMock(return_value="keyword-match")

        @circuit_breaker(
            manager,
            "legal-bert",
            CircuitBreakerConfig(failure_threshold=1),
            fallback=fallback,
        )
        async def classify(text: str) -> str:
            raise ProviderDown("model unavailable")

        with pytest.raises(ProviderDown):
            await classify("indemnity clause")
        fallback.assert_not_called()

        assert await classify("indemnity clause") == "keyword-match"
        fallback.assert_awaited_once_with("indemnity clause")
