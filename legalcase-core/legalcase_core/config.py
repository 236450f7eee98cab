"""
Reliability Configuration
=========================
Settings for the reliability core, loaded from LEGALCASE_* environment variables.
"""

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from .circuit_breaker import CircuitBreakerConfig
from .retry import RetryConfig

ENV_PREFIX = "LEGALCASE_"

T = TypeVar("T")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


@dataclass
class ReliabilitySettings:
    """Configuration for circuit breakers, retries, policies and logging."""
    service_name: str = "legalcase-api"

    cb_failure_threshold: int = 5
    cb_reset_timeout: float = 60.0
    cb_timeout: float = 30.0                # 0 disables the per-call timeout
    cb_monitoring_period: float = 300.0
    cb_failure_rate_threshold: float = 0.5

    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    policy_cache_enabled: bool = True

    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReliabilitySettings":
        """
        Build settings from the environment.

        Unset variables keep their defaults.

        Raises:
            ValueError: A variable is set but cannot be parsed
        """
        env = os.environ if environ is None else environ

        def read(field_name: str, parse: Callable[[str], T], default: T) -> T:
            key = ENV_PREFIX + field_name.upper()
            raw = env.get(key)
            if raw is None or raw == "":
                return default
            try:
                return parse(raw)
            except ValueError as e:
                raise ValueError(f"invalid value for {key}: {e}") from None

        defaults = cls()
        return cls(
            service_name=read("service_name", str, defaults.service_name),
            cb_failure_threshold=read("cb_failure_threshold", int, defaults.cb_failure_threshold),
            cb_reset_timeout=read("cb_reset_timeout", float, defaults.cb_reset_timeout),
            cb_timeout=read("cb_timeout", float, defaults.cb_timeout),
            cb_monitoring_period=read("cb_monitoring_period", float, defaults.cb_monitoring_period),
            cb_failure_rate_threshold=read(
                "cb_failure_rate_threshold", float, defaults.cb_failure_rate_threshold
            ),
            retry_max_retries=read("retry_max_retries", int, defaults.retry_max_retries),
            retry_initial_delay=read("retry_initial_delay", float, defaults.retry_initial_delay),
            retry_max_delay=read("retry_max_delay", float, defaults.retry_max_delay),
            retry_backoff_multiplier=read(
                "retry_backoff_multiplier", float, defaults.retry_backoff_multiplier
            ),
            policy_cache_enabled=read("policy_cache_enabled", _parse_bool, defaults.policy_cache_enabled),
            log_level=read("log_level", str, defaults.log_level).upper(),
            log_json=read("log_json", _parse_bool, defaults.log_json),
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.cb_failure_threshold,
            reset_timeout=self.cb_reset_timeout,
            timeout=self.cb_timeout if self.cb_timeout > 0 else None,
            monitoring_period=self.cb_monitoring_period,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retry_max_retries,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )
