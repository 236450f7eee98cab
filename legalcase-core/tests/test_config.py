"""
Tests for settings and the composition root.
"""

import pytest

from legalcase_core.config import ReliabilitySettings
from legalcase_core.container import build_container


class TestReliabilitySettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        """Should fall back to defaults for unset variables."""
        settings = ReliabilitySettings.from_env({})

        assert settings == ReliabilitySettings()
        assert settings.service_name == "legalcase-api"
        assert settings.cb_failure_threshold == 5

    def test_reads_prefixed_variables(self):
        """Should parse LEGALCASE_* variables."""
        settings = ReliabilitySettings.from_env({
            "LEGALCASE_SERVICE_NAME": "legalcase-worker",
            "LEGALCASE_CB_FAILURE_THRESHOLD": "3",
            "LEGALCASE_CB_RESET_TIMEOUT": "15.5",
            "LEGALCASE_RETRY_MAX_RETRIES": "1",
            "LEGALCASE_POLICY_CACHE_ENABLED": "off",
            "LEGALCASE_LOG_LEVEL": "debug",
            "LEGALCASE_LOG_JSON": "false",
        })

        assert settings.service_name == "legalcase-worker"
        assert settings.cb_failure_threshold == 3
        assert settings.cb_reset_timeout == 15.5
        assert settings.retry_max_retries == 1
        assert settings.policy_cache_enabled is False
        assert settings.log_level == "DEBUG"
        assert settings.log_json is False

    def test_malformed_value(self):
        """Should raise ValueError naming the variable."""
        with pytest.raises(ValueError, match="LEGALCASE_CB_FAILURE_THRESHOLD"):
            ReliabilitySettings.from_env({"LEGALCASE_CB_FAILURE_THRESHOLD": "five"})
        with pytest.raises(ValueError, match="LEGALCASE_LOG_JSON"):
            ReliabilitySettings.from_env({"LEGALCASE_LOG_JSON": "maybe"})

    def test_component_configs(self):
        """Should build breaker and retry configs, with 0 disabling the timeout."""
        settings = ReliabilitySettings(cb_timeout=0, retry_initial_delay=0.5)

        assert settings.circuit_breaker_config().timeout is None
        assert ReliabilitySettings().circuit_breaker_config().timeout == 30.0
        assert settings.retry_config().initial_delay == 0.5


class TestContainer:
    """Tests for build_container."""

    def test_wires_components(self, clock, sleeper):
        """Should construct every component from the settings."""
        settings = ReliabilitySettings(cb_failure_threshold=2, policy_cache_enabled=False)

        container = build_container(settings, clock=clock, sleep=sleeper)

        assert container.settings is settings
        assert container.breakers.get_circuit_breaker("openai").config.failure_threshold == 2
        assert container.policies.cache_enabled is False
        assert container.policies.get_stats()["policies_count"] == 4
        assert container.command_bus.get_registered_commands() == []
        assert container.retry.config.max_retries == 3

    def test_custom_policies(self):
        """Should register only the given policies."""
        container = build_container(ReliabilitySettings(), policies=[])

        assert container.policies.get_stats()["policies_count"] == 0

    def test_independent_containers(self):
        """Should not share registries between containers."""
        first = build_container(ReliabilitySettings())
        second = build_container(ReliabilitySettings())

        assert first.breakers is not second.breakers
        assert first.breakers.get_circuit_breaker("x") is not second.breakers.get_circuit_breaker("x")

    def test_health_router(self):
        """Should build a health router for the container."""
        router = build_container(ReliabilitySettings()).health_router(version="3.0.0")

        assert {route.path for route in router.routes} >= {"/health", "/health/live", "/health/ready"}
