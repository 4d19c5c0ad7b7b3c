"""Tests for Prometheus metric definitions and instrumentation."""

from __future__ import annotations

from prometheus_client import REGISTRY

from whitelabel.metrics import (
    certificate_operations_total,
    circuit_breaker_state,
    config_store_lookups_total,
    deployments_in_flight,
    deployments_total,
    retry_attempts_total,
    retry_exhausted_total,
    step_duration_seconds,
    step_executions_total,
    verification_attempts_total,
)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricDefinitions:
    """Counter._name strips '_total'; it is re-added in exported samples."""

    def test_step_metrics(self):
        assert step_duration_seconds._name == "whitelabel_step_duration_seconds"
        assert step_executions_total._name == "whitelabel_step_executions"
        assert set(step_executions_total._labelnames) == {"step_name", "status"}

    def test_deployment_metrics(self):
        assert deployments_total._name == "whitelabel_deployments"
        assert "status" in deployments_total._labelnames
        assert deployments_in_flight._name == "whitelabel_deployments_in_flight"

    def test_domain_metrics(self):
        assert verification_attempts_total._name == "whitelabel_verification_attempts"
        assert "outcome" in verification_attempts_total._labelnames
        assert set(certificate_operations_total._labelnames) == {"operation", "status"}

    def test_config_store_metrics(self):
        assert config_store_lookups_total._name == "whitelabel_config_store_lookups"
        assert "layer" in config_store_lookups_total._labelnames

    def test_retry_metrics(self):
        assert retry_attempts_total._name == "whitelabel_retry_attempts"
        assert retry_exhausted_total._name == "whitelabel_retry_exhausted"
        assert circuit_breaker_state._name == "whitelabel_circuit_breaker_state"


class TestInstrumentation:
    async def test_successful_deployment_counts_steps(self, orchestrator, make_config):
        labels = {"step_name": "template_pack", "status": "success"}
        before = _sample("whitelabel_step_executions_total", labels)
        active_before = _sample("whitelabel_deployments_total", {"status": "active"})

        dep = await orchestrator.create_deployment(make_config())
        await orchestrator.wait_for(dep.id, timeout=5)

        assert _sample("whitelabel_step_executions_total", labels) == before + 1
        assert _sample("whitelabel_deployments_total", {"status": "active"}) == active_before + 1
        assert _sample("whitelabel_deployments_in_flight", {}) == 0

    async def test_skipped_step_counted(self, orchestrator, make_config):
        labels = {"step_name": "domain_setup", "status": "skipped"}
        before = _sample("whitelabel_step_executions_total", labels)

        dep = await orchestrator.create_deployment(make_config())
        await orchestrator.wait_for(dep.id, timeout=5)

        assert _sample("whitelabel_step_executions_total", labels) == before + 1
