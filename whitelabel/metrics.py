"""Prometheus metric definitions for white-label provisioning."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# --- Step execution ---

step_duration_seconds = Histogram(
    "whitelabel_step_duration_seconds",
    "Time spent executing a provisioning step",
    labelnames=["step_name"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 900),
)

step_executions_total = Counter(
    "whitelabel_step_executions_total",
    "Total provisioning step executions",
    labelnames=["step_name", "status"],
)

# --- Deployments ---

deployments_total = Counter(
    "whitelabel_deployments_total",
    "Deployments created or transitioned",
    labelnames=["status"],
)

deployments_in_flight = Gauge(
    "whitelabel_deployments_in_flight",
    "Deployments with a running provisioning task",
)

# --- Domains ---

verification_attempts_total = Counter(
    "whitelabel_verification_attempts_total",
    "Domain verification attempts",
    labelnames=["outcome"],
)

certificate_operations_total = Counter(
    "whitelabel_certificate_operations_total",
    "Certificate provider operations",
    labelnames=["operation", "status"],
)

# --- Config store ---

config_store_lookups_total = Counter(
    "whitelabel_config_store_lookups_total",
    "Config store lookups by the layer that answered",
    labelnames=["layer"],
)

# --- Retry ---

retry_attempts_total = Counter(
    "whitelabel_retry_attempts_total",
    "Total provider retry attempts",
    labelnames=["fn_name"],
)

retry_exhausted_total = Counter(
    "whitelabel_retry_exhausted_total",
    "Total times provider retries were exhausted",
    labelnames=["fn_name"],
)

# --- Circuit breaker ---

circuit_breaker_state = Gauge(
    "whitelabel_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half-open)",
    labelnames=["name"],
)
