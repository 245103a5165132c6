"""Prometheus metrics for swap outcomes, wallet checks, upstream health and treasury alerts"""

from prometheus_client import Counter, Histogram

# Lifecycle metrics
transaction_counter = Counter(
    "ramp_transactions_total",
    "Swap transactions by direction and resulting status",
    ["direction", "status"],
)

wallet_validation_counter = Counter(
    "ramp_wallet_validation_total",
    "Off-ramp wallet validations",
    ["outcome"],  # ok | token | gas | combined | balance_unavailable | unsupported_token
)

# Upstream metrics
upstream_failure_counter = Counter(
    "ramp_upstream_failures_total",
    "Failed calls to external services",
    ["service"],  # sui_rpc | paystack | price_feed | token_credit | alert_webhook
)

credit_latency_histogram = Histogram(
    "ramp_credit_latency_seconds",
    "Token crediting service response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Treasury
treasury_alert_counter = Counter(
    "ramp_treasury_alerts_total",
    "Treasury alerts created",
    ["type", "severity"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transaction(direction: str, status: str) -> None:
    transaction_counter.labels(direction=direction, status=status).inc()


def record_wallet_validation(failure: str | None) -> None:
    wallet_validation_counter.labels(outcome=failure or "ok").inc()


def record_alerts(alerts) -> None:
    """Count newly created treasury alerts by type and severity"""
    for alert in alerts:
        treasury_alert_counter.labels(type=alert.type.value, severity=alert.severity.value).inc()
