"""Prometheus metrics for review outcomes, ledger activity and the fund balance"""

from decimal import Decimal
from prometheus_client import Counter, Histogram, Gauge

# Review metrics
decision_counter = Counter(
    "welfare_decision_total",
    "Accepted review decisions",
    ["track", "new_state"],  # fast|board x boardReviewed|approved|rejected
)

decision_rejection_counter = Counter(
    "welfare_decision_refused_total",
    "Decisions refused by validation, by error kind",
    ["kind"],
)

finalization_failure_counter = Counter(
    "welfare_finalization_failures_total",
    "Approvals rolled back because the ledger write failed",
)

# Ledger metrics
ledger_entry_counter = Counter(
    "welfare_ledger_entries_total",
    "Ledger entries written",
    ["direction"],
)

fund_balance_gauge = Gauge(
    "welfare_fund_balance",
    "Last materialized welfare fund balance",
)

balance_recompute_histogram = Histogram(
    "welfare_balance_recompute_seconds",
    "Time spent holding the balance lock",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

balance_drift_counter = Counter(
    "welfare_balance_drift_total",
    "Reconciliations that found the cached balance out of date",
)

# Notifier metrics
notification_failure_counter = Counter(
    "welfare_notification_failures_total",
    "Notifications that could not be delivered",
)

notification_latency_histogram = Histogram(
    "welfare_notification_latency_seconds",
    "Notifier webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(track: str, new_state: str) -> None:
    decision_counter.labels(track=track, new_state=new_state).inc()


def record_balance(balance: Decimal) -> None:
    fund_balance_gauge.set(float(balance))
