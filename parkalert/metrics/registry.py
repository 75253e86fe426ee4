from __future__ import annotations
from prometheus_client import CollectorRegistry, Counter, Histogram

METRICS_REGISTRY = CollectorRegistry()

ALERTS_SENT = Counter(
    "alerts_sent_total",
    "Alerts persisted by the router",
    ["urgency"],
    registry=METRICS_REGISTRY,
)
ALERT_TRANSITIONS = Counter(
    "alert_transitions_total",
    "Alert status transitions",
    ["status"],
    registry=METRICS_REGISTRY,
)
ABUSE_FLAGS = Counter(
    "abuse_flags_total",
    "Velocity gates and spam reports that flagged an account",
    ["kind"],
    registry=METRICS_REGISTRY,
)
REPUTATION_EVENTS = Counter(
    "reputation_events_total",
    "Ledger entries written",
    ["event_type"],
    registry=METRICS_REGISTRY,
)
PUSH_DELIVERIES = Counter(
    "push_deliveries_total",
    "Push attempts per sink",
    ["sink", "outcome"],
    registry=METRICS_REGISTRY,
)
REQUEST_LATENCY = Histogram(
    "request_latency_seconds",
    "Request processing time in seconds",
    ["route", "method", "status"],
    registry=METRICS_REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def get_metrics() -> dict[str, object]:
    return {
        "registry": METRICS_REGISTRY,
        "alerts_sent": ALERTS_SENT,
        "transitions": ALERT_TRANSITIONS,
        "abuse_flags": ABUSE_FLAGS,
        "reputation_events": REPUTATION_EVENTS,
        "push": PUSH_DELIVERIES,
        "latency": REQUEST_LATENCY,
    }
