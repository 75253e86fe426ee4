# parkalert/metrics/__init__.py
"""
Thin re-export layer; every collector lives in parkalert.metrics.registry
so `from parkalert.metrics import ...` always hits the same instances.
"""
from .registry import (
    METRICS_REGISTRY,
    ALERTS_SENT,
    ALERT_TRANSITIONS,
    ABUSE_FLAGS,
    REPUTATION_EVENTS,
    PUSH_DELIVERIES,
    REQUEST_LATENCY,
    get_metrics,
)

__all__ = [
    "METRICS_REGISTRY",
    "ALERTS_SENT",
    "ALERT_TRANSITIONS",
    "ABUSE_FLAGS",
    "REPUTATION_EVENTS",
    "PUSH_DELIVERIES",
    "REQUEST_LATENCY",
    "get_metrics",
]
