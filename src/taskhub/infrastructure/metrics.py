"""Prometheus metrics for the user and task lifecycle and for event delivery."""
from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram

REGISTRY = CollectorRegistry()

OPERATION_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)

# ============================================================================
# Domain operations
# ============================================================================

user_operations_total = Counter(
    "user_operations_total",
    "Total number of committed user mutations",
    ["operation"],  # created, updated, deleted
    registry=REGISTRY,
)

task_operations_total = Counter(
    "task_operations_total",
    "Total number of committed task mutations",
    ["operation"],  # created, updated, deleted
    registry=REGISTRY,
)

operation_duration_seconds = Histogram(
    "operation_duration_seconds",
    "Duration of user and task mutations, including the outbox write",
    ["entity", "operation"],
    buckets=OPERATION_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# ============================================================================
# Outbox publisher
# ============================================================================

outbox_published_total = Counter(
    "outbox_published_total",
    "Total number of outbox events acknowledged by the broker",
    ["topic"],
    registry=REGISTRY,
)

outbox_send_failures_total = Counter(
    "outbox_send_failures_total",
    "Total number of failed outbox sends",
    ["topic", "outcome"],  # outcome: retry, failed
    registry=REGISTRY,
)

outbox_stale_released_total = Counter(
    "outbox_stale_released_total",
    "Total number of PROCESSING outbox rows released by the watchdog",
    registry=REGISTRY,
)

# ============================================================================
# Inbound delivery
# ============================================================================

messages_dead_lettered_total = Counter(
    "messages_dead_lettered_total",
    "Total number of inbound messages moved to a dead-letter topic",
    ["topic"],
    registry=REGISTRY,
)
