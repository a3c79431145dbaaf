"""
Prometheus metrics for the event-sourcing core.

Tracks:
- Events appended by aggregate and event type
- Optimistic concurrency conflicts
- Command outcomes
- Projector runs, projected aggregates and skipped corrupt streams
- Projection duration
"""
from prometheus_client import Counter, Gauge, Histogram

# Event store metrics
events_appended_total = Counter(
    "order_ledger_events_appended_total",
    "Total number of events appended to the event store",
    ["aggregate_type", "event_type"],
)

concurrency_conflicts_total = Counter(
    "order_ledger_concurrency_conflicts_total",
    "Total appends rejected by the optimistic concurrency check",
    ["aggregate_type"],
)

store_unavailable_total = Counter(
    "order_ledger_store_unavailable_total",
    "Total store operations that failed with a connectivity error",
    ["operation"],
)

# Command metrics
commands_total = Counter(
    "order_ledger_commands_total",
    "Total commands executed",
    ["command", "outcome"],  # outcome: success, conflict, not_found, invalid, error
)

snapshots_saved_total = Counter(
    "order_ledger_snapshots_saved_total",
    "Total aggregate snapshots saved",
    ["aggregate_type"],
)

# Projector metrics
projector_runs_total = Counter(
    "order_ledger_projector_runs_total",
    "Total projector runs",
    ["aggregate_type"],
)

projected_aggregates_total = Counter(
    "order_ledger_projected_aggregates_total",
    "Total aggregates written to read models",
    ["aggregate_type"],
)

projector_failures_total = Counter(
    "order_ledger_projector_failures_total",
    "Total aggregate groups skipped because their stream was corrupt",
    ["aggregate_type"],
)

cascade_writes_total = Counter(
    "order_ledger_cascade_writes_total",
    "Total cascade updates written to related order rows",
    ["aggregate_type", "column"],
)

projection_duration_seconds = Histogram(
    "order_ledger_projection_duration_seconds",
    "Projector run duration in seconds",
    ["aggregate_type"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

projection_last_run_timestamp = Gauge(
    "order_ledger_projection_last_run_timestamp",
    "Timestamp of the last completed projector run",
    ["aggregate_type"],
)
