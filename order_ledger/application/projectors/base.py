"""
Projector run loop.

A projector:
1. Reads the whole stream of one aggregate type
2. Groups events by aggregate id and sorts each group by version
3. Folds each group with the SAME fold the command handlers use
4. Hands the final state to a writer that upserts read-model rows

Runs are idempotent: row keys are aggregate ids (or aggregate id + version)
and row timestamps come from event ``created_at``, so projecting the same
events twice writes identical rows. A corrupt group is logged, counted and
skipped; it never stops the run.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from order_ledger.domain.aggregates import replay
from order_ledger.domain.errors import CorruptEventError
from order_ledger.domain.events import EventRecord
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.projection_store import ProjectionStore
from order_ledger.monitoring import metrics

logger = structlog.get_logger(__name__)

# (projection_store, final_state, typed_events, result) -> None
GroupWriter = Callable[[ProjectionStore, Any, Sequence[Any], "ProjectionResult"], Awaitable[None]]


@dataclass
class ProjectionResult:
    aggregate_type: str
    projected: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    cascades: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


def group_by_aggregate(records: Sequence[EventRecord]) -> dict[str, list[EventRecord]]:
    """Group by aggregate id (first-seen order) and sort each group by version."""
    groups: dict[str, list[EventRecord]] = {}
    for record in records:
        groups.setdefault(record.aggregate_id, []).append(record)
    for events in groups.values():
        events.sort(key=lambda e: e.version)
    return groups


async def cascade(
    projection_store: ProjectionStore,
    result: ProjectionResult,
    order_id: str,
    column: str,
    value: str,
    updated_at: Any,
) -> None:
    """
    Best-effort write of one column on the related order row.

    The order module owns that row; if it does not exist yet nothing is
    written and the next run tries again.
    """
    written = await projection_store.update(
        "orders", order_id, {column: value, "updated_at": updated_at}
    )
    if written:
        result.cascades += 1
        metrics.cascade_writes_total.labels(
            aggregate_type=result.aggregate_type, column=column
        ).inc()
    else:
        logger.info(
            "projector.cascade_target_missing",
            aggregate_type=result.aggregate_type,
            order_id=order_id,
            column=column,
        )


async def run_projection(
    event_store: EventStore,
    projection_store: ProjectionStore,
    aggregate_type: str,
    parse: Callable[[EventRecord], Any],
    fold: Callable[[Any, Any], Any],
    write: GroupWriter,
) -> ProjectionResult:
    result = ProjectionResult(aggregate_type=aggregate_type)
    started = time.perf_counter()
    metrics.projector_runs_total.labels(aggregate_type=aggregate_type).inc()

    records = await event_store.get_events_by_aggregate_type(aggregate_type)
    groups = group_by_aggregate(records)
    logger.info(
        "projector.started",
        aggregate_type=aggregate_type,
        events=len(records),
        aggregates=len(groups),
    )

    for aggregate_id, group in groups.items():
        try:
            events = [parse(r) for r in group]
            state = replay(events, fold)
        except CorruptEventError as e:
            result.failed += 1
            result.failed_ids.append(aggregate_id)
            metrics.projector_failures_total.labels(aggregate_type=aggregate_type).inc()
            logger.error(
                "projector.group_failed",
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                version=e.version,
                error=str(e),
            )
            continue

        await write(projection_store, state, events, result)
        result.projected += 1

    duration = time.perf_counter() - started
    metrics.projected_aggregates_total.labels(aggregate_type=aggregate_type).inc(result.projected)
    metrics.projection_duration_seconds.labels(aggregate_type=aggregate_type).observe(duration)
    metrics.projection_last_run_timestamp.labels(
        aggregate_type=aggregate_type
    ).set_to_current_time()

    log = logger.warning if result.failed else logger.info
    log(
        "projector.completed",
        aggregate_type=aggregate_type,
        projected=result.projected,
        failed=result.failed,
        cascades=result.cascades,
        duration_seconds=round(duration, 4),
    )
    return result
