"""
Shared command plumbing: load → decide → append → fold.

Every command follows the same steps:
1. Load the aggregate's ordered events (from the newest snapshot if one
   exists) and fold them
2. Check the requested transition against the current status
3. Build the next event at ``version + 1`` and append it; the store
   re-checks the version atomically
4. Fold the new event and return the resulting state

Nothing here writes to read models. Projectors do that later.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from order_ledger.config import Settings, get_settings
from order_ledger.domain.aggregates import Aggregate
from order_ledger.domain.delivery_events import DELIVERY_AGGREGATE, parse_delivery_event
from order_ledger.domain.errors import (
    ConcurrencyConflictError,
    CorruptEventError,
    NotFoundError,
    OrderLedgerError,
    StoreUnavailableError,
    ValidationError,
)
from order_ledger.domain.events import DomainEvent, EventRecord
from order_ledger.domain.payment_events import PAYMENT_AGGREGATE, parse_payment_event
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.snapshot_store import Snapshot, SnapshotStore
from order_ledger.monitoring import metrics

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")
M = TypeVar("M", bound=BaseModel)
A = TypeVar("A", bound=Aggregate)

PARSERS: dict[str, Callable[[EventRecord], Any]] = {
    DELIVERY_AGGREGATE: parse_delivery_event,
    PAYMENT_AGGREGATE: parse_payment_event,
}


def _outcome(error: OrderLedgerError) -> str:
    if isinstance(error, ConcurrencyConflictError):
        return "conflict"
    if isinstance(error, NotFoundError):
        return "not_found"
    if isinstance(error, ValidationError):
        return "invalid"
    if isinstance(error, CorruptEventError):
        return "corrupt"
    if isinstance(error, StoreUnavailableError):
        return "unavailable"
    return "error"


def command_handler(name: str) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Instrument a command: bind ``command`` (and ``correlation_id`` when the
    caller passes one) into the log context, count the outcome, and log
    rejections. Errors are re-raised unchanged.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            context: dict[str, Any] = {"command": name}
            if kwargs.get("correlation_id"):
                context["correlation_id"] = kwargs["correlation_id"]
            with structlog.contextvars.bound_contextvars(**context):
                try:
                    result = await fn(*args, **kwargs)
                except OrderLedgerError as e:
                    outcome = _outcome(e)
                    metrics.commands_total.labels(command=name, outcome=outcome).inc()
                    logger.warning("command.rejected", outcome=outcome, error=str(e))
                    raise
                metrics.commands_total.labels(command=name, outcome="success").inc()
                return result

        return wrapper

    return decorator


def build_model(model_cls: type[M], aggregate_id: str | None = None, **fields: Any) -> M:
    """Validate command input into a payload or value object."""
    try:
        return model_cls(**fields)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(
            f"Invalid {model_cls.__name__}: {problems}", aggregate_id=aggregate_id
        ) from e


def resolve_strict(settings: Settings | None, strict: bool | None) -> tuple[Settings, bool]:
    settings = settings or get_settings()
    return settings, settings.strict_transitions if strict is None else strict


async def load_aggregate(
    event_store: EventStore,
    aggregate_cls: type[A],
    aggregate_id: str,
    snapshot_store: SnapshotStore | None = None,
) -> A:
    """
    Rebuild an aggregate from its stream.

    Raises:
        NotFoundError: the aggregate has no events.
        CorruptEventError: a stored event does not decode or fit the stream.
    """
    aggregate_type = aggregate_cls.aggregate_type
    parse = PARSERS[aggregate_type]

    initial = None
    from_version = 0
    if snapshot_store is not None:
        snapshot = await snapshot_store.get_latest(aggregate_type, aggregate_id)
        if snapshot is not None:
            try:
                initial = aggregate_cls.from_snapshot(snapshot.state)
                from_version = snapshot.version + 1
            except PydanticValidationError as e:
                # Snapshots are a cache; the stream is still complete
                logger.warning(
                    "command.snapshot_unreadable",
                    aggregate_type=aggregate_type,
                    aggregate_id=aggregate_id,
                    snapshot_version=snapshot.version,
                    error=str(e),
                )

    records = await event_store.get_events_for_aggregate(
        aggregate_type, aggregate_id, from_version
    )
    aggregate = aggregate_cls.from_events([parse(r) for r in records], initial)
    if not aggregate.exists:
        raise NotFoundError(aggregate_type, aggregate_id)

    logger.debug(
        "command.aggregate_loaded",
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        version=aggregate.version,
        from_snapshot=initial is not None,
    )
    return aggregate


async def commit(
    event_store: EventStore,
    aggregate: Aggregate,
    event: DomainEvent,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
) -> Any:
    """Append ``event``, fold it, and snapshot on every Nth version."""
    await event_store.append(event)
    state = aggregate.apply_event(event)

    if snapshot_store is not None:
        frequency = (settings or get_settings()).snapshot_frequency
        if frequency and state.version > 0 and state.version % frequency == 0:
            await _save_snapshot(snapshot_store, aggregate.aggregate_type, state)

    logger.info(
        "command.committed",
        aggregate_type=aggregate.aggregate_type,
        aggregate_id=event.aggregate_id,
        event_type=event.type,
        version=state.version,
    )
    return state


async def _save_snapshot(snapshot_store: SnapshotStore, aggregate_type: str, state: Any) -> None:
    # The event is already committed; a lost snapshot only costs load time
    try:
        await snapshot_store.save(
            Snapshot(
                aggregate_id=state.id,
                aggregate_type=aggregate_type,
                version=state.version,
                state=state.model_dump(mode="json"),
            )
        )
    except Exception as e:
        logger.warning(
            "command.snapshot_failed",
            aggregate_type=aggregate_type,
            aggregate_id=state.id,
            version=state.version,
            error=str(e),
        )
        return
    metrics.snapshots_saved_total.labels(aggregate_type=aggregate_type).inc()
