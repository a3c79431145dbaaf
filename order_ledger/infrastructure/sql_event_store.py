"""
SQL event storage (SQLAlchemy async).

Atomicity of the conditional append comes from two layers:
1. count + insert run inside one transaction
2. UNIQUE(aggregate_id, version) rejects the loser of a race that slips
   between the count and the insert

Either way the caller sees ConcurrencyConflictError.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_ledger.database.models import EventRow
from order_ledger.domain.errors import (
    ConcurrencyConflictError,
    CorruptEventError,
    StoreUnavailableError,
)
from order_ledger.domain.events import EventRecord

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def translate_db_errors(operation: str) -> AsyncIterator[None]:
    """Map driver connectivity failures to StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise StoreUnavailableError(f"{operation} failed: {e.orig or e}") from e


def _to_record(row: EventRow) -> EventRecord:
    try:
        return EventRecord(
            id=row.id,
            aggregate_id=row.aggregate_id,
            aggregate_type=row.aggregate_type,
            type=row.type,
            version=row.version,
            payload=row.payload,
            metadata=row.event_metadata or {},
            created_at=row.created_at,
        )
    except PydanticValidationError as e:
        raise CorruptEventError(
            f"Malformed event row {row.id} for {row.aggregate_id}",
            aggregate_id=row.aggregate_id,
            version=row.version,
        ) from e


class SqlEventStorage:
    """EventStorageBackend over the ``events`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _count(self, session: AsyncSession, aggregate_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(EventRow).where(EventRow.aggregate_id == aggregate_id)
        )
        return int(result.scalar_one())

    async def append_event(self, record: EventRecord) -> EventRecord:
        async with translate_db_errors("append_event"):
            try:
                async with self.session_factory() as session, session.begin():
                    current_version = await self._count(session, record.aggregate_id)
                    if record.version != current_version:
                        raise ConcurrencyConflictError(
                            record.aggregate_id, record.version, current_version
                        )
                    session.add(
                        EventRow(
                            id=record.id,
                            aggregate_id=record.aggregate_id,
                            aggregate_type=record.aggregate_type,
                            type=record.type,
                            version=record.version,
                            payload=record.payload,
                            event_metadata=record.metadata,
                            created_at=record.created_at,
                        )
                    )
            except IntegrityError as e:
                # Lost the race between count and insert
                async with self.session_factory() as session:
                    current_version = await self._count(session, record.aggregate_id)
                logger.debug(
                    "sql_event_store.unique_violation",
                    aggregate_id=record.aggregate_id,
                    version=record.version,
                )
                raise ConcurrencyConflictError(
                    record.aggregate_id, record.version, current_version
                ) from e
        return record

    async def get_events(
        self, aggregate_type: str, aggregate_id: str, from_version: int = 0
    ) -> list[EventRecord]:
        stmt = (
            select(EventRow)
            .where(
                EventRow.aggregate_type == aggregate_type,
                EventRow.aggregate_id == aggregate_id,
            )
            .order_by(EventRow.version)
        )
        # A full read must see out-of-range rows so they surface as corrupt
        if from_version > 0:
            stmt = stmt.where(EventRow.version >= from_version)
        return await self._fetch(stmt, "get_events")

    async def get_events_by_aggregate_type(self, aggregate_type: str) -> list[EventRecord]:
        stmt = (
            select(EventRow)
            .where(EventRow.aggregate_type == aggregate_type)
            .order_by(EventRow.sequence)
        )
        return await self._fetch(stmt, "get_events_by_aggregate_type")

    async def get_events_by_type(self, event_type: str) -> list[EventRecord]:
        stmt = select(EventRow).where(EventRow.type == event_type).order_by(EventRow.sequence)
        return await self._fetch(stmt, "get_events_by_type")

    async def count_events(self, aggregate_type: str, aggregate_id: str) -> int:
        async with translate_db_errors("count_events"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count())
                    .select_from(EventRow)
                    .where(
                        EventRow.aggregate_type == aggregate_type,
                        EventRow.aggregate_id == aggregate_id,
                    )
                )
                return int(result.scalar_one())

    async def _fetch(self, stmt, operation: str) -> list[EventRecord]:
        async with translate_db_errors(operation):
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(row) for row in rows]
