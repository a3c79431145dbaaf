"""
Snapshot store.

A snapshot is the folded state of one aggregate at one version. Loading an
aggregate with many events starts from the newest snapshot and folds only
the events after it. Snapshots are a cache: deleting them all changes
nothing but load time.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_ledger.database.models import SnapshotRow
from order_ledger.domain.events import utc_now
from order_ledger.infrastructure.sql_event_store import translate_db_errors


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    aggregate_id: str
    aggregate_type: str
    version: int = Field(ge=0)
    state: dict[str, Any]
    created_at: datetime = Field(default_factory=utc_now)


class SnapshotStore(Protocol):
    async def save(self, snapshot: Snapshot) -> None: ...

    async def get_latest(self, aggregate_type: str, aggregate_id: str) -> Snapshot | None: ...


class InMemorySnapshotStore:
    def __init__(self) -> None:
        self._snapshots: dict[tuple[str, str], list[Snapshot]] = {}

    async def save(self, snapshot: Snapshot) -> None:
        key = (snapshot.aggregate_type, snapshot.aggregate_id)
        self._snapshots.setdefault(key, []).append(snapshot)

    async def get_latest(self, aggregate_type: str, aggregate_id: str) -> Snapshot | None:
        snapshots = self._snapshots.get((aggregate_type, aggregate_id))
        if not snapshots:
            return None
        return max(snapshots, key=lambda s: s.version)


class SqlSnapshotStore:
    """SnapshotStore over the ``snapshots`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def save(self, snapshot: Snapshot) -> None:
        async with translate_db_errors("save_snapshot"):
            async with self.session_factory() as session, session.begin():
                session.add(
                    SnapshotRow(
                        id=snapshot.id,
                        aggregate_id=snapshot.aggregate_id,
                        aggregate_type=snapshot.aggregate_type,
                        version=snapshot.version,
                        state=snapshot.state,
                        created_at=snapshot.created_at,
                    )
                )

    async def get_latest(self, aggregate_type: str, aggregate_id: str) -> Snapshot | None:
        stmt = (
            select(SnapshotRow)
            .where(
                SnapshotRow.aggregate_type == aggregate_type,
                SnapshotRow.aggregate_id == aggregate_id,
            )
            .order_by(SnapshotRow.version.desc())
            .limit(1)
        )
        async with translate_db_errors("get_latest_snapshot"):
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalars().first()
        if row is None:
            return None
        return Snapshot(
            id=row.id,
            aggregate_id=row.aggregate_id,
            aggregate_type=row.aggregate_type,
            version=row.version,
            state=row.state,
            created_at=row.created_at,
        )
