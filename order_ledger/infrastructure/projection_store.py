"""
Projection store: where read-model rows live.

Projectors are the only writers. Rows are plain dicts keyed by column name,
so the same projector code runs against memory (tests) and SQL.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol

from sqlalchemy import inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_ledger.database.models import READ_MODELS, Base
from order_ledger.infrastructure.sql_event_store import translate_db_errors

Row = dict[str, Any]


class ProjectionStore(Protocol):
    async def upsert(self, table: str, row: Row, key: str = "id") -> None:
        """Insert ``row`` or replace the existing row with the same key."""
        ...

    async def update(self, table: str, key: Any, values: Row) -> bool:
        """
        Set ``values`` on an existing row.

        Returns False (and writes nothing) if the row does not exist.
        """
        ...

    async def get(self, table: str, key: Any) -> Row | None: ...

    async def all(self, table: str) -> list[Row]: ...


class InMemoryProjectionStore:
    def __init__(self) -> None:
        self._tables: dict[str, dict[Any, Row]] = {}

    async def upsert(self, table: str, row: Row, key: str = "id") -> None:
        self._tables.setdefault(table, {})[row[key]] = copy.deepcopy(row)

    async def update(self, table: str, key: Any, values: Row) -> bool:
        row = self._tables.get(table, {}).get(key)
        if row is None:
            return False
        row.update(copy.deepcopy(values))
        return True

    async def get(self, table: str, key: Any) -> Row | None:
        row = self._tables.get(table, {}).get(key)
        return copy.deepcopy(row) if row is not None else None

    async def all(self, table: str) -> list[Row]:
        return [copy.deepcopy(row) for row in self._tables.get(table, {}).values()]


class SqlProjectionStore:
    """ProjectionStore over the read-model tables in database.models."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _model(table: str) -> type[Base]:
        try:
            return READ_MODELS[table]
        except KeyError:
            raise ValueError(f"Unknown read-model table: {table}") from None

    @staticmethod
    def _columns(model: type[Base]) -> dict[str, str]:
        """Column name → mapped attribute name (they differ for ``metadata``)."""
        return {col.name: attr for attr, col in inspect(model).columns.items()}

    def _to_attrs(self, model: type[Base], row: Row) -> dict[str, Any]:
        columns = self._columns(model)
        return {columns[name]: value for name, value in row.items() if name in columns}

    def _to_row(self, obj: Base) -> Row:
        columns = self._columns(type(obj))
        return {name: getattr(obj, attr) for name, attr in columns.items()}

    async def upsert(self, table: str, row: Row, key: str = "id") -> None:
        model = self._model(table)
        async with translate_db_errors(f"upsert:{table}"):
            async with self.session_factory() as session, session.begin():
                await session.merge(model(**self._to_attrs(model, row)))

    async def update(self, table: str, key: Any, values: Row) -> bool:
        model = self._model(table)
        pk = inspect(model).primary_key[0]
        async with translate_db_errors(f"update:{table}"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    update(model).where(pk == key).values(**self._to_attrs(model, values))
                )
        return result.rowcount > 0

    async def get(self, table: str, key: Any) -> Row | None:
        model = self._model(table)
        async with translate_db_errors(f"get:{table}"):
            async with self.session_factory() as session:
                obj = await session.get(model, key)
        return self._to_row(obj) if obj is not None else None

    async def all(self, table: str) -> list[Row]:
        model = self._model(table)
        pk = inspect(model).primary_key[0]
        async with translate_db_errors(f"all:{table}"):
            async with self.session_factory() as session:
                objs = (await session.execute(select(model).order_by(pk))).scalars().all()
        return [self._to_row(obj) for obj in objs]
