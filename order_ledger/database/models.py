"""SQLAlchemy database models for the order ledger."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
SequenceType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class EventRow(Base):
    """
    Append-only event log.

    UNIQUE(aggregate_id, version) is what makes a racing writer fail instead
    of silently producing a duplicate version. ``sequence`` records insertion
    order across aggregates. Rows are never updated or deleted.
    """

    __tablename__ = "events"

    sequence: Mapped[int] = mapped_column(SequenceType, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("aggregate_id", "version", name="uq_events_aggregate_version"),
        Index("idx_events_aggregate", "aggregate_type", "aggregate_id", "version"),
        Index("idx_events_type", "type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventRow(aggregate_id={self.aggregate_id}, "
            f"type={self.type}, version={self.version})>"
        )


class SnapshotRow(Base):
    """Folded aggregate state at a given version. Disposable; events win."""

    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_snapshots_aggregate", "aggregate_type", "aggregate_id", "version"),
    )


# ============================================================================
# READ MODELS (written only by projectors)
# ============================================================================


class DeliveryRow(Base):
    __tablename__ = "deliveries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    delivery_person_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    current_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_delivery_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    actual_delivery_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class DeliveryLocationRow(Base):
    """One row per location ping, keyed ``{delivery_id}_{version}``."""

    __tablename__ = "delivery_locations"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    delivery_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PaymentRow(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    charge_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_metadata: Mapped[Dict[str, Any] | None] = mapped_column(
        "metadata", JsonType, nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_payments_order_status", "order_id", "status"),)


class OrderRow(Base):
    """
    Orders are owned by the order module.

    Projectors only cascade ``status``, ``payment_status`` and ``updated_at``.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    payment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# Read-model table name → ORM class, used by SqlProjectionStore
READ_MODELS: dict[str, type[Base]] = {
    DeliveryRow.__tablename__: DeliveryRow,
    DeliveryLocationRow.__tablename__: DeliveryLocationRow,
    PaymentRow.__tablename__: PaymentRow,
    OrderRow.__tablename__: OrderRow,
}
