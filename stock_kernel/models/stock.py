"""
Module: stock_kernel.models.stock
Responsibility: ORM persistence for stock balances and the append-only stock
    movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One StockBalance row per (tenant_id, item_id, location_id).
    - StockBalance.quantity equals the sum of signed_delta over every
      StockMovement with the same key.  StockLedger maintains this; the
      selector's verify_ledger_integrity() checks it.
    - StockMovement rows are append-only: UPDATE and DELETE are rejected by
      ORM listeners (db/immutability.py).
    - StockMovement.quantity is strictly positive; the direction lives in
      movement_type and signed_delta.

Failure modes:
    - IntegrityError on duplicate balance keys or duplicate movement seq.
    - ImmutabilityViolationError on any UPDATE/DELETE of a movement.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Kind of stock movement.

    Contract: receipts only add stock, issues only remove it, adjustments
    go either way (stocktaking reconciliation).
    """

    RECEIPT = "receipt"
    ISSUE = "issue"
    ADJUSTMENT = "adjustment"


class StockBalance(Base):
    """
    Current quantity of one item at one location, in pieces.

    Contract:
        Only StockLedger.apply_delta() writes this table.  The row is created
        at 0 the first time a movement touches the key.
    """

    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "item_id", "location_id", name="uq_stock_balance_key"
        ),
        Index("idx_stock_balance_location", "tenant_id", "location_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StockBalance item={self.item_id} location={self.location_id} qty={self.quantity}>"


class StockMovement(Base):
    """
    Immutable ledger row for one change of a stock balance.

    Contract:
        quantity is unsigned; signed_delta is +quantity for upward movements
        and -quantity for downward ones.  stocktaking_id links adjustments to
        the stocktaking session that produced them.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("idx_movement_key", "tenant_id", "item_id", "location_id"),
        Index("idx_movement_type", "movement_type"),
        Index("idx_movement_stocktaking", "stocktaking_id"),
        Index("idx_movement_occurred", "occurred_on"),
    )

    # Monotonic ledger order
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    signed_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    recorded_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    stocktaking_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stocktaking_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<StockMovement #{self.seq} {self.movement_type} {self.signed_delta:+d}>"
