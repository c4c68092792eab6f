"""
Module: stock_kernel.models.stocktaking
Responsibility: ORM persistence for stocktaking (physical inventory count)
    sessions and their count lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A session is created IN_PROGRESS and leaves that state at most once,
      to COMPLETED or CANCELLED (see domain/lifecycle.py).
    - One line per (session_id, item_id, location_id).
    - expected_quantity is a snapshot taken at start and never rewritten.
    - Lines belong exclusively to their session and are deleted with it.

Failure modes:
    - IntegrityError on a duplicate line key.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString


class StocktakingStatus(str, Enum):
    """Lifecycle status of a stocktaking session.

    Contract: IN_PROGRESS -> COMPLETED | CANCELLED.  Both targets are terminal.
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StocktakingSession(Base):
    """
    One physical inventory count.

    Contract:
        location_id None means the count covers all of the tenant's
        locations.  number is a per-tenant running number shown to
        operators as "#N".
    """

    __tablename__ = "stocktaking_sessions"

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_stocktaking_tenant_number"),
        Index("idx_stocktaking_status", "tenant_id", "status"),
        Index("idx_stocktaking_location", "location_id"),
    )

    number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Scope chosen at start
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    include_zero_stock: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[StocktakingStatus] = mapped_column(
        String(20),
        default=StocktakingStatus.IN_PROGRESS,
        nullable=False,
    )

    started_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[list["StocktakingLine"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<StocktakingSession #{self.number} {self.status}>"


class StocktakingLine(Base):
    """
    Expected vs. counted quantity of one item at one location.

    Contract:
        counted_quantity is None until an operator records a count.  The
        difference is only defined once it is set.
    """

    __tablename__ = "stocktaking_lines"

    __table_args__ = (
        UniqueConstraint(
            "session_id", "item_id", "location_id", name="uq_stocktaking_line_key"
        ),
        Index("idx_stocktaking_line_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stocktaking_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    counted_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    counted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    counted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    session: Mapped[StocktakingSession] = relationship(back_populates="lines")

    @property
    def is_counted(self) -> bool:
        return self.counted_quantity is not None

    @property
    def difference(self) -> int | None:
        """counted - expected, or None while uncounted."""
        if self.counted_quantity is None:
            return None
        return self.counted_quantity - self.expected_quantity

    def __repr__(self) -> str:
        return (
            f"<StocktakingLine item={self.item_id} expected={self.expected_quantity} "
            f"counted={self.counted_quantity}>"
        )
