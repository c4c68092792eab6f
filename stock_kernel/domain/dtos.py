"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that leave the service and
    selector layers: stocktaking scope (input), session and line views,
    ledger movement records, the completion summary and read-side
    aggregates.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Services and selectors return DTOs, never ORM entities.
    - StockMovementRecord.quantity is positive; signed_delta carries the sign.

Failure modes:
    - ValidationError on StocktakingScope built with a non-bool include_zero_stock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.domain.units import QuantityUnit
from stock_kernel.exceptions import ValidationError
from stock_kernel.models.stock import MovementType
from stock_kernel.models.stocktaking import StocktakingStatus

if TYPE_CHECKING:
    from stock_kernel.models.stock import StockMovement as StockMovementModel
    from stock_kernel.models.stocktaking import (
        StocktakingLine as StocktakingLineModel,
    )
    from stock_kernel.models.stocktaking import (
        StocktakingSession as StocktakingSessionModel,
    )


@dataclass(frozen=True)
class StocktakingScope:
    """
    What a new stocktaking covers.

    Contract:
        location_id None means all of the tenant's locations.  category_id
        None means every category.  Items with zero expected stock are left
        out unless include_zero_stock is set.
    """

    location_id: UUID | None = None
    category_id: UUID | None = None
    include_zero_stock: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.include_zero_stock, bool):
            raise ValidationError(field="include_zero_stock", reason="must be a bool")


@dataclass(frozen=True)
class ReceiptLine:
    """One line of a bulk receipt.  Quantities default to whole packages."""

    item_id: UUID
    quantity: int | Decimal
    unit: QuantityUnit = QuantityUnit.PACKAGES


@dataclass(frozen=True)
class MovementMetadata:
    """Descriptive fields attached to a ledger movement."""

    movement_type: MovementType
    occurred_on: date
    recorded_by: UUID
    note: str | None = None
    stocktaking_id: UUID | None = None


@dataclass(frozen=True)
class StockMovementRecord:
    """Read-only view of one ledger movement."""

    id: UUID
    seq: int
    tenant_id: UUID
    item_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity: int
    signed_delta: int
    occurred_on: date
    recorded_by: UUID
    recorded_at: datetime
    note: str | None = None
    stocktaking_id: UUID | None = None
    balance_after: int | None = None

    @classmethod
    def from_model(
        cls, model: StockMovementModel, balance_after: int | None = None
    ) -> StockMovementRecord:
        return cls(
            id=model.id,
            seq=model.seq,
            tenant_id=model.tenant_id,
            item_id=model.item_id,
            location_id=model.location_id,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            signed_delta=model.signed_delta,
            occurred_on=model.occurred_on,
            recorded_by=model.recorded_by,
            recorded_at=model.recorded_at,
            note=model.note,
            stocktaking_id=model.stocktaking_id,
            balance_after=balance_after,
        )


@dataclass(frozen=True)
class StocktakingSessionInfo:
    """Read-only view of a stocktaking session."""

    id: UUID
    number: int
    tenant_id: UUID
    location_id: UUID | None
    category_id: UUID | None
    include_zero_stock: bool
    status: StocktakingStatus
    started_by: UUID
    started_at: datetime
    line_count: int
    completed_by: UUID | None = None
    completed_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None

    @property
    def label(self) -> str:
        return f"#{self.number}"

    @classmethod
    def from_model(
        cls, model: StocktakingSessionModel, line_count: int | None = None
    ) -> StocktakingSessionInfo:
        return cls(
            id=model.id,
            number=model.number,
            tenant_id=model.tenant_id,
            location_id=model.location_id,
            category_id=model.category_id,
            include_zero_stock=model.include_zero_stock,
            status=StocktakingStatus(model.status),
            started_by=model.started_by,
            started_at=model.started_at,
            line_count=len(model.lines) if line_count is None else line_count,
            completed_by=model.completed_by,
            completed_at=model.completed_at,
            cancelled_by=model.cancelled_by,
            cancelled_at=model.cancelled_at,
        )


@dataclass(frozen=True)
class StocktakingLineInfo:
    """
    Read-only view of one count line.

    Item fields are denormalized for display; counted_packages is derived
    from the item's pieces_per_package.
    """

    id: UUID
    session_id: UUID
    item_id: UUID
    location_id: UUID | None
    expected_quantity: int
    counted_quantity: int | None
    note: str | None = None
    counted_by: UUID | None = None
    counted_at: datetime | None = None
    item_code: str | None = None
    item_name: str | None = None
    unit: str | None = None
    counted_packages: Decimal | None = None

    @property
    def is_counted(self) -> bool:
        return self.counted_quantity is not None

    @property
    def difference(self) -> int | None:
        if self.counted_quantity is None:
            return None
        return self.counted_quantity - self.expected_quantity

    @classmethod
    def from_model(
        cls,
        model: StocktakingLineModel,
        item_code: str | None = None,
        item_name: str | None = None,
        unit: str | None = None,
        counted_packages: Decimal | None = None,
    ) -> StocktakingLineInfo:
        return cls(
            id=model.id,
            session_id=model.session_id,
            item_id=model.item_id,
            location_id=model.location_id,
            expected_quantity=model.expected_quantity,
            counted_quantity=model.counted_quantity,
            note=model.note,
            counted_by=model.counted_by,
            counted_at=model.counted_at,
            item_code=item_code,
            item_name=item_name,
            unit=unit,
            counted_packages=counted_packages,
        )


@dataclass(frozen=True)
class CompletionSummary:
    """
    Outcome of reconciling a stocktaking.

    Guarantees:
        - len(movement_ids) == lines_adjusted.
        - total_absolute_difference sums |counted - expected| over the
          adjusted lines only.
    """

    session_id: UUID
    lines_adjusted: int
    total_absolute_difference: int
    lines_skipped_uncounted: int
    lines_skipped_no_location: int
    movement_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProgressInfo:
    """Counting progress of one stocktaking."""

    total: int
    counted: int
    with_difference: int

    @property
    def remaining(self) -> int:
        return self.total - self.counted

    @property
    def percent(self) -> int:
        """Whole percent counted, rounded down; 0 for an empty session."""
        if self.total == 0:
            return 0
        return self.counted * 100 // self.total


@dataclass(frozen=True)
class SessionOverview:
    """A session row in the stocktaking list with aggregate line figures."""

    session: StocktakingSessionInfo
    total_lines: int
    counted_lines: int
    total_absolute_difference: int


@dataclass(frozen=True)
class StockBalanceInfo:
    tenant_id: UUID
    item_id: UUID
    location_id: UUID
    quantity: int


@dataclass(frozen=True)
class BalanceMismatch:
    """A balance key whose stored quantity disagrees with its movements."""

    item_id: UUID
    location_id: UUID
    stored_quantity: int
    movement_total: int

    @property
    def drift(self) -> int:
        return self.stored_quantity - self.movement_total
