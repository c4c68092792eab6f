"""
StocktakingService -- the count lifecycle of a physical inventory.

Responsibility:
    Starts a stocktaking against a point-in-time snapshot of expected
    quantities, records operator counts on its lines and cancels it.
    Completion lives in ReconciliationEngine.

Architecture position:
    Kernel > Services.  Reads StockBalance directly for the snapshot; never
    writes to the ledger.

Invariants enforced:
    - Lifecycle transitions are checked against domain/lifecycle.py before
      any write.
    - expected_quantity is captured once at start.
    - One line per (session, item, location).
    - Count capture is last-write-wins; no version check on lines.

Failure modes:
    - EmptyScopeError: the scope matched no lines; nothing is persisted.
    - NotFoundError: location, category, session or line outside the tenant.
    - InvalidStateError: count or cancel on a finalized session.
    - ValidationError: negative or non-integer count.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select

from stock_kernel.domain import lifecycle
from stock_kernel.domain.dtos import (
    StocktakingLineInfo,
    StocktakingScope,
    StocktakingSessionInfo,
)
from stock_kernel.domain.units import QuantityUnit, pieces_to_packages, to_pieces
from stock_kernel.exceptions import EmptyScopeError, NotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Category, Item, Location
from stock_kernel.models.stock import StockBalance
from stock_kernel.models.stocktaking import (
    StocktakingLine,
    StocktakingSession,
    StocktakingStatus,
)
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stocktaking")


def load_session_for_update(db_session, tenant_id: UUID, session_id: UUID) -> StocktakingSession:
    """
    Load a stocktaking session row locked for the rest of the transaction.

    Raises:
        NotFoundError: Missing, or owned by another tenant.
    """
    stocktaking = db_session.execute(
        select(StocktakingSession)
        .where(StocktakingSession.id == session_id)
        .with_for_update()
    ).scalar_one_or_none()
    if stocktaking is None or stocktaking.tenant_id != tenant_id:
        raise NotFoundError("StocktakingSession", session_id, tenant_id)
    return stocktaking


class StocktakingService(BaseService):
    """
    Start, count and cancel stocktakings.

    Non-goals:
        - Does NOT commit and does NOT write audit events.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def _snapshot_at_location(self, tenant_id: UUID, location_id: UUID, category_id: UUID | None):
        """(item, location_id, expected) for every active item at one location."""
        stmt = (
            select(Item, func.coalesce(StockBalance.quantity, 0))
            .outerjoin(
                StockBalance,
                and_(
                    StockBalance.item_id == Item.id,
                    StockBalance.tenant_id == tenant_id,
                    StockBalance.location_id == location_id,
                ),
            )
            .where(Item.tenant_id == tenant_id)
            .where(Item.is_active.is_(True))
            .order_by(Item.name, Item.code)
        )
        if category_id is not None:
            stmt = stmt.where(Item.category_id == category_id)
        return [(item, location_id, int(qty)) for item, qty in self.session.execute(stmt)]

    def _snapshot_all_locations(self, tenant_id: UUID, category_id: UUID | None):
        """
        (item, home_location_id, expected) with expected summed over all locations.

        A home location that is missing or owned by another tenant resolves
        to None; such lines are skipped at completion.
        """
        totals = (
            select(
                StockBalance.item_id,
                func.sum(StockBalance.quantity).label("total"),
            )
            .where(StockBalance.tenant_id == tenant_id)
            .group_by(StockBalance.item_id)
            .subquery()
        )
        stmt = (
            select(Item, Location.id, func.coalesce(totals.c.total, 0))
            .outerjoin(totals, totals.c.item_id == Item.id)
            .outerjoin(
                Location,
                and_(
                    Location.id == Item.home_location_id,
                    Location.tenant_id == tenant_id,
                ),
            )
            .where(Item.tenant_id == tenant_id)
            .where(Item.is_active.is_(True))
            .order_by(Item.name, Item.code)
        )
        if category_id is not None:
            stmt = stmt.where(Item.category_id == category_id)
        return [
            (item, home_location_id, int(qty))
            for item, home_location_id, qty in self.session.execute(stmt)
        ]

    def start(
        self,
        tenant_id: UUID,
        operator_id: UUID,
        scope: StocktakingScope,
    ) -> StocktakingSessionInfo:
        """
        Open a stocktaking over ``scope`` with a snapshot of expected stock.

        Postconditions:
            - One IN_PROGRESS session with a fresh per-tenant number.
            - One line per matching item; zero-stock items only when
              scope.include_zero_stock.

        Raises:
            NotFoundError: scope location or category outside the tenant.
            EmptyScopeError: no line would be created.
        """
        if scope.location_id is not None:
            self._get_tenant_scoped(Location, scope.location_id, tenant_id)
        if scope.category_id is not None:
            self._get_tenant_scoped(Category, scope.category_id, tenant_id)

        if scope.location_id is not None:
            snapshot = self._snapshot_at_location(tenant_id, scope.location_id, scope.category_id)
        else:
            snapshot = self._snapshot_all_locations(tenant_id, scope.category_id)

        if not scope.include_zero_stock:
            snapshot = [row for row in snapshot if row[2] != 0]

        if not snapshot:
            logger.info(
                "stocktaking_scope_empty",
                extra={
                    "location_id": str(scope.location_id) if scope.location_id else None,
                    "category_id": str(scope.category_id) if scope.category_id else None,
                    "include_zero_stock": scope.include_zero_stock,
                },
            )
            raise EmptyScopeError(
                tenant_id=tenant_id,
                location_id=scope.location_id,
                category_id=scope.category_id,
                include_zero_stock=scope.include_zero_stock,
            )

        number = self._sequences.next_value(SequenceService.stocktaking_number(tenant_id))
        stocktaking = StocktakingSession(
            number=number,
            tenant_id=tenant_id,
            location_id=scope.location_id,
            category_id=scope.category_id,
            include_zero_stock=scope.include_zero_stock,
            status=StocktakingStatus.IN_PROGRESS.value,
            started_by=operator_id,
            started_at=self.clock.now(),
        )
        for item, location_id, expected in snapshot:
            stocktaking.lines.append(
                StocktakingLine(
                    item_id=item.id,
                    location_id=location_id,
                    expected_quantity=expected,
                )
            )
        self.session.add(stocktaking)
        self.session.flush()

        logger.info(
            "stocktaking_started",
            extra={
                "session_id": str(stocktaking.id),
                "number": number,
                "line_count": len(snapshot),
                "location_id": str(scope.location_id) if scope.location_id else None,
            },
        )
        return StocktakingSessionInfo.from_model(stocktaking, line_count=len(snapshot))

    # ------------------------------------------------------------------
    # Count capture
    # ------------------------------------------------------------------

    def record_count(
        self,
        tenant_id: UUID,
        session_id: UUID,
        item_id: UUID,
        location_id: UUID | None,
        counted_quantity: int | Decimal,
        operator_id: UUID,
        note: str | None = None,
        *,
        unit: QuantityUnit | str = QuantityUnit.PIECES,
    ) -> StocktakingLineInfo:
        """
        Store the counted quantity of one line, replacing any earlier count.

        Never touches the ledger.

        Raises:
            InvalidStateError: session is not IN_PROGRESS.
            ValidationError: negative or non-integer count.
            NotFoundError: session or line missing.
        """
        stocktaking = load_session_for_update(self.session, tenant_id, session_id)
        lifecycle.require_transition(stocktaking.id, stocktaking.status, lifecycle.RECORD_COUNT)

        line = self.session.execute(
            select(StocktakingLine)
            .where(StocktakingLine.session_id == session_id)
            .where(StocktakingLine.item_id == item_id)
            .where(
                StocktakingLine.location_id.is_(None)
                if location_id is None
                else StocktakingLine.location_id == location_id
            )
        ).scalar_one_or_none()
        if line is None:
            raise NotFoundError("StocktakingLine", f"{session_id}/{item_id}/{location_id}", tenant_id)

        item = self.session.get(Item, item_id)
        pieces = to_pieces(
            counted_quantity, unit, item.pieces_per_package, field="counted_quantity"
        )
        if pieces < 0:
            raise ValidationError(field="counted_quantity", reason="must not be negative")

        previous = line.counted_quantity
        line.counted_quantity = pieces
        line.note = note
        line.counted_by = operator_id
        line.counted_at = self.clock.now()
        self.session.flush()

        logger.info(
            "stocktaking_count_recorded",
            extra={
                "session_id": str(session_id),
                "line_id": str(line.id),
                "item_id": str(item_id),
                "counted_quantity": pieces,
                "previous_count": previous,
                "difference": line.difference,
            },
        )
        return StocktakingLineInfo.from_model(
            line,
            item_code=item.code,
            item_name=item.name,
            unit=item.unit,
            counted_packages=pieces_to_packages(pieces, item.pieces_per_package),
        )

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel(
        self,
        tenant_id: UUID,
        session_id: UUID,
        operator_id: UUID,
    ) -> StocktakingSessionInfo:
        """
        Abandon a stocktaking.  Stock is never touched.

        Raises:
            InvalidStateError: session is not IN_PROGRESS.
        """
        stocktaking = load_session_for_update(self.session, tenant_id, session_id)
        target = lifecycle.require_transition(stocktaking.id, stocktaking.status, lifecycle.CANCEL)

        stocktaking.status = target.value
        stocktaking.cancelled_by = operator_id
        stocktaking.cancelled_at = self.clock.now()
        self.session.flush()

        logger.info(
            "stocktaking_cancelled",
            extra={"session_id": str(session_id), "number": stocktaking.number},
        )
        return StocktakingSessionInfo.from_model(stocktaking)
