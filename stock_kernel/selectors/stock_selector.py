"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only queries over stock balances and the movement log,
    plus the ledger integrity check (stored balance vs. sum of movements).
Architecture position: Kernel > Selectors.

Failure modes:
    - Returns empty lists when nothing matches; never raises for an
      unknown tenant.

Audit relevance:
    verify_ledger_integrity() is the replay check for the invariant that a
    balance equals the sum of its movements' signed deltas.
"""

from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import BalanceMismatch, StockBalanceInfo, StockMovementRecord
from stock_kernel.models.stock import MovementType, StockBalance, StockMovement
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector):
    """Balances and movements of one tenant."""

    def balances(
        self,
        tenant_id: UUID,
        location_id: UUID | None = None,
        item_id: UUID | None = None,
    ) -> list[StockBalanceInfo]:
        """Stored balances, optionally narrowed to one location or item."""
        stmt = select(StockBalance).where(StockBalance.tenant_id == tenant_id)
        if location_id is not None:
            stmt = stmt.where(StockBalance.location_id == location_id)
        if item_id is not None:
            stmt = stmt.where(StockBalance.item_id == item_id)
        stmt = stmt.order_by(StockBalance.location_id, StockBalance.item_id)

        return [
            StockBalanceInfo(
                tenant_id=row.tenant_id,
                item_id=row.item_id,
                location_id=row.location_id,
                quantity=row.quantity,
            )
            for row in self.session.execute(stmt).scalars()
        ]

    def total_for_item(self, tenant_id: UUID, item_id: UUID) -> int:
        """Balance of an item summed across all locations."""
        total = self.session.execute(
            select(func.coalesce(func.sum(StockBalance.quantity), 0))
            .where(StockBalance.tenant_id == tenant_id)
            .where(StockBalance.item_id == item_id)
        ).scalar_one()
        return int(total)

    def movements(
        self,
        tenant_id: UUID,
        item_id: UUID | None = None,
        location_id: UUID | None = None,
        stocktaking_id: UUID | None = None,
        movement_type: MovementType | None = None,
    ) -> list[StockMovementRecord]:
        """Movements in ledger order (seq ascending)."""
        stmt = select(StockMovement).where(StockMovement.tenant_id == tenant_id)
        if item_id is not None:
            stmt = stmt.where(StockMovement.item_id == item_id)
        if location_id is not None:
            stmt = stmt.where(StockMovement.location_id == location_id)
        if stocktaking_id is not None:
            stmt = stmt.where(StockMovement.stocktaking_id == stocktaking_id)
        if movement_type is not None:
            stmt = stmt.where(StockMovement.movement_type == MovementType(movement_type).value)
        stmt = stmt.order_by(StockMovement.seq)

        return [
            StockMovementRecord.from_model(row)
            for row in self.session.execute(stmt).scalars()
        ]

    def verify_ledger_integrity(self, tenant_id: UUID) -> list[BalanceMismatch]:
        """
        Compare every stored balance with the sum of its movements.

        Keys with movements but no balance row are reported with a stored
        quantity of 0.  An empty list means the ledger is consistent.
        """
        movement_totals = {
            (item_id, location_id): int(total)
            for item_id, location_id, total in self.session.execute(
                select(
                    StockMovement.item_id,
                    StockMovement.location_id,
                    func.sum(StockMovement.signed_delta),
                )
                .where(StockMovement.tenant_id == tenant_id)
                .group_by(StockMovement.item_id, StockMovement.location_id)
            )
        }
        stored = {
            (row.item_id, row.location_id): row.quantity
            for row in self.session.execute(
                select(StockBalance).where(StockBalance.tenant_id == tenant_id)
            ).scalars()
        }

        mismatches = []
        for key in sorted(set(movement_totals) | set(stored), key=lambda k: (str(k[0]), str(k[1]))):
            stored_quantity = stored.get(key, 0)
            movement_total = movement_totals.get(key, 0)
            if stored_quantity != movement_total:
                mismatches.append(
                    BalanceMismatch(
                        item_id=key[0],
                        location_id=key[1],
                        stored_quantity=stored_quantity,
                        movement_total=movement_total,
                    )
                )
        return mismatches
