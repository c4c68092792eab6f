"""
ReconciliationEngine -- turns counted differences into stock adjustments.

Responsibility:
    Completes a stocktaking: diffs counted against expected per line,
    emits one compensating ledger adjustment per non-zero difference and
    finalizes the session.

Architecture position:
    Kernel > Services.  Depends on StockLedger for every balance change.

Invariants enforced:
    - Only counted lines are reconciled; an uncounted line is never read
      as zero.
    - Zero differences produce no movement.
    - All adjustments and the status flip share the caller's transaction.
      Any failure leaves the session IN_PROGRESS and stock untouched once
      the caller rolls back.

Failure modes:
    - InvalidStateError: session is not IN_PROGRESS.
    - NotFoundError: session outside the tenant.
    - Anything StockLedger.apply_delta raises propagates unchanged.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain import lifecycle
from stock_kernel.domain.dtos import CompletionSummary, MovementMetadata
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import MovementType
from stock_kernel.models.stocktaking import StocktakingLine
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.stocktaking_service import load_session_for_update

logger = get_logger("services.reconciliation")

ADJUSTMENT_NOTE = "Stocktaking adjustment - session #{number}"


class ReconciliationEngine(BaseService):
    """Completes stocktakings through the stock ledger."""

    def __init__(self, session, clock=None, ledger: StockLedger | None = None):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self.clock)

    def complete(
        self,
        tenant_id: UUID,
        session_id: UUID,
        operator_id: UUID,
    ) -> CompletionSummary:
        """
        Reconcile and finalize a stocktaking.

        Lines are processed in a stable order (item, location) so that the
        movement sequence is reproducible.

        Postconditions:
            - One ADJUSTMENT movement per counted line with a non-zero
              difference and a location, linked via stocktaking_id.
            - Session is COMPLETED with completed_by/at set.
        """
        stocktaking = load_session_for_update(self.session, tenant_id, session_id)
        target = lifecycle.require_transition(stocktaking.id, stocktaking.status, lifecycle.COMPLETE)

        lines = self.session.execute(
            select(StocktakingLine)
            .where(StocktakingLine.session_id == session_id)
            .order_by(StocktakingLine.item_id, StocktakingLine.location_id)
        ).scalars().all()

        occurred_on = self.clock.today()
        note = ADJUSTMENT_NOTE.format(number=stocktaking.number)

        movement_ids: list[UUID] = []
        total_absolute_difference = 0
        skipped_uncounted = 0
        skipped_no_location = 0

        for line in lines:
            if line.counted_quantity is None:
                skipped_uncounted += 1
                continue

            difference = line.counted_quantity - line.expected_quantity
            if difference == 0:
                continue

            if line.location_id is None:
                skipped_no_location += 1
                logger.warning(
                    "reconciliation_line_skipped",
                    extra={
                        "line_id": str(line.id),
                        "item_id": str(line.item_id),
                        "difference": difference,
                        "reason": "no_location",
                    },
                )
                continue

            record = self._ledger.apply_delta(
                tenant_id,
                line.item_id,
                line.location_id,
                difference,
                MovementMetadata(
                    movement_type=MovementType.ADJUSTMENT,
                    occurred_on=occurred_on,
                    recorded_by=operator_id,
                    note=note,
                    stocktaking_id=stocktaking.id,
                ),
            )
            movement_ids.append(record.id)
            total_absolute_difference += abs(difference)

        stocktaking.status = target.value
        stocktaking.completed_by = operator_id
        stocktaking.completed_at = self.clock.now()
        self.session.flush()

        summary = CompletionSummary(
            session_id=stocktaking.id,
            lines_adjusted=len(movement_ids),
            total_absolute_difference=total_absolute_difference,
            lines_skipped_uncounted=skipped_uncounted,
            lines_skipped_no_location=skipped_no_location,
            movement_ids=tuple(movement_ids),
        )

        logger.info(
            "stocktaking_completed",
            extra={
                "number": stocktaking.number,
                "lines_adjusted": summary.lines_adjusted,
                "total_absolute_difference": total_absolute_difference,
                "lines_skipped_uncounted": skipped_uncounted,
                "lines_skipped_no_location": skipped_no_location,
            },
        )
        return summary
