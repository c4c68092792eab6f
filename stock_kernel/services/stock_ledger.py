"""
StockLedger -- the only writer of stock balances.

Responsibility:
    Applies signed quantity deltas to the per (tenant, item, location)
    balance and appends one immutable StockMovement per delta.  Provides
    receipt, bulk receipt and issue entry points that convert
    package-denominated input and enforce the never-negative policy for
    issues.

Architecture position:
    Kernel > Services -- leaf service.  Called by StocktakingWorkflow
    (receipts, issues) and ReconciliationEngine (adjustments).

Invariants enforced:
    - Balance equals the sum of signed_delta over the key's movements:
      every balance change happens together with its movement insert,
      inside the caller's transaction.
    - Movements are append-only (see db/immutability.py).
    - Never-negative is enforced at issue time only.  Adjustments may take
      a balance anywhere, since they record what was physically counted.

Failure modes:
    - ValidationError: zero or non-integer delta, sign that contradicts
      the movement type, non-positive receipt/issue quantity.
    - NotFoundError: item or location outside the tenant.
    - InsufficientStockError: issue larger than the available balance.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import MovementMetadata, ReceiptLine, StockMovementRecord
from stock_kernel.domain.units import QuantityUnit, to_pieces
from stock_kernel.exceptions import InsufficientStockError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Item, Location
from stock_kernel.models.stock import MovementType, StockBalance, StockMovement
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")

BULK_RECEIPT_NOTE = "Bulk receipt"


def _is_positive(quantity) -> bool:
    try:
        return Decimal(str(quantity)) > 0
    except ArithmeticError:
        raise ValidationError(field="quantity", reason=f"not a number: {quantity!r}") from None


class StockLedger(BaseService):
    """
    Applies stock deltas and records the movement log.

    Non-goals:
        - Does NOT commit.  Callers wrap one or more deltas in their own
          transaction.
        - Does NOT write audit events; the workflow does that.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Balance rows
    # ------------------------------------------------------------------

    def _locked_balance(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> StockBalance | None:
        return self.session.execute(
            select(StockBalance)
            .where(StockBalance.tenant_id == tenant_id)
            .where(StockBalance.item_id == item_id)
            .where(StockBalance.location_id == location_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _get_or_create_balance(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> StockBalance:
        balance = self._locked_balance(tenant_id, item_id, location_id)
        if balance is not None:
            return balance

        savepoint = self.session.begin_nested()
        try:
            balance = StockBalance(
                tenant_id=tenant_id,
                item_id=item_id,
                location_id=location_id,
                quantity=0,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
            return balance
        except IntegrityError:
            logger.debug(
                "stock_balance_race_retry",
                extra={"item_id": str(item_id), "location_id": str(location_id)},
            )
            savepoint.rollback()
            balance = self._locked_balance(tenant_id, item_id, location_id)
            if balance is None:
                raise
            return balance

    def balance(self, tenant_id: UUID, item_id: UUID, location_id: UUID) -> int:
        """Current balance in pieces; 0 when the key has never moved."""
        quantity = self.session.execute(
            select(StockBalance.quantity)
            .where(StockBalance.tenant_id == tenant_id)
            .where(StockBalance.item_id == item_id)
            .where(StockBalance.location_id == location_id)
        ).scalar_one_or_none()
        return quantity or 0

    # ------------------------------------------------------------------
    # Core write path
    # ------------------------------------------------------------------

    def apply_delta(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        signed_delta: int,
        metadata: MovementMetadata,
    ) -> StockMovementRecord:
        """
        Add ``signed_delta`` to a balance and append the movement.

        Preconditions:
            - signed_delta is a non-zero int whose sign fits
              metadata.movement_type (receipt > 0, issue < 0).
            - item and location belong to ``tenant_id``.

        Postconditions:
            - One StockMovement with quantity = |signed_delta| is flushed.
            - The balance row exists and moved by exactly signed_delta.
        """
        if isinstance(signed_delta, bool) or not isinstance(signed_delta, int):
            raise ValidationError(field="signed_delta", reason="must be an integer")
        if signed_delta == 0:
            raise ValidationError(field="signed_delta", reason="must not be zero")

        movement_type = MovementType(metadata.movement_type)
        if movement_type is MovementType.RECEIPT and signed_delta < 0:
            raise ValidationError(field="signed_delta", reason="receipts must be positive")
        if movement_type is MovementType.ISSUE and signed_delta > 0:
            raise ValidationError(field="signed_delta", reason="issues must be negative")

        self._get_tenant_scoped(Item, item_id, tenant_id)
        self._get_tenant_scoped(Location, location_id, tenant_id)

        balance = self._get_or_create_balance(tenant_id, item_id, location_id)

        movement = StockMovement(
            seq=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
            tenant_id=tenant_id,
            item_id=item_id,
            location_id=location_id,
            movement_type=movement_type.value,
            quantity=abs(signed_delta),
            signed_delta=signed_delta,
            occurred_on=metadata.occurred_on,
            recorded_by=metadata.recorded_by,
            recorded_at=self.clock.now(),
            note=metadata.note,
            stocktaking_id=metadata.stocktaking_id,
        )
        self.session.add(movement)
        balance.quantity += signed_delta
        self.session.flush()

        logger.info(
            "stock_delta_applied",
            extra={
                "movement_id": str(movement.id),
                "seq": movement.seq,
                "item_id": str(item_id),
                "location_id": str(location_id),
                "movement_type": movement_type.value,
                "signed_delta": signed_delta,
                "balance_after": balance.quantity,
            },
        )

        return StockMovementRecord.from_model(movement, balance_after=balance.quantity)

    # ------------------------------------------------------------------
    # Receipts and issues
    # ------------------------------------------------------------------

    def _pieces(self, item: Item, quantity, unit) -> int:
        pieces = to_pieces(quantity, unit, item.pieces_per_package)
        if pieces <= 0:
            raise ValidationError(field="quantity", reason="must be positive")
        return pieces

    def receive(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: int | Decimal,
        recorded_by: UUID,
        *,
        unit: QuantityUnit | str = QuantityUnit.PIECES,
        occurred_on: date | None = None,
        note: str | None = None,
    ) -> StockMovementRecord:
        """Book incoming stock."""
        item = self._get_tenant_scoped(Item, item_id, tenant_id)
        pieces = self._pieces(item, quantity, unit)
        return self.apply_delta(
            tenant_id,
            item_id,
            location_id,
            pieces,
            MovementMetadata(
                movement_type=MovementType.RECEIPT,
                occurred_on=occurred_on or self.clock.today(),
                recorded_by=recorded_by,
                note=note,
            ),
        )

    def issue(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: int | Decimal,
        recorded_by: UUID,
        *,
        unit: QuantityUnit | str = QuantityUnit.PIECES,
        occurred_on: date | None = None,
        note: str | None = None,
    ) -> StockMovementRecord:
        """
        Book outgoing stock.

        Raises:
            InsufficientStockError: quantity exceeds the current balance.
        """
        item = self._get_tenant_scoped(Item, item_id, tenant_id)
        self._get_tenant_scoped(Location, location_id, tenant_id)
        pieces = self._pieces(item, quantity, unit)

        balance = self._locked_balance(tenant_id, item_id, location_id)
        available = balance.quantity if balance is not None else 0
        if pieces > available:
            logger.warning(
                "stock_issue_rejected",
                extra={
                    "item_id": str(item_id),
                    "location_id": str(location_id),
                    "available": available,
                    "requested": pieces,
                },
            )
            raise InsufficientStockError(
                item_id=item_id,
                location_id=location_id,
                available=available,
                requested=pieces,
            )

        return self.apply_delta(
            tenant_id,
            item_id,
            location_id,
            -pieces,
            MovementMetadata(
                movement_type=MovementType.ISSUE,
                occurred_on=occurred_on or self.clock.today(),
                recorded_by=recorded_by,
                note=note,
            ),
        )

    def receive_many(
        self,
        tenant_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLine],
        recorded_by: UUID,
        *,
        occurred_on: date | None = None,
        note: str | None = None,
    ) -> list[StockMovementRecord]:
        """
        Book several receipts into one location within the caller's transaction.

        Lines with a quantity of zero or less are skipped.  Any other
        invalid line fails the whole batch; nothing is kept once the caller
        rolls back.

        Raises:
            ValidationError: no line has a positive quantity.
            NotFoundError: location or an item outside the tenant.
        """
        self._get_tenant_scoped(Location, location_id, tenant_id)

        positive = [line for line in lines if _is_positive(line.quantity)]
        if not positive:
            raise ValidationError(field="lines", reason="no line with a positive quantity")

        movement_note = f"{note} ({BULK_RECEIPT_NOTE.lower()})" if note else BULK_RECEIPT_NOTE
        records = [
            self.receive(
                tenant_id,
                line.item_id,
                location_id,
                line.quantity,
                recorded_by,
                unit=line.unit,
                occurred_on=occurred_on,
                note=movement_note,
            )
            for line in positive
        ]

        logger.info(
            "stock_bulk_receipt_booked",
            extra={
                "location_id": str(location_id),
                "line_count": len(records),
                "lines_skipped": len(lines) - len(positive),
                "total_pieces": sum(r.quantity for r in records),
            },
        )
        return records
