"""
StocktakingWorkflow -- transaction owner for stock and stocktaking operations.

Responsibility:
    The single entry point the web layer calls.  Each operation binds the
    log context, runs the kernel service, writes the audit event, and
    commits.  Expected domain failures come back as a StocktakingResult
    with a machine-readable status instead of an exception.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    Delegates to StocktakingService, ReconciliationEngine, StockLedger
    and AuditorService.

Flow (every operation):
    1. Bind LogContext (correlation id, tenant, actor, operation)
    2. Run the service call (flush only)
    3. Write the audit event inside a SAVEPOINT; a failing audit write
       is rolled back alone and logged
    4. Commit (when auto_commit=True)

    Typed errors (validation, not found, invalid state, empty scope,
    insufficient stock) roll back and return a failed result.  Anything
    else rolls back and is re-raised unchanged.

Audit relevance:
    stocktaking_start, stocktaking_complete, stocktaking_cancel,
    stock_receipt and stock_issue are recorded here; a bulk receipt writes
    one stock_receipt per booked line.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    CompletionSummary,
    ReceiptLine,
    StockMovementRecord,
    StocktakingLineInfo,
    StocktakingScope,
    StocktakingSessionInfo,
)
from stock_kernel.domain.units import QuantityUnit
from stock_kernel.exceptions import (
    EmptyScopeError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.catalog import Item
from stock_kernel.models.stocktaking import StocktakingSession
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.reconciliation_engine import ReconciliationEngine
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.stocktaking_service import StocktakingService

logger = get_logger("services.stocktaking_workflow")


class StocktakingResultStatus(str, Enum):
    """Outcome of a workflow operation."""

    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    EMPTY_SCOPE = "empty_scope"
    INSUFFICIENT_STOCK = "insufficient_stock"


# Most specific first: InsufficientStockError is a ValidationError.
_STATUS_BY_ERROR: tuple[tuple[type[Exception], StocktakingResultStatus], ...] = (
    (InsufficientStockError, StocktakingResultStatus.INSUFFICIENT_STOCK),
    (ValidationError, StocktakingResultStatus.VALIDATION_ERROR),
    (NotFoundError, StocktakingResultStatus.NOT_FOUND),
    (InvalidStateError, StocktakingResultStatus.INVALID_STATE),
    (EmptyScopeError, StocktakingResultStatus.EMPTY_SCOPE),
)

_HANDLED_ERRORS = tuple(exc_type for exc_type, _ in _STATUS_BY_ERROR)


def _status_for(exc: Exception) -> StocktakingResultStatus:
    for exc_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, exc_type):
            return status
    raise TypeError(f"No result status for {type(exc).__name__}")


@dataclass(frozen=True)
class StocktakingResult:
    """Result of a workflow operation; only the fields of that operation are set."""

    status: StocktakingResultStatus
    message: str | None = None
    error_code: str | None = None
    session: StocktakingSessionInfo | None = None
    line: StocktakingLineInfo | None = None
    summary: CompletionSummary | None = None
    movement: StockMovementRecord | None = None
    movements: tuple[StockMovementRecord, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.status == StocktakingResultStatus.OK


class StocktakingWorkflow:
    """
    Transactional facade over the stocktaking kernel.

    Guarantees:
        - Commit on success, rollback on any failure (when auto_commit=True).
        - An audit write failure never fails the operation.

    Usage:
        workflow = StocktakingWorkflow(session, clock)
        result = workflow.start(tenant_id, operator_id, StocktakingScope(location_id=loc))
        if not result.is_success:
            show(result.message)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._ledger = StockLedger(session, self._clock)
        self._stocktaking = StocktakingService(session, self._clock)
        self._engine = ReconciliationEngine(session, self._clock, ledger=self._ledger)
        self._auditor = AuditorService(session, self._clock)

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    @property
    def auditor(self) -> AuditorService:
        return self._auditor

    # ------------------------------------------------------------------
    # Transaction shell
    # ------------------------------------------------------------------

    def _write_audit(self, record: Callable[[], object]) -> None:
        """Fire-and-forget: a failed audit write only costs its savepoint."""
        try:
            with self._session.begin_nested():
                record()
        except Exception:
            logger.warning("audit_write_failed", exc_info=True)

    def _run(
        self,
        operation: str,
        tenant_id: UUID,
        actor_id: UUID,
        work: Callable[[], StocktakingResult],
        audit: Callable[[StocktakingResult], object] | None = None,
        session_id: UUID | None = None,
    ) -> StocktakingResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor_id),
            session_id=str(session_id) if session_id else None,
            operation=operation,
        ):
            logger.info("workflow_operation_started")
            t0 = time.monotonic()

            try:
                result = work()
                if audit is not None:
                    self._write_audit(lambda: audit(result))
                if self._auto_commit:
                    self._session.commit()
            except _HANDLED_ERRORS as exc:
                if self._auto_commit:
                    self._session.rollback()
                status = _status_for(exc)
                logger.warning(
                    "workflow_operation_rejected",
                    extra={
                        "status": status.value,
                        "error_code": exc.code,
                        "error_message": str(exc),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return StocktakingResult(status=status, message=str(exc), error_code=exc.code)
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "workflow_operation_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "workflow_operation_completed",
                extra={
                    "status": result.status.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Stocktaking
    # ------------------------------------------------------------------

    def start(
        self,
        tenant_id: UUID,
        operator_id: UUID,
        scope: StocktakingScope | None = None,
    ) -> StocktakingResult:
        scope = scope or StocktakingScope()

        def work() -> StocktakingResult:
            info = self._stocktaking.start(tenant_id, operator_id, scope)
            return StocktakingResult(status=StocktakingResultStatus.OK, session=info)

        return self._run(
            "stocktaking_start",
            tenant_id,
            operator_id,
            work,
            audit=lambda r: self._auditor.record_stocktaking_started(r.session, scope, operator_id),
        )

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
    ) -> StocktakingResult:
        def work() -> StocktakingResult:
            line = self._stocktaking.record_count(
                tenant_id,
                session_id,
                item_id,
                location_id,
                counted_quantity,
                operator_id,
                note,
                unit=unit,
            )
            return StocktakingResult(status=StocktakingResultStatus.OK, line=line)

        return self._run("stocktaking_count", tenant_id, operator_id, work, session_id=session_id)

    def complete(
        self,
        tenant_id: UUID,
        session_id: UUID,
        operator_id: UUID,
    ) -> StocktakingResult:
        def work() -> StocktakingResult:
            summary = self._engine.complete(tenant_id, session_id, operator_id)
            stocktaking = self._session.get(StocktakingSession, session_id)
            return StocktakingResult(
                status=StocktakingResultStatus.OK,
                session=StocktakingSessionInfo.from_model(stocktaking),
                summary=summary,
            )

        return self._run(
            "stocktaking_complete",
            tenant_id,
            operator_id,
            work,
            audit=lambda r: self._auditor.record_stocktaking_completed(
                tenant_id, session_id, r.session.number, r.summary, operator_id
            ),
            session_id=session_id,
        )

    def cancel(
        self,
        tenant_id: UUID,
        session_id: UUID,
        operator_id: UUID,
    ) -> StocktakingResult:
        def work() -> StocktakingResult:
            info = self._stocktaking.cancel(tenant_id, session_id, operator_id)
            return StocktakingResult(status=StocktakingResultStatus.OK, session=info)

        return self._run(
            "stocktaking_cancel",
            tenant_id,
            operator_id,
            work,
            audit=lambda r: self._auditor.record_stocktaking_cancelled(
                tenant_id, session_id, r.session.number, operator_id
            ),
            session_id=session_id,
        )

    # ------------------------------------------------------------------
    # Receipts and issues
    # ------------------------------------------------------------------

    def _audit_movement(self, movement: StockMovementRecord, operator_id: UUID) -> None:
        item = self._session.get(Item, movement.item_id)
        self._auditor.record_stock_movement(
            movement, operator_id, item_label=item.code if item else None
        )

    def receive(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: int | Decimal,
        operator_id: UUID,
        *,
        unit: QuantityUnit | str = QuantityUnit.PIECES,
        note: str | None = None,
    ) -> StocktakingResult:
        def work() -> StocktakingResult:
            movement = self._ledger.receive(
                tenant_id, item_id, location_id, quantity, operator_id, unit=unit, note=note
            )
            return StocktakingResult(status=StocktakingResultStatus.OK, movement=movement)

        return self._run(
            "stock_receipt",
            tenant_id,
            operator_id,
            work,
            audit=lambda r: self._audit_movement(r.movement, operator_id),
        )

    def issue(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: int | Decimal,
        operator_id: UUID,
        *,
        unit: QuantityUnit | str = QuantityUnit.PIECES,
        note: str | None = None,
    ) -> StocktakingResult:
        def work() -> StocktakingResult:
            movement = self._ledger.issue(
                tenant_id, item_id, location_id, quantity, operator_id, unit=unit, note=note
            )
            return StocktakingResult(status=StocktakingResultStatus.OK, movement=movement)

        return self._run(
            "stock_issue",
            tenant_id,
            operator_id,
            work,
            audit=lambda r: self._audit_movement(r.movement, operator_id),
        )

    def receive_many(
        self,
        tenant_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLine],
        operator_id: UUID,
        *,
        note: str | None = None,
    ) -> StocktakingResult:
        """Book a bulk receipt; every line lands or none does."""

        def work() -> StocktakingResult:
            movements = self._ledger.receive_many(
                tenant_id, location_id, lines, operator_id, note=note
            )
            return StocktakingResult(
                status=StocktakingResultStatus.OK, movements=tuple(movements)
            )

        def audit(result: StocktakingResult) -> None:
            for movement in result.movements:
                self._audit_movement(movement, operator_id)

        return self._run("stock_bulk_receipt", tenant_id, operator_id, work, audit=audit)
