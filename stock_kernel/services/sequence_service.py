"""
SequenceService -- gap-safe numbering from locked counter rows.

Three kinds of sequence are allocated here:

    stock_movement           global ledger order of StockMovement rows
    audit_event              global order of the audit hash chain
    stocktaking:<tenant_id>  human-facing session numbers, per tenant

Each call locks the counter row with ``SELECT ... FOR UPDATE`` and bumps
it inside the caller's transaction, so a rolled-back stocktaking gives its
number back.  Counting ``max(number) + 1`` over the data tables is never
used.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates sequence values; flushes, never commits."""

    STOCK_MOVEMENT = "stock_movement"
    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def stocktaking_number(tenant_id: UUID) -> str:
        return f"stocktaking:{tenant_id}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_counter(self, sequence_name: str) -> SequenceCounter | None:
        """
        Insert a fresh counter at 0 inside a SAVEPOINT.

        Returns None when a concurrent transaction inserted it first; only
        the savepoint is rolled back in that case.
        """
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the counter, increment it and return the new value."""
        counter = self._locked_counter(sequence_name)
        if counter is None:
            counter = self._create_counter(sequence_name)
        if counter is None:
            counter = self._locked_counter(sequence_name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {sequence_name!r} vanished after insert race")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the sequence was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
