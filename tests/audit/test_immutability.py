"""ORM guards on append-only and finalized records."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from stock_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.domain.dtos import StocktakingScope
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.audit_event import AuditEvent
from stock_kernel.models.stock import StockMovement
from stock_kernel.models.stocktaking import StocktakingLine, StocktakingSession


@pytest.fixture
def item(eko, make_item, put_stock, warehouse):
    item = make_item(eko, "A", "Apple")
    put_stock(eko, item, warehouse, 10)
    return item


@pytest.fixture
def started(workflow, eko, warehouse, item, test_actor_id):
    return workflow.start(eko.id, test_actor_id, StocktakingScope(location_id=warehouse.id)).session


def _line(session, session_id):
    return session.execute(
        select(StocktakingLine).where(StocktakingLine.session_id == session_id)
    ).scalar_one()


class TestStockMovementImmutability:
    def test_update_blocked(self, session, stock_ledger, eko, item, warehouse, test_actor_id):
        record = stock_ledger.receive(eko.id, item.id, warehouse.id, 1, test_actor_id)
        movement = session.get(StockMovement, record.id)
        movement.note = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockMovement"

    def test_delete_blocked(self, session, stock_ledger, eko, item, warehouse, test_actor_id):
        record = stock_ledger.receive(eko.id, item.id, warehouse.id, 1, test_actor_id)
        session.delete(session.get(StockMovement, record.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAuditEventImmutability:
    def test_update_blocked(self, session, started):
        event = session.execute(select(AuditEvent)).scalars().first()
        event.summary = "nothing happened"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, started):
        session.delete(session.execute(select(AuditEvent)).scalars().first())

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestStocktakingImmutability:
    def test_in_progress_session_is_mutable(self, session, started):
        stocktaking = session.get(StocktakingSession, started.id)
        stocktaking.include_zero_stock = True
        session.flush()

    def test_completed_session_frozen(self, session, workflow, started, eko, test_actor_id):
        workflow.complete(eko.id, started.id, test_actor_id)
        stocktaking = session.get(StocktakingSession, started.id)
        stocktaking.completed_by = uuid4()

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "completed_by" in exc_info.value.reason

    def test_cancelled_session_cannot_be_reopened(self, session, workflow, started, eko, test_actor_id):
        workflow.cancel(eko.id, started.id, test_actor_id)
        stocktaking = session.get(StocktakingSession, started.id)
        stocktaking.status = "in_progress"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_finalized_session_cannot_be_deleted(self, session, workflow, started, eko, test_actor_id):
        workflow.cancel(eko.id, started.id, test_actor_id)
        session.delete(session.get(StocktakingSession, started.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_expected_quantity_frozen(self, session, started):
        line = _line(session, started.id)
        line.expected_quantity = 99

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StocktakingLine"

    def test_lines_of_completed_session_frozen(self, session, workflow, started, eko, test_actor_id):
        workflow.complete(eko.id, started.id, test_actor_id)
        line = _line(session, started.id)
        line.counted_quantity = 3

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


def test_listeners_can_be_removed_and_restored(session, stock_ledger, eko, item, warehouse, test_actor_id):
    record = stock_ledger.receive(eko.id, item.id, warehouse.id, 1, test_actor_id)
    unregister_immutability_listeners()
    try:
        movement = session.get(StockMovement, record.id)
        movement.note = "corrected"
        session.flush()
    finally:
        register_immutability_listeners()

    movement.note = "again"
    with pytest.raises(ImmutabilityViolationError):
        session.flush()
