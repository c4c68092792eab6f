"""Balances, movement history and the ledger integrity check."""

from sqlalchemy import update

from stock_kernel.models.stock import MovementType, StockBalance
from stock_kernel.domain.dtos import StocktakingScope


def test_balances_filtered_by_location(
    stock_selector, eko, make_item, make_location, warehouse, put_stock
):
    other = make_location(eko, "W6")
    apple = make_item(eko, "A")
    put_stock(eko, apple, warehouse, 3)
    put_stock(eko, apple, other, 4)

    assert {b.quantity for b in stock_selector.balances(eko.id)} == {3, 4}
    [only] = stock_selector.balances(eko.id, location_id=other.id)
    assert only.quantity == 4
    assert stock_selector.total_for_item(eko.id, apple.id) == 7


def test_balances_are_tenant_scoped(stock_selector, eko, zoo, make_item, warehouse, put_stock):
    put_stock(eko, make_item(eko, "A"), warehouse, 3)
    assert stock_selector.balances(zoo.id) == []


def test_movements_in_ledger_order(
    stock_selector, stock_ledger, eko, make_item, warehouse, put_stock, test_actor_id
):
    apple = make_item(eko, "A")
    put_stock(eko, apple, warehouse, 5)
    stock_ledger.issue(eko.id, apple.id, warehouse.id, 2, test_actor_id)

    movements = stock_selector.movements(eko.id, item_id=apple.id)
    assert [m.signed_delta for m in movements] == [5, -2]
    assert [m.movement_type for m in stock_selector.movements(eko.id, movement_type="issue")] == [
        MovementType.ISSUE
    ]


def test_movements_by_stocktaking(
    stock_selector, workflow, eko, make_item, warehouse, put_stock, test_actor_id
):
    apple = make_item(eko, "A")
    put_stock(eko, apple, warehouse, 5)
    started = workflow.start(eko.id, test_actor_id, StocktakingScope(location_id=warehouse.id))
    workflow.record_count(eko.id, started.session.id, apple.id, warehouse.id, 4, test_actor_id)
    workflow.complete(eko.id, started.session.id, test_actor_id)

    [adjustment] = stock_selector.movements(eko.id, stocktaking_id=started.session.id)
    assert adjustment.movement_type is MovementType.ADJUSTMENT
    assert adjustment.signed_delta == -1


class TestLedgerIntegrity:
    def test_consistent_ledger(self, stock_selector, stock_ledger, eko, make_item, warehouse, put_stock, test_actor_id):
        apple = make_item(eko, "A")
        put_stock(eko, apple, warehouse, 5)
        stock_ledger.issue(eko.id, apple.id, warehouse.id, 1, test_actor_id)

        assert stock_selector.verify_ledger_integrity(eko.id) == []

    def test_drift_detected(self, session, stock_selector, eko, make_item, warehouse, put_stock):
        apple = make_item(eko, "A")
        put_stock(eko, apple, warehouse, 5)
        table = StockBalance.__table__
        session.execute(
            update(table).where(table.c.item_id == str(apple.id)).values(quantity=9)
        )
        session.expire_all()

        [mismatch] = stock_selector.verify_ledger_integrity(eko.id)
        assert mismatch.item_id == apple.id
        assert mismatch.stored_quantity == 9
        assert mismatch.movement_total == 5
        assert mismatch.drift == 4
