"""Read side of the stocktaking screens."""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import StocktakingScope
from stock_kernel.models.stocktaking import StocktakingStatus
from stock_kernel.selectors.stocktaking_selector import LineFilter


@pytest.fixture
def catalog(eko, make_item, warehouse, put_stock):
    """Three items at the warehouse, inserted out of name order."""
    items = {
        "pear": make_item(eko, "P-2", "Pear", pieces_per_package=4),
        "apple": make_item(eko, "A-1", "Apple"),
        "cherry": make_item(eko, "C-3", "Cherry box"),
    }
    for item, quantity in zip(items.values(), (8, 10, 5)):
        put_stock(eko, item, warehouse, quantity)
    return items


@pytest.fixture
def counted(stocktaking_service, catalog, eko, warehouse, test_actor_id):
    """Apple counted with a difference, pear counted exactly, cherry open."""
    info = stocktaking_service.start(eko.id, test_actor_id, StocktakingScope(location_id=warehouse.id))
    stocktaking_service.record_count(eko.id, info.id, catalog["apple"].id, warehouse.id, 7, test_actor_id)
    stocktaking_service.record_count(eko.id, info.id, catalog["pear"].id, warehouse.id, 8, test_actor_id)
    return info


class TestListLines:
    def test_ordered_by_item_name(self, stocktaking_selector, counted, eko):
        lines = stocktaking_selector.list_lines(eko.id, counted.id)
        assert [line.item_name for line in lines] == ["Apple", "Cherry box", "Pear"]

    @pytest.mark.parametrize(
        "line_filter, names",
        [
            (LineFilter.ALL, ["Apple", "Cherry box", "Pear"]),
            (LineFilter.COUNTED, ["Apple", "Pear"]),
            (LineFilter.UNCOUNTED, ["Cherry box"]),
            (LineFilter.DIFFERENCE, ["Apple"]),
            ("difference", ["Apple"]),
        ],
    )
    def test_filters(self, stocktaking_selector, counted, eko, line_filter, names):
        lines = stocktaking_selector.list_lines(eko.id, counted.id, line_filter)
        assert [line.item_name for line in lines] == names

    @pytest.mark.parametrize("search, names", [("CHERRY", ["Cherry box"]), ("p-2", ["Pear"]), ("%", [])])
    def test_search_name_or_code(self, stocktaking_selector, counted, eko, search, names):
        lines = stocktaking_selector.list_lines(eko.id, counted.id, search=search)
        assert [line.item_name for line in lines] == names

    def test_line_details(self, stocktaking_selector, counted, eko):
        pear = [line for line in stocktaking_selector.list_lines(eko.id, counted.id) if line.item_code == "P-2"][0]
        assert pear.expected_quantity == 8
        assert pear.difference == 0
        assert pear.counted_packages == Decimal("2.00")

    def test_other_tenant_sees_nothing(self, stocktaking_selector, counted, zoo):
        assert stocktaking_selector.list_lines(zoo.id, counted.id) == []


class TestSessions:
    def test_list_newest_first_with_figures(
        self, stocktaking_selector, stocktaking_service, counted, eko, test_actor_id
    ):
        second = stocktaking_service.start(eko.id, test_actor_id, StocktakingScope())

        overviews = stocktaking_selector.list_sessions(eko.id)

        assert [o.session.number for o in overviews] == [second.number, counted.number]
        first = overviews[1]
        assert first.total_lines == 3
        assert first.counted_lines == 2
        assert first.total_absolute_difference == 3

    def test_filter_by_status(self, stocktaking_selector, stocktaking_service, counted, eko, test_actor_id):
        stocktaking_service.cancel(eko.id, counted.id, test_actor_id)

        assert stocktaking_selector.list_sessions(eko.id, status=StocktakingStatus.IN_PROGRESS) == []
        [cancelled] = stocktaking_selector.list_sessions(eko.id, status="cancelled")
        assert cancelled.session.id == counted.id

    def test_filter_by_location(self, stocktaking_selector, counted, eko, warehouse):
        assert len(stocktaking_selector.list_sessions(eko.id, location_id=warehouse.id)) == 1
        assert stocktaking_selector.list_sessions(eko.id, location_id=uuid4()) == []

    def test_get_session(self, stocktaking_selector, counted, eko, zoo):
        info = stocktaking_selector.get_session(eko.id, counted.id)
        assert info.line_count == 3
        assert stocktaking_selector.get_session(zoo.id, counted.id) is None
        assert stocktaking_selector.get_session(eko.id, uuid4()) is None


class TestProgress:
    def test_progress(self, stocktaking_selector, counted, eko):
        progress = stocktaking_selector.progress(eko.id, counted.id)

        assert progress.total == 3
        assert progress.counted == 2
        assert progress.with_difference == 1
        assert progress.remaining == 1
        assert progress.percent == 66

    def test_unknown_session(self, stocktaking_selector, eko):
        progress = stocktaking_selector.progress(eko.id, uuid4())
        assert (progress.total, progress.counted, progress.percent) == (0, 0, 0)
