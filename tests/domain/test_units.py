"""Package / piece conversion."""

from decimal import Decimal

import pytest

from stock_kernel.domain.units import (
    QuantityUnit,
    packages_to_pieces,
    pieces_to_packages,
    to_pieces,
)
from stock_kernel.exceptions import ValidationError


class TestPackagesToPieces:
    @pytest.mark.parametrize(
        "packages, per_package, expected",
        [
            (Decimal("2"), 12, 24),
            (Decimal("2.5"), 12, 30),
            (Decimal("0.5"), 3, 2),  # 1.5 rounds half-up
            (Decimal("0.25"), 2, 1),  # 0.5 rounds half-up
            (Decimal("0.2"), 2, 0),
            (3, 6, 18),
            ("1.5", 4, 6),
        ],
    )
    def test_rounds_half_up(self, packages, per_package, expected):
        assert packages_to_pieces(packages, per_package) == expected


class TestPiecesToPackages:
    def test_two_places(self):
        assert pieces_to_packages(10, 3) == Decimal("3.33")
        assert pieces_to_packages(5, 3) == Decimal("1.67")

    def test_exact(self):
        assert pieces_to_packages(24, 12) == Decimal("2.00")

    @pytest.mark.parametrize("per_package", [0, -1])
    def test_non_positive_per_package_is_zero(self, per_package):
        assert pieces_to_packages(10, per_package) == Decimal("0")


class TestToPieces:
    def test_pieces_pass_through(self):
        assert to_pieces(7, QuantityUnit.PIECES, 12) == 7

    def test_unit_given_as_string(self):
        assert to_pieces(Decimal("1.5"), "packages", 4) == 6

    def test_unknown_unit(self):
        with pytest.raises(ValidationError) as exc_info:
            to_pieces(1, "boxes", 1)
        assert exc_info.value.field == "unit"

    def test_fractional_pieces_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            to_pieces(Decimal("1.5"), QuantityUnit.PIECES, 1, field="counted_quantity")
        assert exc_info.value.field == "counted_quantity"

    @pytest.mark.parametrize("unit", [QuantityUnit.PIECES, QuantityUnit.PACKAGES])
    def test_bool_rejected(self, unit):
        with pytest.raises(ValidationError):
            to_pieces(True, unit, 1)

    def test_garbage_package_quantity_rejected(self):
        with pytest.raises(ValidationError):
            to_pieces("a lot", QuantityUnit.PACKAGES, 6)
