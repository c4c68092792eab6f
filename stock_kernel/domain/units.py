"""
Package / piece conversion.

Stock is always held in pieces.  Operators may enter receipts, issues and
counts in packages; the item's ``pieces_per_package`` converts them.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from stock_kernel.exceptions import ValidationError


class QuantityUnit(str, Enum):
    """Unit an operator entered a quantity in."""

    PIECES = "pieces"
    PACKAGES = "packages"


_TWO_PLACES = Decimal("0.01")


def packages_to_pieces(packages: Decimal | int | str, per_package: int) -> int:
    """Convert packages to whole pieces, rounding half-up."""
    pieces = Decimal(str(packages)) * Decimal(per_package)
    return int(pieces.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def pieces_to_packages(pieces: int, per_package: int) -> Decimal:
    """Convert pieces to packages rounded to two places; 0 when per_package <= 0."""
    if per_package <= 0:
        return Decimal("0")
    return (Decimal(pieces) / Decimal(per_package)).quantize(
        _TWO_PLACES, rounding=ROUND_HALF_UP
    )


def to_pieces(
    quantity: Decimal | int | str,
    unit: QuantityUnit | str,
    per_package: int,
    *,
    field: str = "quantity",
) -> int:
    """
    Normalize an operator-entered quantity to pieces.

    Raises:
        ValidationError: Unknown unit, or a piece quantity that is not whole.
    """
    try:
        unit = QuantityUnit(unit)
    except ValueError:
        raise ValidationError(field="unit", reason=f"unknown unit {unit!r}") from None

    if unit is QuantityUnit.PACKAGES:
        if isinstance(quantity, bool):
            raise ValidationError(field=field, reason="must be a number")
        try:
            return packages_to_pieces(quantity, per_package)
        except ArithmeticError:
            raise ValidationError(field=field, reason=f"not a number: {quantity!r}") from None

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(field=field, reason="must be a whole number of pieces")
    return quantity
