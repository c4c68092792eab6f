"""
Pure domain layer.

Immutable DTOs, the injectable clock, unit conversions and the stocktaking
lifecycle table.  No database access and no I/O.
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SequentialClock, SystemClock
from stock_kernel.domain.dtos import (
    BalanceMismatch,
    CompletionSummary,
    MovementMetadata,
    ProgressInfo,
    ReceiptLine,
    SessionOverview,
    StockBalanceInfo,
    StockMovementRecord,
    StocktakingLineInfo,
    StocktakingScope,
    StocktakingSessionInfo,
)
from stock_kernel.domain.units import QuantityUnit, packages_to_pieces, pieces_to_packages

__all__ = [
    "BalanceMismatch",
    "Clock",
    "CompletionSummary",
    "DeterministicClock",
    "MovementMetadata",
    "ProgressInfo",
    "QuantityUnit",
    "ReceiptLine",
    "SequentialClock",
    "SessionOverview",
    "StockBalanceInfo",
    "StockMovementRecord",
    "StocktakingLineInfo",
    "StocktakingScope",
    "StocktakingSessionInfo",
    "SystemClock",
    "packages_to_pieces",
    "pieces_to_packages",
]
