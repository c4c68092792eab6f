"""SQLAlchemy ORM models for the stock kernel."""

from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.models.catalog import Category, Item, Location, Tenant
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.stock import MovementType, StockBalance, StockMovement
from stock_kernel.models.stocktaking import (
    StocktakingLine,
    StocktakingSession,
    StocktakingStatus,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "Category",
    "Item",
    "Location",
    "MovementType",
    "SequenceCounter",
    "StockBalance",
    "StockMovement",
    "StocktakingLine",
    "StocktakingSession",
    "StocktakingStatus",
    "Tenant",
]
