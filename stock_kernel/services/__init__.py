"""Write-side services.  Only StocktakingWorkflow commits."""

from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.reconciliation_engine import ReconciliationEngine
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.stocktaking_service import StocktakingService
from stock_kernel.services.stocktaking_workflow import (
    StocktakingResult,
    StocktakingResultStatus,
    StocktakingWorkflow,
)

__all__ = [
    "AuditorService",
    "ReconciliationEngine",
    "SequenceService",
    "StockLedger",
    "StocktakingResult",
    "StocktakingResultStatus",
    "StocktakingService",
    "StocktakingWorkflow",
]
