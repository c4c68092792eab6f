"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockKernelError:

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InsufficientStockError
    |
    +-- NotFoundError
    |
    +-- StocktakingError
    |   +-- InvalidStateError
    |   +-- EmptyScopeError
    |
    +-- ImmutabilityViolationError
    |
    +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|-----------------------------------------------------
VALIDATION_ERROR        | Bad input shape or value (zero delta, negative count)
INSUFFICIENT_STOCK      | Issue would take a balance below zero
NOT_FOUND               | Entity missing or outside the caller's tenant
INVALID_STATE           | Session is not in the state the operation requires
EMPTY_SCOPE             | Stocktaking start produced zero lines
IMMUTABILITY_VIOLATION  | UPDATE/DELETE of a movement or audit event
AUDIT_CHAIN_BROKEN      | Recomputed audit hash does not match the stored one

===============================================================================
HANDLING PATTERNS
===============================================================================

Services raise these exceptions.  StocktakingWorkflow, which owns the
transaction, catches them, rolls back and turns them into a
StocktakingResult status.  Anything that is not a StockKernelError (driver
errors, crashes) propagates to the caller after the rollback.

    try:
        ledger.issue(...)
    except InsufficientStockError as e:
        show(f"Only {e.available} pieces available")

Every class carries a class-level ``code`` and keeps its context as
attributes so that the structured log formatter can emit them.
"""

from uuid import UUID


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


class ValidationError(StockKernelError):
    """Input has the wrong shape or value."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InsufficientStockError(ValidationError):
    """Issue quantity exceeds the available balance."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: UUID,
        location_id: UUID,
        available: int,
        requested: int,
    ):
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        StockKernelError.__init__(
            self,
            f"Insufficient stock for item {item_id} at location {location_id}: "
            f"available {available}, requested {requested}",
        )


class NotFoundError(StockKernelError):
    """Referenced entity does not exist or belongs to another tenant."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str | None, tenant_id: UUID | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.tenant_id = tenant_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Stocktaking lifecycle


class StocktakingError(StockKernelError):
    """Base exception for stocktaking lifecycle errors."""

    code: str = "STOCKTAKING_ERROR"


class InvalidStateError(StocktakingError):
    """Operation requires a session state the session is not in."""

    code: str = "INVALID_STATE"

    def __init__(self, session_id: UUID, status: str, operation: str):
        self.session_id = session_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} stocktaking {session_id} in status {status}"
        )


class EmptyScopeError(StocktakingError):
    """Stocktaking scope matched no items; filters must be relaxed."""

    code: str = "EMPTY_SCOPE"

    def __init__(
        self,
        tenant_id: UUID,
        location_id: UUID | None,
        category_id: UUID | None,
        include_zero_stock: bool,
    ):
        self.tenant_id = tenant_id
        self.location_id = location_id
        self.category_id = category_id
        self.include_zero_stock = include_zero_stock
        super().__init__(
            "No items found for stocktaking; try relaxing the filters "
            f"(location={location_id}, category={category_id}, "
            f"include_zero_stock={include_zero_stock})"
        )


# Immutability


class ImmutabilityViolationError(StockKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditChainBrokenError(StockKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
