"""
Common base for the write-side stock services.

StockLedger, StocktakingService and ReconciliationEngine share the same
contract: they receive a Session and a Clock, write through
``session.flush()``, and leave commit and rollback to StocktakingWorkflow
(or to the test harness).  Read-only queries belong in
``stock_kernel/selectors/``.
"""

from abc import ABC

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import NotFoundError


class BaseService(ABC):
    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _get_tenant_scoped(self, model, entity_id, tenant_id):
        """
        Load ``model`` by primary key within ``tenant_id``.

        Raises:
            NotFoundError: Missing, or owned by another tenant.  The caller
                cannot tell the two apart.
        """
        entity = self.session.get(model, entity_id) if entity_id is not None else None
        if entity is None or entity.tenant_id != tenant_id:
            raise NotFoundError(model.__name__, entity_id, tenant_id)
        return entity
