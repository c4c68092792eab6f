"""
Stock Kernel - warehouse stock ledger and stocktaking.

A multi-tenant, append-only stock ledger with:
- Per (tenant, item, location) balances backed by an immutable movement log
- Receipts and issues with a never-negative issue policy
- Stocktaking sessions (count capture, reconciliation, cancellation)
- Hash-chained audit trail for every state transition
"""

__version__ = "0.1.0"
