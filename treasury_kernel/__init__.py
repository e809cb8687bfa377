"""
Treasury Kernel - requisition lifecycle and fund ledger engine.

Routes expense requisitions through a value-based approval chain and
disburses them from organization funds with:
- Server-side authority resolution
- Atomic, lock-protected fund debits
- Append-only movements, expenses and incomes
- A hash-chained audit trail
"""

__version__ = "0.1.0"
