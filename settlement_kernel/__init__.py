"""
Settlement Kernel

Persistence, domain values and typed errors for the payment allocation and
accounts-reconciliation engine:
- Sale / purchase ledger entries with derived payment status
- Append-only payment records with ordered allocations
- Standing credit tracked as FIFO-consumable lots
- Structured JSON logging
"""

__version__ = "0.1.0"
