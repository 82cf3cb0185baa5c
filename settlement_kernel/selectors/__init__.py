"""Selectors for the settlement kernel (read side)."""

from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.payment_selector import PaymentPage, PaymentSelector

__all__ = [
    "LedgerSelector",
    "PaymentPage",
    "PaymentSelector",
]
