"""ORM models.  Importing this package registers every table on Base.metadata."""

from settlement_kernel.models.ledger import (
    ENTRY_CLASSES,
    LedgerEntry,
    PurchaseEntry,
    SaleEntry,
)
from settlement_kernel.models.party import Party
from settlement_kernel.models.payment import (
    CreditConsumption,
    CreditLot,
    PaymentAllocation,
    PaymentRecord,
)
from settlement_kernel.models.sequence import SequenceCounter

__all__ = [
    "Party",
    "LedgerEntry",
    "SaleEntry",
    "PurchaseEntry",
    "ENTRY_CLASSES",
    "PaymentRecord",
    "PaymentAllocation",
    "CreditLot",
    "CreditConsumption",
    "SequenceCounter",
]
