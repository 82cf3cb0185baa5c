"""Services for the settlement kernel (write side)."""

from settlement_kernel.services.credit_ledger import CreditLedger
from settlement_kernel.services.ledger_service import LedgerService
from settlement_kernel.services.party_service import PartyService
from settlement_kernel.services.sequence_service import SequenceService

__all__ = [
    "CreditLedger",
    "LedgerService",
    "PartyService",
    "SequenceService",
]
