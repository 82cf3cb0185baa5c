"""
Settlement services -- the imperative shell around the pure engines.

- PaymentService: record, apply and reverse payments (owns the transaction)
- BalanceService: party balances and top outstanding
- AgingService: aging buckets and the accounts dashboard
"""

from settlement_services.aging_service import AccountsSummary, AgingService
from settlement_services.balance_service import BalanceService
from settlement_services.locking import PartyLockRegistry, default_lock_registry
from settlement_services.payment_service import PaymentService
from settlement_services.sinks import LoggingPaymentSink, PaymentSink

__all__ = [
    "AccountsSummary",
    "AgingService",
    "BalanceService",
    "LoggingPaymentSink",
    "PartyLockRegistry",
    "PaymentService",
    "PaymentSink",
    "default_lock_registry",
]
