"""
Notification sinks for payment events.

A sink is told about every recorded and every reversed payment.  Sinks run
inside the payment transaction, just before commit: if a sink raises, the
payment is rolled back and the error reaches the caller.  Sinks that talk to
slow or unreliable systems should queue the notification rather than
deliver it inline.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from settlement_kernel.domain.dtos import PaymentRecordInfo
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.sinks")


@runtime_checkable
class PaymentSink(Protocol):
    """Receives payment events from PaymentService."""

    def payment_recorded(self, record: PaymentRecordInfo) -> None: ...

    def payment_reversed(self, record: PaymentRecordInfo) -> None: ...


class LoggingPaymentSink:
    """Default sink: one structured log line per event."""

    def payment_recorded(self, record: PaymentRecordInfo) -> None:
        logger.info(
            "payment_notification",
            extra={
                "event": "payment_recorded",
                "payment_id": str(record.id),
                "party_id": str(record.party_id),
                "party_type": record.party_type.value,
                "source": record.source.value,
                "amount": str(record.amount),
                "bills_updated": record.bills_updated,
                "overpaid_amount": str(record.overpaid_amount),
            },
        )

    def payment_reversed(self, record: PaymentRecordInfo) -> None:
        logger.info(
            "payment_notification",
            extra={
                "event": "payment_reversed",
                "payment_id": str(record.id),
                "party_id": str(record.party_id),
                "amount": str(record.amount),
                "reversed_by": record.reversed_by,
            },
        )
