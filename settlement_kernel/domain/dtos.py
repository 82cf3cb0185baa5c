"""
Immutable DTOs returned across the engine boundary.

Services never hand ORM rows to callers; they convert to these frozen
dataclasses so nothing outside the engine can write ``amount_paid`` or the
reversal flag directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.values import (
    ZERO,
    LedgerKind,
    PartyType,
    PaymentMode,
    PaymentSource,
    PaymentStatus,
    derive_status,
)


@dataclass(frozen=True)
class PartyInfo:
    """A client or supplier as seen by the engine."""

    id: UUID
    party_type: PartyType
    name: str
    overpaid_amount: Decimal
    last_payment_date: date | None = None
    last_payment_amount: Decimal | None = None


@dataclass(frozen=True)
class LedgerEntryInfo:
    """
    Snapshot of one sale or purchase.

    ``amount_due`` and ``payment_status`` are derived on access and never
    carried as independent values.
    """

    id: UUID
    kind: LedgerKind
    party_id: UUID
    entry_date: date
    total_amount: Decimal
    amount_paid: Decimal
    sequence: int
    reference_number: str | None = None
    due_date: date | None = None
    last_payment_date: date | None = None

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @property
    def payment_status(self) -> PaymentStatus:
        return derive_status(self.amount_paid, self.total_amount)

    @property
    def is_open(self) -> bool:
        return self.amount_due > ZERO


@dataclass(frozen=True)
class AllocationInfo:
    """The portion of one payment applied to one ledger entry."""

    ledger_entry_id: UUID
    amount_applied: Decimal
    position: int


@dataclass(frozen=True)
class UpdatedEntry:
    """State of a ledger entry right after a payment touched it."""

    ledger_entry_id: UUID
    reference_number: str | None
    amount_applied: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_status: PaymentStatus


@dataclass(frozen=True)
class PaymentRecordInfo:
    """
    One recorded payment and exactly how it was split.

    Guarantees:
        - ``amount == allocated_total + overpaid_amount`` for every record
          produced by the engine.
        - ``updated_entries`` is populated only on the result of the call
          that created or reversed the record; history reads leave it empty.
    """

    id: UUID
    party_id: UUID
    party_type: PartyType
    source: PaymentSource
    amount: Decimal
    payment_mode: PaymentMode
    payment_date: date
    recorded_by: str
    allocations: tuple[AllocationInfo, ...]
    overpaid_amount: Decimal
    reversed: bool
    sequence: int
    reference_number: str | None = None
    notes: str | None = None
    reversed_at: datetime | None = None
    reversed_by: str | None = None
    reversal_reason: str | None = None
    updated_entries: tuple[UpdatedEntry, ...] = field(default_factory=tuple)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    @property
    def bills_updated(self) -> int:
        """Number of ledger entries this payment touched."""
        return len(self.allocations)

    @property
    def is_conserved(self) -> bool:
        return self.amount == self.allocated_total + self.overpaid_amount


@dataclass(frozen=True)
class PartyBalance:
    """Aggregate outstanding balance and standing credit for one party."""

    party_id: UUID
    party_type: PartyType
    name: str
    outstanding: Decimal
    overpaid_amount: Decimal
    open_entry_count: int

    @property
    def net_balance(self) -> Decimal:
        """Outstanding less standing credit (negative when the party is in credit)."""
        return self.outstanding - self.overpaid_amount
