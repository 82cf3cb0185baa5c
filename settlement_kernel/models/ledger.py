"""
Module: settlement_kernel.models.ledger
Responsibility: ORM persistence for ledger entries -- the sales and
    purchases whose payment fields this engine maintains.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - 0 <= amount_paid <= total_amount, checked by every mutation path
      (``apply_payment`` / ``unapply_payment``) and again by the flush-time
      guard in db/immutability.py; a violation raises InvariantViolation,
      never a clamp.
    - amount_due and payment_status are derived on access; neither is a
      column, so they cannot drift from amount_paid.
    - total_amount, party_id, entry_date, kind and sequence are frozen after
      insert (see db/immutability.py).

Design:
    Sale and Purchase share one table and one allocation capability
    (single-table inheritance on ``kind``).  The engine works against
    ``LedgerEntry``; the concrete classes only pin which party type owns
    them.
"""

from datetime import date
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.values import (
    ZERO,
    LedgerKind,
    PartyType,
    PaymentStatus,
    derive_status,
)
from settlement_kernel.exceptions import InvariantViolation


class LedgerEntry(TrackedBase):
    """
    One sale or one purchase with a billable total and running paid amount.

    Contract:
        Created by the owning sales/purchase module with amount_paid = 0.
        Mutated only through ``apply_payment`` / ``unapply_payment``, which
        are called only by the payment service.

    Guarantees:
        - ``amount_due == total_amount - amount_paid`` at all times.
        - ``payment_status`` follows the three-state rule.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_ledger_entry_sequence"),
        Index("idx_ledger_party_date", "party_id", "entry_date", "sequence"),
        Index("idx_ledger_kind", "kind"),
    )

    party_type: ClassVar[PartyType]

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    party_id: Mapped[UUID] = mapped_column(
        ForeignKey("parties.id"),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=ZERO,
    )

    # Creation order; FIFO tie-break for entries sharing an entry_date
    sequence: Mapped[int] = mapped_column(
        nullable=False,
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    due_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    last_payment_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    __mapper_args__ = {
        "polymorphic_on": "kind",
        "polymorphic_abstract": True,
    }

    @property
    def ledger_kind(self) -> LedgerKind:
        return LedgerKind(self.kind)

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @property
    def payment_status(self) -> PaymentStatus:
        return derive_status(self.amount_paid, self.total_amount)

    @property
    def is_open(self) -> bool:
        return self.amount_due > ZERO

    def apply_payment(self, amount: Decimal, payment_date: date | None = None) -> None:
        """
        Increase amount_paid by ``amount``.

        Raises:
            InvariantViolation: if amount is not positive or exceeds amount_due.
        """
        if amount <= ZERO:
            raise InvariantViolation(
                "positive_application",
                f"cannot apply {amount} to ledger entry {self.id}",
                ledger_entry_id=str(self.id),
            )
        if amount > self.amount_due:
            raise InvariantViolation(
                "paid_within_total",
                f"applying {amount} to ledger entry {self.id} would exceed "
                f"its amount due of {self.amount_due}",
                ledger_entry_id=str(self.id),
            )
        self.amount_paid = self.amount_paid + amount
        if payment_date is not None:
            self.last_payment_date = payment_date

    def unapply_payment(self, amount: Decimal) -> None:
        """
        Decrease amount_paid by ``amount``.

        Raises:
            InvariantViolation: if the result would be negative.  This means
                the payment history is corrupted; it is never clamped.
        """
        if amount > self.amount_paid:
            raise InvariantViolation(
                "paid_non_negative",
                f"reversing {amount} on ledger entry {self.id} would drive "
                f"amount_paid ({self.amount_paid}) negative",
                ledger_entry_id=str(self.id),
            )
        self.amount_paid = self.amount_paid - amount

    def to_dto(self) -> LedgerEntryInfo:
        return LedgerEntryInfo(
            id=self.id,
            kind=self.ledger_kind,
            party_id=self.party_id,
            entry_date=self.entry_date,
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            sequence=self.sequence,
            reference_number=self.reference_number,
            due_date=self.due_date,
            last_payment_date=self.last_payment_date,
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.reference_number or self.id}: "
            f"{self.amount_paid}/{self.total_amount}>"
        )


class SaleEntry(LedgerEntry):
    """A sale; the amount due is a receivable from a client."""

    party_type = PartyType.CLIENT

    __mapper_args__ = {"polymorphic_identity": LedgerKind.SALE.value}


class PurchaseEntry(LedgerEntry):
    """A purchase; the amount due is a payable to a supplier."""

    party_type = PartyType.SUPPLIER

    __mapper_args__ = {"polymorphic_identity": LedgerKind.PURCHASE.value}


ENTRY_CLASSES: dict[LedgerKind, type[LedgerEntry]] = {
    LedgerKind.SALE: SaleEntry,
    LedgerKind.PURCHASE: PurchaseEntry,
}
