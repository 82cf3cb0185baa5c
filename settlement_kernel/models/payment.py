"""
Module: settlement_kernel.models.payment
Responsibility: ORM persistence for the payment record store and the credit
    ledger.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Tables:
    payment_records      -- one row per recorded payment (or credit
                            application); append-only, the unit of reversal.
    payment_allocations  -- ordered split of a payment across ledger entries.
    credit_lots          -- standing credit created by one overpaying payment.
    credit_consumptions  -- which credit application drew how much from
                            which lot.

Invariants enforced:
    - For a non-reversed record: amount == sum(amount_applied) + overpaid_amount
      (checked by the payment service before commit).
    - Records are immutable except the reversal fields, which go from unset
      to set exactly once; allocations and consumptions are fully immutable
      (see db/immutability.py).
    - A lot's remaining is within [0, amount]; once voided it is 0.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, enum_type
from settlement_kernel.domain.dtos import AllocationInfo, PaymentRecordInfo, UpdatedEntry
from settlement_kernel.domain.values import (
    ZERO,
    PartyType,
    PaymentMode,
    PaymentSource,
)


class PaymentAllocation(TrackedBase):
    """The portion of one payment applied to one ledger entry."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "position", name="uq_allocation_position"),
        Index("idx_allocation_ledger_entry", "ledger_entry_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_records.id"),
        nullable=False,
    )

    ledger_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_entries.id"),
        nullable=False,
    )

    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)

    # Order in which the allocation engine produced this line
    position: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self) -> AllocationInfo:
        return AllocationInfo(
            ledger_entry_id=self.ledger_entry_id,
            amount_applied=self.amount_applied,
            position=self.position,
        )


class PaymentRecord(TrackedBase):
    """
    One payment event and the allocations it produced.

    Contract:
        Created once per recorded payment.  Terminal except for the reversal
        fields (reversed, reversed_at, reversed_by, reversal_reason).

    Guarantees:
        - allocations are loaded in engine order (position ascending).
        - source == CREDIT records never carry overpaid_amount.
    """

    __tablename__ = "payment_records"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_payment_sequence"),
        Index("idx_payment_party_date", "party_id", "payment_date"),
        Index("idx_payment_type_date", "party_type", "payment_date"),
    )

    party_id: Mapped[UUID] = mapped_column(
        ForeignKey("parties.id"),
        nullable=False,
    )

    party_type: Mapped[PartyType] = mapped_column(
        enum_type(PartyType),
        nullable=False,
    )

    source: Mapped[PaymentSource] = mapped_column(
        enum_type(PaymentSource),
        nullable=False,
        default=PaymentSource.CASH,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_mode: Mapped[PaymentMode] = mapped_column(
        enum_type(PaymentMode),
        nullable=False,
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)

    # Portion of this payment that became standing credit
    overpaid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    sequence: Mapped[int] = mapped_column(nullable=False)

    reversed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reversed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    allocations: Mapped[list[PaymentAllocation]] = relationship(
        order_by=PaymentAllocation.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    def to_dto(
        self,
        updated_entries: tuple[UpdatedEntry, ...] = (),
    ) -> PaymentRecordInfo:
        return PaymentRecordInfo(
            id=self.id,
            party_id=self.party_id,
            party_type=self.party_type,
            source=self.source,
            amount=self.amount,
            payment_mode=self.payment_mode,
            payment_date=self.payment_date,
            recorded_by=self.recorded_by,
            allocations=tuple(a.to_dto() for a in self.allocations),
            overpaid_amount=self.overpaid_amount,
            reversed=self.reversed,
            sequence=self.sequence,
            reference_number=self.reference_number,
            notes=self.notes,
            reversed_at=self.reversed_at,
            reversed_by=self.reversed_by,
            reversal_reason=self.reversal_reason,
            updated_entries=updated_entries,
        )

    def __repr__(self) -> str:
        flag = " reversed" if self.reversed else ""
        return f"<PaymentRecord #{self.sequence} {self.amount}{flag}>"


class CreditLot(TrackedBase):
    """
    Standing credit created by one overpaying payment.

    Contract:
        ``remaining`` starts at ``amount`` and is drawn down oldest-lot-first
        by credit applications.  Reversing the originating payment voids the
        lot, which is only allowed while nothing has been drawn from it.
    """

    __tablename__ = "credit_lots"

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_credit_lot_payment"),
        Index("idx_credit_lot_party", "party_id", "sequence"),
    )

    party_id: Mapped[UUID] = mapped_column(
        ForeignKey("parties.id"),
        nullable=False,
    )

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_records.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    remaining: Mapped[Decimal] = mapped_column(nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def consumed(self) -> Decimal:
        return self.amount - self.remaining


class CreditConsumption(TrackedBase):
    """Amount a credit application drew from one lot."""

    __tablename__ = "credit_consumptions"

    __table_args__ = (
        Index("idx_credit_consumption_lot", "lot_id"),
        Index("idx_credit_consumption_payment", "payment_id"),
    )

    lot_id: Mapped[UUID] = mapped_column(
        ForeignKey("credit_lots.id"),
        nullable=False,
    )

    # The credit-application payment record that drew the amount
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_records.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)
