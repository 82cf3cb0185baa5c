"""
Module: settlement_kernel.models.party
Responsibility: ORM persistence for the counterparties payments are recorded
    against: clients (receivables) and suppliers (payables).
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - (party_type, name) is unique.
    - overpaid_amount is the party's standing credit and always equals the
      sum of ``remaining`` over its non-voided credit lots.  Only the credit
      ledger writes it.
    - version is an optimistic-lock counter bumped on every UPDATE.  Two
      transactions that both read the same party snapshot cannot both
      commit a change to it.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, enum_type
from settlement_kernel.domain.dtos import PartyInfo
from settlement_kernel.domain.values import ZERO, PartyType


class Party(TrackedBase):
    """
    A client or supplier.

    Guarantees:
        - party_type is set at creation and never changes.
        - overpaid_amount is never negative.

    Non-goals:
        - Contact details, tax ids and analytics counters live with the
          surrounding client/supplier modules, not here.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("party_type", "name", name="uq_party_type_name"),
        Index("idx_party_type", "party_type"),
    )

    party_type: Mapped[PartyType] = mapped_column(
        enum_type(PartyType),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Standing credit from overpayments
    overpaid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=ZERO,
    )

    last_payment_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    last_payment_amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PartyInfo:
        return PartyInfo(
            id=self.id,
            party_type=self.party_type,
            name=self.name,
            overpaid_amount=self.overpaid_amount,
            last_payment_date=self.last_payment_date,
            last_payment_amount=self.last_payment_amount,
        )

    def __repr__(self) -> str:
        return f"<Party {self.party_type.value}:{self.name}>"
