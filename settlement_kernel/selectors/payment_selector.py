"""
Module: settlement_kernel.selectors.payment_selector
Responsibility: Read side of the payment record store -- single lookups,
    filtered and paged payment history, and the payments that touched a
    given ledger entry.
Architecture position: Kernel > Selectors.

Ordering:
    History is newest first: payment_date DESC, then sequence DESC, so two
    payments on the same day list in reverse recording order.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from math import ceil
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.domain.dtos import PaymentRecordInfo
from settlement_kernel.domain.values import ZERO, PartyType, PaymentMode
from settlement_kernel.exceptions import PaymentNotFoundError, ValidationError
from settlement_kernel.models.payment import PaymentAllocation, PaymentRecord
from settlement_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PaymentPage:
    """One page of payment history plus totals over the whole filtered set."""

    items: tuple[PaymentRecordInfo, ...]
    page: int
    limit: int
    total_count: int
    # Sum of non-reversed amounts across every page
    total_amount: Decimal

    @property
    def pages(self) -> int:
        return ceil(self.total_count / self.limit) if self.total_count else 0


class PaymentSelector(BaseSelector[PaymentRecord]):
    """Payment history queries."""

    def __init__(self, session, max_page_size: int = 200):
        super().__init__(session)
        self._max_page_size = max_page_size

    def get(self, payment_id: UUID) -> PaymentRecordInfo:
        """
        Raises:
            PaymentNotFoundError: unknown payment.
        """
        record = self.session.get(PaymentRecord, payment_id)
        if record is None:
            raise PaymentNotFoundError(str(payment_id))
        return record.to_dto()

    def list_payments(
        self,
        party_type: PartyType | None = None,
        party_id: UUID | None = None,
        payment_mode: PaymentMode | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        include_reversed: bool = True,
        page: int = 1,
        limit: int = 50,
    ) -> PaymentPage:
        """
        Filtered payment history, newest first.

        Date bounds are inclusive.

        Raises:
            ValidationError: page < 1, limit outside 1..max_page_size, or
                start_date after end_date.
        """
        if page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if limit < 1 or limit > self._max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self._max_page_size}",
                field="limit",
            )
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date is after end_date", field="start_date")

        conditions = []
        if party_type is not None:
            conditions.append(PaymentRecord.party_type == party_type)
        if party_id is not None:
            conditions.append(PaymentRecord.party_id == party_id)
        if payment_mode is not None:
            conditions.append(PaymentRecord.payment_mode == payment_mode)
        if start_date is not None:
            conditions.append(PaymentRecord.payment_date >= start_date)
        if end_date is not None:
            conditions.append(PaymentRecord.payment_date <= end_date)
        if not include_reversed:
            conditions.append(PaymentRecord.reversed.is_(False))

        total_count = self.session.execute(
            select(func.count(PaymentRecord.id)).where(*conditions)
        ).scalar_one()

        amounts = self.session.execute(
            select(PaymentRecord.amount).where(*conditions, PaymentRecord.reversed.is_(False))
        ).scalars()
        total_amount = sum(amounts, ZERO)

        records = self.session.execute(
            select(PaymentRecord)
            .where(*conditions)
            .order_by(PaymentRecord.payment_date.desc(), PaymentRecord.sequence.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()

        return PaymentPage(
            items=tuple(r.to_dto() for r in records),
            page=page,
            limit=limit,
            total_count=total_count,
            total_amount=total_amount,
        )

    def payments_for_entry(self, ledger_entry_id: UUID) -> list[PaymentRecordInfo]:
        """Every payment (reversed or not) that allocated to the entry, oldest first."""
        stmt = (
            select(PaymentRecord)
            .join(PaymentAllocation, PaymentAllocation.payment_id == PaymentRecord.id)
            .where(PaymentAllocation.ledger_entry_id == ledger_entry_id)
            .order_by(PaymentRecord.sequence)
        )
        return self._dtos(stmt)
