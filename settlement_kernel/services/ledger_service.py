"""
LedgerService -- the ledger-entry store collaborator.

Responsibility:
    Brings sales and purchases into existence with ``amount_paid = 0`` and
    serves the open-entry reads the allocation shell needs.  It never
    changes ``amount_paid``; only the payment service does, through
    ``LedgerEntry.apply_payment`` / ``unapply_payment``.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.values import ZERO, LedgerKind, to_amount
from settlement_kernel.exceptions import LedgerEntryNotFoundError, ValidationError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.ledger import ENTRY_CLASSES, LedgerEntry
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.party_service import PartyService
from settlement_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


class LedgerService(BaseService[LedgerEntry]):
    """Register and read sales and purchases."""

    def __init__(self, session, decimal_places: int = 2):
        super().__init__(session)
        self._decimal_places = decimal_places
        self._parties = PartyService(session)
        self._sequences = SequenceService(session)

    # -- writes ---------------------------------------------------------------

    def register_entry(
        self,
        kind: LedgerKind,
        party_id: UUID,
        total_amount: Decimal | int | str,
        entry_date: date,
        reference_number: str | None = None,
        due_date: date | None = None,
    ) -> LedgerEntryInfo:
        """
        Create a sale or purchase for ``party_id``.

        Raises:
            ValidationError: negative or malformed total, missing entry_date.
            PartyNotFoundError: unknown party.
            PartyTypeMismatchError: a sale for a supplier or vice versa.
        """
        total = to_amount(total_amount, field="total_amount", decimal_places=self._decimal_places)
        if total < ZERO:
            raise ValidationError("total_amount must not be negative", field="total_amount")
        if entry_date is None:
            raise ValidationError("entry_date is required", field="entry_date")

        party = self._parties.lock_for_update(party_id, kind.party_type)

        entry = ENTRY_CLASSES[kind](
            party_id=party.id,
            entry_date=entry_date,
            total_amount=total,
            amount_paid=ZERO,
            sequence=self._sequences.next_value(SequenceService.LEDGER_ENTRY),
            reference_number=reference_number,
            due_date=due_date,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_registered",
            extra={
                "ledger_entry_id": str(entry.id),
                "kind": kind.value,
                "party_id": str(party.id),
                "total_amount": str(total),
                "sequence": entry.sequence,
            },
        )
        return entry.to_dto()

    def register_sale(self, client_id: UUID, total_amount, entry_date: date, **kwargs) -> LedgerEntryInfo:
        return self.register_entry(LedgerKind.SALE, client_id, total_amount, entry_date, **kwargs)

    def register_purchase(self, supplier_id: UUID, total_amount, entry_date: date, **kwargs) -> LedgerEntryInfo:
        return self.register_entry(LedgerKind.PURCHASE, supplier_id, total_amount, entry_date, **kwargs)

    # -- reads ----------------------------------------------------------------

    def get(self, ledger_entry_id: UUID) -> LedgerEntryInfo:
        """
        Raises:
            LedgerEntryNotFoundError: unknown entry.
        """
        return self._get(ledger_entry_id).to_dto()

    def open_entries(self, party_id: UUID) -> list[LedgerEntryInfo]:
        """The party's entries with amount_due > 0 in allocation order."""
        return [e.to_dto() for e in self._open_entries(party_id, for_update=False)]

    # -- locked rows for the payment shell ------------------------------------

    def get_for_update(self, ledger_entry_id: UUID) -> LedgerEntry:
        """
        The entry row, locked (FOR UPDATE on PostgreSQL) and refreshed.

        Raises:
            LedgerEntryNotFoundError: unknown entry.
        """
        return self._get(ledger_entry_id, for_update=True)

    def open_entries_for_update(self, party_id: UUID) -> list[LedgerEntry]:
        """Locked open rows in the same order as ``open_entries``."""
        return self._open_entries(party_id, for_update=True)

    def _get(self, ledger_entry_id: UUID, for_update: bool = False) -> LedgerEntry:
        stmt = select(LedgerEntry).where(LedgerEntry.id == ledger_entry_id)
        if for_update:
            stmt = self.locked(stmt)
        entry = self.session.execute(stmt).scalar_one_or_none()
        if entry is None:
            raise LedgerEntryNotFoundError(str(ledger_entry_id))
        return entry

    def _open_entries(self, party_id: UUID, for_update: bool) -> list[LedgerEntry]:
        """
        Open entries ordered by entry_date, then creation sequence.

        ``amount_due`` is not a column, and money is stored as text on
        SQLite, so the open filter runs in Python over the party's rows.
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.party_id == party_id)
            .order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
        )
        if for_update:
            stmt = self.locked(stmt)
        return [e for e in self.session.execute(stmt).scalars() if e.is_open]
