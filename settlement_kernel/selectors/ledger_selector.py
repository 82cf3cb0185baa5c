"""
Module: settlement_kernel.selectors.ledger_selector
Responsibility: Read-only views over ledger entries: open entries by party
    type and per-party balances.  Balances are recomputed from the entries
    on every read; nothing here is cached or stored.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - outstanding == sum(amount_due) over the party's open entries, by
      construction.
    - Money is summed in Python with Decimal.  SQL SUM over the SQLite text
      representation would go through float.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.dtos import LedgerEntryInfo, PartyBalance
from settlement_kernel.domain.values import ZERO, LedgerKind, PartyType
from settlement_kernel.exceptions import PartyNotFoundError
from settlement_kernel.models.ledger import LedgerEntry
from settlement_kernel.models.party import Party
from settlement_kernel.selectors.base import BaseSelector


def _is_open(entry: LedgerEntry) -> bool:
    return entry.is_open


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Derived balance reads.

    Guarantees:
        - Every balance is computed at query time from ledger entry rows.
        - All amounts are Decimal.
    """

    def open_entries_by_type(self, party_type: PartyType) -> list[LedgerEntryInfo]:
        """Open entries of every party of ``party_type``, oldest first."""
        kind = LedgerKind.for_party_type(party_type)
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.kind == kind.value)
            .order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
        )
        return self._dtos(stmt, keep=_is_open)

    def open_entries_for_party(self, party_id: UUID) -> list[LedgerEntryInfo]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.party_id == party_id)
            .order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
        )
        return self._dtos(stmt, keep=_is_open)

    def party_balance(self, party_id: UUID) -> PartyBalance:
        """
        Raises:
            PartyNotFoundError: unknown party.
        """
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        open_entries = self.open_entries_for_party(party_id)
        return PartyBalance(
            party_id=party.id,
            party_type=party.party_type,
            name=party.name,
            outstanding=sum((e.amount_due for e in open_entries), ZERO),
            overpaid_amount=party.overpaid_amount,
            open_entry_count=len(open_entries),
        )

    def balances_by_type(self, party_type: PartyType) -> list[PartyBalance]:
        """One balance per party of ``party_type``, in no particular order."""
        parties = self.session.execute(
            select(Party).where(Party.party_type == party_type)
        ).scalars().all()

        outstanding: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[UUID, int] = defaultdict(int)
        for entry in self.open_entries_by_type(party_type):
            outstanding[entry.party_id] += entry.amount_due
            counts[entry.party_id] += 1

        return [
            PartyBalance(
                party_id=party.id,
                party_type=party.party_type,
                name=party.name,
                outstanding=outstanding[party.id],
                overpaid_amount=party.overpaid_amount,
                open_entry_count=counts[party.id],
            )
            for party in parties
        ]
