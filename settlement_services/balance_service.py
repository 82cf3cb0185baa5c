"""
BalanceService -- party balances recomputed from the ledger.

Responsibility:
    Answers "how much does this party owe (or are we owed)" and "who owes
    the most".  Nothing is cached: every call folds the party's open ledger
    entries, so balances can never drift from the entries they summarize.

Architecture position:
    Services -- read-only.  Never commits, never locks.  Safe to run while
    payments are being recorded for the same party; the result reflects the
    last committed state visible to the session.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from settlement_config import SettlementConfig, get_active_config
from settlement_kernel.domain.dtos import LedgerEntryInfo, PartyBalance
from settlement_kernel.domain.values import ZERO, PartyType, to_party_type
from settlement_kernel.exceptions import ValidationError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.balance")


class BalanceService:
    """Party balance tracker."""

    def __init__(self, session: Session, config: SettlementConfig | None = None):
        self._session = session
        self._config = config or get_active_config()
        self._ledger = LedgerSelector(session)

    def get_balance(self, party_id: UUID) -> PartyBalance:
        """
        Outstanding amount and standing credit for one party.

        Raises:
            PartyNotFoundError: unknown party.
        """
        return self._ledger.party_balance(party_id)

    def open_entries(self, party_id: UUID) -> list[LedgerEntryInfo]:
        """The party's open entries in the order a payment would reach them."""
        return self._ledger.open_entries_for_party(party_id)

    def list_top_outstanding(
        self,
        party_type: PartyType | str,
        limit: int | None = None,
    ) -> list[PartyBalance]:
        """
        Parties of ``party_type`` ranked by outstanding amount, largest first.

        Ties are broken by party id (string order) so the ranking is stable
        across calls.  Parties with nothing outstanding are left out.

        Raises:
            ValidationError: unknown party_type, or limit is not positive.
        """
        party_type = to_party_type(party_type)
        if limit is None:
            limit = self._config.payments.top_outstanding_limit
        if limit <= 0:
            raise ValidationError("limit must be positive", field="limit")

        balances = [
            b for b in self._ledger.balances_by_type(party_type)
            if b.outstanding > ZERO
        ]
        balances.sort(key=lambda b: (-b.outstanding, str(b.party_id)))

        logger.debug("top_outstanding_listed", extra={
            "party_type": party_type.value,
            "limit": limit,
            "candidates": len(balances),
        })
        return balances[:limit]
