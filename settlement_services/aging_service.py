"""
AgingService -- receivable and payable aging over the live ledger.

Feeds the open entries of one party type to the pure ``AgingCalculator``
using the configured bucket boundaries, and assembles the accounts
dashboard (aging plus the parties with the largest balances).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from settlement_config import SettlementConfig, get_active_config
from settlement_engines.aging import (
    AgingBuckets,
    AgingCalculator,
    AgingItem,
    buckets_from_boundaries,
)
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import PartyBalance
from settlement_kernel.domain.values import ZERO, PartyType, to_party_type
from settlement_kernel.logging_config import get_logger
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_services.balance_service import BalanceService

logger = get_logger("services.aging")


@dataclass(frozen=True)
class AccountsSummary:
    """Receivables (or payables) dashboard for one party type."""

    party_type: PartyType
    as_of_date: date
    aging: AgingBuckets
    top_outstanding: tuple[PartyBalance, ...]
    # Standing credit held across all parties of the type
    total_credit: Decimal

    @property
    def total_outstanding(self) -> Decimal:
        return self.aging.total_outstanding


class AgingService:
    """Aging analyzer."""

    def __init__(
        self,
        session: Session,
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._ledger = LedgerSelector(session)
        self._balances = BalanceService(session, config=self._config)
        self._calculator = AgingCalculator()
        self._buckets = buckets_from_boundaries(self._config.aging.bucket_boundaries)

    def compute_aging(
        self,
        party_type: PartyType | str,
        as_of_date: date | None = None,
    ) -> AgingBuckets:
        """
        Bucket every open entry of ``party_type`` by age at ``as_of_date`` (default: today).

        Raises:
            ValidationError: unknown party_type.
        """
        party_type = to_party_type(party_type)
        as_of = as_of_date or self._clock.today()
        items = [
            AgingItem(
                entry_id=entry.id,
                party_id=entry.party_id,
                entry_date=entry.entry_date,
                amount_due=entry.amount_due,
            )
            for entry in self._ledger.open_entries_by_type(party_type)
        ]
        return self._calculator.compute(
            items=items,
            as_of_date=as_of,
            party_type=party_type,
            buckets=self._buckets,
            overdue_after_days=self._config.aging.overdue_after_days,
        )

    def accounts_summary(
        self,
        party_type: PartyType | str,
        as_of_date: date | None = None,
        top_limit: int | None = None,
    ) -> AccountsSummary:
        """
        Aging, the top outstanding parties and the total standing credit.

        Raises:
            ValidationError: unknown party_type, or top_limit is not positive.
        """
        party_type = to_party_type(party_type)
        as_of = as_of_date or self._clock.today()
        aging = self.compute_aging(party_type, as_of)
        top = self._balances.list_top_outstanding(party_type, top_limit)
        total_credit = sum(
            (b.overpaid_amount for b in self._ledger.balances_by_type(party_type)),
            ZERO,
        )

        logger.info("accounts_summary_built", extra={
            "party_type": party_type.value,
            "as_of_date": as_of.isoformat(),
            "total_outstanding": str(aging.total_outstanding),
            "overdue_amount": str(aging.overdue_amount),
            "total_credit": str(total_credit),
            "top_count": len(top),
        })
        return AccountsSummary(
            party_type=party_type,
            as_of_date=as_of,
            aging=aging,
            top_outstanding=tuple(top),
            total_credit=total_credit,
        )
