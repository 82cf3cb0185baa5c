"""
Module: settlement_engines.aging
Responsibility:
    Age open receivables or payables and fold their amounts due into the
    four dashboard buckets (current, 31-60, 61-90, 90+ days), plus the
    overdue/current split.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel/domain and logging.

Invariants enforced:
    - Purity: no clock access (the caller passes as_of_date), no I/O.
    - Every open item lands in exactly one bucket; the four buckets sum to
      total_outstanding.
    - current_amount + overdue_amount == total_outstanding.
    - Items dated after as_of_date have age 0 and count as current.

Failure modes:
    - ValueError on malformed bucket boundaries.
    - ValueError when an age does not fall into any bucket.

Usage:
    from settlement_engines.aging import AgingCalculator, AgingItem

    buckets = AgingCalculator().compute(
        items=[AgingItem(entry_id=e.id, party_id=e.party_id,
                         entry_date=e.entry_date, amount_due=e.amount_due)],
        as_of_date=date(2024, 6, 30),
        party_type=PartyType.CLIENT,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.values import ZERO, PartyType
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of ages in days.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        return self.max_days is None


CURRENT = "current"
DAYS_31_60 = "days_31_60"
DAYS_61_90 = "days_61_90"
DAYS_90_PLUS = "days_90_plus"

BUCKET_NAMES: tuple[str, ...] = (CURRENT, DAYS_31_60, DAYS_61_90, DAYS_90_PLUS)


def buckets_from_boundaries(boundaries: Sequence[int]) -> tuple[AgeBucket, ...]:
    """
    Build the four buckets from the upper bounds of the first three.

    ``(30, 60, 90)`` gives 0-30, 31-60, 61-90 and 91+.

    Raises:
        ValueError: not exactly three strictly increasing non-negative bounds.
    """
    bounds = list(boundaries)
    if len(bounds) != 3:
        raise ValueError(f"Expected 3 bucket boundaries, got {len(bounds)}")
    if bounds[0] < 0 or not bounds[0] < bounds[1] < bounds[2]:
        raise ValueError(f"Bucket boundaries must be increasing and non-negative: {bounds}")
    return (
        AgeBucket(CURRENT, 0, bounds[0]),
        AgeBucket(DAYS_31_60, bounds[0] + 1, bounds[1]),
        AgeBucket(DAYS_61_90, bounds[1] + 1, bounds[2]),
        AgeBucket(DAYS_90_PLUS, bounds[2] + 1, None),
    )


STANDARD_BUCKETS: tuple[AgeBucket, ...] = buckets_from_boundaries((30, 60, 90))


@dataclass(frozen=True)
class AgingItem:
    """One open ledger entry as the aging fold sees it."""

    entry_id: str | UUID
    party_id: str | UUID
    entry_date: date
    amount_due: Decimal


@dataclass(frozen=True)
class AgingBuckets:
    """
    Bucketed aging summary for one party type.

    Guarantees:
        - current + days_31_60 + days_61_90 + days_90_plus == total_outstanding.
        - current_amount + overdue_amount == total_outstanding.
    """

    party_type: PartyType
    as_of_date: date
    current: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    days_90_plus: Decimal
    total_outstanding: Decimal
    overdue_amount: Decimal
    current_amount: Decimal
    entry_count: int

    def by_bucket(self) -> dict[str, Decimal]:
        return {
            CURRENT: self.current,
            DAYS_31_60: self.days_31_60,
            DAYS_61_90: self.days_61_90,
            DAYS_90_PLUS: self.days_90_plus,
        }


class AgingCalculator:
    """
    Pure aging fold.

    Contract:
        All data arrives as parameters; nothing is read or written.
    """

    DEFAULT_BUCKETS = STANDARD_BUCKETS

    def calculate_age(self, entry_date: date, as_of_date: date) -> int:
        """Whole days from entry_date to as_of_date; future-dated entries are 0."""
        return max(0, (as_of_date - entry_date).days)

    def classify(
        self,
        age_days: int,
        buckets: Sequence[AgeBucket] | None = None,
    ) -> AgeBucket:
        """
        Raises:
            ValueError: If age doesn't fit any bucket.
        """
        if buckets is None:
            buckets = self.DEFAULT_BUCKETS
        for bucket in buckets:
            if bucket.contains(age_days):
                return bucket
        logger.warning("age_classification_no_bucket", extra={
            "age_days": age_days,
            "bucket_count": len(buckets),
        })
        raise ValueError(f"Age {age_days} does not fit any bucket")

    @traced_engine("aging", "1.0", fingerprint_fields=("items", "as_of_date", "party_type"))
    def compute(
        self,
        items: Sequence[AgingItem],
        as_of_date: date,
        party_type: PartyType,
        buckets: Sequence[AgeBucket] | None = None,
        overdue_after_days: int = 30,
    ) -> AgingBuckets:
        """
        Fold open items into buckets.

        Items with amount_due <= 0 are ignored.  An item is overdue when its
        age exceeds ``overdue_after_days``.
        """
        if buckets is None:
            buckets = self.DEFAULT_BUCKETS
        if tuple(b.name for b in buckets) != BUCKET_NAMES:
            raise ValueError(f"Buckets must be named {BUCKET_NAMES}")

        totals: dict[str, Decimal] = {name: ZERO for name in BUCKET_NAMES}
        overdue = ZERO
        count = 0

        for item in items:
            if item.amount_due <= ZERO:
                continue
            age = self.calculate_age(item.entry_date, as_of_date)
            bucket = self.classify(age, buckets)
            totals[bucket.name] += item.amount_due
            if age > overdue_after_days:
                overdue += item.amount_due
            count += 1

        total = sum(totals.values(), ZERO)

        logger.info("aging_computed", extra={
            "party_type": party_type.value,
            "as_of_date": as_of_date.isoformat(),
            "entry_count": count,
            "total_outstanding": str(total),
            "overdue_amount": str(overdue),
        })

        return AgingBuckets(
            party_type=party_type,
            as_of_date=as_of_date,
            current=totals[CURRENT],
            days_31_60=totals[DAYS_31_60],
            days_61_90=totals[DAYS_61_90],
            days_90_plus=totals[DAYS_90_PLUS],
            total_outstanding=total,
            overdue_amount=overdue,
            current_amount=total - overdue,
            entry_count=count,
        )
