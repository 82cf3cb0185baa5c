"""
Tests for the pure aging calculator.

Verifies:
- Bucket edges (30/31, 60/61, 90/91)
- Future-dated entries count as current
- Overdue split and bucket totals
- Custom boundaries and validation
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from settlement_engines.aging import (
    BUCKET_NAMES,
    CURRENT,
    DAYS_31_60,
    DAYS_61_90,
    DAYS_90_PLUS,
    STANDARD_BUCKETS,
    AgeBucket,
    AgingCalculator,
    AgingItem,
    buckets_from_boundaries,
)
from settlement_kernel.domain.values import ZERO, PartyType

AS_OF = date(2024, 6, 30)


def _item(age_days: int, amount: str = "100", entry_id: str | None = None) -> AgingItem:
    return AgingItem(
        entry_id=entry_id or f"e{age_days}",
        party_id="p1",
        entry_date=AS_OF - timedelta(days=age_days),
        amount_due=Decimal(amount),
    )


@pytest.fixture
def calculator():
    return AgingCalculator()


class TestClassification:

    @pytest.mark.parametrize(
        "age, bucket",
        [
            (0, CURRENT),
            (30, CURRENT),
            (31, DAYS_31_60),
            (60, DAYS_31_60),
            (61, DAYS_61_90),
            (90, DAYS_61_90),
            (91, DAYS_90_PLUS),
            (4000, DAYS_90_PLUS),
        ],
    )
    def test_bucket_edges(self, calculator, age, bucket):
        assert calculator.classify(age).name == bucket

    def test_future_dated_entry_has_age_zero(self, calculator):
        assert calculator.calculate_age(AS_OF + timedelta(days=5), AS_OF) == 0

    def test_age_in_whole_days(self, calculator):
        assert calculator.calculate_age(date(2024, 5, 31), AS_OF) == 30

    def test_age_outside_custom_buckets_raises(self, calculator):
        buckets = (AgeBucket("only", 10, 20),)
        with pytest.raises(ValueError):
            calculator.classify(5, buckets)


class TestCompute:

    def test_buckets_sum_to_total(self, calculator):
        items = [
            _item(10, "100"),
            _item(45, "200"),
            _item(75, "300"),
            _item(120, "400"),
        ]
        result = calculator.compute(items=items, as_of_date=AS_OF, party_type=PartyType.CLIENT)

        assert result.by_bucket() == {
            CURRENT: Decimal("100"),
            DAYS_31_60: Decimal("200"),
            DAYS_61_90: Decimal("300"),
            DAYS_90_PLUS: Decimal("400"),
        }
        assert result.total_outstanding == Decimal("1000")
        assert result.overdue_amount == Decimal("900")
        assert result.current_amount == Decimal("100")
        assert result.entry_count == 4
        assert sum(result.by_bucket().values(), ZERO) == result.total_outstanding

    def test_future_dated_counts_as_current(self, calculator):
        future = AgingItem("f", "p1", AS_OF + timedelta(days=10), Decimal("50"))
        result = calculator.compute(items=[future], as_of_date=AS_OF, party_type=PartyType.CLIENT)

        assert result.current == Decimal("50")
        assert result.overdue_amount == ZERO

    def test_settled_items_ignored(self, calculator):
        items = [_item(10, "0"), _item(100, "25")]
        result = calculator.compute(items=items, as_of_date=AS_OF, party_type=PartyType.SUPPLIER)

        assert result.entry_count == 1
        assert result.total_outstanding == Decimal("25")

    def test_empty(self, calculator):
        result = calculator.compute(items=[], as_of_date=AS_OF, party_type=PartyType.CLIENT)

        assert result.total_outstanding == ZERO
        assert result.entry_count == 0
        assert result.party_type is PartyType.CLIENT
        assert result.as_of_date == AS_OF

    def test_overdue_threshold_is_configurable(self, calculator):
        items = [_item(10, "100"), _item(20, "100")]
        result = calculator.compute(
            items=items,
            as_of_date=AS_OF,
            party_type=PartyType.CLIENT,
            overdue_after_days=15,
        )

        assert result.overdue_amount == Decimal("100")
        assert result.current == Decimal("200")

    def test_custom_boundaries(self, calculator):
        buckets = buckets_from_boundaries((15, 45, 60))
        items = [_item(16, "10"), _item(61, "20")]
        result = calculator.compute(
            items=items,
            as_of_date=AS_OF,
            party_type=PartyType.CLIENT,
            buckets=buckets,
        )

        assert result.days_31_60 == Decimal("10")
        assert result.days_90_plus == Decimal("20")


class TestBoundaries:

    def test_standard_buckets(self):
        assert tuple(b.name for b in STANDARD_BUCKETS) == BUCKET_NAMES
        assert STANDARD_BUCKETS[-1].is_unbounded
        assert (STANDARD_BUCKETS[1].min_days, STANDARD_BUCKETS[1].max_days) == (31, 60)

    @pytest.mark.parametrize("bounds", [(30, 60), (60, 30, 90), (-1, 30, 60), (30, 30, 90)])
    def test_invalid_boundaries_rejected(self, bounds):
        with pytest.raises(ValueError):
            buckets_from_boundaries(bounds)

    def test_bucket_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            AgeBucket("bad", 10, 5)
