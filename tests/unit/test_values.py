"""
Unit tests for domain value helpers, DTO derivations and clocks.

Pure functions only; no database.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.clock import DeterministicClock, SystemClock
from settlement_kernel.domain.dtos import (
    AllocationInfo,
    LedgerEntryInfo,
    PartyBalance,
    PaymentRecordInfo,
)
from settlement_kernel.domain.values import (
    LedgerKind,
    PartyType,
    PaymentMode,
    PaymentSource,
    PaymentStatus,
    derive_status,
    display_amount,
    to_amount,
    to_party_type,
)
from settlement_kernel.exceptions import ValidationError


class TestToAmount:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("10", Decimal("10")),
            (" 10.50 ", Decimal("10.50")),
            (7, Decimal("7")),
            (Decimal("0.01"), Decimal("0.01")),
            ("1E+2", Decimal("100")),
        ],
    )
    def test_accepts(self, value, expected):
        assert to_amount(value) == expected

    @pytest.mark.parametrize("value", [1.5, True, None, "abc", "", "NaN", "Infinity", [1]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError) as exc_info:
            to_amount(value, field="amount")
        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("100.000", Decimal("100.00")),
            ("5.1000", Decimal("5.10")),
            (Decimal("0.000"), Decimal("0.00")),
            (Decimal("12.3400000"), Decimal("12.34")),
        ],
    )
    def test_trailing_zeros_accepted(self, value, expected):
        amount = to_amount(value)

        assert amount == expected
        assert amount.as_tuple().exponent == -2

    def test_trailing_zeros_with_zero_places(self):
        assert to_amount("7.00", decimal_places=0) == Decimal("7")
        with pytest.raises(ValidationError):
            to_amount("7.50", decimal_places=0)

    def test_too_many_places(self):
        with pytest.raises(ValidationError, match="decimal places"):
            to_amount("1.001")

    def test_places_configurable(self):
        assert to_amount("1.001", decimal_places=3) == Decimal("1.001")
        assert to_amount("1.123456789", decimal_places=None) == Decimal("1.123456789")

    def test_field_name_in_error(self):
        with pytest.raises(ValidationError) as exc_info:
            to_amount("x", field="total_amount")
        assert exc_info.value.field == "total_amount"


class TestDeriveStatus:

    @pytest.mark.parametrize(
        "paid, total, status",
        [
            ("0", "100", PaymentStatus.PENDING),
            ("0.01", "100", PaymentStatus.PARTIAL),
            ("99.99", "100", PaymentStatus.PARTIAL),
            ("100", "100", PaymentStatus.PAID),
            ("100.00", "100", PaymentStatus.PAID),
            ("0", "0", PaymentStatus.PAID),
        ],
    )
    def test_three_states(self, paid, total, status):
        assert derive_status(Decimal(paid), Decimal(total)) is status


class TestDisplayAmount:

    def test_half_even_by_default(self):
        assert display_amount(Decimal("2.345")) == Decimal("2.34")
        assert display_amount(Decimal("2.355")) == Decimal("2.36")

    def test_rounding_and_places(self):
        assert display_amount(Decimal("2.345"), rounding=ROUND_HALF_UP) == Decimal("2.35")
        assert display_amount(Decimal("2.5"), decimal_places=0) == Decimal("2")


class TestEnums:

    def test_ledger_kind_party_type(self):
        assert LedgerKind.SALE.party_type is PartyType.CLIENT
        assert LedgerKind.PURCHASE.party_type is PartyType.SUPPLIER

    def test_kind_for_party_type(self):
        assert LedgerKind.for_party_type(PartyType.CLIENT) is LedgerKind.SALE
        assert LedgerKind.for_party_type(PartyType.SUPPLIER) is LedgerKind.PURCHASE

    def test_kind_for_party_type_string(self):
        assert LedgerKind.for_party_type("client") is LedgerKind.SALE
        assert LedgerKind.for_party_type("supplier") is LedgerKind.PURCHASE

    def test_kind_for_unknown_party_type(self):
        with pytest.raises(ValidationError):
            LedgerKind.for_party_type("vendor")

    @pytest.mark.parametrize("value", [PartyType.SUPPLIER, "supplier"])
    def test_to_party_type(self, value):
        assert to_party_type(value) is PartyType.SUPPLIER

    @pytest.mark.parametrize("value", ["SUPPLIER", "", None, 1, ["client"]])
    def test_to_party_type_rejects(self, value):
        with pytest.raises(ValidationError) as exc_info:
            to_party_type(value)
        assert exc_info.value.field == "party_type"

    def test_string_values(self):
        assert PartyType("client") is PartyType.CLIENT
        assert PaymentMode("bank_transfer") is PaymentMode.BANK_TRANSFER
        assert PaymentSource.CREDIT == "credit"


class TestDtoDerivations:

    def _entry(self, total, paid):
        return LedgerEntryInfo(
            id=uuid4(),
            kind=LedgerKind.SALE,
            party_id=uuid4(),
            entry_date=date(2024, 6, 1),
            total_amount=Decimal(total),
            amount_paid=Decimal(paid),
            sequence=1,
        )

    def test_entry_amount_due_and_status(self):
        entry = self._entry("100", "40")

        assert entry.amount_due == Decimal("60")
        assert entry.payment_status is PaymentStatus.PARTIAL
        assert entry.is_open

    def test_settled_entry_not_open(self):
        assert not self._entry("100", "100").is_open
        assert not self._entry("0", "0").is_open

    def test_payment_conservation(self):
        record = PaymentRecordInfo(
            id=uuid4(),
            party_id=uuid4(),
            party_type=PartyType.CLIENT,
            source=PaymentSource.CASH,
            amount=Decimal("150"),
            payment_mode=PaymentMode.CASH,
            payment_date=date(2024, 6, 15),
            recorded_by="cashier",
            allocations=(
                AllocationInfo(ledger_entry_id=uuid4(), amount_applied=Decimal("60"), position=0),
                AllocationInfo(ledger_entry_id=uuid4(), amount_applied=Decimal("40"), position=1),
            ),
            overpaid_amount=Decimal("50"),
            reversed=False,
            sequence=1,
        )

        assert record.allocated_total == Decimal("100")
        assert record.bills_updated == 2
        assert record.is_conserved

    def test_net_balance(self):
        balance = PartyBalance(
            party_id=uuid4(),
            party_type=PartyType.CLIENT,
            name="acme",
            outstanding=Decimal("30"),
            overpaid_amount=Decimal("45"),
            open_entry_count=1,
        )

        assert balance.net_balance == Decimal("-15")


class TestClocks:

    def test_system_clock_is_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_deterministic_clock(self):
        start = datetime(2024, 6, 30, 23, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.now() == clock.now() == start
        clock.advance(3600)
        assert clock.today() == date(2024, 7, 1)
        clock.advance_days(2)
        assert clock.today() == date(2024, 7, 3)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        target = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)

        assert clock.now() == target

    def test_naive_time_refused(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            DeterministicClock(datetime(2024, 6, 30, 9, 0))
