"""
Property tests for PaymentService over generated ledgers and payment histories.

Each example registers a fresh client with random entries, replays a random
mix of cash payments and credit applications, then checks that every cash
unit received is either on an entry or held as party credit, and that
reversing the next payment puts every entry and the party credit back.
"""

from datetime import date, timedelta
from decimal import ROUND_DOWN, Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from settlement_kernel.domain.values import ZERO, PartyType, PaymentSource
from settlement_kernel.services.ledger_service import LedgerService
from settlement_services.balance_service import BalanceService

PAY_DATE = date(2024, 6, 15)
CENT = Decimal("0.01")

totals = st.integers(min_value=0, max_value=50_000).map(lambda cents: Decimal(cents) * CENT)
payments = st.integers(min_value=1, max_value=40_000).map(lambda cents: Decimal(cents) * CENT)
credit_shares = st.sampled_from([None, Decimal("0.25"), Decimal("0.5"), Decimal("1")])

operations = st.lists(
    st.one_of(
        st.tuples(st.just("pay"), payments),
        st.tuples(st.just("credit"), credit_shares),
    ),
    max_size=6,
)

property_settings = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


class _Ledger:
    """One generated client, its entries and the cash it has paid in."""

    def __init__(self, session, config, payment_service, make_client, entry_totals):
        self.session = session
        self.service = payment_service
        self.balances = BalanceService(session, config=config)
        self.client = make_client()
        ledger = LedgerService(session)
        self.entry_ids = [
            ledger.register_sale(self.client.id, total, date(2024, 5, 1) + timedelta(days=i % 3)).id
            for i, total in enumerate(entry_totals)
        ]
        session.commit()
        self.cash_received = ZERO

    def pay(self, amount):
        record = self.service.record_payment(
            party_id=self.client.id, party_type=PartyType.CLIENT, amount=amount,
            payment_date=PAY_DATE, recorded_by="cashier",
        )
        assert record.source is PaymentSource.CASH
        assert record.is_conserved
        self.cash_received += record.amount
        return record

    def use_credit(self, share):
        amount = None
        if share is not None:
            amount = (self.credit() * share).quantize(CENT, rounding=ROUND_DOWN)
            if amount == ZERO:
                amount = None
        record = self.service.apply_credit(self.client.id, "cashier", PAY_DATE, amount=amount)
        if record is not None:
            assert record.source is PaymentSource.CREDIT
            assert record.overpaid_amount == ZERO
        return record

    def apply(self, operation):
        kind, value = operation
        return self.pay(value) if kind == "pay" else self.use_credit(value)

    def credit(self):
        return self.balances.get_balance(self.client.id).overpaid_amount

    def entries(self):
        ledger = LedgerService(self.session)
        return [ledger.get(entry_id) for entry_id in self.entry_ids]

    def snapshot(self):
        return (
            {e.id: (e.amount_paid, e.payment_status) for e in self.entries()},
            self.credit(),
        )

    def assert_cash_conserved(self):
        on_entries = sum((e.amount_paid for e in self.entries()), ZERO)
        assert self.cash_received == on_entries + self.credit()
        assert all(ZERO <= e.amount_paid <= e.total_amount for e in self.entries())


class TestPaymentHistoryProperties:

    @given(
        entry_totals=st.lists(totals, min_size=1, max_size=5),
        history=operations,
    )
    @property_settings
    def test_cash_is_on_entries_or_held_as_credit(
        self, session, config, payment_service, make_client, entry_totals, history,
    ):
        ledger = _Ledger(session, config, payment_service, make_client, entry_totals)

        for operation in history:
            ledger.apply(operation)
            ledger.assert_cash_conserved()

    @given(
        entry_totals=st.lists(totals, min_size=1, max_size=5),
        history=operations,
        amount=payments,
    )
    @property_settings
    def test_reversing_payment_restores_entries_and_credit(
        self, session, config, payment_service, make_client, entry_totals, history, amount,
    ):
        ledger = _Ledger(session, config, payment_service, make_client, entry_totals)
        for operation in history:
            ledger.apply(operation)
        before = ledger.snapshot()
        cash_before = ledger.cash_received

        record = ledger.pay(amount)
        payment_service.reverse_payment(record.id, reversed_by="supervisor", reason="entered twice")
        ledger.cash_received -= record.amount

        assert ledger.snapshot() == before
        assert ledger.cash_received == cash_before
        ledger.assert_cash_conserved()

    @given(
        entry_totals=st.lists(totals, min_size=1, max_size=5),
        history=operations,
        share=credit_shares,
    )
    @property_settings
    def test_reversing_credit_application_restores_credit(
        self, session, config, payment_service, make_client, entry_totals, history, share,
    ):
        ledger = _Ledger(session, config, payment_service, make_client, entry_totals)
        for operation in history:
            ledger.apply(operation)
        before = ledger.snapshot()

        record = ledger.use_credit(share)
        if record is not None:
            payment_service.reverse_payment(record.id, reversed_by="supervisor")

        assert ledger.snapshot() == before
        ledger.assert_cash_conserved()
