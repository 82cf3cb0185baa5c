"""
Tests for BalanceService: per-party balances and top outstanding ranking.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.values import ZERO, PartyType
from settlement_kernel.exceptions import PartyNotFoundError, ValidationError
from settlement_services.balance_service import BalanceService

PAY_DATE = date(2024, 6, 15)


@pytest.fixture
def balance_service(session, config):
    return BalanceService(session, config=config)


class TestGetBalance:

    def test_outstanding_is_sum_of_amount_due(
        self, balance_service, payment_service, make_client, make_sale, test_actor,
    ):
        client = make_client()
        make_sale(client.id, "100", date(2024, 6, 1))
        make_sale(client.id, "250.75", date(2024, 6, 2))
        payment_service.record_payment(
            party_id=client.id, party_type=PartyType.CLIENT, amount="120",
            payment_date=PAY_DATE, recorded_by=test_actor,
        )

        balance = balance_service.get_balance(client.id)

        assert balance.outstanding == Decimal("230.75")
        assert balance.open_entry_count == 1
        assert balance.overpaid_amount == ZERO
        assert balance.party_type is PartyType.CLIENT
        assert balance.name == client.name

    def test_zero_total_entry_is_not_outstanding(self, balance_service, make_client, make_sale):
        client = make_client()
        make_sale(client.id, "0")

        balance = balance_service.get_balance(client.id)

        assert balance.outstanding == ZERO
        assert balance.open_entry_count == 0

    def test_unknown_party(self, balance_service):
        with pytest.raises(PartyNotFoundError):
            balance_service.get_balance(uuid4())

    def test_open_entries_in_allocation_order(self, balance_service, make_client, make_sale):
        client = make_client()
        late = make_sale(client.id, "10", date(2024, 6, 9))
        early_b = make_sale(client.id, "10", date(2024, 6, 1))
        early_a = make_sale(client.id, "10", date(2024, 6, 1))

        entries = balance_service.open_entries(client.id)

        assert [e.id for e in entries] == [early_b.id, early_a.id, late.id]


class TestTopOutstanding:

    def test_descending_and_zero_omitted(self, balance_service, make_client, make_sale, make_supplier, make_purchase):
        small, large, settled = make_client(), make_client(), make_client()
        make_sale(small.id, "50")
        make_sale(large.id, "500")
        supplier = make_supplier()
        make_purchase(supplier.id, "9999")

        top = balance_service.list_top_outstanding(PartyType.CLIENT, limit=10)

        assert [b.party_id for b in top] == [large.id, small.id]
        assert settled.id not in {b.party_id for b in top}

    def test_ties_broken_by_party_id(self, balance_service, make_client, make_sale):
        clients = [make_client() for _ in range(3)]
        for client in clients:
            make_sale(client.id, "100")

        top = balance_service.list_top_outstanding(PartyType.CLIENT, limit=10)

        assert [str(b.party_id) for b in top] == sorted(str(c.id) for c in clients)

    def test_limit_truncates(self, balance_service, make_client, make_sale):
        for amount in ("10", "20", "30"):
            make_sale(make_client().id, amount)

        top = balance_service.list_top_outstanding(PartyType.CLIENT, limit=2)

        assert [b.outstanding for b in top] == [Decimal("30"), Decimal("20")]

    def test_default_limit_from_config(self, balance_service, config, make_client, make_sale):
        for _ in range(config.payments.top_outstanding_limit + 2):
            make_sale(make_client().id, "10")

        top = balance_service.list_top_outstanding(PartyType.CLIENT)

        assert len(top) == config.payments.top_outstanding_limit

    @pytest.mark.parametrize("limit", [0, -3])
    def test_non_positive_limit_rejected(self, balance_service, limit):
        with pytest.raises(ValidationError) as exc_info:
            balance_service.list_top_outstanding(PartyType.CLIENT, limit=limit)
        assert exc_info.value.field == "limit"

    def test_suppliers_ranked_separately(self, balance_service, make_supplier, make_purchase, make_client, make_sale):
        supplier = make_supplier()
        make_purchase(supplier.id, "75")
        make_sale(make_client().id, "1000")

        top = balance_service.list_top_outstanding(PartyType.SUPPLIER, limit=5)

        assert [(b.party_id, b.outstanding) for b in top] == [(supplier.id, Decimal("75"))]

    def test_party_type_given_as_string(self, balance_service, make_client, make_sale, make_supplier, make_purchase):
        client = make_client()
        make_sale(client.id, "40")
        make_purchase(make_supplier().id, "900")

        top = balance_service.list_top_outstanding("client", limit=5)

        assert [(b.party_id, b.outstanding) for b in top] == [(client.id, Decimal("40"))]

    @pytest.mark.parametrize("party_type", ["customer", "", None, 3])
    def test_unknown_party_type_rejected(self, balance_service, party_type):
        with pytest.raises(ValidationError) as exc_info:
            balance_service.list_top_outstanding(party_type, limit=5)
        assert exc_info.value.field == "party_type"
