"""
Engine lifecycle, session_scope and money column round-trips.

Uses its own module-level engine (init_engine_from_url / reset_engine)
rather than the per-test ``engine`` fixture.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from settlement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from settlement_kernel.domain.values import PartyType
from settlement_kernel.models.party import Party
from settlement_kernel.services.ledger_service import LedgerService
from settlement_kernel.services.party_service import PartyService
from settlement_kernel.services.sequence_service import SequenceService


@pytest.fixture
def module_engine():
    reset_engine()
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    reset_engine()


class TestEngineLifecycle:

    def test_uninitialized_access_fails(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_init_registers_engine(self, module_engine):
        assert get_engine() is module_engine
        assert module_engine.dialect.name == "sqlite"
        session = get_session_factory()()
        session.close()

    def test_reset_forgets_engine(self, module_engine):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()


class TestSessionScope:

    def test_commits_on_success(self, module_engine):
        with session_scope() as session:
            PartyService(session).register_client("scoped-client")

        with session_scope() as session:
            names = session.execute(select(Party.name)).scalars().all()
        assert names == ["scoped-client"]

    def test_rolls_back_on_error(self, module_engine):
        with pytest.raises(ValueError):
            with session_scope() as session:
                PartyService(session).register_supplier("never-saved")
                raise ValueError("abort")

        with session_scope() as session:
            assert session.execute(select(Party)).first() is None


class TestMoneyAndSequences:

    def test_money_round_trips_exactly(self, module_engine):
        with session_scope() as session:
            client = PartyService(session).register_client("exact")
            entry = LedgerService(session, decimal_places=9).register_sale(
                client.id, Decimal("12345678901234567.123456789"), date(2024, 6, 1),
            )

        with session_scope() as session:
            stored = LedgerService(session).get(entry.id)
        assert stored.total_amount == Decimal("12345678901234567.123456789")
        assert isinstance(stored.total_amount, Decimal)

    def test_sequences_increase_per_name(self, module_engine):
        with session_scope() as session:
            sequences = SequenceService(session)
            assert sequences.current_value(SequenceService.PAYMENT_RECORD) is None
            first = sequences.next_value(SequenceService.PAYMENT_RECORD)
            second = sequences.next_value(SequenceService.PAYMENT_RECORD)
            other = sequences.next_value(SequenceService.CREDIT_LOT)

        assert (first, second, other) == (1, 2, 1)
        with session_scope() as session:
            assert SequenceService(session).current_value(SequenceService.PAYMENT_RECORD) == 2
            assert SequenceService(session).current_value(SequenceService.CREDIT_LOT) == 1

    def test_party_type_stored_by_value(self, module_engine):
        with session_scope() as session:
            PartyService(session).register_supplier("by-value")

        with session_scope() as session:
            party = session.execute(select(Party)).scalar_one()
        assert party.party_type is PartyType.SUPPLIER

