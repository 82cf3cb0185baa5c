"""
CreditLedger -- standing credit created by overpayments, tracked per lot.

Responsibility:
    Keeps ``Party.overpaid_amount`` and the party's credit lots in step:
    every overpaying payment adds a lot, credit applications draw lots down
    oldest first, and reversals either void a lot or restore what a credit
    application drew.

Architecture position:
    Kernel > Services.  Called only by the payment service, inside its
    transaction, after the party row is locked.

Invariants enforced:
    - ``Party.overpaid_amount == sum(remaining)`` over the party's
      non-voided lots (``verify`` checks this before every commit).
    - A lot is voided only while nothing has been drawn from it.  A cash
      payment whose credit was applied elsewhere cannot be reversed until
      those credit applications are reversed; the credit is never floored
      at zero.

Failure modes:
    - CreditAlreadyAppliedError when voiding a partly consumed lot.
    - InvariantViolation when lots and the party credit disagree.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from settlement_kernel.domain.values import ZERO
from settlement_kernel.exceptions import CreditAlreadyAppliedError, InvariantViolation
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.party import Party
from settlement_kernel.models.payment import CreditConsumption, CreditLot, PaymentRecord
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.sequence_service import SequenceService

logger = get_logger("services.credit_ledger")


class CreditLedger(BaseService[CreditLot]):
    """Lot-level bookkeeping behind a party's standing credit."""

    def __init__(self, session):
        super().__init__(session)
        self._sequences = SequenceService(session)

    def _open_lots(self, party: Party) -> list[CreditLot]:
        stmt = self.locked(
            select(CreditLot)
            .where(CreditLot.party_id == party.id, CreditLot.voided.is_(False))
            .order_by(CreditLot.sequence)
        )
        return list(self.session.execute(stmt).scalars())

    def add_lot(self, party: Party, payment: PaymentRecord, amount: Decimal) -> CreditLot:
        """Record ``amount`` of new credit created by ``payment``."""
        lot = CreditLot(
            party_id=party.id,
            payment_id=payment.id,
            amount=amount,
            remaining=amount,
            sequence=self._sequences.next_value(SequenceService.CREDIT_LOT),
            voided=False,
        )
        self.session.add(lot)
        party.overpaid_amount = party.overpaid_amount + amount
        self.session.flush()
        logger.info(
            "credit_lot_created",
            extra={
                "credit_lot_id": str(lot.id),
                "party_id": str(party.id),
                "payment_id": str(payment.id),
                "amount": str(amount),
                "party_credit": str(party.overpaid_amount),
            },
        )
        return lot

    def consume(self, party: Party, payment: PaymentRecord, amount: Decimal) -> list[CreditConsumption]:
        """
        Draw ``amount`` from the party's lots, oldest first, on behalf of the
        credit application ``payment``.
        """
        remaining = amount
        consumptions: list[CreditConsumption] = []
        for lot in self._open_lots(party):
            if remaining == ZERO:
                break
            take = min(lot.remaining, remaining)
            if take == ZERO:
                continue
            lot.remaining = lot.remaining - take
            remaining -= take
            consumption = CreditConsumption(lot_id=lot.id, payment_id=payment.id, amount=take)
            self.session.add(consumption)
            consumptions.append(consumption)

        if remaining != ZERO:
            raise InvariantViolation(
                "credit_lots_cover_party_credit",
                f"party {party.id} credit of {party.overpaid_amount} is not backed "
                f"by its credit lots (short by {remaining})",
                party_id=str(party.id),
            )

        party.overpaid_amount = party.overpaid_amount - amount
        self.session.flush()
        logger.info(
            "credit_consumed",
            extra={
                "party_id": str(party.id),
                "payment_id": str(payment.id),
                "amount": str(amount),
                "lots_touched": len(consumptions),
                "party_credit": str(party.overpaid_amount),
            },
        )
        return consumptions

    def void_lot_for(self, party: Party, payment: PaymentRecord) -> CreditLot | None:
        """
        Remove the credit created by ``payment`` (being reversed).

        Raises:
            CreditAlreadyAppliedError: some of the lot was drawn by credit
                applications that are still in force.
        """
        lot = self.session.execute(
            self.locked(select(CreditLot).where(CreditLot.payment_id == payment.id))
        ).scalar_one_or_none()

        if lot is None:
            if payment.overpaid_amount > ZERO:
                raise InvariantViolation(
                    "credit_lot_exists",
                    f"payment {payment.id} overpaid {payment.overpaid_amount} "
                    "but has no credit lot",
                    payment_id=str(payment.id),
                )
            return None

        if lot.consumed > ZERO:
            consuming = self.session.execute(
                select(PaymentRecord.id, PaymentRecord.sequence)
                .join(CreditConsumption, CreditConsumption.payment_id == PaymentRecord.id)
                .where(CreditConsumption.lot_id == lot.id, PaymentRecord.reversed.is_(False))
                .distinct()
                .order_by(PaymentRecord.sequence)
            ).all()
            raise CreditAlreadyAppliedError(
                str(payment.id),
                consumed=str(lot.consumed),
                consuming_payment_ids=[str(row.id) for row in consuming],
            )

        party.overpaid_amount = party.overpaid_amount - lot.remaining
        lot.remaining = ZERO
        lot.voided = True
        self.session.flush()
        logger.info(
            "credit_lot_voided",
            extra={
                "credit_lot_id": str(lot.id),
                "party_id": str(party.id),
                "payment_id": str(payment.id),
                "amount": str(lot.amount),
                "party_credit": str(party.overpaid_amount),
            },
        )
        return lot

    def restore(self, party: Party, payment: PaymentRecord) -> Decimal:
        """
        Put back everything the credit application ``payment`` drew.

        Returns the total restored, which equals the application's amount.
        """
        consumptions = self.session.execute(
            select(CreditConsumption).where(CreditConsumption.payment_id == payment.id)
        ).scalars().all()

        restored = ZERO
        for consumption in consumptions:
            lot = self.session.execute(
                self.locked(select(CreditLot).where(CreditLot.id == consumption.lot_id))
            ).scalar_one()
            if lot.voided:
                raise InvariantViolation(
                    "consumed_lot_not_voided",
                    f"credit lot {lot.id} was voided while credit application "
                    f"{payment.id} still drew from it",
                    credit_lot_id=str(lot.id),
                )
            lot.remaining = lot.remaining + consumption.amount
            restored += consumption.amount

        party.overpaid_amount = party.overpaid_amount + restored
        self.session.flush()
        logger.info(
            "credit_restored",
            extra={
                "party_id": str(party.id),
                "payment_id": str(payment.id),
                "amount": str(restored),
                "party_credit": str(party.overpaid_amount),
            },
        )
        return restored

    def available(self, party: Party) -> Decimal:
        return sum((lot.remaining for lot in self._open_lots(party)), ZERO)

    def verify(self, party: Party) -> None:
        """
        Raises:
            InvariantViolation: party credit and lot balances disagree, or
                the party credit is negative.
        """
        backed = self.available(party)
        if party.overpaid_amount < ZERO or backed != party.overpaid_amount:
            raise InvariantViolation(
                "party_credit_matches_lots",
                f"party {party.id} credit is {party.overpaid_amount} but its "
                f"credit lots hold {backed}",
                party_id=str(party.id),
            )
