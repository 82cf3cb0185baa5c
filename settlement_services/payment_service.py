"""
PaymentService -- the transactional shell around the allocation engine.

Responsibility:
    Records payments from clients and to suppliers, spreads each one over
    the party's open ledger entries oldest-first, turns any surplus into
    standing credit, applies standing credit to later entries, and reverses
    any of these without disturbing the running totals.

Architecture position:
    Services -- imperative shell.  Composes the pure AllocationEngine with
    the kernel services (parties, ledger entries, sequences, credit ledger)
    and owns the transaction boundary: every public write commits once on
    success and rolls back on any failure.

Invariants enforced:
    - All-or-nothing: entries, the payment record, its allocations and the
      credit ledger change together or not at all.
    - One writer per party: the in-process party lock, a row lock on the
      party and the party's version counter together serialize payment
      operations for a party.  Different parties proceed in parallel.
    - For every recorded payment amount == sum(allocations) + overpaid_amount,
      checked before commit.
    - Reversal never clamps.  A reversal that would drive amount_paid
      negative raises InvariantViolation and is logged as critical.

Failure modes:
    - ValidationError family for bad input (raised before any write).
    - NotFoundError family for unknown parties, entries or payments.
    - AlreadyReversedError / CreditAlreadyAppliedError on reversal.
    - PartyLockTimeoutError / OptimisticLockError under contention.
    - InvariantViolation on ledger corruption.

Usage:
    service = PaymentService(session, config=get_active_config(), clock=clock)
    record = service.record_payment(
        party_id=client.id,
        party_type=PartyType.CLIENT,
        amount=Decimal("600.00"),
        payment_mode=PaymentMode.UPI,
        payment_date=date(2024, 3, 1),
        recorded_by="cashier-1",
    )
    print(f"{record.bills_updated} bill(s) updated")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from settlement_config import SettlementConfig, get_active_config
from settlement_engines.allocation import (
    AllocationEngine,
    AllocationMethod,
    AllocationResult,
    AllocationTarget,
)
from settlement_kernel.db.engine import WRITE_TRANSACTION
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import PaymentRecordInfo, UpdatedEntry
from settlement_kernel.domain.values import (
    ZERO,
    PartyType,
    PaymentMode,
    PaymentSource,
    to_amount,
    to_party_type,
)
from settlement_kernel.exceptions import (
    AlreadyReversedError,
    InvariantViolation,
    LedgerEntryNotFoundError,
    OptimisticLockError,
    OverpaymentNotAllowedError,
    PaymentNotFoundError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.ledger import LedgerEntry
from settlement_kernel.models.party import Party
from settlement_kernel.models.payment import PaymentAllocation, PaymentRecord
from settlement_kernel.selectors.payment_selector import PaymentPage, PaymentSelector
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.credit_ledger import CreditLedger
from settlement_kernel.services.ledger_service import LedgerService
from settlement_kernel.services.party_service import PartyService
from settlement_kernel.services.sequence_service import SequenceService
from settlement_services.locking import PartyLockRegistry, default_lock_registry
from settlement_services.sinks import LoggingPaymentSink, PaymentSink

logger = get_logger("services.payment")


def _as_uuid(value: UUID | str, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} is not a valid id: {value!r}", field=field) from exc


class PaymentService:
    """
    Record, apply and reverse payments.

    Transaction boundary: this service commits on success and rolls back on
    failure.  Pass a session dedicated to the call (or unit of work); pending
    changes already on it are committed or discarded along with the payment.

    Notification sinks are invoked after all writes are flushed and before
    commit, so a failing sink aborts the payment.
    """

    def __init__(
        self,
        session: Session,
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
        lock_registry: PartyLockRegistry | None = None,
        sinks: Iterable[PaymentSink] | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._locks = lock_registry if lock_registry is not None else default_lock_registry()
        self._sinks: list[PaymentSink] = (
            list(sinks) if sinks is not None else [LoggingPaymentSink()]
        )

        self._engine = AllocationEngine()
        self._parties = PartyService(session)
        self._ledger = LedgerService(session, decimal_places=self._config.amounts.decimal_places)
        self._sequences = SequenceService(session)
        self._credit = CreditLedger(session)
        self._payments = PaymentSelector(session, max_page_size=self._config.payments.max_page_size)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_payment(
        self,
        party_id: UUID | str,
        party_type: PartyType | str,
        amount: Decimal | int | str,
        payment_date: date,
        recorded_by: str,
        payment_mode: PaymentMode | str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecordInfo:
        """
        Record money received from a client (or paid to a supplier) and
        allocate it FIFO across the party's open entries.

        Entries are paid in entry_date order, ties broken by creation
        sequence; each receives min(remaining, amount_due).  Whatever is left
        becomes standing credit on the party and a new credit lot.

        Raises:
            ValidationError: non-positive or malformed amount, missing
                payment_date or recorded_by, unknown mode, or a party_type
                that does not match the party.
            PartyNotFoundError: unknown party.
        """
        party_id = _as_uuid(party_id, "party_id")
        party_type = to_party_type(party_type)
        amount = self._validate_amount(amount)
        mode = self._validate_mode(payment_mode)
        self._validate_event(payment_date, recorded_by)

        logger.info("payment_record_started", extra={
            "party_id": str(party_id),
            "party_type": party_type.value,
            "amount": str(amount),
            "payment_mode": mode.value,
        })

        def body() -> PaymentRecordInfo:
            party = self._parties.lock_for_update(party_id, party_type)
            entries = self._ledger.open_entries_for_update(party.id)
            result = self._engine.allocate(
                amount=amount,
                targets=self._targets(entries),
                method=AllocationMethod.FIFO,
            )
            record, updated = self._write_payment(
                party=party,
                source=PaymentSource.CASH,
                amount=amount,
                mode=mode,
                payment_date=payment_date,
                recorded_by=recorded_by,
                reference_number=reference_number,
                notes=notes,
                entries=entries,
                result=result,
            )
            if result.unallocated > ZERO:
                self._credit.add_lot(party, record, result.unallocated)
            party.last_payment_date = payment_date
            party.last_payment_amount = amount
            return self._finish_recording(party, record, updated)

        return self._execute("record_payment", party_id, recorded_by, body)

    def record_entry_payment(
        self,
        ledger_entry_id: UUID | str,
        amount: Decimal | int | str,
        payment_date: date,
        recorded_by: str,
        payment_mode: PaymentMode | str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecordInfo:
        """
        Record a payment against one named sale or purchase.

        Raises:
            ValidationError: malformed input.
            OverpaymentNotAllowedError: amount exceeds the entry's amount due.
            LedgerEntryNotFoundError: unknown entry.
        """
        ledger_entry_id = _as_uuid(ledger_entry_id, "ledger_entry_id")
        amount = self._validate_amount(amount)
        mode = self._validate_mode(payment_mode)
        self._validate_event(payment_date, recorded_by)

        party_id = self._resolve_party(
            select(LedgerEntry.party_id).where(LedgerEntry.id == ledger_entry_id),
            lambda: LedgerEntryNotFoundError(str(ledger_entry_id)),
        )

        logger.info("entry_payment_started", extra={
            "ledger_entry_id": str(ledger_entry_id),
            "party_id": str(party_id),
            "amount": str(amount),
            "payment_mode": mode.value,
        })

        def body() -> PaymentRecordInfo:
            party = self._parties.lock_for_update(party_id)
            entry = self._ledger.get_for_update(ledger_entry_id)
            if amount > entry.amount_due:
                raise OverpaymentNotAllowedError(
                    str(entry.id), amount=str(amount), amount_due=str(entry.amount_due)
                )
            result = self._engine.allocate(
                amount=amount,
                targets=self._targets([entry]),
                method=AllocationMethod.SPECIFIC,
            )
            record, updated = self._write_payment(
                party=party,
                source=PaymentSource.CASH,
                amount=amount,
                mode=mode,
                payment_date=payment_date,
                recorded_by=recorded_by,
                reference_number=reference_number,
                notes=notes,
                entries=[entry],
                result=result,
            )
            party.last_payment_date = payment_date
            party.last_payment_amount = amount
            return self._finish_recording(party, record, updated)

        return self._execute("record_entry_payment", party_id, recorded_by, body)

    def apply_credit(
        self,
        party_id: UUID | str,
        recorded_by: str,
        payment_date: date,
        amount: Decimal | int | str | None = None,
    ) -> PaymentRecordInfo | None:
        """
        Apply the party's standing credit to its open entries, FIFO.

        ``amount`` limits how much credit to use; by default all of it.  The
        applied portion is recorded as a payment with source CREDIT so it
        can be reversed like any other payment.

        Returns:
            The credit-application record, or None when the party has no
            credit or no open entries.

        Raises:
            ValidationError: amount not positive or larger than the credit.
            PartyNotFoundError: unknown party.
        """
        party_id = _as_uuid(party_id, "party_id")
        requested = self._validate_amount(amount) if amount is not None else None
        self._validate_event(payment_date, recorded_by)

        def body() -> PaymentRecordInfo | None:
            party = self._parties.lock_for_update(party_id)
            available = party.overpaid_amount
            if requested is not None and requested > available:
                raise ValidationError(
                    f"requested credit {requested} exceeds available credit {available}",
                    field="amount",
                )
            to_use = requested if requested is not None else available
            entries = self._ledger.open_entries_for_update(party.id)
            if to_use == ZERO or not entries:
                logger.info("credit_application_skipped", extra={
                    "party_id": str(party.id),
                    "available_credit": str(available),
                    "open_entries": len(entries),
                })
                return None

            result = self._engine.allocate(
                amount=to_use,
                targets=self._targets(entries),
                method=AllocationMethod.FIFO,
            )
            applied = result.total_allocated
            # Credit the entries could not absorb stays on the party
            applied_result = AllocationResult(
                source_amount=applied,
                method=result.method,
                lines=result.lines,
                total_allocated=applied,
                unallocated=ZERO,
            )
            record, updated = self._write_payment(
                party=party,
                source=PaymentSource.CREDIT,
                amount=applied,
                mode=PaymentMode.CREDIT,
                payment_date=payment_date,
                recorded_by=recorded_by,
                reference_number=None,
                notes=None,
                entries=entries,
                result=applied_result,
            )
            self._credit.consume(party, record, applied)
            return self._finish_recording(party, record, updated)

        return self._execute("apply_credit", party_id, recorded_by, body)

    # =========================================================================
    # Reversal
    # =========================================================================

    def reverse_payment(
        self,
        payment_id: UUID | str,
        reversed_by: str | None = None,
        reason: str | None = None,
    ) -> PaymentRecordInfo:
        """
        Undo a payment: subtract every allocation from its entry and remove
        the credit the payment created (or restore the credit it consumed).

        Raises:
            PaymentNotFoundError: unknown payment.
            AlreadyReversedError: the payment was reversed before.
            CreditAlreadyAppliedError: the payment's credit was applied by a
                credit application that is still in force.
            InvariantViolation: an entry's amount_paid would go negative.
        """
        payment_id = _as_uuid(payment_id, "payment_id")
        party_id = self._resolve_party(
            select(PaymentRecord.party_id).where(PaymentRecord.id == payment_id),
            lambda: PaymentNotFoundError(str(payment_id)),
        )

        logger.info("payment_reversal_started", extra={
            "payment_id": str(payment_id),
            "party_id": str(party_id),
        })

        def body() -> PaymentRecordInfo:
            party = self._parties.lock_for_update(party_id)
            record = self._session.execute(
                BaseService.locked(select(PaymentRecord).where(PaymentRecord.id == payment_id))
            ).scalar_one()
            if record.reversed:
                raise AlreadyReversedError(str(payment_id))

            if record.source is PaymentSource.CREDIT:
                self._credit.restore(party, record)
            else:
                self._credit.void_lot_for(party, record)

            updated: list[UpdatedEntry] = []
            for allocation in record.allocations:
                entry = self._ledger.get_for_update(allocation.ledger_entry_id)
                entry.unapply_payment(allocation.amount_applied)
                updated.append(self._updated_entry(entry, -allocation.amount_applied))

            record.reversed = True
            record.reversed_at = self._clock.now()
            record.reversed_by = reversed_by
            record.reversal_reason = reason
            self._session.flush()
            self._credit.verify(party)

            dto = record.to_dto(updated_entries=tuple(updated))
            for sink in self._sinks:
                sink.payment_reversed(dto)

            logger.info("payment_reversed", extra={
                "payment_id": str(record.id),
                "party_id": str(party.id),
                "source": record.source.value,
                "amount": str(record.amount),
                "entries_restored": len(updated),
                "overpaid_removed": str(record.overpaid_amount),
                "party_credit": str(party.overpaid_amount),
            })
            return dto

        return self._execute("reverse_payment", party_id, reversed_by, body)

    # =========================================================================
    # History
    # =========================================================================

    def get_payment(self, payment_id: UUID | str) -> PaymentRecordInfo:
        return self._payments.get(_as_uuid(payment_id, "payment_id"))

    def list_payments(
        self,
        party_type: PartyType | str | None = None,
        party_id: UUID | str | None = None,
        payment_mode: PaymentMode | str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        include_reversed: bool = True,
        page: int = 1,
        limit: int | None = None,
    ) -> PaymentPage:
        """Filtered payment history, newest first.  ``limit`` defaults to the configured page size."""
        return self._payments.list_payments(
            party_type=to_party_type(party_type) if party_type is not None else None,
            party_id=_as_uuid(party_id, "party_id") if party_id is not None else None,
            payment_mode=self._coerce_mode(payment_mode) if payment_mode is not None else None,
            start_date=start_date,
            end_date=end_date,
            include_reversed=include_reversed,
            page=page,
            limit=limit if limit is not None else self._config.payments.page_size,
        )

    def payments_for_entry(self, ledger_entry_id: UUID | str) -> list[PaymentRecordInfo]:
        return self._payments.payments_for_entry(_as_uuid(ledger_entry_id, "ledger_entry_id"))

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute(
        self,
        operation: str,
        party_id: UUID,
        actor: str | None,
        body: Callable[[], PaymentRecordInfo | None],
    ) -> PaymentRecordInfo | None:
        """Run ``body`` under the party lock and commit once, or roll back and re-raise."""
        timeout = self._config.locking.party_lock_timeout_seconds
        with LogContext.bind(party_id=party_id, actor_id=actor):
            with self._locks.hold(party_id, timeout):
                try:
                    if not self._session.in_transaction():
                        # SQLite takes its write lock at BEGIN for this transaction
                        self._session.connection(execution_options={WRITE_TRANSACTION: True})
                    result = body()
                    self._session.commit()
                except InvariantViolation as exc:
                    self._session.rollback()
                    logger.critical("invariant_violation", extra={
                        "operation": operation,
                        "invariant": exc.invariant,
                        "detail": exc.detail,
                        **exc.context,
                    })
                    raise
                except StaleDataError as exc:
                    self._session.rollback()
                    logger.warning("optimistic_lock_conflict", extra={
                        "operation": operation,
                        "entity_type": "Party",
                    })
                    raise OptimisticLockError("Party", str(party_id)) from exc
                except Exception:
                    self._session.rollback()
                    logger.warning("payment_operation_rolled_back", extra={
                        "operation": operation,
                    }, exc_info=True)
                    raise
        return result

    def _resolve_party(self, stmt, not_found: Callable[[], Exception]) -> UUID:
        """
        Look up the owning party before taking its lock.

        The lookup must not hold a transaction open while this call waits
        for the party lock, so the read is ended here unless the caller had
        a transaction in progress.
        """
        had_transaction = self._session.in_transaction()
        party_id = self._session.execute(stmt).scalar_one_or_none()
        if not had_transaction:
            self._session.rollback()
        if party_id is None:
            raise not_found()
        return party_id

    def _targets(self, entries: Iterable[LedgerEntry]) -> list[AllocationTarget]:
        return [
            AllocationTarget(
                target_id=entry.id,
                eligible_amount=entry.amount_due,
                date=entry.entry_date,
                sequence=entry.sequence,
            )
            for entry in entries
        ]

    def _write_payment(
        self,
        party: Party,
        source: PaymentSource,
        amount: Decimal,
        mode: PaymentMode,
        payment_date: date,
        recorded_by: str,
        reference_number: str | None,
        notes: str | None,
        entries: list[LedgerEntry],
        result: AllocationResult,
    ) -> tuple[PaymentRecord, list[UpdatedEntry]]:
        """Apply the engine's lines to the entries and persist the record."""
        record = PaymentRecord(
            party_id=party.id,
            party_type=party.party_type,
            source=source,
            amount=amount,
            payment_mode=mode,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
            recorded_by=recorded_by,
            overpaid_amount=result.unallocated,
            sequence=self._sequences.next_value(SequenceService.PAYMENT_RECORD),
            reversed=False,
        )

        by_id = {entry.id: entry for entry in entries}
        updated: list[UpdatedEntry] = []
        for position, line in enumerate(result.funded_lines, start=1):
            entry = by_id[line.target_id]
            entry.apply_payment(line.allocated, payment_date)
            record.allocations.append(
                PaymentAllocation(
                    ledger_entry_id=entry.id,
                    amount_applied=line.allocated,
                    position=position,
                )
            )
            updated.append(self._updated_entry(entry, line.allocated))

        self._session.add(record)
        self._session.flush()
        return record, updated

    def _finish_recording(
        self,
        party: Party,
        record: PaymentRecord,
        updated: list[UpdatedEntry],
    ) -> PaymentRecordInfo:
        """Check conservation, flush, notify sinks."""
        if record.amount != record.allocated_total + record.overpaid_amount:
            raise InvariantViolation(
                "payment_conserved",
                f"payment {record.id} amount {record.amount} != allocated "
                f"{record.allocated_total} + overpaid {record.overpaid_amount}",
                payment_id=str(record.id),
            )
        self._session.flush()
        self._credit.verify(party)

        dto = record.to_dto(updated_entries=tuple(updated))
        for sink in self._sinks:
            sink.payment_recorded(dto)

        logger.info("payment_recorded", extra={
            "payment_id": str(record.id),
            "party_id": str(party.id),
            "source": record.source.value,
            "amount": str(record.amount),
            "allocated": str(record.allocated_total),
            "overpaid_amount": str(record.overpaid_amount),
            "bills_updated": dto.bills_updated,
            "party_credit": str(party.overpaid_amount),
        })
        return dto

    @staticmethod
    def _updated_entry(entry: LedgerEntry, applied: Decimal) -> UpdatedEntry:
        return UpdatedEntry(
            ledger_entry_id=entry.id,
            reference_number=entry.reference_number,
            amount_applied=applied,
            amount_paid=entry.amount_paid,
            amount_due=entry.amount_due,
            payment_status=entry.payment_status,
        )

    def _validate_amount(self, amount: Decimal | int | str | None) -> Decimal:
        value = to_amount(amount, field="amount", decimal_places=self._config.amounts.decimal_places)
        if value <= ZERO:
            raise ValidationError("amount must be positive", field="amount")
        return value

    @staticmethod
    def _coerce_mode(payment_mode: PaymentMode | str) -> PaymentMode:
        try:
            return PaymentMode(payment_mode)
        except ValueError as exc:
            raise ValidationError(
                f"unknown payment mode: {payment_mode!r}", field="payment_mode"
            ) from exc

    def _validate_mode(self, payment_mode: PaymentMode | str | None) -> PaymentMode:
        if payment_mode is None:
            return self._config.payments.default_mode
        mode = self._coerce_mode(payment_mode)
        if mode is PaymentMode.CREDIT:
            raise ValidationError(
                "credit is recorded through apply_credit, not as a payment mode",
                field="payment_mode",
            )
        return mode

    @staticmethod
    def _validate_event(payment_date: date | None, recorded_by: str | None) -> None:
        if not isinstance(payment_date, date):
            raise ValidationError("payment_date is required", field="payment_date")
        if not recorded_by or not str(recorded_by).strip():
            raise ValidationError("recorded_by is required", field="recorded_by")
