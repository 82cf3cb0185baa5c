"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Issues strictly increasing numbers for ledger entries, payment records
    and credit lots.  Ledger entry sequences are the FIFO tie-break for
    entries sharing an entry_date; payment sequences order payment history.

Architecture position:
    Kernel > Services.  Called by LedgerService, PaymentService and
    CreditLedger inside their caller's transaction.

Invariants enforced:
    - The locked counter row is the sole source of the next value.  The
      aggregate max-plus-one query is never used: two concurrent writers
      could both read the same max.
    - The increment is only visible after the caller commits; a rollback
      returns the value.

Failure modes:
    - IntegrityError on concurrent first use of a counter, handled with a
      savepoint rollback and a locked re-read.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.sequence import SequenceCounter
from settlement_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService[SequenceCounter]):
    """
    Transactional sequence numbers.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.PAYMENT_RECORD)
    """

    LEDGER_ENTRY = "ledger_entry"
    PAYMENT_RECORD = "payment_record"
    CREDIT_LOT = "credit_lot"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            self.locked(select(SequenceCounter).where(SequenceCounter.name == sequence_name))
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.

        Postconditions:
            - The returned value is > 0 and strictly greater than any value
              previously committed for this name.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                # Another transaction created the counter first
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None for an unused name."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
