"""
Module: settlement_kernel.models.sequence
Responsibility: Named counter rows backing the monotonic sequences used for
    FIFO tie-breaks and payment history ordering.
Architecture position: Kernel > Models.  Written only by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One named sequence and its last issued value.

    Row-level locking on this row serializes allocation of the next value.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g. "ledger_entry", "payment_record")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
