"""
Values -- amount helpers and the enumerations shared across the engine.

Responsibility:
    Converts boundary input into exact ``Decimal`` amounts, derives the
    three-state payment status, and rounds values for display.  Defines the
    closed vocabularies (party types, ledger kinds, payment modes).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    MUST NOT import from models/, services/, selectors/, or db/.

Invariants enforced:
    - Monetary amounts are always ``Decimal``; ``float`` is rejected at the
      boundary because binary floating point drifts across repeated partial
      allocations.
    - ``derive_status`` is a pure function of (amount_paid, total_amount),
      so status is consistent regardless of the order operations ran in.
    - Allocation arithmetic uses the exact amounts; only ``display_amount``
      rounds (half-to-even).

Failure modes:
    - ValidationError from ``to_amount`` for floats, non-numeric strings,
      NaN/Infinity, or too many decimal places.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from enum import Enum

from settlement_kernel.exceptions import ValidationError

ZERO = Decimal("0")


class PartyType(str, Enum):
    """Counterparty classification.  Clients owe us, we owe suppliers."""

    CLIENT = "client"
    SUPPLIER = "supplier"


class LedgerKind(str, Enum):
    """Concrete kind of a ledger entry."""

    SALE = "sale"
    PURCHASE = "purchase"

    @property
    def party_type(self) -> PartyType:
        """The party type a ledger entry of this kind belongs to."""
        return PartyType.CLIENT if self is LedgerKind.SALE else PartyType.SUPPLIER

    @classmethod
    def for_party_type(cls, party_type: PartyType | str) -> "LedgerKind":
        return cls.SALE if to_party_type(party_type) is PartyType.CLIENT else cls.PURCHASE


class PaymentStatus(str, Enum):
    """Derived payment state of a ledger entry."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMode(str, Enum):
    """How the money moved.  CREDIT marks an application of standing credit."""

    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CREDIT = "credit"


class PaymentSource(str, Enum):
    """Where the money of a payment record came from."""

    CASH = "cash"  # Money received from / paid to the party
    CREDIT = "credit"  # Previously recorded overpayment being applied


def to_amount(
    value: Decimal | int | str | None,
    field: str = "amount",
    decimal_places: int | None = 2,
) -> Decimal:
    """
    Convert boundary input to an exact Decimal.

    Preconditions:
        - ``value`` is a Decimal, int or numeric string.  Floats are refused.
    Postconditions:
        - Returns a finite Decimal with at most ``decimal_places`` digits
          after the point (unchecked when ``decimal_places`` is None);
          trailing zeros beyond that are dropped, so "100.000" -> 100.00.
    Raises:
        ValidationError: on any malformed value.
    """
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field} must be a Decimal, int or string, not {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    else:
        raise ValidationError(
            f"{field} must be a Decimal, int or string, not {type(value).__name__}",
            field=field,
        )

    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    if decimal_places is not None and _significant_places(amount) > decimal_places:
        raise ValidationError(
            f"{field} has more than {decimal_places} decimal places: {amount}",
            field=field,
        )
    if decimal_places is not None and amount.as_tuple().exponent < -decimal_places:
        # Only zeros are dropped here, never a significant digit
        amount = amount.quantize(Decimal(1).scaleb(-decimal_places))
    return amount


def to_party_type(value: PartyType | str | None, field: str = "party_type") -> PartyType:
    """
    Accept a PartyType or its string value ("client", "supplier").

    Raises:
        ValidationError: anything else.
    """
    try:
        return PartyType(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"unknown party type: {value!r}", field=field) from exc

def _significant_places(amount: Decimal) -> int:
    """Digits after the point once trailing zeros are dropped: 100.000 -> 0, 5.10 -> 1."""
    _, digits, exponent = amount.as_tuple()
    if exponent >= 0:
        return 0
    coefficient = "".join(map(str, digits))
    if not coefficient.rstrip("0"):
        return 0
    trailing_zeros = len(coefficient) - len(coefficient.rstrip("0"))
    return max(-exponent - trailing_zeros, 0)


def derive_status(amount_paid: Decimal, total_amount: Decimal) -> PaymentStatus:
    """Three-state rule: due == 0 -> paid, paid == 0 -> pending, else partial."""
    if total_amount - amount_paid == ZERO:
        return PaymentStatus.PAID
    if amount_paid == ZERO:
        return PaymentStatus.PENDING
    return PaymentStatus.PARTIAL


def display_amount(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = ROUND_HALF_EVEN,
) -> Decimal:
    """Round a derived value for presentation.  Never feed the result back into allocation."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)
