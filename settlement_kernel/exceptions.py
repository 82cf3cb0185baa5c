"""
Typed Exception Hierarchy for the Settlement Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (payment screens, correction flows, reports) must be
able to tell a user mistake from a corrupted ledger without parsing
messages.  Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        service.record_payment(...)
    except PartyNotFoundError as e:
        api_response(status=404, code=e.code, party_id=e.party_id)
    except ValidationError as e:
        api_response(status=400, code=e.code, field=e.field)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- ValidationError
    |   +-- OverpaymentNotAllowedError
    |   +-- PartyTypeMismatchError
    |
    +-- NotFoundError
    |   +-- PartyNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- LedgerEntryNotFoundError
    |
    +-- ReversalError
    |   +-- AlreadyReversedError
    |   +-- CreditAlreadyAppliedError
    |
    +-- InvariantViolation
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- PartyLockTimeoutError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|---------------------------------------------
Validation   | VALIDATION_ERROR          | Non-positive amount, missing required field
             | OVERPAYMENT_NOT_ALLOWED   | Single-entry payment larger than amount due
             | PARTY_TYPE_MISMATCH       | Client/supplier mix-up at the boundary
-------------|---------------------------|---------------------------------------------
Not found    | PARTY_NOT_FOUND           | Unknown client or supplier
             | PAYMENT_NOT_FOUND         | Unknown payment record
             | LEDGER_ENTRY_NOT_FOUND    | Unknown sale or purchase
-------------|---------------------------|---------------------------------------------
Reversal     | ALREADY_REVERSED          | Payment record already reversed
             | CREDIT_ALREADY_APPLIED    | Payment's credit consumed by a later application
-------------|---------------------------|---------------------------------------------
Invariant    | INVARIANT_VIOLATION       | Ledger corruption detected (fatal)
-------------|---------------------------|---------------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Party row changed by another transaction
             | PARTY_LOCK_TIMEOUT        | Per-party lock not acquired in time
-------------|---------------------------|---------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | Write to a frozen field or record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError and NotFoundError are recoverable at the caller boundary
   and should be surfaced to the user as-is.

2. ConcurrencyError means the whole call rolled back; retrying the complete
   call is safe because no partial writes happened.

3. InvariantViolation is critical: the transaction has been aborted and the
   ledger needs investigation.  Never catch-and-continue.

===============================================================================
"""


class SettlementError(Exception):
    """
    Base exception for all settlement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# Validation errors


class ValidationError(SettlementError):
    """Input rejected at the engine boundary."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class OverpaymentNotAllowedError(ValidationError):
    """A payment against a single entry exceeds that entry's amount due."""

    code: str = "OVERPAYMENT_NOT_ALLOWED"

    def __init__(self, ledger_entry_id: str, amount: str, amount_due: str):
        self.ledger_entry_id = ledger_entry_id
        self.amount = amount
        self.amount_due = amount_due
        super().__init__(
            f"Payment amount ({amount}) exceeds amount due ({amount_due}) "
            f"on ledger entry {ledger_entry_id}",
            field="amount",
        )


class PartyTypeMismatchError(ValidationError):
    """The declared party type does not match the stored party."""

    code: str = "PARTY_TYPE_MISMATCH"

    def __init__(self, party_id: str, expected: str, actual: str):
        self.party_id = party_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Party {party_id} is a {actual}, not a {expected}",
            field="party_type",
        )


# Lookup errors


class NotFoundError(SettlementError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class PartyNotFoundError(NotFoundError):
    """Client or supplier does not exist."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment record does not exist."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class LedgerEntryNotFoundError(NotFoundError):
    """Sale or purchase entry does not exist."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, ledger_entry_id: str):
        self.ledger_entry_id = ledger_entry_id
        super().__init__(f"Ledger entry not found: {ledger_entry_id}")


# Reversal errors


class ReversalError(SettlementError):
    """Base exception for reversal-related errors."""

    code: str = "REVERSAL_ERROR"


class AlreadyReversedError(ReversalError):
    """Payment record has already been reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} has already been reversed")


class CreditAlreadyAppliedError(ReversalError):
    """
    The credit created by this payment was consumed by later credit
    applications, which must be reversed first.
    """

    code: str = "CREDIT_ALREADY_APPLIED"

    def __init__(self, payment_id: str, consumed: str, consuming_payment_ids: list[str]):
        self.payment_id = payment_id
        self.consumed = consumed
        self.consuming_payment_ids = consuming_payment_ids
        super().__init__(
            f"Cannot reverse payment {payment_id}: {consumed} of its credit "
            f"was applied by {', '.join(consuming_payment_ids)}; reverse those first"
        )


# Invariant violations


class InvariantViolation(SettlementError):
    """
    Ledger corruption detected.

    Fatal: the enclosing transaction is aborted and the condition is logged
    as critical.  Never silently corrected.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, detail: str, **context: str):
        self.invariant = invariant
        self.detail = detail
        self.context = context
        super().__init__(f"Invariant violated ({invariant}): {detail}")


# Concurrency errors


class ConcurrencyError(SettlementError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class PartyLockTimeoutError(ConcurrencyError):
    """Per-party lock could not be acquired within the configured timeout."""

    code: str = "PARTY_LOCK_TIMEOUT"

    def __init__(self, party_id: str, timeout_seconds: float):
        self.party_id = party_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock on party {party_id}"
        )


# Immutability errors


class ImmutabilityViolationError(SettlementError):
    """Attempted to modify a frozen field or an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
