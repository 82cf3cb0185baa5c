"""
ORM-Level Immutability and Range Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Payment history is the only evidence of how a ledger entry reached its
current amount_paid.  If a payment record or one of its allocations could be
edited after the fact, a later reversal would subtract the wrong amounts and
the running totals would drift.  Corrections therefore happen by reversal,
never by edit.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted.
The listeners below inspect attribute history and raise before any SQL
reaches the database:

    session.flush()
         |
         v
    [before_insert / before_update] --> _check_*() --> ImmutabilityViolationError
         |                                              InvariantViolation
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | Rule
-------------------|--------------------------------------------------------
LedgerEntry        | total_amount, party_id, entry_date, kind, sequence are
                   | frozen; 0 <= amount_paid <= total_amount on every
                   | write; no DELETE while amount_paid > 0
PaymentRecord      | Frozen except the reversal fields, which may be set
                   | exactly once (reversed False -> True); never deleted
PaymentAllocation  | ALWAYS immutable, never deleted
CreditLot          | amount, party_id, payment_id frozen; remaining within
                   | [0, amount]; voided never goes back to False
CreditConsumption  | ALWAYS immutable, never deleted

updated_at is audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

Called once during application startup, after the models are importable:

    from settlement_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Tests that need to write corrupt rows on purpose may unregister and
re-register around the offending write.
"""

from decimal import Decimal

from sqlalchemy import event, inspect

from settlement_kernel.exceptions import ImmutabilityViolationError, InvariantViolation
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})

_LEDGER_FROZEN_FIELDS = ("total_amount", "party_id", "entry_date", "kind", "sequence")

_REVERSAL_FIELDS = frozenset(
    {"reversed", "reversed_at", "reversed_by", "reversal_reason"}
)

_CREDIT_LOT_FROZEN_FIELDS = ("amount", "party_id", "payment_id", "sequence")


def _changed_columns(target) -> list[str]:
    """Names of mapped columns with pending changes (relationships excluded)."""
    state = inspect(target)
    changed = []
    for column_attr in state.mapper.column_attrs:
        if column_attr.key in _AUDIT_FIELDS:
            continue
        if state.attrs[column_attr.key].history.has_changes():
            changed.append(column_attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# LedgerEntry
# =============================================================================


def _check_ledger_entry_range(mapper, connection, target):
    """0 <= amount_paid <= total_amount, and total_amount itself non-negative."""
    total: Decimal = target.total_amount
    paid: Decimal = target.amount_paid
    if total < 0 or paid < 0 or paid > total:
        logger.critical(
            "invariant_violation",
            extra={
                "invariant": "paid_within_total",
                "ledger_entry_id": str(target.id),
                "total_amount": str(total),
                "amount_paid": str(paid),
            },
        )
        raise InvariantViolation(
            "paid_within_total",
            f"ledger entry {target.id} would be written with amount_paid={paid} "
            f"and total_amount={total}",
            ledger_entry_id=str(target.id),
        )


def _check_ledger_entry_update(mapper, connection, target):
    state = inspect(target)
    for field in _LEDGER_FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            _block(
                "LedgerEntry",
                target,
                "UPDATE",
                f"Field '{field}' is frozen after creation",
                field=field,
            )
    _check_ledger_entry_range(mapper, connection, target)


def _check_ledger_entry_delete(mapper, connection, target):
    if target.amount_paid > 0:
        _block(
            "LedgerEntry",
            target,
            "DELETE",
            "Ledger entries with recorded payments cannot be deleted; "
            "reverse the payments first",
        )


# =============================================================================
# PaymentRecord
# =============================================================================


def _check_payment_record_update(mapper, connection, target):
    """
    Allow exactly one transition: the reversal.

    The reversal fields may change only in the same flush that moves
    ``reversed`` from False to True.  Everything else is frozen.
    """
    changed = _changed_columns(target)
    if not changed:
        return

    reversed_history = inspect(target).attrs["reversed"].history
    reversing_now = (
        bool(reversed_history.added)
        and reversed_history.added[0] is True
        and (not reversed_history.deleted or reversed_history.deleted[0] is False)
    )

    for field in changed:
        if field in _REVERSAL_FIELDS and reversing_now:
            continue
        reason = (
            "Payment record has already been reversed"
            if field in _REVERSAL_FIELDS
            else f"Field '{field}' of a payment record is immutable; "
            "record a reversal instead"
        )
        _block("PaymentRecord", target, "UPDATE", reason, field=field)


def _check_payment_record_delete(mapper, connection, target):
    _block(
        "PaymentRecord",
        target,
        "DELETE",
        "Payment records cannot be deleted; record a reversal instead",
    )


# =============================================================================
# Append-only rows
# =============================================================================


def _check_allocation_update(mapper, connection, target):
    if _changed_columns(target):
        _block("PaymentAllocation", target, "UPDATE", "Allocations are immutable")


def _check_allocation_delete(mapper, connection, target):
    _block("PaymentAllocation", target, "DELETE", "Allocations cannot be deleted")


def _check_consumption_update(mapper, connection, target):
    if _changed_columns(target):
        _block("CreditConsumption", target, "UPDATE", "Credit consumptions are immutable")


def _check_consumption_delete(mapper, connection, target):
    _block("CreditConsumption", target, "DELETE", "Credit consumptions cannot be deleted")


# =============================================================================
# CreditLot
# =============================================================================


def _check_credit_lot_update(mapper, connection, target):
    state = inspect(target)
    for field in _CREDIT_LOT_FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            _block(
                "CreditLot",
                target,
                "UPDATE",
                f"Field '{field}' is frozen after creation",
                field=field,
            )

    voided_history = state.attrs["voided"].history
    if voided_history.deleted and voided_history.deleted[0] is True:
        _block("CreditLot", target, "UPDATE", "A voided credit lot cannot be revived", field="voided")

    if target.remaining < 0 or target.remaining > target.amount:
        logger.critical(
            "invariant_violation",
            extra={
                "invariant": "credit_lot_range",
                "credit_lot_id": str(target.id),
                "amount": str(target.amount),
                "remaining": str(target.remaining),
            },
        )
        raise InvariantViolation(
            "credit_lot_range",
            f"credit lot {target.id} remaining {target.remaining} is outside "
            f"[0, {target.amount}]",
            credit_lot_id=str(target.id),
        )


def _check_credit_lot_delete(mapper, connection, target):
    _block("CreditLot", target, "DELETE", "Credit lots cannot be deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from settlement_kernel.models.ledger import LedgerEntry
    from settlement_kernel.models.payment import (
        CreditConsumption,
        CreditLot,
        PaymentAllocation,
        PaymentRecord,
    )

    return [
        (LedgerEntry, "before_insert", _check_ledger_entry_range),
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (PaymentRecord, "before_update", _check_payment_record_update),
        (PaymentRecord, "before_delete", _check_payment_record_delete),
        (PaymentAllocation, "before_update", _check_allocation_update),
        (PaymentAllocation, "before_delete", _check_allocation_delete),
        (CreditLot, "before_update", _check_credit_lot_update),
        (CreditLot, "before_delete", _check_credit_lot_delete),
        (CreditConsumption, "before_update", _check_consumption_update),
        (CreditConsumption, "before_delete", _check_consumption_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.  LedgerEntry listeners propagate to the
    Sale and Purchase subclasses.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn, propagate=True)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that write invalid rows on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
