"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted ledger entries and stock movements are audit facts.  Corrections are
made by appending (a reversing entry, an offsetting movement), never by
editing.  This module intercepts ORM flushes and refuses any UPDATE or
DELETE that would rewrite history.

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | When Immutable                  | Allowed change
-------------------|---------------------------------|-------------------------------
LedgerEntry        | status is posted or void        | posted -> void (+ void fields)
LedgerLine         | parent entry is posted or void  | none
StockMovement      | always                          | none
PaymentAllocation  | always                          | none
Account            | once inserted                   | everything except number

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; init_engine_from_url calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from enum import Enum

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields the posted -> void transition is allowed to touch
_VOID_FIELDS = frozenset({"status", "voided_at", "void_reason"}) | _AUDIT_FIELDS


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _status_value(status) -> str | None:
    if isinstance(status, Enum):
        return status.value
    return status


def _previous_status(target) -> str | None:
    """Status as it was before this flush (None if first set in this flush)."""
    history = get_history(target, "status")
    if history.deleted:
        return _status_value(history.deleted[0])
    if history.added:
        return None
    return _status_value(target.status)


def _check_ledger_entry_update(mapper, connection, target):
    """
    Block edits of posted and void entries.

    A posted entry may only move to void, touching nothing but the void
    fields.  A void entry may not change at all.
    """
    previous = _previous_status(target)
    if previous not in ("posted", "void"):
        return

    changed = set(_changed_fields(target))
    if previous == "void":
        illegal = changed - _AUDIT_FIELDS
    else:
        current = _status_value(target.status)
        if "status" in changed and current != "void":
            _blocked(
                "LedgerEntry", target.id, "UPDATE",
                f"Posted entry can only transition to void, not {current}",
                field="status",
            )
        illegal = changed - _VOID_FIELDS

    for field in sorted(illegal):
        _blocked(
            "LedgerEntry", target.id, "UPDATE",
            f"Cannot modify field '{field}' on {previous} ledger entry",
            field=field,
        )


def _check_ledger_entry_delete(mapper, connection, target):
    status = _status_value(target.status)
    if status in ("posted", "void"):
        _blocked("LedgerEntry", target.id, "DELETE", f"{status.capitalize()} ledger entries cannot be deleted")


def _parent_is_final(target) -> bool:
    entry = target.entry
    if entry is None:
        return False
    return _status_value(entry.status) in ("posted", "void")


def _check_ledger_line_update(mapper, connection, target):
    if not _parent_is_final(target):
        return
    illegal = set(_changed_fields(target)) - _AUDIT_FIELDS
    if illegal:
        _blocked(
            "LedgerLine", target.id, "UPDATE",
            "Ledger lines cannot be modified after the entry is posted",
            field=sorted(illegal)[0],
        )


def _check_ledger_line_delete(mapper, connection, target):
    if _parent_is_final(target):
        _blocked("LedgerLine", target.id, "DELETE", "Ledger lines cannot be deleted after the entry is posted")


def _check_append_only_update(mapper, connection, target):
    illegal = set(_changed_fields(target)) - _AUDIT_FIELDS
    if illegal:
        _blocked(
            type(target).__name__, target.id, "UPDATE",
            f"{type(target).__name__} records are append-only",
            field=sorted(illegal)[0],
        )


def _check_append_only_delete(mapper, connection, target):
    _blocked(type(target).__name__, target.id, "DELETE", f"{type(target).__name__} records cannot be deleted")


def _check_account_number_update(mapper, connection, target):
    if get_history(target, "number").deleted:
        _blocked(
            "Account", target.id, "UPDATE",
            "Account number (and the class and nature derived from it) cannot change",
            field="number",
        )


def _listener_table():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.inventory import StockMovement
    from ledger_kernel.models.ledger import LedgerEntry, LedgerLine
    from ledger_kernel.models.payment import PaymentAllocation

    return (
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (LedgerLine, "before_update", _check_ledger_line_update),
        (LedgerLine, "before_delete", _check_ledger_line_delete),
        (StockMovement, "before_update", _check_append_only_update),
        (StockMovement, "before_delete", _check_append_only_delete),
        (PaymentAllocation, "before_update", _check_append_only_update),
        (PaymentAllocation, "before_delete", _check_append_only_delete),
        (Account, "before_update", _check_account_number_update),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement listeners.

    Idempotent: a listener already in place is not added twice.
    """
    for target, event_name, fn in _listener_table():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement listeners.

    WARNING: Only use this in tests that need to violate the rules on
    purpose to verify detection elsewhere.
    """
    for target, event_name, fn in _listener_table():
        _safe_remove_listener(target, event_name, fn)
