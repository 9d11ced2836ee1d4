"""
ORM-level immutability enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted ledger entries must never be edited: a posted mistake is corrected by
voiding it, which creates a visible reversal entry.  The audit trail must
never be edited at all.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners below intercept these events and raise
ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError

===============================================================================
PROTECTED ROWS
===============================================================================

Row            | When Immutable              | Still allowed
---------------|-----------------------------|---------------------------------
LedgerEntry    | status POSTED               | status -> VOIDED, linked_entry_id
LedgerEntry    | status VOIDED               | linked_entry_id (set once)
LedgerLine     | parent entry not DRAFT      | nothing
AuditLog       | always                      | nothing

updated_at / updated_by_id are audit metadata and may always change.

The state transitions themselves (DRAFT -> POSTED, POSTED -> VOIDED) are
issued by LedgerService as conditional UPDATE statements, which do not pass
through the unit of work.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.domain.ledger import EntryStatus
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields that may still change, keyed by the status the entry had before the flush.
_ALLOWED_CHANGES: dict[EntryStatus, frozenset[str]] = {
    EntryStatus.POSTED: frozenset({"status", "linked_entry_id"}),
    EntryStatus.VOIDED: frozenset({"linked_entry_id"}),
}


def _previous_status(target) -> EntryStatus:
    """Status as loaded from the database, before pending changes."""
    history = get_history(target, "status")
    if history.deleted:
        return EntryStatus(history.deleted[0])
    return EntryStatus(target.status)


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
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    """Block edits to POSTED/VOIDED entries beyond the void transition."""
    previous = _previous_status(target)
    if previous == EntryStatus.DRAFT:
        return

    allowed = _ALLOWED_CHANGES[previous] | _AUDIT_METADATA_FIELDS
    for attr in inspect(target).attrs:
        if attr.key in allowed or not attr.history.has_changes():
            continue
        raise _blocked(
            "LedgerEntry",
            target.id,
            "UPDATE",
            f"Cannot modify field '{attr.key}' on {previous.value} ledger entry",
            field=attr.key,
        )

    if "status" in allowed and get_history(target, "status").added:
        new_status = EntryStatus(target.status)
        if new_status != EntryStatus.VOIDED:
            raise _blocked(
                "LedgerEntry",
                target.id,
                "UPDATE",
                f"Illegal status change {previous.value} -> {new_status.value}",
                field="status",
            )

    linked = get_history(target, "linked_entry_id")
    if linked.deleted and linked.deleted[0] is not None:
        raise _blocked(
            "LedgerEntry",
            target.id,
            "UPDATE",
            "linked_entry_id is already set",
            field="linked_entry_id",
        )


def _check_ledger_entry_delete(mapper, connection, target):
    """Only DRAFT entries may be removed (and then only by soft delete in practice)."""
    previous = _previous_status(target)
    if previous != EntryStatus.DRAFT:
        raise _blocked(
            "LedgerEntry",
            target.id,
            "DELETE",
            f"{previous.value} ledger entries cannot be deleted",
        )


def _parent_is_frozen(line) -> bool:
    entry = line.entry
    if entry is None:
        return False
    return _previous_status(entry) != EntryStatus.DRAFT


def _check_ledger_line_immutability(mapper, connection, target):
    if _parent_is_frozen(target):
        raise _blocked(
            "LedgerLine",
            target.id,
            "UPDATE",
            "Ledger lines cannot be modified after the entry is posted",
        )


def _check_ledger_line_delete(mapper, connection, target):
    if _parent_is_frozen(target):
        raise _blocked(
            "LedgerLine",
            target.id,
            "DELETE",
            "Ledger lines cannot be deleted after the entry is posted",
        )


def _check_audit_log_immutability(mapper, connection, target):
    raise _blocked(
        "AuditLog",
        target.id,
        "UPDATE",
        "Audit records are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    raise _blocked(
        "AuditLog",
        target.id,
        "DELETE",
        "Audit records cannot be deleted",
    )


def _listeners():
    from ledger_kernel.models.audit_log import AuditLog
    from ledger_kernel.models.ledger import LedgerEntry, LedgerLine

    return [
        (LedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (LedgerLine, "before_update", _check_ledger_line_immutability),
        (LedgerLine, "before_delete", _check_ledger_line_delete),
        (AuditLog, "before_update", _check_audit_log_immutability),
        (AuditLog, "before_delete", _check_audit_log_delete),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove immutability listeners. FOR TESTING ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
