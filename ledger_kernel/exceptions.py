"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting state machine and the action pipeline must be able to
react to a failure without parsing its message. Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, stable across releases)
  3. A STATUS_CODE class attribute (HTTP-style, for the boundary layer)
  4. Structured DATA attributes (not just a message string)

Example:
    try:
        service.approve_entry(entry_id, approver_id=user_id)
    except SeparationOfDutiesError as e:
        return response(status=e.status_code, body=e.to_dict())

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- LedgerError
    |   +-- EntityNotFoundError
    |   +-- EntryNotFoundError
    |   +-- CrossEntityReferenceError
    |   +-- UnbalancedEntryError
    |   +-- FiscalPeriodClosedError
    |   +-- AlreadyPostedError
    |   +-- AlreadyVoidedError
    |   +-- ImmutablePostedEntryError
    |   +-- SeparationOfDutiesError
    |
    +-- ActionError
    |   +-- ActionNotFoundError
    |   +-- ActionNotPendingError
    |   +-- ActionExpiredError
    |   +-- InvalidActionInputError
    |
    +-- CollaboratorError
    |   +-- RuleSuggestionNotFoundError
    |   +-- RuleSuggestionAlreadyReviewedError
    |   +-- InsightNotFoundError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                              | Status | When Raised
----------------------------------|--------|------------------------------------
ENTITY_NOT_FOUND                  | 403    | Entity not owned by caller's tenant
ENTRY_NOT_FOUND                   | 404    | Entry missing, deleted, or foreign
CROSS_ENTITY_REFERENCE            | 403    | Account inactive or foreign
UNBALANCED_ENTRY                  | 400    | Debits != Credits
FISCAL_PERIOD_CLOSED              | 400    | Date inside a LOCKED/CLOSED period
ALREADY_POSTED                    | 409    | Approving a non-DRAFT entry
ALREADY_VOIDED                    | 409    | Voiding twice (or losing the race)
IMMUTABLE_POSTED_ENTRY            | 400    | Deleting/voiding in the wrong state
SEPARATION_OF_DUTIES              | 403    | Creator approving own entry
ACTION_NOT_FOUND                  | 404    | Action missing or foreign
ACTION_NOT_PENDING                | 409    | Action already reviewed
ACTION_EXPIRED                    | 410    | Action past its expiry
INVALID_ACTION_INPUT              | 400    | Bad confidence / expiry on create
RULE_SUGGESTION_NOT_FOUND         | 404    | Suggestion missing or foreign
RULE_SUGGESTION_ALREADY_REVIEWED  | 409    | Suggestion no longer PENDING
INSIGHT_NOT_FOUND                 | 404    | Insight missing or foreign
IMMUTABILITY_VIOLATION            | 409    | ORM flush mutates a frozen row
CONFIGURATION_ERROR               | 500    | Invalid configuration file

===============================================================================
PROPAGATION
===============================================================================

The posting state machine and the action pipeline raise these errors. The
executor registry and compensating handlers never raise: their failures are
returned as ExecutionResult data. Audit-log failures are logged and swallowed.
"""

from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a `code` and `status_code` class attribute.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    status_code: int = 500

    def to_dict(self) -> dict[str, Any]:
        """Boundary-layer representation: code, message, status, details."""
        details = {
            k: (str(v) if v is not None and not isinstance(v, (int, str, list)) else v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }
        return {
            "code": self.code,
            "message": str(self),
            "status_code": self.status_code,
            "details": details,
        }


class ConfigurationError(LedgerKernelError):
    """Configuration file is missing or holds invalid values."""

    code: str = "CONFIGURATION_ERROR"
    status_code: int = 500

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


# Ledger exceptions


class LedgerError(LedgerKernelError):
    """Base exception for ledger posting errors."""

    code: str = "LEDGER_ERROR"
    status_code: int = 400


class EntityNotFoundError(LedgerError):
    """Entity does not exist or does not belong to the caller's tenant."""

    code: str = "ENTITY_NOT_FOUND"
    status_code: int = 403

    def __init__(self, entity_id: str, tenant_id: str):
        self.entity_id = entity_id
        self.tenant_id = tenant_id
        super().__init__(f"Entity {entity_id} not found for tenant")


class EntryNotFoundError(LedgerError):
    """Ledger entry does not exist, is soft-deleted, or belongs elsewhere."""

    code: str = "ENTRY_NOT_FOUND"
    status_code: int = 404

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class CrossEntityReferenceError(LedgerError):
    """
    A referenced ledger account is inactive or owned by another entity.

    The message never reveals which foreign entity owns the account.
    """

    code: str = "CROSS_ENTITY_REFERENCE"
    status_code: int = 403

    def __init__(self, entity_id: str, invalid_account_ids: list[str]):
        self.entity_id = entity_id
        self.invalid_account_ids = invalid_account_ids
        super().__init__(
            "One or more ledger accounts are invalid, inactive, "
            "or belong to a different entity"
        )


class UnbalancedEntryError(LedgerError):
    """Total debits do not equal total credits."""

    code: str = "UNBALANCED_ENTRY"
    status_code: int = 400

    def __init__(self, total_debits: int, total_credits: int, reason: str | None = None):
        self.total_debits = total_debits
        self.total_credits = total_credits
        super().__init__(
            f"Entry is unbalanced: {reason}"
            if reason
            else f"Entry is unbalanced: debits ({total_debits}) != credits ({total_credits})"
        )


class FiscalPeriodClosedError(LedgerError):
    """Entry date falls inside a LOCKED or CLOSED fiscal period."""

    code: str = "FISCAL_PERIOD_CLOSED"
    status_code: int = 400

    def __init__(self, period_name: str, period_status: str, entry_date: Any):
        self.period_name = period_name
        self.period_status = period_status
        self.entry_date = entry_date
        super().__init__(
            f"Cannot post to {period_status.lower()} fiscal period "
            f"'{period_name}' (date {entry_date})"
        )


class AlreadyPostedError(LedgerError):
    """Entry is no longer DRAFT and cannot be approved again."""

    code: str = "ALREADY_POSTED"
    status_code: int = 409

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(
            f"Only DRAFT entries can be approved (entry {entry_id} is {status})"
        )


class AlreadyVoidedError(LedgerError):
    """Entry is already voided or already has a reversal."""

    code: str = "ALREADY_VOIDED"
    status_code: int = 409

    def __init__(self, entry_id: str, linked_entry_id: str | None = None):
        self.entry_id = entry_id
        self.linked_entry_id = linked_entry_id
        super().__init__(f"Entry {entry_id} has already been voided")


class ImmutablePostedEntryError(LedgerError):
    """Operation is not allowed for the entry's current status."""

    code: str = "IMMUTABLE_POSTED_ENTRY"
    status_code: int = 400

    def __init__(self, entry_id: str, status: str, operation: str):
        self.entry_id = entry_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} entry {entry_id} with status {status}"
        )


class SeparationOfDutiesError(LedgerError):
    """The approver created the entry and lacks the privileged role."""

    code: str = "SEPARATION_OF_DUTIES"
    status_code: int = 403

    def __init__(self, entry_id: str, user_id: str):
        self.entry_id = entry_id
        self.user_id = user_id
        super().__init__(
            "Cannot approve your own ledger entry. "
            "A different user must approve it."
        )


# Action pipeline exceptions


class ActionError(LedgerKernelError):
    """Base exception for action pipeline errors."""

    code: str = "ACTION_ERROR"
    status_code: int = 400


class ActionNotFoundError(ActionError):
    code: str = "ACTION_NOT_FOUND"
    status_code: int = 404

    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Action not found: {action_id}")


class ActionNotPendingError(ActionError):
    """Action has already left PENDING (approved, rejected or expired)."""

    code: str = "ACTION_NOT_PENDING"
    status_code: int = 409

    def __init__(self, action_id: str, status: str | None = None):
        self.action_id = action_id
        self.status = status
        suffix = f" (status {status})" if status else ""
        super().__init__(f"Action {action_id} is not pending{suffix}")


class ActionExpiredError(ActionError):
    code: str = "ACTION_EXPIRED"
    status_code: int = 410

    def __init__(self, action_id: str, expires_at: Any):
        self.action_id = action_id
        self.expires_at = expires_at
        super().__init__(f"Action {action_id} expired at {expires_at}")


class InvalidActionInputError(ActionError):
    code: str = "INVALID_ACTION_INPUT"
    status_code: int = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid action input '{field}': {reason}")


# Collaborator exceptions (rule suggestions, insights)


class CollaboratorError(LedgerKernelError):
    """Base exception for the executor collaborators."""

    code: str = "COLLABORATOR_ERROR"
    status_code: int = 400


class RuleSuggestionNotFoundError(CollaboratorError):
    code: str = "RULE_SUGGESTION_NOT_FOUND"
    status_code: int = 404

    def __init__(self, suggestion_id: str):
        self.suggestion_id = suggestion_id
        super().__init__(f"Rule suggestion not found: {suggestion_id}")


class RuleSuggestionAlreadyReviewedError(CollaboratorError):
    code: str = "RULE_SUGGESTION_ALREADY_REVIEWED"
    status_code: int = 409

    def __init__(self, suggestion_id: str, status: str):
        self.suggestion_id = suggestion_id
        self.status = status
        super().__init__(
            f"Rule suggestion {suggestion_id} has already been reviewed ({status})"
        )


class InsightNotFoundError(CollaboratorError):
    code: str = "INSIGHT_NOT_FOUND"
    status_code: int = 404

    def __init__(self, insight_id: str):
        self.insight_id = insight_id
        super().__init__(f"Insight not found: {insight_id}")


# Immutability


class ImmutabilityViolationError(LedgerKernelError):
    """
    Attempted to modify or delete an immutable record.

    Raised from ORM flush listeners: POSTED/VOIDED entries, their lines,
    and audit log rows are frozen.
    """

    code: str = "IMMUTABILITY_VIOLATION"
    status_code: int = 409

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
