"""
Action pipeline domain types (``ledger_kernel.domain.actions``).

Responsibility
--------------
Pure value objects for the approval pipeline: the action lifecycle state
machine, the closed set of action types, priorities, create input,
execution and batch results, and stats.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* Lifecycle: ``ACTION_TRANSITIONS`` defines the only valid moves.  Terminal
  states have no outgoing edges.  MODIFIED is reserved and never produced.
* Uniform result: every executor outcome is an ``ExecutionResult``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.exceptions import InvalidActionInputError


class ActionType(str, Enum):
    """Closed set of suggestion kinds the executor registry understands."""

    LEDGER_DRAFT = "LEDGER_DRAFT"
    CATEGORIZATION = "CATEGORIZATION"
    RULE_SUGGESTION = "RULE_SUGGESTION"
    ALERT = "ALERT"


class ActionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MODIFIED = "MODIFIED"
    EXPIRED = "EXPIRED"


class ActionPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


ACTION_TRANSITIONS: dict[ActionStatus, frozenset[ActionStatus]] = {
    ActionStatus.PENDING: frozenset({
        ActionStatus.APPROVED,
        ActionStatus.REJECTED,
        ActionStatus.EXPIRED,
    }),
    ActionStatus.APPROVED: frozenset(),
    ActionStatus.REJECTED: frozenset(),
    ActionStatus.MODIFIED: frozenset(),
    ActionStatus.EXPIRED: frozenset(),
}

TERMINAL_ACTION_STATUSES: frozenset[ActionStatus] = frozenset(
    status for status, targets in ACTION_TRANSITIONS.items() if not targets
)


def is_terminal(status: ActionStatus) -> bool:
    return ActionStatus(status) in TERMINAL_ACTION_STATUSES


@dataclass(frozen=True)
class CreateActionInput:
    """Caller-supplied fields for a new PENDING action.

    ``expires_at`` and ``priority`` fall back to configured defaults.
    """

    type: ActionType
    title: str
    payload: dict[str, Any]
    description: str | None = None
    confidence: int | None = None
    priority: ActionPriority | None = None
    ai_provider: str | None = None
    ai_model: str | None = None
    metadata: dict[str, Any] | None = None
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.title:
            raise InvalidActionInputError("title", "must not be empty")
        if self.confidence is not None:
            if isinstance(self.confidence, bool) or not isinstance(self.confidence, int):
                raise InvalidActionInputError("confidence", "must be an integer")
            if not 0 <= self.confidence <= 100:
                raise InvalidActionInputError("confidence", "must be between 0 and 100")
        if not isinstance(self.payload, dict):
            raise InvalidActionInputError("payload", "must be a mapping")


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of an executor handler. Handlers never raise; they return this."""

    success: bool
    action_id: UUID
    type: str
    detail: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, action_id: UUID, type: str, detail: str | None = None) -> ExecutionResult:
        return cls(success=True, action_id=action_id, type=str(type), detail=detail)

    @classmethod
    def fail(cls, action_id: UUID, type: str, error: str) -> ExecutionResult:
        return cls(success=False, action_id=action_id, type=str(type), error=error)


@dataclass(frozen=True)
class BatchFailure:
    id: UUID
    reason: str


@dataclass(frozen=True)
class BatchResult:
    """Per-item outcome of a batch approve/reject. Never all-or-nothing."""

    succeeded: tuple[UUID, ...] = ()
    failed: tuple[BatchFailure, ...] = ()
    executions: tuple[ExecutionResult, ...] = ()


@dataclass(frozen=True)
class ActionStats:
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    modified: int = 0
    expired: int = 0
    pending_by_type: dict[str, int] = field(default_factory=dict)
