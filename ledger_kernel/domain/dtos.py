"""
Read-side data transfer objects (``ledger_kernel.domain.dtos``).

Services and selectors never hand ORM rows to callers; they return these
frozen snapshots instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ledger_kernel.domain.actions import (
    ActionPriority,
    ActionStatus,
    ActionType,
    ExecutionResult,
)
from ledger_kernel.domain.ledger import EntryStatus, SourceType, compute_totals


@dataclass(frozen=True)
class LedgerLineDTO:
    id: UUID
    ledger_account_id: UUID
    debit_amount: int
    credit_amount: int
    memo: str | None
    line_no: int


@dataclass(frozen=True)
class LedgerEntryDTO:
    """Snapshot of a ledger entry with its non-deleted lines, in line order."""

    id: UUID
    entity_id: UUID
    entry_number: str | None
    entry_date: date
    memo: str | None
    status: EntryStatus
    source_type: SourceType
    source_id: str | None
    source_document: dict[str, Any] | None
    linked_entry_id: UUID | None
    created_by_id: UUID
    updated_by_id: UUID | None
    created_at: datetime | None
    updated_at: datetime | None
    lines: tuple[LedgerLineDTO, ...] = ()

    @property
    def total_debits(self) -> int:
        return compute_totals(self.lines).total_debits

    @property
    def total_credits(self) -> int:
        return compute_totals(self.lines).total_credits

    @property
    def is_balanced(self) -> bool:
        return compute_totals(self.lines).is_balanced


@dataclass(frozen=True)
class EntryListItem:
    """List row: header fields plus line count and total debit amount."""

    id: UUID
    entry_number: str | None
    entry_date: date
    memo: str | None
    status: EntryStatus
    source_type: SourceType
    linked_entry_id: UUID | None
    created_at: datetime | None
    line_count: int
    total_amount: int


@dataclass(frozen=True)
class EntryPage:
    """One page of entries; ``next_cursor`` is the id to pass for the next page."""

    entries: tuple[EntryListItem, ...]
    next_cursor: UUID | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


@dataclass(frozen=True)
class ActionDTO:
    id: UUID
    entity_id: UUID
    type: ActionType
    title: str
    description: str | None
    status: ActionStatus
    confidence: int | None
    priority: ActionPriority
    payload: dict[str, Any]
    ai_provider: str | None
    ai_model: str | None
    metadata: dict[str, Any] | None
    reviewed_at: datetime | None
    reviewed_by: UUID | None
    expires_at: datetime
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class ActionPage:
    actions: tuple[ActionDTO, ...]
    total: int


@dataclass(frozen=True)
class ApprovalOutcome:
    """Updated action plus the raw executor result.

    ``execution.success`` may be False while ``action.status`` is APPROVED.
    """

    action: ActionDTO
    execution: ExecutionResult


@dataclass(frozen=True)
class RuleDTO:
    id: UUID
    entity_id: UUID
    name: str
    conditions: dict[str, Any]
    action: dict[str, Any]
    source: str
    is_active: bool


@dataclass(frozen=True)
class PeriodLock:
    """A LOCKED or CLOSED fiscal period covering some date."""

    id: UUID
    name: str
    status: str


@dataclass(frozen=True)
class AuditRecord:
    id: UUID
    tenant_id: UUID
    entity_id: UUID | None
    model: str
    record_id: str
    action: str
    user_id: UUID | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    created_at: datetime | None = field(default=None)
