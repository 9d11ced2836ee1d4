"""
Pure domain layer.

Value objects, enums and pure functions with NO dependencies on the ORM,
the database, or I/O (the SystemClock aside).
"""

from ledger_kernel.domain.actions import (
    ACTION_TRANSITIONS,
    TERMINAL_ACTION_STATUSES,
    ActionPriority,
    ActionStats,
    ActionStatus,
    ActionType,
    BatchFailure,
    BatchResult,
    CreateActionInput,
    ExecutionResult,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock, as_utc
from ledger_kernel.domain.dtos import (
    ActionDTO,
    ActionPage,
    ApprovalOutcome,
    EntryListItem,
    EntryPage,
    LedgerEntryDTO,
    LedgerLineDTO,
)
from ledger_kernel.domain.ledger import (
    ENTRY_TRANSITIONS,
    EntryStatus,
    LineInput,
    Provenance,
    SourceType,
    VoidResult,
    compute_totals,
    ensure_balanced,
    format_entry_number,
    parse_entry_number,
    reverse_lines,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "as_utc",
    # Ledger
    "ENTRY_TRANSITIONS",
    "EntryStatus",
    "LineInput",
    "Provenance",
    "SourceType",
    "VoidResult",
    "compute_totals",
    "ensure_balanced",
    "format_entry_number",
    "parse_entry_number",
    "reverse_lines",
    # Actions
    "ACTION_TRANSITIONS",
    "TERMINAL_ACTION_STATUSES",
    "ActionPriority",
    "ActionStats",
    "ActionStatus",
    "ActionType",
    "BatchFailure",
    "BatchResult",
    "CreateActionInput",
    "ExecutionResult",
    # DTOs
    "ActionDTO",
    "ActionPage",
    "ApprovalOutcome",
    "EntryListItem",
    "EntryPage",
    "LedgerEntryDTO",
    "LedgerLineDTO",
]
