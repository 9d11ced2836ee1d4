"""
Ledger domain types (``ledger_kernel.domain.ledger``).

Responsibility
--------------
Pure value objects and functions for the posting state machine: entry
status lifecycle, provenance, line input, balance totals, the reversal
line mirror, and entry-number formatting.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Balance: ``ensure_balanced`` raises ``UnbalancedEntryError`` unless
  total debits equal total credits, and rejects an entry with no lines.
* Reversal mirror: ``reverse_lines`` swaps debit and credit on every line
  and preserves order, so a reversal of a balanced entry is balanced.
* Lifecycle: ``ENTRY_TRANSITIONS`` lists the only legal status moves.
  VOIDED is terminal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Protocol
from uuid import UUID

from ledger_kernel.exceptions import UnbalancedEntryError


class EntryStatus(str, Enum):
    """Ledger entry lifecycle states."""

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOIDED = "VOIDED"


ENTRY_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.DRAFT: frozenset({EntryStatus.POSTED}),
    EntryStatus.POSTED: frozenset({EntryStatus.VOIDED}),
    EntryStatus.VOIDED: frozenset(),
}


def can_transition(current: EntryStatus, target: EntryStatus) -> bool:
    return target in ENTRY_TRANSITIONS.get(EntryStatus(current), frozenset())


class SourceType(str, Enum):
    """Where a ledger entry came from."""

    MANUAL = "MANUAL"
    AI_SUGGESTION = "AI_SUGGESTION"
    IMPORT = "IMPORT"
    ADJUSTMENT = "ADJUSTMENT"
    BANK_FEED = "BANK_FEED"
    INVOICE = "INVOICE"
    BILL = "BILL"
    PAYMENT = "PAYMENT"
    TRANSFER = "TRANSFER"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEPRECIATION = "DEPRECIATION"


@dataclass(frozen=True)
class Provenance:
    """Origin of an entry: source type, source record id, free-form document."""

    source_type: SourceType = SourceType.MANUAL
    source_id: str | None = None
    source_document: dict[str, Any] | None = None


@dataclass(frozen=True)
class LineInput:
    """One debit or credit posting requested for a new entry.

    Amounts are integer minor currency units.
    """

    ledger_account_id: UUID
    debit_amount: int = 0
    credit_amount: int = 0
    memo: str | None = None

    def __post_init__(self) -> None:
        for name in ("debit_amount", "credit_amount"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer number of minor units")
            if value < 0:
                raise ValueError(f"{name} must be non-negative")


class _HasAmounts(Protocol):
    debit_amount: int
    credit_amount: int


@dataclass(frozen=True)
class EntryTotals:
    total_debits: int
    total_credits: int

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


def compute_totals(lines: Iterable[_HasAmounts]) -> EntryTotals:
    debits = 0
    credits = 0
    for line in lines:
        debits += line.debit_amount
        credits += line.credit_amount
    return EntryTotals(total_debits=debits, total_credits=credits)


def ensure_balanced(lines: Iterable[_HasAmounts]) -> EntryTotals:
    """Return the totals, or raise UnbalancedEntryError.

    An entry with no lines is rejected even though its totals agree.
    """
    lines = list(lines)
    if not lines:
        raise UnbalancedEntryError(total_debits=0, total_credits=0, reason="entry has no lines")
    totals = compute_totals(lines)
    if not totals.is_balanced:
        raise UnbalancedEntryError(
            total_debits=totals.total_debits,
            total_credits=totals.total_credits,
        )
    return totals


def reversal_memo(memo: str | None, prefix: str = "REVERSAL: ") -> str:
    return f"{prefix}{memo or ''}"


def reverse_lines(lines: Iterable[LineInput], memo_prefix: str = "REVERSAL: ") -> list[LineInput]:
    """Mirror lines for a reversing entry: debit and credit swapped per line.

    Line memos that are present get the same prefix as the entry memo.
    """
    return [
        LineInput(
            ledger_account_id=line.ledger_account_id,
            debit_amount=line.credit_amount,
            credit_amount=line.debit_amount,
            memo=f"{memo_prefix}{line.memo}" if line.memo else None,
        )
        for line in lines
    ]


@dataclass(frozen=True)
class VoidResult:
    """Identifiers produced by voiding an entry."""

    voided_entry_id: UUID
    reversal_entry_id: UUID


# -------------------------------------------------------------------------
# Entry numbers
# -------------------------------------------------------------------------

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def format_entry_number(prefix: str, n: int, width: int = 3) -> str:
    """``format_entry_number("JE-", 7) -> "JE-007"``; widens past ``width``."""
    if n < 1:
        raise ValueError("Entry numbers start at 1")
    return f"{prefix}{n:0{width}d}"


def parse_entry_number(number: str | None) -> int | None:
    """Trailing numeric suffix of an entry number, or None if there is none."""
    if not number:
        return None
    match = _TRAILING_DIGITS.search(number)
    if match is None:
        return None
    return int(match.group(1))
