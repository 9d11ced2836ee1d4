"""
Module: ledger_kernel.models.ledger
Responsibility: ORM persistence for ledger entries and ledger lines -- the
    double-entry record the posting state machine operates on.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Entry numbers are unique per entity (uq_ledger_entry_number).
    - Line amounts are non-negative integers (CHECK constraints).
    - Immutability of non-DRAFT entries and their lines is enforced by
      ORM listeners in db/immutability.py.
    - Balance (total debits == total credits over non-deleted lines) is
      checked by LedgerService before persisting; ``is_balanced`` is a
      read-side convenience.

Failure modes:
    - IntegrityError on duplicate (entity_id, entry_number).
    - ImmutabilityViolationError on UPDATE/DELETE of a frozen entry or line.

Audit relevance:
    These rows are the authoritative financial record.  Posted amounts are
    never edited; voiding links a separate reversal entry instead.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.ledger import EntryStatus, SourceType, compute_totals


class LedgerEntry(TrackedBase):
    """
    Ledger entry header -- one double-entry transaction.

    Contract:
        Created as DRAFT.  DRAFT -> POSTED on approval, POSTED -> VOIDED when
        a reversal is linked.  Once non-DRAFT, only the void transition,
        linked_entry_id and audit metadata may change.

    Guarantees:
        - entry_number is unique within the owning entity.
        - linked_entry_id is set only on a voided original, pointing to its
          reversal.
        - Reversals carry source_type ADJUSTMENT and source_id = original id.

    Non-goals:
        - Does NOT enforce balance at the ORM level.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("entity_id", "entry_number", name="uq_ledger_entry_number"),
        Index("idx_ledger_entry_entity_date", "entity_id", "entry_date"),
        Index("idx_ledger_entry_status", "status"),
        Index("idx_ledger_entry_source", "source_type", "source_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    # Human-readable sequence, e.g. "JE-003"
    entry_number: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    memo: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    source_type: Mapped[SourceType] = mapped_column(
        SAEnum(SourceType, native_enum=False, length=20),
        default=SourceType.MANUAL,
        nullable=False,
    )

    source_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    source_document: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    # On a voided original: the reversal entry
    linked_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )

    status: Mapped[EntryStatus] = mapped_column(
        SAEnum(EntryStatus, native_enum=False, length=10),
        default=EntryStatus.DRAFT,
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="LedgerLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entry_number} status={self.status.value}>"

    @property
    def active_lines(self) -> list["LedgerLine"]:
        return [line for line in self.lines if line.deleted_at is None]

    @property
    def is_draft(self) -> bool:
        return self.status == EntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == EntryStatus.POSTED

    @property
    def is_voided(self) -> bool:
        return self.status == EntryStatus.VOIDED

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_balanced(self) -> bool:
        return compute_totals(self.active_lines).is_balanced


class LedgerLine(Base):
    """
    One debit or credit posting within an entry.

    Guarantees:
        - debit_amount >= 0 and credit_amount >= 0 (minor currency units).
        - line_no gives deterministic ordering within the entry.
    """

    __tablename__ = "ledger_lines"

    __table_args__ = (
        CheckConstraint("debit_amount >= 0", name="ck_ledger_line_debit_non_negative"),
        CheckConstraint("credit_amount >= 0", name="ck_ledger_line_credit_non_negative"),
        Index("idx_ledger_line_entry", "entry_id"),
        Index("idx_ledger_line_account", "ledger_account_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=False,
    )

    ledger_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_accounts.id"),
        nullable=False,
    )

    debit_amount: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    credit_amount: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    memo: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    line_no: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    entry: Mapped["LedgerEntry"] = relationship(
        back_populates="lines",
    )

    def __repr__(self) -> str:
        return f"<LedgerLine dr={self.debit_amount} cr={self.credit_amount}>"
