"""
Module: ledger_kernel.models.banking
Responsibility: ORM persistence for the bank transactions and categories the
    categorization and ledger-draft executors touch.
Architecture position: Kernel > Models.  May import from db/base.py only.

Non-goals:
    - Statement import, deduplication and matching heuristics live outside
      this package; these tables carry only the columns the executors need.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class Category(Base):
    """A tenant-wide spending/income category."""

    __tablename__ = "categories"

    __table_args__ = (
        Index("idx_category_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class BankTransaction(Base):
    """
    An imported bank transaction.

    ``ledger_entry_id`` points at the draft or posted entry generated for it;
    rejecting a ledger-draft action clears it again.
    """

    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_txn_entity", "entity_id"),
        Index("idx_bank_txn_ledger_entry", "ledger_entry_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    transaction_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    # Signed minor units (negative for outflows)
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )

    ledger_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
