"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts that ledger lines
    post to.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (entity_id, code) is unique.
    - Only active accounts owned by the entry's entity accept postings
      (checked by AccountDirectory before an entry is created).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class LedgerAccount(Base):
    """An account in an entity's chart of accounts."""

    __tablename__ = "ledger_accounts"

    __table_args__ = (
        UniqueConstraint("entity_id", "code", name="uq_ledger_account_code"),
        Index("idx_ledger_account_entity", "entity_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, native_enum=False, length=20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.code}: {self.name}>"
