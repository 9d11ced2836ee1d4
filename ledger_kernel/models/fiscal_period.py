"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal periods -- controls which date
    ranges accept postings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - No ledger entry may be created or approved with an entry_date inside a
      CLOSED or LOCKED period (checked by PeriodService).

Failure modes:
    - FiscalPeriodClosedError raised by the ledger service when a covering
      period is CLOSED or LOCKED.
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, Enum as SAEnum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    LOCKED = "LOCKED"


class FiscalPeriod(Base):
    """
    Fiscal period for posting control.

    Guarantees:
        - start_date and end_date are both inclusive.

    Non-goals:
        - Does NOT enforce non-overlapping ranges; the first locked or closed
          period found for a date wins.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        Index("idx_period_entity_dates", "entity_id", "start_date", "end_date"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[PeriodStatus] = mapped_column(
        SAEnum(PeriodStatus, native_enum=False, length=20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.name}: {self.status.value}>"

    @property
    def is_locked(self) -> bool:
        """True when the period refuses postings (CLOSED or LOCKED)."""
        return self.status in (PeriodStatus.CLOSED, PeriodStatus.LOCKED)

    def covers(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date
