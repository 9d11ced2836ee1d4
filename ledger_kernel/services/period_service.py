"""
PeriodService -- fiscal period locks and posting-date validation.

Responsibility:
    Answers whether a date falls inside a CLOSED or LOCKED fiscal period of
    an entity, and manages the small OPEN -> CLOSED -> LOCKED lifecycle.

Architecture position:
    Kernel > Services -- imperative shell.  Called by LedgerService on
    create, approve and void (reversal date).

Invariants enforced:
    - No entry may be created, approved or reversed into a CLOSED or LOCKED
      period (``validate_entry_date``).
    - Flush-only: never commits or rolls back the session.
    - Returns frozen ``PeriodLock`` DTOs, never ORM rows.

Failure modes:
    - FiscalPeriodClosedError: the date is inside a CLOSED/LOCKED period.
    - ValueError: start_date after end_date on create.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import PeriodLock
from ledger_kernel.exceptions import FiscalPeriodClosedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus

logger = get_logger("services.period")

_LOCKED_STATUSES = (PeriodStatus.CLOSED, PeriodStatus.LOCKED)


class PeriodService:
    """
    Fiscal period lookup and lifecycle.

    Contract:
        ``locked_period_covering`` returns the first CLOSED/LOCKED period
        whose inclusive range covers the date, or None.
    """

    def __init__(self, session: Session):
        self._session = session

    def locked_period_covering(self, entity_id: UUID, on: date) -> PeriodLock | None:
        row = self._session.execute(
            select(FiscalPeriod.id, FiscalPeriod.name, FiscalPeriod.status)
            .where(
                FiscalPeriod.entity_id == entity_id,
                FiscalPeriod.start_date <= on,
                FiscalPeriod.end_date >= on,
                FiscalPeriod.status.in_(_LOCKED_STATUSES),
            )
            .order_by(FiscalPeriod.start_date)
            .limit(1)
        ).first()
        if row is None:
            return None
        return PeriodLock(id=row.id, name=row.name, status=PeriodStatus(row.status).value)

    def validate_entry_date(self, entity_id: UUID, on: date) -> None:
        """Raise FiscalPeriodClosedError if ``on`` is inside a locked period."""
        lock = self.locked_period_covering(entity_id, on)
        if lock is not None:
            logger.warning(
                "fiscal_period_closed_rejected",
                extra={
                    "entity_id": str(entity_id),
                    "entry_date": on.isoformat(),
                    "period_name": lock.name,
                    "period_status": lock.status,
                },
            )
            raise FiscalPeriodClosedError(
                period_name=lock.name,
                period_status=lock.status,
                entry_date=on,
            )

    def create_period(
        self,
        entity_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        status: PeriodStatus = PeriodStatus.OPEN,
    ) -> UUID:
        if start_date > end_date:
            raise ValueError("start_date must be on or before end_date")
        period = FiscalPeriod(
            entity_id=entity_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        self._session.add(period)
        self._session.flush()
        logger.info(
            "fiscal_period_created",
            extra={
                "entity_id": str(entity_id),
                "period_name": name,
                "period_status": status.value,
            },
        )
        return period.id

    def close_period(self, period_id: UUID) -> bool:
        """OPEN -> CLOSED.  Returns False if the period was not OPEN."""
        return self._transition(period_id, PeriodStatus.OPEN, PeriodStatus.CLOSED)

    def lock_period(self, period_id: UUID) -> bool:
        """OPEN or CLOSED -> LOCKED.  Returns False if already LOCKED."""
        return self._transition(
            period_id,
            (PeriodStatus.OPEN, PeriodStatus.CLOSED),
            PeriodStatus.LOCKED,
        )

    def _transition(self, period_id: UUID, expected, target: PeriodStatus) -> bool:
        expected = expected if isinstance(expected, tuple) else (expected,)
        result = self._session.execute(
            update(FiscalPeriod)
            .where(FiscalPeriod.id == period_id, FiscalPeriod.status.in_(expected))
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            logger.info(
                "fiscal_period_status_changed",
                extra={"period_id": str(period_id), "period_status": target.value},
            )
        return changed
