"""
AuditLogService -- append-only audit trail for ledger and action mutations.

Responsibility:
    Appends one AuditLog row per audited mutation (entry create, approve,
    void, delete; reversal creation; rule suggestion and insight reviews).

Architecture position:
    Kernel > Services -- imperative shell, called by LedgerService,
    RuleSuggestionService and InsightService.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listeners in
      db/immutability.py).
    - Fire-and-forget: the insert runs inside a SAVEPOINT.  A failure rolls
      back the savepoint only, is logged, and never reaches the caller, so
      the primary operation's transaction stays usable.

Failure modes:
    - None surfaced.  ``audit_record_failed`` is logged at WARNING.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditLog

logger = get_logger("services.audit")


def _jsonable(value: Any) -> Any:
    """Make a snapshot value safe for a JSON column."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditLogService:
    """
    Append-only audit writer.

    Contract:
        ``record()`` never raises and never commits.

    Non-goals:
        - No hash chaining; the store's append-only guarantee is the
          tamper barrier.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        *,
        tenant_id: UUID,
        entity_id: UUID | None,
        model: str,
        record_id: Any,
        action: str,
        user_id: UUID | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(
                    AuditLog(
                        tenant_id=tenant_id,
                        entity_id=entity_id,
                        model=model,
                        record_id=str(record_id),
                        action=AuditAction(action),
                        user_id=user_id,
                        before=_jsonable(before) if before is not None else None,
                        after=_jsonable(after) if after is not None else None,
                        created_at=self._clock.now_utc(),
                    )
                )
        except (SQLAlchemyError, ValueError, TypeError):
            logger.warning(
                "audit_record_failed",
                extra={
                    "model": model,
                    "record_id": str(record_id),
                    "audit_action": str(action),
                },
                exc_info=True,
            )
            return

        logger.debug(
            "audit_recorded",
            extra={
                "model": model,
                "record_id": str(record_id),
                "audit_action": str(action),
            },
        )
