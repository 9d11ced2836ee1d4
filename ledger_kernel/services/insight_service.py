"""
InsightService -- dismissal of alert insights.

Used by the ALERT executor as the compensating handler when an alert action
is rejected.  Dismissing an already dismissed insight is a no-op.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import AuditSink
from ledger_kernel.exceptions import InsightNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.automation import Insight, InsightStatus
from ledger_kernel.models.tenancy import entity_ids_for_tenant
from ledger_kernel.services.audit_service import AuditLogService

logger = get_logger("services.insight")


class InsightService:
    def __init__(
        self,
        session: Session,
        tenant_id: UUID,
        *,
        clock: Clock | None = None,
        audit: AuditSink | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._audit = audit or AuditLogService(session, self._clock)

    def dismiss(self, insight_id: UUID, user_id: UUID) -> None:
        """Mark an insight DISMISSED.  Raises InsightNotFoundError if foreign."""
        scope = Insight.entity_id.in_(entity_ids_for_tenant(self._tenant_id))
        row = self._session.execute(
            select(Insight.entity_id, Insight.status).where(Insight.id == insight_id, scope)
        ).first()
        if row is None:
            raise InsightNotFoundError(str(insight_id))
        if InsightStatus(row.status) == InsightStatus.DISMISSED:
            return

        self._session.execute(
            update(Insight)
            .where(Insight.id == insight_id, Insight.status != InsightStatus.DISMISSED)
            .values(
                status=InsightStatus.DISMISSED,
                dismissed_at=self._clock.now_utc(),
                dismissed_by=user_id,
            )
            .execution_options(synchronize_session=False)
        )
        self._audit.record(
            tenant_id=self._tenant_id,
            entity_id=row.entity_id,
            model="Insight",
            record_id=insight_id,
            action=AuditAction.UPDATE.value,
            user_id=user_id,
            before={"status": InsightStatus(row.status)},
            after={"status": InsightStatus.DISMISSED},
        )
        logger.info("insight_dismissed", extra={"insight_id": str(insight_id)})
