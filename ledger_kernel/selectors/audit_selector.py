"""
Module: ledger_kernel.selectors.audit_selector
Responsibility: Read-only access to the audit trail for forensic review.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.clock import as_utc
from ledger_kernel.domain.dtos import AuditRecord
from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.selectors.base import BaseSelector


def _to_dto(row: AuditLog) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        entity_id=row.entity_id,
        model=row.model,
        record_id=row.record_id,
        action=AuditAction(row.action).value,
        user_id=row.user_id,
        before=row.before,
        after=row.after,
        created_at=as_utc(row.created_at),
    )


class AuditSelector(BaseSelector[AuditLog]):
    def for_record(self, tenant_id: UUID, model: str, record_id) -> tuple[AuditRecord, ...]:
        """All audit rows for one record, oldest first."""
        rows = self.session.execute(
            select(AuditLog)
            .where(
                AuditLog.tenant_id == tenant_id,
                AuditLog.model == model,
                AuditLog.record_id == str(record_id),
            )
            .order_by(AuditLog.created_at, AuditLog.id)
        ).scalars()
        return tuple(_to_dto(row) for row in rows)

    def for_entity(self, tenant_id: UUID, entity_id: UUID) -> tuple[AuditRecord, ...]:
        rows = self.session.execute(
            select(AuditLog)
            .where(AuditLog.tenant_id == tenant_id, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at, AuditLog.id)
        ).scalars()
        return tuple(_to_dto(row) for row in rows)
