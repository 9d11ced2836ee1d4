"""
Module: ledger_kernel.models.audit_log
Responsibility: ORM persistence for the append-only audit trail of ledger
    and action mutations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; UPDATE and DELETE are blocked by ORM
      listeners in db/immutability.py.

Audit relevance:
    AuditLog IS the audit trail.  Entry create/approve/void/delete and the
    reversal creation each produce one row with before/after snapshots.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Enum as SAEnum, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Kinds of audited mutation."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLog(Base):
    """
    One audit record.

    Guarantees:
        - Never updated or deleted after insert.
        - ``before`` / ``after`` are JSON snapshots of the changed fields.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_record", "model", "record_id"),
        Index("idx_audit_tenant_entity", "tenant_id", "entity_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Model name of the audited row, e.g. "LedgerEntry"
    model: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    record_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
    )

    action: Mapped[AuditAction] = mapped_column(
        SAEnum(AuditAction, native_enum=False, length=10),
        nullable=False,
    )

    user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    before: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    after: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.model} {self.record_id} {self.action.value}>"
