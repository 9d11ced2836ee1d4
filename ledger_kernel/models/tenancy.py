"""
Module: ledger_kernel.models.tenancy
Responsibility: ORM persistence for entities (the legal/bookkeeping units a
    tenant owns).  Every ledger entry and action is owned by exactly one
    entity, which is owned by exactly one tenant.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String, func, select
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class Entity(Base):
    """
    A bookkeeping entity owned by one tenant.

    Guarantees:
        - tenant_id is required; all tenant scoping joins through this row.
    """

    __tablename__ = "entities"

    __table_args__ = (
        Index("idx_entity_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Entity {self.name} tenant={self.tenant_id}>"


def entity_ids_for_tenant(tenant_id: UUID):
    """Subquery of the entity ids a tenant owns, for tenant-scoped predicates."""
    return select(Entity.id).where(Entity.tenant_id == tenant_id)
