"""
Tenant/entity and ledger-account lookups used for ownership checks.

Responsibility:
    ``EntityDirectory`` answers whether an entity belongs to a tenant;
    ``AccountDirectory`` returns the subset of ledger accounts that are
    active and owned by a given entity of a given tenant.  Together they are
    the IDOR defense of the posting state machine.

Architecture position:
    Kernel > Services -- read-only collaborators of LedgerService.
"""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.tenancy import Entity


class EntityDirectory:
    def __init__(self, session: Session):
        self._session = session

    def entity_belongs_to_tenant(self, entity_id: UUID, tenant_id: UUID) -> bool:
        found = self._session.execute(
            select(Entity.id).where(
                Entity.id == entity_id,
                Entity.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return found is not None


class AccountDirectory:
    def __init__(self, session: Session):
        self._session = session

    def accounts_active_and_owned(
        self,
        account_ids: Iterable[UUID],
        entity_id: UUID,
        tenant_id: UUID,
    ) -> set[UUID]:
        """Return the subset of ``account_ids`` that are active and owned."""
        ids = set(account_ids)
        if not ids:
            return set()
        rows = self._session.execute(
            select(LedgerAccount.id)
            .join(Entity, Entity.id == LedgerAccount.entity_id)
            .where(
                LedgerAccount.id.in_(ids),
                LedgerAccount.entity_id == entity_id,
                LedgerAccount.is_active.is_(True),
                Entity.tenant_id == tenant_id,
            )
        ).scalars()
        return set(rows)
