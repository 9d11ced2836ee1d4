"""
Module: ledger_kernel.selectors.action_selector
Responsibility: Read-only, tenant- and entity-scoped access to actions:
    single lookups, filtered pages, and status/type counts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query is constrained by entity_id AND by the entity belonging to
      the tenant.
    - Pages are ordered newest first (created_at desc, id desc).
"""

from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.actions import (
    ActionPriority,
    ActionStats,
    ActionStatus,
    ActionType,
)
from ledger_kernel.domain.clock import as_utc
from ledger_kernel.domain.dtos import ActionDTO, ActionPage
from ledger_kernel.models.action import Action
from ledger_kernel.models.tenancy import entity_ids_for_tenant
from ledger_kernel.selectors.base import BaseSelector


def action_to_dto(action: Action) -> ActionDTO:
    return ActionDTO(
        id=action.id,
        entity_id=action.entity_id,
        type=ActionType(action.type),
        title=action.title,
        description=action.description,
        status=ActionStatus(action.status),
        confidence=action.confidence,
        priority=ActionPriority(action.priority),
        payload=dict(action.payload or {}),
        ai_provider=action.ai_provider,
        ai_model=action.ai_model,
        metadata=action.action_metadata,
        reviewed_at=as_utc(action.reviewed_at),
        reviewed_by=action.reviewed_by,
        expires_at=as_utc(action.expires_at),
        created_at=as_utc(action.created_at),
        updated_at=as_utc(action.updated_at),
    )


class ActionSelector(BaseSelector[Action]):
    """Scoped reads over the action store."""

    def __init__(self, session, tenant_id: UUID, entity_id: UUID):
        super().__init__(session)
        self.tenant_id = tenant_id
        self.entity_id = entity_id

    def scope(self) -> list:
        """WHERE clauses limiting a query to this tenant's entity."""
        return [
            Action.entity_id == self.entity_id,
            Action.entity_id.in_(entity_ids_for_tenant(self.tenant_id)),
        ]

    def get_model(self, action_id: UUID) -> Action | None:
        return self.session.execute(
            select(Action)
            .where(Action.id == action_id, *self.scope())
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(self, action_id: UUID) -> ActionDTO | None:
        action = self.get_model(action_id)
        return action_to_dto(action) if action is not None else None

    def list_actions(
        self,
        *,
        status: ActionStatus | None = None,
        type: ActionType | None = None,
        min_confidence: int | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> ActionPage:
        conditions = self.scope()
        if status is not None:
            conditions.append(Action.status == status)
        if type is not None:
            conditions.append(Action.type == type)
        if min_confidence is not None:
            conditions.append(Action.confidence >= min_confidence)

        total = self.session.execute(
            select(func.count(Action.id)).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(Action)
            .where(*conditions)
            .order_by(Action.created_at.desc(), Action.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        ).scalars()
        return ActionPage(
            actions=tuple(action_to_dto(row) for row in rows),
            total=int(total),
        )

    def stats(self) -> ActionStats:
        by_status = dict(
            self.session.execute(
                select(Action.status, func.count(Action.id))
                .where(*self.scope())
                .group_by(Action.status)
            ).all()
        )
        pending_by_type = {
            ActionType(type_).value: int(count)
            for type_, count in self.session.execute(
                select(Action.type, func.count(Action.id))
                .where(Action.status == ActionStatus.PENDING, *self.scope())
                .group_by(Action.type)
            ).all()
        }
        counts = {ActionStatus(k): int(v) for k, v in by_status.items()}
        return ActionStats(
            pending=counts.get(ActionStatus.PENDING, 0),
            approved=counts.get(ActionStatus.APPROVED, 0),
            rejected=counts.get(ActionStatus.REJECTED, 0),
            modified=counts.get(ActionStatus.MODIFIED, 0),
            expired=counts.get(ActionStatus.EXPIRED, 0),
            pending_by_type=pending_by_type,
        )
