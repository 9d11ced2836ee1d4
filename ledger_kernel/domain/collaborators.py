"""
Collaborator protocols (``ledger_kernel.domain.collaborators``).

Narrow interfaces the posting state machine, the action pipeline and the
executor registry depend on.  SQLAlchemy implementations live in
``services/`` (directory_service, period_service, audit_service,
rule_suggestion_service, insight_service); tests may substitute fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol, runtime_checkable
from uuid import UUID

from ledger_kernel.domain.dtos import PeriodLock, RuleDTO


@runtime_checkable
class EntityResolver(Protocol):
    def entity_belongs_to_tenant(self, entity_id: UUID, tenant_id: UUID) -> bool:
        ...


@runtime_checkable
class AccountResolver(Protocol):
    def accounts_active_and_owned(
        self,
        account_ids: Iterable[UUID],
        entity_id: UUID,
        tenant_id: UUID,
    ) -> set[UUID]:
        """Return the subset of ``account_ids`` that are active and owned."""
        ...


@runtime_checkable
class FiscalPeriodLookup(Protocol):
    def locked_period_covering(self, entity_id: UUID, on: date) -> PeriodLock | None:
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only, fire-and-forget audit trail."""

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
        ...


@runtime_checkable
class RuleSuggestionFlow(Protocol):
    def approve(self, suggestion_id: UUID, user_id: UUID) -> RuleDTO:
        ...

    def reject(self, suggestion_id: UUID, user_id: UUID, reason: str | None = None) -> None:
        ...


@runtime_checkable
class InsightFlow(Protocol):
    def dismiss(self, insight_id: UUID, user_id: UUID) -> None:
        ...
