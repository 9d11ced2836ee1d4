"""
RuleSuggestionService -- review flow for suggested automation rules.

Responsibility:
    Approves a PENDING rule suggestion (materializing an active Rule with
    source AI_SUGGESTED) or rejects it with an optional reason.

Architecture position:
    Kernel > Services.  Invoked only by the RULE_SUGGESTION executor
    (approve on action approval, reject as compensation).

Invariants enforced:
    - A suggestion is reviewed at most once: both transitions are
      conditional UPDATEs on ``status = PENDING`` scoped to the tenant.

Failure modes:
    - RuleSuggestionNotFoundError: missing or owned by another tenant.
    - RuleSuggestionAlreadyReviewedError: no longer PENDING.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import AuditSink
from ledger_kernel.domain.dtos import RuleDTO
from ledger_kernel.exceptions import (
    RuleSuggestionAlreadyReviewedError,
    RuleSuggestionNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.automation import (
    Rule,
    RuleSource,
    RuleSuggestion,
    SuggestionStatus,
)
from ledger_kernel.models.tenancy import entity_ids_for_tenant
from ledger_kernel.services.audit_service import AuditLogService

logger = get_logger("services.rule_suggestion")

AUDIT_MODEL = "RuleSuggestion"


class RuleSuggestionService:
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

    def approve(self, suggestion_id: UUID, user_id: UUID) -> RuleDTO:
        """PENDING -> APPROVED, then create the suggested rule."""
        self._transition(suggestion_id, user_id, SuggestionStatus.APPROVED)

        suggestion = self._session.execute(
            select(RuleSuggestion.entity_id, RuleSuggestion.suggested_rule).where(
                RuleSuggestion.id == suggestion_id
            )
        ).one()
        suggested: dict[str, Any] = suggestion.suggested_rule or {}
        rule = Rule(
            entity_id=suggestion.entity_id,
            name=suggested.get("name") or "Suggested rule",
            conditions=suggested.get("conditions") or {},
            action=suggested.get("action") or {},
            source=RuleSource.AI_SUGGESTED,
            is_active=True,
            created_by_id=user_id,
            created_at=self._clock.now_utc(),
        )
        self._session.add(rule)
        self._session.flush()

        self._audit.record(
            tenant_id=self._tenant_id,
            entity_id=suggestion.entity_id,
            model=AUDIT_MODEL,
            record_id=suggestion_id,
            action=AuditAction.UPDATE.value,
            user_id=user_id,
            before={"status": SuggestionStatus.PENDING},
            after={"status": SuggestionStatus.APPROVED, "rule_id": rule.id},
        )
        logger.info(
            "rule_suggestion_approved",
            extra={"suggestion_id": str(suggestion_id), "rule_id": str(rule.id)},
        )
        return RuleDTO(
            id=rule.id,
            entity_id=rule.entity_id,
            name=rule.name,
            conditions=rule.conditions,
            action=rule.action,
            source=RuleSource.AI_SUGGESTED.value,
            is_active=True,
        )

    def reject(self, suggestion_id: UUID, user_id: UUID, reason: str | None = None) -> None:
        """PENDING -> REJECTED."""
        entity_id = self._transition(
            suggestion_id,
            user_id,
            SuggestionStatus.REJECTED,
            rejection_reason=reason,
        )
        after: dict[str, Any] = {"status": SuggestionStatus.REJECTED}
        if reason:
            after["reason"] = reason
        self._audit.record(
            tenant_id=self._tenant_id,
            entity_id=entity_id,
            model=AUDIT_MODEL,
            record_id=suggestion_id,
            action=AuditAction.UPDATE.value,
            user_id=user_id,
            before={"status": SuggestionStatus.PENDING},
            after=after,
        )
        logger.info("rule_suggestion_rejected", extra={"suggestion_id": str(suggestion_id)})

    def _transition(
        self,
        suggestion_id: UUID,
        user_id: UUID,
        target: SuggestionStatus,
        **values: Any,
    ) -> UUID:
        """Conditional PENDING -> target.  Returns the owning entity id."""
        scope = RuleSuggestion.entity_id.in_(entity_ids_for_tenant(self._tenant_id))
        result = self._session.execute(
            update(RuleSuggestion)
            .where(
                RuleSuggestion.id == suggestion_id,
                RuleSuggestion.status == SuggestionStatus.PENDING,
                scope,
            )
            .values(
                status=target,
                reviewed_at=self._clock.now_utc(),
                reviewed_by=user_id,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        row = self._session.execute(
            select(RuleSuggestion.entity_id, RuleSuggestion.status).where(
                RuleSuggestion.id == suggestion_id, scope
            )
        ).first()
        if row is None:
            raise RuleSuggestionNotFoundError(str(suggestion_id))
        if result.rowcount != 1:
            raise RuleSuggestionAlreadyReviewedError(
                str(suggestion_id), SuggestionStatus(row.status).value
            )
        return row.entity_id
