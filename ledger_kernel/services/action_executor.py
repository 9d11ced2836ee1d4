"""
ActionExecutor -- type-dispatched side effects of approved and rejected actions.

Responsibility:
    Maps each ActionType to an ``apply`` handler (run after approval) and an
    optional ``compensate`` handler (run after rejection).  Every outcome,
    expected or not, is returned as an ExecutionResult.

Architecture position:
    Kernel > Services.  Called by ActionService.  Delegates to
    LedgerService (LEDGER_DRAFT), RuleSuggestionService (RULE_SUGGESTION)
    and InsightService (ALERT); CATEGORIZATION writes BankTransaction
    directly.

Invariants enforced:
    - ``execute`` and ``compensate`` never raise.
    - Each handler runs inside a SAVEPOINT: a failing handler leaves no
      partial writes and the caller's transaction stays usable.
    - Handlers are idempotent where the target is already in the desired
      state (entry already POSTED, category already applied, suggestion
      already reviewed).

Failure modes:
    - None surfaced.  ``action_execution_failed`` and
      ``action_compensation_failed`` are logged with the error.
"""

from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.actions import ActionType, ExecutionResult
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import InsightFlow, RuleSuggestionFlow
from ledger_kernel.domain.ledger import EntryStatus
from ledger_kernel.exceptions import LedgerKernelError, RuleSuggestionAlreadyReviewedError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.banking import BankTransaction, Category
from ledger_kernel.models.tenancy import entity_ids_for_tenant
from ledger_kernel.selectors.entry_selector import EntrySelector
from ledger_kernel.services.insight_service import InsightService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.rule_suggestion_service import RuleSuggestionService

logger = get_logger("services.action_executor")

Handler = Callable[[UUID, dict[str, Any], UUID, str | None], ExecutionResult]


@dataclass(frozen=True)
class ExecutorHandlers:
    apply: Handler
    compensate: Handler | None = None


def _payload_uuid(payload: dict[str, Any], key: str) -> UUID | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ActionExecutor:
    """
    Registry of per-type handlers.

    Contract:
        ``execute(action, user_id)`` after an action is APPROVED;
        ``compensate(action, user_id)`` after it is REJECTED.  ``action`` is
        anything with ``id``, ``type`` and ``payload`` (ActionDTO or the ORM
        row).

    Non-goals:
        - Does NOT change the action's own status.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: UUID,
        entity_id: UUID,
        *,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
        rule_suggestions: RuleSuggestionFlow | None = None,
        insights: InsightFlow | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._entity_id = entity_id
        self._clock = clock or SystemClock()
        self._ledger = ledger or LedgerService(session, tenant_id, clock=self._clock)
        self._rule_suggestions = rule_suggestions or RuleSuggestionService(
            session, tenant_id, clock=self._clock
        )
        self._insights = insights or InsightService(session, tenant_id, clock=self._clock)
        self._handlers: dict[ActionType, ExecutorHandlers] = {
            ActionType.LEDGER_DRAFT: ExecutorHandlers(
                apply=self._apply_ledger_draft,
                compensate=self._compensate_ledger_draft,
            ),
            ActionType.CATEGORIZATION: ExecutorHandlers(
                apply=self._apply_categorization,
            ),
            ActionType.RULE_SUGGESTION: ExecutorHandlers(
                apply=self._apply_rule_suggestion,
                compensate=self._compensate_rule_suggestion,
            ),
            ActionType.ALERT: ExecutorHandlers(
                apply=self._apply_alert,
                compensate=self._compensate_alert,
            ),
        }

    @property
    def handlers(self) -> dict[ActionType, ExecutorHandlers]:
        return dict(self._handlers)

    def execute(self, action, user_id: UUID, user_role: str | None = None) -> ExecutionResult:
        """Run the ``apply`` handler for an approved action."""
        action_type = self._resolve_type(action.type)
        if action_type is None:
            return self._unknown(action)
        result = self._run(
            self._handlers[action_type].apply,
            action,
            action_type,
            user_id,
            user_role,
            event="action_execution_failed",
        )
        if result.success:
            logger.info(
                "action_executed",
                extra={
                    "action_id": str(action.id),
                    "action_type": action_type.value,
                    "detail": result.detail,
                },
            )
        return result

    def compensate(self, action, user_id: UUID) -> ExecutionResult:
        """Run the ``compensate`` handler for a rejected action, if one exists."""
        action_type = self._resolve_type(action.type)
        if action_type is None:
            return self._unknown(action)
        handler = self._handlers[action_type].compensate
        if handler is None:
            return ExecutionResult.ok(action.id, action_type.value, "No compensation required")
        return self._run(
            handler,
            action,
            action_type,
            user_id,
            None,
            event="action_compensation_failed",
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_type(value) -> ActionType | None:
        try:
            return ActionType(value)
        except ValueError:
            return None

    def _unknown(self, action) -> ExecutionResult:
        type_name = getattr(action.type, "value", action.type)
        logger.warning(
            "action_type_unknown",
            extra={"action_id": str(action.id), "action_type": str(type_name)},
        )
        return ExecutionResult.fail(action.id, str(type_name), f"Unknown action type: {type_name}")

    def _run(
        self,
        handler: Handler,
        action,
        action_type: ActionType,
        user_id: UUID,
        user_role: str | None,
        *,
        event: str,
    ) -> ExecutionResult:
        payload = dict(action.payload or {})
        with LogContext.bind(action_id=action.id, actor_id=user_id):
            try:
                with self._session.begin_nested():
                    result = handler(action.id, payload, user_id, user_role)
            except LedgerKernelError as exc:
                result = ExecutionResult.fail(action.id, action_type.value, str(exc))
            except Exception as exc:  # handlers must never propagate
                logger.exception(
                    "action_handler_crashed",
                    extra={"action_id": str(action.id), "action_type": action_type.value},
                )
                result = ExecutionResult.fail(
                    action.id, action_type.value, str(exc) or type(exc).__name__
                )
            if not result.success:
                logger.warning(
                    event,
                    extra={
                        "action_id": str(action.id),
                        "action_type": action_type.value,
                        "error": result.error,
                    },
                )
            return result

    # ------------------------------------------------------------------
    # LEDGER_DRAFT
    # ------------------------------------------------------------------

    def _apply_ledger_draft(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.LEDGER_DRAFT.value
        entry_id = _payload_uuid(payload, "journal_entry_id")
        if entry_id is None:
            return ExecutionResult.fail(action_id, kind, "Missing journal_entry_id in action payload")

        entry = EntrySelector(self._session).get_model(entry_id, self._tenant_id)
        if entry is None:
            return ExecutionResult.fail(action_id, kind, "Journal entry not found or deleted")
        status = EntryStatus(entry.status)
        if status == EntryStatus.POSTED:
            return ExecutionResult.ok(action_id, kind, "Journal entry already posted (idempotent)")
        if status == EntryStatus.VOIDED:
            return ExecutionResult.fail(
                action_id, kind, "Journal entry has been voided, cannot approve"
            )

        self._ledger.approve_entry(entry_id, user_id, user_role)
        return ExecutionResult.ok(action_id, kind, f"Journal entry {entry_id} approved and posted")

    def _compensate_ledger_draft(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.LEDGER_DRAFT.value
        entry_id = _payload_uuid(payload, "journal_entry_id")
        if entry_id is None:
            return ExecutionResult.ok(action_id, kind, "No journal entry referenced")

        entry = EntrySelector(self._session).get_model(entry_id, self._tenant_id)
        if entry is None or EntryStatus(entry.status) != EntryStatus.DRAFT:
            return ExecutionResult.ok(action_id, kind, "No draft journal entry to clean up")

        self._ledger.delete_entry(entry_id, user_id)
        transaction_id = _payload_uuid(payload, "transaction_id")
        if transaction_id is not None:
            self._session.execute(
                update(BankTransaction)
                .where(
                    BankTransaction.id == transaction_id,
                    BankTransaction.ledger_entry_id == entry_id,
                )
                .values(ledger_entry_id=None)
                .execution_options(synchronize_session=False)
            )
        logger.info(
            "rejected_draft_entry_deleted",
            extra={"action_id": str(action_id), "entry_id": str(entry_id)},
        )
        return ExecutionResult.ok(action_id, kind, f"Draft journal entry {entry_id} deleted")

    # ------------------------------------------------------------------
    # CATEGORIZATION
    # ------------------------------------------------------------------

    def _apply_categorization(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.CATEGORIZATION.value
        transaction_id = _payload_uuid(payload, "transaction_id")
        category_id = _payload_uuid(payload, "category_id")
        if transaction_id is None or category_id is None:
            return ExecutionResult.fail(
                action_id, kind, "Missing transaction_id or category_id in payload"
            )

        txn = self._session.execute(
            select(BankTransaction.id, BankTransaction.category_id).where(
                BankTransaction.id == transaction_id,
                BankTransaction.entity_id.in_(entity_ids_for_tenant(self._tenant_id)),
                BankTransaction.deleted_at.is_(None),
            )
        ).first()
        if txn is None:
            return ExecutionResult.fail(action_id, kind, "Transaction not found or deleted")
        if txn.category_id == category_id:
            return ExecutionResult.ok(action_id, kind, "Transaction already categorized (idempotent)")

        category = self._session.execute(
            select(Category.id).where(
                Category.id == category_id,
                Category.tenant_id == self._tenant_id,
                Category.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if category is None:
            return ExecutionResult.fail(action_id, kind, "Category not found or access denied")

        self._session.execute(
            update(BankTransaction)
            .where(BankTransaction.id == transaction_id)
            .values(category_id=category_id)
            .execution_options(synchronize_session=False)
        )
        return ExecutionResult.ok(action_id, kind, f"Transaction {transaction_id} categorized")

    # ------------------------------------------------------------------
    # RULE_SUGGESTION
    # ------------------------------------------------------------------

    def _apply_rule_suggestion(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.RULE_SUGGESTION.value
        suggestion_id = _payload_uuid(payload, "suggestion_id")
        if suggestion_id is None:
            return ExecutionResult.fail(action_id, kind, "Missing suggestion_id in payload")
        try:
            rule = self._rule_suggestions.approve(suggestion_id, user_id)
        except RuleSuggestionAlreadyReviewedError:
            return ExecutionResult.ok(action_id, kind, "Rule suggestion already reviewed (idempotent)")
        return ExecutionResult.ok(action_id, kind, f"Rule {rule.id} created")

    def _compensate_rule_suggestion(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.RULE_SUGGESTION.value
        suggestion_id = _payload_uuid(payload, "suggestion_id")
        if suggestion_id is None:
            return ExecutionResult.ok(action_id, kind, "No rule suggestion referenced")
        try:
            self._rule_suggestions.reject(suggestion_id, user_id, "Action rejected")
        except RuleSuggestionAlreadyReviewedError:
            return ExecutionResult.ok(action_id, kind, "Rule suggestion already reviewed")
        return ExecutionResult.ok(action_id, kind, f"Rule suggestion {suggestion_id} rejected")

    # ------------------------------------------------------------------
    # ALERT
    # ------------------------------------------------------------------

    def _apply_alert(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        return ExecutionResult.ok(
            action_id, ActionType.ALERT.value, "Acknowledged (no automated execution)"
        )

    def _compensate_alert(self, action_id, payload, user_id, user_role) -> ExecutionResult:
        kind = ActionType.ALERT.value
        insight_id = _payload_uuid(payload, "insight_id")
        if insight_id is None:
            return ExecutionResult.ok(action_id, kind, "No insight referenced")
        self._insights.dismiss(insight_id, user_id)
        return ExecutionResult.ok(action_id, kind, f"Insight {insight_id} dismissed")
