"""
ActionService -- the action approval pipeline.

Responsibility:
    Creates PENDING actions, reads them, and moves them to APPROVED,
    REJECTED or EXPIRED.  Approval synchronously runs the type's executor;
    rejection runs its compensating handler.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on ActionSelector for
    reads and ActionExecutor for side effects.

Invariants enforced:
    - Every status change is a single conditional UPDATE whose predicate
      includes tenant, entity, id and ``status = PENDING`` (and, for
      approval, ``expires_at > now``).  The affected row count (0 or 1) is
      the whole success signal, so the executor runs at most once per action
      even under concurrent approvals.
    - An action never leaves a terminal state.
    - Execution failure never reverts APPROVED; it is returned and logged.
    - Batch operations are per-item; one failure never affects another.

Failure modes:
    - ActionNotFoundError (404), ActionNotPendingError (409),
      ActionExpiredError (410), InvalidActionInputError (400),
      EntityNotFoundError (403) on create for a foreign entity.

Audit relevance:
    Logs action_created, action_approved, action_rejected, action_expired,
    actions_expired and the batch summaries with structured fields.
"""

from datetime import timedelta
from typing import Iterable
from uuid import UUID

from sqlalchemy import Engine, update
from sqlalchemy.orm import Session

from ledger_kernel.config.schema import ActionsConfig
from ledger_kernel.domain.actions import (
    ActionStats,
    ActionStatus,
    ActionType,
    BatchFailure,
    BatchResult,
    CreateActionInput,
    ExecutionResult,
)
from ledger_kernel.domain.clock import Clock, SystemClock, as_utc
from ledger_kernel.domain.dtos import ActionDTO, ActionPage, ApprovalOutcome
from ledger_kernel.exceptions import (
    ActionExpiredError,
    ActionNotFoundError,
    ActionNotPendingError,
    EntityNotFoundError,
    InvalidActionInputError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.action import Action
from ledger_kernel.selectors.action_selector import ActionSelector, action_to_dto
from ledger_kernel.services.action_executor import ActionExecutor
from ledger_kernel.services.directory_service import EntityDirectory

logger = get_logger("services.action")

APPROVE_FAILURE_REASON = "Not found, not pending, or expired"
REJECT_FAILURE_REASON = "Not found or not pending"


class ActionService:
    """
    Tenant- and entity-scoped approval pipeline.

    Contract:
        Single-item operations raise typed errors; batch operations return
        a BatchResult and never raise for per-item failures.

    Non-goals:
        - Does NOT commit the caller's session.  The one write made on
          its own is the PENDING -> EXPIRED update that precedes
          ActionExpiredError, so the expiry outlives the caller's rollback.
        - Never produces MODIFIED.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: UUID,
        entity_id: UUID,
        *,
        config: ActionsConfig | None = None,
        clock: Clock | None = None,
        executor: ActionExecutor | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._entity_id = entity_id
        self._config = config or ActionsConfig()
        self._clock = clock or SystemClock()
        self._executor = executor or ActionExecutor(
            session, tenant_id, entity_id, clock=self._clock
        )
        self._selector = ActionSelector(session, tenant_id, entity_id)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_action(self, data: CreateActionInput) -> ActionDTO:
        """Insert a PENDING action with configured default expiry and priority."""
        if not EntityDirectory(self._session).entity_belongs_to_tenant(
            self._entity_id, self._tenant_id
        ):
            raise EntityNotFoundError(str(self._entity_id), str(self._tenant_id))

        try:
            action_type = ActionType(data.type)
        except ValueError as exc:
            raise InvalidActionInputError("type", f"unknown action type {data.type!r}") from exc

        now = self._clock.now_utc()
        expires_at = as_utc(data.expires_at) or now + timedelta(days=self._config.expiry_days)
        if expires_at <= now:
            raise InvalidActionInputError("expires_at", "must be in the future")

        action = Action(
            entity_id=self._entity_id,
            type=action_type,
            title=data.title,
            description=data.description,
            status=ActionStatus.PENDING,
            confidence=data.confidence,
            priority=data.priority or self._config.default_priority,
            payload=dict(data.payload),
            ai_provider=data.ai_provider,
            ai_model=data.ai_model,
            action_metadata=data.metadata,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        self._session.add(action)
        self._session.flush()
        logger.info(
            "action_created",
            extra={
                "action_id": str(action.id),
                "entity_id": str(self._entity_id),
                "action_type": action.type.value,
                "confidence": action.confidence,
            },
        )
        return action_to_dto(action)

    def get_action(self, action_id: UUID) -> ActionDTO:
        action = self._selector.get(action_id)
        if action is None:
            raise ActionNotFoundError(str(action_id))
        return action

    def list_actions(
        self,
        *,
        status: ActionStatus | None = None,
        type: ActionType | None = None,
        min_confidence: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ActionPage:
        """Newest first.  Stale actions are expired first when configured."""
        if self._config.expire_before_list:
            self.expire_stale_actions()
        if limit is None:
            limit = self._config.default_page_size
        limit = max(1, min(limit, self._config.max_page_size))
        return self._selector.list_actions(
            status=status,
            type=type,
            min_confidence=min_confidence,
            limit=limit,
            offset=max(0, offset),
        )

    def list_high_confidence(self, limit: int | None = None) -> ActionPage:
        """PENDING actions at or above the high-confidence threshold."""
        return self.list_actions(
            status=ActionStatus.PENDING,
            min_confidence=self._config.high_confidence_threshold,
            limit=limit,
        )

    def get_stats(self) -> ActionStats:
        return self._selector.stats()

    # ------------------------------------------------------------------
    # Single-item review
    # ------------------------------------------------------------------

    def approve_action(
        self,
        action_id: UUID,
        user_id: UUID,
        user_role: str | None = None,
    ) -> ApprovalOutcome:
        """
        PENDING -> APPROVED, then run the executor.

        Raises:
            ActionNotFoundError, ActionNotPendingError, ActionExpiredError.
            The executor is never invoked when any of these is raised.
        """
        with LogContext.bind(action_id=action_id, actor_id=user_id):
            self._require_pending(action_id)
            now = self._clock.now_utc()

            if not self._transition(
                action_id,
                ActionStatus.APPROVED,
                now,
                reviewer_id=user_id,
                require_unexpired=True,
            ):
                self._raise_not_pending(action_id)

            action = self.get_action(action_id)
            execution = self._executor.execute(action, user_id, user_role)
            logger.info(
                "action_approved",
                extra={
                    "action_id": str(action_id),
                    "action_type": action.type.value,
                    "execution_success": execution.success,
                },
            )
            return ApprovalOutcome(action=action, execution=execution)

    def reject_action(self, action_id: UUID, user_id: UUID) -> ActionDTO:
        """PENDING -> REJECTED, then best-effort compensation."""
        with LogContext.bind(action_id=action_id, actor_id=user_id):
            self._require_pending(action_id)
            now = self._clock.now_utc()

            if not self._transition(
                action_id,
                ActionStatus.REJECTED,
                now,
                reviewer_id=user_id,
                require_unexpired=True,
            ):
                self._raise_not_pending(action_id)

            action = self.get_action(action_id)
            compensation = self._executor.compensate(action, user_id)
            logger.info(
                "action_rejected",
                extra={
                    "action_id": str(action_id),
                    "action_type": action.type.value,
                    "compensation_success": compensation.success,
                },
            )
            return action

    # ------------------------------------------------------------------
    # Batch review
    # ------------------------------------------------------------------

    def batch_approve(
        self,
        action_ids: Iterable[UUID],
        user_id: UUID,
        user_role: str | None = None,
    ) -> BatchResult:
        succeeded: list[UUID] = []
        failed: list[BatchFailure] = []
        executions: list[ExecutionResult] = []
        now = self._clock.now_utc()

        for action_id in action_ids:
            if not self._transition(
                action_id,
                ActionStatus.APPROVED,
                now,
                reviewer_id=user_id,
                require_unexpired=True,
            ):
                failed.append(BatchFailure(id=action_id, reason=APPROVE_FAILURE_REASON))
                continue
            succeeded.append(action_id)
            action = self._selector.get(action_id)
            executions.append(self._executor.execute(action, user_id, user_role))

        logger.info(
            "actions_batch_approved",
            extra={
                "succeeded": len(succeeded),
                "failed": len(failed),
                "execution_failures": sum(1 for e in executions if not e.success),
            },
        )
        return BatchResult(
            succeeded=tuple(succeeded),
            failed=tuple(failed),
            executions=tuple(executions),
        )

    def batch_reject(self, action_ids: Iterable[UUID], user_id: UUID) -> BatchResult:
        succeeded: list[UUID] = []
        failed: list[BatchFailure] = []
        executions: list[ExecutionResult] = []
        now = self._clock.now_utc()

        for action_id in action_ids:
            if not self._transition(action_id, ActionStatus.REJECTED, now, reviewer_id=user_id):
                failed.append(BatchFailure(id=action_id, reason=REJECT_FAILURE_REASON))
                continue
            succeeded.append(action_id)
            action = self._selector.get(action_id)
            executions.append(self._executor.compensate(action, user_id))

        logger.info(
            "actions_batch_rejected",
            extra={"succeeded": len(succeeded), "failed": len(failed)},
        )
        return BatchResult(
            succeeded=tuple(succeeded),
            failed=tuple(failed),
            executions=tuple(executions),
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_stale_actions(self) -> int:
        """PENDING actions past ``expires_at`` -> EXPIRED.  Returns the count."""
        now = self._clock.now_utc()
        result = self._session.execute(
            update(Action)
            .where(
                *self._selector.scope(),
                Action.status == ActionStatus.PENDING,
                Action.expires_at <= now,
            )
            .values(status=ActionStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info(
                "actions_expired",
                extra={"entity_id": str(self._entity_id), "count": count},
            )
        return count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_pending(self, action_id: UUID) -> None:
        """Raise unless the action exists, is PENDING and has not expired.

        An expired PENDING action is moved to EXPIRED before raising, and
        that update is committed even when the caller rolls back.
        """
        now = self._clock.now_utc()
        expired = self._expire_if_stale(action_id, now)

        action = self._selector.get_model(action_id)
        if action is None:
            raise ActionNotFoundError(str(action_id))
        expires_at = as_utc(action.expires_at)
        if not expired:
            status = ActionStatus(action.status)
            if status != ActionStatus.PENDING:
                raise ActionNotPendingError(str(action_id), status.value)
            if expires_at > now:
                return
            # Created in this transaction, so not visible to the expiry session.
            self._transition(action_id, ActionStatus.EXPIRED, now)

        logger.info(
            "action_expired",
            extra={"action_id": str(action_id), "expires_at": expires_at},
        )
        raise ActionExpiredError(str(action_id), expires_at)

    def _expire_if_stale(self, action_id: UUID, now) -> bool:
        """PENDING -> EXPIRED when past ``expires_at``, in its own transaction.

        SQLite allows one writer, so a caller already inside a transaction
        there takes the update on its own session instead.  The same applies
        when the session is bound to a Connection rather than an Engine.
        """
        stmt = (
            update(Action)
            .where(
                Action.id == action_id,
                *self._selector.scope(),
                Action.status == ActionStatus.PENDING,
                Action.expires_at <= now,
            )
            .values(status=ActionStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        bind = self._session.get_bind()
        shares_writer = bind.dialect.name == "sqlite" and self._session.in_transaction()
        if not isinstance(bind, Engine) or shares_writer:
            return self._session.execute(stmt).rowcount == 1

        with Session(bind=bind) as expiry_session, expiry_session.begin():
            return expiry_session.execute(stmt).rowcount == 1

    def _raise_not_pending(self, action_id: UUID) -> None:
        current = self._selector.get(action_id)
        if current is None:
            raise ActionNotFoundError(str(action_id))
        raise ActionNotPendingError(str(action_id), current.status.value)

    def _transition(
        self,
        action_id: UUID,
        target: ActionStatus,
        now,
        *,
        reviewer_id: UUID | None = None,
        require_unexpired: bool = False,
    ) -> bool:
        conditions = [
            Action.id == action_id,
            *self._selector.scope(),
            Action.status == ActionStatus.PENDING,
        ]
        if require_unexpired:
            conditions.append(Action.expires_at > now)
        values = {"status": target, "updated_at": now}
        if reviewer_id is not None:
            values["reviewed_at"] = now
            values["reviewed_by"] = reviewer_id
        result = self._session.execute(
            update(Action)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
