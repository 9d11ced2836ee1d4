"""
ActionExecutor: every handler path for every action type.

Handlers are called directly with a lightweight action object; the
end-to-end tests at the bottom go through ActionService.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.actions import ActionStatus, ActionType
from ledger_kernel.domain.ledger import EntryStatus
from ledger_kernel.models.automation import (
    Insight,
    InsightStatus,
    Rule,
    RuleSource,
    RuleSuggestion,
    SuggestionStatus,
)
from ledger_kernel.models.banking import BankTransaction, Category
from ledger_kernel.services.action_executor import ActionExecutor


def _action(type, payload=None):
    return SimpleNamespace(id=uuid4(), type=type, payload=payload or {})


@pytest.fixture
def executor(session, seeded, clock):
    return ActionExecutor(session, seeded.tenant_id, seeded.entity_id, clock=clock)


@pytest.fixture
def category(session, seeded):
    row = Category(tenant_id=seeded.tenant_id, name="Meals")
    session.add(row)
    session.flush()
    return row.id


@pytest.fixture
def bank_transaction(session, seeded):
    row = BankTransaction(entity_id=seeded.entity_id, description="BLUE BOTTLE COFFEE", amount=-650)
    session.add(row)
    session.flush()
    return row.id


@pytest.fixture
def suggestion(session, seeded):
    row = RuleSuggestion(
        entity_id=seeded.entity_id,
        suggested_rule={
            "name": "Coffee shops are meals",
            "conditions": {"description_contains": "COFFEE"},
            "action": {"set_category": "Meals"},
        },
    )
    session.add(row)
    session.flush()
    return row.id


@pytest.fixture
def insight(session, seeded):
    row = Insight(entity_id=seeded.entity_id, title="Spending up 40% this month")
    session.add(row)
    session.flush()
    return row.id


def _column(session, column, row_id):
    return session.execute(select(column).where(column.class_.id == row_id)).scalar_one()


class TestRegistry:
    def test_every_type_has_a_handler(self, executor):
        assert set(executor.handlers) == set(ActionType)

    def test_categorization_has_no_compensation(self, executor):
        assert executor.handlers[ActionType.CATEGORIZATION].compensate is None

    def test_unknown_type_execute(self, executor, approver_id):
        result = executor.execute(_action("BOGUS"), approver_id)
        assert not result.success
        assert result.error == "Unknown action type: BOGUS"

    def test_unknown_type_compensate(self, executor, approver_id):
        result = executor.compensate(_action("BOGUS"), approver_id)
        assert not result.success
        assert result.type == "BOGUS"


class TestLedgerDraft:
    def test_posts_the_draft(self, executor, make_entry, ledger_service, approver_id):
        entry = make_entry()
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(entry.id)}), approver_id
        )
        assert result.success
        assert result.detail == f"Journal entry {entry.id} approved and posted"
        assert ledger_service.get_entry(entry.id).status == EntryStatus.POSTED

    def test_missing_id(self, executor, approver_id):
        result = executor.execute(_action(ActionType.LEDGER_DRAFT), approver_id)
        assert result.error == "Missing journal_entry_id in action payload"

    def test_malformed_id(self, executor, approver_id):
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": "not-a-uuid"}), approver_id
        )
        assert result.error == "Missing journal_entry_id in action payload"

    def test_unknown_entry(self, executor, approver_id):
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(uuid4())}), approver_id
        )
        assert result.error == "Journal entry not found or deleted"

    def test_already_posted_is_idempotent(self, executor, posted_entry, approver_id):
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(posted_entry.id)}), approver_id
        )
        assert result.success
        assert result.detail == "Journal entry already posted (idempotent)"

    def test_voided_entry(self, executor, posted_entry, ledger_service, approver_id):
        ledger_service.void_entry(posted_entry.id, approver_id)
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(posted_entry.id)}), approver_id
        )
        assert not result.success
        assert result.error == "Journal entry has been voided, cannot approve"

    def test_separation_of_duties_surfaces_as_failure(self, executor, make_entry, ledger_service, creator_id):
        entry = make_entry()
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(entry.id)}), creator_id
        )
        assert not result.success
        assert "approve your own" in result.error
        assert ledger_service.get_entry(entry.id).status == EntryStatus.DRAFT

    def test_owner_role_passes_through(self, executor, make_entry, ledger_service, creator_id):
        entry = make_entry()
        result = executor.execute(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(entry.id)}),
            creator_id,
            "OWNER",
        )
        assert result.success
        assert ledger_service.get_entry(entry.id).status == EntryStatus.POSTED

    def test_compensation_deletes_draft_and_unlinks_transaction(
        self, executor, make_entry, ledger_service, session, bank_transaction, approver_id
    ):
        entry = make_entry()
        session.get(BankTransaction, bank_transaction).ledger_entry_id = entry.id
        session.flush()

        result = executor.compensate(
            _action(
                ActionType.LEDGER_DRAFT,
                {"journal_entry_id": str(entry.id), "transaction_id": str(bank_transaction)},
            ),
            approver_id,
        )

        assert result.detail == f"Draft journal entry {entry.id} deleted"
        assert _column(session, BankTransaction.ledger_entry_id, bank_transaction) is None
        assert ledger_service.list_entries(entry.entity_id).entries == ()

    def test_compensation_leaves_posted_entry(self, executor, posted_entry, ledger_service, approver_id):
        result = executor.compensate(
            _action(ActionType.LEDGER_DRAFT, {"journal_entry_id": str(posted_entry.id)}), approver_id
        )
        assert result.success
        assert result.detail == "No draft journal entry to clean up"
        assert ledger_service.get_entry(posted_entry.id).status == EntryStatus.POSTED


class TestCategorization:
    def test_applies_category(self, executor, session, bank_transaction, category, approver_id):
        result = executor.execute(
            _action(
                ActionType.CATEGORIZATION,
                {"transaction_id": str(bank_transaction), "category_id": str(category)},
            ),
            approver_id,
        )
        assert result.detail == f"Transaction {bank_transaction} categorized"
        assert _column(session, BankTransaction.category_id, bank_transaction) == category

    def test_same_category_is_idempotent(self, executor, session, bank_transaction, category, approver_id):
        payload = {"transaction_id": str(bank_transaction), "category_id": str(category)}
        executor.execute(_action(ActionType.CATEGORIZATION, payload), approver_id)
        result = executor.execute(_action(ActionType.CATEGORIZATION, payload), approver_id)
        assert result.success
        assert result.detail == "Transaction already categorized (idempotent)"

    @pytest.mark.parametrize("missing", ["transaction_id", "category_id"])
    def test_missing_ids(self, executor, bank_transaction, category, approver_id, missing):
        payload = {"transaction_id": str(bank_transaction), "category_id": str(category)}
        del payload[missing]
        result = executor.execute(_action(ActionType.CATEGORIZATION, payload), approver_id)
        assert result.error == "Missing transaction_id or category_id in payload"

    def test_deleted_transaction(self, executor, session, bank_transaction, category, clock, approver_id):
        session.get(BankTransaction, bank_transaction).deleted_at = clock.now_utc()
        session.flush()
        result = executor.execute(
            _action(
                ActionType.CATEGORIZATION,
                {"transaction_id": str(bank_transaction), "category_id": str(category)},
            ),
            approver_id,
        )
        assert result.error == "Transaction not found or deleted"

    def test_foreign_transaction(self, executor, session, seeded, category, approver_id):
        foreign = BankTransaction(entity_id=seeded.other_entity_id, description="x", amount=1)
        session.add(foreign)
        session.flush()
        result = executor.execute(
            _action(
                ActionType.CATEGORIZATION,
                {"transaction_id": str(foreign.id), "category_id": str(category)},
            ),
            approver_id,
        )
        assert result.error == "Transaction not found or deleted"

    def test_foreign_category(self, executor, session, seeded, bank_transaction, approver_id):
        foreign = Category(tenant_id=seeded.other_tenant_id, name="Theirs")
        session.add(foreign)
        session.flush()
        result = executor.execute(
            _action(
                ActionType.CATEGORIZATION,
                {"transaction_id": str(bank_transaction), "category_id": str(foreign.id)},
            ),
            approver_id,
        )
        assert result.error == "Category not found or access denied"
        assert _column(session, BankTransaction.category_id, bank_transaction) is None

    def test_no_compensation(self, executor, approver_id):
        result = executor.compensate(_action(ActionType.CATEGORIZATION), approver_id)
        assert result.success
        assert result.detail == "No compensation required"


class TestRuleSuggestion:
    def test_creates_rule(self, executor, session, suggestion, approver_id):
        result = executor.execute(
            _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(suggestion)}), approver_id
        )
        rule = session.execute(select(Rule)).scalar_one()
        assert result.detail == f"Rule {rule.id} created"
        assert rule.name == "Coffee shops are meals"
        assert rule.source == RuleSource.AI_SUGGESTED
        assert rule.conditions == {"description_contains": "COFFEE"}
        assert rule.created_by_id == approver_id
        assert _column(session, RuleSuggestion.status, suggestion) == SuggestionStatus.APPROVED

    def test_already_reviewed_is_idempotent(self, executor, session, suggestion, approver_id):
        payload = {"suggestion_id": str(suggestion)}
        executor.execute(_action(ActionType.RULE_SUGGESTION, payload), approver_id)
        result = executor.execute(_action(ActionType.RULE_SUGGESTION, payload), approver_id)
        assert result.success
        assert result.detail == "Rule suggestion already reviewed (idempotent)"
        assert session.execute(select(func.count(Rule.id))).scalar_one() == 1

    def test_unknown_suggestion(self, executor, approver_id):
        result = executor.execute(
            _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(uuid4())}), approver_id
        )
        assert not result.success
        assert result.error.startswith("Rule suggestion not found")

    def test_compensation_rejects(self, executor, session, suggestion, approver_id):
        result = executor.compensate(
            _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(suggestion)}), approver_id
        )
        assert result.detail == f"Rule suggestion {suggestion} rejected"
        assert _column(session, RuleSuggestion.status, suggestion) == SuggestionStatus.REJECTED
        assert _column(session, RuleSuggestion.rejection_reason, suggestion) == "Action rejected"

    def test_compensation_after_review(self, executor, suggestion, approver_id):
        payload = {"suggestion_id": str(suggestion)}
        executor.execute(_action(ActionType.RULE_SUGGESTION, payload), approver_id)
        result = executor.compensate(_action(ActionType.RULE_SUGGESTION, payload), approver_id)
        assert result.success
        assert result.detail == "Rule suggestion already reviewed"


class TestAlert:
    def test_apply_acknowledges(self, executor, approver_id):
        result = executor.execute(_action(ActionType.ALERT), approver_id)
        assert result.success
        assert result.detail == "Acknowledged (no automated execution)"

    def test_compensation_dismisses_insight(self, executor, session, insight, approver_id):
        result = executor.compensate(
            _action(ActionType.ALERT, {"insight_id": str(insight)}), approver_id
        )
        assert result.detail == f"Insight {insight} dismissed"
        assert _column(session, Insight.status, insight) == InsightStatus.DISMISSED
        assert _column(session, Insight.dismissed_by, insight) == approver_id

    def test_compensation_without_insight(self, executor, approver_id):
        result = executor.compensate(_action(ActionType.ALERT), approver_id)
        assert result.detail == "No insight referenced"

    def test_foreign_insight(self, executor, session, seeded, approver_id):
        foreign = Insight(entity_id=seeded.other_entity_id, title="Not yours")
        session.add(foreign)
        session.flush()
        result = executor.compensate(
            _action(ActionType.ALERT, {"insight_id": str(foreign.id)}), approver_id
        )
        assert not result.success
        assert _column(session, Insight.status, foreign.id) == InsightStatus.ACTIVE


class ExplodingSuggestions:
    """Writes a rule, then fails."""

    def __init__(self, session, entity_id):
        self.session = session
        self.entity_id = entity_id

    def approve(self, suggestion_id, user_id):
        self.session.add(
            Rule(entity_id=self.entity_id, name="half-made", conditions={}, action={}, created_by_id=user_id)
        )
        self.session.flush()
        raise RuntimeError("suggestion store unavailable")

    def reject(self, suggestion_id, user_id, reason=None):
        raise RuntimeError("suggestion store unavailable")


class TestHandlerFailure:
    def test_crash_becomes_failed_result(self, session, seeded, clock, approver_id, captured_logs):
        executor = ActionExecutor(
            session,
            seeded.tenant_id,
            seeded.entity_id,
            clock=clock,
            rule_suggestions=ExplodingSuggestions(session, seeded.entity_id),
        )
        action = _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(uuid4())})

        result = executor.execute(action, approver_id)

        assert not result.success
        assert result.error == "suggestion store unavailable"
        messages = [r["message"] for r in captured_logs()]
        assert "action_handler_crashed" in messages
        assert "action_execution_failed" in messages

    def test_partial_writes_rolled_back(self, session, seeded, clock, approver_id):
        executor = ActionExecutor(
            session,
            seeded.tenant_id,
            seeded.entity_id,
            clock=clock,
            rule_suggestions=ExplodingSuggestions(session, seeded.entity_id),
        )
        executor.execute(
            _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(uuid4())}), approver_id
        )
        assert session.execute(select(func.count(Rule.id))).scalar_one() == 0

    def test_session_usable_after_crash(self, session, seeded, clock, make_entry, approver_id):
        executor = ActionExecutor(
            session,
            seeded.tenant_id,
            seeded.entity_id,
            clock=clock,
            rule_suggestions=ExplodingSuggestions(session, seeded.entity_id),
        )
        executor.compensate(
            _action(ActionType.RULE_SUGGESTION, {"suggestion_id": str(uuid4())}), approver_id
        )
        assert make_entry().status == EntryStatus.DRAFT


class TestThroughActionService:
    def test_approved_ledger_draft_posts_entry(self, make_entry, make_action, action_service, ledger_service, approver_id):
        entry = make_entry()
        action = make_action(type=ActionType.LEDGER_DRAFT, payload={"journal_entry_id": str(entry.id)})

        outcome = action_service.approve_action(action.id, approver_id)

        assert outcome.action.status == ActionStatus.APPROVED
        assert outcome.execution.success
        assert ledger_service.get_entry(entry.id).status == EntryStatus.POSTED

    def test_rejected_ledger_draft_deletes_entry(self, make_entry, make_action, action_service, ledger_service, approver_id):
        entry = make_entry()
        action = make_action(type=ActionType.LEDGER_DRAFT, payload={"journal_entry_id": str(entry.id)})

        action_service.reject_action(action.id, approver_id)

        assert ledger_service.list_entries(entry.entity_id).entries == ()

    def test_rejected_rule_suggestion(self, make_action, action_service, session, suggestion, approver_id):
        action = make_action(type=ActionType.RULE_SUGGESTION, payload={"suggestion_id": str(suggestion)})
        action_service.reject_action(action.id, approver_id)
        assert _column(session, RuleSuggestion.status, suggestion) == SuggestionStatus.REJECTED
