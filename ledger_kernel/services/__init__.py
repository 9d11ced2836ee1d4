"""Services - the imperative shell: state machines, pipelines and collaborators."""

from ledger_kernel.services.action_executor import ActionExecutor, ExecutorHandlers
from ledger_kernel.services.action_service import ActionService
from ledger_kernel.services.audit_service import AuditLogService
from ledger_kernel.services.directory_service import AccountDirectory, EntityDirectory
from ledger_kernel.services.insight_service import InsightService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.rule_suggestion_service import RuleSuggestionService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountDirectory",
    "ActionExecutor",
    "ActionService",
    "AuditLogService",
    "EntityDirectory",
    "ExecutorHandlers",
    "InsightService",
    "LedgerService",
    "PeriodService",
    "RuleSuggestionService",
    "SequenceService",
]
