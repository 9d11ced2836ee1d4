"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import AccountType, LedgerAccount
from ledger_kernel.models.action import Action
from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.models.automation import (
    Insight,
    InsightStatus,
    Rule,
    RuleSource,
    RuleSuggestion,
    SuggestionStatus,
)
from ledger_kernel.models.banking import BankTransaction, Category
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.ledger import LedgerEntry, LedgerLine
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.tenancy import Entity, entity_ids_for_tenant

__all__ = [
    "AccountType",
    "Action",
    "AuditAction",
    "AuditLog",
    "BankTransaction",
    "Category",
    "Entity",
    "entity_ids_for_tenant",
    "FiscalPeriod",
    "Insight",
    "InsightStatus",
    "LedgerAccount",
    "LedgerEntry",
    "LedgerLine",
    "PeriodStatus",
    "Rule",
    "RuleSource",
    "RuleSuggestion",
    "SequenceCounter",
    "SuggestionStatus",
]
