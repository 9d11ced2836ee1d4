"""Selectors - read-only query access returning DTOs."""

from ledger_kernel.selectors.action_selector import ActionSelector, action_to_dto
from ledger_kernel.selectors.audit_selector import AuditSelector
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.entry_selector import EntrySelector, entry_to_dto

__all__ = [
    "ActionSelector",
    "AuditSelector",
    "BaseSelector",
    "EntrySelector",
    "action_to_dto",
    "entry_to_dto",
]
