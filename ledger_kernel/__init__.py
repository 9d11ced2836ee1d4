"""
Ledger Kernel

The accounting core of the bookkeeping platform:
- Double-entry ledger with a DRAFT -> POSTED -> VOIDED lifecycle
- Reversal-based voiding (posted amounts are never edited)
- Fiscal period locks and separation of duties on approval
- Generic approval pipeline for machine-suggested actions
"""

__version__ = "0.1.0"
