"""
Configuration schema.

Frozen dataclasses parsed from YAML by ``ledger_kernel.config.loader``.
Every field has a default, so services can be constructed without a
configuration file (tests, embedded use).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ledger_kernel.domain.actions import ActionPriority


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///ledger_kernel.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class LedgerConfig:
    """Posting state machine settings."""

    entry_number_prefix: str = "JE-"
    entry_number_width: int = 3
    # Role allowed to approve its own entries
    privileged_role: str = "OWNER"
    reversal_memo_prefix: str = "REVERSAL: "
    default_page_size: int = 50
    max_page_size: int = 100


@dataclass(frozen=True)
class ActionsConfig:
    """Approval pipeline settings."""

    expiry_days: int = 30
    default_priority: ActionPriority = ActionPriority.MEDIUM
    default_page_size: int = 20
    max_page_size: int = 100
    # Confidence (0-100) at or above which a suggestion counts as high-confidence
    high_confidence_threshold: int = 90
    expire_before_list: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerKernelConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    actions: ActionsConfig = field(default_factory=ActionsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # SHA-256 of the parsed source document; empty for built-in defaults
    checksum: str = ""
