"""
ledger_kernel.config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` loads, validates and returns the frozen
    ``LedgerKernelConfig``.  Services receive the section they need
    (``LedgerConfig``, ``ActionsConfig``) by constructor injection and fall
    back to schema defaults when none is passed.

Failure modes:
    - ``ConfigurationError`` -- missing file, malformed YAML, or an invalid
      value.

Audit relevance:
    Every call emits a ``ledger_config_loaded`` log entry carrying the
    document checksum, so a log stream can be tied to the exact settings
    (entry numbering, privileged role, expiry) in force.
"""

from __future__ import annotations

from pathlib import Path

from ledger_kernel.config.loader import load_config
from ledger_kernel.config.schema import (
    ActionsConfig,
    DatabaseConfig,
    LedgerConfig,
    LedgerKernelConfig,
    LoggingConfig,
)
from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("config")


def get_active_config(path: str | Path | None = None) -> LedgerKernelConfig:
    """Load the active configuration, apply its log level and log its identity.

    The level only takes effect when logging has not been configured yet.
    """
    config = load_config(path)
    configure_logging(level=config.logging.level)
    logger.info(
        "ledger_config_loaded",
        extra={
            "checksum": config.checksum,
            "database_dialect": config.database.url.split(":", 1)[0],
            "entry_number_prefix": config.ledger.entry_number_prefix,
            "privileged_role": config.ledger.privileged_role,
            "action_expiry_days": config.actions.expiry_days,
        },
    )
    return config


__all__ = [
    "ActionsConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "LedgerKernelConfig",
    "LoggingConfig",
    "get_active_config",
    "load_config",
]
