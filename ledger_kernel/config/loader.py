"""
Configuration Loader (``ledger_kernel.config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``ledger_kernel.config.schema`` dataclasses.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown keys and out-of-range values raise ``ConfigurationError``;
  missing keys fall back to schema defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed document for configuration identity.

Failure modes
-------------
* Missing file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` wrapping ``yaml.YAMLError``.
* Invalid value  -> ``ConfigurationError`` naming the section and key.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.config.schema import (
    ActionsConfig,
    DatabaseConfig,
    LedgerConfig,
    LedgerKernelConfig,
    LoggingConfig,
)
from ledger_kernel.domain.actions import ActionPriority
from ledger_kernel.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "LEDGER_KERNEL_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or does not hold a mapping at the top level.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}", path=str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", path=str(path)) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping, got {type(data).__name__}",
            path=str(path),
        )
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: dict[str, Any], name: str, schema_cls) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(schema_cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    return raw


def _positive_int(section: str, key: str, value: Any, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f"{section}.{key} must be an integer >= {minimum}, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    raw = _section(data, "database", DatabaseConfig)
    cfg = DatabaseConfig(**raw)
    if not isinstance(cfg.url, str) or not cfg.url:
        raise ConfigurationError("database.url must be a non-empty string")
    _positive_int("database", "pool_size", cfg.pool_size)
    _positive_int("database", "max_overflow", cfg.max_overflow, minimum=0)
    _positive_int("database", "pool_timeout", cfg.pool_timeout)
    return cfg


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    raw = _section(data, "ledger", LedgerConfig)
    cfg = LedgerConfig(**raw)
    _positive_int("ledger", "entry_number_width", cfg.entry_number_width)
    _positive_int("ledger", "default_page_size", cfg.default_page_size)
    _positive_int("ledger", "max_page_size", cfg.max_page_size)
    if cfg.default_page_size > cfg.max_page_size:
        raise ConfigurationError("ledger.default_page_size exceeds ledger.max_page_size")
    if not cfg.privileged_role:
        raise ConfigurationError("ledger.privileged_role must be set")
    return cfg


def parse_actions(data: dict[str, Any]) -> ActionsConfig:
    raw = dict(_section(data, "actions", ActionsConfig))
    if "default_priority" in raw:
        try:
            raw["default_priority"] = ActionPriority(str(raw["default_priority"]).upper())
        except ValueError as exc:
            raise ConfigurationError(
                f"actions.default_priority must be one of "
                f"{', '.join(p.value for p in ActionPriority)}"
            ) from exc
    cfg = ActionsConfig(**raw)
    _positive_int("actions", "expiry_days", cfg.expiry_days)
    _positive_int("actions", "default_page_size", cfg.default_page_size)
    _positive_int("actions", "max_page_size", cfg.max_page_size)
    threshold = _positive_int("actions", "high_confidence_threshold", cfg.high_confidence_threshold, minimum=0)
    if threshold > 100:
        raise ConfigurationError("actions.high_confidence_threshold must be <= 100")
    return cfg


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    raw = _section(data, "logging", LoggingConfig)
    cfg = LoggingConfig(**raw)
    if str(cfg.level).upper() not in _LOG_LEVELS:
        raise ConfigurationError(f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}")
    return LoggingConfig(level=str(cfg.level).upper())


def parse_config(data: dict[str, Any]) -> LedgerKernelConfig:
    """Parse a whole configuration document."""
    unknown = sorted(set(data) - {"database", "ledger", "actions", "logging"})
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {', '.join(unknown)}")
    return LedgerKernelConfig(
        database=parse_database(data),
        ledger=parse_ledger(data),
        actions=parse_actions(data),
        logging=parse_logging(data),
        checksum=compute_checksum(data),
    )


def load_config(path: str | Path | None = None) -> LedgerKernelConfig:
    """
    Load configuration from ``path``, ``$LEDGER_KERNEL_CONFIG``, or the
    packaged defaults, in that order.  ``$DATABASE_URL`` overrides
    ``database.url``.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    data = load_yaml_file(resolved)
    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        data = {**data, "database": {**(data.get("database") or {}), "url": database_url}}
    return parse_config(data)
