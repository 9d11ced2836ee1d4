"""
Module: ledger_kernel.models.automation
Responsibility: ORM persistence for rule suggestions, the automation rules
    they materialize into, and insights (alerts).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A rule suggestion is reviewed at most once (conditional UPDATE on
      status = PENDING in RuleSuggestionService).
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class SuggestionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class RuleSource(str, Enum):
    USER_CREATED = "USER_CREATED"
    AI_SUGGESTED = "AI_SUGGESTED"


class InsightStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DISMISSED = "DISMISSED"


class RuleSuggestion(Base):
    """A proposed automation rule awaiting review."""

    __tablename__ = "rule_suggestions"

    __table_args__ = (
        Index("idx_rule_suggestion_entity_status", "entity_id", "status"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    status: Mapped[SuggestionStatus] = mapped_column(
        SAEnum(SuggestionStatus, native_enum=False, length=20),
        default=SuggestionStatus.PENDING,
        nullable=False,
    )

    # {"name": ..., "conditions": {...}, "action": {...}}
    suggested_rule: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reviewed_by: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    rejection_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Rule(Base):
    """An active automation rule."""

    __tablename__ = "rules"

    __table_args__ = (
        Index("idx_rule_entity_active", "entity_id", "is_active"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    conditions: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    action: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    source: Mapped[RuleSource] = mapped_column(
        SAEnum(RuleSource, native_enum=False, length=20),
        default=RuleSource.USER_CREATED,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Insight(Base):
    """A generated observation surfaced to the user as an alert."""

    __tablename__ = "insights"

    __table_args__ = (
        Index("idx_insight_entity_status", "entity_id", "status"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[InsightStatus] = mapped_column(
        SAEnum(InsightStatus, native_enum=False, length=20),
        default=InsightStatus.ACTIVE,
        nullable=False,
    )

    dismissed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    dismissed_by: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )
