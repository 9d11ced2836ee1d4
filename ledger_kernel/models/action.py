"""
Module: ledger_kernel.models.action
Responsibility: ORM persistence for machine-suggested actions awaiting human
    review (the action store of the approval pipeline).
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums only.

Invariants enforced:
    - Actions never leave a terminal state.  Every status change is a
      conditional UPDATE in ActionService whose predicate includes
      ``status = PENDING``.
    - payload is opaque to the pipeline and meaningful only to the executor
      registered for ``type``.

Failure modes:
    - ActionNotFoundError / ActionNotPendingError / ActionExpiredError are
      raised by ActionService, never by the model.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.domain.actions import ActionPriority, ActionStatus, ActionType


class Action(Base):
    """
    A proposed change awaiting approval.

    Contract:
        Created PENDING.  Moves to APPROVED, REJECTED or EXPIRED exactly once.
        MODIFIED is reserved and never written by this package.
    """

    __tablename__ = "actions"

    __table_args__ = (
        Index("idx_action_entity_status", "entity_id", "status"),
        Index("idx_action_expires", "status", "expires_at"),
        Index("idx_action_entity_type", "entity_id", "type"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    type: Mapped[ActionType] = mapped_column(
        SAEnum(ActionType, native_enum=False, length=30),
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

    status: Mapped[ActionStatus] = mapped_column(
        SAEnum(ActionStatus, native_enum=False, length=20),
        default=ActionStatus.PENDING,
        nullable=False,
    )

    # 0-100
    confidence: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    priority: Mapped[ActionPriority] = mapped_column(
        SAEnum(ActionPriority, native_enum=False, length=10),
        default=ActionPriority.MEDIUM,
        nullable=False,
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    ai_provider: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    ai_model: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # "metadata" is reserved on declarative classes
    action_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reviewed_by: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Action {self.type.value} status={self.status.value}>"
