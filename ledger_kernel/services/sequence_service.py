"""
SequenceService -- per-entity entry numbers via atomic counter rows.

Responsibility:
    Provides the next human-readable entry number (``JE-001``, ``JE-002``,
    ...) for an entity.  Each entity has a dedicated counter row named
    ``entry_number:<entity_id>`` in ``sequence_counters``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerService on entry creation and on reversal creation.

Invariants enforced:
    - Uniqueness under concurrency: the counter is advanced by a single
      ``UPDATE ... SET current_value = current_value + 1`` before it is read
      back, so two transactions never observe the same value.  The row lock
      taken by the UPDATE is held until the caller's transaction ends.
    - UNIQUE(entity_id, entry_number) on ledger_entries backs the counter.
    - Transactional: a rolled-back caller returns its value.

Failure modes:
    - IntegrityError on a concurrent first-use race for the same entity's
      counter row (handled via savepoint rollback and retry).

Audit relevance:
    Allocation is logged at DEBUG with sequence_name and value.
"""

from typing import Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.config.schema import LedgerConfig
from ledger_kernel.domain.ledger import format_entry_number, parse_entry_number
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        ``next_value`` returns a strictly increasing integer per sequence
        name.  The increment is only visible once the caller commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Gap-free numbering across rolled-back transactions on PostgreSQL
          is guaranteed only for committed callers.
    """

    ENTRY_NUMBER = "entry_number"

    def __init__(self, session: Session, config: LedgerConfig | None = None):
        self._session = session
        self._config = config or LedgerConfig()

    def next_entry_number(self, entity_id: UUID) -> str:
        """Allocate the next entry number for ``entity_id``."""
        value = self.next_value(
            f"{self.ENTRY_NUMBER}:{entity_id}",
            seed=lambda: self._latest_entry_number(entity_id),
        )
        return format_entry_number(
            self._config.entry_number_prefix,
            value,
            self._config.entry_number_width,
        )

    def next_value(self, sequence_name: str, seed: Callable[[], int] | None = None) -> int:
        """
        Get the next value for a named sequence.

        When the counter row does not exist yet it is created with
        ``seed() + 1`` (``seed`` defaults to 0) inside a savepoint.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for this sequence name.
        """
        if self._increment(sequence_name):
            return self._read(sequence_name)

        start = seed() if seed is not None else 0
        savepoint = self._session.begin_nested()
        try:
            self._session.add(SequenceCounter(name=sequence_name, current_value=start + 1))
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            # Another transaction created the counter first; use theirs.
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            if not self._increment(sequence_name):
                raise
            return self._read(sequence_name)

        logger.debug(
            "sequence_counter_seeded",
            extra={"sequence_name": sequence_name, "value": start + 1},
        )
        return start + 1

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _increment(self, sequence_name: str) -> bool:
        result = self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _read(self, sequence_name: str) -> int:
        value = self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def _latest_entry_number(self, entity_id: UUID) -> int:
        """Trailing number of the most recently created numbered entry, or 0."""
        number = self._session.execute(
            select(LedgerEntry.entry_number)
            .where(
                LedgerEntry.entity_id == entity_id,
                LedgerEntry.entry_number.is_not(None),
            )
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.entry_number.desc())
            .limit(1)
        ).scalar_one_or_none()
        return parse_entry_number(number) or 0
