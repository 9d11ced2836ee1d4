"""
LedgerService -- the posting state machine for ledger entries.

Responsibility:
    Creates DRAFT entries, approves them (DRAFT -> POSTED), voids posted
    entries by generating a linked reversal (POSTED -> VOIDED), and
    soft-deletes drafts.  Every mutation appends an audit record.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on the collaborator
    protocols in domain/collaborators.py (entity resolver, account
    directory, fiscal period lookup, audit sink) and on SequenceService.
    Called directly by the boundary layer and by the LEDGER_DRAFT executor.

Invariants enforced:
    - Ownership: the entity belongs to the caller's tenant, and every
      referenced account is active and owned by that entity and tenant.
    - Balance: total debits == total credits over the submitted lines.
    - Period lock: no entry is created, approved or reversed into a
      CLOSED/LOCKED fiscal period.
    - Separation of duties: the approver differs from the creator unless
      the approver holds the privileged role.
    - State transitions are conditional UPDATEs whose WHERE clause names the
      expected status; the affected row count is the success signal.
    - Exactly one reversal per voided entry.  The void claim
      (POSTED AND linked_entry_id IS NULL -> VOIDED) is a single statement,
      so of two concurrent voiders exactly one proceeds.

Failure modes:
    - EntityNotFoundError, EntryNotFoundError, CrossEntityReferenceError,
      UnbalancedEntryError, FiscalPeriodClosedError, AlreadyPostedError,
      AlreadyVoidedError, ImmutablePostedEntryError, SeparationOfDutiesError.

Audit relevance:
    One audit row per create/approve/delete, two per void (original UPDATE,
    reversal CREATE).  Structured log events: entry_created, entry_approved,
    entry_voided, entry_deleted.

Non-goals:
    - Does NOT commit.  Callers own the transaction, and run ``void_entry``
      inside ``session_scope(isolation_level="SERIALIZABLE")``.
"""

from datetime import date
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import (
    AccountResolver,
    AuditSink,
    EntityResolver,
    FiscalPeriodLookup,
)
from ledger_kernel.domain.dtos import EntryPage, LedgerEntryDTO
from ledger_kernel.domain.ledger import (
    EntryStatus,
    LineInput,
    Provenance,
    SourceType,
    VoidResult,
    can_transition,
    ensure_balanced,
    reversal_memo,
    reverse_lines,
)
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    AlreadyVoidedError,
    CrossEntityReferenceError,
    EntityNotFoundError,
    EntryNotFoundError,
    FiscalPeriodClosedError,
    ImmutablePostedEntryError,
    SeparationOfDutiesError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.ledger import LedgerEntry, LedgerLine
from ledger_kernel.selectors.entry_selector import EntrySelector, entry_to_dto
from ledger_kernel.services.audit_service import AuditLogService
from ledger_kernel.services.directory_service import AccountDirectory, EntityDirectory
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

AUDIT_MODEL = "LedgerEntry"

# PostgreSQL SQLSTATE for serialization_failure
_SERIALIZATION_FAILURE = "40001"


def _snapshot(entry: LedgerEntry, **overrides: Any) -> dict[str, Any]:
    snap = {
        "entry_number": entry.entry_number,
        "entry_date": entry.entry_date,
        "memo": entry.memo,
        "status": entry.status,
        "source_type": entry.source_type,
        "source_id": entry.source_id,
        "linked_entry_id": entry.linked_entry_id,
        "lines": [
            {
                "ledger_account_id": line.ledger_account_id,
                "debit_amount": line.debit_amount,
                "credit_amount": line.credit_amount,
                "memo": line.memo,
            }
            for line in entry.active_lines
        ],
    }
    snap.update(overrides)
    return snap


class LedgerService:
    """
    Tenant-scoped posting state machine.

    Contract:
        One instance serves one tenant.  Every read and write is constrained
        to entities owned by ``tenant_id``.

    Guarantees:
        - Returned entries are frozen DTOs, never ORM rows.
        - A failed precondition raises before anything is written.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT validate line shape beyond non-negative integer amounts
          (LineInput does that) and balance.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: UUID,
        *,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        entities: EntityResolver | None = None,
        accounts: AccountResolver | None = None,
        periods: FiscalPeriodLookup | None = None,
        audit: AuditSink | None = None,
        sequences: SequenceService | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._config = config or LedgerConfig()
        self._clock = clock or SystemClock()
        self._entities = entities or EntityDirectory(session)
        self._accounts = accounts or AccountDirectory(session)
        self._periods = periods or PeriodService(session)
        self._audit = audit or AuditLogService(session, self._clock)
        self._sequences = sequences or SequenceService(session, self._config)
        self._selector = EntrySelector(session)

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_entry(
        self,
        entity_id: UUID,
        entry_date: date,
        memo: str | None,
        lines: Iterable[LineInput],
        actor_id: UUID,
        provenance: Provenance | None = None,
    ) -> LedgerEntryDTO:
        """
        Persist a new DRAFT entry with its lines.

        Checks run in order: entity ownership, period lock, account
        ownership, balance.  Only then is an entry number allocated.
        """
        lines = list(lines)
        provenance = provenance or Provenance()

        self._require_entity(entity_id)
        self._require_open_period(entity_id, entry_date)
        self._require_accounts(entity_id, lines)
        totals = ensure_balanced(lines)

        entry = self._insert_entry(
            entity_id=entity_id,
            entry_date=entry_date,
            memo=memo,
            lines=lines,
            actor_id=actor_id,
            provenance=provenance,
            status=EntryStatus.DRAFT,
        )

        self._audit.record(
            tenant_id=self._tenant_id,
            entity_id=entity_id,
            model=AUDIT_MODEL,
            record_id=entry.id,
            action=AuditAction.CREATE.value,
            user_id=actor_id,
            after=_snapshot(entry),
        )
        logger.info(
            "entry_created",
            extra={
                "entry_id": str(entry.id),
                "entity_id": str(entity_id),
                "entry_number": entry.entry_number,
                "line_count": len(lines),
                "total_debits": totals.total_debits,
                "source_type": provenance.source_type.value,
            },
        )
        return entry_to_dto(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID) -> LedgerEntryDTO:
        entry = self._selector.get(entry_id, self._tenant_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def list_entries(
        self,
        entity_id: UUID,
        *,
        status: EntryStatus | None = None,
        source_type: SourceType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int | None = None,
        cursor: UUID | None = None,
    ) -> EntryPage:
        """Newest entries first, keyset-paginated by ``cursor``."""
        self._require_entity(entity_id)
        if limit is None:
            limit = self._config.default_page_size
        limit = max(1, min(limit, self._config.max_page_size))
        return self._selector.list_entries(
            entity_id,
            self._tenant_id,
            status=status,
            source_type=source_type,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            cursor=cursor,
        )

    # ------------------------------------------------------------------
    # Approve
    # ------------------------------------------------------------------

    def approve_entry(
        self,
        entry_id: UUID,
        approver_id: UUID,
        approver_role: str | None = None,
    ) -> LedgerEntryDTO:
        """DRAFT -> POSTED, enforcing period lock and separation of duties."""
        with LogContext.bind(entry_id=entry_id, actor_id=approver_id):
            entry = self._load(entry_id)
            if not can_transition(entry.status, EntryStatus.POSTED):
                raise AlreadyPostedError(str(entry_id), EntryStatus(entry.status).value)

            self._require_open_period(entry.entity_id, entry.entry_date)

            if (
                entry.created_by_id == approver_id
                and approver_role != self._config.privileged_role
            ):
                logger.warning(
                    "separation_of_duties_rejected",
                    extra={
                        "entry_id": str(entry_id),
                        "user_id": str(approver_id),
                        "role": approver_role,
                    },
                )
                raise SeparationOfDutiesError(str(entry_id), str(approver_id))

            now = self._clock.now_utc()
            result = self._session.execute(
                update(LedgerEntry)
                .where(
                    LedgerEntry.id == entry_id,
                    LedgerEntry.status == EntryStatus.DRAFT,
                    LedgerEntry.deleted_at.is_(None),
                )
                .values(
                    status=EntryStatus.POSTED,
                    updated_by_id=approver_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self._load(entry_id)
                raise AlreadyPostedError(str(entry_id), EntryStatus(current.status).value)

            self._audit.record(
                tenant_id=self._tenant_id,
                entity_id=entry.entity_id,
                model=AUDIT_MODEL,
                record_id=entry_id,
                action=AuditAction.UPDATE.value,
                user_id=approver_id,
                before={"status": EntryStatus.DRAFT},
                after={"status": EntryStatus.POSTED},
            )
            logger.info(
                "entry_approved",
                extra={
                    "entry_id": str(entry_id),
                    "entry_number": entry.entry_number,
                    "approver_id": str(approver_id),
                },
            )
            return self.get_entry(entry_id)

    # ------------------------------------------------------------------
    # Void
    # ------------------------------------------------------------------

    def void_entry(self, entry_id: UUID, actor_id: UUID) -> VoidResult:
        """
        Void a POSTED entry by creating its reversal.

        The reversal is dated today (per the service clock), carries the
        mirrored lines, and is POSTED immediately.  The original becomes
        VOIDED with ``linked_entry_id`` pointing at the reversal.

        Raises:
            AlreadyVoidedError: the entry is VOIDED, already has a reversal,
                or a concurrent call claimed it first.
            ImmutablePostedEntryError: the entry is not POSTED.
        """
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            entry = self._load(entry_id)
            status = EntryStatus(entry.status)
            if status == EntryStatus.VOIDED:
                raise AlreadyVoidedError(str(entry_id), _opt_str(entry.linked_entry_id))
            if not can_transition(status, EntryStatus.VOIDED):
                raise ImmutablePostedEntryError(str(entry_id), status.value, "void")
            if entry.linked_entry_id is not None:
                raise AlreadyVoidedError(str(entry_id), str(entry.linked_entry_id))
            existing = self._selector.reversal_of(entry_id, self._tenant_id)
            if existing is not None:
                raise AlreadyVoidedError(str(entry_id), str(existing.id))

            reversal_date = self._clock.today()
            self._require_open_period(entry.entity_id, reversal_date)

            now = self._clock.now_utc()
            self._claim_void(entry_id, actor_id, now)

            prefix = self._config.reversal_memo_prefix
            original_lines = [
                LineInput(
                    ledger_account_id=line.ledger_account_id,
                    debit_amount=line.debit_amount,
                    credit_amount=line.credit_amount,
                    memo=line.memo,
                )
                for line in sorted(entry.active_lines, key=lambda line: line.line_no)
            ]
            reversal = self._insert_entry(
                entity_id=entry.entity_id,
                entry_date=reversal_date,
                memo=reversal_memo(entry.memo, prefix),
                lines=reverse_lines(original_lines, prefix),
                actor_id=actor_id,
                provenance=Provenance(
                    source_type=SourceType.ADJUSTMENT,
                    source_id=str(entry_id),
                    source_document={"reversal_of": entry.entry_number},
                ),
                status=EntryStatus.POSTED,
            )

            self._session.execute(
                update(LedgerEntry)
                .where(
                    LedgerEntry.id == entry_id,
                    LedgerEntry.linked_entry_id.is_(None),
                )
                .values(linked_entry_id=reversal.id)
                .execution_options(synchronize_session=False)
            )

            self._audit.record(
                tenant_id=self._tenant_id,
                entity_id=entry.entity_id,
                model=AUDIT_MODEL,
                record_id=entry_id,
                action=AuditAction.UPDATE.value,
                user_id=actor_id,
                before={"status": EntryStatus.POSTED, "linked_entry_id": None},
                after={"status": EntryStatus.VOIDED, "linked_entry_id": reversal.id},
            )
            self._audit.record(
                tenant_id=self._tenant_id,
                entity_id=entry.entity_id,
                model=AUDIT_MODEL,
                record_id=reversal.id,
                action=AuditAction.CREATE.value,
                user_id=actor_id,
                after=_snapshot(reversal),
            )
            logger.info(
                "entry_voided",
                extra={
                    "entry_id": str(entry_id),
                    "entry_number": entry.entry_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_entry_number": reversal.entry_number,
                },
            )
            return VoidResult(voided_entry_id=entry_id, reversal_entry_id=reversal.id)

    def _claim_void(self, entry_id: UUID, actor_id: UUID, now) -> None:
        try:
            result = self._session.execute(
                update(LedgerEntry)
                .where(
                    LedgerEntry.id == entry_id,
                    LedgerEntry.status == EntryStatus.POSTED,
                    LedgerEntry.linked_entry_id.is_(None),
                    LedgerEntry.deleted_at.is_(None),
                )
                .values(
                    status=EntryStatus.VOIDED,
                    updated_by_id=actor_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        except OperationalError as exc:
            if getattr(exc.orig, "pgcode", None) == _SERIALIZATION_FAILURE:
                logger.warning(
                    "void_serialization_conflict",
                    extra={"entry_id": str(entry_id)},
                )
                raise AlreadyVoidedError(str(entry_id)) from exc
            raise
        if result.rowcount != 1:
            logger.warning("void_claim_lost", extra={"entry_id": str(entry_id)})
            raise AlreadyVoidedError(str(entry_id))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_entry(self, entry_id: UUID, actor_id: UUID) -> None:
        """Soft-delete a DRAFT entry and its lines."""
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            entry = self._load(entry_id)
            status = EntryStatus(entry.status)
            if status != EntryStatus.DRAFT:
                raise ImmutablePostedEntryError(str(entry_id), status.value, "delete")

            before = _snapshot(entry)
            now = self._clock.now_utc()
            result = self._session.execute(
                update(LedgerEntry)
                .where(
                    LedgerEntry.id == entry_id,
                    LedgerEntry.status == EntryStatus.DRAFT,
                    LedgerEntry.deleted_at.is_(None),
                )
                .values(deleted_at=now, updated_by_id=actor_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self._load(entry_id)
                raise ImmutablePostedEntryError(
                    str(entry_id), EntryStatus(current.status).value, "delete"
                )
            self._session.execute(
                update(LedgerLine)
                .where(LedgerLine.entry_id == entry_id, LedgerLine.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )

            self._audit.record(
                tenant_id=self._tenant_id,
                entity_id=entry.entity_id,
                model=AUDIT_MODEL,
                record_id=entry_id,
                action=AuditAction.DELETE.value,
                user_id=actor_id,
                before=before,
            )
            logger.info(
                "entry_deleted",
                extra={"entry_id": str(entry_id), "entry_number": entry.entry_number},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, entry_id: UUID) -> LedgerEntry:
        entry = self._selector.get_model(entry_id, self._tenant_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def _require_entity(self, entity_id: UUID) -> None:
        if not self._entities.entity_belongs_to_tenant(entity_id, self._tenant_id):
            logger.warning(
                "entity_not_owned_rejected",
                extra={"entity_id": str(entity_id), "tenant_id": str(self._tenant_id)},
            )
            raise EntityNotFoundError(str(entity_id), str(self._tenant_id))

    def _require_open_period(self, entity_id: UUID, on: date) -> None:
        lock = self._periods.locked_period_covering(entity_id, on)
        if lock is not None:
            logger.warning(
                "fiscal_period_closed_rejected",
                extra={
                    "entity_id": str(entity_id),
                    "entry_date": on.isoformat(),
                    "period_name": lock.name,
                    "period_status": lock.status,
                },
            )
            raise FiscalPeriodClosedError(
                period_name=lock.name,
                period_status=lock.status,
                entry_date=on,
            )

    def _require_accounts(self, entity_id: UUID, lines: list[LineInput]) -> None:
        requested = {line.ledger_account_id for line in lines}
        found = self._accounts.accounts_active_and_owned(
            requested, entity_id, self._tenant_id
        )
        missing = requested - set(found)
        if missing:
            logger.warning(
                "cross_entity_reference_rejected",
                extra={
                    "entity_id": str(entity_id),
                    "invalid_account_ids": sorted(str(a) for a in missing),
                },
            )
            raise CrossEntityReferenceError(
                str(entity_id), sorted(str(a) for a in missing)
            )

    def _insert_entry(
        self,
        *,
        entity_id: UUID,
        entry_date: date,
        memo: str | None,
        lines: list[LineInput],
        actor_id: UUID,
        provenance: Provenance,
        status: EntryStatus,
    ) -> LedgerEntry:
        now = self._clock.now_utc()
        entry = LedgerEntry(
            entity_id=entity_id,
            entry_number=self._sequences.next_entry_number(entity_id),
            entry_date=entry_date,
            memo=memo,
            source_type=provenance.source_type,
            source_id=provenance.source_id,
            source_document=provenance.source_document,
            status=status,
            created_by_id=actor_id,
            updated_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        entry.lines = [
            LedgerLine(
                ledger_account_id=line.ledger_account_id,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                memo=line.memo,
                line_no=index,
            )
            for index, line in enumerate(lines, start=1)
        ]
        self._session.add(entry)
        self._session.flush()
        return entry


def _opt_str(value) -> str | None:
    return str(value) if value is not None else None
