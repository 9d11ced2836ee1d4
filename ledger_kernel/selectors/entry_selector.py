"""
Module: ledger_kernel.selectors.entry_selector
Responsibility: Read-only, tenant-scoped access to ledger entries and their
    lines.  Converts ORM rows to frozen DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Soft-deleted entries are never returned; soft-deleted lines are
      excluded from DTOs, line counts and totals.
    - Lines are ordered by line_no.
    - Listing is keyset-paginated on (entry_date desc, created_at desc,
      id desc); the cursor is the id of the last entry of the previous page.

Failure modes:
    - ``get`` returns None when no matching entry exists.
    - ``list_entries`` raises EntryNotFoundError for a cursor that is not a visible
      entry of the entity.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import selectinload

from ledger_kernel.domain.clock import as_utc
from ledger_kernel.domain.dtos import (
    EntryListItem,
    EntryPage,
    LedgerEntryDTO,
    LedgerLineDTO,
)
from ledger_kernel.domain.ledger import EntryStatus, SourceType
from ledger_kernel.exceptions import EntryNotFoundError
from ledger_kernel.models.ledger import LedgerEntry, LedgerLine
from ledger_kernel.models.tenancy import entity_ids_for_tenant
from ledger_kernel.selectors.base import BaseSelector


def entry_to_dto(entry: LedgerEntry) -> LedgerEntryDTO:
    lines = tuple(
        LedgerLineDTO(
            id=line.id,
            ledger_account_id=line.ledger_account_id,
            debit_amount=line.debit_amount,
            credit_amount=line.credit_amount,
            memo=line.memo,
            line_no=line.line_no,
        )
        for line in sorted(entry.active_lines, key=lambda line: line.line_no)
    )
    return LedgerEntryDTO(
        id=entry.id,
        entity_id=entry.entity_id,
        entry_number=entry.entry_number,
        entry_date=entry.entry_date,
        memo=entry.memo,
        status=EntryStatus(entry.status),
        source_type=SourceType(entry.source_type),
        source_id=entry.source_id,
        source_document=entry.source_document,
        linked_entry_id=entry.linked_entry_id,
        created_by_id=entry.created_by_id,
        updated_by_id=entry.updated_by_id,
        created_at=as_utc(entry.created_at),
        updated_at=as_utc(entry.updated_at),
        lines=lines,
    )


class EntrySelector(BaseSelector[LedgerEntry]):
    """Tenant-scoped reads over ledger entries."""

    def get_model(self, entry_id: UUID, tenant_id: UUID) -> LedgerEntry | None:
        """Freshly loaded ORM row (for services), or None."""
        return self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.id == entry_id,
                LedgerEntry.entity_id.in_(entity_ids_for_tenant(tenant_id)),
                LedgerEntry.deleted_at.is_(None),
            )
            .options(selectinload(LedgerEntry.lines))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(self, entry_id: UUID, tenant_id: UUID) -> LedgerEntryDTO | None:
        entry = self.get_model(entry_id, tenant_id)
        return entry_to_dto(entry) if entry is not None else None

    def list_entries(
        self,
        entity_id: UUID,
        tenant_id: UUID,
        *,
        status: EntryStatus | None = None,
        source_type: SourceType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 50,
        cursor: UUID | None = None,
    ) -> EntryPage:
        line_totals = (
            select(
                LedgerLine.entry_id.label("entry_id"),
                func.count(LedgerLine.id).label("line_count"),
                func.coalesce(func.sum(LedgerLine.debit_amount), 0).label("total_amount"),
            )
            .where(LedgerLine.deleted_at.is_(None))
            .group_by(LedgerLine.entry_id)
            .subquery()
        )

        conditions = [
            LedgerEntry.entity_id == entity_id,
            LedgerEntry.entity_id.in_(entity_ids_for_tenant(tenant_id)),
            LedgerEntry.deleted_at.is_(None),
        ]
        if status is not None:
            conditions.append(LedgerEntry.status == status)
        if source_type is not None:
            conditions.append(LedgerEntry.source_type == source_type)
        if date_from is not None:
            conditions.append(LedgerEntry.entry_date >= date_from)
        if date_to is not None:
            conditions.append(LedgerEntry.entry_date <= date_to)

        if cursor is not None:
            anchor = self.session.execute(
                select(LedgerEntry.entry_date, LedgerEntry.created_at, LedgerEntry.id).where(
                    LedgerEntry.id == cursor,
                    LedgerEntry.entity_id == entity_id,
                    LedgerEntry.entity_id.in_(entity_ids_for_tenant(tenant_id)),
                    LedgerEntry.deleted_at.is_(None),
                )
            ).first()
            if anchor is None:
                raise EntryNotFoundError(str(cursor))
            conditions.append(
                or_(
                    LedgerEntry.entry_date < anchor.entry_date,
                    and_(
                        LedgerEntry.entry_date == anchor.entry_date,
                        LedgerEntry.created_at < anchor.created_at,
                    ),
                    and_(
                        LedgerEntry.entry_date == anchor.entry_date,
                        LedgerEntry.created_at == anchor.created_at,
                        LedgerEntry.id < anchor.id,
                    ),
                )
            )

        rows = self.session.execute(
            select(
                LedgerEntry.id,
                LedgerEntry.entry_number,
                LedgerEntry.entry_date,
                LedgerEntry.memo,
                LedgerEntry.status,
                LedgerEntry.source_type,
                LedgerEntry.linked_entry_id,
                LedgerEntry.created_at,
                func.coalesce(line_totals.c.line_count, 0).label("line_count"),
                func.coalesce(line_totals.c.total_amount, 0).label("total_amount"),
            )
            .outerjoin(line_totals, line_totals.c.entry_id == LedgerEntry.id)
            .where(*conditions)
            .order_by(
                LedgerEntry.entry_date.desc(),
                LedgerEntry.created_at.desc(),
                LedgerEntry.id.desc(),
            )
            .limit(limit + 1)
        ).all()

        has_more = len(rows) > limit
        rows = rows[:limit]
        items = tuple(
            EntryListItem(
                id=row.id,
                entry_number=row.entry_number,
                entry_date=row.entry_date,
                memo=row.memo,
                status=EntryStatus(row.status),
                source_type=SourceType(row.source_type),
                linked_entry_id=row.linked_entry_id,
                created_at=as_utc(row.created_at),
                line_count=int(row.line_count),
                total_amount=int(row.total_amount),
            )
            for row in rows
        )
        return EntryPage(
            entries=items,
            next_cursor=items[-1].id if has_more and items else None,
        )

    def reversal_of(self, entry_id: UUID, tenant_id: UUID) -> LedgerEntryDTO | None:
        """The reversal entry sourced from ``entry_id``, if one exists."""
        entry = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.source_type == SourceType.ADJUSTMENT,
                LedgerEntry.source_id == str(entry_id),
                LedgerEntry.entity_id.in_(entity_ids_for_tenant(tenant_id)),
                LedgerEntry.deleted_at.is_(None),
            )
            .execution_options(populate_existing=True)
        ).scalars().first()
        return entry_to_dto(entry) if entry is not None else None
