"""Entry listing: filters, keyset pagination and per-entry totals."""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.config.schema import LedgerConfig
from ledger_kernel.domain.ledger import EntryStatus, LineInput, Provenance, SourceType
from ledger_kernel.exceptions import EntityNotFoundError, EntryNotFoundError
from ledger_kernel.services.ledger_service import LedgerService


class TestListEntries:
    def test_newest_entry_date_first(self, make_entry, ledger_service, seeded):
        early = make_entry(entry_date=date(2024, 1, 5))
        late = make_entry(entry_date=date(2024, 1, 25))
        middle = make_entry(entry_date=date(2024, 1, 15))

        page = ledger_service.list_entries(seeded.entity_id)
        assert [item.id for item in page.entries] == [late.id, middle.id, early.id]
        assert not page.has_more

    def test_same_date_newest_created_first(self, make_entry, ledger_service, seeded):
        first = make_entry()
        second = make_entry()
        page = ledger_service.list_entries(seeded.entity_id)
        assert [item.id for item in page.entries] == [second.id, first.id]

    def test_line_count_and_total(self, make_entry, ledger_service, seeded):
        make_entry(
            lines=[
                LineInput(ledger_account_id=seeded.cash, debit_amount=600),
                LineInput(ledger_account_id=seeded.receivables, debit_amount=400),
                LineInput(ledger_account_id=seeded.revenue, credit_amount=1000),
            ]
        )
        (item,) = ledger_service.list_entries(seeded.entity_id).entries
        assert item.line_count == 3
        assert item.total_amount == 1000

    def test_deleted_entries_excluded(self, make_entry, ledger_service, seeded, creator_id):
        kept = make_entry()
        dropped = make_entry()
        ledger_service.delete_entry(dropped.id, creator_id)
        page = ledger_service.list_entries(seeded.entity_id)
        assert [item.id for item in page.entries] == [kept.id]

    def test_status_filter(self, make_entry, ledger_service, seeded, approver_id):
        draft = make_entry()
        posted = make_entry()
        ledger_service.approve_entry(posted.id, approver_id)

        drafts = ledger_service.list_entries(seeded.entity_id, status=EntryStatus.DRAFT)
        posted_page = ledger_service.list_entries(seeded.entity_id, status=EntryStatus.POSTED)
        assert [item.id for item in drafts.entries] == [draft.id]
        assert [item.id for item in posted_page.entries] == [posted.id]

    def test_source_type_filter(self, make_entry, ledger_service, seeded):
        make_entry()
        imported = make_entry(provenance=Provenance(source_type=SourceType.IMPORT, source_id="csv-1"))
        page = ledger_service.list_entries(seeded.entity_id, source_type=SourceType.IMPORT)
        assert [item.id for item in page.entries] == [imported.id]

    def test_date_range_is_inclusive(self, make_entry, ledger_service, seeded):
        make_entry(entry_date=date(2024, 1, 2))
        inside_low = make_entry(entry_date=date(2024, 1, 10))
        inside_high = make_entry(entry_date=date(2024, 1, 20))
        make_entry(entry_date=date(2024, 1, 28))

        page = ledger_service.list_entries(
            seeded.entity_id, date_from=date(2024, 1, 10), date_to=date(2024, 1, 20)
        )
        assert {item.id for item in page.entries} == {inside_low.id, inside_high.id}

    def test_other_entities_not_listed(self, make_entry, ledger_service, seeded):
        make_entry()
        page = ledger_service.list_entries(seeded.sibling_entity_id)
        assert page.entries == ()

    def test_foreign_entity(self, ledger_service, seeded):
        with pytest.raises(EntityNotFoundError):
            ledger_service.list_entries(seeded.other_entity_id)

    def test_voided_entry_shows_link(self, posted_entry, ledger_service, seeded, approver_id):
        result = ledger_service.void_entry(posted_entry.id, approver_id)
        page = ledger_service.list_entries(seeded.entity_id, status=EntryStatus.VOIDED)
        assert page.entries[0].linked_entry_id == result.reversal_entry_id


class TestPagination:
    def test_pages_cover_all_entries_once(self, make_entry, ledger_service, seeded):
        created = [make_entry() for _ in range(5)]

        seen = []
        cursor = None
        while True:
            page = ledger_service.list_entries(seeded.entity_id, limit=2, cursor=cursor)
            seen.extend(item.id for item in page.entries)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert seen == [entry.id for entry in reversed(created)]

    def test_exact_page_has_no_cursor(self, make_entry, ledger_service, seeded):
        make_entry()
        make_entry()
        page = ledger_service.list_entries(seeded.entity_id, limit=2)
        assert len(page.entries) == 2
        assert page.next_cursor is None

    def test_limit_clamped_to_maximum(self, session, seeded, clock, creator_id):
        service = LedgerService(
            session,
            seeded.tenant_id,
            clock=clock,
            config=LedgerConfig(default_page_size=2, max_page_size=3),
        )
        for _ in range(4):
            service.create_entry(
                seeded.entity_id,
                date(2024, 1, 15),
                None,
                [
                    LineInput(ledger_account_id=seeded.cash, debit_amount=10),
                    LineInput(ledger_account_id=seeded.revenue, credit_amount=10),
                ],
                creator_id,
            )
            clock.tick()

        assert len(service.list_entries(seeded.entity_id).entries) == 2
        assert len(service.list_entries(seeded.entity_id, limit=50).entries) == 3

    def test_unknown_cursor(self, make_entry, ledger_service, seeded):
        make_entry()
        with pytest.raises(EntryNotFoundError):
            ledger_service.list_entries(seeded.entity_id, cursor=uuid4())
