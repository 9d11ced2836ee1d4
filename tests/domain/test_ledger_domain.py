"""
Pure ledger domain tests: balance totals, the reversal mirror, entry status
transitions and entry-number formatting.

Property-based cases use hypothesis over arbitrary non-negative amounts.
"""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.domain.ledger import (
    EntryStatus,
    LineInput,
    can_transition,
    compute_totals,
    ensure_balanced,
    format_entry_number,
    parse_entry_number,
    reversal_memo,
    reverse_lines,
)
from ledger_kernel.exceptions import UnbalancedEntryError

amounts = st.integers(min_value=0, max_value=10**12)

line_inputs = st.builds(
    LineInput,
    ledger_account_id=st.uuids(),
    debit_amount=amounts,
    credit_amount=amounts,
    memo=st.one_of(st.none(), st.text(min_size=1, max_size=20)),
)


def _balanced(amount_list):
    """Each amount becomes a debit line plus a matching credit line."""
    account_a, account_b = uuid4(), uuid4()
    lines = []
    for amount in amount_list:
        lines.append(LineInput(ledger_account_id=account_a, debit_amount=amount))
        lines.append(LineInput(ledger_account_id=account_b, credit_amount=amount))
    return lines


class TestLineInput:
    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            LineInput(ledger_account_id=uuid4(), debit_amount=-1)

    def test_float_amount_rejected(self):
        with pytest.raises(ValueError):
            LineInput(ledger_account_id=uuid4(), credit_amount=10.5)

    def test_bool_amount_rejected(self):
        with pytest.raises(ValueError):
            LineInput(ledger_account_id=uuid4(), debit_amount=True)


class TestBalance:
    @given(st.lists(amounts, min_size=1, max_size=10))
    def test_paired_lines_always_balance(self, amount_list):
        totals = ensure_balanced(_balanced(amount_list))
        assert totals.total_debits == totals.total_credits == sum(amount_list)

    @given(st.lists(amounts, min_size=1, max_size=10), st.integers(min_value=1, max_value=10**6))
    def test_any_skew_is_rejected(self, amount_list, skew):
        lines = _balanced(amount_list)
        lines.append(LineInput(ledger_account_id=uuid4(), debit_amount=skew))
        with pytest.raises(UnbalancedEntryError) as exc_info:
            ensure_balanced(lines)
        assert exc_info.value.total_debits - exc_info.value.total_credits == skew

    def test_unbalanced_error_carries_code(self):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            ensure_balanced(
                [
                    LineInput(ledger_account_id=uuid4(), debit_amount=1000),
                    LineInput(ledger_account_id=uuid4(), credit_amount=999),
                ]
            )
        assert exc_info.value.code == "UNBALANCED_ENTRY"
        assert exc_info.value.status_code == 400

    def test_no_lines_rejected(self):
        with pytest.raises(UnbalancedEntryError, match="no lines"):
            ensure_balanced([])


class TestReverseLines:
    """Reversal mirror: debit and credit swapped per line, order preserved."""

    @given(st.lists(line_inputs, max_size=8))
    def test_reversal_swaps_sides(self, lines):
        reversed_lines = reverse_lines(lines)
        assert len(reversed_lines) == len(lines)
        for original, mirrored in zip(lines, reversed_lines):
            assert mirrored.ledger_account_id == original.ledger_account_id
            assert mirrored.debit_amount == original.credit_amount
            assert mirrored.credit_amount == original.debit_amount

    @given(st.lists(line_inputs, max_size=8))
    def test_reversal_twice_restores_amounts(self, lines):
        twice = reverse_lines(reverse_lines(lines))
        assert [(line.debit_amount, line.credit_amount) for line in twice] == [
            (line.debit_amount, line.credit_amount) for line in lines
        ]

    @given(st.lists(amounts, min_size=1, max_size=10))
    def test_reversal_of_balanced_entry_is_balanced(self, amount_list):
        original = compute_totals(_balanced(amount_list))
        mirrored = ensure_balanced(reverse_lines(_balanced(amount_list)))
        assert mirrored.total_debits == original.total_credits

    def test_scenario_c_lines(self):
        cash, revenue = uuid4(), uuid4()
        lines = [
            LineInput(ledger_account_id=cash, debit_amount=4250),
            LineInput(ledger_account_id=revenue, credit_amount=4250),
        ]
        assert [(line.debit_amount, line.credit_amount) for line in reverse_lines(lines)] == [
            (0, 4250),
            (4250, 0),
        ]

    def test_line_memos_prefixed_only_when_present(self):
        lines = [
            LineInput(ledger_account_id=uuid4(), debit_amount=5, memo="Rent"),
            LineInput(ledger_account_id=uuid4(), credit_amount=5),
        ]
        mirrored = reverse_lines(lines)
        assert mirrored[0].memo == "REVERSAL: Rent"
        assert mirrored[1].memo is None

    def test_entry_memo(self):
        assert reversal_memo("March rent") == "REVERSAL: March rent"
        assert reversal_memo(None) == "REVERSAL: "


class TestEntryTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (EntryStatus.DRAFT, EntryStatus.POSTED, True),
            (EntryStatus.POSTED, EntryStatus.VOIDED, True),
            (EntryStatus.DRAFT, EntryStatus.VOIDED, False),
            (EntryStatus.POSTED, EntryStatus.DRAFT, False),
            (EntryStatus.VOIDED, EntryStatus.POSTED, False),
            (EntryStatus.VOIDED, EntryStatus.DRAFT, False),
        ],
    )
    def test_transition_table(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestEntryNumbers:
    def test_zero_padded(self):
        assert format_entry_number("JE-", 1) == "JE-001"
        assert format_entry_number("JE-", 42) == "JE-042"

    def test_widens_past_three_digits(self):
        assert format_entry_number("JE-", 1000) == "JE-1000"

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            format_entry_number("JE-", 0)

    @given(st.integers(min_value=1, max_value=10**9))
    def test_parse_inverts_format(self, n):
        assert parse_entry_number(format_entry_number("JE-", n)) == n

    @pytest.mark.parametrize("number", [None, "", "JE-", "MANUAL"])
    def test_parse_without_digits(self, number):
        assert parse_entry_number(number) is None
