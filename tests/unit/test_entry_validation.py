"""
Unit tests for entry line validation.

Pure checks, no database: the same function guards LedgerEngine.post_entry
before any counter is consumed.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_kernel.domain.entry_validation import rounded_sides, validate_entry_lines
from ledger_kernel.domain.values import LineSpec
from ledger_kernel.exceptions import (
    EmptyEntryError,
    InvalidEntryLineError,
    UnbalancedEntryError,
    ValidationError,
)


class TestValidateEntryLines:
    def test_balanced_entry_returns_totals(self):
        debits, credits = validate_entry_lines([
            LineSpec.dr("411", Decimal("3186")),
            LineSpec.cr("701", Decimal("2700")),
            LineSpec.cr("4431", Decimal("486")),
        ])

        assert debits == credits == Decimal("3186.00")

    def test_single_line_rejected(self):
        with pytest.raises(InvalidEntryLineError) as exc_info:
            validate_entry_lines([LineSpec.dr("411", Decimal("10"))])

        assert exc_info.value.line_index is None

    def test_unbalanced_rejected(self):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            validate_entry_lines([
                LineSpec.dr("411", Decimal("100")),
                LineSpec.cr("701", Decimal("99.99")),
            ])

        assert exc_info.value.debits == "100.00"
        assert exc_info.value.credits == "99.99"
        assert exc_info.value.code == "UNBALANCED_ENTRY"

    def test_balance_checked_on_rounded_amounts(self):
        """Sub-cent remainders are dropped before debits and credits are compared."""
        debits, credits = validate_entry_lines([
            LineSpec.dr("411", Decimal("10.004")),
            LineSpec.cr("701", Decimal("5.002")),
            LineSpec.cr("701", Decimal("5.002")),
        ])

        assert debits == credits == Decimal("10.00")

    def test_all_zero_is_empty(self):
        with pytest.raises(EmptyEntryError):
            validate_entry_lines([LineSpec("411"), LineSpec("701")])

    def test_zero_line_among_others_is_invalid(self):
        with pytest.raises(InvalidEntryLineError) as exc_info:
            validate_entry_lines([
                LineSpec.dr("411", Decimal("10")),
                LineSpec("658"),
                LineSpec.cr("701", Decimal("10")),
            ])

        assert exc_info.value.line_index == 1

    def test_both_sides_rejected(self):
        with pytest.raises(InvalidEntryLineError) as exc_info:
            validate_entry_lines([
                LineSpec("411", debit=Decimal("10"), credit=Decimal("10")),
                LineSpec.cr("701", Decimal("0.01")),
            ])

        assert exc_info.value.line_index == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidEntryLineError):
            validate_entry_lines([
                LineSpec.dr("411", Decimal("-10")),
                LineSpec.cr("701", Decimal("-10")),
            ])

    def test_blank_account_rejected(self):
        with pytest.raises(InvalidEntryLineError) as exc_info:
            validate_entry_lines([
                LineSpec.dr("  ", Decimal("10")),
                LineSpec.cr("701", Decimal("10")),
            ])

        assert "account" in exc_info.value.reason

    @pytest.mark.parametrize("amount", [Decimal("1e30"), Decimal("Infinity"), Decimal("NaN")])
    def test_amount_out_of_range_rejected(self, amount):
        with pytest.raises(InvalidEntryLineError) as exc_info:
            validate_entry_lines([
                LineSpec.dr("411", amount),
                LineSpec.cr("701", amount),
            ])

        assert exc_info.value.line_index == 0

    def test_largest_storable_amount_accepted(self):
        amount = Decimal("9" * 29 + ".99")

        assert validate_entry_lines([
            LineSpec.dr("411", amount),
            LineSpec.cr("701", amount),
        ]) == (amount, amount)

    def test_all_failures_are_validation_errors(self):
        for lines in (
            [],
            [LineSpec("411"), LineSpec("701")],
            [LineSpec.dr("411", 1), LineSpec.cr("701", 2)],
        ):
            with pytest.raises(ValidationError):
                validate_entry_lines(lines)


class TestLineSpec:
    def test_floats_go_through_str(self):
        line = LineSpec("411", debit=0.1)

        assert line.debit == Decimal("0.1")

    def test_account_number_is_stringified(self):
        assert LineSpec(411, debit=Decimal("1")).account_number == "411"

    def test_rounded_sides(self):
        assert rounded_sides(LineSpec("411", Decimal("1.005"))) == (Decimal("1.01"), Decimal("0.00"))


cents = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2)


class TestBalanceProperty:
    @settings(max_examples=200, deadline=None)
    @given(amounts=st.lists(cents, min_size=1, max_size=10))
    def test_split_debits_against_one_credit_balance(self, amounts):
        lines = [LineSpec.dr("601", amount) for amount in amounts]
        lines.append(LineSpec.cr("521", sum(amounts)))

        debits, credits = validate_entry_lines(lines)

        assert debits == credits == sum(amounts)

    @settings(max_examples=200, deadline=None)
    @given(amounts=st.lists(cents, min_size=1, max_size=10))
    def test_one_cent_off_is_unbalanced(self, amounts):
        lines = [LineSpec.dr("601", amount) for amount in amounts]
        lines.append(LineSpec.cr("521", sum(amounts) + Decimal("0.01")))

        with pytest.raises(UnbalancedEntryError):
            validate_entry_lines(lines)
