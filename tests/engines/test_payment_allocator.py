"""
Tests for PaymentAllocator and the settlement helpers.

Covers:
- Conservation and overflow reference cases
- Caller order is respected, never re-sorted
- Skipping settled and over-paid documents
- Early stop once the amount is consumed
- Due-date ordering policy
- Settlement status thresholds
- Property: applied + leftover == amount, no document over-funded
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_engines.allocation import (
    OpenBalance,
    PaymentAllocator,
    order_by_due_date,
    settlement_status,
)
from ledger_kernel.domain.values import SettlementStatus


def _docs(*balances):
    return [OpenBalance(f"doc-{i}", Decimal(str(b))) for i, b in enumerate(balances, start=1)]


class TestAllocate:
    def setup_method(self):
        self.allocator = PaymentAllocator()

    def test_payment_spread_in_order(self):
        """150 against [100, 100] -> [100, 50], leftover 0."""
        plan = self.allocator.allocate(Decimal("150"), _docs(100, 100))

        assert [(a.document_id, a.applied_amount) for a in plan.allocations] == [
            ("doc-1", Decimal("100.00")),
            ("doc-2", Decimal("50.00")),
        ]
        assert plan.leftover == Decimal("0")
        assert plan.is_fully_applied

    def test_overflow_reported_as_leftover(self):
        """250 against [100, 100] -> [100, 100], leftover 50."""
        plan = self.allocator.allocate(Decimal("250"), _docs(100, 100))

        assert [a.applied_amount for a in plan.allocations] == [Decimal("100"), Decimal("100")]
        assert plan.leftover == Decimal("50")
        assert not plan.is_fully_applied

    def test_caller_order_is_kept(self):
        docs = [
            OpenBalance("late", Decimal("100"), due_date=date(2024, 3, 1)),
            OpenBalance("early", Decimal("100"), due_date=date(2024, 1, 1)),
        ]

        plan = self.allocator.allocate(Decimal("120"), docs)

        assert plan.applied_to("late") == Decimal("100")
        assert plan.applied_to("early") == Decimal("20")

    def test_settled_and_overpaid_documents_skipped(self):
        docs = [
            OpenBalance("settled", Decimal("100"), already_paid=Decimal("100")),
            OpenBalance("overpaid", Decimal("100"), already_paid=Decimal("130")),
            OpenBalance("open", Decimal("80"), already_paid=Decimal("30")),
        ]

        plan = self.allocator.allocate(Decimal("70"), docs)

        assert [a.document_id for a in plan.allocations] == ["open"]
        assert plan.applied_to("open") == Decimal("50")
        assert plan.leftover == Decimal("20")

    def test_stops_once_consumed(self):
        plan = self.allocator.allocate(Decimal("100"), _docs(100, 100, 100))

        assert len(plan.allocations) == 1

    def test_zero_amount_allocates_nothing(self):
        plan = self.allocator.allocate(Decimal("0"), _docs(100))

        assert plan.allocations == ()
        assert plan.leftover == Decimal("0")

    def test_no_documents_leaves_everything(self):
        plan = self.allocator.allocate(Decimal("42.5"), [])

        assert plan.leftover == Decimal("42.50")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            self.allocator.allocate(Decimal("-1"), _docs(100))

    def test_amounts_rounded_to_cents(self):
        plan = self.allocator.allocate(Decimal("10.005"), _docs("3.333", 100))

        assert plan.allocations[0].applied_amount == Decimal("3.33")
        assert plan.allocations[1].applied_amount == Decimal("6.68")

    def test_leftover_is_logged(self, captured_logs):
        self.allocator.allocate(Decimal("250"), _docs(100, 100))

        warnings = [r for r in captured_logs() if r["message"] == "allocation_leftover"]
        assert warnings and warnings[0]["leftover"] == "50.00"


class TestOrderByDueDate:
    def test_oldest_first_undated_last_stable(self):
        docs = [
            OpenBalance("undated-1", Decimal("1")),
            OpenBalance("march", Decimal("1"), due_date=date(2024, 3, 1)),
            OpenBalance("jan-a", Decimal("1"), due_date=date(2024, 1, 1)),
            OpenBalance("undated-2", Decimal("1")),
            OpenBalance("jan-b", Decimal("1"), due_date=date(2024, 1, 1)),
        ]

        ordered = [d.document_id for d in order_by_due_date(docs)]

        assert ordered == ["jan-a", "jan-b", "march", "undated-1", "undated-2"]


class TestSettlementStatus:
    @pytest.mark.parametrize(
        "paid, total, expected",
        [
            ("0", "100", SettlementStatus.UNPAID),
            ("0.01", "100", SettlementStatus.PARTIALLY_PAID),
            ("99.99", "100", SettlementStatus.PARTIALLY_PAID),
            ("100", "100", SettlementStatus.PAID),
            ("120", "100", SettlementStatus.PAID),
            ("0", "0", SettlementStatus.PAID),
        ],
    )
    def test_thresholds(self, paid, total, expected):
        assert settlement_status(Decimal(paid), Decimal(total)) is expected


money = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2)


class TestAllocationProperties:
    @settings(max_examples=200, deadline=None)
    @given(
        amount=money,
        balances=st.lists(st.tuples(money, money), max_size=8),
    )
    def test_conservation_and_caps(self, amount, balances):
        docs = [
            OpenBalance(f"d{i}", total, already_paid=paid)
            for i, (total, paid) in enumerate(balances)
        ]

        plan = PaymentAllocator().allocate(amount, docs)

        assert plan.total_applied + plan.leftover == amount
        assert plan.leftover >= 0
        by_id = {d.document_id: d for d in docs}
        for allocation in plan.allocations:
            assert Decimal("0") < allocation.applied_amount <= by_id[allocation.document_id].balance
        # Leftover only when every open balance is covered
        if plan.leftover > 0:
            open_total = sum((d.balance for d in docs if d.balance > 0), Decimal("0"))
            assert plan.total_applied == open_total
