"""
Tests for ReconciliationSelector.

The projections (account totals, stock levels, paid amounts) are edited
with raw SQL to simulate tampering; the selector must notice.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from ledger_engines.totals import DocumentTotals
from ledger_kernel.domain.values import DocumentKind
from ledger_kernel.models.inventory import MovementKind
from ledger_kernel.models.payment import DocumentDirection, PaymentDirection, PaymentMethod
from ledger_kernel.selectors.reconciliation_selector import ReconciliationSelector

POSTING_DATE = date(2024, 2, 1)

TOTALS = DocumentTotals(
    total_ex_tax=Decimal("1000"),
    total_discount=Decimal("0"),
    total_tax=Decimal("180"),
    total_with_tax=Decimal("1180"),
)


def _tamper(session, statement: str) -> None:
    session.flush()
    session.execute(text(statement))
    session.expire_all()


@pytest.fixture
def selector(session) -> ReconciliationSelector:
    return ReconciliationSelector(session)


@pytest.fixture
def booked(session, document_posting, inventory_ledger, payment_service, warehouses, product, make_ref, test_actor_id):
    """One posted invoice, some stock, and a payment against the invoice."""
    invoice = make_ref(number="FAC-1")
    document_posting.post_sales_invoice(invoice, TOTALS, POSTING_DATE, test_actor_id)

    inventory_ledger.record_movement(
        product.id, warehouses["MAIN"].id, Decimal("10"), MovementKind.PURCHASE_RECEIPT,
        make_ref(DocumentKind.GOODS_RECEIPT), test_actor_id, unit_cost=Decimal("50"),
    )
    inventory_ledger.record_movement(
        product.id, warehouses["MAIN"].id, Decimal("-4"), MovementKind.SALE_ISSUE,
        make_ref(DocumentKind.DELIVERY_NOTE), test_actor_id,
    )

    payment_service.register_document(invoice, DocumentDirection.RECEIVABLE, Decimal("1180"), test_actor_id)
    payment_service.record_payment(
        Decimal("500"), PaymentDirection.INCOMING, PaymentMethod.CASH, [invoice], test_actor_id
    )
    session.flush()
    return invoice


class TestCleanState:
    def test_no_discrepancies(self, booked, selector):
        assert selector.account_discrepancies() == []
        assert selector.stock_discrepancies() == []
        assert selector.settlement_discrepancies() == []

    def test_void_entry_keeps_totals_consistent(self, booked, ledger_engine, selector, test_actor_id):
        entry = ledger_engine.entries_for_origin(booked)[0]

        ledger_engine.void_entry(entry.id, test_actor_id, "Wrong customer")

        assert selector.account_discrepancies() == []

    def test_empty_database(self, session, selector):
        assert selector.account_discrepancies() == []
        assert selector.stock_discrepancies() == []
        assert selector.trial_balance() == []


class TestTamperingDetected:
    def test_account_total_edited(self, session, booked, selector):
        _tamper(session, "UPDATE accounts SET total_debit = 1 WHERE number = '411'")

        discrepancies = selector.account_discrepancies()

        assert len(discrepancies) == 1
        assert discrepancies[0].account_number == "411"
        assert discrepancies[0].recorded_debit == Decimal("1.00")
        assert discrepancies[0].replayed_debit == Decimal("1180.00")

    def test_stock_level_edited(self, session, booked, selector, product):
        _tamper(session, "UPDATE stock_levels SET quantity = 9")

        checks = sorted(d.check for d in selector.stock_discrepancies())

        assert checks == ["level_vs_movements", "total_vs_levels"]

    def test_product_total_edited(self, session, booked, selector, product):
        _tamper(session, "UPDATE products SET quantity_on_hand = 7")

        discrepancies = selector.stock_discrepancies()

        assert [d.check for d in discrepancies] == ["total_vs_levels"]
        assert discrepancies[0].warehouse_id is None
        assert Decimal(discrepancies[0].recorded) == Decimal("7")
        assert Decimal(discrepancies[0].replayed) == Decimal("6")

    def test_negative_level(self, session, booked, selector):
        _tamper(session, "UPDATE stock_levels SET quantity = -1")

        assert "negative_level" in {d.check for d in selector.stock_discrepancies()}

    def test_paid_amount_edited(self, session, booked, selector):
        _tamper(session, "UPDATE open_documents SET amount_paid = 1180")

        discrepancies = selector.settlement_discrepancies()

        assert len(discrepancies) == 1
        assert discrepancies[0].document_id == booked.id
        assert discrepancies[0].recorded_paid == Decimal("1180.00")
        assert discrepancies[0].replayed_paid == Decimal("500.00")


class TestTrialBalance:
    def test_rows_follow_posted_entries(self, booked, selector):
        rows = selector.trial_balance()

        assert [row.account_number for row in rows] == ["411", "4431", "701"]
        assert rows[0].debit_total == Decimal("1180.00")
        assert rows[2].credit_total == Decimal("1000.00")
        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)

    def test_balance_signed_by_nature(self, booked, selector):
        vat = {row.account_number: row for row in selector.trial_balance()}["4431"]

        assert vat.balance == Decimal("180.00")
