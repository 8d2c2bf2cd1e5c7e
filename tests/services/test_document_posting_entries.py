"""
Tests for DocumentPostingService: the standard entry of each document type.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ledger_engines.totals import DocumentTotals, DocumentTotalsCalculator, TotalsLine
from ledger_kernel.domain.defaults import PostingDefaults
from ledger_kernel.domain.values import AccountRole, DocumentKind, JournalRole
from ledger_kernel.exceptions import AlreadyPostedError, MissingConfigurationError
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.payment import DocumentDirection, PaymentDirection, PaymentMethod
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.document_posting import DocumentPostingService
from ledger_kernel.services.journal_registry import JournalRegistry
from ledger_kernel.services.ledger_engine import LedgerEngine

INVOICE_DATE = date(2024, 3, 10)


def _sides(entry: LedgerEntry) -> list[tuple[str, Decimal, Decimal]]:
    return [(line.account.number, Decimal(line.debit), Decimal(line.credit)) for line in entry.lines]


@pytest.fixture
def invoice_totals() -> DocumentTotals:
    """3 units at 1000, 10% discount, 18% tax."""
    return DocumentTotalsCalculator().compute_totals(
        [TotalsLine(quantity=3, unit_price=1000, discount_type="percentage", discount_value=10, tax_rate=18)]
    )


class TestInvoices:
    def test_sales_invoice(self, document_posting, make_ref, invoice_totals, test_actor_id):
        invoice = make_ref(number="FAC-2024-001")

        entry = document_posting.post_sales_invoice(invoice, invoice_totals, INVOICE_DATE, test_actor_id)

        assert entry.journal.code == "VT"
        assert entry.piece_number == "VT-2024-00001"
        assert entry.label == "Sales invoice FAC-2024-001"
        assert _sides(entry) == [
            ("411", Decimal("3186"), Decimal("0")),
            ("701", Decimal("0"), Decimal("2700")),
            ("4431", Decimal("0"), Decimal("486")),
        ]
        assert entry.total_debit == entry.total_credit == Decimal("3186")

    def test_purchase_invoice(self, document_posting, make_ref, invoice_totals, test_actor_id):
        bill = make_ref(DocumentKind.PURCHASE_INVOICE, "FF-77")

        entry = document_posting.post_purchase_invoice(bill, invoice_totals, INVOICE_DATE, test_actor_id)

        assert entry.journal.code == "AC"
        assert _sides(entry) == [
            ("601", Decimal("2700"), Decimal("0")),
            ("4452", Decimal("486"), Decimal("0")),
            ("401", Decimal("0"), Decimal("3186")),
        ]

    def test_zero_tax_line_omitted(self, document_posting, make_ref, test_actor_id):
        totals = DocumentTotals(
            total_ex_tax=Decimal("500"),
            total_discount=Decimal("0"),
            total_tax=Decimal("0"),
            total_with_tax=Decimal("500"),
        )

        entry = document_posting.post_sales_invoice(make_ref(), totals, INVOICE_DATE, test_actor_id)

        assert [number for number, _, _ in _sides(entry)] == ["411", "701"]

    def test_custom_label(self, document_posting, make_ref, invoice_totals, test_actor_id):
        entry = document_posting.post_sales_invoice(
            make_ref(), invoice_totals, INVOICE_DATE, test_actor_id, label="Counter sale"
        )

        assert entry.label == "Counter sale"
        assert {line.label for line in entry.lines} == {"Counter sale"}

    def test_invoice_posts_once(self, document_posting, make_ref, invoice_totals, test_actor_id):
        invoice = make_ref()
        document_posting.post_sales_invoice(invoice, invoice_totals, INVOICE_DATE, test_actor_id)

        with pytest.raises(AlreadyPostedError):
            document_posting.post_sales_invoice(invoice, invoice_totals, INVOICE_DATE, test_actor_id)

    def test_account_totals_follow(self, chart, document_posting, make_ref, invoice_totals, test_actor_id):
        document_posting.post_sales_invoice(make_ref(), invoice_totals, INVOICE_DATE, test_actor_id)

        assert chart["411"].total_debit == Decimal("3186")
        assert chart["701"].total_credit == Decimal("2700")
        assert chart["4431"].balance == Decimal("486")


class TestPayments:
    def test_customer_payment(self, document_posting, make_ref, test_actor_id):
        entry = document_posting.post_customer_payment(
            make_ref(DocumentKind.PAYMENT, "PAY-000001"), Decimal("150"), INVOICE_DATE, test_actor_id
        )

        assert entry.journal.code == "BQ"
        assert _sides(entry) == [
            ("521", Decimal("150"), Decimal("0")),
            ("411", Decimal("0"), Decimal("150")),
        ]

    def test_supplier_payment(self, document_posting, make_ref, test_actor_id):
        entry = document_posting.post_supplier_payment(
            make_ref(DocumentKind.PAYMENT), Decimal("80.5"), INVOICE_DATE, test_actor_id
        )

        assert _sides(entry) == [
            ("401", Decimal("80.50"), Decimal("0")),
            ("521", Decimal("0"), Decimal("80.50")),
        ]

    def test_post_recorded_payment(self, document_posting, payment_service, make_ref, test_actor_id):
        invoice = make_ref()
        payment_service.register_document(invoice, DocumentDirection.RECEIVABLE, Decimal("100"), test_actor_id)
        recorded = payment_service.record_payment(
            Decimal("100"), PaymentDirection.INCOMING, PaymentMethod.CASH, [invoice], test_actor_id
        )

        entry = document_posting.post_payment(recorded.payment, test_actor_id)

        assert entry.origin_kind == DocumentKind.PAYMENT.value
        assert entry.origin_id == str(recorded.payment.id)
        assert entry.origin_number == "PAY-000001"
        # Clock date of the payment
        assert entry.entry_date == date(2024, 1, 1)
        assert _sides(entry)[0] == ("521", Decimal("100"), Decimal("0"))

    def test_post_outgoing_payment(self, document_posting, payment_service, make_ref, test_actor_id):
        bill = make_ref(DocumentKind.PURCHASE_INVOICE)
        payment_service.register_document(bill, DocumentDirection.PAYABLE, Decimal("40"), test_actor_id)
        recorded = payment_service.record_payment(
            Decimal("40"), PaymentDirection.OUTGOING, PaymentMethod.CHEQUE, [bill], test_actor_id
        )

        entry = document_posting.post_payment(recorded.payment, test_actor_id, entry_date=INVOICE_DATE)

        assert entry.entry_date == INVOICE_DATE
        assert _sides(entry)[0] == ("401", Decimal("40"), Decimal("0"))


class TestMissingDefaults:
    @pytest.fixture
    def partial_posting(self, session, chart, journals, deterministic_clock):
        defaults = PostingDefaults(
            accounts={AccountRole.RECEIVABLES: "411", AccountRole.SALES: "701"},
            journals={JournalRole.SALES: "VT"},
        )
        engine = LedgerEngine(
            session,
            AccountRegistry(session, defaults, deterministic_clock),
            JournalRegistry(session, defaults, deterministic_clock),
            deterministic_clock,
        )
        return DocumentPostingService(session, engine)

    def test_missing_tax_account_blocks_posting(
        self, session, journals, partial_posting, make_ref, invoice_totals, test_actor_id
    ):
        with pytest.raises(MissingConfigurationError) as exc_info:
            partial_posting.post_sales_invoice(make_ref(), invoice_totals, INVOICE_DATE, test_actor_id)

        assert exc_info.value.setting == "default_accounts.vat_collected"
        assert session.execute(select(func.count(LedgerEntry.id))).scalar_one() == 0
        assert journals["VT"].next_sequence == 1

    def test_missing_journal_blocks_posting(self, partial_posting, make_ref, test_actor_id):
        with pytest.raises(MissingConfigurationError) as exc_info:
            partial_posting.post_customer_payment(
                make_ref(DocumentKind.PAYMENT), Decimal("10"), INVOICE_DATE, test_actor_id
            )

        assert exc_info.value.setting == "default_journals.treasury"
