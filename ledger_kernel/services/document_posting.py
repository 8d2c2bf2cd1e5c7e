"""
DocumentPostingService -- standard entries for business documents.

Responsibility:
    Builds the usual double-entry lines for a sales invoice, a purchase
    invoice, a customer payment and a supplier payment from document totals
    and the configured default accounts, then posts them through
    LedgerEngine.post_entry().

Architecture position:
    Kernel > Services.  Sits between an orchestrator and LedgerEngine.
    Receives totals from DocumentTotalsCalculator; never computes them.

    sales invoice      Dr receivables (with tax)
                       Cr sales (ex tax - discount)
                       Cr vat_collected (tax)            journal: sales
    purchase invoice   Dr purchases (ex tax - discount)
                       Dr vat_deductible (tax)
                       Cr payables (with tax)            journal: purchases
    customer payment   Dr treasury / Cr receivables      journal: treasury
    supplier payment   Dr payables / Cr treasury         journal: treasury

Invariants enforced:
    - Every default account and journal a posting needs is resolved
      before anything is written.  MissingConfigurationError blocks the
      posting; a line is never silently dropped for lack of an account.
    - Zero-amount lines (typically tax on an exempt document) are omitted.

Failure modes:
    - MissingConfigurationError, plus everything post_entry() raises.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_engines.totals import DocumentTotals
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.values import (
    AccountRole,
    DocumentKind,
    DocumentRef,
    JournalRole,
    LineSpec,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.payment import Payment, PaymentDirection
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_registry import JournalRegistry
from ledger_kernel.services.ledger_engine import LedgerEngine

logger = get_logger("services.document_posting")


class DocumentPostingService(BaseService):
    """Posts sales/purchase invoices and payments with default accounts."""

    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        super().__init__(session, clock or engine.clock)
        self.engine = engine

    @property
    def accounts(self) -> AccountRegistry:
        return self.engine.accounts

    @property
    def journals(self) -> JournalRegistry:
        return self.engine.journals

    def _post(
        self,
        origin: DocumentRef,
        journal_role: JournalRole,
        entry_date: date,
        label: str,
        sides: list[tuple[AccountRole, Decimal, Decimal]],
        actor_id: UUID,
    ) -> LedgerEntry:
        # Resolve everything first so a missing default blocks the posting
        journal = self.journals.resolve_default_journal(journal_role)
        numbers = {role: self.accounts.resolve_default_account(role).number for role, _, _ in sides}

        lines = [
            LineSpec(
                account_number=numbers[role],
                debit=round_money(debit),
                credit=round_money(credit),
                label=label,
            )
            for role, debit, credit in sides
            if round_money(debit) != ZERO or round_money(credit) != ZERO
        ]
        entry = self.engine.post_entry(
            entry_date=entry_date,
            journal_code=journal.code,
            label=label,
            lines=lines,
            origin=origin,
            actor_id=actor_id,
        )
        logger.info(
            "document_posted",
            extra={
                "origin": str(origin),
                "journal_role": journal_role.value,
                "entry_id": str(entry.id),
                "piece_number": entry.piece_number,
            },
        )
        return entry

    def post_sales_invoice(
        self,
        invoice: DocumentRef,
        totals: DocumentTotals,
        entry_date: date,
        actor_id: UUID,
        label: str | None = None,
    ) -> LedgerEntry:
        return self._post(
            invoice,
            JournalRole.SALES,
            entry_date,
            label or f"Sales invoice {invoice.number or invoice.id}",
            [
                (AccountRole.RECEIVABLES, totals.total_with_tax, ZERO),
                (AccountRole.SALES, ZERO, totals.net_ex_tax),
                (AccountRole.VAT_COLLECTED, ZERO, totals.total_tax),
            ],
            actor_id,
        )

    def post_purchase_invoice(
        self,
        invoice: DocumentRef,
        totals: DocumentTotals,
        entry_date: date,
        actor_id: UUID,
        label: str | None = None,
    ) -> LedgerEntry:
        return self._post(
            invoice,
            JournalRole.PURCHASES,
            entry_date,
            label or f"Purchase invoice {invoice.number or invoice.id}",
            [
                (AccountRole.PURCHASES, totals.net_ex_tax, ZERO),
                (AccountRole.VAT_DEDUCTIBLE, totals.total_tax, ZERO),
                (AccountRole.PAYABLES, ZERO, totals.total_with_tax),
            ],
            actor_id,
        )

    def post_customer_payment(
        self,
        payment: DocumentRef,
        amount: Decimal,
        entry_date: date,
        actor_id: UUID,
        label: str | None = None,
    ) -> LedgerEntry:
        return self._post(
            payment,
            JournalRole.TREASURY,
            entry_date,
            label or f"Customer payment {payment.number or payment.id}",
            [
                (AccountRole.TREASURY, amount, ZERO),
                (AccountRole.RECEIVABLES, ZERO, amount),
            ],
            actor_id,
        )

    def post_supplier_payment(
        self,
        payment: DocumentRef,
        amount: Decimal,
        entry_date: date,
        actor_id: UUID,
        label: str | None = None,
    ) -> LedgerEntry:
        return self._post(
            payment,
            JournalRole.TREASURY,
            entry_date,
            label or f"Supplier payment {payment.number or payment.id}",
            [
                (AccountRole.PAYABLES, amount, ZERO),
                (AccountRole.TREASURY, ZERO, amount),
            ],
            actor_id,
        )

    def post_payment(self, payment: Payment, actor_id: UUID, entry_date: date | None = None) -> LedgerEntry:
        """Post a recorded payment, dispatching on its direction."""
        ref = DocumentRef(DocumentKind.PAYMENT, str(payment.id), payment.number)
        when = entry_date or payment.paid_at.date()
        if PaymentDirection(payment.direction) is PaymentDirection.INCOMING:
            return self.post_customer_payment(ref, payment.amount, when, actor_id)
        return self.post_supplier_payment(ref, payment.amount, when, actor_id)
