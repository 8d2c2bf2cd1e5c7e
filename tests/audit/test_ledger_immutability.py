"""
Append-only persistence tests.

Verifies:
- LedgerEntry is immutable once posted, except for the move to void
- LedgerLine is immutable when its parent entry is posted or void
- StockMovement and PaymentAllocation are always append-only
- An account's number cannot change once inserted
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.values import DocumentKind, LineSpec
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.inventory import MovementKind
from ledger_kernel.models.ledger import EntryStatus
from ledger_kernel.models.payment import DocumentDirection, PaymentDirection, PaymentMethod


@pytest.fixture
def posted_entry(ledger_engine, make_ref, test_actor_id):
    return ledger_engine.post_entry(
        entry_date=date(2024, 1, 15),
        journal_code="OD",
        label="Office supplies",
        lines=[LineSpec.dr("658", Decimal("75")), LineSpec("521", credit=Decimal("75"))],
        origin=make_ref(DocumentKind.MANUAL),
        actor_id=test_actor_id,
    )


class TestPostedEntryImmutability:
    def test_cannot_edit_label(self, session, posted_entry):
        posted_entry.label = "Rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "LedgerEntry"
        assert "label" in exc_info.value.reason

    def test_cannot_return_to_draft(self, session, posted_entry):
        posted_entry.status = EntryStatus.DRAFT

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_cannot_delete(self, session, posted_entry):
        session.delete(posted_entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_void_entry_is_frozen(self, session, ledger_engine, posted_entry, test_actor_id):
        ledger_engine.void_entry(posted_entry.id, test_actor_id, "Duplicate")
        posted_entry.void_reason = "Changed my mind"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_blocked_edit_is_logged(self, session, posted_entry, captured_logs):
        posted_entry.entry_date = date(2024, 2, 1)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked and blocked[0]["field"] == "entry_date"


class TestPostedLineImmutability:
    def test_cannot_edit_amount(self, session, posted_entry):
        posted_entry.lines[0].debit = Decimal("1")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "LedgerLine"

    def test_cannot_delete_line(self, session, posted_entry):
        session.delete(posted_entry.lines[1])

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAppendOnlyStreams:
    @pytest.fixture
    def movement(self, inventory_ledger, warehouses, product, make_ref, test_actor_id):
        return inventory_ledger.record_movement(
            product.id, warehouses["MAIN"].id, Decimal("4"), MovementKind.INITIAL,
            make_ref(DocumentKind.STOCK_COUNT), test_actor_id, unit_cost=Decimal("12"),
        )

    def test_stock_movement_cannot_change(self, session, movement):
        movement.quantity = Decimal("40")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "StockMovement"

    def test_stock_movement_cannot_be_deleted(self, session, movement):
        session.delete(movement)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_payment_allocation_cannot_change(self, session, payment_service, make_ref, test_actor_id):
        invoice = make_ref()
        payment_service.register_document(invoice, DocumentDirection.RECEIVABLE, Decimal("90"), test_actor_id)
        result = payment_service.record_payment(
            Decimal("90"), PaymentDirection.INCOMING, PaymentMethod.MOBILE_MONEY, [invoice], test_actor_id
        )
        result.payment.allocations[0].applied_amount = Decimal("9")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "PaymentAllocation"


class TestAccountNumber:
    def test_number_cannot_change(self, session, chart):
        chart["701"].number = "702"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_label_can_change(self, session, chart):
        chart["701"].label = "Sales of merchandise"
        session.flush()

        assert chart["701"].label == "Sales of merchandise"


class TestListenerRegistration:
    def test_unregistered_listeners_allow_edits(self, session, posted_entry):
        unregister_immutability_listeners()
        try:
            posted_entry.label = "Migration fix"
            session.flush()
        finally:
            register_immutability_listeners()

        assert posted_entry.label == "Migration fix"

    def test_registration_is_idempotent(self, session, posted_entry):
        register_immutability_listeners()
        register_immutability_listeners()
        posted_entry.label = "Rewritten"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
