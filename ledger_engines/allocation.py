"""
Module: ledger_engines.allocation
Responsibility:
    Plan how a payment amount is spread over open documents, and derive a
    document's settlement status from what has been paid.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    PaymentService applies the plan and persists it.

Invariants enforced:
    - Order is the caller's: documents are consumed exactly in the order
      given.  order_by_due_date() is the default priority policy, applied
      by the caller, never by allocate().
    - Conservation: sum(applied) + leftover == amount.
    - Each applied amount is min(remaining, balance), rounded to 2 decimals;
      documents with a balance <= 0 are skipped; the loop stops once
      nothing remains.
    - Leftover (over-payment) is reported, never discarded.
    - "paid" requires amount_paid >= total_due (strict comparison, no
      tolerance).

Failure modes:
    - ValueError on a negative payment amount.

Usage:
    from ledger_engines.allocation import OpenBalance, PaymentAllocator

    plan = PaymentAllocator().allocate(
        Decimal("150"),
        [OpenBalance("inv-1", Decimal("100")), OpenBalance("inv-2", Decimal("100"))],
    )
    # plan.allocations -> inv-1: 100, inv-2: 50 ; plan.leftover -> 0
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.values import SettlementStatus
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class OpenBalance:
    """
    A document that may receive part of a payment.

    Contract:
        Snapshot of the document's totals at planning time.
    """

    document_id: str
    total_due: Decimal
    already_paid: Decimal = ZERO
    due_date: date | None = None

    @property
    def balance(self) -> Decimal:
        return round_money(self.total_due - self.already_paid)


@dataclass(frozen=True)
class Allocation:
    """Amount of the payment applied to one document."""

    document_id: str
    applied_amount: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    """
    Result of planning one payment.

    Guarantees:
        - total_applied + leftover == amount.
    """

    amount: Decimal
    allocations: tuple[Allocation, ...]
    leftover: Decimal

    @property
    def total_applied(self) -> Decimal:
        return sum((a.applied_amount for a in self.allocations), ZERO)

    @property
    def is_fully_applied(self) -> bool:
        return self.leftover == ZERO

    def applied_to(self, document_id: str) -> Decimal:
        return sum(
            (a.applied_amount for a in self.allocations if a.document_id == document_id),
            ZERO,
        )


class PaymentAllocator:
    """
    Sequential payment allocation.

    Contract:
        Pure functions with 2-decimal ROUND_HALF_UP rounding.
    Non-goals:
        - Does not sort.  Does not persist.  Does not decide what to do with
          an over-payment.
    """

    @traced_engine("payment_allocation", "1.0", fingerprint_fields=("amount",))
    def allocate(
        self,
        amount: Decimal,
        ordered_open_documents: Sequence[OpenBalance],
    ) -> AllocationPlan:
        """
        Spread ``amount`` over documents in the given order.

        Args:
            amount: Payment amount (>= 0).
            ordered_open_documents: Documents already in priority order.

        Returns:
            AllocationPlan with one Allocation per funded document and the
            unabsorbed leftover.
        """
        if amount < ZERO:
            raise ValueError(f"Payment amount cannot be negative: {amount}")

        remaining = round_money(amount)
        allocations: list[Allocation] = []

        for document in ordered_open_documents:
            if remaining <= ZERO:
                break
            balance = document.balance
            if balance <= ZERO:
                continue
            applied = round_money(min(remaining, balance))
            allocations.append(Allocation(document.document_id, applied))
            remaining = round_money(remaining - applied)

        if remaining > ZERO:
            logger.warning(
                "allocation_leftover",
                extra={"amount": str(amount), "leftover": str(remaining)},
            )

        logger.info(
            "allocation_planned",
            extra={
                "amount": str(amount),
                "document_count": len(ordered_open_documents),
                "documents_funded": len(allocations),
                "leftover": str(remaining),
            },
        )

        return AllocationPlan(
            amount=round_money(amount),
            allocations=tuple(allocations),
            leftover=remaining,
        )


def order_by_due_date(documents: Iterable[OpenBalance]) -> list[OpenBalance]:
    """
    Default priority policy: oldest due date first, undated documents last.

    Stable, so documents sharing a due date keep their input order.
    """
    return sorted(
        documents,
        key=lambda d: (d.due_date is None, d.due_date or date.max),
    )


def settlement_status(amount_paid: Decimal, total_due: Decimal) -> SettlementStatus:
    """
    Derive the settlement status of a document.

    paid if amount_paid >= total_due, partially paid if
    0 < amount_paid < total_due, unpaid otherwise.
    """
    if amount_paid >= total_due:
        return SettlementStatus.PAID
    if amount_paid > ZERO:
        return SettlementStatus.PARTIALLY_PAID
    return SettlementStatus.UNPAID
