"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments, the kernel-owned open-document
    balances they settle, and the allocation rows linking the two.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Payment.amount > 0 (enforced by PaymentService before insert).
    - OpenDocument.amount_paid is always the sum of the allocations of its
      VALIDATED payments, recomputed from scratch after every change.
    - settlement_status is derived from amount_paid vs total_due with a
      strict ``>=`` for paid.
    - PaymentAllocation rows are append-only.  A voided payment keeps its
      allocations; they simply stop counting.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.values import SettlementStatus


class PaymentDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    VOID = "void"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    OTHER = "other"


class DocumentDirection(str, Enum):
    """Who owes whom on an open document."""

    RECEIVABLE = "receivable"
    PAYABLE = "payable"


# A receivable is settled by incoming cash, a payable by outgoing cash
SETTLING_DIRECTION = {
    DocumentDirection.RECEIVABLE: PaymentDirection.INCOMING,
    DocumentDirection.PAYABLE: PaymentDirection.OUTGOING,
}


class OpenDocument(TrackedBase):
    """
    Paid-amount projection of an invoice or purchase.

    Contract:
        The document itself lives in its owning system; the kernel owns
        only total_due, amount_paid and settlement_status here.
    """

    __tablename__ = "open_documents"

    __table_args__ = (
        UniqueConstraint("document_kind", "document_id", name="uq_open_document_ref"),
        Index("idx_open_document_due", "direction", "due_date"),
    )

    document_kind: Mapped[str] = mapped_column(String(30), nullable=False)

    document_id: Mapped[str] = mapped_column(String(64), nullable=False)

    document_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    direction: Mapped[DocumentDirection] = mapped_column(String(12), nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    total_due: Mapped[Decimal] = mapped_column(nullable=False)

    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    settlement_status: Mapped[SettlementStatus] = mapped_column(
        String(20), default=SettlementStatus.UNPAID, nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def balance(self) -> Decimal:
        return self.total_due - self.amount_paid

    def __repr__(self) -> str:
        return (
            f"<OpenDocument {self.document_kind}:{self.document_number or self.document_id} "
            f"{self.amount_paid}/{self.total_due}>"
        )


class Payment(TrackedBase):
    """A single cash movement in or out."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("number", name="uq_payment_number"),
        Index("idx_payment_target", "target_kind", "target_id"),
        Index("idx_payment_status", "status"),
    )

    number: Mapped[str] = mapped_column(String(30), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    direction: Mapped[PaymentDirection] = mapped_column(String(10), nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        String(10), default=PaymentStatus.VALIDATED, nullable=False
    )

    # Primary target document (the first one in the allocation order)
    target_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)

    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    target_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    paid_at: Mapped[datetime] = mapped_column(nullable=False)

    unapplied_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    external_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        back_populates="payment",
        order_by="PaymentAllocation.position",
    )

    def __repr__(self) -> str:
        return f"<Payment {self.number} {self.direction} {self.amount} [{self.status}]>"


class PaymentAllocation(TrackedBase):
    """The part of a payment applied to one open document."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "document_id", name="uq_allocation_payment_document"),
        Index("idx_allocation_document", "document_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payments.id"), nullable=False
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("open_documents.id"), nullable=False
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    applied_amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped[Payment] = relationship(back_populates="allocations")

    document: Mapped[OpenDocument] = relationship()
