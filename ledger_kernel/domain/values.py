"""
Module: ledger_kernel.domain.values
Responsibility:
    Immutable value objects shared by services and engines: the tagged
    document reference, the role enums used by configuration, and the
    entry-line specification accepted by LedgerEngine.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  May import db/types only.

Invariants enforced:
    - A DocumentRef is a closed tagged union: ``kind`` is a DocumentKind
      member, never a free-form model name.  Dispatch on kind is explicit.
    - A LineSpec carries Decimals only; floats are converted through str.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import ZERO, coerce_decimal


class DocumentKind(str, Enum):
    """Kinds of business documents the kernel can reference."""

    SALES_INVOICE = "sales_invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    DELIVERY_NOTE = "delivery_note"
    GOODS_RECEIPT = "goods_receipt"
    PAYMENT = "payment"
    STOCK_COUNT = "stock_count"
    STOCK_TRANSFER = "stock_transfer"
    MANUAL = "manual"


@dataclass(frozen=True)
class DocumentRef:
    """
    Reference to an origin or target document.

    Contract:
        ``kind`` tags the variant, ``id`` identifies the document in its
        owning system, ``number`` is the human-facing number (e.g.
        ``FAC-2024-0012``) kept for audit display only.
    """

    kind: DocumentKind
    id: str
    number: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, DocumentKind):
            object.__setattr__(self, "kind", DocumentKind(self.kind))
        if not self.id:
            raise ValueError("DocumentRef.id must not be empty")
        object.__setattr__(self, "id", str(self.id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.number or self.id}"


class AccountRole(str, Enum):
    """Roles that posting logic resolves to a configured default account."""

    RECEIVABLES = "receivables"
    PAYABLES = "payables"
    SALES = "sales"
    PURCHASES = "purchases"
    VAT_COLLECTED = "vat_collected"
    VAT_DEDUCTIBLE = "vat_deductible"
    TREASURY = "treasury"


class JournalRole(str, Enum):
    """Roles that posting logic resolves to a configured default journal."""

    SALES = "sales"
    PURCHASES = "purchases"
    TREASURY = "treasury"
    MISC = "misc"


class SettlementStatus(str, Enum):
    """How much of an open document has been paid."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


@dataclass(frozen=True)
class LineSpec:
    """
    One requested ledger line.

    Exactly one of ``debit``/``credit`` must be positive; the other must be
    zero.  LedgerEngine validates this before anything is written.
    """

    account_number: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    label: str | None = None
    reconciliation_code: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "account_number", str(self.account_number))
        for side in ("debit", "credit"):
            value = getattr(self, side)
            if not isinstance(value, Decimal):
                object.__setattr__(self, side, coerce_decimal(value))

    @classmethod
    def dr(cls, account_number: str, amount: Decimal, label: str | None = None) -> LineSpec:
        return cls(account_number=account_number, debit=amount, label=label)

    @classmethod
    def cr(cls, account_number: str, amount: Decimal, label: str | None = None) -> LineSpec:
        return cls(account_number=account_number, credit=amount, label=label)


def actor_str(actor_id: UUID | str | None) -> str | None:
    """Stringify an opaque acting-user reference for logging."""
    return str(actor_id) if actor_id is not None else None
