"""
Module: ledger_kernel.models.ledger
Responsibility: ORM persistence for ledger entries, their lines, and the
    per-document posting mark.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - piece_number is unique; (journal_id, sequence) is unique.
    - Posted entries and their lines are immutable.  The single permitted
      change is posted -> void (db/immutability.py).
    - PostingMark is unique per (origin_kind, origin_id).  Inserting it in
      the same unit of work as the entry makes the "already posted" guard
      atomic: of two concurrent postings, exactly one insert succeeds.

Audit relevance:
    A voided entry stays in place next to its reversing entry
    (reversal_of_id), so the full history of a document remains readable.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import Journal


class EntryStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class LedgerEntry(TrackedBase):
    """
    A balanced double-entry record.

    Contract:
        Created only by LedgerEngine after validate_entry_lines() passed.

    Guarantees:
        - total_debit == total_credit, both rounded to 2 decimals, non-zero.
        - At least two lines, ordered by line_seq.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("piece_number", name="uq_entry_piece_number"),
        UniqueConstraint("journal_id", "sequence", name="uq_entry_journal_sequence"),
        Index("idx_entry_origin", "origin_kind", "origin_id"),
        Index("idx_entry_date", "entry_date"),
        Index("idx_entry_status", "status"),
    )

    piece_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journals.id"), nullable=False
    )

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    origin_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)

    origin_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    origin_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[EntryStatus] = mapped_column(
        String(10), default=EntryStatus.DRAFT, nullable=False
    )

    total_debit: Mapped[Decimal] = mapped_column(nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=True
    )

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    journal: Mapped[Journal] = relationship(lazy="joined")

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="entry",
        order_by="LedgerLine.line_seq",
        cascade="save-update, merge",
    )

    reversal_of: Mapped[Optional["LedgerEntry"]] = relationship(
        remote_side="LedgerEntry.id",
    )

    @property
    def is_posted(self) -> bool:
        return self.status == EntryStatus.POSTED

    @property
    def is_void(self) -> bool:
        return self.status == EntryStatus.VOID

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.piece_number} [{self.status}]>"


class LedgerLine(TrackedBase):
    """One side of an entry against one account."""

    __tablename__ = "ledger_lines"

    __table_args__ = (
        Index("idx_line_entry", "entry_id"),
        Index("idx_line_account", "account_id"),
        Index("idx_line_reconciliation", "reconciliation_code"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=False
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    label: Mapped[str | None] = mapped_column(String(255), nullable=True)

    debit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    credit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    # Lettrage code, stored for third-party matching done outside the kernel
    reconciliation_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    entry: Mapped[LedgerEntry] = relationship(back_populates="lines")

    account: Mapped[Account] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<LedgerLine {self.line_seq} D={self.debit} C={self.credit}>"


class PostingMark(TrackedBase):
    """
    The kernel-owned "posted" flag of an origin document.

    One row per posted document.  Voiding the entry deletes the mark so the
    document can be posted again.
    """

    __tablename__ = "posting_marks"

    __table_args__ = (
        UniqueConstraint("origin_kind", "origin_id", name="uq_posting_mark_origin"),
    )

    origin_kind: Mapped[str] = mapped_column(String(30), nullable=False)

    origin_id: Mapped[str] = mapped_column(String(64), nullable=False)

    origin_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=False
    )
