"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journals -- the named ledger buckets
    (sales, purchases, treasury, misc) that own an entry-numbering sequence.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique, upper-cased and at most 5 characters.
    - next_sequence starts at 1 and is only ever advanced by
      JournalRegistry.next_sequence() via an atomic UPDATE.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from ledger_kernel.db.base import TrackedBase, UUIDString

JOURNAL_CODE_MAX_LENGTH = 5


class JournalType(str, Enum):
    SALES = "sales"
    PURCHASES = "purchases"
    TREASURY = "treasury"
    MISC = "misc"


class Journal(TrackedBase):
    """
    A journal and its numbering counter.

    Guarantees:
        - Values issued from next_sequence are strictly increasing and never
          reused, even across concurrent posting transactions.
    """

    __tablename__ = "journals"

    __table_args__ = (UniqueConstraint("code", name="uq_journal_code"),)

    code: Mapped[str] = mapped_column(String(JOURNAL_CODE_MAX_LENGTH), nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    journal_type: Mapped[JournalType] = mapped_column(String(20), nullable=False)

    next_sequence: Mapped[int] = mapped_column(BigInteger, default=1, nullable=False)

    # Default counterpart, e.g. the bank account of a treasury journal
    counterpart_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("code")
    def _normalize_code(self, key: str, value: str) -> str:
        code = (value or "").strip().upper()
        if not code or len(code) > JOURNAL_CODE_MAX_LENGTH:
            raise ValueError(
                f"Journal code must be 1 to {JOURNAL_CODE_MAX_LENGTH} characters: {value!r}"
            )
        return code

    def __repr__(self) -> str:
        return f"<Journal {self.code}: {self.label}>"
