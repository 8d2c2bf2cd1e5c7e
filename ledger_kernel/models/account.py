"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger line.
Architecture position: Kernel > Models.  May import from db/ and exceptions.

Invariants enforced:
    - number matches ``^[1-9][0-9]*$`` and is 2 to 10 digits long.
    - account_class, statement_type and nature are DERIVED from the leading
      digit whenever number is assigned.  nature has no setter; it cannot
      be chosen independently of the number.
    - number is immutable once the row exists (db/immutability.py).

Failure modes:
    - InvalidAccountNumberError on a malformed number.

Audit relevance:
    total_debit/total_credit are projections of the posted line stream.
    ReconciliationSelector replays the lines and reports any drift.
"""

import re
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.exceptions import InvalidAccountNumberError

ACCOUNT_NUMBER_PATTERN = re.compile(r"^[1-9][0-9]*$")
ACCOUNT_NUMBER_MIN_LENGTH = 2
ACCOUNT_NUMBER_MAX_LENGTH = 10

# Leading digits whose accounts normally carry a debit balance
DEBIT_NORMAL_CLASSES = frozenset({2, 3, 6, 8})


class AccountNature(str, Enum):
    """Side on which an account normally increases."""

    DEBIT = "debit"
    CREDIT = "credit"


class StatementType(str, Enum):
    """Financial statement an account reports on."""

    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    OTHER = "other"


def validate_account_number(number: str) -> str:
    """Return the trimmed number or raise InvalidAccountNumberError."""
    value = (number or "").strip()
    if not ACCOUNT_NUMBER_PATTERN.match(value):
        raise InvalidAccountNumberError(value, "digits only, no leading zero")
    if not ACCOUNT_NUMBER_MIN_LENGTH <= len(value) <= ACCOUNT_NUMBER_MAX_LENGTH:
        raise InvalidAccountNumberError(
            value,
            f"length must be between {ACCOUNT_NUMBER_MIN_LENGTH} "
            f"and {ACCOUNT_NUMBER_MAX_LENGTH}",
        )
    return value


def classify_account_number(number: str) -> tuple[int, StatementType, AccountNature]:
    """
    Derive (class, statement type, nature) from an account number.

    Classes 1-5 report on the balance sheet, 6-7 on the income statement,
    8-9 elsewhere.  Classes 2, 3, 6 and 8 are debit-normal; every other
    class is credit-normal.
    """
    account_class = int(validate_account_number(number)[0])
    if account_class <= 5:
        statement = StatementType.BALANCE_SHEET
    elif account_class <= 7:
        statement = StatementType.INCOME_STATEMENT
    else:
        statement = StatementType.OTHER
    nature = (
        AccountNature.DEBIT
        if account_class in DEBIT_NORMAL_CLASSES
        else AccountNature.CREDIT
    )
    return account_class, statement, nature


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        Account.number is globally unique.  Assigning number derives class,
        statement type and nature in one step.

    Guarantees:
        - ``nature`` is read-only.
        - ``balance`` is signed by nature: debit-normal accounts report
          debit minus credit, credit-normal accounts the reverse.

    Non-goals:
        - Does not maintain lettrage state beyond the is_reconcilable flag.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("number", name="uq_account_number"),
        Index("idx_account_class", "account_class"),
        Index("idx_account_active", "is_active"),
    )

    number: Mapped[str] = mapped_column(String(10), nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    account_class: Mapped[int] = mapped_column(Integer, nullable=False)

    statement_type: Mapped[StatementType] = mapped_column(String(20), nullable=False)

    _nature: Mapped[AccountNature] = mapped_column("nature", String(10), nullable=False)

    # Lettrage-capable (third-party) account, e.g. customers or suppliers
    is_reconcilable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_third_party: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # System accounts (tax, treasury) are referenced by configuration
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    total_debit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    @validates("number")
    def _derive_from_number(self, key: str, value: str) -> str:
        account_class, statement, nature = classify_account_number(value)
        self.account_class = account_class
        self.statement_type = statement
        self._nature = nature
        return value.strip()

    @property
    def nature(self) -> AccountNature:
        return AccountNature(self._nature)

    @property
    def is_debit_normal(self) -> bool:
        return self.nature == AccountNature.DEBIT

    @property
    def balance(self) -> Decimal:
        debit = self.total_debit or Decimal("0")
        credit = self.total_credit or Decimal("0")
        if self.is_debit_normal:
            return debit - credit
        return credit - debit

    def __repr__(self) -> str:
        return f"<Account {self.number}: {self.label}>"
