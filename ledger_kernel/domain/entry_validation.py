"""
Module: ledger_kernel.domain.entry_validation
Responsibility:
    Explicit pre-commit validation of the lines of a ledger entry.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  LedgerEngine.post_entry() calls
    validate_entry_lines() before it touches the journal counter or writes
    anything; callers may also call it directly to pre-check a draft.

Invariants enforced:
    - At least two lines.
    - The total is non-zero: an entry whose lines are all zero is empty.
    - Per line, after 2-decimal ROUND_HALF_UP rounding: no negative side,
      exactly one side positive.
    - Every amount is finite and fits Numeric(38, 9).
    - Sum of debits == sum of credits, compared on the rounded amounts.

Failure modes:
    - InvalidEntryLineError, UnbalancedEntryError, EmptyEntryError.  The
      first failure found is raised; nothing is partially accepted.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, localcontext

from ledger_kernel.db.types import MONEY_PRECISION, ZERO, fits_storage, round_money
from ledger_kernel.domain.values import LineSpec
from ledger_kernel.exceptions import (
    EmptyEntryError,
    InvalidEntryLineError,
    UnbalancedEntryError,
)


def rounded_sides(line: LineSpec) -> tuple[Decimal, Decimal]:
    """(debit, credit) of a line at financial precision."""
    return round_money(line.debit), round_money(line.credit)


def validate_entry_lines(lines: Sequence[LineSpec]) -> tuple[Decimal, Decimal]:
    """
    Validate a set of entry lines.

    Returns:
        (total_debits, total_credits), equal and non-zero.

    Raises:
        InvalidEntryLineError: fewer than two lines, or a malformed line.
        UnbalancedEntryError: rounded debits differ from rounded credits.
        EmptyEntryError: the entry balances at zero.
    """
    if len(lines) < 2:
        raise InvalidEntryLineError(None, f"an entry needs at least 2 lines, got {len(lines)}")

    for index, line in enumerate(lines):
        if not (fits_storage(line.debit) and fits_storage(line.credit)):
            raise InvalidEntryLineError(index, "amount is not a finite number within storage range")

    sides = [rounded_sides(line) for line in lines]
    # Nothing to record at all is reported as such, not as a bad first line
    if all(debit == ZERO and credit == ZERO for debit, credit in sides):
        raise EmptyEntryError()

    for index, (line, (debit, credit)) in enumerate(zip(lines, sides)):
        if not str(line.account_number).strip():
            raise InvalidEntryLineError(index, "account number is missing")
        if debit < ZERO or credit < ZERO:
            raise InvalidEntryLineError(index, "amounts cannot be negative")
        if debit > ZERO and credit > ZERO:
            raise InvalidEntryLineError(index, "a line cannot carry both a debit and a credit")
        if debit == ZERO and credit == ZERO:
            raise InvalidEntryLineError(index, "a line needs a non-zero debit or credit")

    with localcontext(prec=MONEY_PRECISION):
        debits = sum((debit for debit, _ in sides), ZERO)
        credits = sum((credit for _, credit in sides), ZERO)

    if debits != credits:
        raise UnbalancedEntryError(str(debits), str(credits))
    return debits, credits
