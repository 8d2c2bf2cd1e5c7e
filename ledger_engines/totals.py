"""
Module: ledger_engines.totals
Responsibility:
    Roll up per-line quantity, price, discount and tax into document-level
    totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by callers as an input to posting; never called by the
    LedgerEngine, InventoryLedger or PaymentAllocator internally.

Invariants enforced:
    - Every intermediate amount is rounded to 2 decimals, ROUND_HALF_UP,
      the same policy LedgerEngine applies before its balance check.
    - total_with_tax == total_ex_tax - total_discount + total_tax.
    - Malformed numeric input, including values too large to store, counts
      as zero; compute_totals never raises on line content.
    - Arithmetic runs at MONEY_PRECISION, so large products do not round
      before the 2-decimal rounding.

Failure modes:
    - None.  Garbage in, zeros out.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, localcontext
from enum import Enum
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import MONEY_PRECISION, ZERO, coerce_decimal, round_money

_HUNDRED = Decimal("100")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


@dataclass(frozen=True)
class TotalsLine:
    """
    One document line as fed to the calculator.

    Fields accept anything number-like; coercion happens in compute_totals,
    so a line built from raw form input is still a valid argument.
    """

    quantity: Any = ZERO
    unit_price: Any = ZERO
    discount_type: DiscountType | str | None = None
    discount_value: Any = ZERO
    tax_rate: Any = ZERO


@dataclass(frozen=True)
class LineTotals:
    line_ex_tax: Decimal
    discount_amount: Decimal
    line_after_discount: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    total_ex_tax: Decimal
    total_discount: Decimal
    total_tax: Decimal
    total_with_tax: Decimal

    @property
    def net_ex_tax(self) -> Decimal:
        """Ex-tax total after discounts (the sales/purchases line of an entry)."""
        return self.total_ex_tax - self.total_discount


def _discount_type(value: DiscountType | str | None) -> DiscountType | None:
    if value is None or isinstance(value, DiscountType):
        return value
    try:
        return DiscountType(str(value).lower())
    except ValueError:
        return None


class DocumentTotalsCalculator:
    """
    Pure document totals rollup.

    Contract:
        compute_totals(lines) -> DocumentTotals.  No errors.
    Non-goals:
        - Currency conversion, tax-inclusive pricing, document-level
          discounts.  Lines are ex-tax and single-currency.
    """

    def compute_line(self, line: TotalsLine) -> LineTotals:
        quantity = coerce_decimal(line.quantity)
        unit_price = coerce_decimal(line.unit_price)
        discount_value = coerce_decimal(line.discount_value)
        tax_rate = coerce_decimal(line.tax_rate)
        kind = _discount_type(line.discount_type)

        with localcontext(prec=MONEY_PRECISION):
            line_ex_tax = round_money(quantity * unit_price)

            if kind is DiscountType.PERCENTAGE:
                discount_amount = round_money(line_ex_tax * discount_value / _HUNDRED)
            elif kind is DiscountType.AMOUNT:
                discount_amount = round_money(discount_value)
            else:
                discount_amount = ZERO

            line_after_discount = line_ex_tax - discount_amount
            tax_amount = round_money(line_after_discount * tax_rate / _HUNDRED)

        return LineTotals(
            line_ex_tax=line_ex_tax,
            discount_amount=discount_amount,
            line_after_discount=line_after_discount,
            tax_amount=tax_amount,
        )

    @traced_engine("document_totals", "1.0")
    def compute_totals(self, lines: Iterable[TotalsLine]) -> DocumentTotals:
        """
        Sum per-line amounts into document totals.

        Example:
            {qty 3, price 1000, discount 10%, tax 18%} ->
            ex tax 3000, discount 300, tax 486, with tax 3186
        """
        total_ex_tax = ZERO
        total_discount = ZERO
        total_tax = ZERO

        with localcontext(prec=MONEY_PRECISION):
            for line in lines:
                amounts = self.compute_line(line)
                total_ex_tax += amounts.line_ex_tax
                total_discount += amounts.discount_amount
                total_tax += amounts.tax_amount

            total_ex_tax = round_money(total_ex_tax)
            total_discount = round_money(total_discount)
            total_tax = round_money(total_tax)
            total_with_tax = round_money(total_ex_tax - total_discount + total_tax)

        return DocumentTotals(
            total_ex_tax=total_ex_tax,
            total_discount=total_discount,
            total_tax=total_tax,
            total_with_tax=total_with_tax,
        )

    def remaining_balance(self, total_due: Any, amount_paid: Any) -> Decimal:
        """Amount still owed; negative when over-paid."""
        return round_money(coerce_decimal(total_due) - coerce_decimal(amount_paid))
