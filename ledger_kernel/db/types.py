"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and numeric helpers shared by every
    model, service, and engine.  Centralizes precision and rounding so that
    ledger totals and document totals are computed identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/, and the pure engines.  MUST NOT import from any
    of those layers.

Invariants enforced:
    - Storage precision: Money and Quantity are Numeric(38, 9).
    - Financial precision: round_money() quantizes to 2 decimal places with
      ROUND_HALF_UP (half away from zero).  It is the ONLY sanctioned
      rounding function for amounts; every balance check and every document
      total goes through it.
    - No floats: coerce_decimal() converts through str() so binary float
      artifacts never leak into Decimal arithmetic.

Failure modes:
    - ValueError from money_from_str() on a non-numeric string.
    - coerce_decimal() never raises; malformed input becomes the default.
      Values too large for Numeric(38, 9) count as malformed.
    - round_money() never raises on a finite value, however large.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Annotated, Any

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount, stored with 9 decimals, computed at 2
Money = Annotated[Decimal, Numeric(38, 9)]

# Stock quantity (fractional units allowed)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions and notes
LongText = Annotated[str, String(4000)]

FINANCIAL_DECIMAL_PLACES = 2
# Integer digits a Numeric(38, 9) column can hold
MAX_INTEGER_DIGITS = 29
# Working precision for sums of stored amounts, wide enough not to round them
MONEY_PRECISION = 50
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from string.

    Raises:
        ValueError: If value cannot be converted to Decimal.
    """
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def coerce_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Lenient conversion used at document boundaries.

    None, empty strings, non-numeric strings, NaN, infinities and values
    too large to store all become ``default``.  Floats are converted
    through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return default
    if not fits_storage(result):
        return default
    return result


def fits_storage(value: Decimal) -> bool:
    """True for a finite value whose integer part fits Numeric(38, 9)."""
    return value.is_finite() and (value.is_zero() or value.adjusted() < MAX_INTEGER_DIGITS)


def round_money(
    value: Decimal,
    decimal_places: int = FINANCIAL_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places.

    Postconditions: Returns value quantized with the given rounding mode.
    The default (2 places, ROUND_HALF_UP) is the financial rounding policy
    of the whole kernel.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    with localcontext() as ctx:
        # quantize needs every integer digit plus the kept decimals
        ctx.prec = max(ctx.prec, value.adjusted() + decimal_places + 2)
        return value.quantize(Decimal(quantize_str), rounding=rounding)
