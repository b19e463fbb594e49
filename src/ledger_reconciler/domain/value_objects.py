import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from dateutil import parser as date_parser

from ledger_reconciler.exceptions import InvalidAmountError, InvalidDateError

# Smallest currency unit; every amount in the system carries exactly two places.
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_AMOUNT_NOISE = re.compile(r"[\s,$€£]")


class Direction(str, Enum):
    DEBIT = "debit"
    WITHDRAWAL = "withdrawal"
    CREDIT = "credit"
    DEPOSIT = "deposit"

    @property
    def is_outflow(self) -> bool:
        return self in (Direction.DEBIT, Direction.WITHDRAWAL)


def quantize_amount(value: Decimal) -> Decimal:
    """Return value with exactly two fractional digits.

    Raises InvalidAmountError when that would lose precision.
    """
    try:
        quantized = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(str(value), "too large") from None
    if quantized != value:
        raise InvalidAmountError(str(value), "more precise than one cent")
    return quantized


def parse_amount(value: object) -> Decimal:
    """Parse a signed monetary amount into a two-place Decimal.

    Accepts Decimal, int, float (through its repr) and strings such as
    "-1,234.50", "$45.00" or "(45.00)" for negatives.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(str(value), "not a number")
    if isinstance(value, Decimal):
        raw = value
    elif isinstance(value, (int, float)):
        raw = Decimal(str(value))
    elif isinstance(value, str):
        text = _AMOUNT_NOISE.sub("", value)
        negative = False
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1]
            negative = True
        if not text:
            raise InvalidAmountError(value, "empty")
        try:
            raw = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value, "not a number") from None
        if negative:
            raw = -abs(raw)
    else:
        raise InvalidAmountError(str(value), f"unsupported type {type(value).__name__}")

    if not raw.is_finite():
        raise InvalidAmountError(str(value), "not a finite number")
    return quantize_amount(raw)


def parse_date(value: object) -> date:
    """Parse a statement date from a date, datetime or string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(str(value), f"unsupported type {type(value).__name__}")
    text = value.strip()
    if not text:
        raise InvalidDateError(value, "empty")
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError) as e:
        raise InvalidDateError(value, str(e)) from e


__all__ = [
    "CENT",
    "ZERO",
    "Direction",
    "parse_amount",
    "parse_date",
    "quantize_amount",
]
