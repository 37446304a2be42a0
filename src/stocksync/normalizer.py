"""Normalize loosely-typed numeric catalog values."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

_CENTS = Decimal("0.01")


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """
    Parse a catalog number into a non-negative Decimal.

    Accepts ints, floats and strings with either decimal separator.
    When both "." and "," appear, the right-most one is the decimal
    separator and the other is treated as digit grouping. Returns None
    for null, empty, non-numeric or non-finite input.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        text = repr(raw) if isinstance(raw, float) else str(raw)
    else:
        text = str(raw).strip()
    if not text:
        return None

    text = text.replace(" ", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")
    if text.count(".") > 1:
        text = text.replace(".", "")

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None

    if not value.is_finite():
        return None
    if value.is_signed():
        return Decimal(0)
    return value


def _quantize(value: Decimal, exponent: Decimal) -> Optional[Decimal]:
    try:
        return value.quantize(exponent, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context.
        return None


def normalize_quantity(raw: Any) -> Optional[int]:
    """Normalize a stock or minimum-stock value to a rounded integer."""
    value = parse_decimal(raw)
    if value is None:
        return None
    rounded = _quantize(value, Decimal(1))
    return None if rounded is None else int(rounded)


def normalize_price(raw: Any) -> Optional[str]:
    """Normalize a price to a two-decimal, period-separated string."""
    value = parse_decimal(raw)
    if value is None:
        return None
    rounded = _quantize(value, _CENTS)
    return None if rounded is None else format(rounded, "f")


def effective_price(regular: Optional[str], sale: Optional[str]) -> Optional[str]:
    """Price the buyer sees: an active sale price, else the regular price."""
    sale_value = parse_decimal(sale)
    if sale_value is not None and sale_value > 0:
        return sale
    return regular
