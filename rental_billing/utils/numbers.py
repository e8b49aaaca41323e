"""Numeric coercion and money rounding helpers.

Meter payloads arrive from several client surfaces (web form, mobile app,
stored Mongo documents) and any numeric field may be missing, blank, a numeric
string or outright garbage. The billing core never rejects such input: every
value goes through :func:`parse_non_negative_decimal_or_zero` and degrades to
zero instead.

Examples:
>>> parse_non_negative_decimal_or_zero("150")
Decimal('150')
>>> parse_non_negative_decimal_or_zero("abc")
Decimal('0')
>>> format_money(Decimal("660.8"))
'660.80'
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Union

Number = Union[int, float, Decimal]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

__all__ = [
    "ZERO",
    "HUNDRED",
    "parse_non_negative_decimal_or_zero",
    "quantize_money",
    "format_money",
    "plain_number",
]


def parse_non_negative_decimal_or_zero(value: Any) -> Decimal:
    """Coerce ``value`` to a non-negative Decimal, returning 0 when that fails.

    ``None``, booleans, blank or non-numeric strings, NaN/Infinity and negative
    numbers all become ``Decimal('0')``.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float)):
        # str() first so 0.1 stays 0.1 instead of its binary expansion
        dec = Decimal(str(value))
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return ZERO
        try:
            dec = Decimal(raw)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO
    if not dec.is_finite() or dec < 0:
        return ZERO
    return dec


def quantize_money(value: Number) -> Decimal:
    """Round to 2 places, half away from zero."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Number) -> str:
    return format(quantize_money(value), "f")


def plain_number(value: Decimal) -> Union[int, float]:
    """JSON-friendly number: ``int`` for integral values, ``float`` otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)
