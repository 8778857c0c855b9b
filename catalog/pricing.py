"""
Price parsing, discounting and formatting.

Every place that turns a sheet value into a number goes through
``parse_price`` so the filter, the sort and both price displays agree.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from catalog.config import CURRENCY_GLYPH, MAX_DISCOUNT, PDF_CURRENCY_PREFIX

_CENTS = Decimal("0.01")


def parse_price(value) -> float:
    """Parse a rate value; anything unparseable, negative or non-finite is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def parse_ranking(value) -> float:
    """Like ``parse_price`` but negative scores are kept."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def clamp_discount(value) -> int:
    """Parse a discount percentage; non-integers become 0, range is [0, 30]."""
    try:
        pct = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return min(MAX_DISCOUNT, max(0, pct))


def discounted_price(rate, discount: int = 0) -> float:
    """
    Return ``rate * (1 - discount / 100)`` rounded half-up to two decimals.

    The on-screen card and the PDF both format this value, so identical
    inputs can never show different numbers.
    """
    price = Decimal(repr(parse_price(rate)))
    pct = Decimal(clamp_discount(discount))
    try:
        value = (price * (Decimal(100) - pct) / Decimal(100)).quantize(
            _CENTS, rounding=ROUND_HALF_UP
        )
    except InvalidOperation:
        return 0.0
    return float(value)


def _group_indian(integer_part: str) -> str:
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_price(value) -> str:
    """Screen format: rupee glyph, Indian grouping, up to two decimals."""
    amount = Decimal(repr(parse_price(value))).quantize(_CENTS, rounding=ROUND_HALF_UP)
    integer_part, _, fraction = f"{amount:.2f}".partition(".")
    fraction = fraction.rstrip("0")
    text = _group_indian(integer_part)
    if fraction:
        text = f"{text}.{fraction}"
    return f"{CURRENCY_GLYPH}{text}"


def format_pdf_price(value) -> str:
    """PDF format: ASCII ``Rs.`` prefix and two fixed decimals."""
    return f"{PDF_CURRENCY_PREFIX}{parse_price(value):.2f}"
