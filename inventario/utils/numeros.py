from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
Q2 = Decimal("0.01")
Q4 = Decimal("0.0001")
Q6 = Decimal("0.000001")


def dec(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def parse_decimal(value: Any) -> Decimal | None:
    """Como ``dec`` pero distingue "no vino / no es número" (None) de cero."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def safe_div(a: Decimal, b: Decimal) -> Decimal:
    return a / b if b > 0 else ZERO


def q2(value: Any) -> Decimal:
    return dec(value).quantize(Q2, rounding=ROUND_HALF_UP)


def q4(value: Any) -> Decimal:
    return dec(value).quantize(Q4, rounding=ROUND_HALF_UP)


def q6(value: Any) -> Decimal:
    return dec(value).quantize(Q6, rounding=ROUND_HALF_UP)
