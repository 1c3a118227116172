"""
Numeric coercion helpers for monetary and integer columns.
"""

import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_CENTS = Decimal("0.01")


def _normalize_numeric_text(text: str) -> str:
    normalized = text.strip().replace(',', '')
    if normalized.startswith('$'):
        normalized = normalized[1:]
    if normalized.startswith('(') and normalized.endswith(')'):
        normalized = f"-{normalized[1:-1]}"
    return normalized.strip()


def is_numeric_like(value: Any) -> bool:
    """True for numbers and for strings that are numbers once `,` and `$` are removed."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, Decimal)):
        return True
    if isinstance(value, float):
        return not math.isnan(value)
    text = re.sub(r"[,$]", "", str(value)).strip()
    if not text:
        return False
    try:
        float(text)
    except ValueError:
        return False
    return True


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a currency-ish value into a Decimal."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        decimal_value = value
    elif isinstance(value, int):
        decimal_value = Decimal(value)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        decimal_value = Decimal(str(value))
    else:
        normalized = _normalize_numeric_text(str(value))
        if not normalized:
            return None
        try:
            decimal_value = Decimal(normalized)
        except InvalidOperation:
            return None

    if not decimal_value.is_finite():
        return None
    return decimal_value


def parse_money(value: Any) -> Optional[Decimal]:
    decimal_value = parse_decimal(value)
    if decimal_value is None:
        return None
    return decimal_value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def parse_int(value: Any) -> Optional[int]:
    """
    Best-effort conversion to int.
    Floats and numeric strings are truncated (e.g. "507.0" -> 507).
    """
    decimal_value = parse_decimal(value)
    if decimal_value is None:
        return None
    return int(decimal_value)
