"""
Format presets checked on candidate records before they are loaded.

Catalog columns are matched to a preset by name (email, phone) or by SQL type
(DECIMAL/NUMERIC -> currency).
"""

import re
from decimal import Decimal
from typing import Any, Optional, Tuple


PRESET_PATTERNS = {
    "email": r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
    "phone": r"^\+?[\d\s\-\.\(\)]{7,20}$",  # Loose matching
    "currency": r"^-?\$?[\d,]+(\.\d+)?$",
    "uuid": r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$",
}

PRESET_DESCRIPTIONS = {
    "email": "Standard email format (permissive)",
    "phone": "Loose phone number (7-20 digits with any separators)",
    "currency": "Monetary amount",
    "uuid": "UUID format",
}

_COMPILED = {name: re.compile(pattern) for name, pattern in PRESET_PATTERNS.items()}


def get_preset_pattern(preset_name: str) -> Optional[str]:
    return PRESET_PATTERNS.get(preset_name)


def get_preset_description(preset_name: str) -> Optional[str]:
    return PRESET_DESCRIPTIONS.get(preset_name)


def preset_for_column(column_name: str, sql_type: Optional[str] = None) -> Optional[str]:
    """Pick the preset that applies to a catalog column, if any."""
    name = column_name.lower()
    if "email" in name:
        return "email"
    if "phone" in name:
        return "phone"
    if sql_type and any(token in sql_type.upper() for token in ("DECIMAL", "NUMERIC")):
        return "currency"
    return None


def _as_text(value: Any) -> str:
    # Coerced amounts are Decimals; render without exponent so the pattern applies
    if isinstance(value, Decimal) and value.is_finite():
        return format(value, "f")
    return str(value).strip()


def validate_with_preset(
    value: Any,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Check one value against a preset.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    compiled = _COMPILED.get(preset_name)
    if compiled is None:
        return False, f"Unknown preset validator: {preset_name}"

    description = get_preset_description(preset_name) or preset_name
    if isinstance(value, bool):
        return False, f"Value '{value}' does not match {description} format"

    text = _as_text(value)
    if not compiled.match(text):
        return False, f"Value '{text}' does not match {description} format"
    return True, None
