"""
Phone number cleaning utilities.

Relational phone columns keep digits only, with a leading ``+`` preserved when
the source carried an international prefix.
"""

import re
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)


def clean_phone(value: Any) -> Optional[str]:
    """
    Strip formatting from a phone number.

    Handles various input formats:
    - (415) 555-1234  -> 4155551234
    - 415.555.1234    -> 4155551234
    - +44 20 7946 1234 -> +442079461234

    Returns None when nothing usable remains.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None

    if isinstance(value, float) and value.is_integer():
        value = int(value)

    text = str(value).strip()
    if not text:
        return None

    has_plus = text.startswith('+')
    digits = re.sub(r'\D', '', text)
    if not digits:
        return None

    return f"+{digits}" if has_plus else digits


def validate_phone(value: Any, *, min_digits: int = 7, max_digits: int = 15) -> bool:
    """
    Validate if a value is a valid phone number.

    Args:
        value: Value to validate
        min_digits: Minimum number of digits required
        max_digits: Maximum number of digits allowed

    Returns:
        True if valid phone number, False otherwise
    """
    if value is None or value == "":
        return False

    text = str(value).strip()
    if not text:
        return False

    digits = re.sub(r'\D', '', text)
    if len(digits) < min_digits or len(digits) > max_digits:
        logger.debug(
            "Phone number '%s' has %d digits, expected between %d and %d",
            value,
            len(digits),
            min_digits,
            max_digits,
        )
        return False
    return True
