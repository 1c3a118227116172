from typing import Any
from decimal import Decimal
from datetime import datetime, date
from enum import Enum
from uuid import UUID


def _make_json_safe(value: Any) -> Any:
    """
    Make progress-event details and prompt samples JSON-serialisable.

    Document-store values such as ObjectId or Decimal128 fall through to
    ``str``; Decimals keep integer values as ints and everything else as text.
    """
    if isinstance(value, dict):
        return {str(key): _make_json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_make_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return _make_json_safe(value.value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            return str(value)
        if value == value.to_integral():
            return int(value)
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.decode(errors="ignore")
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    return str(value)
