"""
Date parsing utilities for flexible date format handling.

Source documents carry dates as ISO strings, US/European numeric strings,
epoch-like values or native datetimes. Everything is normalised to a naive
UTC ``datetime`` so it can be bound directly to DATE/TIMESTAMP columns.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd

from datamapper.core.config import settings

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100

# Shapes the structure analyzer treats as dates
DATE_LIKE_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{2}/\d{2}/\d{4}"),
    re.compile(r"^\d{2}-\d{2}-\d{4}"),
)

_failure_stats: dict = {}


def _record_parse_failure(value: Any, context: Optional[str], error: Exception) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
    stats["count"] += 1
    count = stats["count"]

    if len(stats["samples"]) < FAILED_SAMPLE_LIMIT:
        stats["samples"].append(value)
        logger.warning("Failed to parse date%s value '%s': %s", f" ({key})" if context else "", value, error)
        return

    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            stats["samples"],
        )


def looks_like_date(value: Any) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    return any(pattern.match(text) for pattern in DATE_LIKE_PATTERNS)


def parse_flexible_date(value: Any, *, log_context: Optional[str] = None, log_failures: bool = True) -> Optional[datetime]:
    """
    Parse a date value from various formats.

    Supports formats:
    - ISO 8601: "2024-09-04T23:09:18Z"
    - DD/MM/YYYY: "20/10/2025"
    - MM/DD/YYYY: "10/20/2025"
    - YYYY-MM-DD: "2025-10-20"
    - And many others via pandas inference

    Returns:
        Naive UTC datetime, or None if parsing fails
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None

    if isinstance(value, datetime):
        return _to_naive_utc(pd.Timestamp(value))
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None

    parse_attempts = []
    dt = None

    if isinstance(value, str):
        numeric_match = re.match(r'^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}', value)
        if numeric_match:
            parts = re.split(r'[/-]', numeric_match.group(0))
            try:
                first = int(parts[0])
                second = int(parts[1])
            except ValueError:
                first = second = -1

            # Decide whether day-first is more plausible
            if first > 12 and second <= 31:
                dayfirst_preferred = True
            elif second > 12 and first <= 12:
                dayfirst_preferred = False
            else:
                dayfirst_preferred = settings.date_default_dayfirst

            parse_attempts.append(
                lambda v, df=dayfirst_preferred: pd.to_datetime(v, utc=True, dayfirst=df, errors='raise')
            )
            # Always try the alternate interpretation as a fallback
            parse_attempts.append(
                lambda v, df=not dayfirst_preferred: pd.to_datetime(v, utc=True, dayfirst=df, errors='raise')
            )

    if isinstance(value, (int, float)):
        # Numeric values are treated as epoch milliseconds
        parse_attempts.append(lambda v: pd.to_datetime(v, unit="ms", utc=True, errors='raise'))
    else:
        parse_attempts.append(lambda v: pd.to_datetime(v, utc=True, errors='raise'))

    last_error = None
    for attempt in parse_attempts:
        try:
            dt = attempt(value)
            break
        except Exception as exc:
            last_error = exc
            continue

    if dt is None or pd.isna(dt):
        if log_failures:
            _record_parse_failure(value, log_context, last_error or ValueError("Unable to determine format"))
        return None

    return _to_naive_utc(dt)


def _to_naive_utc(dt: "pd.Timestamp") -> datetime:
    if dt.tzinfo is not None:
        dt = dt.tz_convert("UTC").tz_localize(None)
    return dt.to_pydatetime()


def to_iso_string(value: Any) -> Optional[str]:
    parsed = parse_flexible_date(value, log_failures=False)
    if parsed is None:
        return None
    return parsed.strftime('%Y-%m-%dT%H:%M:%SZ')
