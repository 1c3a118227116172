"""
Record validation and in-memory deduplication.

Validation is a strict filter: a record missing any required column for its
table, or carrying a malformed email/phone/currency value, is dropped and
counted. Deduplication keeps the first record seen for each composite key.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple

from datamapper.db.catalog import TableSpec, get_table_spec
from datamapper.domain.mapping.models import CandidateRecord
from datamapper.domain.mapping.validators import preset_for_column, validate_with_preset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    table: str
    source_doc_id: str
    column: str
    message: str


@dataclass
class ValidationReport:
    table: str
    clean: List[CandidateRecord] = field(default_factory=list)
    invalid_count: int = 0
    duplicates_removed: int = 0
    issues: List[ValidationIssue] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def check_record(record: CandidateRecord, spec: TableSpec) -> List[ValidationIssue]:
    issues = []
    for column in spec.required_columns:
        if _is_empty(record.get(column)):
            issues.append(ValidationIssue(spec.name, record.source_doc_id, column, "Required value is missing"))

    for column, value in record.values.items():
        preset = preset_for_column(column, spec.column_type(column))
        if preset is None:
            continue
        if preset == "currency" and isinstance(value, Decimal) and not value.is_finite():
            issues.append(ValidationIssue(spec.name, record.source_doc_id, column, "Amount is not a finite number"))
            continue
        is_valid, error = validate_with_preset(value, preset)
        if not is_valid:
            issues.append(ValidationIssue(spec.name, record.source_doc_id, column, error or "Invalid value"))
    return issues


def _normalize_uniqueness_value(value: Any) -> Any:
    """Lightweight normalization so fingerprints are stable for in-memory dedupe."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, (int, float, bool, Decimal)):
        return value
    return str(value)


def dedup_fingerprint(record: CandidateRecord, spec: TableSpec) -> Optional[Tuple[Any, ...]]:
    """Composite key for a record; None when the table has no key or every key column is empty."""
    if not spec.dedup_key:
        return None
    fingerprint = tuple(_normalize_uniqueness_value(record.get(column)) for column in spec.dedup_key)
    if all(part is None or part == "" for part in fingerprint):
        return None
    return fingerprint


def deduplicate(records: Iterable[CandidateRecord], spec: TableSpec) -> Tuple[List[CandidateRecord], int]:
    seen = set()
    deduped: List[CandidateRecord] = []
    skipped = 0
    for record in records:
        fingerprint = dedup_fingerprint(record, spec)
        if fingerprint is not None:
            if fingerprint in seen:
                skipped += 1
                continue
            seen.add(fingerprint)
        deduped.append(record)

    if skipped:
        logger.info(
            "In-memory dedupe removed %d duplicate %s rows (uniqueness: %s)",
            skipped,
            spec.name,
            ", ".join(spec.dedup_key),
        )
    return deduped, skipped


def validate_and_dedup(table: str, records: List[CandidateRecord]) -> ValidationReport:
    spec = get_table_spec(table)
    if spec is None:
        raise ValueError(f"Unknown catalog table: {table}")

    report = ValidationReport(table=table)
    valid: List[CandidateRecord] = []
    for record in records:
        issues = check_record(record, spec)
        if issues:
            report.invalid_count += 1
            report.issues.extend(issues)
            continue
        valid.append(record)

    report.clean, report.duplicates_removed = deduplicate(valid, spec)
    return report
