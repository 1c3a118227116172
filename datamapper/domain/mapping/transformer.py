"""
Transform engine: apply a resolved mapping to source documents.

Every document produces at most one candidate record per mapped table. Values
are coerced according to the target column's SQL type, so declared
transformations from the model are a hint rather than the only signal.
"""
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from datamapper.db.catalog import (
    TENANT_COLUMN,
    TableSpec,
    get_table_spec,
    is_integer_type,
    is_monetary_type,
    is_temporal_type,
)
from datamapper.domain.mapping.models import CandidateRecord, FieldMapping, TableMapping, TransformKind
from datamapper.domain.mapping.values import DocumentValue, SourceDocument, ValueKind
from datamapper.utils.date import parse_flexible_date
from datamapper.utils.numbers import parse_decimal, parse_int, parse_money
from datamapper.utils.phone import clean_phone

logger = logging.getLogger(__name__)

MIN_POPULATED_COLUMNS = 2
ID_MODULUS = 2 ** 31 - 1


@dataclass
class TransformOutcome:
    records: Dict[str, List[CandidateRecord]] = field(default_factory=dict)
    insufficient: Dict[str, int] = field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.records.values())


def _digest(*parts: Any) -> str:
    return hashlib.sha1(":".join(str(part) for part in parts).encode("utf-8")).hexdigest()


def stable_int_id(text: str) -> int:
    """Deterministically fold arbitrary text into the positive 32-bit id range."""
    return int(_digest(text), 16) % ID_MODULUS


def to_int_id(value: DocumentValue) -> Optional[int]:
    if value.is_null:
        return None
    text = value.as_text()
    if not text:
        return None
    if value.kind in (ValueKind.NUMBER, ValueKind.STRING):
        number = parse_decimal(value.raw)
        # Only whole numbers inside the column range pass through unchanged
        if number is not None and number == number.to_integral_value() and 0 <= number < ID_MODULUS:
            return int(number)
    return stable_int_id(text)


def generate_primary_key(spec: TableSpec, tenant_id: str, collection: str, doc_id: str) -> Any:
    digest = _digest(tenant_id, collection, doc_id, spec.name)
    if is_integer_type(spec.column_type(spec.primary_key)):
        return int(digest, 16) % ID_MODULUS
    prefix = "PROD" if spec.name == "product" else spec.name.upper()[:4]
    return f"{prefix}_{digest[:12].upper()}"


def coerce_value(value: DocumentValue, column: str, spec: TableSpec, transform: TransformKind = TransformKind.NONE) -> Any:
    """Convert one source value to the Python type bound to the target column."""
    if value.is_null:
        return None

    sql_type = spec.column_type(column) or "TEXT"
    context = f"{spec.name}.{column}"

    if is_integer_type(sql_type):
        if column.endswith("_id"):
            return to_int_id(value)
        return parse_int(value.raw)

    if is_monetary_type(sql_type) or transform is TransformKind.CURRENCY_FORMAT:
        return parse_money(value.raw)

    if is_temporal_type(sql_type) or transform is TransformKind.DATE_FORMAT:
        parsed = parse_flexible_date(value.raw, log_context=context)
        if parsed is None:
            return None
        if "TIMESTAMP" not in sql_type.upper():
            return parsed.date()
        return parsed

    if value.kind is ValueKind.OBJECT:
        text = json.dumps(value.raw, default=str, ensure_ascii=False)
    else:
        text = value.as_text()
    if not text:
        return None

    if "email" in column:
        return text.lower()
    if "phone" in column:
        return clean_phone(text)
    return text


def _has_content(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def build_record(
    document: SourceDocument,
    spec: TableSpec,
    mappings: List[FieldMapping],
    tenant_id: str,
    collection: str,
    run_started_at: datetime,
) -> Optional[CandidateRecord]:
    values: Dict[str, Any] = {}
    for mapping in mappings:
        coerced = coerce_value(document.get(mapping.source_field), mapping.target_column, spec, mapping.transform)
        if _has_content(coerced):
            values[mapping.target_column] = coerced

    # Counted before any generated column is added
    if len(values) < MIN_POPULATED_COLUMNS:
        return None

    if spec.primary_key and spec.primary_key not in values:
        values[spec.primary_key] = generate_primary_key(spec, tenant_id, collection, document.doc_id)
    if spec.name == "product" and "created_date" not in values:
        values["created_date"] = run_started_at

    values[TENANT_COLUMN] = tenant_id
    return CandidateRecord(table=spec.name, tenant_id=tenant_id, source_doc_id=document.doc_id, values=values)


def _link_siblings(records: List[CandidateRecord]) -> None:
    """Fill missing foreign keys from records produced by the same document."""
    by_table = {record.table: record for record in records}
    for record in records:
        spec = get_table_spec(record.table)
        for column, referenced in spec.foreign_keys.items():
            if record.values.get(column) is not None:
                continue
            parent = by_table.get(referenced)
            if parent is not None and parent.values.get(column) is not None:
                record.values[column] = parent.values[column]


def transform_documents(
    documents: List[SourceDocument],
    mapping: TableMapping,
    tenant_id: str,
    collection: str,
    run_started_at: Optional[datetime] = None,
) -> TransformOutcome:
    run_started_at = run_started_at or datetime.now(timezone.utc).replace(tzinfo=None)
    outcome = TransformOutcome()
    targets = [(get_table_spec(table.table_name), table) for table in mapping.tables]
    for spec, table in targets:
        outcome.records.setdefault(spec.name, [])
        outcome.insufficient.setdefault(spec.name, 0)

    for document in documents:
        produced: List[CandidateRecord] = []
        for spec, table in targets:
            record = build_record(document, spec, table.field_mappings, tenant_id, collection, run_started_at)
            if record is None:
                outcome.insufficient[spec.name] += 1
                continue
            produced.append(record)
        _link_siblings(produced)
        for record in produced:
            outcome.records[record.table].append(record)

    dropped = sum(outcome.insufficient.values())
    if dropped:
        logger.info(
            "Dropped %d insufficient records from %s (fewer than %d populated columns)",
            dropped,
            collection,
            MIN_POPULATED_COLUMNS,
        )
    return outcome
