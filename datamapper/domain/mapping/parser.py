"""
Parser for model mapping responses.

Model output is treated as untrusted text: code fences and surrounding prose
are stripped, the JSON object is decoded, and everything is checked against
the catalog. The parser never raises; it returns either a ``ParsedMapping``
or a ``ParseError`` describing why the response was rejected.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional, Union

from datamapper.db.catalog import TENANT_COLUMN, get_table_spec
from datamapper.domain.mapping.models import (
    FieldMapping,
    MappingSource,
    TableMapping,
    TableTarget,
    TransformKind,
    UnmappedField,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")


@dataclass
class ParsedMapping:
    mapping: TableMapping
    dropped_tables: List[str] = field(default_factory=list)
    dropped_mappings: int = 0


@dataclass(frozen=True)
class ParseError:
    reason: str
    excerpt: str = ""


ParseResult = Union[ParsedMapping, ParseError]


def strip_code_fences(content: str) -> str:
    return _FENCE_RE.sub("", content or "").strip()


def extract_json_object(content: str) -> Optional[str]:
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        return None
    return content[start:end + 1]


def _confidence(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if score != score:  # NaN
        return None
    return min(1.0, max(0.0, score))


def _unmapped_entry(entry: Any) -> Optional[UnmappedField]:
    if isinstance(entry, str) and entry.strip():
        return UnmappedField(field_name=entry.strip())
    if isinstance(entry, dict):
        name = entry.get("field_name") or entry.get("source_field")
        if isinstance(name, str) and name.strip():
            return UnmappedField(field_name=name.strip(), reason=str(entry.get("reason") or ""))
    return None


def parse_mapping_response(
    content: str,
    source_fields: Optional[Collection[str]] = None,
    model: Optional[str] = None,
) -> ParseResult:
    """
    Turn raw model text into a TableMapping restricted to catalog tables/columns.

    When ``source_fields`` is given, mappings that reference fields the
    collection does not have are discarded as well.
    """
    excerpt = (content or "")[:500]
    cleaned = strip_code_fences(content)
    candidate = extract_json_object(cleaned)
    if candidate is None:
        return ParseError("No JSON object found in response", excerpt)

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseError(f"Invalid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})", excerpt)

    if not isinstance(payload, dict):
        return ParseError("Response JSON is not an object", excerpt)

    raw_tables = payload.get("tables")
    if not isinstance(raw_tables, list):
        return ParseError("Response missing tables array", excerpt)

    unmapped: List[UnmappedField] = []
    for entry in payload.get("unmapped_fields") or []:
        parsed_entry = _unmapped_entry(entry)
        if parsed_entry is not None:
            unmapped.append(parsed_entry)

    known_fields = set(source_fields) if source_fields is not None else None
    tables: List[TableTarget] = []
    dropped_tables: List[str] = []
    dropped_mappings = 0

    for raw_table in raw_tables:
        if not isinstance(raw_table, dict):
            dropped_tables.append(str(raw_table))
            continue

        table_name = raw_table.get("table_name")
        spec = get_table_spec(table_name) if isinstance(table_name, str) else None
        if spec is None:
            dropped_tables.append(str(table_name))
            continue

        raw_mappings = raw_table.get("field_mappings")
        if not isinstance(raw_mappings, list):
            return ParseError(f"Table '{table_name}' is missing field_mappings", excerpt)

        field_mappings: List[FieldMapping] = []
        used_columns = set()
        for raw_mapping in raw_mappings:
            if not isinstance(raw_mapping, dict):
                dropped_mappings += 1
                continue
            source = raw_mapping.get("source_field")
            target = raw_mapping.get("target_field") or raw_mapping.get("target_column")
            if not isinstance(source, str) or not isinstance(target, str):
                dropped_mappings += 1
                continue

            if target not in spec.columns or target == TENANT_COLUMN:
                dropped_mappings += 1
                unmapped.append(
                    UnmappedField(
                        field_name=source,
                        reason=f"Suggested non-existent column '{target}' in table '{table_name}'",
                    )
                )
                continue

            if known_fields is not None and source not in known_fields:
                dropped_mappings += 1
                logger.debug("Dropping mapping for unknown source field '%s'", source)
                continue

            if target in used_columns:
                dropped_mappings += 1
                continue
            used_columns.add(target)

            field_mappings.append(
                FieldMapping(
                    source_field=source,
                    target_column=target,
                    transform=TransformKind.parse(raw_mapping.get("transformation")),
                    confidence=_confidence(raw_mapping.get("confidence")),
                )
            )

        if not field_mappings:
            dropped_tables.append(table_name)
            continue

        relationships = [
            {key: str(value) for key, value in rel.items()}
            for rel in raw_table.get("relationships") or []
            if isinstance(rel, dict)
        ]
        tables.append(
            TableTarget(
                table_name=table_name,
                field_mappings=field_mappings,
                confidence=_confidence(raw_table.get("confidence")),
                reasoning=str(raw_table.get("reasoning") or ""),
                relationships=relationships,
            )
        )

    if not tables:
        names = ", ".join(dropped_tables) or "none"
        return ParseError(f"No usable catalog tables in response (received: {names})", excerpt)

    if dropped_tables or dropped_mappings:
        logger.warning(
            "Model response trimmed: dropped tables=%s, dropped mappings=%d",
            dropped_tables,
            dropped_mappings,
        )

    return ParsedMapping(
        mapping=TableMapping(
            tables=tables,
            unmapped_fields=unmapped,
            source=MappingSource.MODEL,
            model=model,
        ),
        dropped_tables=dropped_tables,
        dropped_mappings=dropped_mappings,
    )
