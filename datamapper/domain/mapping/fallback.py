"""
Deterministic rule-based mapping used when no model produces a usable answer.

Table selection is an ordered table of (predicate, target table) rules checked
against the collection name first and the joined field names second. Field
matching then tries, in order: direct name match, pattern category, fuzzy
similarity and a small semantic keyword table.
"""
import logging
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Callable, Dict, List, Optional, Tuple

from datamapper.db.catalog import TableSpec, get_table_spec
from datamapper.domain.mapping.analyzer import normalize_field_name
from datamapper.domain.mapping.models import (
    FieldInfo,
    FieldMapping,
    FieldProfile,
    InferredType,
    MappingSource,
    TableMapping,
    TableTarget,
    TransformKind,
    UnmappedField,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "product"

DIRECT_MATCH_CONFIDENCE = 0.95
CATEGORY_MATCH_CONFIDENCE = 0.85
FUZZY_MATCH_CEILING = 0.8
FUZZY_MATCH_THRESHOLD = 0.6
SEMANTIC_MATCH_CONFIDENCE = 0.7
SUGGESTION_THRESHOLD = 0.4
MAX_SUGGESTIONS = 3


def _contains_any(*keywords: str) -> Callable[[str], bool]:
    return lambda text: any(keyword in text for keyword in keywords)


@dataclass(frozen=True)
class FallbackRule:
    name: str
    predicate: Callable[[str], bool]
    table: str


# Evaluated top to bottom; first match wins. "purchase" precedes "order" so
# purchase-order collections are not routed to sales_order.
TABLE_RULES: Tuple[FallbackRule, ...] = (
    FallbackRule("purchase", _contains_any("purchase"), "purchase_order"),
    FallbackRule("customer", _contains_any("customer", "client", "buyer"), "customer"),
    FallbackRule("supplier", _contains_any("supplier", "vendor", "provider"), "supplier"),
    FallbackRule("sales", _contains_any("sale", "order"), "sales_order"),
    FallbackRule("investment", _contains_any("investment"), "investment"),
    FallbackRule("investor", _contains_any("investor"), "investor"),
)

# pattern category (entity -> kind) -> target column
CATEGORY_COLUMN_RULES: Dict[str, Dict[str, Optional[str]]] = {
    "inventory": {
        "id": "product_id",
        "name": "product_name",
        "type": "category_id",
        "price": "price",
        "stock": None,
        "status": "status",
        "notes": "description",
    },
    "vendor": {
        "name": "supplier_name",
        "contact": "contact_person",
        "address": "address",
    },
    "purchase_order": {
        "order": "purchase_order_id",
        "status": "status",
        "order_date": "order_date",
        "arrive_by": "delivery_date",
        "cost": "total_amount",
        "notes": "notes",
    },
    "sales_order": {
        "order": "sales_order_id",
        "status": "status",
        "order_date": "order_date",
        "price": "total_amount",
        "contact": "customer_id",
    },
    "customer": {
        "name": "customer_name",
        "email": "email",
        "phone": "phone",
        "address": "billing_address",
        "type": "customer_type",
    },
}


def _semantic_keywords(table: str) -> List[Tuple[str, Optional[str]]]:
    entity_columns = {
        "product": ("product_id", "product_name"),
        "supplier": ("supplier_id", "supplier_name"),
        "customer": ("customer_id", "customer_name"),
        "investor": ("investor_id", "investor_name"),
    }
    id_column, name_column = entity_columns.get(table, (None, None))
    return [
        ("id", id_column),
        ("name", name_column),
        ("amount", "total_amount" if "order" in table else "price"),
        ("total", "total_amount"),
        ("cost", "price" if table == "product" else "total_amount"),
        ("price", "selling_price" if table == "product" else "total_amount"),
        ("date", "order_date"),
        ("status", "status"),
        ("description", "description"),
        ("notes", "notes" if table == "purchase_order" else "description"),
        ("remarks", "description"),
    ]


def strip_tenant_prefix(collection: str, tenant_id: Optional[str]) -> str:
    prefix = f"{tenant_id}_" if tenant_id else ""
    if prefix and collection.startswith(prefix):
        return collection[len(prefix):]
    return collection


def select_table(collection: str, field_names: List[str], tenant_id: Optional[str] = None) -> Tuple[str, str]:
    """Return (table, rule name) for the first rule matching the collection name, then the field names."""
    candidates = (
        strip_tenant_prefix(collection, tenant_id).lower(),
        " ".join(field_names).lower(),
    )
    for text in candidates:
        for rule in TABLE_RULES:
            if rule.predicate(text):
                return rule.table, rule.name
    return DEFAULT_TABLE, "default"


def similarity(left: str, right: str) -> float:
    if left == right:
        return 1.0
    if left and right and (left in right or right in left):
        return 0.8
    return SequenceMatcher(None, left, right).ratio()


def determine_transformation(inferred_type: InferredType, target_column: str) -> TransformKind:
    if inferred_type is InferredType.DATE and "date" in target_column:
        return TransformKind.DATE_FORMAT
    if inferred_type is InferredType.NUMBER and ("price" in target_column or "amount" in target_column):
        return TransformKind.CURRENCY_FORMAT
    if target_column.endswith("_id") and inferred_type is InferredType.STRING:
        return TransformKind.ID_GENERATION
    return TransformKind.NONE


def match_field(info: FieldInfo, spec: TableSpec) -> Optional[Tuple[str, float]]:
    columns = spec.mappable_columns
    normalized = info.normalized_name or normalize_field_name(info.name)

    for column in columns:
        if normalized == normalize_field_name(column):
            return column, DIRECT_MATCH_CONFIDENCE

    if info.category:
        entity, _, kind = info.category.partition(".")
        column = CATEGORY_COLUMN_RULES.get(entity, {}).get(kind)
        if column and column in columns:
            return column, CATEGORY_MATCH_CONFIDENCE

    best_column, best_score = None, 0.0
    for column in columns:
        score = similarity(normalized, normalize_field_name(column))
        if score > best_score and score > FUZZY_MATCH_THRESHOLD:
            best_column, best_score = column, score
    if best_column:
        return best_column, min(FUZZY_MATCH_CEILING, best_score)

    for keyword, column in _semantic_keywords(spec.name):
        if column and keyword in normalized and column in columns:
            return column, SEMANTIC_MATCH_CONFIDENCE

    return None


def suggest_alternatives(info: FieldInfo, spec: TableSpec) -> Tuple[str, ...]:
    normalized = info.normalized_name or normalize_field_name(info.name)
    scored = [
        (similarity(normalized, normalize_field_name(column)), column)
        for column in spec.mappable_columns
    ]
    scored = [item for item in scored if item[0] > SUGGESTION_THRESHOLD]
    scored.sort(key=lambda item: item[0], reverse=True)
    return tuple(column for _, column in scored[:MAX_SUGGESTIONS])


def infer_relationships(spec: TableSpec, mappings: List[FieldMapping]) -> List[Dict[str, str]]:
    relationships = []
    for mapping in mappings:
        related = spec.foreign_keys.get(mapping.target_column)
        if related and related != spec.name:
            relationships.append(
                {"related_table": related, "relationship_type": "foreign_key", "key": mapping.target_column}
            )
    return relationships


def rule_based_mapping(profile: FieldProfile, tenant_id: Optional[str] = None) -> TableMapping:
    """Always succeeds; worst case every field is reported as unmapped."""
    table, rule_name = select_table(profile.collection, profile.field_names, tenant_id)
    spec = get_table_spec(table)

    mappings: List[FieldMapping] = []
    unmapped: List[UnmappedField] = []
    used_columns = set()

    for info in profile.fields:
        match = match_field(info, spec)
        if match is None:
            unmapped.append(
                UnmappedField(
                    field_name=info.name,
                    reason="No matching target column found in schema",
                    suggestions=suggest_alternatives(info, spec),
                )
            )
            continue

        column, confidence = match
        if column in used_columns:
            unmapped.append(
                UnmappedField(field_name=info.name, reason=f"Column '{column}' already mapped from another field")
            )
            continue
        used_columns.add(column)
        mappings.append(
            FieldMapping(
                source_field=info.name,
                target_column=column,
                transform=determine_transformation(info.inferred_type, column),
                confidence=confidence,
                reason="pattern_recognition",
            )
        )

    logger.info(
        "Rule-based mapping for %s selected %s (rule=%s, mapped=%d, unmapped=%d)",
        profile.collection,
        table,
        rule_name,
        len(mappings),
        len(unmapped),
    )

    target = TableTarget(
        table_name=table,
        field_mappings=mappings,
        confidence=None,
        reasoning=f"Rule-based mapping (rule: {rule_name}); {len(mappings)} fields matched by name patterns",
        relationships=infer_relationships(spec, mappings),
    )
    return TableMapping(tables=[target], unmapped_fields=unmapped, source=MappingSource.RULE_BASED)
