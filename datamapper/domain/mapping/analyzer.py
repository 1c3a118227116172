"""
Structure analysis of one schema-less collection.

A small sample is read and the union of its field names becomes the field
profile: inferred type, a few stringified sample values, a monetary flag and
a pattern category derived from common business column names.
"""
import logging
import re
from collections import Counter, OrderedDict
from typing import Dict, List, Optional, Tuple

from datamapper.core.config import settings
from datamapper.domain.mapping.errors import EmptyCollectionError
from datamapper.domain.mapping.models import FieldInfo, FieldProfile, InferredType, LogLevel
from datamapper.domain.mapping.progress import ProgressBus
from datamapper.domain.mapping.values import DocumentValue, SourceDocument, ValueKind, documents_from_raw
from datamapper.integrations.document_store import DocumentStore
from datamapper.utils.date import looks_like_date
from datamapper.utils.numbers import is_numeric_like

logger = logging.getLogger(__name__)

SAMPLE_VALUE_LIMIT = 5
SAMPLE_VALUE_LENGTH = 100

MONETARY_KEYWORDS = (
    "amount", "price", "cost", "total", "revenue", "income", "expense", "profit",
    "payment", "cash", "money", "sale", "purchase", "investment", "capital",
    "balance", "debit", "credit", "transaction", "billing", "invoice", "currency",
)

# entity -> field kind -> name variants seen in real spreadsheets
FIELD_PATTERNS: Dict[str, Dict[str, List[str]]] = {
    "inventory": {
        "id": ["item id", "item_id", "product id", "product_id", "sku"],
        "name": ["item name", "item_name", "product name", "product_name", "item", "product"],
        "type": ["type", "category", "product type", "item type"],
        "price": ["price", "unit price", "cost", "selling price"],
        "stock": ["stock", "quantity", "qty", "inventory", "available"],
        "status": ["status", "state", "condition"],
        "notes": ["notes", "note", "remarks", "description", "comments"],
    },
    "vendor": {
        "name": ["vendor", "vendor name", "supplier", "supplier name", "supplier_name"],
        "type": ["vendor type", "supplier type", "type", "category"],
        "contact": ["contact", "contact person", "contact_person", "phone", "email"],
        "address": ["address", "location", "office address"],
        "website": ["website", "url", "web"],
        "reliability": ["reliability", "rating", "performance", "score"],
        "notes": ["notes", "note", "remarks", "comments"],
    },
    "purchase_order": {
        "priority": ["priority", "urgency", "importance"],
        "order": ["order", "order number", "order_number", "po number", "order id"],
        "category": ["category", "type", "classification"],
        "status": ["status", "state", "order status"],
        "order_date": ["order date", "order_date", "date", "created date", "purchase date"],
        "arrive_by": ["arrive by", "arrive_by", "delivery date", "expected date", "due date"],
        "cost": ["cost", "total", "amount", "total cost", "total_amount"],
        "contact": ["point of contact", "contact", "contact person", "poc"],
        "notes": ["notes", "note", "remarks", "comments"],
    },
    "sales_order": {
        "priority": ["priority", "urgency", "importance"],
        "order": ["order", "order number", "order_number", "order id", "sales order"],
        "product": ["product", "item", "product name", "item name"],
        "status": ["status", "state", "order status"],
        "order_date": ["order date", "order_date", "date", "created date", "sale date"],
        "price": ["price", "total", "amount", "sale price", "total_amount"],
        "platform": ["sales platform", "platform", "channel", "marketplace"],
        "contact": ["point of contact", "contact", "contact person", "poc", "customer"],
        "notes": ["notes", "note", "remarks", "comments"],
    },
    "customer": {
        "name": ["customer", "customer name", "customer_name", "client", "buyer"],
        "email": ["email", "e-mail", "customer email"],
        "phone": ["phone", "telephone", "mobile", "contact"],
        "address": ["address", "location", "billing address", "shipping address"],
        "type": ["customer type", "type", "category"],
    },
}


def normalize_field_name(field_name: str) -> str:
    normalized = re.sub(r"\s+", "_", field_name.lower().strip())
    return re.sub(r"[^a-z0-9_]", "", normalized)


def categorize_field(field_name: str) -> Optional[Tuple[str, str]]:
    """Return (entity, field kind) for the first matching pattern, or None."""
    normalized = normalize_field_name(field_name)
    if not normalized:
        return None
    for entity, kinds in FIELD_PATTERNS.items():
        for kind, variants in kinds.items():
            for variant in variants:
                candidate = normalize_field_name(variant)
                if normalized == candidate or candidate in normalized or normalized in candidate:
                    return entity, kind
    return None


def is_monetary_field(field_name: str) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in MONETARY_KEYWORDS)


def infer_value_type(value: DocumentValue) -> InferredType:
    if value.kind is ValueKind.NULL:
        return InferredType.UNKNOWN
    if value.kind is ValueKind.NUMBER:
        return InferredType.NUMBER
    if value.kind is ValueKind.BOOLEAN:
        return InferredType.BOOLEAN
    if value.kind is ValueKind.DATE:
        return InferredType.DATE
    if value.kind is ValueKind.OBJECT:
        return InferredType.OBJECT
    if looks_like_date(value.raw):
        return InferredType.DATE
    if is_numeric_like(value.raw):
        return InferredType.NUMBER
    return InferredType.STRING


def build_field_profile(collection: str, document_count: int, documents: List[SourceDocument]) -> FieldProfile:
    observed: "OrderedDict[str, List[DocumentValue]]" = OrderedDict()
    for document in documents:
        for name, value in document.items():
            observed.setdefault(name, []).append(value)

    fields = []
    for name, values in observed.items():
        types = Counter(infer_value_type(value) for value in values if not value.is_null)
        inferred = types.most_common(1)[0][0] if types else InferredType.UNKNOWN
        samples = []
        for value in values:
            if len(samples) >= SAMPLE_VALUE_LIMIT:
                break
            preview = value.preview(SAMPLE_VALUE_LENGTH)
            if preview is not None:
                samples.append(preview)
        category = categorize_field(name)
        fields.append(
            FieldInfo(
                name=name,
                normalized_name=normalize_field_name(name),
                inferred_type=inferred,
                sample_values=tuple(samples),
                is_monetary=is_monetary_field(name),
                category=f"{category[0]}.{category[1]}" if category else None,
                occurrences=len(values),
            )
        )

    return FieldProfile(
        collection=collection,
        document_count=document_count,
        fields=tuple(fields),
        sample_documents=tuple(documents),
    )


def analyze_collection(
    store: DocumentStore,
    collection: str,
    bus: ProgressBus,
    sample_size: Optional[int] = None,
) -> FieldProfile:
    sample_size = sample_size or settings.pipeline_sample_size
    bus.log(LogLevel.INFO, f"Starting analysis of collection: {collection}")

    total = store.count(collection)
    bus.log(LogLevel.DATA, f"Found {total} total documents", {"collection": collection})
    if total == 0:
        raise EmptyCollectionError(collection)

    raw_sample = store.sample(collection, sample_size)
    if not raw_sample:
        raise EmptyCollectionError(collection)

    documents = documents_from_raw(raw_sample, collection)
    profile = build_field_profile(collection, total, documents)

    bus.log(
        LogLevel.SUCCESS,
        "Field analysis complete",
        {
            "collection": collection,
            "sampleSize": len(documents),
            "totalFields": len(profile.fields),
            "monetaryFields": len(profile.monetary_fields),
            "fields": [
                {"name": info.name, "type": info.inferred_type.value, "monetary": info.is_monetary}
                for info in profile.fields
            ],
        },
    )
    return profile
