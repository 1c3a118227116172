"""
Typed representation of schema-less source documents.

Documents arrive from the document store as arbitrary key/value maps. Each
value is wrapped in a small tagged union so the transform stage can coerce
explicitly instead of guessing at Python types.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

DOCUMENT_ID_FIELD = "_id"


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    NULL = "null"


@dataclass(frozen=True)
class DocumentValue:
    kind: ValueKind
    raw: Any = None

    @classmethod
    def of(cls, value: Any) -> "DocumentValue":
        """Tag a raw driver value."""
        if isinstance(value, DocumentValue):
            return value
        if value is None:
            return NULL_VALUE
        # bool is an int subclass, check it first
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if isinstance(value, (datetime, date)):
            return cls(ValueKind.DATE, value)
        if isinstance(value, (int, Decimal)):
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, float):
            if math.isnan(value):
                return NULL_VALUE
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, (dict, list, tuple)):
            return cls(ValueKind.OBJECT, value)
        # BSON scalars (Decimal128, Int64, ObjectId) expose a usable str() or to_decimal()
        to_decimal = getattr(value, "to_decimal", None)
        if callable(to_decimal):
            return cls(ValueKind.NUMBER, to_decimal())
        return cls(ValueKind.STRING, str(value))

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def as_text(self) -> Optional[str]:
        if self.is_null:
            return None
        if self.kind is ValueKind.DATE:
            return self.raw.isoformat()
        return str(self.raw).strip()

    def preview(self, limit: int = 100) -> Optional[str]:
        text = self.as_text()
        if text is None:
            return None
        return text[:limit]


NULL_VALUE = DocumentValue(ValueKind.NULL, None)


@dataclass(frozen=True)
class SourceDocument:
    """One document read from a tenant collection."""
    doc_id: str
    fields: Mapping[str, DocumentValue]

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], fallback_id: Optional[str] = None) -> "SourceDocument":
        doc_id = raw.get(DOCUMENT_ID_FIELD)
        fields: Dict[str, DocumentValue] = {}
        for key, value in raw.items():
            if key == DOCUMENT_ID_FIELD:
                continue
            fields[str(key)] = DocumentValue.of(value)
        return cls(doc_id=str(doc_id) if doc_id is not None else (fallback_id or ""), fields=fields)

    def get(self, field_name: str) -> DocumentValue:
        return self.fields.get(field_name, NULL_VALUE)

    def items(self) -> Iterator[Tuple[str, DocumentValue]]:
        return iter(self.fields.items())

    def to_plain(self) -> Dict[str, Any]:
        """Plain dict without the document identifier (used for prompt samples)."""
        return {key: value.raw for key, value in self.fields.items()}


def documents_from_raw(raw_documents: List[Mapping[str, Any]], collection: str) -> List[SourceDocument]:
    return [
        SourceDocument.from_raw(raw, fallback_id=f"{collection}:{index}")
        for index, raw in enumerate(raw_documents)
    ]
