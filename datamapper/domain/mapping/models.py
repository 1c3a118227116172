"""
Data structures passed between the mapping pipeline stages.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from datamapper.domain.mapping.values import SourceDocument


class InferredType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    OBJECT = "object"
    UNKNOWN = "unknown"


class TransformKind(str, Enum):
    NONE = "none"
    DATE_FORMAT = "date_format"
    CURRENCY_FORMAT = "currency_format"
    ID_GENERATION = "id_generation"

    @classmethod
    def parse(cls, value: Any) -> "TransformKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "none").strip().lower())
        except ValueError:
            return cls.NONE


class MappingSource(str, Enum):
    MODEL = "model"
    RULE_BASED = "rule_based"


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    PROGRESS = "progress"
    DATA = "data"


@dataclass(frozen=True)
class FieldInfo:
    """What the analyzer learned about one source field."""
    name: str
    normalized_name: str
    inferred_type: InferredType
    sample_values: Tuple[str, ...] = ()
    is_monetary: bool = False
    category: Optional[str] = None  # "<entity>.<kind>", e.g. "vendor.name"
    occurrences: int = 0


@dataclass(frozen=True)
class FieldProfile:
    collection: str
    document_count: int
    fields: Tuple[FieldInfo, ...]
    sample_documents: Tuple[SourceDocument, ...] = ()

    @property
    def field_names(self) -> List[str]:
        return [info.name for info in self.fields]

    @property
    def monetary_fields(self) -> List[str]:
        return [info.name for info in self.fields if info.is_monetary]

    def get(self, name: str) -> Optional[FieldInfo]:
        for info in self.fields:
            if info.name == name:
                return info
        return None


@dataclass(frozen=True)
class FieldMapping:
    source_field: str
    target_column: str
    transform: TransformKind = TransformKind.NONE
    confidence: Optional[float] = None
    reason: Optional[str] = None


@dataclass
class TableTarget:
    table_name: str
    field_mappings: List[FieldMapping]
    confidence: Optional[float] = None
    reasoning: str = ""
    relationships: List[Dict[str, str]] = field(default_factory=list)

    @property
    def mapped_columns(self) -> List[str]:
        return [mapping.target_column for mapping in self.field_mappings]


@dataclass(frozen=True)
class UnmappedField:
    field_name: str
    reason: str = ""
    suggestions: Tuple[str, ...] = ()


@dataclass
class TableMapping:
    tables: List[TableTarget]
    unmapped_fields: List[UnmappedField] = field(default_factory=list)
    source: MappingSource = MappingSource.MODEL
    model: Optional[str] = None

    @property
    def table_names(self) -> List[str]:
        return [table.table_name for table in self.tables]

    @property
    def confidence(self) -> Optional[float]:
        """Mean table confidence; None when any table has no score (rule-based output)."""
        scores = [table.confidence for table in self.tables]
        if not scores or any(score is None for score in scores):
            return None
        return sum(scores) / len(scores)


@dataclass
class CandidateRecord:
    """One transformed row for a target table."""
    table: str
    tenant_id: str
    source_doc_id: str
    values: Dict[str, Any]

    def get(self, column: str) -> Any:
        return self.values.get(column)


class BatchErrorKind(str, Enum):
    DUPLICATE = "duplicate"
    CONNECTION = "connection"
    WRITE = "write"


@dataclass(frozen=True)
class BatchWriteOutcome:
    """What the relational store reports for one insert call."""
    inserted_count: int
    error: Optional[str] = None
    error_kind: Optional[BatchErrorKind] = None


@dataclass(frozen=True)
class BatchResult:
    table: str
    batch_index: int
    attempted: int
    inserted: int
    error: Optional[str] = None
    error_kind: Optional[BatchErrorKind] = None


@dataclass
class TableLoadResult:
    table: str
    candidates: int = 0
    attempted: int = 0
    inserted: int = 0
    batches: List[BatchResult] = field(default_factory=list)
    fatal: bool = False
    duplicates_removed: int = 0
    invalid_records: int = 0
    insufficient_dropped: int = 0

    @property
    def errors(self) -> List[str]:
        return [batch.error for batch in self.batches if batch.error]

    @property
    def validation_rate(self) -> float:
        if not self.candidates:
            return 0.0
        return round(100.0 * (self.candidates - self.invalid_records) / self.candidates, 1)


@dataclass
class CollectionResult:
    collection: str
    success: bool = False
    documents: int = 0
    profile: Optional[FieldProfile] = None
    mapping: Optional[TableMapping] = None
    tables: List[TableLoadResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    error: Optional[str] = None
    skipped: bool = False

    @property
    def records_inserted(self) -> int:
        return sum(table.inserted for table in self.tables)

    @property
    def batches(self) -> List[BatchResult]:
        return [batch for table in self.tables for batch in table.batches]


@dataclass(frozen=True)
class ProgressEvent:
    timestamp: datetime
    level: LogLevel
    message: str
    detail: Dict[str, Any]
    stage: str
    step: str
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "detail": self.detail,
            "stage": self.stage,
            "step": self.step,
            "percentage": self.percentage,
        }


@dataclass
class PipelineResult:
    tenant_id: str
    total_collections: int
    processed_collections: int
    failed_collections: int
    total_records_processed: int
    total_records_inserted: int
    success_rate: str
    processing_time_seconds: float
    results: List[CollectionResult] = field(default_factory=list)
    log: List[ProgressEvent] = field(default_factory=list)

    @property
    def success(self) -> bool:
        # Fatal conditions raise instead of producing a result.
        return True
