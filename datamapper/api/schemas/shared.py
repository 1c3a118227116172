"""
Wire models for the mapping API.

Responses use camelCase field names; internal pipeline dataclasses are
converted through the ``from_*`` constructors below.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from datamapper.domain.mapping.models import (
    BatchResult,
    CollectionResult,
    PipelineResult,
    ProgressEvent,
    TableLoadResult,
    TableMapping,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ProgressEventModel(CamelModel):
    timestamp: datetime
    level: str
    message: str
    detail: Dict[str, Any] = Field(default_factory=dict)
    stage: str
    step: str
    percentage: float

    @classmethod
    def from_event(cls, event: ProgressEvent) -> "ProgressEventModel":
        return cls(
            timestamp=event.timestamp,
            level=event.level.value,
            message=event.message,
            detail=event.detail,
            stage=event.stage,
            step=event.step,
            percentage=event.percentage,
        )


class FieldMappingModel(CamelModel):
    source_field: str
    target_column: str
    transform: str
    confidence: Optional[float] = None


class TableTargetModel(CamelModel):
    table_name: str
    confidence: Optional[float] = None
    reasoning: str = ""
    field_mappings: List[FieldMappingModel] = Field(default_factory=list)
    relationships: List[Dict[str, str]] = Field(default_factory=list)


class UnmappedFieldModel(CamelModel):
    field_name: str
    reason: str = ""
    suggestions: List[str] = Field(default_factory=list)


class TableMappingModel(CamelModel):
    source: str
    model: Optional[str] = None
    confidence: Optional[float] = None
    tables: List[TableTargetModel] = Field(default_factory=list)
    unmapped_fields: List[UnmappedFieldModel] = Field(default_factory=list)

    @classmethod
    def from_mapping(cls, mapping: TableMapping) -> "TableMappingModel":
        return cls(
            source=mapping.source.value,
            model=mapping.model,
            confidence=mapping.confidence,
            tables=[
                TableTargetModel(
                    table_name=table.table_name,
                    confidence=table.confidence,
                    reasoning=table.reasoning,
                    field_mappings=[
                        FieldMappingModel(
                            source_field=fm.source_field,
                            target_column=fm.target_column,
                            transform=fm.transform.value,
                            confidence=fm.confidence,
                        )
                        for fm in table.field_mappings
                    ],
                    relationships=table.relationships,
                )
                for table in mapping.tables
            ],
            unmapped_fields=[
                UnmappedFieldModel(field_name=item.field_name, reason=item.reason, suggestions=list(item.suggestions))
                for item in mapping.unmapped_fields
            ],
        )


class BatchResultModel(CamelModel):
    batch_index: int
    attempted: int
    inserted: int
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def from_batch(cls, batch: BatchResult) -> "BatchResultModel":
        return cls(
            batch_index=batch.batch_index,
            attempted=batch.attempted,
            inserted=batch.inserted,
            error=batch.error,
            error_kind=batch.error_kind.value if batch.error_kind else None,
        )


class TableResultModel(CamelModel):
    table: str
    attempted: int
    inserted: int
    errors: List[str] = Field(default_factory=list)
    fatal: bool = False
    duplicates_removed: int = 0
    invalid_records: int = 0
    insufficient_dropped: int = 0
    validation_rate: float = 0.0
    batches: List[BatchResultModel] = Field(default_factory=list)

    @classmethod
    def from_table(cls, table: TableLoadResult) -> "TableResultModel":
        return cls(
            table=table.table,
            attempted=table.attempted,
            inserted=table.inserted,
            errors=table.errors,
            fatal=table.fatal,
            duplicates_removed=table.duplicates_removed,
            invalid_records=table.invalid_records,
            insufficient_dropped=table.insufficient_dropped,
            validation_rate=table.validation_rate,
            batches=[BatchResultModel.from_batch(batch) for batch in table.batches],
        )


class CollectionResultModel(CamelModel):
    collection: str
    success: bool
    skipped: bool = False
    documents: int = 0
    records_inserted: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None
    mapping: Optional[TableMappingModel] = None
    tables: List[TableResultModel] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: CollectionResult) -> "CollectionResultModel":
        return cls(
            collection=result.collection,
            success=result.success,
            skipped=result.skipped,
            documents=result.documents,
            records_inserted=result.records_inserted,
            elapsed_seconds=result.elapsed_seconds,
            error=result.error,
            mapping=TableMappingModel.from_mapping(result.mapping) if result.mapping else None,
            tables=[TableResultModel.from_table(table) for table in result.tables],
        )


class PipelineResultModel(CamelModel):
    tenant_id: str
    total_collections: int
    processed_collections: int
    failed_collections: int
    total_records_processed: int
    total_records_inserted: int
    success_rate: str
    processing_time_seconds: float
    per_collection_results: List[CollectionResultModel] = Field(default_factory=list)
    log: List[ProgressEventModel] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: PipelineResult) -> "PipelineResultModel":
        return cls(
            tenant_id=result.tenant_id,
            total_collections=result.total_collections,
            processed_collections=result.processed_collections,
            failed_collections=result.failed_collections,
            total_records_processed=result.total_records_processed,
            total_records_inserted=result.total_records_inserted,
            success_rate=result.success_rate,
            processing_time_seconds=result.processing_time_seconds,
            per_collection_results=[CollectionResultModel.from_result(item) for item in result.results],
            log=[ProgressEventModel.from_event(event) for event in result.log],
        )


class MapResponse(CamelModel):
    success: bool
    message: str
    tenant_id: str
    result: PipelineResultModel


class MappingStatusResponse(CamelModel):
    success: bool
    tenant_id: str
    tables: Dict[str, int] = Field(default_factory=dict)
    collections: Dict[str, int] = Field(default_factory=dict)
    total_rows: int = 0


class ClearTableResult(CamelModel):
    success: bool
    deleted: int = 0
    error: Optional[str] = None


class ClearMappedResponse(CamelModel):
    success: bool
    tenant_id: str
    total_deleted: int = 0
    tables: Dict[str, ClearTableResult] = Field(default_factory=dict)
