"""
Pipeline orchestrator.

Runs discovery and then processes the tenant's collections one at a time:
analyze -> map -> transform -> validate/dedup -> load. A failing collection is
recorded and skipped; only fatal conditions (a store unreachable at start,
no collections at all) abort the run.

State lives in an explicit ``PipelineContext`` that is passed to each stage,
and every stage reports through the context's progress bus.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from datamapper.core.config import settings
from datamapper.db.relational_store import RelationalStore
from datamapper.domain.mapping.analyzer import analyze_collection
from datamapper.domain.mapping.discovery import discover_collections
from datamapper.domain.mapping.errors import (
    DocumentStoreError,
    EmptyCollectionError,
    PipelineFatalError,
    StoreUnavailableError,
)
from datamapper.domain.mapping.loader import load_table
from datamapper.domain.mapping.models import (
    CollectionResult,
    LogLevel,
    PipelineResult,
    ProgressEvent,
    TableLoadResult,
)
from datamapper.domain.mapping.progress import ProgressBus, ProgressSnapshot
from datamapper.domain.mapping.resolver import MappingResolver
from datamapper.domain.mapping.transformer import transform_documents
from datamapper.domain.mapping.validation import validate_and_dedup
from datamapper.domain.mapping.values import documents_from_raw
from datamapper.integrations.document_store import DocumentStore

logger = logging.getLogger(__name__)

DISCOVERY_PERCENT = 5.0
COLLECTIONS_START_PERCENT = 10.0
COLLECTIONS_SPAN_PERCENT = 85.0


class PipelineState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING_COLLECTION = "processing_collection"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class CollectionStage(str, Enum):
    ANALYZING = "analyzing"
    MAPPING = "mapping"
    TRANSFORMING = "transforming"
    VALIDATING = "validating"
    LOADING = "loading"
    DONE = "done"
    FAILED = "failed"


# Stages that report progress, in execution order
COLLECTION_STAGES = (
    CollectionStage.ANALYZING,
    CollectionStage.MAPPING,
    CollectionStage.TRANSFORMING,
    CollectionStage.VALIDATING,
    CollectionStage.LOADING,
)

_TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.DISCOVERING},
    PipelineState.DISCOVERING: {PipelineState.PROCESSING_COLLECTION, PipelineState.FAILED},
    PipelineState.PROCESSING_COLLECTION: {PipelineState.AGGREGATING},
    PipelineState.AGGREGATING: {PipelineState.DONE},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


@dataclass
class PipelineContext:
    tenant_id: str
    bus: ProgressBus
    run_started_at: datetime
    started: float = field(default_factory=time.monotonic)
    state: PipelineState = PipelineState.IDLE
    collections: List[str] = field(default_factory=list)
    results: List[CollectionResult] = field(default_factory=list)

    def transition(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {new_state.value}")
        logger.debug("Pipeline %s: %s -> %s", self.tenant_id, self.state.value, new_state.value)
        self.state = new_state

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started


def collection_percentage(index: int, total: int, stage_index: int) -> float:
    """Monotonic progress: 10% .. 95% spread evenly across collections and their stages."""
    fraction = (index + stage_index / len(COLLECTION_STAGES)) / total
    return COLLECTIONS_START_PERCENT + COLLECTIONS_SPAN_PERCENT * fraction


class PipelineOrchestrator:
    def __init__(
        self,
        document_store: DocumentStore,
        relational_store: RelationalStore,
        resolver: MappingResolver,
        batch_size: Optional[int] = None,
        sample_size: Optional[int] = None,
        log_limit: Optional[int] = None,
        console: bool = True,
    ):
        self.document_store = document_store
        self.relational_store = relational_store
        self.resolver = resolver
        self.batch_size = batch_size or settings.pipeline_batch_size
        self.sample_size = sample_size or settings.pipeline_sample_size
        self.log_limit = log_limit or settings.progress_log_limit
        self.console = console

    def run(self, tenant_id: str, on_progress: Optional[Callable[[ProgressEvent], None]] = None) -> PipelineResult:
        """
        Map every collection of a tenant into the relational catalog.

        Raises:
            PipelineFatalError: a store is unreachable or the tenant has no collections.
        """
        bus = ProgressBus(log_limit=self.log_limit, console=self.console)
        if on_progress is not None:
            def forward(snapshot: ProgressSnapshot) -> None:
                if snapshot.current_log is not None:
                    on_progress(snapshot.current_log)
            bus.subscribe(forward)

        ctx = PipelineContext(
            tenant_id=tenant_id,
            bus=bus,
            run_started_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

        ctx.transition(PipelineState.DISCOVERING)
        bus.update_progress("Discovery", "Checking store connections", 0, {"tenantId": tenant_id})
        try:
            self._discover(ctx)
        except PipelineFatalError as exc:
            ctx.transition(PipelineState.FAILED)
            bus.log(LogLevel.ERROR, f"Pipeline failed: {exc}", {"tenantId": tenant_id})
            raise

        ctx.transition(PipelineState.PROCESSING_COLLECTION)
        for index, collection in enumerate(ctx.collections):
            ctx.results.append(self._process_collection(ctx, index, collection))

        ctx.transition(PipelineState.AGGREGATING)
        bus.update_progress("Aggregating", "Summarizing results", 95)
        result = self._aggregate(ctx)

        ctx.transition(PipelineState.DONE)
        bus.update_progress(
            "Complete",
            "Pipeline finished",
            100,
            {
                "totalCollections": result.total_collections,
                "processedCollections": result.processed_collections,
                "failedCollections": result.failed_collections,
                "totalRecordsInserted": result.total_records_inserted,
                "successRate": f"{result.success_rate}%",
                "processingTime": f"{result.processing_time_seconds:.2f}s",
            },
        )
        result.log = bus.history()
        return result

    def _discover(self, ctx: PipelineContext) -> None:
        self.document_store.ping()
        self.relational_store.ping()
        try:
            ctx.collections = discover_collections(self.document_store, ctx.tenant_id, ctx.bus)
        except DocumentStoreError as exc:
            raise StoreUnavailableError("document", f"Unable to list collections: {exc}") from exc
        ctx.bus.update_progress(
            "Discovery",
            f"Found {len(ctx.collections)} collections",
            DISCOVERY_PERCENT,
            {"collections": ctx.collections},
        )

    def _enter_stage(self, ctx: PipelineContext, index: int, collection: str, stage: CollectionStage) -> None:
        total = len(ctx.collections)
        ctx.bus.update_progress(
            f"Collection {index + 1}/{total}",
            f"{stage.value.capitalize()} {collection}",
            collection_percentage(index, total, COLLECTION_STAGES.index(stage)),
            {"collection": collection, "stage": stage.value},
        )

    def _process_collection(self, ctx: PipelineContext, index: int, collection: str) -> CollectionResult:
        started = time.monotonic()
        result = CollectionResult(collection=collection)
        bus = ctx.bus
        stage = CollectionStage.ANALYZING

        try:
            self._enter_stage(ctx, index, collection, stage)
            result.profile = analyze_collection(self.document_store, collection, bus, self.sample_size)

            stage = CollectionStage.MAPPING
            self._enter_stage(ctx, index, collection, stage)
            result.mapping = self.resolver.resolve(result.profile, bus, ctx.tenant_id)

            stage = CollectionStage.TRANSFORMING
            self._enter_stage(ctx, index, collection, stage)
            documents = documents_from_raw(self.document_store.load_all(collection), collection)
            result.documents = len(documents)
            transformed = transform_documents(
                documents, result.mapping, ctx.tenant_id, collection, ctx.run_started_at
            )
            bus.log(
                LogLevel.DATA,
                f"Transformed {len(documents)} documents into {transformed.total_records} records",
                {
                    "collection": collection,
                    "records": {table: len(records) for table, records in transformed.records.items()},
                    "insufficient": transformed.insufficient,
                },
            )

            stage = CollectionStage.VALIDATING
            self._enter_stage(ctx, index, collection, stage)
            reports = {table: validate_and_dedup(table, records) for table, records in transformed.records.items()}
            for table, report in reports.items():
                if report.invalid_count or report.duplicates_removed:
                    bus.log(
                        LogLevel.WARNING,
                        f"{table}: dropped {report.invalid_count} invalid and {report.duplicates_removed} duplicate records",
                        {
                            "table": table,
                            "invalidRecords": report.invalid_count,
                            "duplicatesRemoved": report.duplicates_removed,
                            "issues": [asdict(issue) for issue in report.issues[:10]],
                        },
                    )

            stage = CollectionStage.LOADING
            self._enter_stage(ctx, index, collection, stage)
            for table, report in reports.items():
                table_result = TableLoadResult(
                    table=table,
                    candidates=len(transformed.records[table]),
                    duplicates_removed=report.duplicates_removed,
                    invalid_records=report.invalid_count,
                    insufficient_dropped=transformed.insufficient.get(table, 0),
                )
                if report.clean:
                    load_table(
                        self.relational_store,
                        table,
                        report.clean,
                        bus,
                        batch_size=self.batch_size,
                        result=table_result,
                    )
                result.tables.append(table_result)

            result.success = any(not table.fatal and table.inserted > 0 for table in result.tables)
            self._log_collection_summary(bus, result)

        except EmptyCollectionError as exc:
            result.skipped = True
            result.error = exc.message
            bus.log(LogLevel.WARNING, f"Skipping {collection}: {exc.message}", {"collection": collection})
        except Exception as exc:
            result.error = str(exc)
            logger.debug("Collection %s failed during %s", collection, stage.value, exc_info=True)
            bus.log(
                LogLevel.ERROR,
                f"Collection {collection} failed during {stage.value}: {exc}",
                {"collection": collection, "stage": stage.value, "error": str(exc)},
            )

        result.elapsed_seconds = round(time.monotonic() - started, 3)
        return result

    def _log_collection_summary(self, bus: ProgressBus, result: CollectionResult) -> None:
        inserted = result.records_inserted
        # Fan-out (one document into several rows) can push this above 100%.
        insertion_rate = (100.0 * inserted / result.documents) if result.documents else 0.0
        bus.log(
            LogLevel.SUCCESS if result.success else LogLevel.WARNING,
            f"Collection {result.collection}: inserted {inserted} records from {result.documents} documents",
            {
                "collection": result.collection,
                "documents": result.documents,
                "inserted": inserted,
                "insertionRate": f"{insertion_rate:.1f}%",
                "tables": {
                    table.table: {
                        "attempted": table.attempted,
                        "inserted": table.inserted,
                        "errors": len(table.errors),
                        "validationRate": table.validation_rate,
                    }
                    for table in result.tables
                },
            },
        )

    def _aggregate(self, ctx: PipelineContext) -> PipelineResult:
        total = len(ctx.collections)
        succeeded = [result for result in ctx.results if result.success]
        # Every collection that ran to completion counts, even with zero rows inserted
        processed = sum(result.documents for result in ctx.results if result.error is None)
        inserted = sum(result.records_inserted for result in ctx.results)
        success_rate = 100.0 * inserted / processed if processed else 0.0
        return PipelineResult(
            tenant_id=ctx.tenant_id,
            total_collections=total,
            processed_collections=len(succeeded),
            failed_collections=total - len(succeeded),
            total_records_processed=processed,
            total_records_inserted=inserted,
            success_rate=f"{success_rate:.1f}",
            processing_time_seconds=round(ctx.elapsed_seconds, 3),
            results=list(ctx.results),
        )


def summarize_tables(result: PipelineResult) -> Dict[str, int]:
    """Inserted row counts per table across all collections of a run."""
    totals: Dict[str, int] = {}
    for collection in result.results:
        for table in collection.tables:
            totals[table.table] = totals.get(table.table, 0) + table.inserted
    return totals
