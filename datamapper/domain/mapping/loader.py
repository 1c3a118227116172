"""
Batch loader: writes clean records to the relational store in fixed-size batches.

A failed batch is recorded and loading continues with the next one. A
connection-level failure marks the table result as fatal but the remaining
batches are still attempted.
"""
import logging
import math
from typing import List, Optional

from datamapper.core.config import settings
from datamapper.db.relational_store import RelationalStore
from datamapper.domain.mapping.models import (
    BatchErrorKind,
    BatchResult,
    BatchWriteOutcome,
    CandidateRecord,
    LogLevel,
    TableLoadResult,
)
from datamapper.domain.mapping.progress import ProgressBus

logger = logging.getLogger(__name__)


def partition(records: List[CandidateRecord], batch_size: int) -> List[List[CandidateRecord]]:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [records[start:start + batch_size] for start in range(0, len(records), batch_size)]


def load_table(
    store: RelationalStore,
    table: str,
    records: List[CandidateRecord],
    bus: ProgressBus,
    batch_size: Optional[int] = None,
    result: Optional[TableLoadResult] = None,
) -> TableLoadResult:
    batch_size = batch_size or settings.pipeline_batch_size
    result = result or TableLoadResult(table=table)
    batches = partition(records, batch_size)
    total_batches = math.ceil(len(records) / batch_size) if records else 0

    for index, batch in enumerate(batches):
        rows = [dict(record.values) for record in batch]
        try:
            outcome = store.insert_batch(table, rows)
        except Exception as exc:
            logger.warning("Batch %d for %s raised: %s", index + 1, table, exc)
            outcome = BatchWriteOutcome(inserted_count=0, error=str(exc), error_kind=BatchErrorKind.WRITE)

        batch_result = BatchResult(
            table=table,
            batch_index=index,
            attempted=len(rows),
            inserted=outcome.inserted_count,
            error=outcome.error,
            error_kind=outcome.error_kind,
        )
        result.batches.append(batch_result)
        result.attempted += batch_result.attempted
        result.inserted += batch_result.inserted

        if outcome.error:
            if outcome.error_kind is BatchErrorKind.CONNECTION:
                result.fatal = True
            bus.log(
                LogLevel.ERROR,
                f"Batch {index + 1}/{total_batches} insert failed for {table}",
                {
                    "table": table,
                    "batch": index + 1,
                    "attempted": len(rows),
                    "errorKind": outcome.error_kind.value if outcome.error_kind else None,
                    "error": outcome.error,
                },
            )
        else:
            bus.log(
                LogLevel.SUCCESS,
                f"Batch {index + 1}/{total_batches}: inserted {outcome.inserted_count} records into {table}",
                {"table": table, "batch": index + 1, "inserted": outcome.inserted_count},
            )

    return result
