"""
Endpoints that trigger and inspect tenant data mapping runs.
"""
import json
import logging
import queue
import threading
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from datamapper.api.dependencies import get_document_store, get_orchestrator, get_relational_store
from datamapper.api.schemas.shared import (
    ClearMappedResponse,
    ClearTableResult,
    MappingStatusResponse,
    MapResponse,
    PipelineResultModel,
    ProgressEventModel,
)
from datamapper.core.config import settings
from datamapper.db.catalog import list_catalog_tables
from datamapper.db.relational_store import RelationalStore
from datamapper.domain.mapping.errors import NoCollectionsError, PipelineError, StoreUnavailableError
from datamapper.domain.mapping.models import ProgressEvent
from datamapper.domain.mapping.orchestrator import PipelineOrchestrator
from datamapper.integrations.document_store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data", tags=["data-mapping"])


def _status_code_for(exc: Exception) -> int:
    if isinstance(exc, NoCollectionsError):
        return 404
    if isinstance(exc, StoreUnavailableError):
        return 503
    return 500


def _sse(frame: Dict[str, Any]) -> str:
    return f"data: {json.dumps(frame, default=str)}\n\n"


@router.post("/map/{tenant_id}", response_model=MapResponse)
async def map_tenant_data(tenant_id: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        result = await run_in_threadpool(orchestrator.run, tenant_id)
    except PipelineError as exc:
        raise HTTPException(status_code=_status_code_for(exc), detail=str(exc))
    except Exception as exc:
        logger.exception("Mapping run failed for tenant %s", tenant_id)
        raise HTTPException(status_code=500, detail=f"Data mapping failed: {exc}")

    return MapResponse(
        success=True,
        message="Data mapping completed successfully",
        tenant_id=tenant_id,
        result=PipelineResultModel.from_result(result),
    )


@router.get("/map/{tenant_id}/stream")
def stream_tenant_mapping(tenant_id: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """
    Run the pipeline and stream progress as server-sent events.

    Frames: one ``connected``, any number of ``progress``, then ``complete`` or
    ``error``. Progress frames go through a bounded queue; when the client
    falls behind, frames are dropped (and counted) instead of blocking the run.
    """
    frames: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=settings.stream_queue_size)
    finished = threading.Event()
    state: Dict[str, Any] = {"dropped": 0, "terminal": None}

    def on_progress(event: ProgressEvent) -> None:
        frame = {"type": "progress", **ProgressEventModel.from_event(event).to_wire()}
        try:
            frames.put_nowait(frame)
        except queue.Full:
            state["dropped"] += 1

    def worker() -> None:
        try:
            result = orchestrator.run(tenant_id, on_progress=on_progress)
            state["terminal"] = {"type": "complete", "result": PipelineResultModel.from_result(result).to_wire()}
        except Exception as exc:
            if not isinstance(exc, PipelineError):
                logger.exception("Streaming mapping run failed for tenant %s", tenant_id)
            state["terminal"] = {"type": "error", "error": str(exc), "status": _status_code_for(exc)}
        finally:
            finished.set()

    def event_stream():
        yield _sse({"type": "connected", "tenantId": tenant_id})
        threading.Thread(target=worker, name=f"mapping-{tenant_id}", daemon=True).start()
        while True:
            try:
                frame = frames.get(timeout=0.25)
            except queue.Empty:
                if finished.is_set() and frames.empty():
                    break
                continue
            yield _sse(frame)

        terminal = dict(state["terminal"])
        if state["dropped"]:
            terminal["droppedEvents"] = state["dropped"]
            logger.warning("Dropped %d progress frames for tenant %s", state["dropped"], tenant_id)
        yield _sse(terminal)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/mapping-status/{tenant_id}", response_model=MappingStatusResponse)
async def get_mapping_status(
    tenant_id: str,
    relational_store: RelationalStore = Depends(get_relational_store),
    document_store: DocumentStore = Depends(get_document_store),
):
    def collect() -> MappingStatusResponse:
        tables = {table: relational_store.count_rows(table, tenant_id) for table in list_catalog_tables()}
        collections = {name: document_store.count(name) for name in document_store.list_collections(tenant_id)}
        return MappingStatusResponse(
            success=True,
            tenant_id=tenant_id,
            tables=tables,
            collections=collections,
            total_rows=sum(tables.values()),
        )

    try:
        return await run_in_threadpool(collect)
    except PipelineError as exc:
        raise HTTPException(status_code=_status_code_for(exc), detail=str(exc))
    except Exception as exc:
        logger.exception("Failed to read mapping status for tenant %s", tenant_id)
        raise HTTPException(status_code=500, detail=f"Failed to get mapping status: {exc}")


@router.delete("/clear-mapped/{tenant_id}", response_model=ClearMappedResponse)
async def clear_mapped_data(tenant_id: str, relational_store: RelationalStore = Depends(get_relational_store)):
    try:
        outcome = await run_in_threadpool(relational_store.clear_tenant, tenant_id)
    except Exception as exc:
        logger.exception("Failed to clear mapped data for tenant %s", tenant_id)
        raise HTTPException(status_code=500, detail=f"Failed to clear mapped data: {exc}")

    tables = {name: ClearTableResult(**entry) for name, entry in outcome.items()}
    return ClearMappedResponse(
        success=all(entry.success for entry in tables.values()),
        tenant_id=tenant_id,
        total_deleted=sum(entry.deleted for entry in tables.values()),
        tables=tables,
    )
