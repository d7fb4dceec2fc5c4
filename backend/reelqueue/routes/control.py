"""
Control endpoints for the operator UI.

HTTP adapter over the ingestion service, recipe compiler, orchestrator,
metrics engine and delete protocol. Collaborators live on app.state.

Error mapping:
- 400: invalid request (empty import, unknown recipe, bad params, nothing to run)
- 404: unknown file id
- 409: conflicting state (run already active, deletion already pending)
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from reelqueue.deletion.protocol import DeleteFailure, DeleteTicket, find_items
from reelqueue.jobs.errors import RunInProgressError, TaskListNotReadyError
from reelqueue.jobs.models import TASK_LIST_ADAPTER, MediaFile, TaskStatus
from reelqueue.monitoring.metrics import JobMetrics, compute_metrics
from reelqueue.recipes import RecipeError, compile_recipe, list_recipes
from reelqueue.services.ingestion import IngestionError
from reelqueue.transfer.errors import TransferError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/control", tags=["control"])


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class OperationResponse(BaseModel):
    """Generic response for operations."""

    success: bool
    message: str


class ImportRequest(BaseModel):
    """Request body for importing on-disk files."""

    model_config = ConfigDict(extra="forbid")

    paths: List[str]
    is_temp: bool = False


class UploadChunkRequest(BaseModel):
    """One base64 chunk of a path-less file."""

    model_config = ConfigDict(extra="forbid")

    file_name: str
    data_base64: str
    offset: int = Field(default=0, ge=0)


class UploadChunkResponse(BaseModel):
    path: str


class CompileRequest(BaseModel):
    """Request body for compiling a recipe over the ready source files."""

    model_config = ConfigDict(extra="forbid")

    recipe: str
    params: Dict[str, Any] = Field(default_factory=dict)


class RunRequest(BaseModel):
    """Request body for starting a run."""

    model_config = ConfigDict(extra="forbid")

    # Commit the trash phase without a second round trip
    confirm_trash: bool = True


class RunResponse(BaseModel):
    outcome: str
    failed_task_id: Optional[str] = None
    failure_reason: Optional[str] = None
    skipped_task_ids: List[str] = Field(default_factory=list)
    deleted_task_ids: List[str] = Field(default_factory=list)
    delete_failures: List[DeleteFailure] = Field(default_factory=list)
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class DeleteRequest(BaseModel):
    """Request body for staging a source-list deletion."""

    model_config = ConfigDict(extra="forbid")

    ids: List[str]


class PendingDeletionResponse(BaseModel):
    tickets: List[DeleteTicket] = Field(default_factory=list)
    delisted: List[str] = Field(default_factory=list)
    failures: List[DeleteFailure] = Field(default_factory=list)


class DeleteReportResponse(BaseModel):
    confirmed: List[str] = Field(default_factory=list)
    failures: List[DeleteFailure] = Field(default_factory=list)


class RecipeInfo(BaseModel):
    id: str
    name: str
    description: str
    params_schema: Dict[str, Any]


# ============================================================================
# SOURCE FILES
# ============================================================================

@router.post("/files/import", response_model=List[MediaFile])
async def import_files(body: ImportRequest, request: Request):
    """
    Import on-disk files and analyze each one.

    Files that fail analysis are returned with status "error".
    """
    ingestion = request.app.state.ingestion
    try:
        return await ingestion.import_paths(body.paths, is_temp=body.is_temp)
    except IngestionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/files/upload", response_model=UploadChunkResponse)
async def upload_chunk(body: UploadChunkRequest, request: Request):
    """Store one chunk of a path-less file; returns the stable destination."""
    sink = request.app.state.chunk_sink
    try:
        path = await sink.put_chunk(body.file_name, body.data_base64, body.offset)
    except TransferError as e:
        logger.warning(f"[TRANSFER] Upload chunk rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return UploadChunkResponse(path=path)


@router.get("/files", response_model=List[MediaFile])
async def list_files(request: Request):
    return request.app.state.registry.files()


@router.post("/files/delete/request", response_model=PendingDeletionResponse)
async def request_delete(body: DeleteRequest, request: Request):
    """
    Stage deletion of selected source files.

    Non-temp files are delisted immediately; temp files await confirm/cancel.
    """
    state = request.app.state
    if state.pending_deletion is not None:
        raise HTTPException(status_code=409, detail="A deletion is already awaiting confirmation")

    registry = state.registry
    unknown = [file_id for file_id in body.ids if not registry.has_file(file_id)]
    if unknown:
        raise HTTPException(status_code=404, detail=f"Unknown file id(s): {', '.join(unknown)}")

    pending = await state.delete_protocol.request(find_items(registry, body.ids))
    if not pending.is_empty:
        state.pending_deletion = pending

    return PendingDeletionResponse(
        tickets=pending.tickets,
        delisted=pending.delisted,
        failures=pending.failures,
    )


@router.post("/files/delete/confirm", response_model=DeleteReportResponse)
async def confirm_delete(request: Request):
    state = request.app.state
    pending = state.pending_deletion
    if pending is None:
        raise HTTPException(status_code=409, detail="No deletion is awaiting confirmation")

    state.pending_deletion = None
    report = await state.delete_protocol.confirm(pending)
    return DeleteReportResponse(confirmed=report.confirmed, failures=report.failures)


@router.post("/files/delete/cancel", response_model=OperationResponse)
async def cancel_delete(request: Request):
    state = request.app.state
    pending = state.pending_deletion
    if pending is None:
        return OperationResponse(success=True, message="Nothing to cancel")

    state.pending_deletion = None
    count = pending.size
    await state.delete_protocol.cancel(pending)
    return OperationResponse(success=True, message=f"Cancelled {count} staged deletion(s)")


# ============================================================================
# RECIPES / TASKS
# ============================================================================

@router.get("/recipes", response_model=List[RecipeInfo])
async def recipes():
    return [
        RecipeInfo(
            id=recipe.id,
            name=recipe.name,
            description=recipe.description,
            params_schema=recipe.params_model.model_json_schema(),
        )
        for recipe in list_recipes()
    ]


@router.post("/jobs/compile")
async def compile_job(body: CompileRequest, request: Request):
    """
    Compile a recipe over every ready (waiting) source file.

    Replaces the task list. Returns the compiled tasks.
    """
    state = request.app.state
    if state.orchestrator.is_running:
        raise HTTPException(status_code=409, detail="A run is already in progress")

    files = [f for f in state.registry.files() if f.status == TaskStatus.WAITING]
    if not files:
        raise HTTPException(status_code=400, detail="No ready source files to compile")

    try:
        tasks = compile_recipe(body.recipe, files, body.params)
    except RecipeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    state.registry.set_tasks(tasks)
    logger.info(f"Compiled recipe '{body.recipe}' into {len(tasks)} task(s)")
    return TASK_LIST_ADAPTER.dump_python(tasks, mode="json")


@router.get("/tasks")
async def list_tasks(request: Request):
    return TASK_LIST_ADAPTER.dump_python(request.app.state.registry.tasks(), mode="json")


@router.post("/jobs/run", response_model=RunResponse)
async def run_job(request: Request, body: Optional[RunRequest] = None):
    """
    Run the compiled task list to a terminal outcome.

    The trash phase is confirmed when confirm_trash is true, cancelled otherwise.
    """
    state = request.app.state
    body = body or RunRequest()

    if not state.registry.tasks():
        raise HTTPException(status_code=400, detail="No compiled tasks to run")

    async def confirm(_pending) -> bool:
        return body.confirm_trash

    try:
        report = await state.orchestrator.run(confirm_delete=confirm)
    except (RunInProgressError, TaskListNotReadyError) as e:
        raise HTTPException(status_code=409, detail=str(e))

    deletion = report.deletion
    return RunResponse(
        outcome=report.outcome.value,
        failed_task_id=report.failed_task_id,
        failure_reason=report.failure_reason,
        skipped_task_ids=report.skipped_task_ids,
        deleted_task_ids=deletion.confirmed if deletion else [],
        delete_failures=deletion.failures if deletion else [],
        tasks=TASK_LIST_ADAPTER.dump_python(state.registry.tasks(), mode="json"),
    )


@router.post("/jobs/cancel", response_model=OperationResponse)
async def cancel_job(request: Request):
    cancelled = await request.app.state.orchestrator.cancel()
    if not cancelled:
        return OperationResponse(success=False, message="No run is active")
    logger.info("Run cancelled via control endpoint")
    return OperationResponse(success=True, message="Cancellation requested")


# ============================================================================
# MONITORING
# ============================================================================

@router.get("/metrics", response_model=JobMetrics)
async def metrics(request: Request):
    state = request.app.state
    registry = state.registry
    now = registry.end_time or state.clock()
    return compute_metrics(registry.observed_items(), registry.phase, registry.start_time, now)


@router.get("/log")
async def log(request: Request):
    return {"lines": request.app.state.registry.log()}


@router.post("/reset", response_model=OperationResponse)
async def reset(request: Request):
    """Clear every list, the log and the run state."""
    state = request.app.state
    if state.orchestrator.is_running:
        raise HTTPException(status_code=409, detail="Cannot reset while a run is in progress")

    if state.pending_deletion is not None:
        await state.delete_protocol.cancel(state.pending_deletion)
        state.pending_deletion = None

    state.registry.clear_all()
    logger.info("[LIFECYCLE] State reset via control endpoint")
    return OperationResponse(success=True, message="State cleared")
