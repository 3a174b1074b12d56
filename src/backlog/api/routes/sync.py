"""Sync trigger, status, failures, cache and history routes."""
import hmac
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backlog.config import Settings, get_settings
from backlog.models.sync import SyncHistory, SyncState, SyncStatus, TriggerType

router = APIRouter()


class SyncTriggerResponse(BaseModel):
    message: str
    status: SyncStatus


class TransformFailureResponse(BaseModel):
    record_id: str
    identifier: str
    error: str


class SyncHistoryResponse(BaseModel):
    id: int
    status: str
    trigger_type: str
    triggered_by: Optional[int]
    started_at: datetime
    completed_at: Optional[datetime]
    duration_ms: Optional[int]
    items_synced: int
    items_failed: int
    error_message: Optional[str]
    error_code: Optional[str]


def get_sync_service(request: Request):
    """The app's single SyncService instance."""
    return request.app.state.sync_service


def get_history_recorder(request: Request):
    return request.app.state.history


def _provided_token(request: Request) -> Optional[str]:
    """Token from `Authorization: Bearer ...` or `X-Sync-Trigger-Token`."""
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[len("bearer "):].strip() or None
    header = request.headers.get("x-sync-trigger-token", "").strip()
    return header or None


def _required_token(settings: Settings) -> Optional[str]:
    return (settings.sync_trigger_token or "").strip() or None


def _token_accepted(request: Request, required: str) -> bool:
    provided = _provided_token(request)
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), required.encode("utf-8"))


@router.get("/status", response_model=SyncStatus)
def sync_status(
    request: Request,
    service=Depends(get_sync_service),
    settings: Settings = Depends(get_settings),
):
    """
    Return the current sync status.

    When SYNC_TRIGGER_TOKEN is configured, error_message is hidden from
    callers that don't present the token.
    """
    status = service.get_status()
    required = _required_token(settings)
    if required and not _token_accepted(request, required):
        status.error_message = None
    return status


@router.post("/trigger", status_code=202, response_model=SyncTriggerResponse)
def trigger_sync(
    request: Request,
    background_tasks: BackgroundTasks,
    service=Depends(get_sync_service),
    settings: Settings = Depends(get_settings),
):
    """
    Trigger a manual sync. Returns 202 immediately; the sync runs in the
    background. 409 with the current status if a sync is already running.
    """
    required = _required_token(settings)
    if required and not _token_accepted(request, required):
        raise HTTPException(
            status_code=403, detail={"message": "Forbidden", "code": "FORBIDDEN"}
        )

    status = service.get_status()
    if status.state is SyncState.SYNCING:
        return JSONResponse(status_code=409, content=jsonable_encoder(status))

    background_tasks.add_task(service.run, TriggerType.MANUAL)
    return SyncTriggerResponse(message="Sync started", status=status)


@router.get("/failures", response_model=List[TransformFailureResponse])
def transform_failures(service=Depends(get_sync_service)):
    """Issues that failed to transform during the most recent run."""
    return [
        TransformFailureResponse(record_id=f.record_id, identifier=f.identifier, error=f.error)
        for f in service.get_last_transform_failures()
    ]


@router.delete("/cache", status_code=204)
def clear_cache(service=Depends(get_sync_service)):
    """Drop the in-memory backlog cache. The next read falls back to Linear."""
    service.clear_cache()
    return Response(status_code=204)


@router.get("/history", response_model=List[SyncHistoryResponse])
def sync_history(limit: int = 50, history=Depends(get_history_recorder)):
    """Recent sync runs, newest first (limit clamped to 1..200)."""
    entries: List[SyncHistory] = history.list_entries(limit=limit)
    return [SyncHistoryResponse(**entry.model_dump()) for entry in entries]
