"""Backlog listing route, served from the sync cache."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from backlog.config import Settings, get_settings
from backlog.linear.errors import LinearConfigError, LinearError
from backlog.models.backlog import BacklogItem
from backlog.sync.classifier import classify_sync_error

router = APIRouter()


class BacklogResponse(BaseModel):
    items: List[BacklogItem]
    total_count: int
    source: str  # "cache" or "live"


def get_backlog_service(request: Request):
    return request.app.state.backlog_service


@router.get("", response_model=BacklogResponse)
async def list_backlog(
    backlog=Depends(get_backlog_service),
    settings: Settings = Depends(get_settings),
):
    """List backlog items. Reads the sync cache, or Linear directly before the first sync."""
    try:
        items, source = await backlog.get_items(settings.linear_project_id)
    except LinearConfigError as exc:
        raise HTTPException(
            status_code=503, detail={"message": str(exc), "code": "CONFIG_ERROR"}
        )
    except LinearError as exc:
        classified = classify_sync_error(exc)
        raise HTTPException(
            status_code=502,
            detail={"message": classified.message, "code": classified.code.value},
        )
    return BacklogResponse(items=items, total_count=len(items), source=source)
