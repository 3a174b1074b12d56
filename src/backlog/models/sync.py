"""Sync status snapshot, per-record failures, and the sync history audit table."""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class SyncErrorCode(str, Enum):
    CONFIG_ERROR = "CONFIG_ERROR"
    API_UNAVAILABLE = "API_UNAVAILABLE"
    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    TRANSFORM_FAILED = "TRANSFORM_FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


class TriggerType(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    STARTUP = "startup"


class SyncStatus(BaseModel):
    """Observable state of the sync engine. Handed out as copies only."""

    state: SyncState = SyncState.IDLE
    last_synced_at: Optional[datetime] = None
    item_count: Optional[int] = None
    items_synced: Optional[int] = None
    items_failed: Optional[int] = None
    error_message: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None


@dataclass
class TransformFailure:
    """One Linear issue that could not be turned into a BacklogItem."""
    record_id: str
    identifier: str
    error: str


class SyncHistory(SQLModel, table=True):
    """Records each accepted sync run for audit and debugging."""

    __tablename__ = "sync_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    status: str = "syncing"  # "syncing", "success", "partial", "error"
    trigger_type: str = TriggerType.MANUAL.value
    triggered_by: Optional[int] = None
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    items_synced: int = 0
    items_failed: int = 0
    error_message: Optional[str] = None
    error_code: Optional[str] = None
