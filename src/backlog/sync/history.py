"""Sync history audit log: one SyncHistory row per accepted sync run."""
from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, select

from backlog.models.sync import SyncHistory

MAX_LIMIT = 200
DEFAULT_LIMIT = 50


class SyncHistoryRecorder:
    """Writes and reads SyncHistory rows."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def start(self, trigger_type: str, triggered_by: Optional[int] = None) -> int:
        """Insert a row with status="syncing" and return its id."""
        entry = SyncHistory(
            status="syncing",
            trigger_type=trigger_type,
            triggered_by=triggered_by,
            started_at=datetime.now(timezone.utc),
        )
        with Session(self.engine) as s:
            s.add(entry)
            s.commit()
            s.refresh(entry)
        return entry.id

    def complete(
        self,
        entry_id: int,
        *,
        status: str,
        duration_ms: int,
        items_synced: int = 0,
        items_failed: int = 0,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        with Session(self.engine) as s:
            entry = s.get(SyncHistory, entry_id)
            if entry is None:
                return
            entry.status = status
            entry.completed_at = datetime.now(timezone.utc)
            entry.duration_ms = duration_ms
            entry.items_synced = items_synced
            entry.items_failed = items_failed
            entry.error_message = error_message
            entry.error_code = error_code
            s.add(entry)
            s.commit()

    def list_entries(self, limit: int = DEFAULT_LIMIT) -> List[SyncHistory]:
        """Newest first. `limit` is clamped to 1..200."""
        limit = max(1, min(limit, MAX_LIMIT))
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncHistory)
                    .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                    .limit(limit)
                ).all()
            )
