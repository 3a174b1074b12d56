"""
SyncService: mirrors one Linear project into an in-memory backlog cache.

Flow for a single run:
  1. Concurrency guard: skip if a run is already syncing, else state="syncing"
  2. Open a SyncHistory row (best effort)
  3. Check LINEAR_PROJECT_ID (missing → CONFIG_ERROR, no network call)
  4. Page through all project issues, 50 per request, in cursor order
  5. Transform the whole record set once → sort the successful items
  6. Aggregate into success / partial / error and apply to status + cache
  7. Complete the SyncHistory row

Fetch errors are classified and recorded in the status; run() never raises
them. The previous cache survives every failed run (stale data beats no
data). Only a run with at least one usable item, or a genuinely empty
project, replaces it.

All engine state sits behind one threading.Lock. The guard check-and-set has
no await in between, so it holds for asyncio tasks and OS threads alike.
Readers always get copies.
"""
import inspect
import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from backlog.config import Settings, get_settings
from backlog.linear.transformers import transform_all
from backlog.models.backlog import BacklogItem
from backlog.models.sync import (
    SyncErrorCode,
    SyncState,
    SyncStatus,
    TransformFailure,
    TriggerType,
)
from backlog.services.backlog import sort_backlog_items
from backlog.sync.aggregator import SyncOutcome, aggregate_results
from backlog.sync.classifier import (
    MISSING_PROJECT_MESSAGE,
    ClassifiedError,
    classify_sync_error,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 50  # per request; keeps us well inside Linear's complexity budget
INTERRUPTED_MESSAGE = "Sync was interrupted"


class SyncService:
    """Owns the sync run lifecycle plus the status, cache and failure store."""

    def __init__(
        self,
        client,
        *,
        settings: Optional[Settings] = None,
        transform: Callable = transform_all,
        sort: Callable[[List[BacklogItem]], List[BacklogItem]] = sort_backlog_items,
        history=None,
    ):
        """
        Args:
            client: LinearClient instance (or AsyncMock in tests).
            settings: Settings to read LINEAR_PROJECT_ID from on every run.
                      Defaults to get_settings().
            transform: transform_all-compatible callable (sync or async).
            sort: Ordering applied to the successful items before caching.
            history: Optional SyncHistoryRecorder.
        """
        self.client = client
        self._settings = settings
        self._transform = transform
        self._sort = sort
        self._history = history

        self._lock = threading.Lock()
        self._status = SyncStatus()
        self._cached_items: Optional[List[BacklogItem]] = None
        self._last_failures: List[TransformFailure] = []

    # ─── Run ──────────────────────────────────────────────────────────────────

    async def run(
        self,
        trigger_type: Union[TriggerType, str] = TriggerType.MANUAL,
        triggered_by: Optional[int] = None,
    ) -> None:
        """
        Execute one full sync. Returns immediately if a run is in progress.

        Never raises for fetch or transform failures; read get_status()
        for the outcome.
        """
        trigger_type = TriggerType(trigger_type)

        with self._lock:
            if self._status.state is SyncState.SYNCING:
                logger.warning("Sync already in progress, skipping (%s)", trigger_type.value)
                return
            self._status = self._status.model_copy(
                update={
                    "state": SyncState.SYNCING,
                    "error_code": None,
                    "error_message": None,
                }
            )
            self._last_failures = []

        started = time.monotonic()
        history_id = self._start_history(trigger_type, triggered_by)

        try:
            project_id = self._project_id()
            if not project_id:
                logger.error(MISSING_PROJECT_MESSAGE)
                self._fail(
                    ClassifiedError(SyncErrorCode.CONFIG_ERROR, MISSING_PROJECT_MESSAGE),
                    history_id,
                    started,
                )
                return

            logger.info("Sync started for project %s (%s)", project_id, trigger_type.value)

            try:
                records = await self._fetch_all(project_id)
                result = self._transform(records)
                if inspect.isawaitable(result):
                    result = await result
                items = self._sort(list(result.items))
                failures = list(result.failures)
            except Exception as exc:
                classified = classify_sync_error(exc)
                logger.error(
                    "Sync failed [%s]: %s", classified.code.value, classified.message
                )
                self._fail(classified, history_id, started)
                return

            outcome = aggregate_results(items, failures)
            self._apply(outcome, items, failures)
            self._log_outcome(outcome, started)
            self._complete_history(
                history_id,
                started,
                status=outcome.state.value,
                items_synced=outcome.items_synced,
                items_failed=outcome.items_failed,
                error_message=outcome.error_message,
                error_code=outcome.error_code.value if outcome.error_code else None,
            )
        finally:
            # Cancellation (BaseException) must not leave the guard engaged.
            interrupted = False
            with self._lock:
                if self._status.state is SyncState.SYNCING:
                    self._status = self._status.model_copy(
                        update={
                            "state": SyncState.ERROR,
                            "error_code": SyncErrorCode.UNKNOWN_ERROR,
                            "error_message": INTERRUPTED_MESSAGE,
                        }
                    )
                    interrupted = True
            if interrupted:
                logger.warning("Sync interrupted before completion")
                self._complete_history(
                    history_id,
                    started,
                    status=SyncState.ERROR.value,
                    error_message=INTERRUPTED_MESSAGE,
                    error_code=SyncErrorCode.UNKNOWN_ERROR.value,
                )

    async def _fetch_all(self, project_id: str) -> List[Dict[str, Any]]:
        """Follow page_info.has_next_page / end_cursor until the project is exhausted."""
        records: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        has_more = True
        pages = 0

        while has_more:
            page = await self.client.fetch_page(
                project_id, page_size=PAGE_SIZE, after=cursor
            )
            records.extend(page.records)
            pages += 1
            has_more = bool(page.page_info.has_next_page)
            cursor = page.page_info.end_cursor

        logger.debug("Fetched %d issues in %d page(s)", len(records), pages)
        return records

    # ─── Read accessors ───────────────────────────────────────────────────────

    @property
    def history(self):
        """The SyncHistoryRecorder this service writes to, or None."""
        return self._history

    def get_status(self) -> SyncStatus:
        """Return an independent copy of the current status."""
        with self._lock:
            return self._status.model_copy(deep=True)

    def get_cached_items(self) -> Optional[List[BacklogItem]]:
        """Cached items, [] for an empty project, or None if never populated."""
        with self._lock:
            if self._cached_items is None:
                return None
            return [item.model_copy(deep=True) for item in self._cached_items]

    def get_last_transform_failures(self) -> List[TransformFailure]:
        with self._lock:
            return [replace(f) for f in self._last_failures]

    def clear_cache(self) -> None:
        """Drop the cached items. The sync state is left as is."""
        with self._lock:
            self._cached_items = None
            self._status = self._status.model_copy(update={"item_count": None})
        logger.info("Backlog cache cleared")

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _project_id(self) -> Optional[str]:
        settings = self._settings or get_settings()
        return settings.linear_project_id

    def _apply(
        self,
        outcome: SyncOutcome,
        items: List[BacklogItem],
        failures: List[TransformFailure],
    ) -> None:
        update: Dict[str, Any] = {
            "state": outcome.state,
            "items_synced": outcome.items_synced,
            "items_failed": outcome.items_failed,
            "error_code": outcome.error_code,
            "error_message": outcome.error_message,
        }
        with self._lock:
            self._last_failures = failures
            if outcome.replace_cache:
                self._cached_items = items
                update["item_count"] = len(items)
                update["last_synced_at"] = datetime.now(timezone.utc)
            self._status = self._status.model_copy(update=update)

    def _fail(self, classified: ClassifiedError, history_id: Optional[int], started: float) -> None:
        """Record an error outcome. Cache and per-run counts are left untouched."""
        with self._lock:
            self._status = self._status.model_copy(
                update={
                    "state": SyncState.ERROR,
                    "error_code": classified.code,
                    "error_message": classified.message,
                }
            )
        self._complete_history(
            history_id,
            started,
            status=SyncState.ERROR.value,
            error_message=classified.message,
            error_code=classified.code.value,
        )

    def _log_outcome(self, outcome: SyncOutcome, started: float) -> None:
        duration_ms = _elapsed_ms(started)
        if outcome.state is SyncState.SUCCESS:
            logger.info(
                "Sync completed: %d items in %dms", outcome.items_synced, duration_ms
            )
        elif outcome.state is SyncState.PARTIAL:
            logger.warning(
                "Sync partially completed: %d synced, %d failed in %dms",
                outcome.items_synced, outcome.items_failed, duration_ms,
            )
        else:
            logger.error(
                "Sync failed [%s]: %s", outcome.error_code.value, outcome.error_message
            )

    def _start_history(self, trigger_type: TriggerType, triggered_by: Optional[int]) -> Optional[int]:
        if self._history is None:
            return None
        try:
            return self._history.start(trigger_type.value, triggered_by)
        except Exception:
            logger.exception("Could not create sync history entry")
            return None

    def _complete_history(self, history_id: Optional[int], started: float, **fields) -> None:
        if self._history is None or history_id is None:
            return
        try:
            self._history.complete(history_id, duration_ms=_elapsed_ms(started), **fields)
        except Exception:
            logger.exception("Could not complete sync history entry %s", history_id)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
