"""
APScheduler jobs for background sync.

Two jobs share one SyncService:
  startup_sync    runs once as soon as the scheduler starts, so the cache is
                  populated without waiting for the first cron tick
  scheduled_sync  cron schedule from SYNC_CRON_SCHEDULE (default every 15 min)

The scheduler runs inside the API process (started from the FastAPI lifespan).
SyncService's own guard makes overlapping ticks harmless.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from backlog.config import get_settings
from backlog.models.sync import TriggerType

logger = logging.getLogger(__name__)


def build_scheduler(service) -> Optional[AsyncIOScheduler]:
    """
    Create and configure the APScheduler.

    Args:
        service: SyncService whose run() the jobs call.

    Returns:
        Configured AsyncIOScheduler (not yet started), or None when sync is
        disabled via SYNC_ENABLED or the cron expression is invalid.
    """
    settings = get_settings()
    if not settings.sync_enabled:
        logger.info("Sync scheduler disabled via SYNC_ENABLED=false")
        return None

    try:
        trigger = CronTrigger.from_crontab(settings.sync_cron_schedule, timezone="UTC")
    except ValueError as exc:
        logger.error(
            "Invalid sync cron schedule %r, scheduler not started: %s",
            settings.sync_cron_schedule, exc,
        )
        return None

    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        _run_sync,
        trigger=trigger,
        id="scheduled_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"service": service, "trigger_type": TriggerType.SCHEDULED},
    )
    scheduler.add_job(
        _run_sync,
        trigger="date",
        run_date=datetime.now(timezone.utc),
        id="startup_sync",
        replace_existing=True,
        misfire_grace_time=None,
        kwargs={"service": service, "trigger_type": TriggerType.STARTUP},
    )

    return scheduler


async def _run_sync(service, trigger_type: TriggerType) -> None:
    """
    Job body: one sync run.

    Catches everything so a broken run never kills the scheduler.
    """
    logger.info("%s sync triggered", trigger_type.value.capitalize())
    try:
        await service.run(trigger_type=trigger_type)
    except Exception as exc:
        logger.error("%s sync failed: %s", trigger_type.value.capitalize(), exc)
