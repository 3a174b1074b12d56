"""Tests for APScheduler job configuration and the sync job body."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from backlog.config import Settings
from backlog.models.sync import TriggerType
from backlog.scheduler.jobs import _run_sync, build_scheduler


def _settings(**overrides) -> Settings:
    fields = dict(sync_enabled=True, sync_cron_schedule="*/15 * * * *", _env_file=None)
    fields.update(overrides)
    return Settings(**fields)


class TestBuildScheduler:
    def _build(self, **overrides):
        with patch("backlog.scheduler.jobs.get_settings", return_value=_settings(**overrides)):
            return build_scheduler(MagicMock())

    def test_returns_scheduler(self):
        assert isinstance(self._build(), AsyncIOScheduler)

    def test_scheduled_and_startup_jobs_registered(self):
        scheduler = self._build()
        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"scheduled_sync", "startup_sync"}

    def test_scheduled_sync_is_cron(self):
        scheduler = self._build()
        job = next(j for j in scheduler.get_jobs() if j.id == "scheduled_sync")
        assert job.trigger.__class__.__name__ == "CronTrigger"
        assert job.kwargs["trigger_type"] is TriggerType.SCHEDULED

    def test_startup_sync_is_one_shot(self):
        scheduler = self._build()
        job = next(j for j in scheduler.get_jobs() if j.id == "startup_sync")
        assert job.trigger.__class__.__name__ == "DateTrigger"
        assert job.kwargs["trigger_type"] is TriggerType.STARTUP

    def test_cron_schedule_from_settings(self):
        """Scheduler respects the SYNC_CRON_SCHEDULE setting."""
        scheduler = self._build(sync_cron_schedule="0 4 * * *")
        job = next(j for j in scheduler.get_jobs() if j.id == "scheduled_sync")
        fields = {f.name: f for f in job.trigger.fields}
        assert str(fields["hour"]) == "4"
        assert str(fields["minute"]) == "0"

    def test_disabled_returns_none(self):
        assert self._build(sync_enabled=False) is None

    def test_invalid_cron_returns_none(self):
        assert self._build(sync_cron_schedule="every now and then") is None

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        assert not self._build().running


class TestRunSyncJob:
    @pytest.mark.asyncio
    async def test_runs_service_with_trigger_type(self):
        service = MagicMock()
        service.run = AsyncMock()

        await _run_sync(service=service, trigger_type=TriggerType.SCHEDULED)

        service.run.assert_awaited_once_with(trigger_type=TriggerType.SCHEDULED)

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        """The job catches everything so the scheduler stays alive."""
        service = MagicMock()
        service.run = AsyncMock(side_effect=Exception("boom"))

        # Should not raise
        await _run_sync(service=service, trigger_type=TriggerType.STARTUP)
