"""Tests for the background polling scheduler."""

from sugarwatch.config import settings
from sugarwatch.services import scheduler as scheduler_module
from sugarwatch.services.dexcom_sync import DexcomPoller
from sugarwatch.services.scheduler import (
    DEXCOM_SYNC_JOB_ID,
    start_scheduler,
    stop_scheduler,
)


class TestScheduler:
    async def test_registers_non_overlapping_sync_job(self, event_bus, monkeypatch):
        monkeypatch.setattr(settings, "dexcom_sync_enabled", True)
        poller = DexcomPoller(event_bus)

        sched = start_scheduler(poller)
        try:
            job = sched.get_job(DEXCOM_SYNC_JOB_ID)
            assert job is not None
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.trigger.interval.total_seconds() == settings.dexcom_sync_interval_seconds
        finally:
            stop_scheduler()

        assert scheduler_module.scheduler is None

    async def test_sync_disabled(self, event_bus, monkeypatch):
        monkeypatch.setattr(settings, "dexcom_sync_enabled", False)

        sched = start_scheduler(DexcomPoller(event_bus))
        try:
            assert sched.get_job(DEXCOM_SYNC_JOB_ID) is None
        finally:
            stop_scheduler()

    async def test_start_twice_returns_running_instance(self, event_bus):
        first = start_scheduler(DexcomPoller(event_bus))
        try:
            assert start_scheduler(DexcomPoller(event_bus)) is first
        finally:
            stop_scheduler()
