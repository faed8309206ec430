"""
APSchedulerBackend 单元测试
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.jobstores.base import JobLookupError

from core.scheduler import SchedulerRegistry
from app.services.expiry_sweeper import SWEEP_JOB_ID
from app.services.scheduler_backend import APSchedulerBackend


@pytest.fixture(autouse=True)
def clear_scheduler_registry():
    registry = SchedulerRegistry()
    registry.clear()
    yield
    registry.clear()


class TestAPSchedulerBackend:

    def test_start_when_not_running(self):
        mock_scheduler = MagicMock()
        mock_scheduler.running = False
        APSchedulerBackend(scheduler=mock_scheduler).start()
        mock_scheduler.start.assert_called_once()

    def test_start_when_already_running(self):
        mock_scheduler = MagicMock()
        mock_scheduler.running = True
        APSchedulerBackend(scheduler=mock_scheduler).start()
        mock_scheduler.start.assert_not_called()

    def test_shutdown_when_running(self):
        mock_scheduler = MagicMock()
        mock_scheduler.running = True
        APSchedulerBackend(scheduler=mock_scheduler).shutdown()
        mock_scheduler.shutdown.assert_called_once_with(wait=False)

    def test_sweep_job_never_overlaps(self):
        mock_scheduler = MagicMock()
        backend = APSchedulerBackend(scheduler=mock_scheduler)

        func = lambda: None
        backend.add_job(SWEEP_JOB_ID, func, "interval", minutes=60)
        mock_scheduler.add_job.assert_called_once_with(
            func,
            trigger="interval",
            id=SWEEP_JOB_ID,
            replace_existing=True,
            minutes=60,
            max_instances=1,
            coalesce=True,
        )

    def test_add_job_with_cron_expression(self):
        mock_scheduler = MagicMock()
        backend = APSchedulerBackend(scheduler=mock_scheduler)

        func = lambda: None
        with patch("app.services.scheduler_backend.CronTrigger") as MockCron:
            MockCron.from_crontab.return_value = "cron_trigger_obj"
            backend.add_job("nightly", func, "cron", cron_expression="0 3 * * *")
            MockCron.from_crontab.assert_called_once_with("0 3 * * *")
            assert mock_scheduler.add_job.call_args.kwargs["trigger"] == "cron_trigger_obj"

    def test_remove_missing_job(self):
        mock_scheduler = MagicMock()
        mock_scheduler.remove_job.side_effect = JobLookupError("nope")
        APSchedulerBackend(scheduler=mock_scheduler).remove_job("nope")

    def test_get_jobs(self):
        job = MagicMock()
        job.id = SWEEP_JOB_ID
        job.name = None
        job.trigger = "interval[1:00:00]"
        job.next_run_time = datetime(2025, 1, 1, 10, 0)
        mock_scheduler = MagicMock()
        mock_scheduler.get_jobs.return_value = [job]

        jobs = APSchedulerBackend(scheduler=mock_scheduler).get_jobs()
        assert jobs == [{
            "id": SWEEP_JOB_ID,
            "name": SWEEP_JOB_ID,
            "trigger": "interval[1:00:00]",
            "next_run_time": "2025-01-01T10:00:00",
        }]

    def test_trigger_job(self):
        job = MagicMock()
        mock_scheduler = MagicMock()
        mock_scheduler.get_job.return_value = job
        APSchedulerBackend(scheduler=mock_scheduler).trigger_job(SWEEP_JOB_ID)
        job.func.assert_called_once()

    def test_trigger_unknown_job(self):
        mock_scheduler = MagicMock()
        mock_scheduler.get_job.return_value = None
        with pytest.raises(ValueError, match="Job not found"):
            APSchedulerBackend(scheduler=mock_scheduler).trigger_job("missing")


class TestSchedulerRegistry:

    def test_singleton_backend(self):
        backend = APSchedulerBackend(scheduler=MagicMock())
        SchedulerRegistry().set_backend(backend)
        assert SchedulerRegistry().get_backend() is backend

    def test_clear(self):
        SchedulerRegistry().set_backend(APSchedulerBackend(scheduler=MagicMock()))
        SchedulerRegistry().clear()
        assert SchedulerRegistry().get_backend() is None

    def test_shutdown_stops_backend(self):
        backend = MagicMock()
        SchedulerRegistry().set_backend(backend)
        SchedulerRegistry().shutdown()
        backend.shutdown.assert_called_once_with(wait=False)
        assert SchedulerRegistry().get_backend() is None

    def test_shutdown_without_backend(self):
        SchedulerRegistry().shutdown()
        assert SchedulerRegistry().get_backend() is None
