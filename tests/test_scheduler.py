"""
Tests — SchedulerService and the ScheduledJob registry.

Covers:
    1. Job registry (the three reconcilers)
    2. DB record creation with configured intervals
    3. Execution history, disabled-job skipping, failures
    4. Timer wiring (BackgroundScheduler mocked)

run_job opens its own app context (and session); tests commit before
calling it and expire the outer session before asserting.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

from fieldsync.models import db
from fieldsync.models.scheduling import ScheduledJob
from fieldsync.services import scheduler_service
from fieldsync.services.scheduler_service import SchedulerService, get_registered_jobs

JOB_NAMES = {"coverage_registration", "coverage_status", "mirror_backfill"}


class TestScheduledJobModel:
    def test_record_run_success(self):
        job = ScheduledJob(job_name="j1", run_count=0, error_count=0)
        job.record_run(status="success", duration_ms=15, result={"selected": 0})
        assert job.run_count == 1
        assert job.error_count == 0
        assert job.last_run_status == "success"
        assert job.last_run_result == {"selected": 0}

    def test_record_run_failure(self):
        job = ScheduledJob(job_name="j2", run_count=0, error_count=0)
        job.record_run(status="failed", error="boom")
        assert job.error_count == 1
        assert job.last_error == "boom"


class TestSchedulerService:
    def test_registered_jobs(self):
        assert set(get_registered_jobs()) == JOB_NAMES

    def test_ensure_jobs_registered(self):
        created = SchedulerService.ensure_jobs_registered()
        assert len(created) == 3

        # fresh query: returned objects are detached after the context exits
        records = {j.job_name: j for j in ScheduledJob.query.all()}
        assert records["coverage_status"].schedule_config["minutes"] == 5
        assert records["coverage_registration"].schedule_config["minutes"] == 15
        assert records["mirror_backfill"].is_enabled is True

        # second call creates nothing
        assert SchedulerService.ensure_jobs_registered() == []

    def test_run_job_records_history(self, make_submission):
        SchedulerService.ensure_jobs_registered()
        make_submission(operators=["other"], all_mirror_written_at=None,
                        age=timedelta(seconds=5))

        result = SchedulerService.run_job("mirror_backfill")

        assert result["status"] == "success"
        assert result["result"] == {"selected": 0, "written": 0, "failed": 0}
        db.session.expire_all()
        record = ScheduledJob.query.filter_by(job_name="mirror_backfill").first()
        assert record.run_count == 1
        assert record.last_run_status == "success"
        assert record.last_run_result["selected"] == 0

    def test_run_unknown_job(self):
        result = SchedulerService.run_job("does_not_exist")
        assert result["status"] == "error"
        assert "Unknown job" in result["error"]

    def test_failing_job_records_failure(self):
        SchedulerService.ensure_jobs_registered()

        def broken(app):
            """Always fails."""
            raise RuntimeError("sheet unreachable")

        with patch.dict(scheduler_service._job_registry, {"coverage_status": broken}):
            result = SchedulerService.run_job("coverage_status")

        assert result["status"] == "failed"
        assert "sheet unreachable" in result["error"]
        db.session.expire_all()
        record = ScheduledJob.query.filter_by(job_name="coverage_status").first()
        assert record.error_count == 1
        assert record.last_error == "sheet unreachable"

    def test_disabled_job_skipped_on_timer_but_runs_manually(self):
        SchedulerService.ensure_jobs_registered()
        SchedulerService.toggle_job("coverage_registration", False)

        skipped = SchedulerService.run_job("coverage_registration", scheduled=True)
        assert skipped["status"] == "skipped"

        manual = SchedulerService.run_job("coverage_registration")
        assert manual["status"] == "success"

    def test_toggle_job(self):
        SchedulerService.ensure_jobs_registered()
        paused = SchedulerService.toggle_job("mirror_backfill", False)
        assert paused["is_enabled"] is False
        assert paused["status"] == "paused"
        active = SchedulerService.toggle_job("mirror_backfill", True)
        assert active["status"] == "active"

    def test_toggle_nonexistent_job(self):
        assert SchedulerService.toggle_job("nonexistent", True) is None

    def test_list_jobs_without_timers(self):
        SchedulerService.ensure_jobs_registered()
        jobs = SchedulerService.list_jobs()
        assert {j["job_name"] for j in jobs} == JOB_NAMES
        assert all(j["next_run_at"] is None for j in jobs)
        assert all(j["db_record"] is not None for j in jobs)


class TestTimers:
    def test_start_adds_one_interval_trigger_per_job(self):
        fake = MagicMock()
        fake.get_jobs.return_value = []
        with patch.object(scheduler_service, "BackgroundScheduler", return_value=fake) as mock_cls:
            try:
                SchedulerService.start()
                defaults = mock_cls.call_args.kwargs["job_defaults"]
                assert defaults["max_instances"] == 1
                assert defaults["coalesce"] is True

                intervals = {
                    c.kwargs["id"]: c.kwargs["trigger"].interval
                    for c in fake.add_job.call_args_list
                }
                assert intervals == {
                    "coverage_registration": timedelta(minutes=15),
                    "coverage_status": timedelta(minutes=5),
                    "mirror_backfill": timedelta(minutes=15),
                }
                fake.start.assert_called_once()
                assert SchedulerService.is_running()
            finally:
                SchedulerService.shutdown()

        fake.shutdown.assert_called_once_with(wait=False)
        assert SchedulerService.is_running() is False

    def test_timers_not_started_under_testing(self):
        assert SchedulerService.is_running() is False
