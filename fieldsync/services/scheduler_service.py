"""
fieldsync
Scheduler Service.

Runs the reconciler jobs on fixed-interval timers using APScheduler's
BackgroundScheduler, and keeps a persisted record of every job
(ScheduledJob) with its interval, enable flag and run history.

Architecture:
    - register_job decorator: pluggable job functions, fn(app) -> dict
    - SchedulerService: registration, timer lifecycle, execution, history
    - Manual trigger API and `flask run-job` for operations and tests

Overlap: every job is added with max_instances=1 and coalesce=True, so a
slow run is never joined by a second run of the same job in this process.
Run the scheduler in exactly one process (SCHEDULER_ENABLED) when the app
is served by several workers.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import Flask

from fieldsync.models import db
from fieldsync.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_job_intervals: dict[str, str] = {}


def register_job(name: str, *, interval_setting: str):
    """Decorator to register a job function.

    Args:
        name: Unique job name.
        interval_setting: Config key holding the interval in minutes.

    Usage:
        @register_job("coverage_status", interval_setting="COVERAGE_STATUS_INTERVAL_MINUTES")
        def reconcile_coverage_status(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _job_intervals[name] = interval_setting
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def job_interval_minutes(app: Flask, job_name: str) -> int:
    return int(app.config.get(_job_intervals[job_name], 15))


class SchedulerService:
    """
    Interval scheduler for the reconcilers.

    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _scheduler: BackgroundScheduler | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind to the app and start the timers when SCHEDULER_ENABLED."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))
        if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
            cls.start()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with the configured interval.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    minutes = job_interval_minutes(cls._app, name)
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_type="interval",
                        schedule_config={"minutes": minutes,
                                         "description": f"Every {minutes} minutes"},
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def start(cls) -> BackgroundScheduler | None:
        """Create the BackgroundScheduler and add one interval trigger per job."""
        if not cls._app:
            return None
        if cls._scheduler and cls._scheduler.running:
            return cls._scheduler

        cls.ensure_jobs_registered()
        cls._scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,          # combine missed runs into one
                "max_instances": 1,        # never overlap a run of the same job
                "misfire_grace_time": 60,
            },
        )
        for name in _job_registry:
            minutes = job_interval_minutes(cls._app, name)
            cls._scheduler.add_job(
                cls.run_job,
                trigger=IntervalTrigger(minutes=minutes),
                args=[name],
                kwargs={"scheduled": True},
                id=name,
                name=name,
                replace_existing=True,
            )
        cls._scheduler.start()
        for job in cls._scheduler.get_jobs():
            logger.info("Scheduled %s: %s", job.id, job.trigger)
        return cls._scheduler

    @classmethod
    def is_running(cls) -> bool:
        return bool(cls._scheduler and cls._scheduler.running)

    @classmethod
    def shutdown(cls) -> None:
        if cls._scheduler and cls._scheduler.running:
            logger.info("Stopping job scheduler...")
            cls._scheduler.shutdown(wait=False)
        cls._scheduler = None

    @classmethod
    def run_job(cls, job_name: str, scheduled: bool = False) -> dict:
        """
        Execute a single job by name.

        Timer-triggered runs (`scheduled=True`) are skipped while the job
        is disabled; manual runs always execute.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        if scheduled:
            with cls._app.app_context():
                record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if record and not record.is_enabled:
                    logger.info("Job %s is disabled, skipping", job_name, extra={"job_name": job_name})
                    return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                            "result": None, "error": None}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name)

        logger.info("Job %s finished status=%s result=%s", job_name, status, result,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status and next fire time."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            next_run = None
            if cls._scheduler:
                aps_job = cls._scheduler.get_job(name)
                if aps_job and aps_job.next_run_time:
                    next_run = aps_job.next_run_time.isoformat()
            jobs.append({
                "job_name": name,
                "registered": True,
                "next_run_at": next_run,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return job_record.to_dict()
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()
