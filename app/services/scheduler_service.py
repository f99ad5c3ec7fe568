"""
IP Docket
Scheduler Service.

Registry and runner for background jobs (expiry scan, grace scan).
Jobs are triggered by an external scheduler (cron, a queue worker) through
``flask run-job <name>``, one job at a time; the run history lives on
ScheduledJob.

Architecture:
    - Job functions register themselves with @register_job(name)
    - SchedulerService.run_job executes a job in an app context, commits
      its work on success and rolls it back on failure
    - Each registered job has a ScheduledJob row with its run history
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("expired_matter_scan")
        def scan_expired_matters(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Job registration, persistence and execution.

    Jobs are executed within the Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                if ScheduledJob.query.filter_by(job_name=name).first():
                    continue
                job = ScheduledJob(
                    job_name=name,
                    description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
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
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._app.app_context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if job_record is not None and not job_record.is_enabled:
                logger.info("Job %s is disabled, skipped", job_name)
                return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                        "result": None, "error": None}

            try:
                result = fn(cls._app)
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc)

            duration_ms = int((time.monotonic() - start) * 1000)

            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if job_record:
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }
