"""
Renewal Log Service

Builds and queries the append-only RenewalsLog trail.

Job ids group the log rows written by one batch action or scheduled run;
a new id is max(job_id) + 1.

Filter whitelist (filter_logs):
    matter      uid prefix
    client      client display name prefix
    job         exact job id
    user        creator prefix
    from_date   created on or after (inclusive)
    until_date  created on or before (inclusive, whole day)
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone

from sqlalchemy import func

from app.core.exceptions import ValidationError
from app.models import db
from app.models.matter import Event, Matter
from app.models.reference import Actor
from app.models.task import RenewalsLog, Task
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

ALLOWED_FILTERS = ("matter", "client", "job", "user", "from_date", "until_date")


class RenewalLogService:
    """Job id allocation and log row construction."""

    def current_job_id(self) -> int | None:
        return db.session.query(func.max(RenewalsLog.job_id)).scalar()

    def create_job_id(self) -> int:
        return (self.current_job_id() or 0) + 1

    def build_log(self, task: Task, ctx, *, job_id: int | None, before: dict, after: dict | None = None) -> RenewalsLog:
        """One log row from the captured prior state and the task's current state.

        ``before`` / ``after`` hold step, invoice_step, grace_period, done.
        ``after`` defaults to the task as it is now.
        """
        after = after or snapshot(task)
        return RenewalsLog(
            task_id=task.id,
            job_id=job_id,
            from_step=before["step"],
            to_step=after["step"],
            from_invoice_step=before["invoice_step"],
            to_invoice_step=after["invoice_step"],
            from_grace=before["grace_period"],
            to_grace=after["grace_period"],
            from_done=before["done"],
            to_done=after["done"],
            creator=ctx.user,
        )

    def log_batch(self, rows: list[RenewalsLog]) -> int:
        if not rows:
            return 0
        db.session.add_all(rows)
        db.session.flush()
        return len(rows)


def snapshot(task: Task) -> dict:
    """Workflow-relevant state of a task, for the log's from/to columns."""
    return {
        "step": task.step,
        "invoice_step": task.invoice_step,
        "grace_period": bool(task.grace_period),
        "done": bool(task.done),
    }


def _parse_filter_date(key, value):
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid {key}", details={key: value})
    return parsed


def filter_logs(query, filters: dict):
    """Apply whitelisted filters to a RenewalsLog query; other keys are ignored."""
    joined = False

    def _join_matter(q):
        nonlocal joined
        if not joined:
            q = (
                q.join(Task, Task.id == RenewalsLog.task_id)
                .join(Event, Event.id == Task.trigger_id)
                .join(Matter, Matter.id == Event.matter_id)
            )
            joined = True
        return q

    for key in ALLOWED_FILTERS:
        value = filters.get(key)
        if value in (None, ""):
            continue
        if key == "matter":
            query = _join_matter(query).filter(Matter.uid.like(f"{value}%"))
        elif key == "client":
            query = (
                _join_matter(query)
                .join(Actor, Actor.id == Matter.client_id)
                .filter(func.coalesce(Actor.display_name, Actor.name).like(f"{value}%"))
            )
        elif key == "job":
            try:
                query = query.filter(RenewalsLog.job_id == int(value))
            except (TypeError, ValueError) as exc:
                raise ValidationError("Invalid job", details={"job": value}) from exc
        elif key == "user":
            query = query.filter(RenewalsLog.creator.like(f"{value}%"))
        elif key == "from_date":
            start = _parse_filter_date(key, value)
            query = query.filter(
                RenewalsLog.created_at >= datetime.combine(start, time.min, tzinfo=timezone.utc))
        elif key == "until_date":
            end = _parse_filter_date(key, value)
            query = query.filter(
                RenewalsLog.created_at <= datetime.combine(end, time.max, tzinfo=timezone.utc))
    return query
