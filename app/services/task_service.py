"""
Task Service

Creation and update of tasks with the done/done_date invariant:
  - done=True always carries a done_date
  - done False -> True without a date stamps today
  - done True -> False clears the date
  - a new task created with done=None is completed on its due date
    when that date is already reached, pending otherwise

Transaction policy: flush only; the caller commits.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import StaleTaskError, ValidationError
from app.models import db
from app.models.task import Task
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

# Fields a caller may set directly through update_task()
_UPDATABLE_FIELDS = (
    "due_date", "assigned_to", "detail", "notes", "cost", "fee", "currency",
)


def apply_done(task: Task, done: bool | None, done_date: date | None = None,
               today: date | None = None) -> Task:
    """Set ``done`` while keeping done_date consistent with it."""
    today = today or date.today()
    if done is None:
        return task

    was_done = bool(task.done)
    if done:
        if done_date is not None:
            task.done_date = done_date
        elif not was_done or task.done_date is None:
            task.done_date = today
        task.done = True
    else:
        task.done = False
        task.done_date = None
    return task


def create_task(trigger_event, code: str, ctx, *, due_date: date | None = None,
                done: bool | None = None, done_date: date | None = None, rule=None,
                assigned_to: str | None = None, detail=None, cost=None, fee=None,
                currency: str | None = None, notes: str | None = None) -> Task:
    """Insert a task on ``trigger_event``.

    With ``done=None`` the task is auto-completed (done_date = due_date)
    when its due date is on or before today.
    """
    today = ctx.as_of()
    task = Task(
        trigger_id=trigger_event.id,
        code=code,
        due_date=due_date,
        rule_used=rule.id if rule is not None else None,
        assigned_to=assigned_to,
        detail=detail,
        cost=cost,
        fee=fee,
        currency=currency,
        notes=notes,
        creator=ctx.user,
        done=False,
    )
    if done is None:
        if due_date is not None and due_date <= today:
            task.done = True
            task.done_date = due_date
    else:
        apply_done(task, done, done_date, today)

    db.session.add(task)
    db.session.flush()
    return task


def update_task(task: Task, data: dict, ctx) -> Task:
    """Apply a partial update; ``done`` / ``done_date`` go through apply_done."""
    for field in _UPDATABLE_FIELDS:
        if field in data:
            value = data[field]
            if field == "due_date":
                value = parse_date(value)
                if value is None and data[field]:
                    raise ValidationError("Invalid due_date", details={"due_date": data[field]})
            setattr(task, field, value)

    if "done" in data or "done_date" in data:
        done = data.get("done", task.done)
        done_date = parse_date(data.get("done_date")) if data.get("done_date") else None
        apply_done(task, bool(done), done_date, ctx.as_of())

    task.updater = ctx.user
    flush_tasks([task.id])
    return task


def flush_tasks(task_ids=None) -> None:
    """Flush pending task changes, surfacing version conflicts as StaleTaskError."""
    try:
        db.session.flush()
    except StaleDataError as exc:
        task_id = task_ids[0] if task_ids and len(task_ids) == 1 else None
        logger.warning("Concurrent task update detected", extra={"task_id": task_id})
        raise StaleTaskError(
            "Task was modified by another transaction; reload and retry",
            task_id=task_id,
        ) from exc
