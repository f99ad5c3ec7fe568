"""
Task service — done/done_date invariant and optimistic concurrency.
"""

from datetime import date

import pytest
from sqlalchemy import update

from app.core.exceptions import StaleTaskError, ValidationError
from app.models import db
from app.models.task import Task
from app.services.task_service import apply_done, create_task, flush_tasks, update_task


class TestApplyDone:
    def test_done_without_date_stamps_today(self):
        task = Task(done=False)
        apply_done(task, True, today=date(2024, 1, 15))
        assert task.done is True
        assert task.done_date == date(2024, 1, 15)

    def test_explicit_done_date_kept(self):
        task = Task(done=False)
        apply_done(task, True, date(2023, 12, 1), date(2024, 1, 15))
        assert task.done_date == date(2023, 12, 1)

    def test_already_done_keeps_its_date(self):
        task = Task(done=True, done_date=date(2023, 5, 1))
        apply_done(task, True, today=date(2024, 1, 15))
        assert task.done_date == date(2023, 5, 1)

    def test_undo_clears_date(self):
        task = Task(done=True, done_date=date(2023, 5, 1))
        apply_done(task, False)
        assert task.done is False
        assert task.done_date is None

    def test_none_is_no_op(self):
        task = Task(done=True, done_date=date(2023, 5, 1))
        apply_done(task, None)
        assert task.done_date == date(2023, 5, 1)


class TestCreateTask:
    def test_future_due_is_pending(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1))
        assert task.done is False
        assert task.done_date is None
        assert task.creator == "tester"

    def test_due_today_is_done_on_due_date(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=ctx.as_of())
        assert task.done is True
        assert task.done_date == ctx.as_of()

    def test_explicit_done_flag_wins(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2020, 1, 1), done=False)
        assert task.done is False
        assert task.done_date is None

    def test_manual_task_has_no_rule(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1), done=True)
        assert task.rule_used is None
        assert task.done_date == ctx.as_of()


class TestUpdateTask:
    def test_mark_done_then_undo(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1))

        update_task(task, {"done": True}, ctx)
        assert task.done_date == ctx.as_of()
        assert task.updater == "tester"

        update_task(task, {"done": False}, ctx)
        assert task.done_date is None

    def test_invalid_due_date(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1))
        with pytest.raises(ValidationError):
            update_task(task, {"due_date": "not-a-date"}, ctx)

    def test_version_bumps_on_update(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1))
        assert task.version == 1
        update_task(task, {"notes": "called client"}, ctx)
        assert task.version == 2

    def test_concurrent_update_raises_stale(self, make_matter, make_event, ctx):
        event = make_event(make_matter())
        task = create_task(event, "EXA", ctx, due_date=date(2024, 6, 1))

        # another writer bumps the row behind the session's back
        db.session.execute(
            update(Task).where(Task.id == task.id)
            .values(version=Task.version + 1)
            .execution_options(synchronize_session=False)
        )
        task.notes = "lost update"
        with pytest.raises(StaleTaskError):
            flush_tasks([task.id])
