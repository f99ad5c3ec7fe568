"""
Renewal Workflow — batch state transitions of renewal tasks

Steps:
    PENDING(0) → FIRST_CALL(2) → TO_PAY(4) → CLEARED(6) → RECEIPT(8) → CLOSED(10)
    alternate ends: ABANDONED(12), LAPSED(14); DONE(-1) when closed already done
Invoice steps (orthogonal):
    NONE(0) → TO_INVOICE(1) → INVOICED(2) → PAID(3)

10 batch actions:
    mark_first_call, mark_grace_period, mark_to_pay, mark_invoiced, mark_paid,
    mark_done, mark_receipt, mark_closed, mark_abandoned, mark_lapsed

Every action takes a list of task ids and an ActingContext and returns a
TransitionReport. Validity is decided per task: unknown ids, non-renewal
tasks and tasks in a terminal step are reported in ``skipped`` while the
rest of the batch proceeds. Each affected task gets one RenewalsLog row,
all rows of a call sharing one job id.

Usage:
    from app.services.renewal_workflow import RenewalWorkflow

    report = RenewalWorkflow().mark_to_pay([12, 13], ctx)
    int(report)        # number of tasks updated
    report.skipped     # [{"task_id": 13, "reason": "..."}]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.exceptions import TransitionError
from app.models.matter import Event
from app.models.reference import EventCode
from app.models.task import TERMINAL_STEPS, InvoiceStep, Task, WorkflowStep
from app.services import task_service
from app.services.renewal_log_service import RenewalLogService, snapshot

logger = logging.getLogger(__name__)


@dataclass
class TransitionReport:
    """Partial-success result of one batch action."""

    action: str
    requested: int = 0
    updated: int = 0
    job_id: int | None = None
    task_ids: list[int] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    def __int__(self) -> int:
        return self.updated

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "requested": self.requested,
            "updated": self.updated,
            "skipped": self.skipped,
            "job_id": self.job_id,
        }


class RenewalWorkflow:
    """Renewal task state machine."""

    # URL action name → method
    ACTIONS = {
        "first-call": "mark_first_call",
        "grace-period": "mark_grace_period",
        "to-pay": "mark_to_pay",
        "invoiced": "mark_invoiced",
        "paid": "mark_paid",
        "done": "mark_done",
        "receipt": "mark_receipt",
        "closed": "mark_closed",
        "abandoned": "mark_abandoned",
        "lapsed": "mark_lapsed",
    }

    def __init__(self, log_service: RenewalLogService | None = None):
        self.log_service = log_service or RenewalLogService()

    # ── Public actions ───────────────────────────────────────────────────

    def mark_first_call(self, task_ids, ctx) -> TransitionReport:
        return self._run("first-call", task_ids, ctx, self._set_step(WorkflowStep.FIRST_CALL))

    def mark_grace_period(self, task_ids, ctx) -> TransitionReport:
        def apply(task, ctx):
            task.grace_period = True
        return self._run("grace-period", task_ids, ctx, apply)

    def mark_to_pay(self, task_ids, ctx) -> TransitionReport:
        def apply(task, ctx):
            task.step = WorkflowStep.TO_PAY
            if (task.invoice_step or 0) == InvoiceStep.NONE:
                task.invoice_step = InvoiceStep.TO_INVOICE
        return self._run("to-pay", task_ids, ctx, apply)

    def mark_invoiced(self, task_ids, ctx) -> TransitionReport:
        def guard(task):
            if (task.invoice_step or 0) < InvoiceStep.TO_INVOICE:
                return "not marked for invoicing"
            return None

        def apply(task, ctx):
            task.invoice_step = InvoiceStep.INVOICED
        return self._run("invoiced", task_ids, ctx, apply, guard=guard)

    def mark_paid(self, task_ids, ctx) -> TransitionReport:
        def guard(task):
            if (task.invoice_step or 0) < InvoiceStep.INVOICED:
                return "not invoiced"
            return None

        def apply(task, ctx):
            task.invoice_step = InvoiceStep.PAID
        return self._run("paid", task_ids, ctx, apply, guard=guard)

    def mark_done(self, task_ids, ctx) -> TransitionReport:
        def apply(task, ctx):
            task_service.apply_done(task, True, ctx.as_of(), ctx.as_of())
            task.step = WorkflowStep.CLEARED
        return self._run("done", task_ids, ctx, apply)

    def mark_receipt(self, task_ids, ctx) -> TransitionReport:
        return self._run("receipt", task_ids, ctx, self._set_step(WorkflowStep.RECEIPT))

    def mark_closed(self, task_ids, ctx) -> TransitionReport:
        def apply(task, ctx):
            task.step = WorkflowStep.DONE if task.done else WorkflowStep.CLOSED
            task_service.apply_done(task, True, today=ctx.as_of())
        return self._run("closed", task_ids, ctx, apply)

    def mark_abandoned(self, task_ids, ctx) -> TransitionReport:
        def apply(task, ctx):
            task.step = WorkflowStep.ABANDONED
            task_service.apply_done(task, True, today=ctx.as_of())
        return self._run("abandoned", task_ids, ctx, apply, status_event=EventCode.ABANDONED)

    def mark_lapsed(self, task_ids, ctx) -> TransitionReport:
        return self._run("lapsed", task_ids, ctx, self._set_step(WorkflowStep.LAPSED),
                         status_event=EventCode.LAPSED)

    def apply_action(self, action: str, task_ids, ctx) -> TransitionReport:
        """Dispatch a URL action name (``to-pay``, ``closed``, ...)."""
        method = self.ACTIONS.get(action)
        if method is None:
            raise ValueError(f"Unknown renewal action: {action}")
        return getattr(self, method)(task_ids, ctx)

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _set_step(step):
        def apply(task, ctx):
            task.step = step
        return apply

    @staticmethod
    def check_transition(task: Task, action: str, guard=None) -> None:
        """Raise TransitionError when ``action`` is not allowed on ``task``."""
        if not task.is_renewal:
            raise TransitionError(task.id, action, task.step, "not a renewal task")
        if task.step in TERMINAL_STEPS:
            raise TransitionError(
                task.id, action, task.step,
                f"task is in terminal step {WorkflowStep(task.step).name}",
            )
        reason = guard(task) if guard else None
        if reason:
            raise TransitionError(task.id, action, task.step, reason)

    def _run(self, action, task_ids, ctx, apply, *, guard=None, status_event=None) -> TransitionReport:
        ids = list(dict.fromkeys(int(t) for t in task_ids or []))
        report = TransitionReport(action=action, requested=len(ids))
        if not ids:
            return report

        tasks = {t.id: t for t in Task.query.filter(Task.id.in_(ids)).all()}
        report.job_id = ctx.job_id or self.log_service.create_job_id()

        rows = []
        for task_id in ids:
            task = tasks.get(task_id)
            if task is None:
                report.skipped.append({"task_id": task_id, "reason": "task not found"})
                continue
            try:
                self.check_transition(task, action, guard)
            except TransitionError as exc:
                logger.warning(str(exc), extra={"task_id": task_id, "job_id": report.job_id,
                                                "user": ctx.user})
                report.skipped.append({"task_id": task_id, "reason": exc.reason})
                continue

            before = snapshot(task)
            apply(task, ctx)
            task.updater = ctx.user
            rows.append(self.log_service.build_log(task, ctx, job_id=report.job_id, before=before))
            report.task_ids.append(task_id)

        task_service.flush_tasks(report.task_ids)
        self.log_service.log_batch(rows)
        report.updated = len(rows)

        if status_event and report.task_ids:
            self._record_status_events([tasks[i] for i in report.task_ids], status_event, ctx)

        logger.info(
            "Renewal action %s: %d updated, %d skipped", action, report.updated, len(report.skipped),
            extra={"job_id": report.job_id, "user": ctx.user},
        )
        return report

    @staticmethod
    def _record_status_events(tasks, code, ctx):
        """One ``code`` event per matter, dated today, unless already recorded today."""
        from app.services.event_service import create_event

        today = ctx.as_of()
        seen = set()
        for task in tasks:
            matter = task.matter
            if matter is None or matter.id in seen:
                continue
            seen.add(matter.id)
            exists = Event.query.filter_by(matter_id=matter.id, code=code, event_date=today).first()
            if exists is None:
                create_event(matter, {"code": code, "event_date": today}, ctx)
