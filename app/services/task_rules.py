"""
Task Rule Evaluator

Turns a recorded event into task changes. For each active rule whose
trigger is the event's code and whose filters match the matter:

  1. abort_on guard        skip if that event already exists on the matter
  2. condition_event guard skip unless that event exists on the matter
  3. anchor date           event date, or the earliest priority date when
                           use_priority is set (falling back to event date)
  4. due date              anchor + days, then months, then years;
                           end_of_month snaps to the month's last day
  5. mode                  delete  -> remove pending tasks of rule.task
                           clear   -> mark pending tasks of rule.task done
                           create  -> one task, or the renewal schedule
                                      when the rule is recurring

Pending tasks already in the renewal workflow (step or invoice step
advanced) are never cleared or deleted by a rule.

Filters are nullable; None means "any" (see matches_filter).

Usage:
    from app.services.task_rules import evaluate_event

    report = evaluate_event(event, ctx)
    report.created, report.cleared, report.deleted, report.renewals
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from dateutil.relativedelta import relativedelta

from app.core.exceptions import RuleConfigurationError
from app.models import db
from app.models.matter import Event, Matter
from app.models.reference import EventName
from app.models.task import RuleMode, Task, TaskRule
from app.services import task_service
from app.services.matter_service import earliest_priority_date
from app.services.renewal_schedule import generate_renewals

logger = logging.getLogger(__name__)


@dataclass
class RuleEvaluationReport:
    """What one event evaluation changed."""

    event_id: int | None = None
    created: list = field(default_factory=list)
    cleared: list = field(default_factory=list)
    deleted: list = field(default_factory=list)
    renewals: list = field(default_factory=list)
    skipped: list = field(default_factory=list)

    def skip(self, rule: TaskRule, reason: str, task_id: int | None = None) -> None:
        entry = {"rule_id": rule.id, "reason": reason}
        if task_id is not None:
            entry["task_id"] = task_id
        self.skipped.append(entry)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "created": [t.id for t in self.created],
            "cleared": [t.id for t in self.cleared],
            "deleted": list(self.deleted),
            "renewals": [t.id for t in self.renewals],
            "skipped": self.skipped,
        }


# ── Matching ─────────────────────────────────────────────────────────────────

def matches_filter(value, wanted) -> bool:
    """A rule filter matches when it is unset ("any") or equal to the value."""
    return wanted is None or wanted == value


def rule_applies(rule: TaskRule, matter: Matter) -> bool:
    return (
        matches_filter(matter.category_code, rule.for_category)
        and matches_filter(matter.country, rule.for_country)
        and matches_filter(matter.origin, rule.for_origin)
        and matches_filter(matter.type_code, rule.for_type)
    )


def _in_use_window(rule: TaskRule, on_date: date | None) -> bool:
    if on_date is None:
        return True
    if rule.use_before is not None and on_date >= rule.use_before:
        return False
    if rule.use_after is not None and on_date < rule.use_after:
        return False
    return True


def find_applicable_rules(event: Event, matter: Matter) -> list[TaskRule]:
    candidates = (
        TaskRule.query
        .filter(TaskRule.active.is_(True), TaskRule.trigger_event == event.code)
        .order_by(TaskRule.id)
        .all()
    )
    return [
        rule for rule in candidates
        if rule_applies(rule, matter) and _in_use_window(rule, event.event_date)
    ]


# ── Configuration checks ─────────────────────────────────────────────────────

def validate_rule(rule: TaskRule, known_codes: set[str]) -> None:
    """Raise RuleConfigurationError naming the rule when it cannot be evaluated."""
    for attr in ("trigger_event", "task", "abort_on", "condition_event"):
        code = getattr(rule, attr)
        if code is not None and code not in known_codes:
            raise RuleConfigurationError(
                f"Rule {attr} references unknown event code '{code}'", rule_id=rule.id,
            )
    for attr in ("days", "months", "years"):
        value = getattr(rule, attr)
        if value is None:
            continue
        if not isinstance(value, int) or value < 0:
            raise RuleConfigurationError(
                f"Rule offset {attr}={value!r} is not a non-negative integer", rule_id=rule.id,
            )
    if rule.clear_task and rule.delete_task:
        raise RuleConfigurationError("Rule sets both clear_task and delete_task", rule_id=rule.id)


# ── Date arithmetic ──────────────────────────────────────────────────────────

def compute_anchor_date(rule: TaskRule, event: Event, matter: Matter) -> date | None:
    if rule.use_priority:
        priority = earliest_priority_date(matter)
        if priority is not None:
            return priority
    return event.event_date


def compute_due_date(rule: TaskRule, anchor: date) -> date:
    due = anchor + relativedelta(days=rule.days or 0)
    due = due + relativedelta(months=rule.months or 0)
    due = due + relativedelta(years=rule.years or 0)
    if rule.end_of_month:
        due = due + relativedelta(day=31)
    return due


# ── Mode handlers ────────────────────────────────────────────────────────────

def _pending_tasks(rule: TaskRule, matter: Matter, report: RuleEvaluationReport) -> list[Task]:
    """Pending tasks of ``rule.task`` triggered by any event of the matter.

    Tasks already moving through the renewal workflow are left alone and
    reported as skipped; their log trail stays attached.
    """
    tasks = (
        Task.query
        .join(Event, Event.id == Task.trigger_id)
        .filter(Event.matter_id == matter.id, Task.code == rule.task, Task.done.is_(False))
        .order_by(Task.due_date, Task.id)
        .all()
    )
    untouched = []
    for task in tasks:
        if task.in_workflow:
            report.skip(rule, f"task in renewal workflow (step {task.step})", task_id=task.id)
            continue
        untouched.append(task)
    return untouched


def _delete_tasks(rule, matter, report):
    for task in _pending_tasks(rule, matter, report):
        report.deleted.append(task.id)
        db.session.delete(task)
    db.session.flush()


def _clear_tasks(rule, event, matter, ctx, report):
    done_date = event.event_date or ctx.as_of()
    for task in _pending_tasks(rule, matter, report):
        task_service.apply_done(task, True, done_date, ctx.as_of())
        task.updater = ctx.user
        report.cleared.append(task)
    task_service.flush_tasks()


def _create_task(rule, event, matter, anchor, ctx, report):
    task = task_service.create_task(
        event, rule.task, ctx,
        due_date=compute_due_date(rule, anchor),
        rule=rule,
        assigned_to=rule.responsible or matter.responsible,
        detail=rule.detail,
        cost=rule.cost,
        fee=rule.fee,
        currency=rule.currency if (rule.cost is not None or rule.fee is not None) else None,
    )
    report.created.append(task)


# ── Entry point ──────────────────────────────────────────────────────────────

def evaluate_event(event: Event, ctx, *, settings=None) -> RuleEvaluationReport:
    """Apply every applicable rule to a newly recorded (or changed) event.

    Rules are independent; one event may create a task, clear another and
    generate a renewal schedule in the same pass. The caller owns the
    transaction.
    """
    matter = event.matter
    report = RuleEvaluationReport(event_id=event.id)
    rules = find_applicable_rules(event, matter)
    if not rules:
        return report

    known_codes = {code for (code,) in db.session.query(EventName.code)}
    log_ctx = {"matter_id": matter.id, "event_id": event.id}

    for rule in rules:
        validate_rule(rule, known_codes)

        if rule.abort_on and matter.has_event(rule.abort_on):
            report.skip(rule, f"abort_on {rule.abort_on} present")
            continue
        if rule.condition_event and not matter.has_event(rule.condition_event):
            report.skip(rule, f"condition_event {rule.condition_event} absent")
            continue

        mode = rule.mode
        if mode is RuleMode.DELETE:
            _delete_tasks(rule, matter, report)
            continue
        if mode is RuleMode.CLEAR:
            _clear_tasks(rule, event, matter, ctx, report)
            continue

        if rule.recurring:
            report.renewals.extend(generate_renewals(
                event, rule, ctx,
                base_date=event.event_date,
                responsible=rule.responsible or matter.responsible,
                settings=settings,
            ))
            continue

        anchor = compute_anchor_date(rule, event, matter)
        if anchor is None:
            logger.warning("No anchor date for rule, task not created",
                           extra={**log_ctx, "rule_id": rule.id})
            report.skip(rule, "no anchor date")
            continue
        if Task.query.filter_by(trigger_id=event.id, rule_used=rule.id).first() is not None:
            report.skip(rule, "task kept from an earlier evaluation")
            continue
        _create_task(rule, event, matter, anchor, ctx, report)

    logger.info(
        "Event %s evaluated: %d created, %d cleared, %d deleted, %d renewals",
        event.code, len(report.created), len(report.cleared),
        len(report.deleted), len(report.renewals), extra=log_ctx,
    )
    return report


def reset_event_tasks(event: Event) -> list[int]:
    """Delete untouched tasks triggered by ``event`` before it is re-evaluated.

    Tasks already done or advanced in the renewal workflow are kept.
    """
    removed = []
    for task in list(event.tasks):
        if not task.done and not task.in_workflow:
            removed.append(task.id)
            event.tasks.remove(task)
    db.session.flush()
    return removed
