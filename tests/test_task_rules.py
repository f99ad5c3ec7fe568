"""
Task rule evaluator.

Covers:
    1. Nullable filter matching ("any" semantics)
    2. abort_on / condition_event guards
    3. Due date arithmetic (days → months → years, end of month, priority anchor)
    4. Modes: create, clear, delete
    5. Configuration errors naming the rule
    6. Re-evaluation when an event changes
"""

from datetime import date
from decimal import Decimal

import pytest

from app.core.context import ActingContext
from app.core.exceptions import RuleConfigurationError
from app.models import db
from app.models.reference import EventCode
from app.models.task import InvoiceStep, RenewalsLog, Task, TaskRule, WorkflowStep
from app.services.event_service import create_event, update_event
from app.services.renewal_workflow import RenewalWorkflow
from app.services.task_rules import (
    compute_due_date,
    evaluate_event,
    matches_filter,
    rule_applies,
    validate_rule,
)


def _record(matter, code, event_date, ctx, **kw):
    data = {"code": code, "event_date": event_date}
    data.update(kw)
    return create_event(matter, data, ctx)


# ═══════════════════════════════════════════════════════════════════════════
#  MATCHING
# ═══════════════════════════════════════════════════════════════════════════

class TestMatching:
    def test_unset_filter_matches_anything(self):
        assert matches_filter("FR", None)
        assert matches_filter(None, None)

    def test_set_filter_requires_equality(self):
        assert matches_filter("FR", "FR")
        assert not matches_filter("DE", "FR")
        assert not matches_filter(None, "WO")

    def test_rule_applies_on_every_filter(self, make_matter):
        matter = make_matter(country="EP", origin="WO", type_code="DIV")
        assert rule_applies(TaskRule(for_country="EP", for_origin="WO"), matter)
        assert not rule_applies(TaskRule(for_country="EP", for_type="CON"), matter)
        assert not rule_applies(TaskRule(for_category="TM"), matter)

    def test_country_specific_rule_ignored_elsewhere(self, make_matter, make_rule, ctx):
        matter = make_matter(country="DE")
        make_rule(EventCode.FILING, "EXA", for_country="FR", months=4)
        _event, report = _record(matter, EventCode.FILING, date(2024, 1, 2), ctx)
        assert report.created == []


# ═══════════════════════════════════════════════════════════════════════════
#  GUARDS
# ═══════════════════════════════════════════════════════════════════════════

class TestGuards:
    def test_abort_on_existing_event_creates_nothing(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        make_event(matter, EventCode.GRANT, date(2023, 9, 1))
        make_rule(EventCode.PUBLICATION, "EXA", months=6, abort_on=EventCode.GRANT)

        _event, report = _record(matter, EventCode.PUBLICATION, date(2023, 10, 1), ctx)

        assert report.created == []
        assert report.skipped[0]["reason"].startswith("abort_on")

    def test_condition_event_required(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        rule = make_rule(EventCode.PUBLICATION, "EXA", months=6,
                         condition_event=EventCode.PRIORITY)

        _event, report = _record(matter, EventCode.PUBLICATION, date(2023, 10, 1), ctx)
        assert report.created == []
        assert report.skipped == [{"rule_id": rule.id,
                                   "reason": f"condition_event {EventCode.PRIORITY} absent"}]

    def test_condition_event_present(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        make_event(matter, EventCode.PRIORITY, date(2022, 10, 1))
        make_rule(EventCode.PUBLICATION, "EXA", months=6, condition_event=EventCode.PRIORITY)

        _event, report = _record(matter, EventCode.PUBLICATION, date(2023, 10, 1), ctx)
        assert len(report.created) == 1


# ═══════════════════════════════════════════════════════════════════════════
#  DATE ARITHMETIC
# ═══════════════════════════════════════════════════════════════════════════

class TestDueDate:
    def test_days_then_months_then_years(self):
        rule = TaskRule(days=1, months=1, years=1)
        # 2024-01-30 +1d = 01-31, +1m = 02-29 (clamped), +1y = 2025-02-28
        assert compute_due_date(rule, date(2024, 1, 30)) == date(2025, 2, 28)

    def test_end_of_month(self):
        rule = TaskRule(days=0, months=2, years=0, end_of_month=True)
        assert compute_due_date(rule, date(2024, 1, 10)) == date(2024, 3, 31)

    def test_priority_anchor(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        make_event(matter, EventCode.PRIORITY, date(2023, 2, 1))
        make_event(matter, EventCode.PRIORITY, date(2022, 11, 15))
        make_rule(EventCode.FILING, "REP", months=30, use_priority=True)

        _event, report = _record(matter, EventCode.FILING, date(2023, 11, 10), ctx)
        assert report.created[0].due_date == date(2025, 5, 15)

    def test_priority_anchor_falls_back_to_event(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "REP", months=30, use_priority=True)
        _event, report = _record(matter, EventCode.FILING, date(2023, 11, 10), ctx)
        assert report.created[0].due_date == date(2026, 5, 10)


# ═══════════════════════════════════════════════════════════════════════════
#  MODES
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateMode:
    def test_task_fields_from_rule(self, make_matter, make_rule, ctx):
        matter = make_matter(responsible="jdoe")
        rule = make_rule(EventCode.FILING, "EXA", months=4, detail={"en": "Search report"},
                         fee=Decimal("90"), currency="EUR")

        event, report = _record(matter, EventCode.FILING, date(2024, 1, 10), ctx)

        task = report.created[0]
        assert task.trigger_id == event.id
        assert task.code == "EXA"
        assert task.due_date == date(2024, 5, 10)
        assert task.rule_used == rule.id
        assert task.assigned_to == "jdoe"
        assert task.detail == {"en": "Search report"}
        assert task.done is False

    def test_past_due_task_created_done(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=4)

        _event, report = _record(matter, EventCode.FILING, date(2020, 1, 10), ctx)

        task = report.created[0]
        assert task.done is True
        assert task.done_date == task.due_date == date(2020, 5, 10)

    def test_one_event_many_rules(self, make_matter, make_rule):
        ctx = ActingContext(user="tester", today=date(2020, 6, 15))
        matter = make_matter(country="FR")
        make_rule(EventCode.FILING, "EXA", months=4)
        make_rule(EventCode.FILING, EventCode.RENEWAL, recurring=True)

        _event, report = _record(matter, EventCode.FILING, date(2020, 6, 15), ctx)

        assert len(report.created) == 1
        assert len(report.renewals) == 19


class TestClearMode:
    def test_clears_pending_tasks_with_event_date(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=4)
        make_rule(EventCode.GRANT, "EXA", clear_task=True)

        _fil, fil_report = _record(matter, EventCode.FILING, date(2023, 12, 1), ctx)
        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert [t.id for t in report.cleared] == [fil_report.created[0].id]
        task = db.session.get(Task, fil_report.created[0].id)
        assert task.done is True
        assert task.done_date == date(2024, 1, 5)

    def test_done_tasks_untouched(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        fil = make_event(matter)
        done = Task(trigger_id=fil.id, code="EXA", done=True, done_date=date(2021, 1, 1))
        db.session.add(done)
        db.session.flush()
        make_rule(EventCode.GRANT, "EXA", clear_task=True)

        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert report.cleared == []
        assert done.done_date == date(2021, 1, 1)


class TestDeleteMode:
    def test_grant_deletes_pending_renewal(self, make_matter, make_event, make_rule, make_renewal, ctx):
        matter = make_matter()
        fil = make_event(matter, EventCode.FILING, date(2020, 6, 15))
        pending = make_renewal(matter, event=fil)
        make_rule(EventCode.GRANT, EventCode.RENEWAL, delete_task=True)

        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert report.deleted == [pending.id]
        assert report.created == []
        assert report.renewals == []
        assert db.session.get(Task, pending.id) is None

    def test_renewal_in_workflow_survives_delete(self, make_matter, make_event, make_rule, make_renewal, ctx):
        matter = make_matter()
        fil = make_event(matter, EventCode.FILING, date(2020, 6, 15))
        pending = make_renewal(matter, year=3, event=fil)
        invoiced = make_renewal(matter, year=4, event=fil, step=int(WorkflowStep.TO_PAY),
                                invoice_step=int(InvoiceStep.INVOICED))
        RenewalWorkflow().mark_first_call([pending.id], ctx)
        RenewalWorkflow().mark_paid([invoiced.id], ctx)
        logs_before = RenewalsLog.query.filter_by(task_id=invoiced.id).count()
        make_rule(EventCode.GRANT, EventCode.RENEWAL, delete_task=True)

        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert report.deleted == []
        assert {s["task_id"] for s in report.skipped} == {pending.id, invoiced.id}
        assert db.session.get(Task, invoiced.id) is not None
        assert RenewalsLog.query.filter_by(task_id=invoiced.id).count() == logs_before == 1

    def test_clear_leaves_workflow_tasks_pending(self, make_matter, make_event, make_rule, make_renewal, ctx):
        matter = make_matter()
        task = make_renewal(matter, step=int(WorkflowStep.TO_PAY), invoice_step=int(InvoiceStep.TO_INVOICE))
        make_rule(EventCode.GRANT, EventCode.RENEWAL, clear_task=True)

        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert report.cleared == []
        assert task.done is False
        assert report.skipped[0]["task_id"] == task.id

    def test_other_matters_untouched(self, make_matter, make_event, make_rule, make_renewal, ctx):
        matter = make_matter()
        other = make_matter()
        kept = make_renewal(other)
        make_rule(EventCode.GRANT, EventCode.RENEWAL, delete_task=True)

        _grt, report = _record(matter, EventCode.GRANT, date(2024, 1, 5), ctx)

        assert report.deleted == []
        assert db.session.get(Task, kept.id) is not None


# ═══════════════════════════════════════════════════════════════════════════
#  CONFIGURATION ERRORS
# ═══════════════════════════════════════════════════════════════════════════

class TestRuleConfiguration:
    KNOWN = {"FIL", "GRT", "EXA"}

    def test_unknown_code(self):
        rule = TaskRule(id=41, trigger_event="FIL", task="XYZ", days=0, months=0, years=0)
        with pytest.raises(RuleConfigurationError) as exc:
            validate_rule(rule, self.KNOWN)
        assert exc.value.rule_id == 41
        assert "XYZ" in str(exc.value)

    def test_negative_offset(self):
        rule = TaskRule(id=42, trigger_event="FIL", task="EXA", days=0, months=-3, years=0)
        with pytest.raises(RuleConfigurationError) as exc:
            validate_rule(rule, self.KNOWN)
        assert "rule_id=42" in str(exc.value)

    def test_clear_and_delete(self):
        rule = TaskRule(id=43, trigger_event="FIL", task="EXA", days=0, months=0, years=0,
                        clear_task=True, delete_task=True)
        with pytest.raises(RuleConfigurationError):
            validate_rule(rule, self.KNOWN)

    def test_misconfigured_rule_fails_evaluation(self, make_matter, make_event, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=-1)
        event = make_event(matter)
        with pytest.raises(RuleConfigurationError):
            evaluate_event(event, ctx)


# ═══════════════════════════════════════════════════════════════════════════
#  RE-EVALUATION
# ═══════════════════════════════════════════════════════════════════════════

class TestEventUpdate:
    def test_date_change_recomputes_untouched_tasks(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=4)
        event, first = _record(matter, EventCode.FILING, date(2024, 1, 10), ctx)
        old_id = first.created[0].id

        _event, report = update_event(event, {"event_date": "2024-02-10"}, ctx)

        assert db.session.get(Task, old_id) is None
        assert report.created[0].due_date == date(2024, 6, 10)

    def test_notes_change_does_not_reevaluate(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=4)
        event, _first = _record(matter, EventCode.FILING, date(2024, 1, 10), ctx)

        _event, report = update_event(event, {"notes": "checked"}, ctx)
        assert report is None
        assert Task.query.count() == 1

    def test_date_change_keeps_one_renewal_per_year(self, make_matter, make_rule):
        ctx = ActingContext(user="tester", today=date(2020, 6, 15))
        matter = make_matter(country="FR")
        make_rule(EventCode.FILING, EventCode.RENEWAL, recurring=True)
        event, first = _record(matter, EventCode.FILING, date(2020, 6, 15), ctx)
        year_two = next(t for t in first.renewals if t.annuity == 2)
        RenewalWorkflow().mark_to_pay([year_two.id], ctx)

        _event, report = update_event(event, {"event_date": "2020-06-20"}, ctx)

        years = [t.annuity for t in Task.query.filter_by(trigger_id=event.id, code=EventCode.RENEWAL)]
        assert sorted(years) == list(range(2, 21))
        assert 2 not in [t.annuity for t in report.renewals]
        assert year_two.due_date == date(2021, 6, 15)
        assert db.session.get(Task, year_two.id).step == WorkflowStep.TO_PAY

    def test_date_change_keeps_done_task_without_duplicate(self, make_matter, make_rule, ctx):
        matter = make_matter()
        make_rule(EventCode.FILING, "EXA", months=4)
        event, first = _record(matter, EventCode.FILING, date(2020, 1, 10), ctx)
        assert first.created[0].done is True

        _event, report = update_event(event, {"event_date": "2020-02-10"}, ctx)

        assert report.created == []
        assert report.skipped[0]["reason"] == "task kept from an earlier evaluation"
        assert Task.query.filter_by(trigger_id=event.id, code="EXA").count() == 1
