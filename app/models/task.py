"""
IP Docket
Task domain models.

Models:
    - TaskRule: declarative trigger definition (event → create / clear / delete task)
    - Task: a concrete deadline, one-time or renewal (annuity)
    - RenewalsLog: append-only trail of renewal workflow transitions

Renewal workflow steps (even numbers are stable steps):
    PENDING(0) → FIRST_CALL(2) → TO_PAY(4) → CLEARED(6) → RECEIPT(8) → CLOSED(10)
    alternate terminal steps: ABANDONED(12), LAPSED(14); DONE(-1) for tasks
    completed outside the renewal pipeline.
Invoice steps: NONE(0) → TO_INVOICE(1) → INVOICED(2) → PAID(3).
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

class WorkflowStep(enum.IntEnum):
    DONE = -1
    PENDING = 0
    FIRST_CALL = 2
    TO_PAY = 4
    CLEARED = 6
    RECEIPT = 8
    CLOSED = 10
    ABANDONED = 12
    LAPSED = 14


class InvoiceStep(enum.IntEnum):
    NONE = 0
    TO_INVOICE = 1
    INVOICED = 2
    PAID = 3


TERMINAL_STEPS = frozenset({
    WorkflowStep.CLOSED, WorkflowStep.ABANDONED, WorkflowStep.LAPSED, WorkflowStep.DONE,
})


class RuleMode(enum.Enum):
    CREATE = "create"
    CLEAR = "clear"
    DELETE = "delete"


# ═══════════════════════════════════════════════════════════════════════════
#  TASK RULE
# ═══════════════════════════════════════════════════════════════════════════

class TaskRule(db.Model):
    """
    A trigger definition: when ``trigger_event`` is recorded on a matter that
    passes the (nullable = any) filters, create, clear or delete a ``task``.
    """

    __tablename__ = "task_rules"

    id = db.Column(db.Integer, primary_key=True)
    active = db.Column(db.Boolean, default=True, nullable=False)

    # Applicability filters, None means "any"
    for_category = db.Column(db.String(5), nullable=True)
    for_country = db.Column(db.String(2), db.ForeignKey("country.iso"), nullable=True)
    for_origin = db.Column(db.String(2), db.ForeignKey("country.iso"), nullable=True)
    for_type = db.Column(db.String(5), nullable=True)

    trigger_event = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=False, index=True)
    task = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=False)
    detail = db.Column(db.JSON, nullable=True, comment="Localized task detail")

    days = db.Column(db.SmallInteger, default=0, nullable=False)
    months = db.Column(db.SmallInteger, default=0, nullable=False)
    years = db.Column(db.SmallInteger, default=0, nullable=False)
    recurring = db.Column(db.Boolean, default=False, nullable=False)
    end_of_month = db.Column(db.Boolean, default=False, nullable=False)
    use_priority = db.Column(db.Boolean, default=False, nullable=False)

    abort_on = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=True)
    condition_event = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=True)
    use_before = db.Column(db.Date, nullable=True)
    use_after = db.Column(db.Date, nullable=True)

    cost = db.Column(db.Numeric(10, 2), nullable=True)
    fee = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), default="EUR")

    clear_task = db.Column(db.Boolean, default=False, nullable=False)
    delete_task = db.Column(db.Boolean, default=False, nullable=False)
    responsible = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.String(160), nullable=True)

    creator = db.Column(db.String(20), nullable=True)
    updater = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def mode(self) -> RuleMode:
        """Task-mutating action of the rule.

        Raises RuleConfigurationError when both clear and delete are set.
        """
        if self.clear_task and self.delete_task:
            from app.core.exceptions import RuleConfigurationError

            raise RuleConfigurationError(
                "Rule sets both clear_task and delete_task", rule_id=self.id,
            )
        if self.delete_task:
            return RuleMode.DELETE
        if self.clear_task:
            return RuleMode.CLEAR
        return RuleMode.CREATE

    def to_dict(self):
        return {
            "id": self.id,
            "active": self.active,
            "for_category": self.for_category,
            "for_country": self.for_country,
            "for_origin": self.for_origin,
            "for_type": self.for_type,
            "trigger_event": self.trigger_event,
            "task": self.task,
            "detail": self.detail,
            "days": self.days,
            "months": self.months,
            "years": self.years,
            "recurring": self.recurring,
            "end_of_month": self.end_of_month,
            "use_priority": self.use_priority,
            "abort_on": self.abort_on,
            "condition_event": self.condition_event,
            "clear_task": self.clear_task,
            "delete_task": self.delete_task,
            "responsible": self.responsible,
        }

    def __repr__(self):
        return f"<TaskRule {self.id}: {self.trigger_event} → {self.task}>"


# ═══════════════════════════════════════════════════════════════════════════
#  TASK
# ═══════════════════════════════════════════════════════════════════════════

class Task(db.Model):
    """
    A deadline generated from an event (by a rule) or created by hand.

    ``version`` is the optimistic-concurrency counter: an UPDATE racing with
    another writer fails with StaleDataError instead of overwriting.
    """

    __tablename__ = "task"
    __table_args__ = (
        db.Index("ix_task_code_done", "code", "done"),
    )

    id = db.Column(db.Integer, primary_key=True)
    trigger_id = db.Column(db.Integer, db.ForeignKey("event.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    code = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    done = db.Column(db.Boolean, default=False, nullable=False)
    done_date = db.Column(db.Date, nullable=True)
    assigned_to = db.Column(db.String(20), nullable=True)
    detail = db.Column(db.JSON, nullable=True, comment='Localized label, e.g. {"en": "3"}')
    notes = db.Column(db.Text, nullable=True)

    step = db.Column(db.SmallInteger, default=0, nullable=False)
    grace_period = db.Column(db.Boolean, default=False, nullable=False)
    invoice_step = db.Column(db.SmallInteger, default=0, nullable=False)

    cost = db.Column(db.Numeric(10, 2), nullable=True)
    fee = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=True)
    rule_used = db.Column(db.Integer, db.ForeignKey("task_rules.id", ondelete="SET NULL"), nullable=True)

    creator = db.Column(db.String(20), nullable=True)
    updater = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    trigger = db.relationship("Event", back_populates="tasks")
    rule = db.relationship("TaskRule")
    logs = db.relationship("RenewalsLog", back_populates="task",
                           cascade="all, delete-orphan", order_by="RenewalsLog.id")

    @property
    def matter(self):
        return self.trigger.matter if self.trigger else None

    @property
    def is_renewal(self) -> bool:
        from app.models.reference import EventCode

        return self.code == EventCode.RENEWAL

    @property
    def in_workflow(self) -> bool:
        """Advanced past PENDING or into invoicing."""
        return (self.step or 0) != WorkflowStep.PENDING or (self.invoice_step or 0) != InvoiceStep.NONE

    @property
    def annuity(self) -> int | None:
        """Renewal year parsed from the detail label."""
        label = (self.detail or {}).get("en") if isinstance(self.detail, dict) else self.detail
        try:
            return int(label)
        except (TypeError, ValueError):
            return None

    def to_dict(self):
        return {
            "id": self.id,
            "trigger_id": self.trigger_id,
            "code": self.code,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "done": self.done,
            "done_date": self.done_date.isoformat() if self.done_date else None,
            "assigned_to": self.assigned_to,
            "detail": self.detail,
            "step": self.step,
            "grace_period": self.grace_period,
            "invoice_step": self.invoice_step,
            "cost": float(self.cost) if self.cost is not None else None,
            "fee": float(self.fee) if self.fee is not None else None,
            "currency": self.currency,
            "rule_used": self.rule_used,
            "version": self.version,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.code} due {self.due_date}>"


# ═══════════════════════════════════════════════════════════════════════════
#  RENEWALS LOG
# ═══════════════════════════════════════════════════════════════════════════

class RenewalsLog(db.Model):
    """
    Immutable trail of renewal workflow transitions.

    One row per task per transition; ``job_id`` groups the rows written by
    one batch action.
    """

    __tablename__ = "renewals_logs"
    __table_args__ = (
        db.Index("idx_renewals_logs_task", "task_id"),
        db.Index("idx_renewals_logs_job", "job_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id", ondelete="CASCADE"), nullable=False)
    job_id = db.Column(db.Integer, nullable=True)
    from_step = db.Column(db.SmallInteger, nullable=True)
    to_step = db.Column(db.SmallInteger, nullable=True)
    from_invoice_step = db.Column(db.SmallInteger, nullable=True)
    to_invoice_step = db.Column(db.SmallInteger, nullable=True)
    from_grace = db.Column(db.Boolean, nullable=True)
    to_grace = db.Column(db.Boolean, nullable=True)
    from_done = db.Column(db.Boolean, nullable=True)
    to_done = db.Column(db.Boolean, nullable=True)
    creator = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    task = db.relationship("Task", back_populates="logs")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "job_id": self.job_id,
            "from_step": self.from_step,
            "to_step": self.to_step,
            "from_invoice_step": self.from_invoice_step,
            "to_invoice_step": self.to_invoice_step,
            "from_grace": self.from_grace,
            "to_grace": self.to_grace,
            "from_done": self.from_done,
            "to_done": self.to_done,
            "creator": self.creator,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RenewalsLog {self.id}: task {self.task_id} {self.from_step}→{self.to_step}>"


@_sa_event.listens_for(RenewalsLog, "before_update")
def _renewals_log_is_append_only(mapper, connection, target):
    raise ValueError(f"RenewalsLog {target.id} is append-only")
