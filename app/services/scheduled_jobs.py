"""
IP Docket
Scheduled Jobs.

Concrete job implementations that run on a schedule. Each job works in
the caller's transaction; SchedulerService.run_job commits it.

Jobs:
    - expired_matter_scan: records an EXP event on live matters past expiry
    - renewal_grace_scan: flags unpaid renewals that entered their grace window
"""

from __future__ import annotations

import logging
from typing import Any

from app.config import RenewalSettings
from app.core.context import ActingContext
from app.models.matter import Event
from app.models.reference import EventCode
from app.models.task import TERMINAL_STEPS, Task
from app.services.grace_period import grace_window_months, is_in_grace
from app.services.matter_service import mark_expired
from app.services.renewal_log_service import RenewalLogService
from app.services.renewal_workflow import RenewalWorkflow
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Expired Matter Scan
# ═══════════════════════════════════════════════════════════════════════════

@register_job("expired_matter_scan")
def scan_expired_matters(app, ctx: ActingContext | None = None) -> dict[str, Any]:
    """Record an EXP event on every live matter whose expiry date has passed."""
    ctx = ctx or ActingContext.system()
    events = mark_expired(ctx)
    return {"matters_expired": len(events), "matter_ids": [e.matter_id for e in events]}


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Renewal Grace Scan
# ═══════════════════════════════════════════════════════════════════════════

@register_job("renewal_grace_scan")
def scan_renewal_grace(app, ctx: ActingContext | None = None) -> dict[str, Any]:
    """Flag pending renewals whose due date passed unpaid, within the grace window."""
    settings = RenewalSettings.from_config(app.config)
    ctx = ctx or ActingContext.system()
    today = ctx.as_of()

    candidates = (
        Task.query
        .join(Event, Event.id == Task.trigger_id)
        .filter(
            Task.code == EventCode.RENEWAL,
            Task.done.is_(False),
            Task.grace_period.is_(False),
            Task.due_date < today,
            Task.step.notin_([int(s) for s in TERMINAL_STEPS]),
        )
        .order_by(Task.due_date)
        .all()
    )

    due_ids = []
    for task in candidates:
        matter = task.matter
        months = grace_window_months(
            matter.origin, matter.country_info,
            default=settings.grace_months, wo_default=settings.grace_months_wo,
        )
        if is_in_grace(task.due_date, task.done_date, today, matter.origin, months):
            due_ids.append(task.id)

    if not due_ids:
        return {"scanned": len(candidates), "flagged": 0, "job_id": None}

    log_service = RenewalLogService()
    job_ctx = ctx.with_job(ctx.job_id or log_service.create_job_id())
    report = RenewalWorkflow(log_service).mark_grace_period(due_ids, job_ctx)
    logger.info("Grace scan flagged %d renewals", report.updated,
                extra={"job_id": report.job_id, "user": ctx.user})
    return {"scanned": len(candidates), "flagged": report.updated, "job_id": report.job_id}
