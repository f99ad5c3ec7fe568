"""
Renewal Schedule Generator

Creates every payable renewal (annuity) task of a matter once its
renewal-start event is recorded.

Country parameters (RenewalParams):
    year  first payable year N
    mode  BASE  -> due = base_date  + (year - 1) years
          START -> due = start_date + (year - 1) years
    base_code / start_code  events giving base_date / start_date

Rules per year, from N up to the horizon (20):
    - years that already have a renewal task from the same event and rule
      (kept across a re-evaluation) are not created again
    - stop as soon as the due date passes the matter's expiry date
    - due dates before the start date are clamped up to it
    - due dates older than the look-back window are skipped
      (6 months, 19 months for WO origin, or the country override)

Usage:
    from app.services.renewal_schedule import generate_renewals

    tasks = generate_renewals(event, rule, ctx)
"""

from __future__ import annotations

import logging
from datetime import date

from dateutil.relativedelta import relativedelta

from app.config import RenewalSettings
from app.core.exceptions import RenewalParametersError
from app.models import db
from app.models.reference import WO_ORIGIN, EventCode, RenewalMode, RenewalParams
from app.models.task import InvoiceStep, Task, WorkflowStep

logger = logging.getLogger(__name__)

DETAIL_LANGUAGES = ("en", "fr", "de")


def lookback_window_months(origin: str | None, country=None, settings: RenewalSettings | None = None) -> int:
    settings = settings or RenewalSettings()
    if country is not None and country.renewal_lookback_months:
        return int(country.renewal_lookback_months)
    if origin == WO_ORIGIN:
        return settings.lookback_months_wo
    return settings.lookback_months


def renewal_detail(year: int) -> dict:
    return {lang: str(year) for lang in DETAIL_LANGUAGES}


def plan_renewal_due_dates(
    params: RenewalParams,
    base_date: date | None,
    start_date: date,
    expire_date: date | None,
    origin: str | None,
    today: date,
    horizon: int = 20,
    lookback_months: int | None = None,
) -> list[tuple[int, date]]:
    """Ordered (year, due_date) pairs to create. Pure."""
    if lookback_months is None:
        lookback_months = lookback_window_months(origin)
    cutoff = today - relativedelta(months=lookback_months)
    anchor = base_date if params.mode is RenewalMode.BASE else start_date

    plan = []
    for year in range(params.year, horizon + 1):
        due_date = anchor + relativedelta(years=year - 1)
        if expire_date is not None and due_date > expire_date:
            break
        if due_date < start_date:
            due_date = start_date
        if due_date < cutoff:
            continue
        plan.append((year, due_date))
    return plan


def resolve_renewal_dates(trigger_event, params: RenewalParams) -> tuple[date, date]:
    """(start_date, base_date) of the matter for ``params``.

    Raises RenewalParametersError when either event date is unavailable.
    """
    matter = trigger_event.matter
    ids = {"matter_id": matter.id, "event_id": trigger_event.id}
    start_date = trigger_event.event_date
    if start_date is None:
        raise RenewalParametersError("Renewal start event has no date", **ids)
    if params.base_code == trigger_event.code:
        return start_date, start_date
    base_date = matter.event_date(params.base_code)
    if base_date is None:
        raise RenewalParametersError(
            f"Matter has no {params.base_code} event to count renewals from", **ids,
        )
    return start_date, base_date


def generate_renewals(
    trigger_event,
    rule,
    ctx,
    *,
    base_date: date | None = None,
    responsible: str | None = None,
    horizon: int | None = None,
    settings: RenewalSettings | None = None,
) -> list[Task]:
    """Insert the renewal tasks triggered by ``trigger_event``.

    Returns the created tasks (flushed, not committed). Countries without
    renewal parameters, or matters missing the dates they point to, yield
    no tasks and a logged diagnostic.
    """
    settings = settings or RenewalSettings.current()
    horizon = horizon or settings.horizon_years
    matter = trigger_event.matter
    country = matter.country_info
    log_ctx = {"matter_id": matter.id, "event_id": trigger_event.id,
               "rule_id": rule.id if rule is not None else None}

    params = country.renewal_params if country is not None else None
    if params is None:
        logger.info("Country %s does not track renewals", matter.country, extra=log_ctx)
        return []

    if trigger_event.code != params.start_code:
        logger.info(
            "Event %s is not the renewal start event (%s) of %s",
            trigger_event.code, params.start_code, matter.country, extra=log_ctx,
        )
        return []

    try:
        start_date, base_event_date = resolve_renewal_dates(trigger_event, params)
    except RenewalParametersError as exc:
        logger.warning("%s, renewals skipped", exc.message, extra=log_ctx)
        return []
    effective_base = min(d for d in (base_event_date, base_date) if d is not None)

    plan = plan_renewal_due_dates(
        params,
        base_date=effective_base,
        start_date=start_date,
        expire_date=matter.expire_date,
        origin=matter.origin,
        today=ctx.as_of(),
        horizon=horizon,
        lookback_months=lookback_window_months(matter.origin, country, settings),
    )

    rule_id = rule.id if rule is not None else None
    kept_years = {
        task.annuity for task in Task.query.filter_by(
            trigger_id=trigger_event.id, code=EventCode.RENEWAL, rule_used=rule_id,
        )
    }
    if kept_years:
        plan = [(year, due_date) for year, due_date in plan if year not in kept_years]
        logger.info("Years %s already have a renewal task, not regenerated",
                    sorted(y for y in kept_years if y is not None), extra=log_ctx)

    assignee = responsible or (rule.responsible if rule is not None else None) or matter.responsible
    tasks = []
    for year, due_date in plan:
        task = Task(
            trigger_id=trigger_event.id,
            code=EventCode.RENEWAL,
            due_date=due_date,
            detail=renewal_detail(year),
            rule_used=rule_id,
            assigned_to=assignee,
            done=False,
            step=WorkflowStep.PENDING,
            invoice_step=InvoiceStep.NONE,
            cost=rule.cost if rule is not None else None,
            fee=rule.fee if rule is not None else None,
            currency=rule.currency if rule is not None else None,
            creator=ctx.user,
        )
        db.session.add(task)
        tasks.append(task)
    db.session.flush()

    logger.info(
        "Generated %d renewal tasks (years %s)", len(tasks),
        f"{plan[0][0]}-{plan[-1][0]}" if plan else "-", extra=log_ctx,
    )
    return tasks
