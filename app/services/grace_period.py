"""
Grace Period Evaluator

A renewal is in grace once its due date has passed unpaid, up to the end
of the late-payment window; past that window it is lapsed (the lapse
itself is a workflow transition, not decided here).

Window length: 6 months, 19 months for international (WO) origin, or the
country's own ``grace_months`` when configured.

All functions are pure: no session access, "today" is always passed in.
"""

from __future__ import annotations

from datetime import date

from dateutil.relativedelta import relativedelta

from app.models.reference import WO_ORIGIN

DEFAULT_GRACE_MONTHS = 6
WO_GRACE_MONTHS = 19

NOT_DUE = "not_due"
IN_GRACE = "in_grace"
LAPSED = "lapsed"
DONE = "done"


def grace_window_months(origin: str | None, country=None, *,
                        default: int = DEFAULT_GRACE_MONTHS,
                        wo_default: int = WO_GRACE_MONTHS) -> int:
    if country is not None and getattr(country, "grace_months", None):
        return int(country.grace_months)
    if origin == WO_ORIGIN:
        return wo_default
    return default


def grace_deadline(due_date: date, months: int) -> date:
    return due_date + relativedelta(months=months)


def _months(origin, months):
    return grace_window_months(origin) if months is None else months


def is_in_grace(due_date: date | None, done_date: date | None, today: date,
                origin: str | None = None, months: int | None = None) -> bool:
    if due_date is None or done_date is not None:
        return False
    return due_date < today <= grace_deadline(due_date, _months(origin, months))


def is_lapsed(due_date: date | None, done_date: date | None, today: date,
              origin: str | None = None, months: int | None = None) -> bool:
    if due_date is None or done_date is not None:
        return False
    return today > grace_deadline(due_date, _months(origin, months))


def grace_state(due_date: date | None, done_date: date | None, today: date,
                origin: str | None = None, months: int | None = None) -> str:
    if done_date is not None:
        return DONE
    if due_date is None or today <= due_date:
        return NOT_DUE
    if is_in_grace(due_date, done_date, today, origin, months):
        return IN_GRACE
    return LAPSED
