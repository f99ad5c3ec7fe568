"""
Renewal Quote Service

Prices a renewal task for a client call or invoice: FeeCalculator
output plus VAT, notice dates and the human-readable description line
consumed by the notification and invoicing integrations.

    total_ht = fee + cost
    total    = fee * (1 + vat) + cost      (VAT applies to the service fee only)

Notice dates count back from the due date; a task flagged in grace is
quoted against the end of its grace window.

quote_renewals() prices a batch: a task whose fee data is incomplete is
logged and reported as skipped, the rest of the batch is still quoted.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from app.core.exceptions import FeeDataError
from app.models.reference import EventCode
from app.services.fee_calculator import CENT, price_task, to_money
from app.services.grace_period import grace_deadline, grace_window_months

logger = logging.getLogger(__name__)

LAST_CALL = "last"

_FILED_PHRASE = " filed "
_GRANTED_PHRASE = " granted "


def describe_renewal(task) -> str:
    """'<uid> - <number> filed|granted <date>' plus client reference and title lines."""
    trigger = task.trigger
    matter = task.matter
    desc = f"{matter.uid} - {trigger.detail or ''}"
    if trigger.code == EventCode.FILING:
        desc += _FILED_PHRASE
    elif trigger.code in (EventCode.GRANT, EventCode.PRIORITY_CLAIM):
        desc += _GRANTED_PHRASE
    else:
        desc += " "
    if trigger.event_date:
        desc += trigger.event_date.isoformat()
    if matter.client_ref:
        desc += f"\nRef: {matter.client_ref}"
    if matter.title:
        desc += f"\nTitle: {matter.title}"
    return desc


def quote_renewal(task, settings, *, notify_type: str = "first") -> dict:
    """Priced quote of one renewal task.

    Raises FeeDataError when the fee schedule lacks the amounts needed.
    """
    matter = task.matter
    result = price_task(task, settings)
    vat_rate = Decimal(str(settings.vat_rate))

    due_date = task.due_date
    if task.grace_period and due_date is not None:
        months = grace_window_months(
            matter.origin, matter.country_info, default=settings.grace_months,
            wo_default=settings.grace_months_wo,
        )
        due_date = grace_deadline(due_date, months)

    validity_days = settings.validity_before_last if notify_type == LAST_CALL else settings.validity_before
    validity_date = due_date - timedelta(days=validity_days) if due_date else None
    instruction_date = None
    if notify_type != LAST_CALL and due_date is not None:
        instruction_date = due_date - timedelta(days=settings.instruct_before)

    vat = to_money(result.fee * vat_rate)
    total_ht = to_money(result.fee + result.cost)
    total = to_money(result.fee * (Decimal("1") + vat_rate) + result.cost)

    logger.debug("Quoted renewal", extra={"task_id": task.id, "matter_id": matter.id})
    return {
        "task_id": task.id,
        "matter_id": matter.id,
        "uid": matter.uid,
        "annuity": task.annuity,
        "grace_period": bool(task.grace_period),
        "due_date": due_date.isoformat() if due_date else None,
        "validity_date": validity_date.isoformat() if validity_date else None,
        "instruction_date": instruction_date.isoformat() if instruction_date else None,
        "currency": result.currency or "EUR",
        "cost": str(result.cost),
        "fee": str(result.fee),
        "vat_rate": str((vat_rate * 100).quantize(CENT)),
        "vat": str(vat),
        "total_ht": str(total_ht),
        "total": str(total),
        "description": describe_renewal(task),
    }


def quote_renewals(tasks, settings, *, notify_type: str = "first") -> dict:
    """Quote every task of a batch.

    Returns:
        {"quotes": [quote, ...], "skipped": [{"task_id", "reason"}, ...]}
    """
    quotes, skipped = [], []
    for task in tasks:
        try:
            quotes.append(quote_renewal(task, settings, notify_type=notify_type))
        except FeeDataError as exc:
            matter = task.matter
            logger.warning(
                "Renewal not quoted: %s", exc.message,
                extra={"task_id": task.id, "matter_id": matter.id if matter else None},
            )
            skipped.append({"task_id": task.id, "reason": exc.message})
    if skipped:
        logger.info("Quoted %d renewals, skipped %d", len(quotes), len(skipped))
    return {"quotes": quotes, "skipped": skipped}
