"""
Event Service

Records events on matters and runs the task rules for them. Rule
evaluation is an explicit call made here after the event is flushed;
nothing fires implicitly on the session.

Events linked to another matter (alt_matter_id, e.g. a priority claim
pointing at the earlier application) take their date from that matter's
filing event:
  - on create: the linked filing date, or today when it has none
  - on update: the linked filing date when it exists, else unchanged

Transaction policy: flush only; the caller commits.
"""

from __future__ import annotations

import logging

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.matter import Event, Matter
from app.models.reference import EventCode, EventName
from app.services.task_rules import evaluate_event, reset_event_tasks
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _event_name(code: str | None) -> EventName:
    if not code:
        raise ValidationError("Event code is required", details={"code": "required"})
    name = db.session.get(EventName, code)
    if name is None:
        raise ValidationError(f"Unknown event code '{code}'", details={"code": code})
    return name


def _linked_filing_date(alt_matter_id: int):
    alt_matter = db.session.get(Matter, alt_matter_id)
    if alt_matter is None:
        raise NotFoundError(resource="Matter", resource_id=alt_matter_id)
    return alt_matter.event_date(EventCode.FILING)


def _check_unique(event: Event) -> None:
    clash = Event.query.filter(
        Event.matter_id == event.matter_id,
        Event.code == event.code,
        Event.event_date.is_(None) if event.event_date is None else Event.event_date == event.event_date,
        Event.alt_matter_id.is_(None) if event.alt_matter_id is None
        else Event.alt_matter_id == event.alt_matter_id,
    )
    if event.id is not None:
        clash = clash.filter(Event.id != event.id)
    if clash.first() is not None:
        raise ConflictError("Event", "code", event.code)


def _parse_event_date(data: dict):
    raw = data.get("event_date")
    parsed = parse_date(raw)
    if raw and parsed is None:
        raise ValidationError("Invalid event_date", details={"event_date": raw})
    return parsed


def create_event(matter: Matter, data: dict, ctx, *, settings=None):
    """Record an event and evaluate the task rules it triggers.

    Returns:
        (event, RuleEvaluationReport)
    """
    name = _event_name(data.get("code"))
    event = Event(
        matter_id=matter.id,
        code=name.code,
        event_date=_parse_event_date(data),
        alt_matter_id=data.get("alt_matter_id"),
        detail=data.get("detail"),
        notes=data.get("notes"),
        creator=ctx.user,
    )
    if event.alt_matter_id is not None:
        event.event_date = _linked_filing_date(event.alt_matter_id) or ctx.as_of()

    _check_unique(event)
    matter.events.append(event)
    db.session.flush()

    if name.killer and not matter.dead:
        matter.dead = True
        matter.updater = ctx.user
        logger.info("Matter closed by %s event", name.code,
                    extra={"matter_id": matter.id, "event_id": event.id})

    report = evaluate_event(event, ctx, settings=settings)
    return event, report


def update_event(event: Event, data: dict, ctx, *, settings=None):
    """Update an event; rules are re-run when its code or date changed.

    Returns:
        (event, RuleEvaluationReport | None)
    """
    old_code, old_date = event.code, event.event_date

    if "code" in data:
        event.code = _event_name(data["code"]).code
    if "event_date" in data:
        event.event_date = _parse_event_date(data)
    if "alt_matter_id" in data:
        event.alt_matter_id = data["alt_matter_id"]
    for field in ("detail", "notes"):
        if field in data:
            setattr(event, field, data[field])

    if event.alt_matter_id is not None:
        linked = _linked_filing_date(event.alt_matter_id)
        if linked is not None:
            event.event_date = linked

    _check_unique(event)
    event.updater = ctx.user
    db.session.flush()

    if event.code == old_code and event.event_date == old_date:
        return event, None

    removed = reset_event_tasks(event)
    if removed:
        logger.info("Removed %d pending tasks of changed event", len(removed),
                    extra={"matter_id": event.matter_id, "event_id": event.id})
    report = evaluate_event(event, ctx, settings=settings)
    return event, report
