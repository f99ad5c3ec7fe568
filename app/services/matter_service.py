"""
Matter Service

Create/update matters and derive matter-level facts used by the rule
engine. ``uid`` is recomputed from the identity fields on every write and
is never taken from input.

Transaction policy: flush only; the caller commits.
"""

from __future__ import annotations

import logging

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.matter import Event, Matter
from app.models.reference import Country, EventCode, EventName
from app.services.matter_uid import compose_matter_uid
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_IDENTITY_FIELDS = ("caseref", "country", "origin", "type_code", "idx")
_MATTER_FIELDS = _IDENTITY_FIELDS + (
    "category_code", "container_id", "parent_id", "client_id", "client_ref",
    "title", "responsible", "dead", "expire_date",
)


def _apply_fields(matter: Matter, data: dict) -> None:
    for field in _MATTER_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "expire_date":
            parsed = parse_date(value)
            if value and parsed is None:
                raise ValidationError("Invalid expire_date", details={"expire_date": value})
            value = parsed
        elif field in ("origin", "type_code") and value == "":
            value = None
        setattr(matter, field, value)


def _check_country(iso: str | None, field: str) -> None:
    if iso is None:
        return
    if db.session.get(Country, iso) is None:
        raise ValidationError(f"Unknown country '{iso}'", details={field: iso})


def _check_identity_unique(matter: Matter) -> None:
    clash = Matter.query.filter(
        Matter.caseref == matter.caseref,
        Matter.country == matter.country,
        Matter.origin.is_(None) if matter.origin is None else Matter.origin == matter.origin,
        Matter.type_code.is_(None) if matter.type_code is None else Matter.type_code == matter.type_code,
        Matter.idx.is_(None) if matter.idx is None else Matter.idx == matter.idx,
    )
    if matter.id is not None:
        clash = clash.filter(Matter.id != matter.id)
    if clash.first() is not None:
        raise ConflictError(
            "Matter", "uid",
            compose_matter_uid(matter.caseref, matter.country, matter.origin,
                               matter.type_code, matter.idx),
        )


def create_matter(data: dict, ctx) -> Matter:
    missing = [f for f in ("caseref", "country") if not data.get(f)]
    if missing:
        raise ValidationError("Missing required fields", details={f: "required" for f in missing})
    _check_country(data.get("country"), "country")
    _check_country(data.get("origin") or None, "origin")

    matter = Matter(creator=ctx.user)
    _apply_fields(matter, data)
    _check_identity_unique(matter)
    matter.refresh_uid()
    db.session.add(matter)
    db.session.flush()
    logger.info("Matter %s created", matter.uid, extra={"matter_id": matter.id, "user": ctx.user})
    return matter


def update_matter(matter: Matter, data: dict, ctx) -> Matter:
    if "country" in data:
        _check_country(data["country"], "country")
    if data.get("origin"):
        _check_country(data["origin"], "origin")

    _apply_fields(matter, data)
    if any(f in data for f in _IDENTITY_FIELDS):
        _check_identity_unique(matter)
    matter.refresh_uid()
    matter.updater = ctx.user
    db.session.flush()
    return matter


def get_matter(matter_id: int) -> Matter:
    matter = db.session.get(Matter, matter_id)
    if matter is None:
        raise NotFoundError(resource="Matter", resource_id=matter_id)
    return matter


def earliest_priority_date(matter: Matter):
    """Earliest priority-claim date of the matter, or None."""
    return matter.event_date(EventCode.PRIORITY)


def matter_status(matter: Matter) -> dict | None:
    """Latest status-bearing event of the matter."""
    event = (
        Event.query
        .join(EventName, EventName.code == Event.code)
        .filter(Event.matter_id == matter.id, EventName.status_event.is_(True))
        .order_by(Event.event_date.desc(), Event.id.desc())
        .first()
    )
    if event is None:
        return None
    return {
        "code": event.code,
        "name": event.event_name.name if event.event_name else event.code,
        "event_date": event.event_date.isoformat() if event.event_date else None,
    }


def mark_expired(ctx) -> list[Event]:
    """Record an EXP event, dated on the expiry date, on every live matter past expiry.

    Matters that already carry an EXP event are left alone.
    """
    from app.services.event_service import create_event

    today = ctx.as_of()
    already_expired = db.select(Event.matter_id).where(Event.code == EventCode.EXPIRY)
    matters = (
        Matter.query
        .filter(
            Matter.dead.is_(False),
            Matter.expire_date.isnot(None),
            Matter.expire_date < today,
            Matter.id.notin_(already_expired),
        )
        .order_by(Matter.id)
        .all()
    )

    events = []
    for matter in matters:
        event, _report = create_event(
            matter, {"code": EventCode.EXPIRY, "event_date": matter.expire_date}, ctx,
        )
        events.append(event)
    if events:
        logger.info("Recorded expiry on %d matters", len(events), extra={"user": ctx.user})
    return events
