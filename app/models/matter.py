"""
IP Docket
Matter domain models.

Models:
    - Matter: an IP case (patent, trademark, design, ...)
    - Event: a dated occurrence on a matter (filing, grant, priority claim, ...)

Ownership chain: Matter → Event → Task (cascade delete).
"""

from datetime import datetime, timezone

from app.models import db


class Matter(db.Model):
    """
    A tracked IP case.

    ``uid`` is derived from (caseref, country, origin, type_code, idx) and is
    refreshed through ``refresh_uid()`` on every insert and update.
    """

    __tablename__ = "matter"
    __table_args__ = (
        db.UniqueConstraint("caseref", "country", "origin", "type_code", "idx",
                            name="uq_matter_identity"),
        db.Index("ix_matter_dead_expire", "dead", "expire_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    category_code = db.Column(db.String(5), nullable=False, default="PAT")
    caseref = db.Column(db.String(30), nullable=False, index=True)
    country = db.Column(db.String(2), db.ForeignKey("country.iso"), nullable=False)
    origin = db.Column(db.String(2), db.ForeignKey("country.iso"), nullable=True)
    type_code = db.Column(db.String(5), nullable=True)
    idx = db.Column(db.SmallInteger, nullable=True)

    container_id = db.Column(db.Integer, db.ForeignKey("matter.id", ondelete="SET NULL"), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("matter.id", ondelete="SET NULL"), nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("actor.id", ondelete="SET NULL"), nullable=True)
    client_ref = db.Column(db.String(100), nullable=True)
    title = db.Column(db.String(255), nullable=True)

    responsible = db.Column(db.String(20), nullable=True)
    dead = db.Column(db.Boolean, default=False, nullable=False)
    expire_date = db.Column(db.Date, nullable=True)
    uid = db.Column(db.String(45), nullable=True, index=True)

    creator = db.Column(db.String(20), nullable=True)
    updater = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    country_info = db.relationship("Country", foreign_keys=[country], lazy="joined")
    client = db.relationship("Actor", foreign_keys=[client_id])
    events = db.relationship(
        "Event", back_populates="matter", foreign_keys="Event.matter_id",
        cascade="all, delete-orphan",
    )

    def refresh_uid(self):
        from app.services.matter_uid import compose_matter_uid

        self.uid = compose_matter_uid(
            self.caseref, self.country, self.origin, self.type_code, self.idx,
        )
        return self.uid

    def event_date(self, code):
        """Earliest date of an event of the given code, or None."""
        row = (
            Event.query
            .filter(Event.matter_id == self.id, Event.code == code,
                    Event.event_date.isnot(None))
            .order_by(Event.event_date)
            .first()
        )
        return row.event_date if row else None

    def has_event(self, code) -> bool:
        return Event.query.filter_by(matter_id=self.id, code=code).first() is not None

    def to_dict(self):
        return {
            "id": self.id,
            "uid": self.uid,
            "category_code": self.category_code,
            "caseref": self.caseref,
            "country": self.country,
            "origin": self.origin,
            "type_code": self.type_code,
            "idx": self.idx,
            "container_id": self.container_id,
            "parent_id": self.parent_id,
            "client_id": self.client_id,
            "responsible": self.responsible,
            "dead": self.dead,
            "expire_date": self.expire_date.isoformat() if self.expire_date else None,
        }

    def __repr__(self):
        return f"<Matter {self.id}: {self.uid}>"


class Event(db.Model):
    """
    A dated occurrence on a matter.

    Events linked to another matter (``alt_matter_id``) take their date from
    that matter's filing event.
    """

    __tablename__ = "event"
    __table_args__ = (
        db.UniqueConstraint("matter_id", "code", "event_date", "alt_matter_id",
                            name="uq_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(5), db.ForeignKey("event_name.code"), nullable=False, index=True)
    matter_id = db.Column(db.Integer, db.ForeignKey("matter.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    event_date = db.Column(db.Date, nullable=True)
    alt_matter_id = db.Column(db.Integer, db.ForeignKey("matter.id", ondelete="SET NULL"), nullable=True)
    detail = db.Column(db.String(45), nullable=True, comment="Official number")
    notes = db.Column(db.String(150), nullable=True)

    creator = db.Column(db.String(20), nullable=True)
    updater = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    matter = db.relationship("Matter", back_populates="events", foreign_keys=[matter_id])
    alt_matter = db.relationship("Matter", foreign_keys=[alt_matter_id])
    event_name = db.relationship("EventName")
    tasks = db.relationship("Task", back_populates="trigger", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "matter_id": self.matter_id,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "alt_matter_id": self.alt_matter_id,
            "detail": self.detail,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<Event {self.id}: {self.code} {self.event_date}>"
