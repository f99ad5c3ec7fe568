"""
IP Docket
Reference data models.

Models:
    - Country: jurisdiction with its renewal parameters
    - EventName: catalogue of event / task codes
    - Actor: clients, owners and applicants (SME flag, renewal discount)
    - Fee: renewal fee schedule per country / category / year
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from app.models import db


# ── Event codes used by the engine ───────────────────────────────────────────

class EventCode:
    """Event / task codes the core logic refers to by name."""

    FILING = "FIL"
    PCT_FILING = "PFIL"
    PUBLICATION = "PUB"
    GRANT = "GRT"
    REGISTRATION = "REG"
    PRIORITY = "PRI"
    ENTRY = "ENT"
    RENEWAL = "REN"
    PRIORITY_CLAIM = "PR"
    ABANDONED = "ABA"
    LAPSED = "LAP"
    EXPIRY = "EXP"


# Origin code of international (PCT) filings
WO_ORIGIN = "WO"


# ═══════════════════════════════════════════════════════════════════════════
#  COUNTRY
# ═══════════════════════════════════════════════════════════════════════════

class RenewalMode(enum.Enum):
    """Which event the first renewal year is counted from."""

    BASE = "base"
    START = "start"


@dataclass(frozen=True)
class RenewalParams:
    """Decoded renewal parameters of a country.

    ``year`` is always positive; ``mode`` says whether it counts from the
    renewal-base event (filing-like) or the renewal-start event (grant-like).
    """

    mode: RenewalMode
    year: int
    base_code: str
    start_code: str

    @classmethod
    def decode(cls, renewal_first, base_code, start_code):
        """Decode the sign-encoded ``renewal_first`` column.

        Returns None when the country does not track renewals.
        """
        if renewal_first is None or not base_code or not start_code:
            return None
        if renewal_first == 0:
            return None
        mode = RenewalMode.BASE if renewal_first > 0 else RenewalMode.START
        return cls(mode=mode, year=abs(int(renewal_first)),
                   base_code=base_code, start_code=start_code)

    def encode(self) -> int:
        """Encode back to the stored ``renewal_first`` representation."""
        return self.year if self.mode is RenewalMode.BASE else -self.year


class Country(db.Model):
    """A jurisdiction and how renewals are computed there."""

    __tablename__ = "country"

    iso = db.Column(db.String(2), primary_key=True)
    name = db.Column(db.String(80), nullable=False, default="")
    name_fr = db.Column(db.String(80), nullable=True)
    name_de = db.Column(db.String(80), nullable=True)

    renewal_first = db.Column(
        db.SmallInteger, nullable=True,
        comment="First renewal year; negative counts from renewal_start, NULL = no renewals",
    )
    renewal_base = db.Column(db.String(5), nullable=True, default="FIL",
                             comment="Event defining the anniversary date")
    renewal_start = db.Column(db.String(5), nullable=True, default="FIL",
                              comment="Event from which renewals become due")
    renewal_lookback_months = db.Column(
        db.SmallInteger, nullable=True,
        comment="Override of the stale-renewal look-back window",
    )
    grace_months = db.Column(
        db.SmallInteger, nullable=True,
        comment="Override of the late-payment grace window",
    )

    @property
    def renewal_params(self):
        return RenewalParams.decode(
            self.renewal_first, self.renewal_base, self.renewal_start,
        )

    def set_renewal_params(self, params):
        if params is None:
            self.renewal_first = None
            return
        self.renewal_first = params.encode()
        self.renewal_base = params.base_code
        self.renewal_start = params.start_code

    def to_dict(self):
        params = self.renewal_params
        return {
            "iso": self.iso,
            "name": self.name,
            "renewal_mode": params.mode.value if params else None,
            "renewal_year": params.year if params else None,
            "renewal_base": self.renewal_base,
            "renewal_start": self.renewal_start,
            "renewal_lookback_months": self.renewal_lookback_months,
            "grace_months": self.grace_months,
        }

    def __repr__(self):
        return f"<Country {self.iso}>"


# ═══════════════════════════════════════════════════════════════════════════
#  EVENT NAME
# ═══════════════════════════════════════════════════════════════════════════

class EventName(db.Model):
    """Catalogue entry for an event or task code."""

    __tablename__ = "event_name"

    code = db.Column(db.String(5), primary_key=True)
    name = db.Column(db.String(60), nullable=False)
    is_task = db.Column(db.Boolean, default=False, nullable=False)
    status_event = db.Column(db.Boolean, default=False, nullable=False,
                             comment="Latest such event gives the matter status")
    killer = db.Column(db.Boolean, default=False, nullable=False,
                       comment="Recording this event ends the matter")

    def to_dict(self):
        return {
            "code": self.code,
            "name": self.name,
            "is_task": self.is_task,
            "status_event": self.status_event,
            "killer": self.killer,
        }

    def __repr__(self):
        return f"<EventName {self.code}>"


# ═══════════════════════════════════════════════════════════════════════════
#  ACTOR
# ═══════════════════════════════════════════════════════════════════════════

class Actor(db.Model):
    """A client, owner or applicant."""

    __tablename__ = "actor"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    display_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    language = db.Column(db.String(2), nullable=True)
    small_entity = db.Column(db.Boolean, default=False, nullable=False)
    ren_discount = db.Column(
        db.Numeric(8, 2), default=0, nullable=False,
        comment="<=1 fractional discount, >1 absolute fee override",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "email": self.email,
            "language": self.language,
            "small_entity": self.small_entity,
            "ren_discount": float(self.ren_discount or 0),
        }

    def __repr__(self):
        return f"<Actor {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════════════════
#  FEE SCHEDULE
# ═══════════════════════════════════════════════════════════════════════════

class Fee(db.Model):
    """Official cost and service fee of one renewal year."""

    __tablename__ = "fees"
    __table_args__ = (
        db.Index("ix_fees_lookup", "for_country", "for_category", "qt"),
    )

    id = db.Column(db.Integer, primary_key=True)
    for_country = db.Column(
        db.String(2), db.ForeignKey("country.iso", ondelete="CASCADE"), nullable=False,
    )
    for_category = db.Column(db.String(5), nullable=False)
    for_origin = db.Column(
        db.String(2), db.ForeignKey("country.iso", ondelete="CASCADE"), nullable=True,
    )
    qt = db.Column(db.Integer, nullable=False, comment="Renewal year")
    use_before = db.Column(db.Date, nullable=True)
    use_after = db.Column(db.Date, nullable=True)

    cost = db.Column(db.Numeric(10, 2), nullable=True)
    fee = db.Column(db.Numeric(10, 2), nullable=True)
    cost_reduced = db.Column(db.Numeric(10, 2), nullable=True, comment="Small entity")
    fee_reduced = db.Column(db.Numeric(10, 2), nullable=True, comment="Small entity")
    cost_sup = db.Column(db.Numeric(10, 2), nullable=True, comment="Late payment")
    fee_sup = db.Column(db.Numeric(10, 2), nullable=True, comment="Late payment")
    cost_sup_reduced = db.Column(db.Numeric(10, 2), nullable=True)
    fee_sup_reduced = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), default="EUR", nullable=False)

    def is_valid_on(self, day) -> bool:
        if day is None:
            return True
        if self.use_before is not None and day >= self.use_before:
            return False
        if self.use_after is not None and day < self.use_after:
            return False
        return True

    def __repr__(self):
        return f"<Fee {self.for_country}/{self.for_category} year {self.qt}>"
