"""
Reference Data Seeder

Event-name catalogue, country renewal parameters and the default renewal
rules. Safe to run multiple times: existing rows are left untouched.

Call from ``flask seed-reference-data`` or scripts/seed_reference_data.py.
"""

import logging

from app.models import db
from app.models.reference import Country, EventCode, EventName, RenewalMode, RenewalParams
from app.models.task import TaskRule

logger = logging.getLogger(__name__)


# (code, name, is_task, status_event, killer)
EVENT_NAMES = [
    (EventCode.FILING, "Filed", False, True, False),
    (EventCode.PCT_FILING, "PCT Filing", False, False, False),
    (EventCode.PUBLICATION, "Published", False, True, False),
    (EventCode.GRANT, "Granted", False, True, False),
    (EventCode.REGISTRATION, "Registered", False, True, False),
    (EventCode.PRIORITY, "Priority Claim", False, False, False),
    (EventCode.ENTRY, "National Phase Entry", False, True, False),
    (EventCode.RENEWAL, "Renewal", True, False, False),
    (EventCode.PRIORITY_CLAIM, "Priority Rights Granted", False, False, False),
    (EventCode.ABANDONED, "Abandoned", False, True, True),
    (EventCode.LAPSED, "Lapsed", False, True, True),
    (EventCode.EXPIRY, "Expired", False, True, True),
]

# iso → (name, name_fr, name_de, renewal params or None)
COUNTRIES = {
    "EP": ("European Patent Office", "Office européen des brevets", "Europäisches Patentamt",
           RenewalParams(RenewalMode.BASE, 3, EventCode.FILING, EventCode.FILING)),
    "FR": ("France", "France", "Frankreich",
           RenewalParams(RenewalMode.BASE, 2, EventCode.FILING, EventCode.FILING)),
    "DE": ("Germany", "Allemagne", "Deutschland",
           RenewalParams(RenewalMode.BASE, 3, EventCode.FILING, EventCode.FILING)),
    "GB": ("United Kingdom", "Royaume-Uni", "Vereinigtes Königreich",
           RenewalParams(RenewalMode.BASE, 5, EventCode.FILING, EventCode.GRANT)),
    "US": ("United States", "États-Unis", "Vereinigte Staaten", None),
    "WO": ("WIPO (PCT)", "OMPI (PCT)", "WIPO (PCT)", None),
}

# Recurring renewal rules: (trigger event, for_country)
RENEWAL_RULES = [
    (EventCode.FILING, None),
    (EventCode.GRANT, "GB"),
]


def seed_reference_data(include_rules: bool = True) -> dict:
    """Insert missing reference rows. Returns per-table created counts.

    ``include_rules=False`` seeds only the catalogues (event names, countries).
    """
    counts = {"event_names": 0, "countries": 0, "task_rules": 0}

    for code, name, is_task, status_event, killer in EVENT_NAMES:
        if db.session.get(EventName, code) is None:
            db.session.add(EventName(code=code, name=name, is_task=is_task,
                                     status_event=status_event, killer=killer))
            counts["event_names"] += 1

    for iso, (name, name_fr, name_de, params) in COUNTRIES.items():
        if db.session.get(Country, iso) is not None:
            continue
        country = Country(iso=iso, name=name, name_fr=name_fr, name_de=name_de)
        country.set_renewal_params(params)
        db.session.add(country)
        counts["countries"] += 1

    db.session.flush()

    for trigger, for_country in (RENEWAL_RULES if include_rules else []):
        exists = TaskRule.query.filter_by(
            trigger_event=trigger, task=EventCode.RENEWAL, recurring=True, for_country=for_country,
        ).first()
        if exists:
            continue
        db.session.add(TaskRule(
            trigger_event=trigger,
            task=EventCode.RENEWAL,
            for_category="PAT",
            for_country=for_country,
            recurring=True,
            creator="system",
        ))
        counts["task_rules"] += 1

    db.session.flush()
    if any(counts.values()):
        logger.info("Seeded reference data: %s", counts)
    return counts
