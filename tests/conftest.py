"""
Shared pytest fixtures for the IP Docket test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - reference: event-name catalogue + countries (no rules)
    - ctx: ActingContext pinned to a fixed "today"
    - make_matter / make_event / make_rule / make_renewal: ORM factories
"""

from datetime import date

import pytest

from app import create_app
from app.core.context import ActingContext
from app.models import db as _db
from app.models.matter import Event
from app.models.reference import EventCode, EventName
from app.models.task import Task, TaskRule

TODAY = date(2024, 1, 15)

# Task codes used by the rule tests on top of the seeded catalogue
_EXTRA_EVENT_NAMES = [
    ("EXA", "Examination Report", True),
    ("REP", "Response Due", True),
    ("PAY", "Grant Fee Payment", True),
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Reference data ───────────────────────────────────────────────────────


@pytest.fixture()
def reference():
    """Seed event names and countries; task rules are left to each test."""
    from app.services.reference_data import seed_reference_data

    counts = seed_reference_data(include_rules=False)
    for code, name, is_task in _EXTRA_EVENT_NAMES:
        _db.session.add(EventName(code=code, name=name, is_task=is_task))
    _db.session.flush()
    return counts


@pytest.fixture()
def ctx():
    return ActingContext(user="tester", today=TODAY)


# ── ORM factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_matter(reference, ctx):
    """Create a matter through matter_service (uid computed, countries checked)."""
    from app.services.matter_service import create_matter

    counter = {"n": 0}

    def _make(**kw):
        counter["n"] += 1
        acting = kw.pop("ctx", ctx)
        data = {"caseref": f"TEST{counter['n']:03d}", "country": "FR"}
        data.update(kw)
        return create_matter(data, acting)

    return _make


@pytest.fixture()
def make_event(ctx):
    """Insert an event row directly, without rule evaluation."""

    def _make(matter, code=EventCode.FILING, event_date=date(2020, 6, 15), **kw):
        event = Event(matter_id=matter.id, code=code, event_date=event_date,
                      creator=ctx.user, **kw)
        _db.session.add(event)
        _db.session.flush()
        return event

    return _make


@pytest.fixture()
def make_rule():
    """Create an active task rule; None filters mean "any"."""

    def _make(trigger_event, task, **kw):
        rule = TaskRule(trigger_event=trigger_event, task=task, **kw)
        _db.session.add(rule)
        _db.session.flush()
        return rule

    return _make


@pytest.fixture()
def make_renewal(make_event):
    """Create a renewal task on a (new or given) filing event, bypassing the generator."""

    def _make(matter, year=3, due_date=date(2024, 3, 1), event=None, **kw):
        event = event or make_event(matter)
        fields = {"done": False, "step": 0, "invoice_step": 0}
        fields.update(kw)
        task = Task(
            trigger_id=event.id,
            code=EventCode.RENEWAL,
            due_date=due_date,
            detail={"en": str(year), "fr": str(year), "de": str(year)},
            **fields,
        )
        _db.session.add(task)
        _db.session.flush()
        return task

    return _make
