"""
Matter service — derived facts (priority, status) and the expiry sweep.
"""

from datetime import date

import pytest

from app.core.context import ActingContext
from app.core.exceptions import NotFoundError
from app.models.matter import Event
from app.models.reference import EventCode
from app.services.matter_service import (
    earliest_priority_date,
    get_matter,
    mark_expired,
    matter_status,
)


def test_get_matter_not_found(reference):
    with pytest.raises(NotFoundError):
        get_matter(12345)


def test_earliest_priority_date(make_matter, make_event):
    matter = make_matter()
    make_event(matter, EventCode.PRIORITY, date(2022, 4, 1))
    make_event(matter, EventCode.PRIORITY, date(2021, 12, 1))
    assert earliest_priority_date(matter) == date(2021, 12, 1)
    assert earliest_priority_date(make_matter()) is None


def test_matter_status_is_latest_status_event(make_matter, make_event):
    matter = make_matter()
    make_event(matter, EventCode.FILING, date(2020, 1, 1))
    make_event(matter, EventCode.PRIORITY, date(2023, 1, 1))
    make_event(matter, EventCode.GRANT, date(2022, 6, 1))

    status = matter_status(matter)
    assert status["code"] == EventCode.GRANT
    assert status["event_date"] == "2022-06-01"


class TestMarkExpired:
    def test_expires_past_matters_once(self, make_matter):
        ctx = ActingContext.system(today=date(2024, 1, 15))
        past = make_matter(expire_date=date(2024, 1, 1))
        future = make_matter(expire_date=date(2030, 1, 1))
        make_matter()  # no expiry date

        events = mark_expired(ctx)

        assert [e.matter_id for e in events] == [past.id]
        assert events[0].code == EventCode.EXPIRY
        assert events[0].event_date == date(2024, 1, 1)
        assert past.dead is True
        assert future.dead is False
        assert mark_expired(ctx) == []

    def test_dead_matters_skipped(self, make_matter):
        ctx = ActingContext.system(today=date(2024, 1, 15))
        make_matter(expire_date=date(2023, 1, 1), dead=True)
        assert mark_expired(ctx) == []
        assert Event.query.filter_by(code=EventCode.EXPIRY).count() == 0
