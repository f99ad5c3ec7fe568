"""
Renewal quote — totals, notice dates and description line.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.config import RenewalSettings
from app.core.exceptions import FeeDataError
from app.models import db
from app.models.reference import Actor, EventCode, Fee
from app.services.renewal_quote_service import describe_renewal, quote_renewal, quote_renewals


@pytest.fixture()
def renewal(make_matter, make_event, make_renewal):
    matter = make_matter(caseref="DOC42", client_ref="ACME-7", title="Widget")
    fil = make_event(matter, EventCode.FILING, date(2020, 6, 15), detail="FR2000123")
    return make_renewal(matter, year=3, due_date=date(2024, 3, 1), event=fil,
                        cost=Decimal("40"), fee=Decimal("145"))


def test_description_line(renewal):
    assert describe_renewal(renewal) == (
        "DOC42FR - FR2000123 filed 2020-06-15\nRef: ACME-7\nTitle: Widget"
    )


def test_granted_phrase(make_matter, make_event, make_renewal):
    matter = make_matter(caseref="DOC43")
    grt = make_event(matter, EventCode.GRANT, date(2022, 2, 2), detail="EP123")
    task = make_renewal(matter, event=grt, fee=Decimal("145"))
    assert describe_renewal(task) == "DOC43FR - EP123 granted 2022-02-02"


def test_first_call_quote(renewal):
    quote = quote_renewal(renewal, RenewalSettings())

    assert quote["annuity"] == 3
    assert quote["cost"] == "40.00"
    assert quote["fee"] == "145.00"
    assert quote["vat_rate"] == "20.00"
    assert quote["vat"] == "29.00"
    assert quote["total_ht"] == "185.00"
    assert quote["total"] == "214.00"
    assert quote["currency"] == "EUR"
    assert quote["due_date"] == "2024-03-01"
    assert quote["validity_date"] == "2024-01-01"
    assert quote["instruction_date"] == "2024-01-16"


def test_last_call_quote(renewal):
    quote = quote_renewal(renewal, RenewalSettings(), notify_type="last")
    assert quote["validity_date"] == "2024-01-31"
    assert quote["instruction_date"] is None


def test_grace_quote_uses_window_end(renewal):
    renewal.grace_period = True
    quote = quote_renewal(renewal, RenewalSettings(grace_fee_factor=Decimal("1.5")))
    assert quote["due_date"] == "2024-09-01"
    assert quote["validity_date"] == "2024-07-03"
    # (145 - 145) + 1.5 * 145
    assert quote["fee"] == "217.50"


def test_missing_fee_data(make_matter, make_renewal):
    task = make_renewal(make_matter())
    with pytest.raises(FeeDataError):
        quote_renewal(task, RenewalSettings())


def _fee_row(**kw):
    fields = dict(for_country="FR", for_category="PAT", qt=3,
                  cost=Decimal("38"), fee=Decimal("160"))
    fields.update(kw)
    row = Fee(**fields)
    db.session.add(row)
    db.session.flush()
    return row


def test_currency_from_fee_schedule_row(make_matter, make_renewal):
    _fee_row(currency="USD")
    task = make_renewal(make_matter(), year=3)
    quote = quote_renewal(task, RenewalSettings())
    assert quote["currency"] == "USD"
    assert quote["fee"] == "160.00"


def test_currency_defaults_to_task_then_eur(renewal, make_matter, make_renewal):
    assert quote_renewal(renewal, RenewalSettings())["currency"] == "EUR"
    task = make_renewal(make_matter(), fee=Decimal("145"), currency="CHF")
    assert quote_renewal(task, RenewalSettings())["currency"] == "CHF"


class TestBatchQuotes:
    def test_sme_task_without_reduced_fee_is_skipped(self, make_matter, make_renewal):
        _fee_row()  # no fee_reduced
        sme = Actor(name="Tiny Inc", small_entity=True)
        db.session.add(sme)
        db.session.flush()
        first = make_renewal(make_matter(), year=3)
        broken = make_renewal(make_matter(client_id=sme.id), year=3)
        last = make_renewal(make_matter(), year=3)

        result = quote_renewals([first, broken, last], RenewalSettings())

        assert [q["task_id"] for q in result["quotes"]] == [first.id, last.id]
        assert len(result["skipped"]) == 1
        assert result["skipped"][0]["task_id"] == broken.id
        assert "fee_reduced" in result["skipped"][0]["reason"]

    def test_empty_batch(self, reference):
        assert quote_renewals([], RenewalSettings()) == {"quotes": [], "skipped": []}


def test_wo_grace_window_uses_grace_setting(make_matter, make_renewal):
    task = make_renewal(make_matter(origin="WO"), due_date=date(2024, 3, 1),
                        fee=Decimal("145"), grace_period=True)
    settings = RenewalSettings(grace_months_wo=12, lookback_months_wo=19)
    assert quote_renewal(task, settings)["due_date"] == "2025-03-01"
