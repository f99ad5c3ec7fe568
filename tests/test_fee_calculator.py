"""
Renewal fee calculator.

Covers:
    1. Table branch: 2x2 column selection, missing data
    2. Task branch: grace factor on the default fee part
    3. Discount: no-op, fraction, absolute override
    4. Record assembly from a task and a fee schedule row
"""

from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import FeeDataError
from app.models import db
from app.models.reference import Actor, Fee
from app.services.fee_calculator import (
    FeeCalculator,
    RenewalFeeRecord,
    build_fee_record,
    find_fee_row,
    price_task,
)
from app.config import RenewalSettings


def _table_record(**kw):
    fields = dict(
        table_fee=True,
        cost=Decimal("100"), fee=Decimal("200"),
        cost_reduced=Decimal("50"), fee_reduced=Decimal("150"),
        cost_sup=Decimal("125"), fee_sup=Decimal("250"),
        cost_sup_reduced=Decimal("62.50"), fee_sup_reduced=Decimal("175"),
    )
    fields.update(kw)
    return RenewalFeeRecord(**fields)


# ═══════════════════════════════════════════════════════════════════════════
#  TABLE BRANCH
# ═══════════════════════════════════════════════════════════════════════════

class TestTableSelection:
    @pytest.mark.parametrize("grace,sme,expected", [
        (False, False, ("100.00", "200.00")),
        (False, True, ("50.00", "150.00")),
        (True, False, ("125.00", "250.00")),
        (True, True, ("62.50", "175.00")),
    ])
    def test_column_pair(self, grace, sme, expected):
        result = FeeCalculator().calculate(_table_record(grace_period=grace, sme_status=sme))
        assert (str(result.cost), str(result.fee)) == expected

    def test_half_discount_on_table_fee(self):
        result = FeeCalculator().calculate(_table_record(discount=Decimal("0.5")))
        assert result.cost == Decimal("100.00")
        assert result.fee == Decimal("100.00")

    def test_missing_reduced_fee_raises(self):
        record = _table_record(sme_status=True, fee_reduced=None)
        with pytest.raises(FeeDataError) as exc:
            FeeCalculator().calculate(record)
        assert exc.value.field == "fee_reduced"

    def test_missing_column_does_not_fall_back_to_standard(self):
        record = _table_record(grace_period=True, cost_sup=None)
        with pytest.raises(FeeDataError):
            FeeCalculator().calculate_from_table(record)


# ═══════════════════════════════════════════════════════════════════════════
#  TASK BRANCH
# ═══════════════════════════════════════════════════════════════════════════

class TestTaskBranch:
    def test_no_grace_keeps_task_fee(self):
        record = RenewalFeeRecord(table_fee=False, cost=Decimal("80"), fee=Decimal("300"))
        result = FeeCalculator(default_fee=145, grace_factor=Decimal("1.5")).calculate(record)
        assert result == FeeCalculator().calculate(record)
        assert result.fee == Decimal("300.00")
        assert result.cost == Decimal("80.00")

    def test_grace_scales_default_part_only(self):
        record = RenewalFeeRecord(table_fee=False, grace_period=True,
                                  cost=Decimal("80"), fee=Decimal("300"))
        result = FeeCalculator(default_fee=145, grace_factor=Decimal("1.5")).calculate(record)
        # (300 - 145) + 1.5 * 145
        assert result.fee == Decimal("372.50")
        assert result.cost == Decimal("80.00")

    def test_grace_paid_on_time_has_no_surcharge(self):
        record = RenewalFeeRecord(
            table_fee=False, grace_period=True, fee=Decimal("300"),
            due_date=date(2024, 3, 1), done_date=date(2024, 2, 20),
        )
        result = FeeCalculator(default_fee=145, grace_factor=Decimal("1.5")).calculate(record)
        assert result.fee == Decimal("300.00")

    def test_missing_cost_is_zero(self):
        record = RenewalFeeRecord(table_fee=False, fee=Decimal("145"))
        assert FeeCalculator().calculate(record).cost == Decimal("0.00")

    def test_missing_fee_raises(self):
        with pytest.raises(FeeDataError):
            FeeCalculator().calculate(RenewalFeeRecord(table_fee=False, cost=Decimal("10")))


# ═══════════════════════════════════════════════════════════════════════════
#  DISCOUNT
# ═══════════════════════════════════════════════════════════════════════════

class TestApplyDiscount:
    @pytest.mark.parametrize("discount", [None, 0, Decimal("0")])
    def test_no_discount(self, discount):
        assert FeeCalculator.apply_discount(Decimal("200"), discount) == Decimal("200.00")

    def test_fractional_discount(self):
        assert FeeCalculator.apply_discount(Decimal("200"), Decimal("0.25")) == Decimal("150.00")

    def test_full_discount(self):
        assert FeeCalculator.apply_discount(Decimal("200"), 1) == Decimal("0.00")

    def test_absolute_override(self):
        assert FeeCalculator.apply_discount(Decimal("200"), Decimal("99")) == Decimal("99.00")

    def test_negative_discount_rejected(self):
        with pytest.raises(FeeDataError):
            FeeCalculator.apply_discount(Decimal("200"), Decimal("-0.1"))

    def test_cost_never_discounted(self):
        for discount in (Decimal("0.5"), Decimal("1"), Decimal("500")):
            result = FeeCalculator().calculate(_table_record(discount=discount))
            assert result.cost == Decimal("100.00")


# ═══════════════════════════════════════════════════════════════════════════
#  RECORD ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════════

def _fee_row(**kw):
    fields = dict(for_country="FR", for_category="PAT", qt=3,
                  cost=Decimal("38"), fee=Decimal("160"),
                  cost_reduced=Decimal("19"), fee_reduced=Decimal("120"))
    fields.update(kw)
    row = Fee(**fields)
    db.session.add(row)
    db.session.flush()
    return row


class TestFeeRecordAssembly:
    def test_origin_specific_row_wins(self, make_matter):
        matter = make_matter(origin="WO")
        _fee_row()
        specific = _fee_row(for_origin="WO", fee=Decimal("180"))
        assert find_fee_row(matter, 3).id == specific.id

    def test_row_outside_validity_ignored(self, make_matter):
        matter = make_matter()
        _fee_row(use_before=date(2020, 1, 1))
        assert find_fee_row(matter, 3, date(2024, 3, 1)) is None

    def test_task_values_used_without_row(self, make_matter, make_renewal):
        task = make_renewal(make_matter(), cost=Decimal("10"), fee=Decimal("145"))
        record = build_fee_record(task)
        assert record.table_fee is False
        assert record.fee == Decimal("145")
        assert record.task_id == task.id

    def test_price_task_uses_client_sme_and_discount(self, make_matter, make_renewal):
        client = Actor(name="Acme", small_entity=True, ren_discount=Decimal("0.5"))
        db.session.add(client)
        db.session.flush()
        matter = make_matter(client_id=client.id)
        _fee_row()
        task = make_renewal(matter, year=3)

        result = price_task(task, RenewalSettings())
        assert result.cost == Decimal("19.00")
        assert result.fee == Decimal("60.00")
