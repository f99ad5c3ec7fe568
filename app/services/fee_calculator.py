"""
Renewal Fee Calculator

Prices one renewal (annuity) task as a {cost, fee} pair:
  - cost: official fee paid to the office, never discounted
  - fee:  service fee charged to the client, subject to grace surcharge
          and the client's renewal discount

Two sources:
  - table: a Fee schedule row matched on country/category/origin/year.
    Selection is a 2x2 on (grace_period, sme_status):
        normal + standard -> cost / fee
        normal + SME      -> cost_reduced / fee_reduced
        grace  + standard -> cost_sup / fee_sup
        grace  + SME      -> cost_sup_reduced / fee_sup_reduced
  - task: the cost/fee copied on the task by its rule. The part of the fee
    above default_fee is kept, the default_fee part scales with the grace
    factor.

A selected amount that is missing raises FeeDataError; there is no
fallback to the standard column.

Usage:
    from app.services.fee_calculator import FeeCalculator, build_fee_record

    calc = FeeCalculator.from_settings(settings)
    record = build_fee_record(task, fee_row, sme_status=False, discount=0)
    result = calc.calculate(record)   # FeeResult(cost=..., fee=...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from app.core.exceptions import FeeDataError
from app.models.reference import Fee

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ONE = Decimal("1")
ZERO = Decimal("0")


def to_money(value) -> Decimal | None:
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class RenewalFeeRecord:
    """Everything the calculator needs to price one renewal."""

    table_fee: bool
    grace_period: bool = False
    sme_status: bool = False
    cost: Decimal | None = None
    fee: Decimal | None = None
    cost_reduced: Decimal | None = None
    fee_reduced: Decimal | None = None
    cost_sup: Decimal | None = None
    fee_sup: Decimal | None = None
    cost_sup_reduced: Decimal | None = None
    fee_sup_reduced: Decimal | None = None
    discount: Decimal | None = None
    done_date: date | None = None
    due_date: date | None = None
    currency: str | None = None
    task_id: int | None = None
    matter_id: int | None = None


@dataclass(frozen=True)
class FeeResult:
    cost: Decimal
    fee: Decimal
    currency: str | None = None

    def to_dict(self) -> dict:
        return {"cost": float(self.cost), "fee": float(self.fee), "currency": self.currency}


# Column pair selected by (grace_period, sme_status)
_TABLE_COLUMNS = {
    (False, False): ("cost", "fee"),
    (False, True): ("cost_reduced", "fee_reduced"),
    (True, False): ("cost_sup", "fee_sup"),
    (True, True): ("cost_sup_reduced", "fee_sup_reduced"),
}


class FeeCalculator:
    """Stateless pricing of renewal records."""

    def __init__(self, default_fee=Decimal("145"), grace_factor=Decimal("1.0")):
        self.default_fee = to_money(default_fee)
        self.grace_factor = Decimal(str(grace_factor))

    @classmethod
    def from_settings(cls, settings) -> FeeCalculator:
        return cls(default_fee=settings.default_fee, grace_factor=settings.grace_fee_factor)

    # ── Entry point ──────────────────────────────────────────────────────

    def calculate(self, record: RenewalFeeRecord) -> FeeResult:
        if record.table_fee:
            result = self.calculate_from_table(record)
        else:
            result = self.calculate_from_task(record)
        return FeeResult(
            cost=result.cost,
            fee=self.apply_discount(result.fee, record.discount),
            currency=record.currency,
        )

    # ── Branches (undiscounted) ──────────────────────────────────────────

    def calculate_from_table(self, record: RenewalFeeRecord) -> FeeResult:
        cost_field, fee_field = _TABLE_COLUMNS[(bool(record.grace_period), bool(record.sme_status))]
        cost = getattr(record, cost_field)
        fee = getattr(record, fee_field)
        for field_name, value in ((cost_field, cost), (fee_field, fee)):
            if value is None:
                logger.warning(
                    "Fee schedule has no %s for renewal", field_name,
                    extra={"task_id": record.task_id, "matter_id": record.matter_id},
                )
                raise FeeDataError(
                    f"Fee schedule value '{field_name}' is missing",
                    field=field_name, task_id=record.task_id, matter_id=record.matter_id,
                )
        return FeeResult(cost=to_money(cost), fee=to_money(fee))

    def calculate_from_task(self, record: RenewalFeeRecord) -> FeeResult:
        if record.fee is None:
            raise FeeDataError(
                "Task has no fee to price from", field="fee",
                task_id=record.task_id, matter_id=record.matter_id,
            )
        task_fee = to_money(record.fee)
        factor = self.grace_factor_for(record)
        fee = (task_fee - self.default_fee) + factor * self.default_fee
        cost = to_money(record.cost) if record.cost is not None else ZERO.quantize(CENT)
        return FeeResult(cost=cost, fee=to_money(fee))

    # ── Helpers ──────────────────────────────────────────────────────────

    def grace_factor_for(self, record: RenewalFeeRecord) -> Decimal:
        """Configured grace factor when the renewal is in grace and not paid on time."""
        if not record.grace_period:
            return ONE
        paid_on_time = (
            record.done_date is not None
            and record.due_date is not None
            and record.done_date <= record.due_date
        )
        return ONE if paid_on_time else self.grace_factor

    @staticmethod
    def apply_discount(fee, discount) -> Decimal:
        """>1 replaces the fee, 0<d<=1 reduces it by that fraction, 0/None is a no-op."""
        fee = to_money(fee)
        if discount is None:
            return fee
        discount = Decimal(str(discount))
        if discount < ZERO:
            raise FeeDataError(f"Negative renewal discount {discount}", field="discount")
        if discount == ZERO:
            return fee
        if discount > ONE:
            return to_money(discount)
        return to_money(fee * (ONE - discount))


# ── Record assembly ──────────────────────────────────────────────────────────

def find_fee_row(matter, year: int, on_date: date | None = None) -> Fee | None:
    """Fee schedule row for a renewal year; origin-specific rows win over generic ones."""
    candidates = (
        Fee.query
        .filter(
            Fee.for_country == matter.country,
            Fee.for_category == matter.category_code,
            Fee.qt == year,
        )
        .all()
    )
    rows = [
        row for row in candidates
        if (row.for_origin is None or row.for_origin == matter.origin) and row.is_valid_on(on_date)
    ]
    rows.sort(key=lambda row: (row.for_origin is None, row.id))
    return rows[0] if rows else None


def build_fee_record(task, fee_row=None, *, sme_status: bool = False, discount=None) -> RenewalFeeRecord:
    matter = task.matter
    record = RenewalFeeRecord(
        table_fee=fee_row is not None and fee_row.fee is not None,
        grace_period=bool(task.grace_period),
        sme_status=bool(sme_status),
        discount=discount,
        done_date=task.done_date,
        due_date=task.due_date,
        task_id=task.id,
        matter_id=matter.id if matter else None,
    )
    if record.table_fee:
        for name in ("cost", "fee", "cost_reduced", "fee_reduced", "cost_sup", "fee_sup",
                     "cost_sup_reduced", "fee_sup_reduced"):
            setattr(record, name, getattr(fee_row, name))
        record.currency = fee_row.currency
    else:
        record.cost = task.cost
        record.fee = task.fee
        record.currency = task.currency
    return record


def price_task(task, settings) -> FeeResult:
    """Price a renewal task against the schedule, the client's SME flag and discount."""
    matter = task.matter
    client = matter.client if matter else None
    fee_row = find_fee_row(matter, task.annuity, task.due_date) if matter and task.annuity else None
    record = build_fee_record(
        task, fee_row,
        sme_status=bool(client and client.small_entity),
        discount=client.ren_discount if client else None,
    )
    return FeeCalculator.from_settings(settings).calculate(record)
