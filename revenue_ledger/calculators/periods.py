"""
Billing period arithmetic.

Every function takes its reference instant as an argument; nothing
here reads the system clock.
"""

import calendar
from datetime import datetime, timedelta
from decimal import Decimal

from revenue_ledger.calculators.commission import round2, to_decimal
from revenue_ledger.models.enums import PlanKey

DEFAULT_PERIOD = timedelta(days=30)

# plan key -> months added per period
PLAN_INTERVAL_MONTHS = {
    PlanKey.MONTHLY.value: 1,
    PlanKey.QUARTERLY.value: 3,
    PlanKey.YEARLY.value: 12,
}


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping to the last day of a short month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_duration(start: datetime, duration: int, unit: str = "days") -> datetime:
    unit = unit.rstrip("s")
    if unit == "month":
        return add_months(start, duration)
    if unit == "year":
        return add_months(start, duration * 12)
    if unit == "week":
        return start + timedelta(weeks=duration)
    return start + timedelta(days=duration)


def calculate_period_end(plan_key: str, start: datetime) -> datetime:
    """End of the billing period starting at ``start``; unknown plans get 30 days."""
    months = PLAN_INTERVAL_MONTHS.get(plan_key)
    if months is None:
        return start + DEFAULT_PERIOD
    return add_months(start, months)


def calculate_period_range(
    plan_key: str,
    at: datetime,
    current_end: datetime | None = None,
) -> tuple[datetime, datetime]:
    """
    Next billing period for a renewal.

    Starts at the current period end when that is still in the
    future, so paying early does not lose the remaining days.
    """
    if current_end is not None and current_end > at:
        start = current_end
    else:
        start = at
    return start, calculate_period_end(plan_key, start)


def calculate_prorated_amount(
    amount_paid,
    period_start: datetime,
    period_end: datetime,
    as_of: datetime,
) -> Decimal:
    """Share of ``amount_paid`` covering the unused rest of the period."""
    amount_paid = to_decimal(amount_paid)
    if amount_paid <= 0:
        return Decimal("0.00")

    total = (period_end - period_start).total_seconds()
    if total <= 0:
        return Decimal("0.00")

    remaining = max(0.0, (period_end - as_of).total_seconds())
    if remaining <= 0:
        return Decimal("0.00")

    ratio = to_decimal(remaining) / to_decimal(total)
    return round2(amount_paid * min(ratio, Decimal("1")))
