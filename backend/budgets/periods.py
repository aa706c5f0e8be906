# budgets/periods.py
"""
Budget period arithmetic.

Periodic budgets reset every week (Sunday to Saturday), calendar month,
or calendar year. The period that applies is the one containing the
as-of date, clipped to the budget's own start/end dates.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def week_bounds(day: date) -> Period:
    # date.weekday(): Monday=0 ... Sunday=6
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return Period(start, start + timedelta(days=6))


def month_bounds(day: date) -> Period:
    last = calendar.monthrange(day.year, day.month)[1]
    return Period(day.replace(day=1), day.replace(day=last))


def year_bounds(day: date) -> Period:
    return Period(date(day.year, 1, 1), date(day.year, 12, 31))


PERIOD_BOUNDS = {
    "weekly": week_bounds,
    "monthly": month_bounds,
    "yearly": year_bounds,
}


def resolve_period(budget, as_of: date) -> Period:
    """
    The budget period that ``as_of`` falls into.

    Non-periodic budgets run from start_date to end_date, or to ``as_of``
    when they have no end date.
    """
    bounds = PERIOD_BOUNDS.get(budget.period_type) if budget.is_periodic else None

    if bounds is None:
        end = budget.end_date or max(as_of, budget.start_date)
        return Period(budget.start_date, end)

    anchor = max(as_of, budget.start_date)
    if budget.end_date is not None:
        anchor = min(anchor, budget.end_date)

    period = bounds(anchor)
    start = max(period.start, budget.start_date)
    end = period.end if budget.end_date is None else min(period.end, budget.end_date)
    return Period(start, end)


def has_fixed_end(budget) -> bool:
    """Whether the budget's current period has an end date that can pass."""
    return (budget.is_periodic and budget.period_type in PERIOD_BOUNDS) or budget.end_date is not None


def iter_buckets(period: Period, granularity: str):
    """Split ``period`` into daily, weekly, or monthly buckets (clipped)."""
    splitters = {
        "daily": lambda day: Period(day, day),
        "weekly": week_bounds,
        "monthly": month_bounds,
    }
    try:
        splitter = splitters[granularity]
    except KeyError:
        raise ValueError(f"Unknown granularity: {granularity!r}")

    cursor = period.start
    while cursor <= period.end:
        bucket = splitter(cursor)
        yield Period(max(bucket.start, period.start), min(bucket.end, period.end))
        cursor = bucket.end + timedelta(days=1)
