# budgets/progress.py
"""
Budget progress and variance.

Both are computed on demand from posted journal lines; the budget engine
reads the ledger but never writes to it.

Spent amount: signed line amounts on the budget's account (and subtree,
when include_subtree is set) inside the window
``[period.start, min(period.end, as_of)]``, multiplied by the account's
natural sign so that expense accounts accumulate spend as positive, then
converted into the budget currency at ``as_of``.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.utils import timezone

from accounting.currency import quantize_amount
from accounting.exceptions import BudgetNotFoundError, LedgerValidationError
from budgets.models import Budget
from budgets.periods import Period, iter_buckets, resolve_period
from reports.balances import (
    convert,
    converted_total,
    ledger_lines,
    scale_vector,
    subtree_filter,
    sum_lines,
)
from rates.providers import RateProvider, default_provider

PERCENT_QUANTUM = Decimal("0.01")
RATIO_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")
GRANULARITIES = ("daily", "weekly", "monthly")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return part / whole * HUNDRED


def _serialize(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    return value


@dataclass
class BudgetProgress:
    budget_id: int
    currency: str
    amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    percentage_used: Decimal
    status: str
    alert_threshold: Decimal
    period_start: date
    period_end: date
    as_of: date
    days_elapsed: int
    days_remaining: int
    total_period_days: int
    daily_spending_rate: Decimal
    projected_end_balance: Decimal

    def to_dict(self) -> dict:
        return _serialize(asdict(self))


@dataclass
class TrendPoint:
    period_start: date
    period_end: date
    budget_to_date: Decimal
    actual: Decimal
    variance: Decimal


@dataclass
class BudgetVariance:
    budget_id: int
    currency: str
    original_budget: Decimal
    actual_spending: Decimal
    budget_variance: Decimal
    budget_variance_percentage: Decimal
    favorable_variance: Decimal
    unfavorable_variance: Decimal
    is_favorable: bool
    spending_velocity: Decimal
    projected_end_balance: Decimal
    granularity: str
    period_start: date
    period_end: date
    as_of: date
    trends: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return _serialize(asdict(self))


def get_budget(company, budget_id) -> Budget:
    if isinstance(budget_id, Budget):
        budget_id = budget_id.pk
    try:
        return Budget.objects.select_related("account").get(company=company, pk=budget_id)
    except (Budget.DoesNotExist, ValueError, TypeError):
        raise BudgetNotFoundError(f"Budget {budget_id} not found.", budget_id=str(budget_id))


def budget_status(budget: Budget, percentage_used: Decimal) -> str:
    if percentage_used >= HUNDRED:
        return Budget.Status.EXCEEDED
    if percentage_used >= budget.alert_threshold * HUNDRED:
        return Budget.Status.WARNING
    return Budget.Status.NORMAL


def scoped_lines(budget: Budget, start: date, end: date):
    """Posted lines on the budget's scope dated within ``[start, end]``."""
    lines = ledger_lines(budget.company_id, as_of=end, start=start)
    if budget.include_subtree:
        return lines.filter(subtree_filter(budget.account))
    return lines.filter(account=budget.account)


def _spent(budget: Budget, start: date, end: date, as_of: date, provider: RateProvider) -> Decimal:
    if end < start:
        return Decimal("0")
    vector = scale_vector(sum_lines(scoped_lines(budget, start, end)), budget.account.natural_sign)
    return converted_total(vector, budget.currency, as_of, provider)


def _elapsed_days(period: Period, as_of: date) -> int:
    if as_of < period.start:
        return 0
    return (min(period.end, as_of) - period.start).days + 1


def _remaining_days(period: Period, as_of: date) -> int:
    if as_of < period.start:
        return period.days
    return max((period.end - as_of).days, 0)


def budget_progress(
    company,
    budget,
    as_of: Optional[date] = None,
    provider: Optional[RateProvider] = None,
) -> BudgetProgress:
    """
    Spent amount, percentage used, status and burn rate of a budget.

    Raises:
        BudgetNotFoundError: budget does not belong to ``company``
        NoRateAvailableError: postings in a currency with no known rate
    """
    budget = get_budget(company, budget)
    as_of = as_of or timezone.localdate()
    provider = provider or default_provider()

    period = resolve_period(budget, as_of)
    window_end = min(period.end, as_of)
    spent = _spent(budget, period.start, window_end, as_of, provider)

    percentage_used = _percent(spent, budget.amount).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
    days_elapsed = _elapsed_days(period, as_of)
    daily_rate = spent / days_elapsed if days_elapsed else Decimal("0")

    return BudgetProgress(
        budget_id=budget.pk,
        currency=budget.currency,
        amount=budget.amount,
        spent_amount=quantize_amount(spent),
        remaining_amount=quantize_amount(budget.amount - spent),
        percentage_used=percentage_used,
        status=budget_status(budget, percentage_used),
        alert_threshold=budget.alert_threshold,
        period_start=period.start,
        period_end=period.end,
        as_of=as_of,
        days_elapsed=days_elapsed,
        days_remaining=_remaining_days(period, as_of),
        total_period_days=period.days,
        daily_spending_rate=quantize_amount(daily_rate),
        projected_end_balance=quantize_amount(daily_rate * period.days),
    )


def _trend_points(
    budget: Budget,
    period: Period,
    window_end: date,
    as_of: date,
    granularity: str,
    provider: RateProvider,
) -> list[TrendPoint]:
    if window_end < period.start:
        return []

    dated = list(
        scoped_lines(budget, period.start, window_end)
        .order_by()
        .values_list("entry__date", "currency", "amount")
        .iterator()
    )
    sign = budget.account.natural_sign
    total_days = Decimal(period.days)

    points = []
    cumulative: dict[str, Decimal] = {}
    for bucket in iter_buckets(Period(period.start, window_end), granularity):
        for day, currency, amount in dated:
            if bucket.contains(day):
                cumulative[currency] = cumulative.get(currency, Decimal("0")) + amount * sign

        actual = converted_total(cumulative, budget.currency, as_of, provider)
        days_to_date = Decimal((bucket.end - period.start).days + 1)
        budget_to_date = budget.amount * days_to_date / total_days
        points.append(TrendPoint(
            period_start=bucket.start,
            period_end=bucket.end,
            budget_to_date=quantize_amount(budget_to_date),
            actual=quantize_amount(actual),
            variance=quantize_amount(budget_to_date - actual),
        ))
    return points


def budget_variance(
    company,
    budget,
    as_of: Optional[date] = None,
    granularity: str = "daily",
    provider: Optional[RateProvider] = None,
) -> BudgetVariance:
    """
    Variance of actual spending against the budget.

    budget_variance = amount - spent; favorable when >= 0. The favorable
    and unfavorable magnitudes are both non-negative and at most one of
    them is non-zero, so favorable - unfavorable == budget_variance.
    """
    if granularity not in GRANULARITIES:
        raise LedgerValidationError(
            f"Granularity must be one of {', '.join(GRANULARITIES)}.",
            granularity=str(granularity),
        )

    budget = get_budget(company, budget)
    as_of = as_of or timezone.localdate()
    provider = provider or default_provider()

    period = resolve_period(budget, as_of)
    window_end = min(period.end, as_of)
    spent = quantize_amount(_spent(budget, period.start, window_end, as_of, provider))

    variance = budget.amount - spent
    days_elapsed = _elapsed_days(period, as_of)
    actual_rate = spent / days_elapsed if days_elapsed else Decimal("0")
    planned_rate = budget.amount / Decimal(period.days)
    velocity = actual_rate / planned_rate if planned_rate else Decimal("0")

    return BudgetVariance(
        budget_id=budget.pk,
        currency=budget.currency,
        original_budget=budget.amount,
        actual_spending=spent,
        budget_variance=variance,
        budget_variance_percentage=_percent(variance, budget.amount).quantize(
            PERCENT_QUANTUM, rounding=ROUND_HALF_UP,
        ),
        favorable_variance=max(variance, Decimal("0")),
        unfavorable_variance=max(-variance, Decimal("0")),
        is_favorable=variance >= 0,
        spending_velocity=velocity.quantize(RATIO_QUANTUM, rounding=ROUND_HALF_UP),
        projected_end_balance=quantize_amount(actual_rate * period.days),
        granularity=granularity,
        period_start=period.start,
        period_end=period.end,
        as_of=as_of,
        trends=_trend_points(budget, period, window_end, as_of, granularity, provider),
    )


def multi_currency_summary(
    company,
    base_currency: Optional[str] = None,
    as_of: Optional[date] = None,
    provider: Optional[RateProvider] = None,
) -> dict:
    """
    Active budgets of ``company`` rolled into one base currency.

    exposure_risk grades the share of budgeted money held in currencies
    other than the base: above 50% high, above 20% medium, else low.
    """
    base_currency = (base_currency or company.default_currency).upper()
    as_of = as_of or timezone.localdate()
    provider = provider or default_provider()

    by_currency: dict[str, dict] = {}
    total_budget = Decimal("0")
    total_spent = Decimal("0")
    foreign_budget = Decimal("0")

    budgets = Budget.objects.filter(company=company, is_active=True).select_related("account")
    for budget in budgets:
        progress = budget_progress(company, budget, as_of=as_of, provider=provider)
        converted_budget = convert(budget.amount, budget.currency, base_currency, as_of, provider)
        converted_spent = convert(progress.spent_amount, budget.currency, base_currency, as_of, provider)

        bucket = by_currency.setdefault(budget.currency, {
            "budget_count": 0,
            "total_budget": Decimal("0"),
            "total_spent": Decimal("0"),
            "converted_budget": Decimal("0"),
            "converted_spent": Decimal("0"),
        })
        bucket["budget_count"] += 1
        bucket["total_budget"] += budget.amount
        bucket["total_spent"] += progress.spent_amount
        bucket["converted_budget"] += converted_budget
        bucket["converted_spent"] += converted_spent

        total_budget += converted_budget
        total_spent += converted_spent
        if budget.currency != base_currency:
            foreign_budget += converted_budget

    for bucket in by_currency.values():
        bucket["converted_budget"] = quantize_amount(bucket["converted_budget"])
        bucket["converted_spent"] = quantize_amount(bucket["converted_spent"])

    foreign_share = _percent(foreign_budget, total_budget)
    if foreign_share > 50:
        exposure_risk = "high"
    elif foreign_share > 20:
        exposure_risk = "medium"
    else:
        exposure_risk = "low"

    return {
        "base_currency": base_currency,
        "as_of": as_of,
        "total_budget": quantize_amount(total_budget),
        "total_spent": quantize_amount(total_spent),
        "total_remaining": quantize_amount(total_budget - total_spent),
        "utilization_percentage": _percent(total_spent, total_budget).quantize(
            PERCENT_QUANTUM, rounding=ROUND_HALF_UP,
        ),
        "exposure_risk": exposure_risk,
        "by_currency": by_currency,
    }
