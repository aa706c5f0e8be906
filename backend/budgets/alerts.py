# budgets/alerts.py
"""
Budget alert evaluation.

evaluate_budget_alerts compares a budget's progress with its thresholds
and records one BudgetAlert per (budget, alert type, period start). A
crossing that was already recorded for the current period is not
recorded again, so repeated scans are idempotent.

Triggers (all require a positive budget amount):
- budget_warning: spent >= amount * alert_threshold
- budget_depleted: spent >= amount
- budget_exceeded: spent > amount
- budget_period_end: the period has a fixed end and as_of is on or past it
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from accounting.write_barrier import command_writes_allowed
from budgets.models import BudgetAlert
from budgets.periods import has_fixed_end, resolve_period
from budgets.progress import HUNDRED, PERCENT_QUANTUM, budget_progress, get_budget
from ops.metrics import record_budget_alert
from rates.providers import RateProvider


logger = logging.getLogger(__name__)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _pending_alerts(budget, progress) -> list[dict]:
    amount = budget.amount
    if amount <= 0:
        return []

    spent = progress.spent_amount
    pct = spent / amount * HUNDRED
    alerts = []

    if spent >= amount * budget.alert_threshold:
        alerts.append({
            "alert_type": BudgetAlert.AlertType.BUDGET_WARNING,
            "threshold_percent": budget.alert_threshold * HUNDRED,
            "message": (
                f'Budget "{budget.name}" has reached {pct:.1f}% of its limit. '
                f"Current spending: {_money(spent)} {budget.currency}"
            ),
        })

    if spent > amount:
        alerts.append({
            "alert_type": BudgetAlert.AlertType.BUDGET_EXCEEDED,
            "threshold_percent": HUNDRED,
            "message": (
                f'Budget "{budget.name}" has been exceeded by {pct - HUNDRED:.1f}%. '
                f"Current spending: {_money(spent)} {budget.currency}"
            ),
        })

    if spent >= amount:
        alerts.append({
            "alert_type": BudgetAlert.AlertType.BUDGET_DEPLETED,
            "threshold_percent": HUNDRED,
            "message": f'Budget "{budget.name}" is fully depleted ({pct:.1f}% used).',
        })

    if has_fixed_end(budget) and progress.as_of >= progress.period_end:
        alerts.append({
            "alert_type": BudgetAlert.AlertType.BUDGET_PERIOD_END,
            "threshold_percent": pct,
            "message": (
                f'Budget "{budget.name}" period ended on {progress.period_end.isoformat()} '
                f"with {pct:.1f}% used ({_money(spent)} of {_money(amount)} {budget.currency})."
            ),
        })

    return alerts


def evaluate_budget_alerts(
    company,
    budget,
    as_of: Optional[date] = None,
    provider: Optional[RateProvider] = None,
) -> list[BudgetAlert]:
    """
    Record the alerts a budget has newly crossed in its current period.

    Returns:
        The BudgetAlert rows created by this call (empty when nothing new
        was crossed). Inactive budgets never alert.
    """
    budget = get_budget(company, budget)
    if not budget.is_active:
        return []

    as_of = as_of or timezone.localdate()
    progress = budget_progress(company, budget, as_of=as_of, provider=provider)
    period = resolve_period(budget, as_of)

    created = []
    for candidate in _pending_alerts(budget, progress):
        exists = BudgetAlert.objects.filter(
            budget=budget,
            alert_type=candidate["alert_type"],
            period_start=period.start,
        ).exists()
        if exists:
            continue

        try:
            with transaction.atomic(), command_writes_allowed():
                alert = BudgetAlert.objects.create(
                    company=company,
                    budget=budget,
                    alert_type=candidate["alert_type"],
                    threshold_percent=candidate["threshold_percent"].quantize(PERCENT_QUANTUM),
                    spent_amount=progress.spent_amount,
                    budget_amount=budget.amount,
                    currency=budget.currency,
                    message=candidate["message"],
                    period_start=period.start,
                )
        except IntegrityError:
            # Recorded concurrently by another scan.
            continue

        record_budget_alert(alert.alert_type)
        logger.info(
            "Budget alert raised",
            extra={
                "company_id": company.id,
                "budget_id": budget.pk,
                "alert_type": alert.alert_type,
                "period_start": period.start.isoformat(),
            },
        )
        created.append(alert)

    return created


def alert_stats(company) -> dict:
    """Alert counts for a company, overall and by status and type."""
    alerts = BudgetAlert.objects.filter(company=company)

    by_status = {status: 0 for status in BudgetAlert.Status.values}
    for row in alerts.values("status").annotate(count=Count("id")).order_by():
        by_status[row["status"]] = row["count"]

    by_type = {alert_type: 0 for alert_type in BudgetAlert.AlertType.values}
    for row in alerts.values("alert_type").annotate(count=Count("id")).order_by():
        by_type[row["alert_type"]] = row["count"]

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
    }
