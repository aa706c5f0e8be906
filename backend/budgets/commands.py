# budgets/commands.py
"""
Command layer for budgets and budget alerts.

Same conventions as accounting/commands.py: the company comes first,
rows are loaded scoped to it, policies are checked, writes happen inside
command_writes_allowed(), and a refusal raises a typed ledger error.
"""

import logging
from datetime import date as date_type
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from accounting.currency import normalize_currency, quantize_amount, to_decimal
from accounting.exceptions import (
    AccountNotFoundError,
    AlertNotFoundError,
    InvalidBudgetError,
    InvalidStatusTransitionError,
)
from accounting.models import Account
from accounting.write_barrier import command_writes_allowed
from budgets.models import Budget, BudgetAlert
from budgets.progress import budget_progress, get_budget


logger = logging.getLogger(__name__)


def _parse_date(value, field: str):
    if value is None or isinstance(value, date_type):
        return value
    try:
        return date_type.fromisoformat(str(value))
    except ValueError:
        raise InvalidBudgetError(f"Invalid {field}: {value!r}.", field=field)


def _budget_amount(value) -> Decimal:
    amount = quantize_amount(to_decimal(value))
    if amount < 0:
        raise InvalidBudgetError("Budget amount cannot be negative.", amount=amount)
    return amount


# =============================================================================
# Budget Commands
# =============================================================================

@transaction.atomic
def create_budget(
    company,
    name: str,
    account_id,
    amount,
    currency: str = "",
    start_date=None,
    end_date=None,
    budget_type: str = Budget.BudgetType.NON_PERIODIC,
    period_type: str = "",
    alert_threshold=Decimal("0.80"),
    include_subtree: bool = True,
    description: str = "",
) -> Budget:
    """
    Create a budget on an account (and by default its subtree).

    Args:
        company: Owning company
        name: Display name
        account_id: Scope root account (instance or id)
        amount: Budgeted amount, >= 0
        currency: Budget currency (default: company currency)
        start_date: First day covered (default: today)
        end_date: Last day covered, or None for open-ended
        budget_type: periodic or non_periodic
        period_type: weekly, monthly or yearly (periodic budgets only)
        alert_threshold: Fraction in [0, 1] at which a warning is raised
        include_subtree: Count postings on descendant accounts too

    Raises:
        InvalidBudgetError, AccountNotFoundError, InvalidCurrencyError
    """
    name = (name or "").strip()
    if not name:
        raise InvalidBudgetError("Budget name is required.")

    if budget_type not in Budget.BudgetType.values:
        raise InvalidBudgetError(f"Unknown budget type: {budget_type!r}.", budget_type=str(budget_type))

    if budget_type == Budget.BudgetType.PERIODIC:
        if period_type not in Budget.PeriodType.values:
            raise InvalidBudgetError(
                "Periodic budgets need a period type (weekly, monthly or yearly).",
                period_type=str(period_type),
            )
    else:
        period_type = ""

    threshold = to_decimal(alert_threshold).quantize(Decimal("0.01"))
    if threshold < 0 or threshold > 1:
        raise InvalidBudgetError("Alert threshold must be between 0 and 1.", alert_threshold=threshold)

    start_date = _parse_date(start_date, "start_date") or timezone.localdate()
    end_date = _parse_date(end_date, "end_date")
    if end_date is not None and end_date < start_date:
        raise InvalidBudgetError("Budget end date is before its start date.")

    pk = account_id.pk if isinstance(account_id, Account) else account_id
    try:
        account = Account.objects.get(company=company, pk=pk)
    except (Account.DoesNotExist, ValueError, TypeError):
        raise AccountNotFoundError(f"Account {account_id} not found.", account_id=str(account_id))

    with command_writes_allowed():
        budget = Budget.objects.create(
            company=company,
            name=name,
            description=description or "",
            budget_type=budget_type,
            period_type=period_type,
            amount=_budget_amount(amount),
            currency=normalize_currency(currency or company.default_currency),
            start_date=start_date,
            end_date=end_date,
            alert_threshold=threshold,
            account=account,
            include_subtree=include_subtree,
        )

    logger.info(
        "Budget created",
        extra={
            "company_id": company.id,
            "budget_id": budget.pk,
            "account_path": account.path,
            "amount": str(budget.amount),
            "currency": budget.currency,
        },
    )
    return budget


@transaction.atomic
def update_budget_amount(company, budget_id, amount, as_of=None, provider=None) -> Budget:
    """
    Change the budgeted amount.

    The new amount may not be lower than what has already been spent in
    the current period.
    """
    budget = get_budget(company, budget_id)
    new_amount = _budget_amount(amount)

    progress = budget_progress(company, budget, as_of=as_of, provider=provider)
    if new_amount < progress.spent_amount:
        raise InvalidBudgetError(
            f"Budget amount cannot be lower than the amount already spent ({progress.spent_amount}).",
            amount=new_amount,
            spent_amount=progress.spent_amount,
        )

    old_amount = budget.amount
    with command_writes_allowed():
        budget.amount = new_amount
        budget.save(update_fields=["amount", "updated_at"])

    logger.info(
        "Budget amount updated",
        extra={
            "company_id": company.id,
            "budget_id": budget.pk,
            "old_amount": str(old_amount),
            "new_amount": str(new_amount),
        },
    )
    return budget


@transaction.atomic
def archive_budget(company, budget_id) -> Budget:
    """Deactivate a budget; it stops alerting and leaves the summaries."""
    budget = get_budget(company, budget_id)
    if not budget.is_active:
        return budget

    with command_writes_allowed():
        budget.is_active = False
        budget.save(update_fields=["is_active", "updated_at"])

    logger.info("Budget archived", extra={"company_id": company.id, "budget_id": budget.pk})
    return budget


# =============================================================================
# Alert Commands
# =============================================================================

def _get_alert(company, alert_id) -> BudgetAlert:
    if isinstance(alert_id, BudgetAlert):
        alert_id = alert_id.pk
    try:
        return BudgetAlert.objects.select_for_update().get(company=company, pk=alert_id)
    except (BudgetAlert.DoesNotExist, ValueError, TypeError):
        raise AlertNotFoundError(f"Budget alert {alert_id} not found.", alert_id=str(alert_id))


def _transition_alert(company, alert_id, new_status: str) -> BudgetAlert:
    alert = _get_alert(company, alert_id)
    if not alert.can_transition_to(new_status):
        raise InvalidStatusTransitionError(
            f"Cannot move alert from {alert.status} to {new_status}.",
            status=alert.status,
            new_status=new_status,
        )

    now = timezone.now()
    update_fields = ["status"]
    alert.status = new_status
    if new_status == BudgetAlert.Status.SENT:
        alert.sent_at = now
        update_fields.append("sent_at")
    elif new_status == BudgetAlert.Status.ACKNOWLEDGED:
        alert.acknowledged_at = now
        update_fields.append("acknowledged_at")

    with command_writes_allowed():
        alert.save(update_fields=update_fields)

    logger.info(
        "Budget alert status changed",
        extra={"company_id": company.id, "alert_id": alert.pk, "status": new_status},
    )
    return alert


@transaction.atomic
def mark_alert_sent(company, alert_id) -> BudgetAlert:
    return _transition_alert(company, alert_id, BudgetAlert.Status.SENT)


@transaction.atomic
def acknowledge_alert(company, alert_id) -> BudgetAlert:
    return _transition_alert(company, alert_id, BudgetAlert.Status.ACKNOWLEDGED)


@transaction.atomic
def dismiss_alert(company, alert_id) -> BudgetAlert:
    return _transition_alert(company, alert_id, BudgetAlert.Status.DISMISSED)
