# budgets/models.py
"""
Budget models.

A Budget targets an account (optionally with its whole subtree) over a
date range. Spent amount, percentage used and status are never stored;
budgets/progress.py derives them from posted journal lines on demand.

BudgetAlert rows record threshold crossings. Their status only moves
forward:

    pending -> sent -> acknowledged | dismissed
    pending ---------> acknowledged | dismissed
"""

import uuid
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from accounts.models import Company
from accounting.currency import AMOUNT_PLACES
from accounting.models import Account, LedgerModel


class Budget(LedgerModel):

    class BudgetType(models.TextChoices):
        PERIODIC = "periodic", "Periodic"
        NON_PERIODIC = "non_periodic", "Non-periodic"

    class PeriodType(models.TextChoices):
        WEEKLY = "weekly", "Weekly"
        MONTHLY = "monthly", "Monthly"
        YEARLY = "yearly", "Yearly"

    class Status(models.TextChoices):
        NORMAL = "normal", "Normal"
        WARNING = "warning", "Warning"
        EXCEEDED = "exceeded", "Exceeded"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="budgets",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")

    budget_type = models.CharField(
        max_length=20,
        choices=BudgetType.choices,
        default=BudgetType.NON_PERIODIC,
    )
    period_type = models.CharField(
        max_length=20,
        choices=PeriodType.choices,
        blank=True,
        default="",
    )

    amount = models.DecimalField(max_digits=24, decimal_places=AMOUNT_PLACES)
    currency = models.CharField(max_length=10)

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)

    alert_threshold = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=Decimal("0.80"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
        help_text="Fraction of the amount at which a warning alert is raised",
    )

    # Scope
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="budgets",
    )
    include_subtree = models.BooleanField(default=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["company", "is_active"], name="budget_company_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.amount} {self.currency})"

    @property
    def is_periodic(self) -> bool:
        return self.budget_type == self.BudgetType.PERIODIC


class BudgetAlert(LedgerModel):

    class AlertType(models.TextChoices):
        BUDGET_WARNING = "budget_warning", "Budget warning"
        BUDGET_EXCEEDED = "budget_exceeded", "Budget exceeded"
        BUDGET_DEPLETED = "budget_depleted", "Budget depleted"
        BUDGET_PERIOD_END = "budget_period_end", "Budget period end"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SENT = "sent", "Sent"
        ACKNOWLEDGED = "acknowledged", "Acknowledged"
        DISMISSED = "dismissed", "Dismissed"

    # Allowed status moves; anything else is rejected by the commands.
    TRANSITIONS = {
        Status.PENDING: {Status.SENT, Status.ACKNOWLEDGED, Status.DISMISSED},
        Status.SENT: {Status.ACKNOWLEDGED, Status.DISMISSED},
        Status.ACKNOWLEDGED: set(),
        Status.DISMISSED: set(),
    }

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="budget_alerts",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    budget = models.ForeignKey(
        Budget,
        on_delete=models.CASCADE,
        related_name="alerts",
    )

    alert_type = models.CharField(max_length=30, choices=AlertType.choices)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )

    threshold_percent = models.DecimalField(max_digits=12, decimal_places=2)
    spent_amount = models.DecimalField(max_digits=24, decimal_places=AMOUNT_PLACES)
    budget_amount = models.DecimalField(max_digits=24, decimal_places=AMOUNT_PLACES)
    currency = models.CharField(max_length=10)
    message = models.TextField(blank=True, default="")

    # Start of the budget period the alert belongs to.
    period_start = models.DateField()

    sent_at = models.DateTimeField(null=True, blank=True)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["budget", "alert_type", "period_start"],
                name="uniq_alert_per_budget_period",
            )
        ]
        indexes = [
            models.Index(fields=["company", "status"], name="alert_company_status_idx"),
        ]

    def __str__(self):
        return f"{self.alert_type} for budget {self.budget_id} ({self.status})"

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())
