import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("accounting", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Budget",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("budget_type", models.CharField(choices=[("periodic", "Periodic"), ("non_periodic", "Non-periodic")], default="non_periodic", max_length=20)),
                ("period_type", models.CharField(blank=True, choices=[("weekly", "Weekly"), ("monthly", "Monthly"), ("yearly", "Yearly")], default="", max_length=20)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=24)),
                ("currency", models.CharField(max_length=10)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(blank=True, null=True)),
                ("alert_threshold", models.DecimalField(decimal_places=2, default=Decimal("0.80"), help_text="Fraction of the amount at which a warning alert is raised", max_digits=3, validators=[django.core.validators.MinValueValidator(Decimal("0")), django.core.validators.MaxValueValidator(Decimal("1"))])),
                ("include_subtree", models.BooleanField(default=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="budgets", to="accounting.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="budgets", to="accounts.company")),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["company", "is_active"], name="budget_company_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BudgetAlert",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("alert_type", models.CharField(choices=[("budget_warning", "Budget warning"), ("budget_exceeded", "Budget exceeded"), ("budget_depleted", "Budget depleted"), ("budget_period_end", "Budget period end")], max_length=30)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("sent", "Sent"), ("acknowledged", "Acknowledged"), ("dismissed", "Dismissed")], default="pending", max_length=20)),
                ("threshold_percent", models.DecimalField(decimal_places=2, max_digits=12)),
                ("spent_amount", models.DecimalField(decimal_places=6, max_digits=24)),
                ("budget_amount", models.DecimalField(decimal_places=6, max_digits=24)),
                ("currency", models.CharField(max_length=10)),
                ("message", models.TextField(blank=True, default="")),
                ("period_start", models.DateField()),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("acknowledged_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("budget", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="alerts", to="budgets.budget")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="budget_alerts", to="accounts.company")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["company", "status"], name="alert_company_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("budget", "alert_type", "period_start"), name="uniq_alert_per_budget_period"),
                ],
            },
        ),
    ]
