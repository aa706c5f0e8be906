import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CompanySequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("next_value", models.BigIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sequences", to="accounts.company")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("company", "name"), name="uniq_company_sequence_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("slug", models.CharField(max_length=100)),
                ("account_type", models.CharField(choices=[("assets", "Assets"), ("liabilities", "Liabilities"), ("equity", "Equity"), ("revenue", "Revenue"), ("expense", "Expense")], max_length=20)),
                ("currency", models.CharField(max_length=10)),
                ("path", models.CharField(max_length=1024)),
                ("depth", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("description", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="accounts", to="accounts.company")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="accounting.account")),
            ],
            options={
                "ordering": ["path"],
                "indexes": [
                    models.Index(fields=["company", "account_type"], name="account_company_type_idx"),
                    models.Index(fields=["company", "parent"], name="account_company_parent_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "path"), name="uniq_account_path_per_company"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("entry_number", models.CharField(max_length=50)),
                ("date", models.DateField()),
                ("description", models.TextField(blank=True, default="")),
                ("reference", models.CharField(blank=True, default="", max_length=255)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("posted", "Posted")], default="pending", max_length=20)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="journal_entries", to="accounts.company")),
                ("reverses_entry", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversed_by", to="accounting.journalentry")),
            ],
            options={
                "verbose_name_plural": "journal entries",
                "ordering": ["date", "entry_number"],
                "indexes": [
                    models.Index(fields=["company", "date"], name="entry_company_date_idx"),
                    models.Index(fields=["company", "status"], name="entry_company_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "entry_number"), name="uniq_entry_number_per_company"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField()),
                ("amount", models.DecimalField(decimal_places=6, max_digits=24)),
                ("currency", models.CharField(max_length=10)),
                ("exchange_rate", models.DecimalField(blank=True, decimal_places=10, help_text="Fixed rate to the company currency applied at posting time", max_digits=24, null=True)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("remarks", models.TextField(blank=True, default="")),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="journal_lines", to="accounting.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="journal_lines", to="accounts.company")),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="accounting.journalentry")),
            ],
            options={
                "ordering": ["entry", "line_no"],
                "indexes": [
                    models.Index(fields=["company", "account"], name="line_company_account_idx"),
                    models.Index(fields=["company", "currency"], name="line_company_currency_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("entry", "line_no"), name="uniq_line_no_per_entry"),
                ],
            },
        ),
    ]
