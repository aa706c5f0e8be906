# reports/apps.py
"""Reports app configuration."""

from django.apps import AppConfig


class ReportsConfig(AppConfig):
    """Balance aggregation and financial statements. No models of its own."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "reports"
    verbose_name = "Reports"
