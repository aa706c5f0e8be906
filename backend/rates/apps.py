# rates/apps.py
"""Exchange rates app configuration."""

from django.apps import AppConfig


class RatesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "rates"
    verbose_name = "Exchange Rates"
