# ops/apps.py
"""Operations app: logging, metrics and health endpoints. No models."""

from django.apps import AppConfig


class OpsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ops"
    verbose_name = "Operations"
