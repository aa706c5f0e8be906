# accounts/models.py
"""
Tenant model.

Every ledger row carries a ``company`` foreign key and every ledger
operation takes the company as an explicit argument. There is no
ambient "current company" anywhere in the ledger core.
"""

import uuid

from django.db import models
from django.utils.translation import gettext_lazy as _


class Company(models.Model):
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100, unique=True)
    default_currency = models.CharField(max_length=10, default="USD")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Company")
        verbose_name_plural = _("Companies")
        ordering = ["name"]

    def __str__(self):
        return self.name
