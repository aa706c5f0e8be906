# rates/models.py
"""
Exchange rate history.

Rates are global reference data, not tenant data: every company reads
the same USD->EUR history. Rows are appended by whatever fetches rates
(outside this project) through rates.commands.record_rate().
"""

from django.db import models

from accounting.currency import RATE_PLACES
from accounting.models import LedgerModel


class ExchangeRate(LedgerModel):
    from_currency = models.CharField(max_length=10)
    to_currency = models.CharField(max_length=10)
    rate = models.DecimalField(max_digits=30, decimal_places=RATE_PLACES)
    fetched_at = models.DateTimeField()
    provider = models.CharField(max_length=100, default="manual")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["from_currency", "to_currency", "-fetched_at"]
        indexes = [
            models.Index(fields=["from_currency", "to_currency", "fetched_at"], name="rate_pair_fetched_idx"),
        ]

    def __str__(self):
        return f"{self.from_currency}/{self.to_currency}={self.rate} @ {self.fetched_at:%Y-%m-%d %H:%M}"
