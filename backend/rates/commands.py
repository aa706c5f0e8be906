# rates/commands.py
"""Command layer for exchange rate history."""

import logging

from django.db import transaction
from django.utils import timezone

from accounting.currency import normalize_currency, to_decimal
from accounting.exceptions import InvalidAmountError, LedgerValidationError
from accounting.write_barrier import command_writes_allowed
from rates.models import ExchangeRate


logger = logging.getLogger(__name__)


@transaction.atomic
def record_rate(
    from_currency: str,
    to_currency: str,
    rate,
    fetched_at=None,
    provider: str = "manual",
) -> ExchangeRate:
    """
    Append a rate observation. History is never overwritten; lookups pick
    the most recent observation at or before the requested instant.
    """
    from_currency = normalize_currency(from_currency)
    to_currency = normalize_currency(to_currency)
    if from_currency == to_currency:
        raise LedgerValidationError("A rate needs two different currencies.")

    rate = to_decimal(rate)
    if rate <= 0:
        raise InvalidAmountError(f"Exchange rate must be positive, got {rate}.", rate=str(rate))

    with command_writes_allowed():
        row = ExchangeRate.objects.create(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            fetched_at=fetched_at or timezone.now(),
            provider=provider,
        )

    logger.info(
        "Exchange rate recorded",
        extra={
            "pair": f"{from_currency}/{to_currency}",
            "rate": str(rate),
            "provider": provider,
        },
    )
    return row
