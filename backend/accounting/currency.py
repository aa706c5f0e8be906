# accounting/currency.py
"""
Currency codes and decimal amounts.

Amounts are always ``Decimal``. Floats are accepted at the edges but go
through ``str()`` first so that ``0.1`` becomes ``Decimal("0.1")`` rather
than its binary expansion.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

from accounting.exceptions import InvalidAmountError, InvalidCurrencyError


# ISO 4217 codes plus longer tickers (USDT, etc.)
CURRENCY_CODE_RE = re.compile(r"^[A-Z0-9]{3,10}$")

AMOUNT_PLACES = 6
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)
RATE_PLACES = 10


def normalize_currency(code) -> str:
    if not isinstance(code, str):
        raise InvalidCurrencyError(code)
    normalized = code.strip().upper()
    if not CURRENCY_CODE_RE.match(normalized):
        raise InvalidCurrencyError(code)
    return normalized


def to_decimal(value) -> Decimal:
    """Parse ``value`` into a finite Decimal or raise InvalidAmountError."""
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}.", amount=str(value))
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Invalid amount: {value!r}.", amount=str(value))
    if not result.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}.", amount=str(value))
    return result


def quantize_amount(value: Decimal) -> Decimal:
    """Round to the stored precision of ledger amounts."""
    try:
        return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        raise InvalidAmountError(f"Amount out of range: {value}.", amount=str(value))


def ledger_amount(value) -> Decimal:
    """
    Parse a posted amount, refusing precision the ledger cannot store.

    The returned amount is exactly the amount that gets stored.
    """
    amount = to_decimal(value)
    stored = quantize_amount(amount)
    if stored != amount:
        raise InvalidAmountError(
            f"Amount {value} has more than {AMOUNT_PLACES} decimal places.",
            amount=str(value),
        )
    return stored


def currency_totals(pairs) -> dict[str, Decimal]:
    """
    Sum ``(currency, amount)`` pairs per currency.

    Keys keep the order in which each currency first appears, so the
    "first offending currency" of an unbalanced set is deterministic.
    """
    totals: dict[str, Decimal] = {}
    for currency, amount in pairs:
        totals[currency] = totals.get(currency, Decimal("0")) + amount
    return totals
