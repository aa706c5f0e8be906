# accounting/auto_balance.py
"""
Auto-balance calculator.

Completes a draft transaction in which exactly one line has no amount:

1. The empty line gets whatever makes its own currency group net to zero.
2. Every other currency group gets one synthesized counter-line, booked
   to the same account as the empty line, that nets that group to zero.

This is a pure function over in-memory lines; it never touches the
database. Run it before handing the lines to create_journal_entry().

A line is "empty" when its amount is None or exactly zero. A negative
amount is a deliberate credit and is never treated as empty.

Usage:
    lines = auto_balance([
        {"account_id": cash.id, "amount": "1000", "currency": "USD"},
        {"account_id": fx.id, "amount": None, "currency": "USD"},
        {"account_id": card.id, "amount": "-600", "currency": "CNY"},
    ])
    create_journal_entry(company, today, "FX purchase", [l.to_payload() for l in lines])
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Iterable, Optional

from django.conf import settings

from accounting.currency import currency_totals, normalize_currency, to_decimal
from accounting.exceptions import (
    AmbiguousEmptyLineError,
    InsufficientLinesError,
    UnbalancedEntryError,
)


DEFAULT_TOLERANCE = Decimal("0.0001")


@dataclass(frozen=True)
class DraftLine:
    """
    A candidate journal line whose amount may still be unknown.

    ``amount is None`` is the explicit "to be computed" marker; a zero
    amount is accepted on input as the same thing.
    """

    account_id: Any
    amount: Optional[Decimal]
    currency: str
    tags: list = field(default_factory=list)
    remarks: str = ""
    exchange_rate: Optional[Decimal] = None
    is_new: bool = False

    @property
    def is_empty(self) -> bool:
        return self.amount is None or self.amount == 0

    @classmethod
    def from_payload(cls, payload: dict) -> "DraftLine":
        amount = payload.get("amount")
        if isinstance(amount, str) and not amount.strip():
            amount = None
        exchange_rate = payload.get("exchange_rate")
        return cls(
            account_id=payload.get("account_id"),
            amount=None if amount is None else to_decimal(amount),
            currency=normalize_currency(payload.get("currency")),
            tags=list(payload.get("tags") or []),
            remarks=payload.get("remarks") or "",
            exchange_rate=None if exchange_rate is None else to_decimal(exchange_rate),
            is_new=bool(payload.get("is_new", False)),
        )

    def to_payload(self) -> dict:
        """Line dict in the shape create_journal_entry() accepts."""
        payload = {
            "account_id": self.account_id,
            "amount": self.amount,
            "currency": self.currency,
            "tags": list(self.tags),
            "remarks": self.remarks,
        }
        if self.exchange_rate is not None:
            payload["exchange_rate"] = self.exchange_rate
        return payload


def _coerce(lines: Iterable) -> list[DraftLine]:
    return [
        line if isinstance(line, DraftLine) else DraftLine.from_payload(line)
        for line in lines
    ]


def _tolerance() -> Decimal:
    return getattr(settings, "LEDGER_AUTO_BALANCE_TOLERANCE", DEFAULT_TOLERANCE)


def auto_balance(lines: Iterable) -> list[DraftLine]:
    """
    Fill the single empty line and synthesize cross-currency counter-lines.

    Args:
        lines: DraftLine instances or line dicts

    Returns:
        The input lines (the empty one now filled) followed by one new line
        per other currency group, in order of first appearance.

    Raises:
        InsufficientLinesError: fewer than 2 lines
        AmbiguousEmptyLineError: zero, or more than one, empty line
    """
    drafts = _coerce(lines)
    if len(drafts) < 2:
        raise InsufficientLinesError(len(drafts))

    empty_indexes = [index for index, line in enumerate(drafts) if line.is_empty]
    if len(empty_indexes) != 1:
        raise AmbiguousEmptyLineError(len(empty_indexes))

    empty_index = empty_indexes[0]
    empty_line = drafts[empty_index]

    totals = currency_totals(
        (line.currency, line.amount)
        for index, line in enumerate(drafts)
        if index != empty_index
    )

    result = list(drafts)
    result[empty_index] = replace(
        empty_line,
        amount=-totals.get(empty_line.currency, Decimal("0")),
    )

    for currency, total in totals.items():
        if currency == empty_line.currency:
            continue
        result.append(DraftLine(
            account_id=empty_line.account_id,
            amount=-total,
            currency=currency,
            tags=[],
            is_new=True,
        ))

    tolerance = _tolerance()
    for currency, residual in currency_totals(
        (line.currency, line.amount) for line in result
    ).items():
        if abs(residual) > tolerance:
            raise UnbalancedEntryError(currency, residual)

    return result
