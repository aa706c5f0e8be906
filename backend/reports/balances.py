# reports/balances.py
"""
Balance aggregation.

Balances are always derived from posted journal lines; nothing is cached
on the Account row. The canonical result is a per-currency vector:

    {"USD": Decimal("1000.000000"), "EUR": Decimal("-50.000000")}

A single number is only ever produced by converting the vector into a
named target currency (converted_total).

Subtree balances use the materialized path: one query filtered by
``path = P OR path LIKE 'P:%'``, so the cost is linear in the number of
postings under the subtree regardless of its depth.

Sums are done in Python over Decimal values fetched row by row so the
result is exact on every database backend.
"""

import logging
from datetime import datetime
from decimal import Decimal, localcontext
from typing import Iterable, Optional

from django.db.models import Q

from accounting.currency import currency_totals, normalize_currency, to_decimal
from accounting.exceptions import AccountNotFoundError, LedgerValidationError, NoRateAvailableError
from accounting.models import Account, JournalEntry, JournalLine, path_separator
from accounting.policies import check_tenant_boundary
from ops.metrics import record_rate_lookup_failure
from rates.providers import RateProvider, default_provider


logger = logging.getLogger(__name__)

BalanceVector = dict[str, Decimal]

# Working precision for conversions; amounts have 24 digits and rates 10
# decimal places, so the default 28 would round products.
CONVERSION_PRECISION = 60


# =============================================================================
# Vector helpers
# =============================================================================

def compact(totals: dict) -> BalanceVector:
    """Drop zero buckets and order by currency code."""
    return {currency: totals[currency] for currency in sorted(totals) if totals[currency] != 0}


def add_vectors(*vectors: BalanceVector) -> BalanceVector:
    return compact(currency_totals(
        (currency, amount)
        for vector in vectors
        for currency, amount in vector.items()
    ))


def scale_vector(vector: BalanceVector, factor) -> BalanceVector:
    return compact({currency: amount * factor for currency, amount in vector.items()})


def subtract_vectors(left: BalanceVector, right: BalanceVector) -> BalanceVector:
    return add_vectors(left, scale_vector(right, -1))


# =============================================================================
# Queries
# =============================================================================

def _as_date(as_of):
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


def ledger_lines(company, as_of=None, start=None, include_pending: bool = False):
    """Journal lines of ``company`` within the date window."""
    qs = JournalLine.objects.filter(company=company)
    if not include_pending:
        qs = qs.filter(entry__status=JournalEntry.Status.POSTED)
    if as_of is not None:
        qs = qs.filter(entry__date__lte=_as_date(as_of))
    if start is not None:
        qs = qs.filter(entry__date__gte=_as_date(start))
    return qs


def subtree_filter(account: Account, prefix: str = "account__") -> Q:
    return (
        Q(**{f"{prefix}path": account.path})
        | Q(**{f"{prefix}path__startswith": account.path + path_separator()})
    )


def sum_lines(lines) -> BalanceVector:
    return compact(currency_totals(
        lines.order_by().values_list("currency", "amount").iterator()
    ))


def _resolve_account(company, account) -> Account:
    if isinstance(account, Account):
        if not check_tenant_boundary(company, account):
            raise AccountNotFoundError(f"Account {account.pk} not found.", account_id=account.pk)
        return account
    try:
        return Account.objects.get(company=company, pk=account)
    except (Account.DoesNotExist, ValueError, TypeError):
        raise AccountNotFoundError(f"Account {account} not found.", account_id=str(account))


def account_balance(
    company,
    account,
    as_of=None,
    include_subtree: bool = False,
    include_pending: bool = False,
) -> BalanceVector:
    """
    Per-currency balance of an account.

    Args:
        company: Tenant the account must belong to
        account: Account instance or id
        as_of: Only entries dated on or before this date (None: all)
        include_subtree: Add every descendant account as well
        include_pending: Count pending entries too (default: posted only)
    """
    account = _resolve_account(company, account)
    lines = ledger_lines(company, as_of=as_of, include_pending=include_pending)
    if include_subtree:
        lines = lines.filter(subtree_filter(account))
    else:
        lines = lines.filter(account=account)
    return sum_lines(lines)


def balances_by_account(
    company,
    as_of=None,
    start=None,
    include_pending: bool = False,
    depth: Optional[int] = None,
) -> dict[int, BalanceVector]:
    """
    Own (non-rolled-up) balance of every account with postings, in one query.

    With ``depth`` the balances of deeper accounts are folded into their
    ancestor at that depth (see merge_by_depth).
    """
    grouped: dict[int, dict] = {}
    rows = (
        ledger_lines(company, as_of=as_of, start=start, include_pending=include_pending)
        .order_by()
        .values_list("account_id", "currency", "amount")
        .iterator()
    )
    for account_id, currency, amount in rows:
        bucket = grouped.setdefault(account_id, {})
        bucket[currency] = bucket.get(currency, Decimal("0")) + amount
    own = {
        account_id: vector
        for account_id, vector in ((key, compact(value)) for key, value in grouped.items())
        if vector
    }
    if depth is None:
        return own
    return merge_by_depth(Account.objects.tree(company), own, depth)


def rollup_balances(accounts: Iterable[Account], own: dict[int, BalanceVector]) -> dict[int, BalanceVector]:
    """
    Subtree balance of every account from the own balances.

    Each own vector is added to the account and to each ancestor, found
    by cutting the path at every separator.
    """
    accounts = list(accounts)
    by_path = {account.path: account.pk for account in accounts}
    separator = path_separator()
    totals: dict[int, dict] = {account.pk: {} for account in accounts}

    for account in accounts:
        vector = own.get(account.pk)
        if not vector:
            continue
        segments = account.path.split(separator)
        for size in range(1, len(segments) + 1):
            target = by_path.get(separator.join(segments[:size]))
            if target is None:
                continue
            bucket = totals[target]
            for currency, amount in vector.items():
                bucket[currency] = bucket.get(currency, Decimal("0")) + amount

    return {account_id: compact(vector) for account_id, vector in totals.items()}


def merge_by_depth(accounts: Iterable[Account], own: dict[int, BalanceVector], depth: int) -> dict[int, BalanceVector]:
    """
    Collapse the tree to ``depth`` levels (roots are depth 0).

    Accounts at or above ``depth`` keep their own balance; the own balance
    of every deeper account is added to its ancestor at ``depth``. The
    grand total per currency is unchanged. Accounts whose ancestor is not
    in ``accounts`` keep their own row.
    """
    if depth < 0:
        raise LedgerValidationError(f"Depth must be zero or more, got {depth}.", depth=depth)

    accounts = list(accounts)
    by_path = {account.path: account for account in accounts}
    separator = path_separator()
    merged: dict[int, dict] = {}

    for account in accounts:
        vector = own.get(account.pk)
        if not vector:
            continue
        target = account
        if account.depth > depth:
            ancestor_path = separator.join(account.path.split(separator)[:depth + 1])
            target = by_path.get(ancestor_path, account)
        bucket = merged.setdefault(target.pk, {})
        for currency, amount in vector.items():
            bucket[currency] = bucket.get(currency, Decimal("0")) + amount

    return {
        account_id: vector
        for account_id, vector in ((key, compact(value)) for key, value in merged.items())
        if vector
    }


# =============================================================================
# Conversion
# =============================================================================

def convert(
    amount,
    from_currency: str,
    to_currency: str,
    as_of=None,
    provider: Optional[RateProvider] = None,
) -> Decimal:
    """
    Convert ``amount`` using the latest rate fetched at or before ``as_of``.

    Raises:
        NoRateAvailableError: no rate is known for the pair; never falls
            back to 1:1
    """
    amount = to_decimal(amount)
    from_currency = normalize_currency(from_currency)
    to_currency = normalize_currency(to_currency)
    if from_currency == to_currency:
        return amount

    provider = provider or default_provider()
    quote = provider.get_rate(from_currency, to_currency, as_of)
    if quote is None:
        record_rate_lookup_failure(from_currency, to_currency)
        logger.warning(
            "No exchange rate available",
            extra={"from_currency": from_currency, "to_currency": to_currency, "as_of": str(as_of)},
        )
        raise NoRateAvailableError(from_currency, to_currency, as_of)

    with localcontext() as ctx:
        ctx.prec = CONVERSION_PRECISION
        return amount * quote.rate


def converted_total(
    balance: BalanceVector,
    target_currency: str,
    as_of=None,
    provider: Optional[RateProvider] = None,
) -> Decimal:
    """Convert every bucket of ``balance`` into ``target_currency`` and sum."""
    provider = provider or default_provider()
    total = Decimal("0")
    with localcontext() as ctx:
        ctx.prec = CONVERSION_PRECISION
        for currency, amount in balance.items():
            total += convert(amount, currency, target_currency, as_of, provider=provider)
    return total
