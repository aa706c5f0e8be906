# reports/statements.py
"""
Financial statements built on the balance aggregator.

All totals are per-currency vectors in natural sign: debit-normal types
(assets, expense) as-is, credit-normal types (liabilities, equity,
revenue) negated, so a healthy ledger shows positive numbers everywhere.

Because every journal entry nets to zero per currency, these identities
hold per currency for any posted ledger:

    assets == liabilities + equity (equity including current earnings)
    net_income == revenue - expenses
"""

from typing import Optional

from accounting.models import Account
from reports.balances import (
    BalanceVector,
    add_vectors,
    balances_by_account,
    converted_total,
    rollup_balances,
    scale_vector,
    subtract_vectors,
)
from rates.providers import RateProvider


INCOME_STATEMENT_TYPES = (
    Account.AccountType.REVENUE,
    Account.AccountType.EXPENSE,
)


def _natural(account: Account, vector: BalanceVector) -> BalanceVector:
    return scale_vector(vector, account.natural_sign)


def _section_rows(accounts, own, rolled) -> list[dict]:
    rows = []
    for account in accounts:
        subtree = rolled.get(account.pk, {})
        if not subtree:
            continue
        rows.append({
            "account_id": account.pk,
            "path": account.path,
            "name": account.name,
            "depth": account.depth,
            "balance": _natural(account, own.get(account.pk, {})),
            "subtree_balance": _natural(account, subtree),
        })
    return rows


def _section_totals(accounts, own) -> dict[str, BalanceVector]:
    totals = {account_type: {} for account_type in Account.AccountType.values}
    for account in accounts:
        vector = own.get(account.pk)
        if vector:
            totals[account.account_type] = add_vectors(
                totals[account.account_type],
                _natural(account, vector),
            )
    return totals


def trial_balance(company, as_of=None) -> dict:
    """
    Every account with postings and its signed (debit positive) balance.

    Returns:
        {
            "as_of": date | None,
            "accounts": [{"account_id", "path", "account_type", "balance"}, ...],
            "totals": {currency: residual, ...},  # empty when balanced
            "is_balanced": bool,
        }
    """
    own = balances_by_account(company, as_of=as_of)
    accounts = Account.objects.tree(company)

    rows = []
    for account in accounts:
        vector = own.get(account.pk)
        if not vector:
            continue
        rows.append({
            "account_id": account.pk,
            "path": account.path,
            "account_type": account.account_type,
            "balance": vector,
        })

    totals = add_vectors(*own.values())
    return {
        "as_of": as_of,
        "accounts": rows,
        "totals": totals,
        "is_balanced": not totals,
    }


def balance_sheet(
    company,
    as_of=None,
    currency: Optional[str] = None,
    provider: Optional[RateProvider] = None,
) -> dict:
    """
    Assets, liabilities and equity as of a date.

    Revenue and expense balances not yet closed into equity are shown as
    ``current_earnings`` and included in the equity total.

    When ``currency`` is given each total is also converted to that
    currency (NoRateAvailableError when a rate is missing).
    """
    own = balances_by_account(company, as_of=as_of)
    accounts = list(Account.objects.tree(company))
    rolled = rollup_balances(accounts, own)
    totals = _section_totals(accounts, own)

    current_earnings = subtract_vectors(
        totals[Account.AccountType.REVENUE],
        totals[Account.AccountType.EXPENSE],
    )
    total_assets = totals[Account.AccountType.ASSETS]
    total_liabilities = totals[Account.AccountType.LIABILITIES]
    total_equity = add_vectors(totals[Account.AccountType.EQUITY], current_earnings)
    total_liabilities_and_equity = add_vectors(total_liabilities, total_equity)

    report = {
        "as_of": as_of,
        "assets": {
            "accounts": _section_rows(
                [a for a in accounts if a.account_type == Account.AccountType.ASSETS], own, rolled,
            ),
            "total": total_assets,
        },
        "liabilities": {
            "accounts": _section_rows(
                [a for a in accounts if a.account_type == Account.AccountType.LIABILITIES], own, rolled,
            ),
            "total": total_liabilities,
        },
        "equity": {
            "accounts": _section_rows(
                [a for a in accounts if a.account_type == Account.AccountType.EQUITY], own, rolled,
            ),
            "current_earnings": current_earnings,
            "total": total_equity,
        },
        "total_liabilities_and_equity": total_liabilities_and_equity,
        "is_balanced": total_assets == total_liabilities_and_equity,
    }

    if currency:
        report["converted"] = {
            "currency": currency,
            "total_assets": converted_total(total_assets, currency, as_of, provider),
            "total_liabilities": converted_total(total_liabilities, currency, as_of, provider),
            "total_equity": converted_total(total_equity, currency, as_of, provider),
        }

    return report


def income_statement(company, start=None, end=None) -> dict:
    """
    Revenue, expenses and net income over ``[start, end]`` (inclusive).

    Net Income = Revenue - Expenses, per currency.
    """
    own = balances_by_account(company, as_of=end, start=start)
    accounts = [
        account for account in Account.objects.tree(company)
        if account.account_type in INCOME_STATEMENT_TYPES
    ]
    rolled = rollup_balances(accounts, own)
    totals = _section_totals(accounts, own)

    revenue = totals[Account.AccountType.REVENUE]
    expenses = totals[Account.AccountType.EXPENSE]

    return {
        "start": start,
        "end": end,
        "revenue": {
            "accounts": _section_rows(
                [a for a in accounts if a.account_type == Account.AccountType.REVENUE], own, rolled,
            ),
            "total": revenue,
        },
        "expenses": {
            "accounts": _section_rows(
                [a for a in accounts if a.account_type == Account.AccountType.EXPENSE], own, rolled,
            ),
            "total": expenses,
        },
        "net_income": subtract_vectors(revenue, expenses),
    }
