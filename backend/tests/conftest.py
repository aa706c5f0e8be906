# tests/conftest.py
"""
Pytest fixtures for ledger tests.

Every ledger operation takes the company explicitly, so most fixtures
build on ``company``. Accounts are created through the commands so paths
and depths are always consistent.
"""

import pytest
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.conf import settings

from accounts.commands import create_company
from accounting.commands import create_account, create_journal_entry
from accounting.models import Account
from rates.providers import StaticRateProvider


@pytest.fixture(autouse=True, scope="session")
def _testing_settings():
    """Relax the ledger write barrier for direct fixture writes."""
    settings.TESTING = True


# =============================================================================
# Company Fixtures
# =============================================================================

@pytest.fixture
def company(db):
    """Create a test company."""
    return create_company(name="Test Company", slug="test-company", default_currency="USD")


@pytest.fixture
def second_company(db):
    """Create a second test company for multi-tenant tests."""
    return create_company(name="Second Company", slug="second-company", default_currency="EUR")


# =============================================================================
# Account Fixtures
# =============================================================================

@pytest.fixture
def assets(company):
    return create_account(company, "Assets", Account.AccountType.ASSETS, "USD")


@pytest.fixture
def bank(company, assets):
    return create_account(company, "Bank", Account.AccountType.ASSETS, "USD", parent_id=assets.id)


@pytest.fixture
def cash_account(company, bank):
    """assets:bank:cash"""
    return create_account(company, "Cash", Account.AccountType.ASSETS, "USD", parent_id=bank.id)


@pytest.fixture
def savings_account(company, bank):
    """assets:bank:savings"""
    return create_account(company, "Savings", Account.AccountType.ASSETS, "USD", parent_id=bank.id)


@pytest.fixture
def liabilities(company):
    return create_account(company, "Liabilities", Account.AccountType.LIABILITIES, "USD")


@pytest.fixture
def credit_card(company, liabilities):
    """liabilities:credit-card"""
    return create_account(
        company, "Credit Card", Account.AccountType.LIABILITIES, "USD", parent_id=liabilities.id,
    )


@pytest.fixture
def equity_account(company):
    return create_account(company, "Equity", Account.AccountType.EQUITY, "USD")


@pytest.fixture
def revenue_account(company):
    return create_account(company, "Revenue", Account.AccountType.REVENUE, "USD")


@pytest.fixture
def expenses(company):
    return create_account(company, "Expenses", Account.AccountType.EXPENSE, "USD")


@pytest.fixture
def food_account(company, expenses):
    """expenses:food"""
    return create_account(company, "Food", Account.AccountType.EXPENSE, "USD", parent_id=expenses.id)


@pytest.fixture
def travel_account(company, expenses):
    """expenses:travel"""
    return create_account(company, "Travel", Account.AccountType.EXPENSE, "USD", parent_id=expenses.id)


# =============================================================================
# Journal Fixtures
# =============================================================================

@pytest.fixture
def post_entry(company):
    """Post a balanced entry: post_entry(date, [(account, amount, currency), ...])."""

    def _post(entry_date, postings, description="Test entry", target=None):
        return create_journal_entry(
            target or company,
            entry_date,
            description,
            [
                {"account_id": account.id, "amount": Decimal(str(amount)), "currency": currency}
                for account, amount, currency in postings
            ],
            post=True,
        )

    return _post


# =============================================================================
# Rate Fixtures
# =============================================================================

@pytest.fixture
def rate_time():
    return datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def static_rates(rate_time):
    """EUR and CNY quoted into USD, and USD into EUR."""
    return StaticRateProvider(
        {
            ("EUR", "USD"): Decimal("1.10"),
            ("CNY", "USD"): Decimal("0.14"),
            ("USD", "EUR"): Decimal("0.90"),
        },
        fetched_at=rate_time,
    )


@pytest.fixture
def today():
    return date(2024, 3, 15)
