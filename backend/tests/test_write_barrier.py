# tests/test_write_barrier.py
"""
Tests for write barrier enforcement.
"""

import pytest
from decimal import Decimal

from django.utils import timezone

from accounting.commands import create_account
from accounting.models import Account, CompanySequence
from accounting.write_barrier import (
    bootstrap_writes_allowed,
    command_writes_allowed,
    current_write_context,
)
from rates.commands import record_rate
from rates.models import ExchangeRate


@pytest.mark.django_db
def test_direct_model_save_raises(settings, company):
    settings.TESTING = False

    account = create_account(company, "Cash", Account.AccountType.ASSETS, "USD")

    account.name = "Cash Updated"
    with pytest.raises(RuntimeError, match="Direct writes are only allowed"):
        account.save()


@pytest.mark.django_db
def test_direct_model_delete_raises(settings, company):
    settings.TESTING = False

    account = create_account(company, "Cash", Account.AccountType.ASSETS, "USD")

    with pytest.raises(RuntimeError, match="command-owned ledger model"):
        account.delete()

    assert Account.objects.filter(pk=account.pk).exists()


@pytest.mark.django_db
def test_command_context_allows_writes(settings, company):
    settings.TESTING = False

    with pytest.raises(RuntimeError, match="command_writes_allowed"):
        CompanySequence.objects.create(company=company, name="journal_entry_number")

    with command_writes_allowed():
        seq = CompanySequence.objects.create(company=company, name="journal_entry_number")

    assert seq.company_id == company.id


@pytest.mark.django_db
def test_bootstrap_context_allows_writes(settings):
    settings.TESTING = False

    with bootstrap_writes_allowed():
        ExchangeRate(
            from_currency="EUR",
            to_currency="USD",
            rate=Decimal("1.1"),
            fetched_at=timezone.now(),
        ).save()

    assert ExchangeRate.objects.count() == 1


@pytest.mark.django_db
def test_commands_write_with_barrier_enforced(settings):
    settings.TESTING = False

    row = record_rate("eur", "usd", "1.08")

    assert row.from_currency == "EUR"
    assert row.rate == Decimal("1.08")


def test_contexts_nest_and_unwind():
    assert current_write_context() is None

    with bootstrap_writes_allowed():
        with command_writes_allowed():
            assert current_write_context() == "command"
        assert current_write_context() == "bootstrap"

    assert current_write_context() is None


def test_context_unwinds_on_error():
    with pytest.raises(ValueError):
        with command_writes_allowed():
            raise ValueError("boom")

    assert current_write_context() is None
