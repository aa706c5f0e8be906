# tests/test_balances.py
"""
Tests for balance aggregation and currency conversion.

Tests cover:
- Own vs subtree balances, as-of filtering
- Tree consistency (subtree == own + children's subtrees)
- Rate lookup by fetched_at
- Conversion failures never falling back to 1:1
"""

import pytest
from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

from accounting.commands import reparent_account
from accounting.exceptions import (
    AccountNotFoundError,
    InvalidAmountError,
    LedgerValidationError,
    NoRateAvailableError,
)
from accounting.models import Account
from rates.commands import record_rate
from rates.providers import (
    DatabaseRateProvider,
    GraphRateProvider,
    StaticRateProvider,
    default_provider,
)
from reports.balances import (
    account_balance,
    add_vectors,
    balances_by_account,
    convert,
    converted_total,
    merge_by_depth,
    rollup_balances,
)


@pytest.fixture
def ledger(company, cash_account, savings_account, credit_card, food_account, travel_account, post_entry):
    post_entry(date(2024, 1, 5), [(cash_account, "1000", "USD"), (credit_card, "-1000", "USD")])
    post_entry(date(2024, 1, 10), [(savings_account, "500", "EUR"), (credit_card, "-500", "EUR")])
    post_entry(date(2024, 2, 1), [(food_account, "40", "USD"), (cash_account, "-40", "USD")])
    post_entry(date(2024, 2, 3), [(travel_account, "200", "CNY"), (credit_card, "-200", "CNY")])


# =============================================================================
# Account balances
# =============================================================================

@pytest.mark.django_db
class TestAccountBalance:

    def test_own_balance(self, company, ledger, cash_account):
        assert account_balance(company, cash_account) == {"USD": Decimal("960")}

    def test_subtree_balance(self, company, ledger, assets):
        assert account_balance(company, assets, include_subtree=True) == {
            "EUR": Decimal("500"),
            "USD": Decimal("960"),
        }

    def test_parent_own_balance_excludes_children(self, company, ledger, bank):
        assert account_balance(company, bank) == {}

    def test_as_of_filters_by_entry_date(self, company, ledger, cash_account):
        assert account_balance(company, cash_account, as_of=date(2024, 1, 31)) == {"USD": Decimal("1000")}
        assert account_balance(company, cash_account, as_of=date(2024, 1, 1)) == {}

    def test_zero_buckets_omitted(self, company, cash_account, revenue_account, post_entry):
        post_entry(date(2024, 1, 1), [(cash_account, "10", "USD"), (revenue_account, "-10", "USD")])
        post_entry(date(2024, 1, 2), [(cash_account, "-10", "USD"), (revenue_account, "10", "USD")])

        assert account_balance(company, cash_account) == {}

    def test_vector_keys_sorted(self, company, ledger, credit_card):
        balance = account_balance(company, credit_card)
        assert list(balance) == ["CNY", "EUR", "USD"]

    def test_account_id_accepted(self, company, ledger, cash_account):
        assert account_balance(company, cash_account.id) == {"USD": Decimal("960")}

    def test_foreign_account_not_found(self, second_company, ledger, cash_account):
        with pytest.raises(AccountNotFoundError):
            account_balance(second_company, cash_account)

    def test_subtree_balance_follows_reparent(self, company, ledger, assets, bank, credit_card):
        reparent_account(company, bank.id, None)

        assert account_balance(company, assets, include_subtree=True) == {}
        assert account_balance(company, bank, include_subtree=True) == {
            "EUR": Decimal("500"),
            "USD": Decimal("960"),
        }


@pytest.mark.django_db
class TestTreeConsistency:

    def test_subtree_equals_own_plus_children(self, company, ledger):
        own = balances_by_account(company)
        accounts = list(Account.objects.tree(company))
        rolled = rollup_balances(accounts, own)

        for account in accounts:
            children = [child for child in accounts if child.parent_id == account.pk]
            expected = add_vectors(own.get(account.pk, {}), *[rolled[child.pk] for child in children])
            assert rolled[account.pk] == expected
            assert rolled[account.pk] == account_balance(company, account, include_subtree=True)

    def test_whole_ledger_nets_to_zero(self, company, ledger):
        assert add_vectors(*balances_by_account(company).values()) == {}


@pytest.mark.django_db
class TestMergeByDepth:

    def test_depth_zero_collapses_to_roots(self, company, ledger, assets, liabilities, expenses):
        merged = balances_by_account(company, depth=0)

        assert merged == {
            assets.pk: {"EUR": Decimal("500"), "USD": Decimal("960")},
            liabilities.pk: {"CNY": Decimal("-200"), "EUR": Decimal("-500"), "USD": Decimal("-1000")},
            expenses.pk: {"CNY": Decimal("200"), "USD": Decimal("40")},
        }

    def test_depth_one_keeps_shallow_accounts(
        self, company, ledger, bank, credit_card, food_account, travel_account,
    ):
        merged = balances_by_account(company, depth=1)

        assert merged == {
            bank.pk: {"EUR": Decimal("500"), "USD": Decimal("960")},
            credit_card.pk: {"CNY": Decimal("-200"), "EUR": Decimal("-500"), "USD": Decimal("-1000")},
            food_account.pk: {"USD": Decimal("40")},
            travel_account.pk: {"CNY": Decimal("200")},
        }

    def test_deep_enough_depth_changes_nothing(self, company, ledger):
        assert balances_by_account(company, depth=5) == balances_by_account(company)

    def test_parent_own_balance_joins_the_merged_row(
        self, company, ledger, bank, cash_account, revenue_account, post_entry,
    ):
        post_entry(date(2024, 3, 1), [(bank, "7", "USD"), (revenue_account, "-7", "USD")])

        merged = merge_by_depth(Account.objects.tree(company), balances_by_account(company), 1)

        assert merged[bank.pk] == {"EUR": Decimal("500"), "USD": Decimal("967")}
        assert cash_account.pk not in merged

    def test_totals_preserved(self, company, ledger):
        assert add_vectors(*balances_by_account(company, depth=0).values()) == {}

    def test_negative_depth_rejected(self, company, ledger):
        with pytest.raises(LedgerValidationError):
            balances_by_account(company, depth=-1)


# =============================================================================
# Rates and conversion
# =============================================================================

@pytest.mark.django_db
class TestRateLookup:

    def test_latest_rate_at_or_before_as_of(self):
        jan = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        record_rate("EUR", "USD", "1.05", fetched_at=jan)
        record_rate("EUR", "USD", "1.10", fetched_at=jan + timedelta(days=31))

        provider = DatabaseRateProvider()
        assert provider.get_rate("EUR", "USD", date(2024, 1, 15)).rate == Decimal("1.05")
        assert provider.get_rate("EUR", "USD", date(2024, 2, 1)).rate == Decimal("1.10")
        assert provider.get_rate("EUR", "USD", date(2023, 12, 31)) is None

    def test_date_means_end_of_day(self):
        record_rate("EUR", "USD", "1.07", fetched_at=datetime(2024, 5, 1, 23, 30, tzinfo=dt_timezone.utc))

        assert DatabaseRateProvider().get_rate("EUR", "USD", date(2024, 5, 1)) is not None

    def test_no_inverse_fallback(self):
        record_rate("EUR", "USD", "1.10", fetched_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc))

        assert DatabaseRateProvider().get_rate("USD", "EUR", date(2024, 6, 1)) is None

    def test_rate_must_be_positive(self):
        with pytest.raises(InvalidAmountError):
            record_rate("EUR", "USD", "0")


@pytest.mark.django_db
class TestConversion:

    def test_same_currency_is_identity(self):
        assert convert(Decimal("12.5"), "USD", "usd", date(2024, 1, 1)) == Decimal("12.5")

    def test_uses_provider_rate(self, static_rates):
        assert convert(Decimal("100"), "EUR", "USD", date(2024, 6, 1), static_rates) == Decimal("110.00")

    def test_missing_rate_raises(self, static_rates):
        with pytest.raises(NoRateAvailableError) as exc_info:
            convert(Decimal("100"), "GBP", "USD", date(2024, 6, 1), static_rates)

        error = exc_info.value
        assert (error.from_currency, error.to_currency) == ("GBP", "USD")
        assert error.kind == "dependency"

    def test_rate_fetched_after_as_of_is_ignored(self, static_rates):
        with pytest.raises(NoRateAvailableError):
            convert(Decimal("1"), "EUR", "USD", date(2023, 12, 31), static_rates)

    def test_converted_total(self, company, ledger, assets, static_rates):
        balance = account_balance(company, assets, include_subtree=True)
        total = converted_total(balance, "USD", date(2024, 6, 1), static_rates)

        assert total == Decimal("960") + Decimal("500") * Decimal("1.10")

    def test_converted_total_fails_on_any_missing_rate(self, company, ledger, credit_card):
        provider = StaticRateProvider({("EUR", "USD"): Decimal("1.1")})
        balance = account_balance(company, credit_card)

        with pytest.raises(NoRateAvailableError) as exc_info:
            converted_total(balance, "USD", date(2024, 6, 1), provider)
        assert exc_info.value.from_currency == "CNY"

    def test_database_provider_is_default(self, company, ledger, savings_account):
        record_rate("EUR", "USD", "1.2", fetched_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc))

        balance = account_balance(company, savings_account)
        assert converted_total(balance, "USD", date(2024, 2, 1)) == Decimal("600")

    def test_round_trip_with_reciprocal_rates(self):
        provider = StaticRateProvider({("EUR", "USD"): Decimal("1.25"), ("USD", "EUR"): Decimal("0.8")})
        as_of = date(2024, 6, 1)

        there = convert(Decimal("100"), "EUR", "USD", as_of, provider)
        assert convert(there, "USD", "EUR", as_of, provider) == Decimal("100")


# =============================================================================
# Rate inference
# =============================================================================

CHAIN = ["USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD"]


def _chain_provider(rate_time):
    return StaticRateProvider(
        {(source, target): Decimal("2") for source, target in zip(CHAIN, CHAIN[1:])},
        fetched_at=rate_time,
    )


class TestGraphRateProvider:

    def test_direct_rate_is_not_inferred(self, static_rates):
        quote = GraphRateProvider(static_rates).get_rate("EUR", "USD", date(2024, 6, 1))

        assert quote.rate == Decimal("1.10")
        assert quote.hops == 1
        assert quote.inferred is False

    def test_cross_rate_through_intermediate(self, static_rates, rate_time):
        quote = GraphRateProvider(static_rates).get_rate("CNY", "EUR", date(2024, 6, 1))

        assert quote.rate == Decimal("0.14") * Decimal("0.90")
        assert quote.hops == 2
        assert quote.inferred is True
        assert quote.path == ("CNY", "USD", "EUR")
        assert quote.fetched_at == rate_time

    def test_edges_are_directed(self, static_rates):
        # Nothing is quoted into CNY, so no chain reaches it.
        assert GraphRateProvider(static_rates).get_rate("USD", "CNY", date(2024, 6, 1)) is None

    def test_no_path_still_raises_on_convert(self, static_rates):
        with pytest.raises(NoRateAvailableError):
            convert(Decimal("10"), "USD", "CNY", date(2024, 6, 1), GraphRateProvider(static_rates))

    def test_convert_uses_inferred_rate(self, static_rates):
        converted = convert(Decimal("100"), "CNY", "EUR", date(2024, 6, 1), GraphRateProvider(static_rates))
        assert converted == Decimal("12.6")

    def test_five_hops_allowed(self, rate_time):
        quote = GraphRateProvider(_chain_provider(rate_time)).get_rate("USD", "CAD", date(2024, 6, 1))

        assert quote.hops == 5
        assert quote.rate == Decimal("32")

    def test_six_hops_refused(self, rate_time):
        provider = GraphRateProvider(_chain_provider(rate_time))
        assert provider.get_rate("USD", "AUD", date(2024, 6, 1)) is None

    def test_max_hops_is_configurable(self, rate_time):
        provider = GraphRateProvider(_chain_provider(rate_time), max_hops=2)

        assert provider.get_rate("USD", "GBP", date(2024, 6, 1)).hops == 2
        assert provider.get_rate("USD", "JPY", date(2024, 6, 1)) is None

    def test_rates_fetched_after_as_of_are_not_chained(self, static_rates):
        assert GraphRateProvider(static_rates).get_rate("CNY", "EUR", date(2023, 12, 31)) is None


@pytest.mark.django_db
class TestGraphRateProviderOnHistory:

    def test_latest_link_rates_and_oldest_fetch(self):
        jan_1 = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        jan_2 = datetime(2024, 1, 2, tzinfo=dt_timezone.utc)
        record_rate("CNY", "USD", "0.14", fetched_at=jan_1)
        record_rate("USD", "EUR", "0.90", fetched_at=jan_2)
        record_rate("USD", "EUR", "0.95", fetched_at=datetime(2024, 3, 1, tzinfo=dt_timezone.utc))

        quote = GraphRateProvider().get_rate("CNY", "EUR", date(2024, 2, 1))

        assert quote.rate == Decimal("0.126")
        assert quote.fetched_at == jan_1
        assert quote.inferred is True

    def test_inference_is_opt_in(self, settings):
        settings.LEDGER_RATE_INFERENCE = False
        assert isinstance(default_provider(), DatabaseRateProvider)

        settings.LEDGER_RATE_INFERENCE = True
        assert isinstance(default_provider(), GraphRateProvider)

    def test_default_provider_infers_when_enabled(self, settings):
        record_rate("CNY", "USD", "0.14", fetched_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc))
        record_rate("USD", "EUR", "0.90", fetched_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc))

        with pytest.raises(NoRateAvailableError):
            convert(Decimal("100"), "CNY", "EUR", date(2024, 2, 1))

        settings.LEDGER_RATE_INFERENCE = True
        assert convert(Decimal("100"), "CNY", "EUR", date(2024, 2, 1)) == Decimal("12.6")
