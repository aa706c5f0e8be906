# tests/test_journal.py
"""
Tests for the journal engine.

Tests cover:
- Validation order: line count, amounts, currencies, balance, accounts
- Entry numbering per company
- Atomicity of rejected entries
- Post / reverse / delete lifecycle
"""

import pytest
from datetime import date
from decimal import Decimal

from accounting.commands import (
    create_account,
    create_journal_entry,
    deactivate_account,
    delete_journal_entry,
    post_journal_entry,
    reverse_journal_entry,
)
from accounting.exceptions import (
    AccountNotFoundError,
    EntryNotFoundError,
    InactiveAccountError,
    InsufficientLinesError,
    InvalidAmountError,
    InvalidCurrencyError,
    InvalidStatusTransitionError,
    UnbalancedEntryError,
)
from accounting.models import Account, JournalEntry, JournalLine
from reports.balances import account_balance


def _line(account, amount, currency="USD", **extra):
    return {"account_id": account.id, "amount": amount, "currency": currency, **extra}


# =============================================================================
# Create
# =============================================================================

@pytest.mark.django_db
class TestCreateJournalEntry:

    def test_balanced_entry_is_stored_pending(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            date(2024, 1, 5),
            "Sale",
            [_line(cash_account, "100.00"), _line(revenue_account, "-100.00")],
        )

        assert entry.status == JournalEntry.Status.PENDING
        assert entry.entry_number == "JE-000001"
        lines = list(entry.lines.order_by("line_no"))
        assert [line.line_no for line in lines] == [1, 2]
        assert lines[0].amount == Decimal("100.000000")
        assert lines[1].amount == Decimal("-100.000000")

    def test_post_immediately(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            "2024-01-05",
            "Sale",
            [_line(cash_account, 100), _line(revenue_account, -100)],
            post=True,
        )

        assert entry.status == JournalEntry.Status.POSTED
        assert entry.posted_at is not None
        assert entry.date == date(2024, 1, 5)

    def test_entry_numbers_are_sequential_per_company(
        self, company, second_company, cash_account, revenue_account,
    ):
        other_cash = create_account(second_company, "Cash", Account.AccountType.ASSETS, "EUR")
        other_rev = create_account(second_company, "Revenue", Account.AccountType.REVENUE, "EUR")

        first = create_journal_entry(company, "2024-01-01", "A", [_line(cash_account, 1), _line(revenue_account, -1)])
        second = create_journal_entry(company, "2024-01-02", "B", [_line(cash_account, 2), _line(revenue_account, -2)])
        other = create_journal_entry(
            second_company, "2024-01-01", "C",
            [_line(other_cash, 1, "EUR"), _line(other_rev, -1, "EUR")],
        )

        assert (first.entry_number, second.entry_number) == ("JE-000001", "JE-000002")
        assert other.entry_number == "JE-000001"

    def test_multi_currency_groups_balance_independently(
        self, company, cash_account, food_account, credit_card,
    ):
        entry = create_journal_entry(
            company,
            "2024-02-01",
            "Dinner abroad",
            [
                _line(food_account, "50", "EUR"),
                _line(credit_card, "-50", "EUR"),
                _line(cash_account, "20", "USD"),
                _line(credit_card, "-20", "USD"),
            ],
        )
        assert entry.lines.count() == 4

    def test_tags_and_remarks_are_kept(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            "2024-02-01",
            "Tagged",
            [
                _line(cash_account, "5", tags=["trip", "q1"], remarks="paid at counter"),
                _line(revenue_account, "-5"),
            ],
        )
        line = entry.lines.get(line_no=1)
        assert line.tags == ["trip", "q1"]
        assert line.remarks == "paid at counter"

    def test_currency_defaults_to_company_currency(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            "2024-02-01",
            "No currency",
            [{"account_id": cash_account.id, "amount": "3"}, {"account": revenue_account, "amount": "-3"}],
        )
        assert set(entry.lines.values_list("currency", flat=True)) == {"USD"}


@pytest.mark.django_db
class TestJournalValidation:

    def test_single_line_rejected(self, company, cash_account):
        with pytest.raises(InsufficientLinesError) as exc_info:
            create_journal_entry(company, "2024-01-01", "One", [_line(cash_account, 0)])
        assert exc_info.value.count == 1

    def test_unbalanced_reports_first_currency_and_residual(
        self, company, cash_account, revenue_account,
    ):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            create_journal_entry(
                company,
                "2024-01-01",
                "Off",
                [
                    _line(cash_account, "10", "EUR"),
                    _line(revenue_account, "-9", "EUR"),
                    _line(cash_account, "5", "USD"),
                ],
            )
        assert exc_info.value.currency == "EUR"
        assert exc_info.value.residual == Decimal("1")

    def test_residual_equal_to_tolerance_accepted(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            "2024-01-01",
            "Rounding",
            [_line(cash_account, "10.000001"), _line(revenue_account, "-10")],
        )

        amounts = sorted(entry.lines.values_list("amount", flat=True))
        assert amounts == [Decimal("-10"), Decimal("10.000001")]

    def test_residual_just_above_tolerance_rejected(self, company, cash_account, revenue_account):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            create_journal_entry(
                company,
                "2024-01-01",
                "Rounding",
                [_line(cash_account, "10.000002"), _line(revenue_account, "-10")],
            )
        assert exc_info.value.residual == Decimal("0.000002")

    def test_amount_beyond_stored_precision_rejected(self, company, cash_account, revenue_account):
        # Sums to exactly zero, but each half-millionth would round on storage.
        lines = [_line(cash_account, "0.0000005") for _ in range(4)]
        lines.append(_line(revenue_account, "-0.000002"))

        with pytest.raises(InvalidAmountError):
            create_journal_entry(company, "2024-01-01", "Dust", lines)

        assert not JournalEntry.objects.filter(company=company).exists()

    def test_trailing_zeros_beyond_stored_precision_accepted(self, company, cash_account, revenue_account):
        entry = create_journal_entry(
            company,
            "2024-01-01",
            "Padded",
            [_line(cash_account, "10.0000000"), _line(revenue_account, "-10")],
        )
        assert entry.pk is not None

    def test_residual_above_tolerance_rejected(self, company, cash_account, revenue_account):
        with pytest.raises(UnbalancedEntryError):
            create_journal_entry(
                company,
                "2024-01-01",
                "Off by a cent",
                [_line(cash_account, "10.01"), _line(revenue_account, "-10")],
            )

    def test_invalid_amount(self, company, cash_account, revenue_account):
        with pytest.raises(InvalidAmountError):
            create_journal_entry(
                company, "2024-01-01", "Bad", [_line(cash_account, "ten"), _line(revenue_account, "-10")],
            )

    def test_missing_amount(self, company, cash_account, revenue_account):
        with pytest.raises(InvalidAmountError):
            create_journal_entry(
                company, "2024-01-01", "Bad", [_line(cash_account, None), _line(revenue_account, "-10")],
            )

    def test_invalid_currency(self, company, cash_account, revenue_account):
        with pytest.raises(InvalidCurrencyError):
            create_journal_entry(
                company, "2024-01-01", "Bad",
                [_line(cash_account, "1", "U$"), _line(revenue_account, "-1", "U$")],
            )

    def test_unknown_account(self, company, cash_account):
        with pytest.raises(AccountNotFoundError):
            create_journal_entry(
                company, "2024-01-01", "Bad", [_line(cash_account, "1"), {"account_id": 999999, "amount": "-1"}],
            )

    def test_foreign_account_is_not_found(self, second_company, cash_account, revenue_account):
        with pytest.raises(AccountNotFoundError):
            create_journal_entry(
                second_company, "2024-01-01", "Cross tenant",
                [_line(cash_account, "1"), _line(revenue_account, "-1")],
            )

    def test_inactive_account(self, company, cash_account, revenue_account):
        deactivate_account(company, revenue_account.id)

        with pytest.raises(InactiveAccountError):
            create_journal_entry(
                company, "2024-01-01", "Closed", [_line(cash_account, "1"), _line(revenue_account, "-1")],
            )

    def test_rejected_entry_leaves_nothing_behind(self, company, cash_account, revenue_account):
        with pytest.raises(UnbalancedEntryError):
            create_journal_entry(
                company, "2024-01-01", "Off", [_line(cash_account, "10"), _line(revenue_account, "-1")],
            )

        assert JournalEntry.objects.filter(company=company).count() == 0
        assert JournalLine.objects.filter(company=company).count() == 0

    def test_entry_creation_does_not_touch_accounts(self, company, cash_account, revenue_account):
        before = cash_account.updated_at
        create_journal_entry(
            company, "2024-01-01", "Sale", [_line(cash_account, "1"), _line(revenue_account, "-1")], post=True,
        )
        cash_account.refresh_from_db()
        assert cash_account.updated_at == before


# =============================================================================
# Lifecycle
# =============================================================================

@pytest.mark.django_db
class TestJournalLifecycle:

    @pytest.fixture
    def pending_entry(self, company, cash_account, revenue_account):
        return create_journal_entry(
            company, "2024-01-10", "Sale", [_line(cash_account, "250"), _line(revenue_account, "-250")],
        )

    def test_post_pending(self, company, pending_entry, cash_account):
        assert account_balance(company, cash_account) == {}

        entry = post_journal_entry(company, pending_entry.id)

        assert entry.status == JournalEntry.Status.POSTED
        assert account_balance(company, cash_account) == {"USD": Decimal("250")}

    def test_post_twice_rejected(self, company, pending_entry):
        post_journal_entry(company, pending_entry.id)

        with pytest.raises(InvalidStatusTransitionError):
            post_journal_entry(company, pending_entry.id)

    def test_post_rechecks_account_activity(self, company, pending_entry, revenue_account):
        deactivate_account(company, revenue_account.id)

        with pytest.raises(InactiveAccountError):
            post_journal_entry(company, pending_entry.id)

    def test_pending_counts_only_when_requested(self, company, pending_entry, cash_account):
        assert account_balance(company, cash_account) == {}
        assert account_balance(company, cash_account, include_pending=True) == {"USD": Decimal("250")}

    def test_delete_pending(self, company, pending_entry):
        delete_journal_entry(company, pending_entry.id)

        assert not JournalEntry.objects.filter(pk=pending_entry.pk).exists()
        assert not JournalLine.objects.filter(entry_id=pending_entry.pk).exists()

    def test_delete_posted_rejected(self, company, pending_entry):
        post_journal_entry(company, pending_entry.id)

        with pytest.raises(InvalidStatusTransitionError):
            delete_journal_entry(company, pending_entry.id)

    def test_reverse_posted(self, company, pending_entry, cash_account, revenue_account):
        post_journal_entry(company, pending_entry.id)

        reversal = reverse_journal_entry(company, pending_entry.id, date="2024-01-31")

        assert reversal.status == JournalEntry.Status.POSTED
        assert reversal.reverses_entry_id == pending_entry.id
        assert reversal.reference == pending_entry.entry_number
        assert reversal.date == date(2024, 1, 31)
        assert account_balance(company, cash_account) == {}
        assert account_balance(company, revenue_account) == {}
        assert account_balance(company, cash_account, as_of=date(2024, 1, 30)) == {"USD": Decimal("250")}

    def test_reverse_twice_rejected(self, company, pending_entry):
        post_journal_entry(company, pending_entry.id)
        reverse_journal_entry(company, pending_entry.id)

        with pytest.raises(InvalidStatusTransitionError):
            reverse_journal_entry(company, pending_entry.id)

    def test_reverse_pending_rejected(self, company, pending_entry):
        with pytest.raises(InvalidStatusTransitionError):
            reverse_journal_entry(company, pending_entry.id)

    def test_reversal_cannot_be_reversed(self, company, pending_entry):
        post_journal_entry(company, pending_entry.id)
        reversal = reverse_journal_entry(company, pending_entry.id)

        with pytest.raises(InvalidStatusTransitionError):
            reverse_journal_entry(company, reversal.id)

    def test_reverse_works_after_account_deactivated(self, company, pending_entry, revenue_account):
        post_journal_entry(company, pending_entry.id)
        deactivate_account(company, revenue_account.id)

        reversal = reverse_journal_entry(company, pending_entry.id)
        assert reversal.lines.count() == 2

    def test_foreign_company_cannot_see_entry(self, second_company, pending_entry):
        with pytest.raises(EntryNotFoundError):
            post_journal_entry(second_company, pending_entry.id)
