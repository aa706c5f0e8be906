# accounting/models.py
"""
Ledger models.

These tables are owned by the command layer (accounting/commands.py).
Direct ``save()``/``delete()`` calls outside ``command_writes_allowed()``
raise, so every mutation goes through a command that validates it first.

Models:
- CompanySequence: per-company counters (entry numbers)
- Account: chart of accounts, a materialized-path tree
- JournalEntry: entry headers
- JournalLine: signed, single-currency postings

Balances are never stored here. They are derived from JournalLine rows
by reports/balances.py.
"""

import re
import uuid

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.db import models
from django.db.models import Q

from accounts.models import Company
from accounting.currency import AMOUNT_PLACES, RATE_PLACES
from accounting.write_barrier import guard_ledger_write


COMMAND_CONTEXTS = {"command", "migration", "bootstrap"}


# Slugs are made of letters, digits, "_" and "-", so none of those can
# delimit them.
SLUG_CHARACTERS_RE = re.compile(r"[-\w]")


def path_separator() -> str:
    separator = getattr(settings, "LEDGER_PATH_SEPARATOR", ":")
    if not separator or SLUG_CHARACTERS_RE.search(separator):
        raise ImproperlyConfigured(
            f"LEDGER_PATH_SEPARATOR {separator!r} is empty or contains slug characters."
        )
    return separator


class LedgerModel(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        guard_ledger_write(self.__class__.__name__, COMMAND_CONTEXTS)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        guard_ledger_write(self.__class__.__name__, COMMAND_CONTEXTS)
        return super().delete(*args, **kwargs)


class CompanySequence(LedgerModel):
    """
    Per-company counters for sequential identifiers.

    Commands lock the row with select_for_update to allocate numbers
    under concurrency.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="sequences",
    )
    name = models.CharField(max_length=100)
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_company_sequence_name",
            ),
        ]

    def __str__(self):
        return f"{self.company_id}:{self.name}={self.next_value}"


# =============================================================================
# Chart of accounts
# =============================================================================

class AccountQuerySet(models.QuerySet):
    def for_company(self, company):
        return self.filter(company=company)

    def tree(self, company):
        """All accounts of ``company`` ordered by path (parents before children)."""
        return self.for_company(company).order_by("path")

    def subtree_of(self, account):
        """``account`` and every descendant, via a single path-prefix filter."""
        return self.filter(company_id=account.company_id).filter(
            Q(path=account.path) | Q(path__startswith=account.path + path_separator())
        )

    def descendants_of(self, account):
        return self.filter(
            company_id=account.company_id,
            path__startswith=account.path + path_separator(),
        )


class Account(LedgerModel):
    """
    Chart of accounts entry.

    ``path`` is the materialized ancestor chain (slugs joined by the path
    separator) and ``depth`` its length minus one. Both are recomputed by
    the commands whenever the parent or name changes, never lazily.
    """

    class AccountType(models.TextChoices):
        ASSETS = "assets", "Assets"
        LIABILITIES = "liabilities", "Liabilities"
        EQUITY = "equity", "Equity"
        REVENUE = "revenue", "Revenue"
        EXPENSE = "expense", "Expense"

    # Debit-normal types accumulate positive signed amounts.
    NATURAL_SIGN = {
        AccountType.ASSETS: 1,
        AccountType.EXPENSE: 1,
        AccountType.LIABILITIES: -1,
        AccountType.EQUITY: -1,
        AccountType.REVENUE: -1,
    }

    objects = AccountQuerySet.as_manager()

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="accounts",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    name = models.CharField(max_length=255)
    slug = models.CharField(max_length=100)

    account_type = models.CharField(
        max_length=20,
        choices=AccountType.choices,
    )

    currency = models.CharField(max_length=10)

    # Hierarchy
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )
    path = models.CharField(max_length=1024)
    depth = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "path"],
                name="uniq_account_path_per_company",
            )
        ]
        ordering = ["path"]
        indexes = [
            models.Index(fields=["company", "account_type"], name="account_company_type_idx"),
            models.Index(fields=["company", "parent"], name="account_company_parent_idx"),
        ]

    def __str__(self):
        return self.path

    @property
    def natural_sign(self) -> int:
        return self.NATURAL_SIGN[self.account_type]

    def is_descendant_of(self, ancestor) -> bool:
        """Strict descendant check by path prefix; no tree walk."""
        return (
            self.company_id == ancestor.company_id
            and self.path.startswith(ancestor.path + path_separator())
        )

    def clean(self):
        if self.parent and self.parent.company_id != self.company_id:
            raise ValidationError("Parent account must belong to the same company.")
        if self.parent and self.parent.account_type != self.account_type:
            raise ValidationError(
                f"Account type {self.account_type} cannot be a child of {self.parent.account_type}."
            )
        expected_depth = self.parent.depth + 1 if self.parent else 0
        if self.depth != expected_depth:
            raise ValidationError("Account depth is inconsistent with its parent.")


# =============================================================================
# Journal
# =============================================================================

class JournalEntry(LedgerModel):
    """
    Journal entry header.

    Lifecycle: PENDING -> POSTED. POSTED is terminal; a posted entry is
    corrected by a reversing entry, never by editing or deleting it.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        POSTED = "posted", "Posted"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    entry_number = models.CharField(max_length=50)
    date = models.DateField()
    description = models.TextField(blank=True, default="")
    reference = models.CharField(max_length=255, blank=True, default="")

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    posted_at = models.DateTimeField(null=True, blank=True)

    reverses_entry = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversed_by",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "entry_number"],
                name="uniq_entry_number_per_company",
            )
        ]
        ordering = ["date", "entry_number"]
        indexes = [
            models.Index(fields=["company", "date"], name="entry_company_date_idx"),
            models.Index(fields=["company", "status"], name="entry_company_status_idx"),
        ]
        verbose_name_plural = "journal entries"

    def __str__(self):
        return f"{self.entry_number} ({self.date})"

    @property
    def is_posted(self) -> bool:
        return self.status == self.Status.POSTED


class JournalLine(LedgerModel):
    """
    A single signed posting: debit positive, credit negative.

    Lines are written together with their entry and never updated.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="journal_lines",
    )
    entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    line_no = models.PositiveIntegerField()

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="journal_lines",
    )

    amount = models.DecimalField(max_digits=24, decimal_places=AMOUNT_PLACES)
    currency = models.CharField(max_length=10)
    exchange_rate = models.DecimalField(
        max_digits=24,
        decimal_places=RATE_PLACES,
        null=True,
        blank=True,
        help_text="Fixed rate to the company currency applied at posting time",
    )

    tags = models.JSONField(default=list, blank=True)
    remarks = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["entry", "line_no"]
        constraints = [
            models.UniqueConstraint(
                fields=["entry", "line_no"],
                name="uniq_line_no_per_entry",
            )
        ]
        indexes = [
            models.Index(fields=["company", "account"], name="line_company_account_idx"),
            models.Index(fields=["company", "currency"], name="line_company_currency_idx"),
        ]

    def __str__(self):
        return f"{self.entry_id}#{self.line_no} {self.amount} {self.currency}"
