# accounting/commands.py
"""
Command layer for ledger operations.

Commands are the single point where ledger state changes.
Every command takes the company (tenant) as its first argument and only
ever reads or writes rows belonging to that company.

Pattern:
1. Load the rows involved, scoped to the company (locked when mutating)
2. Apply business policies (can_*)
3. Perform the operation inside command_writes_allowed()
4. Log and count it
5. Return the model instance

A failed command raises one typed error from accounting.exceptions and,
being atomic, leaves nothing behind.
"""

import logging
import uuid
from datetime import date as date_type

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.text import slugify

from accounting.currency import (
    currency_totals,
    ledger_amount,
    normalize_currency,
    to_decimal,
)
from accounting.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    AccountTypeMismatchError,
    CircularReferenceError,
    DuplicateAccountPathError,
    DuplicateEntryNumberError,
    EntryNotFoundError,
    InactiveAccountError,
    InsufficientLinesError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    LedgerError,
    LedgerValidationError,
    ParentNotFoundError,
    UnbalancedEntryError,
)
from accounting.models import (
    Account,
    CompanySequence,
    JournalEntry,
    JournalLine,
    path_separator,
)
from accounting.policies import (
    can_attach_to_parent,
    can_deactivate_account,
    can_delete_account,
    can_delete_entry,
    can_post_entry,
    can_post_to_account,
    can_reparent,
    can_reverse_entry,
)
from accounting.write_barrier import command_writes_allowed
from ops.metrics import record_journal_entry, record_journal_entry_rejected


logger = logging.getLogger(__name__)

ENTRY_NUMBER_SEQUENCE = "journal_entry_number"


def _next_company_sequence(company, name: str) -> int:
    """
    Allocate the next sequence value for a company/name pair.
    Uses select_for_update to avoid concurrent duplicates.
    """
    with command_writes_allowed():
        try:
            seq = CompanySequence.objects.select_for_update().get(
                company=company,
                name=name,
            )
        except CompanySequence.DoesNotExist:
            try:
                with transaction.atomic():
                    seq = CompanySequence.objects.create(
                        company=company,
                        name=name,
                        next_value=1,
                    )
            except IntegrityError:
                seq = CompanySequence.objects.select_for_update().get(
                    company=company,
                    name=name,
                )

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value", "updated_at"])
        return value


def _pk(value):
    return value.pk if isinstance(value, Account) else value


def _get_account(company, account_id, lock: bool = False) -> Account:
    qs = Account.objects.for_company(company)
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=_pk(account_id))
    except (Account.DoesNotExist, ValueError, TypeError):
        raise AccountNotFoundError(f"Account {account_id} not found.", account_id=str(account_id))


def _get_parent(company, parent_id) -> Account:
    try:
        return Account.objects.get(company=company, pk=_pk(parent_id))
    except (Account.DoesNotExist, ValueError, TypeError):
        raise ParentNotFoundError(f"Parent account {parent_id} not found.", parent_id=str(parent_id))


def _get_entry(company, entry_id, lock: bool = False) -> JournalEntry:
    qs = JournalEntry.objects.filter(company=company)
    if lock:
        qs = qs.select_for_update()
    if isinstance(entry_id, JournalEntry):
        entry_id = entry_id.pk
    try:
        return qs.get(pk=entry_id)
    except (JournalEntry.DoesNotExist, ValueError, TypeError):
        raise EntryNotFoundError(f"Journal entry {entry_id} not found.", entry_id=str(entry_id))


def _derive_slug(name: str, public_id: uuid.UUID) -> str:
    slug = slugify(name) or slugify(name, allow_unicode=True) or public_id.hex
    return slug[:100]


def _child_path(parent, slug: str) -> str:
    if parent is None:
        return slug
    return f"{parent.path}{path_separator()}{slug}"


# =============================================================================
# Account Commands
# =============================================================================

@transaction.atomic
def create_account(
    company,
    name: str,
    account_type: str,
    currency: str,
    parent_id=None,
    description: str = "",
) -> Account:
    """
    Create a new account in the chart of accounts.

    Args:
        company: Owning company
        name: Display name; its slug becomes the last path segment
        account_type: One of Account.AccountType values
        currency: Base currency code of the account
        parent_id: Optional parent account (same company, same type)
        description: Free text

    Raises:
        ParentNotFoundError, AccountTypeMismatchError, InvalidCurrencyError,
        DuplicateAccountPathError
    """
    name = (name or "").strip()
    if not name:
        raise LedgerValidationError("Account name is required.")
    if account_type not in Account.AccountType.values:
        raise LedgerValidationError(
            f"Unknown account type: {account_type!r}.",
            account_type=str(account_type),
        )
    currency = normalize_currency(currency)

    parent = None
    if parent_id is not None:
        parent = _get_parent(company, parent_id)
        allowed, reason = can_attach_to_parent(account_type, parent)
        if not allowed:
            raise AccountTypeMismatchError(reason)

    public_id = uuid.uuid4()
    slug = _derive_slug(name, public_id)
    path = _child_path(parent, slug)

    if Account.objects.filter(company=company, path=path).exists():
        raise DuplicateAccountPathError(path)

    try:
        with transaction.atomic(), command_writes_allowed():
            account = Account.objects.create(
                company=company,
                public_id=public_id,
                name=name,
                slug=slug,
                account_type=account_type,
                currency=currency,
                parent=parent,
                path=path,
                depth=parent.depth + 1 if parent else 0,
                description=description,
            )
    except IntegrityError:
        raise DuplicateAccountPathError(path)

    logger.info(
        "Account created",
        extra={"company_id": company.id, "account_path": path},
    )
    return account


def _rewrite_subtree(account: Account, new_parent, new_slug: str, new_name: str) -> Account:
    """
    Move ``account`` under ``new_parent`` as ``new_slug`` and rewrite the
    path prefix and depth of every descendant. Rows are locked first.
    """
    old_path = account.path
    new_path = _child_path(new_parent, new_slug)
    depth_delta = (new_parent.depth + 1 if new_parent else 0) - account.depth

    nodes = list(
        Account.objects.subtree_of(account).select_for_update().order_by("path")
    )
    now = timezone.now()
    for node in nodes:
        node.path = new_path + node.path[len(old_path):]
        node.depth = node.depth + depth_delta
        node.updated_at = now
        if node.pk == account.pk:
            node.parent = new_parent
            node.slug = new_slug
            node.name = new_name

    clash = (
        Account.objects.filter(
            company_id=account.company_id,
            path__in=[node.path for node in nodes],
        )
        .exclude(pk__in=[node.pk for node in nodes])
        .values_list("path", flat=True)
        .first()
    )
    if clash is not None:
        raise DuplicateAccountPathError(clash)

    try:
        with transaction.atomic(), command_writes_allowed():
            Account.objects.bulk_update(
                nodes,
                ["path", "depth", "parent", "slug", "name", "updated_at"],
            )
    except IntegrityError:
        raise DuplicateAccountPathError(new_path)

    logger.info(
        "Account subtree rewritten",
        extra={
            "company_id": account.company_id,
            "old_path": old_path,
            "new_path": new_path,
            "nodes": len(nodes),
        },
    )
    account.refresh_from_db()
    return account


@transaction.atomic
def reparent_account(company, account_id, new_parent_id=None) -> Account:
    """
    Move an account (and its whole subtree) under a new parent, or to the
    root when ``new_parent_id`` is None.

    Raises:
        AccountNotFoundError, ParentNotFoundError, CircularReferenceError,
        AccountTypeMismatchError, DuplicateAccountPathError
    """
    account = _get_account(company, account_id, lock=True)

    new_parent = None
    if new_parent_id is not None:
        new_parent = _get_parent(company, new_parent_id)

    allowed, reason = can_reparent(account, new_parent)
    if not allowed:
        raise CircularReferenceError(reason)

    allowed, reason = can_attach_to_parent(account.account_type, new_parent)
    if not allowed:
        raise AccountTypeMismatchError(reason)

    if account.parent_id == (new_parent.pk if new_parent else None):
        return account

    return _rewrite_subtree(account, new_parent, account.slug, account.name)


@transaction.atomic
def rename_account(company, account_id, name: str) -> Account:
    """Rename an account; the new slug is propagated down the subtree paths."""
    name = (name or "").strip()
    if not name:
        raise LedgerValidationError("Account name is required.")

    account = _get_account(company, account_id, lock=True)
    slug = _derive_slug(name, account.public_id)
    if slug == account.slug:
        with command_writes_allowed():
            account.name = name
            account.save(update_fields=["name", "updated_at"])
        return account

    return _rewrite_subtree(account, account.parent, slug, name)


@transaction.atomic
def deactivate_account(company, account_id) -> Account:
    """Soft-deactivate an account. Postings stay; new postings are refused."""
    account = _get_account(company, account_id, lock=True)
    if not account.is_active:
        return account

    allowed, reason = can_deactivate_account(account)
    if not allowed:
        raise AccountInUseError(reason)

    with command_writes_allowed():
        account.is_active = False
        account.save(update_fields=["is_active", "updated_at"])

    logger.info(
        "Account deactivated",
        extra={"company_id": company.id, "account_path": account.path},
    )
    return account


@transaction.atomic
def reactivate_account(company, account_id) -> Account:
    account = _get_account(company, account_id, lock=True)
    if account.is_active:
        return account

    with command_writes_allowed():
        account.is_active = True
        account.save(update_fields=["is_active", "updated_at"])
    return account


@transaction.atomic
def delete_account(company, account_id) -> None:
    """
    Physically delete an account that was never posted to.
    Accounts with postings can only be deactivated.
    """
    account = _get_account(company, account_id, lock=True)

    allowed, reason = can_delete_account(account)
    if not allowed:
        raise AccountInUseError(reason)

    path = account.path
    with command_writes_allowed():
        account.delete()

    logger.info(
        "Account deleted",
        extra={"company_id": company.id, "account_path": path},
    )


def list_tree(company):
    """All accounts of the company ordered by path."""
    return Account.objects.tree(company)


def subtree(company, account_id):
    """The account and all its descendants, ordered by path."""
    account = _get_account(company, account_id)
    return Account.objects.subtree_of(account).order_by("path")


def is_descendant_of(candidate: Account, ancestor: Account) -> bool:
    return candidate.is_descendant_of(ancestor)


# =============================================================================
# Journal Entry Commands
# =============================================================================

def _normalize_line(company, line: dict, line_no: int) -> dict:
    account_id = line.get("account_id")
    if account_id is None and line.get("account") is not None:
        account_id = _pk(line["account"])
    if account_id is None:
        raise AccountNotFoundError(f"Line {line_no} has no account.", line_no=line_no)

    raw_amount = line.get("amount")
    if raw_amount is None:
        raise InvalidAmountError(f"Line {line_no} has no amount.", line_no=line_no)
    amount = ledger_amount(raw_amount)

    exchange_rate = line.get("exchange_rate")
    if exchange_rate is not None:
        exchange_rate = to_decimal(exchange_rate)
        if exchange_rate <= 0:
            raise InvalidAmountError(
                f"Line {line_no} exchange rate must be positive.",
                line_no=line_no,
            )

    return {
        "line_no": line_no,
        "account_id": _pk(account_id),
        "amount": amount,
        "currency": normalize_currency(line.get("currency") or company.default_currency),
        "exchange_rate": exchange_rate,
        "tags": list(line.get("tags") or []),
        "remarks": line.get("remarks") or "",
    }


def _assert_balanced(lines: list[dict]) -> None:
    tolerance = settings.LEDGER_ENTRY_TOLERANCE
    totals = currency_totals((line["currency"], line["amount"]) for line in lines)
    for currency, residual in totals.items():
        if abs(residual) > tolerance:
            raise UnbalancedEntryError(currency, residual)


def _validate_accounts(company, lines: list[dict], require_active: bool = True) -> None:
    account_ids = {line["account_id"] for line in lines}
    try:
        accounts = Account.objects.for_company(company).in_bulk(account_ids)
    except (ValueError, TypeError):
        raise AccountNotFoundError("Invalid account reference on journal line.")

    for line in lines:
        account = accounts.get(line["account_id"])
        if account is None:
            raise AccountNotFoundError(
                f"Account {line['account_id']} not found.",
                account_id=str(line["account_id"]),
                line_no=line["line_no"],
            )
        if require_active:
            allowed, reason = can_post_to_account(account)
            if not allowed:
                raise InactiveAccountError(reason, account_id=account.pk, line_no=line["line_no"])


def _parse_date(value) -> date_type:
    if isinstance(value, date_type):
        return value
    try:
        return date_type.fromisoformat(str(value))
    except ValueError:
        raise LedgerValidationError(f"Invalid entry date: {value!r}.")


def _persist_entry(
    company,
    entry_date: date_type,
    description: str,
    lines: list[dict],
    reference: str = "",
    post: bool = False,
    reverses_entry=None,
) -> JournalEntry:
    sequence_value = _next_company_sequence(company, ENTRY_NUMBER_SEQUENCE)
    entry_number = f"JE-{sequence_value:06d}"

    try:
        with transaction.atomic(), command_writes_allowed():
            entry = JournalEntry.objects.create(
                company=company,
                entry_number=entry_number,
                date=entry_date,
                description=description,
                reference=reference,
                status=JournalEntry.Status.POSTED if post else JournalEntry.Status.PENDING,
                posted_at=timezone.now() if post else None,
                reverses_entry=reverses_entry,
            )
            JournalLine.objects.bulk_create([
                JournalLine(
                    company=company,
                    entry=entry,
                    line_no=line["line_no"],
                    account_id=line["account_id"],
                    amount=line["amount"],
                    currency=line["currency"],
                    exchange_rate=line["exchange_rate"],
                    tags=line["tags"],
                    remarks=line["remarks"],
                )
                for line in lines
            ])
    except IntegrityError:
        raise DuplicateEntryNumberError(entry_number)

    record_journal_entry("created")
    if post:
        record_journal_entry("posted")
    return entry


@transaction.atomic
def _create_journal_entry(company, date, description, lines, reference, post) -> JournalEntry:
    if len(lines) < 2:
        raise InsufficientLinesError(len(lines))

    normalized = [
        _normalize_line(company, line, line_no)
        for line_no, line in enumerate(lines, start=1)
    ]
    _assert_balanced(normalized)
    _validate_accounts(company, normalized)

    return _persist_entry(
        company,
        _parse_date(date),
        description or "",
        normalized,
        reference=reference or "",
        post=post,
    )


def create_journal_entry(
    company,
    date,
    description: str,
    lines: list,
    reference: str = "",
    post: bool = False,
) -> JournalEntry:
    """
    Create a journal entry with its lines as one atomic unit.

    Args:
        company: Owning company
        date: Entry date (date or ISO string)
        description: Entry description
        lines: List of dicts with account_id (or account), amount (signed,
            debit positive), currency, and optional exchange_rate, tags, remarks
        reference: Optional external reference
        post: Post immediately instead of leaving the entry pending

    Returns:
        The created JournalEntry

    Raises:
        InsufficientLinesError, InvalidAmountError, InvalidCurrencyError,
        UnbalancedEntryError, AccountNotFoundError, InactiveAccountError,
        DuplicateEntryNumberError
    """
    lines = list(lines or [])
    try:
        entry = _create_journal_entry(company, date, description, lines, reference, post)
    except LedgerError as exc:
        record_journal_entry_rejected(exc.code)
        logger.warning(
            "Journal entry rejected",
            extra={"company_id": company.id, "error_code": exc.code, "reason": exc.message},
        )
        raise

    logger.info(
        "Journal entry created",
        extra={
            "company_id": company.id,
            "entry_number": entry.entry_number,
            "status": entry.status,
            "line_count": len(lines),
        },
    )
    return entry


@transaction.atomic
def post_journal_entry(company, entry_id) -> JournalEntry:
    """
    Post a pending journal entry. POSTED is terminal.

    Raises:
        EntryNotFoundError, InvalidStatusTransitionError, InactiveAccountError
    """
    entry = _get_entry(company, entry_id, lock=True)

    allowed, reason = can_post_entry(entry)
    if not allowed:
        raise InvalidStatusTransitionError(reason, status=entry.status)

    lines = list(entry.lines.values("line_no", "account_id"))
    _validate_accounts(company, lines)

    with command_writes_allowed():
        entry.status = JournalEntry.Status.POSTED
        entry.posted_at = timezone.now()
        entry.save(update_fields=["status", "posted_at"])

    record_journal_entry("posted")
    logger.info(
        "Journal entry posted",
        extra={"company_id": company.id, "entry_number": entry.entry_number},
    )
    return entry


@transaction.atomic
def reverse_journal_entry(company, entry_id, date=None, description: str = "") -> JournalEntry:
    """
    Correct a posted entry by posting its mirror image.

    The reversal carries every line with the sign flipped and points back
    at the original through ``reverses_entry``. The original is untouched.
    """
    original = _get_entry(company, entry_id, lock=True)

    allowed, reason = can_reverse_entry(original)
    if not allowed:
        raise InvalidStatusTransitionError(reason, status=original.status)

    lines = [
        {
            "line_no": line.line_no,
            "account_id": line.account_id,
            "amount": -line.amount,
            "currency": line.currency,
            "exchange_rate": line.exchange_rate,
            "tags": list(line.tags or []),
            "remarks": line.remarks,
        }
        for line in original.lines.order_by("line_no")
    ]
    _validate_accounts(company, lines, require_active=False)

    reversal = _persist_entry(
        company,
        _parse_date(date) if date is not None else original.date,
        description or f"Reversal of {original.entry_number}",
        lines,
        reference=original.entry_number,
        post=True,
        reverses_entry=original,
    )

    record_journal_entry("reversed")
    logger.info(
        "Journal entry reversed",
        extra={
            "company_id": company.id,
            "entry_number": original.entry_number,
            "reversal_number": reversal.entry_number,
        },
    )
    return reversal


@transaction.atomic
def delete_journal_entry(company, entry_id) -> None:
    """Discard a pending entry. Posted entries are only ever reversed."""
    entry = _get_entry(company, entry_id, lock=True)

    allowed, reason = can_delete_entry(entry)
    if not allowed:
        raise InvalidStatusTransitionError(reason, status=entry.status)

    entry_number = entry.entry_number
    with command_writes_allowed():
        entry.lines.all().delete()
        entry.delete()

    record_journal_entry("deleted")
    logger.info(
        "Journal entry deleted",
        extra={"company_id": company.id, "entry_number": entry_number},
    )
