# accounting/policies.py
"""
Business policy functions for ledger operations.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Usage:
    from accounting.policies import can_post_entry

    allowed, reason = can_post_entry(entry)
    if not allowed:
        raise InvalidStatusTransitionError(reason)

Design Principles:
1. Policies are pure functions (no side effects)
2. Policies return (bool, str) tuples for clear error messages
3. Policies check ONE thing conceptually
4. Commands compose policies and raise the matching typed error
"""


# =============================================================================
# Tenant Boundary Policies
# =============================================================================

def check_tenant_boundary(company, entity) -> bool:
    """
    Verify entity belongs to ``company``.
    This is the fundamental multi-tenant security check.
    """
    entity_company_id = getattr(entity, "company_id", None)
    if entity_company_id is None:
        owner = getattr(entity, "company", None)
        entity_company_id = getattr(owner, "id", None) if owner else None
    return entity_company_id == company.id


# =============================================================================
# Account Policies
# =============================================================================

def can_attach_to_parent(account_type: str, parent) -> tuple[bool, str]:
    """Children share their parent's type so statement sections stay closed."""
    if parent is not None and parent.account_type != account_type:
        return False, f"Account type {account_type} cannot be a child of {parent.account_type}."
    return True, ""


def can_reparent(account, new_parent) -> tuple[bool, str]:
    """
    Rules:
    - An account cannot become its own parent
    - An account cannot move under one of its descendants
    """
    if new_parent is None:
        return True, ""
    if new_parent.pk == account.pk:
        return False, "An account cannot be its own parent."
    if new_parent.is_descendant_of(account):
        return False, f"Cannot move {account.path} under its descendant {new_parent.path}."
    return True, ""


def can_deactivate_account(account) -> tuple[bool, str]:
    from accounting.models import Account

    if Account.objects.descendants_of(account).filter(is_active=True).exists():
        return False, "Cannot deactivate an account that has active descendant accounts."
    return True, ""


def can_delete_account(account) -> tuple[bool, str]:
    """
    Rules:
    - Cannot have postings (soft-deactivate instead)
    - Cannot have child accounts
    """
    if account.journal_lines.exists():
        return False, "Cannot delete an account that has postings. Deactivate it instead."

    if account.children.exists():
        return False, "Cannot delete an account that has child accounts."

    return True, ""


def can_post_to_account(account) -> tuple[bool, str]:
    if not account.is_active:
        return False, f"Cannot post to inactive account: {account.path}"
    return True, ""


# =============================================================================
# Journal Entry Policies
# =============================================================================

def can_post_entry(entry) -> tuple[bool, str]:
    from accounting.models import JournalEntry

    if entry.status != JournalEntry.Status.PENDING:
        return False, f"Only pending entries can be posted (entry is {entry.status})."
    return True, ""


def can_delete_entry(entry) -> tuple[bool, str]:
    from accounting.models import JournalEntry

    if entry.status != JournalEntry.Status.PENDING:
        return False, f"Cannot delete entry in {entry.status} status. Posted entries must be reversed."
    return True, ""


def can_reverse_entry(entry) -> tuple[bool, str]:
    """
    Rules:
    - Must be posted
    - Cannot already be reversed
    - Cannot itself be a reversal
    """
    from accounting.models import JournalEntry

    if entry.status != JournalEntry.Status.POSTED:
        return False, "Only posted entries can be reversed."

    if JournalEntry.objects.filter(reverses_entry=entry).exists():
        return False, "Entry has already been reversed."

    if entry.reverses_entry_id is not None:
        return False, "A reversing entry cannot be reversed."

    return True, ""
