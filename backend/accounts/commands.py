# accounts/commands.py
"""
Command layer for tenant operations.

Tenant CRUD lives outside the ledger core; only company creation is
provided so that the ledger has something to scope its data by.
"""

import logging

from django.db import transaction
from django.utils.text import slugify

from accounting.currency import normalize_currency
from accounts.models import Company


logger = logging.getLogger(__name__)


@transaction.atomic
def create_company(name: str, slug: str = "", default_currency: str = "USD") -> Company:
    """
    Create a new company (tenant).

    Args:
        name: Display name
        slug: Unique slug; derived from the name when omitted
        default_currency: Company currency code (default: USD)
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Company name is required.")

    base_slug = slugify(slug or name) or "company"
    candidate = base_slug
    suffix = 1
    while Company.objects.filter(slug=candidate).exists():
        suffix += 1
        candidate = f"{base_slug}-{suffix}"

    company = Company.objects.create(
        name=name,
        slug=candidate,
        default_currency=normalize_currency(default_currency),
    )
    logger.info(
        "Company created",
        extra={"company_id": company.id, "company_slug": company.slug},
    )
    return company
