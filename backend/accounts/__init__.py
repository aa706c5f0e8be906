# accounts/__init__.py
"""
Accounts app - Multi-tenancy.

This app provides:
- Company: Tenant model; every ledger row belongs to exactly one company

Ledger operations take the company explicitly and never read or write
rows of another company.
"""
