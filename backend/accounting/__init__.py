# accounting/__init__.py
"""
Accounting app - Ledger core.

This app provides:
- Account: Chart of accounts, a per-company tree addressed by path
- JournalEntry: Multi-currency journal entries (pending, posted)
- JournalLine: Signed amounts, one currency per line
- auto_balance: Completes a draft entry so that every currency nets to zero

Mutations go through accounting/commands.py; the models refuse writes
made outside a command context.
"""
