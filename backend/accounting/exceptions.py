# accounting/exceptions.py
"""
Typed errors raised by the ledger core.

Every public ledger operation either succeeds or raises exactly one of
these. Each class carries a machine-readable ``code`` and a ``kind``:

- validation: the caller sent something wrong and must fix it
- conflict: a uniqueness rule in the store was hit
- dependency: a collaborator (exchange rates) could not answer

Storage failures are not wrapped; they propagate as Django's
``DatabaseError`` subclasses.
"""

from datetime import date, datetime
from decimal import Decimal


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"
    kind = "fatal"

    def __init__(self, message: str = "", **details):
        self.message = message or self.default_message()
        self.details = details
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.code.replace("_", " ").capitalize() + "."

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": {key: _jsonable(value) for key, value in self.details.items()},
        }


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


# =============================================================================
# Validation errors
# =============================================================================

class LedgerValidationError(LedgerError):
    code = "validation_error"
    kind = "validation"


class UnbalancedEntryError(LedgerValidationError):
    code = "unbalanced_entry"

    def __init__(self, currency: str, residual: Decimal):
        self.currency = currency
        self.residual = residual
        super().__init__(
            f"Lines in {currency} do not balance (residual {residual}).",
            currency=currency,
            residual=residual,
        )


class InsufficientLinesError(LedgerValidationError):
    code = "insufficient_lines"

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"At least 2 lines are required, got {count}.", count=count)


class AmbiguousEmptyLineError(LedgerValidationError):
    code = "ambiguous_empty_line"

    def __init__(self, empty_count: int):
        self.empty_count = empty_count
        super().__init__(
            f"Exactly one line must have an empty amount, found {empty_count}.",
            empty_count=empty_count,
        )


class ParentNotFoundError(LedgerValidationError):
    code = "parent_not_found"


class CircularReferenceError(LedgerValidationError):
    code = "circular_reference"


class InvalidCurrencyError(LedgerValidationError):
    code = "invalid_currency"

    def __init__(self, currency):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}.", currency=str(currency))


class InvalidAmountError(LedgerValidationError):
    code = "invalid_amount"


class AccountNotFoundError(LedgerValidationError):
    code = "account_not_found"


class InactiveAccountError(LedgerValidationError):
    code = "inactive_account"


class AccountTypeMismatchError(LedgerValidationError):
    code = "account_type_mismatch"


class AccountInUseError(LedgerValidationError):
    code = "account_in_use"


class EntryNotFoundError(LedgerValidationError):
    code = "entry_not_found"


class BudgetNotFoundError(LedgerValidationError):
    code = "budget_not_found"


class AlertNotFoundError(LedgerValidationError):
    code = "alert_not_found"


class InvalidBudgetError(LedgerValidationError):
    code = "invalid_budget"


class InvalidStatusTransitionError(LedgerValidationError):
    code = "invalid_status_transition"


# =============================================================================
# Conflict errors
# =============================================================================

class LedgerConflictError(LedgerError):
    code = "conflict"
    kind = "conflict"


class DuplicateEntryNumberError(LedgerConflictError):
    code = "duplicate_entry_number"

    def __init__(self, entry_number: str):
        self.entry_number = entry_number
        super().__init__(f"Entry number {entry_number} already exists.", entry_number=entry_number)


class DuplicateAccountPathError(LedgerConflictError):
    code = "duplicate_account_path"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"An account with path '{path}' already exists.", path=path)


# =============================================================================
# Dependency errors
# =============================================================================

class LedgerDependencyError(LedgerError):
    code = "dependency_error"
    kind = "dependency"


class NoRateAvailableError(LedgerDependencyError):
    code = "no_rate_available"

    def __init__(self, from_currency: str, to_currency: str, as_of):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        super().__init__(
            f"No exchange rate from {from_currency} to {to_currency} as of {as_of}.",
            from_currency=from_currency,
            to_currency=to_currency,
            as_of=as_of,
        )
