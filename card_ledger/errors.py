"""
Error Taxonomy Module

Domain errors raised inside components and carried by failed results.
Services never let these escape; they are returned inside OperationResult.
"""

from typing import Optional


class CardLedgerError(Exception):
    """Base class for all card ledger errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CardLedgerError):
    """Malformed input: bad card/PIN format, non-positive amount, duplicates"""


class NotFoundError(CardLedgerError):
    """Unknown card number"""


class LockedAccountError(CardLedgerError):
    """Account is permanently or temporarily locked"""

    def __init__(self, message: str, remaining_minutes: Optional[int] = None):
        super().__init__(message)
        self.remaining_minutes = remaining_minutes

    @property
    def is_temporary(self) -> bool:
        return self.remaining_minutes is not None


class InsufficientFundsError(CardLedgerError):
    """Balance does not cover the requested amount"""


class LimitExceededError(CardLedgerError):
    """Amount is above the per-operation limit"""


class PersistenceError(CardLedgerError):
    """Backing store read or write failed"""


class PermissionDeniedError(CardLedgerError):
    """Non-admin attempting a privileged operation"""


class InvariantViolation(CardLedgerError):
    """Operation would break a system invariant (e.g. deleting the last admin)"""
