"""
Operation Result Module

Success/failure values returned by every public service operation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Type

from .errors import CardLedgerError


@dataclass
class OperationResult:
    """Outcome of an operation with an optional error and payload"""
    success: bool
    error_message: str = ""
    error: Optional[CardLedgerError] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **payload: Any) -> 'OperationResult':
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, error: CardLedgerError) -> 'OperationResult':
        return cls(success=False, error_message=error.message, error=error)

    @property
    def error_type(self) -> Optional[Type[CardLedgerError]]:
        """Class of the carried error, None on success"""
        return type(self.error) if self.error is not None else None

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def raise_for_error(self) -> None:
        """Re-raise the carried error (for callers that prefer exceptions)"""
        if self.error is not None:
            raise self.error

    def __bool__(self) -> bool:
        return self.success


@dataclass
class LoginResult(OperationResult):
    """Login outcome with the account details the session needs"""
    is_admin: bool = False
    holder_name: str = ""
    balance: Decimal = Decimal('0')
    withdraw_limit: Decimal = Decimal('0')

    @classmethod
    def logged_in(
        cls,
        is_admin: bool,
        holder_name: str,
        balance: Decimal,
        withdraw_limit: Decimal
    ) -> 'LoginResult':
        return cls(
            success=True,
            is_admin=is_admin,
            holder_name=holder_name,
            balance=balance,
            withdraw_limit=withdraw_limit
        )

    @classmethod
    def from_failure(cls, result: OperationResult) -> 'LoginResult':
        return cls(success=False, error_message=result.error_message, error=result.error)


@dataclass(frozen=True)
class ReceiptData:
    """
    Fields the receipt/printing collaborator needs after a committed operation.
    Formatting and rendering are not done here.
    """
    bank_label: str
    card_number: str
    holder_name: str
    transaction_type: str
    amount: Decimal
    balance_after: Decimal
    timestamp: datetime
    transaction_id: str
    counterparty_card: Optional[str] = None
    counterparty_name: Optional[str] = None
