"""
Transaction Ledger Module

Append-only history of committed operations. Transactions are immutable;
the only removal is the bulk purge of a deleted account's history.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import uuid

from .accounts import to_amount
from .errors import PersistenceError
from .logging_config import get_logger, log_action
from .storage import DocumentStore


class TransactionType(Enum):
    """Kinds of ledger events"""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    BALANCE_INQUIRY = "BalanceInquiry"
    TRANSFER = "Transfer"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> 'TransactionType':
        """Accept stored names and legacy integer codes"""
        if isinstance(value, int):
            return list(cls)[value]
        return cls(value)

    @property
    def is_income(self) -> bool:
        return self == TransactionType.DEPOSIT

    @property
    def is_expense(self) -> bool:
        return self in (TransactionType.WITHDRAWAL, TransactionType.TRANSFER)

    def signed(self, amount: Decimal) -> Decimal:
        """Effect of a transaction of this type on the account balance"""
        if self.is_income:
            return amount
        if self.is_expense:
            return -amount
        return Decimal('0')


@dataclass(frozen=True)
class Transaction:
    """Immutable record of one ledger event"""
    card_number: str
    timestamp: datetime
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    description: str = ""
    counterparty_card: Optional[str] = None
    transaction_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "cardNumber": self.card_number,
            "timestamp": self.timestamp.isoformat(),
            "type": self.transaction_type.value,
            "amount": str(self.amount),
            "balanceAfter": str(self.balance_after),
            "description": self.description,
            "counterpartyCard": self.counterparty_card,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        counterparty = data.get("counterpartyCard", data.get("targetCardNumber")) or None

        return cls(
            card_number=data["cardNumber"],
            timestamp=timestamp,
            transaction_type=TransactionType.parse(data["type"]),
            amount=to_amount(data.get("amount", "0")),
            balance_after=to_amount(data.get("balanceAfter", "0")),
            description=data.get("description", ""),
            counterparty_card=counterparty,
            transaction_id=data.get("transactionId") or str(uuid.uuid4()),
        )


class TransactionLedger:
    """
    Append-only transaction store backed by a document store

    Every append or purge rewrites the full document before returning.
    """

    def __init__(
        self,
        store: DocumentStore,
        document_name: str = "transactions",
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.document_name = document_name
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("card_ledger.ledger")
        self._transactions: List[Transaction] = []
        self.load()

    def load(self) -> bool:
        """Load history from the store; False when no document exists yet"""
        records = self.store.read(self.document_name)
        if records is None:
            self._transactions = []
            return False

        try:
            self._transactions = [Transaction.from_dict(r) for r in records if isinstance(r, dict)]
        except (LookupError, TypeError, ValueError, ArithmeticError) as e:
            raise PersistenceError(f"Malformed record in {self.document_name}: {e!r}") from e
        self.logger.info(f"Loaded {len(self._transactions)} transactions")
        return True

    def save(self) -> None:
        self.store.write(self.document_name, [t.to_dict() for t in self._transactions])

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """Append and persist; raises PersistenceError with the append undone"""
        self._transactions.append(transaction)
        try:
            self.save()
        except PersistenceError:
            self._transactions.pop()
            raise

        log_action(
            self.logger, "info", f"Transaction recorded: {transaction.transaction_type.value}",
            card_number=transaction.card_number, action="record_transaction",
            resource=f"transaction:{transaction.transaction_id}",
            extra={
                "amount": str(transaction.amount),
                "balance_after": str(transaction.balance_after),
                "counterparty_card": transaction.counterparty_card,
            }
        )
        return transaction

    def record_transaction(
        self,
        card_number: str,
        transaction_type: TransactionType,
        amount: Decimal,
        balance_after: Decimal,
        description: str = "",
        counterparty_card: Optional[str] = None
    ) -> Transaction:
        """Create a transaction stamped with the current time and append it"""
        transaction = Transaction(
            card_number=card_number,
            timestamp=self.clock(),
            transaction_type=transaction_type,
            amount=to_amount(amount),
            balance_after=to_amount(balance_after),
            description=description,
            counterparty_card=counterparty_card or None,
        )
        return self.add_transaction(transaction)

    def record_transfer(
        self,
        from_card: str,
        to_card: str,
        amount: Decimal,
        from_balance_after: Decimal,
        to_balance_after: Decimal
    ) -> Tuple[Transaction, Transaction]:
        """
        Record both legs of a transfer in a single write.

        The source gets a Transfer entry and the target a Deposit entry, each
        naming the other card. Either both legs are stored or neither is.
        """
        timestamp = self.clock()
        amount = to_amount(amount)
        outgoing = Transaction(
            card_number=from_card,
            timestamp=timestamp,
            transaction_type=TransactionType.TRANSFER,
            amount=amount,
            balance_after=to_amount(from_balance_after),
            description=f"Transfer to {to_card}",
            counterparty_card=to_card,
        )
        incoming = Transaction(
            card_number=to_card,
            timestamp=timestamp,
            transaction_type=TransactionType.DEPOSIT,
            amount=amount,
            balance_after=to_amount(to_balance_after),
            description=f"Transfer from {from_card}",
            counterparty_card=from_card,
        )

        previous = self._transactions
        self._transactions = previous + [outgoing, incoming]
        try:
            self.save()
        except PersistenceError:
            self._transactions = previous
            raise

        log_action(
            self.logger, "info", "Transfer recorded",
            card_number=from_card, action="record_transfer",
            resource=f"transaction:{outgoing.transaction_id}",
            extra={"amount": str(amount), "counterparty_card": to_card}
        )
        return outgoing, incoming

    def get_transactions_for_card(self, card_number: str) -> List[Transaction]:
        """All transactions for a card, oldest first"""
        result = [t for t in self._transactions if t.card_number == card_number]
        result.sort(key=lambda t: t.timestamp)
        return result

    def get_recent_transactions(self, card_number: str, count: int) -> List[Transaction]:
        """Newest first, at most ``count`` entries"""
        transactions = self.get_transactions_for_card(card_number)
        transactions.reverse()
        return transactions[:max(count, 0)]

    def get_transactions_between(
        self,
        card_number: str,
        start: datetime,
        end: datetime
    ) -> List[Transaction]:
        return [
            t for t in self.get_transactions_for_card(card_number)
            if start <= t.timestamp <= end
        ]

    def get_all_transactions(self) -> List[Transaction]:
        return list(self._transactions)

    def clear_transactions_for_card(self, card_number: str) -> int:
        """Purge a card's history; returns the number of removed entries"""
        previous = self._transactions
        self._transactions = [t for t in previous if t.card_number != card_number]
        removed = len(previous) - len(self._transactions)

        try:
            self.save()
        except PersistenceError:
            self._transactions = previous
            raise

        self.logger.info(f"Cleared {removed} transactions for card {card_number}")
        return removed

    def __len__(self) -> int:
        return len(self._transactions)
