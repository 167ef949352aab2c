"""
Account Service Module

Cardholder operations: login/logout, withdraw, deposit, transfer, PIN change
and balance inquiry. Each operation runs its validation chain, mutates a copy
of the account, writes it through the repository and then records the
ledger entry. Nothing here raises to the caller; outcomes are results.
"""

from decimal import Decimal
from typing import Any, List, Optional

from .accounts import Account
from .errors import LockedAccountError, PersistenceError
from .events import EventDispatcher, LedgerEvent
from .ledger import Transaction, TransactionLedger, TransactionType
from .logging_config import get_logger, log_action
from .repository import AccountRepository
from .results import LoginResult, OperationResult, ReceiptData
from .validation import AccountValidator, parse_amount


class AccountService:
    """
    Cardholder-facing account operations

    The ledger and dispatcher are optional. Without a ledger, operations
    still commit balance changes but produce no transaction or receipt.
    """

    def __init__(
        self,
        repository: AccountRepository,
        validator: AccountValidator,
        ledger: Optional[TransactionLedger] = None,
        dispatcher: Optional[EventDispatcher] = None,
        bank_label: str = "Card Ledger Bank"
    ):
        self.repository = repository
        self.validator = validator
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.bank_label = bank_label
        self.logger = get_logger("card_ledger.account_service")

    # Session

    def login(self, card_number: str, pin: str) -> LoginResult:
        """Authenticate a cardholder and record the login"""
        result = self.validator.validate_credentials(card_number, pin)
        if not result.success:
            log_action(
                self.logger, "warning", f"Login failed: {result.error_message}",
                card_number=card_number, action="login_failed"
            )
            self._publish(LedgerEvent.LOGIN_FAILED, card_number, reason=result.error_message)
            if isinstance(result.error, LockedAccountError) and result.error.is_temporary:
                self._publish(LedgerEvent.TEMPORARILY_LOCKED, card_number,
                              remaining_minutes=result.error.remaining_minutes)
            return LoginResult.from_failure(result)

        account = self.repository.find_by_card_number(card_number)
        try:
            self._record(account, TransactionType.OTHER, Decimal('0'), "Login")
        except PersistenceError as e:
            return LoginResult.from_failure(OperationResult.fail(e))

        log_action(self.logger, "info", "Login succeeded", card_number=card_number, action="login")
        self._publish(LedgerEvent.LOGIN_SUCCEEDED, card_number, is_admin=account.is_admin)

        return LoginResult.logged_in(
            is_admin=account.is_admin,
            holder_name=account.holder_name,
            balance=account.balance,
            withdraw_limit=account.withdraw_limit
        )

    def logout(self, card_number: str) -> OperationResult:
        result = self.validator.validate_account_exists(card_number)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        try:
            self._record(account, TransactionType.OTHER, Decimal('0'), "Logout")
        except PersistenceError as e:
            return OperationResult.fail(e)

        log_action(self.logger, "info", "Logout", card_number=card_number, action="logout")
        self._publish(LedgerEvent.LOGGED_OUT, card_number)
        return OperationResult.ok()

    # Money movement

    def withdraw(self, card_number: str, amount: Any) -> OperationResult:
        result = self.validator.validate_withdrawal(card_number, amount)
        if not result.success:
            return result
        return self._apply_balance_change(
            card_number, -parse_amount(amount), TransactionType.WITHDRAWAL, "ATM withdrawal"
        )

    def deposit(self, card_number: str, amount: Any) -> OperationResult:
        result = self.validator.validate_deposit(card_number, amount)
        if not result.success:
            return result
        return self._apply_balance_change(
            card_number, parse_amount(amount), TransactionType.DEPOSIT, "ATM deposit"
        )

    def transfer(self, from_card: str, to_card: str, amount: Any) -> OperationResult:
        """
        Move funds between two accounts.

        The source is written first. If the target write fails, the source
        debit is restored and re-persisted before the target's failure is
        returned, so neither balance changes.
        """
        result = self.validator.validate_transfer(from_card, to_card, amount)
        if not result.success:
            return result

        value = parse_amount(amount)
        source = self.repository.find_by_card_number(from_card)
        target = self.repository.find_by_card_number(to_card)
        source_before = source.balance
        target_before = target.balance

        source.balance -= value
        target.balance += value

        saved = self.repository.save_account(source)
        if not saved.success:
            return saved

        saved = self.repository.save_account(target)
        if not saved.success:
            source.balance = source_before
            self._restore(source, "transfer source")
            return saved

        outgoing = incoming = None
        if self.ledger is not None:
            try:
                outgoing, incoming = self.ledger.record_transfer(
                    from_card, to_card, value, source.balance, target.balance
                )
            except PersistenceError as e:
                source.balance = source_before
                target.balance = target_before
                self._restore(target, "transfer target")
                self._restore(source, "transfer source")
                return OperationResult.fail(e)

        log_action(
            self.logger, "info", "Transfer completed",
            card_number=from_card, action="transfer",
            extra={"amount": str(value), "counterparty_card": to_card}
        )
        self._publish(LedgerEvent.BALANCE_CHANGED, from_card, balance=str(source.balance))
        self._publish(LedgerEvent.BALANCE_CHANGED, to_card, balance=str(target.balance))
        if outgoing is not None:
            self._publish(LedgerEvent.TRANSACTION_RECORDED, from_card,
                          transaction_id=outgoing.transaction_id)
            self._publish(LedgerEvent.TRANSACTION_RECORDED, to_card,
                          transaction_id=incoming.transaction_id)

        return OperationResult.ok(
            balance=source.balance,
            target_balance=target.balance,
            transaction=outgoing,
            counterparty_transaction=incoming,
            receipt=self._receipt(source, outgoing, counterparty=target),
        )

    # Credentials and inquiries

    def change_pin(
        self,
        card_number: str,
        current_pin: str,
        new_pin: str,
        confirm_pin: Optional[str] = None
    ) -> OperationResult:
        result = self.validator.validate_pin_change(card_number, current_pin, new_pin, confirm_pin)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        old_hash, old_salt = account.pin_hash, account.salt
        account.set_pin(new_pin)

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        try:
            self._record(account, TransactionType.OTHER, Decimal('0'), "PIN changed")
        except PersistenceError as e:
            account.pin_hash, account.salt = old_hash, old_salt
            self._restore(account, "PIN change")
            return OperationResult.fail(e)

        log_action(self.logger, "info", "PIN changed", card_number=card_number, action="change_pin")
        self._publish(LedgerEvent.PIN_CHANGED, card_number)
        return OperationResult.ok()

    def balance_inquiry(self, card_number: str) -> OperationResult:
        """Report the balance and record the inquiry in the ledger"""
        result = self.validator.validate_account_exists(card_number)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        try:
            transaction = self._record(account, TransactionType.BALANCE_INQUIRY, Decimal('0'),
                                       "Balance inquiry")
        except PersistenceError as e:
            return OperationResult.fail(e)

        return OperationResult.ok(
            balance=account.balance,
            transaction=transaction,
            receipt=self._receipt(account, transaction),
        )

    # Read accessors

    def validate_target_account(self, target_card: str) -> OperationResult:
        """Pre-check a transfer target before asking for the amount"""
        return self.validator.validate_target_account(target_card)

    def get_account(self, card_number: str) -> Optional[Account]:
        return self.repository.find_by_card_number(card_number)

    def get_balance(self, card_number: str) -> Decimal:
        account = self.repository.find_by_card_number(card_number)
        return account.balance if account else Decimal('0')

    def get_holder_name(self, card_number: str) -> str:
        account = self.repository.find_by_card_number(card_number)
        return account.holder_name if account else ""

    def get_withdraw_limit(self, card_number: str) -> Decimal:
        account = self.repository.find_by_card_number(card_number)
        return account.withdraw_limit if account else Decimal('0')

    def is_account_locked(self, card_number: str) -> bool:
        """True for a permanent or a running temporary lock"""
        account = self.repository.find_by_card_number(card_number)
        if account is None:
            return False
        return not account.is_usable(self.validator.clock())

    def get_transactions(self, card_number: str) -> List[Transaction]:
        if self.ledger is None:
            return []
        return self.ledger.get_transactions_for_card(card_number)

    def get_recent_transactions(self, card_number: str, count: int = 5) -> List[Transaction]:
        if self.ledger is None:
            return []
        return self.ledger.get_recent_transactions(card_number, count)

    # Internals

    def _apply_balance_change(
        self,
        card_number: str,
        delta: Decimal,
        transaction_type: TransactionType,
        description: str
    ) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        previous_balance = account.balance
        account.balance += delta

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        try:
            transaction = self._record(account, transaction_type, abs(delta), description)
        except PersistenceError as e:
            account.balance = previous_balance
            self._restore(account, description)
            return OperationResult.fail(e)

        log_action(
            self.logger, "info", f"{transaction_type.value} completed",
            card_number=card_number, action=transaction_type.value.lower(),
            extra={"amount": str(abs(delta)), "balance": str(account.balance)}
        )
        self._publish(LedgerEvent.BALANCE_CHANGED, card_number, balance=str(account.balance))

        return OperationResult.ok(
            balance=account.balance,
            transaction=transaction,
            receipt=self._receipt(account, transaction),
        )

    def _record(
        self,
        account: Account,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        counterparty_card: Optional[str] = None
    ) -> Optional[Transaction]:
        if self.ledger is None:
            return None
        transaction = self.ledger.record_transaction(
            account.card_number, transaction_type, amount, account.balance,
            description, counterparty_card
        )
        self._publish(LedgerEvent.TRANSACTION_RECORDED, account.card_number,
                      transaction_id=transaction.transaction_id,
                      transaction_type=transaction_type.value)
        return transaction

    def _restore(self, account: Account, context: str) -> None:
        """Write back a pre-operation snapshot after a later step failed"""
        restored = self.repository.save_account(account)
        if not restored.success:
            log_action(
                self.logger, "critical",
                f"Could not restore account after failed {context}: {restored.error_message}",
                card_number=account.card_number, action="rollback_failed"
            )
        else:
            log_action(
                self.logger, "warning", f"Rolled back {context}",
                card_number=account.card_number, action="rollback"
            )

    def _receipt(
        self,
        account: Account,
        transaction: Optional[Transaction],
        counterparty: Optional[Account] = None
    ) -> Optional[ReceiptData]:
        if transaction is None:
            return None
        return ReceiptData(
            bank_label=self.bank_label,
            card_number=account.card_number,
            holder_name=account.holder_name,
            transaction_type=transaction.transaction_type.value,
            amount=transaction.amount,
            balance_after=transaction.balance_after,
            timestamp=transaction.timestamp,
            transaction_id=transaction.transaction_id,
            counterparty_card=counterparty.card_number if counterparty else None,
            counterparty_name=counterparty.holder_name if counterparty else None,
        )

    def _publish(self, event_type: LedgerEvent, card_number: str, **data: Any) -> None:
        if self.dispatcher is not None:
            self.dispatcher.emit(event_type, card_number, **data)
