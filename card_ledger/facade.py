"""
Facade Module

Single entry surface for a presentation layer. BankFacade only delegates;
it holds no state of its own beyond the services it aggregates.
``from_config`` assembles the full object graph from configuration.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Optional

from .account_service import AccountService
from .accounts import Account
from .admin import AdminService
from .analytics import AnalyticsService, ForecastMode
from .config import CardLedgerConfig, get_config
from .events import EventDispatcher
from .ledger import Transaction, TransactionLedger
from .logging_config import get_logger, setup_logging
from .repository import StoreAccountRepository
from .results import LoginResult, OperationResult
from .storage import DocumentStore, create_store
from .validation import AccountValidator


class BankFacade:
    """Aggregates the account, admin and analytics services"""

    def __init__(
        self,
        account_service: AccountService,
        admin_service: AdminService,
        analytics_service: AnalyticsService,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.account_service = account_service
        self.admin_service = admin_service
        self.analytics_service = analytics_service
        self.dispatcher = dispatcher

    @classmethod
    def from_config(
        cls,
        config: Optional[CardLedgerConfig] = None,
        store: Optional[DocumentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        configure_logging: bool = True
    ) -> 'BankFacade':
        """
        Build the engine from configuration.

        Args:
            config: Settings to use; defaults to the global configuration
            store: Document store override (tests pass an in-memory store)
            clock: Time source shared by validation, ledger and analytics
            configure_logging: Install the card_ledger log handler
        """
        config = config or get_config()
        if configure_logging:
            setup_logging(level=config.log_level, log_format=config.log_format)

        store = store or create_store(config)
        repository = StoreAccountRepository(
            store,
            document_name=config.accounts_document,
            seed_accounts=config.seed_accounts,
            max_failed_attempts=config.max_failed_attempts,
            temporary_lock_minutes=config.temporary_lock_minutes,
        )
        ledger = TransactionLedger(store, document_name=config.transactions_document, clock=clock)
        validator = AccountValidator(
            repository,
            clock=clock,
            max_single_deposit=config.max_single_deposit,
            max_single_transfer=config.max_single_transfer,
        )
        dispatcher = EventDispatcher()

        facade = cls(
            account_service=AccountService(
                repository, validator, ledger, dispatcher, bank_label=config.bank_label
            ),
            admin_service=AdminService(repository, validator, ledger, dispatcher),
            analytics_service=AnalyticsService(
                repository,
                ledger,
                clock=clock,
                mode=ForecastMode(config.forecast_mode),
                window_days=config.forecast_window_days,
                recency_decay=config.forecast_recency_decay,
                min_regression_points=config.regression_min_points,
            ),
            dispatcher=dispatcher,
        )
        get_logger("card_ledger.facade").info(
            f"Card ledger ready with {config.storage_backend} storage"
        )
        return facade

    # Cardholder operations

    def login(self, card_number: str, pin: str) -> LoginResult:
        return self.account_service.login(card_number, pin)

    def logout(self, card_number: str) -> OperationResult:
        return self.account_service.logout(card_number)

    def withdraw(self, card_number: str, amount: Any) -> OperationResult:
        return self.account_service.withdraw(card_number, amount)

    def deposit(self, card_number: str, amount: Any) -> OperationResult:
        return self.account_service.deposit(card_number, amount)

    def transfer(self, from_card: str, to_card: str, amount: Any) -> OperationResult:
        return self.account_service.transfer(from_card, to_card, amount)

    def change_pin(
        self,
        card_number: str,
        current_pin: str,
        new_pin: str,
        confirm_pin: Optional[str] = None
    ) -> OperationResult:
        return self.account_service.change_pin(card_number, current_pin, new_pin, confirm_pin)

    def balance_inquiry(self, card_number: str) -> OperationResult:
        return self.account_service.balance_inquiry(card_number)

    def validate_target_account(self, target_card: str) -> OperationResult:
        return self.account_service.validate_target_account(target_card)

    def get_account(self, card_number: str) -> Optional[Account]:
        return self.account_service.get_account(card_number)

    def get_balance(self, card_number: str) -> Decimal:
        return self.account_service.get_balance(card_number)

    def get_holder_name(self, card_number: str) -> str:
        return self.account_service.get_holder_name(card_number)

    def get_withdraw_limit(self, card_number: str) -> Decimal:
        return self.account_service.get_withdraw_limit(card_number)

    def is_account_locked(self, card_number: str) -> bool:
        return self.account_service.is_account_locked(card_number)

    def get_transactions(self, card_number: str) -> List[Transaction]:
        return self.account_service.get_transactions(card_number)

    def get_recent_transactions(self, card_number: str, count: int = 5) -> List[Transaction]:
        return self.account_service.get_recent_transactions(card_number, count)

    # Administration

    def admin_login(self, card_number: str, pin: str) -> LoginResult:
        return self.admin_service.admin_login(card_number, pin)

    def create_account(
        self,
        admin_card: str,
        card_number: str,
        pin: str,
        holder_name: str,
        balance: Any,
        withdraw_limit: Any,
        is_admin: bool = False
    ) -> OperationResult:
        return self.admin_service.create_account(
            admin_card, card_number, pin, holder_name, balance, withdraw_limit, is_admin
        )

    def update_account(
        self,
        admin_card: str,
        card_number: str,
        holder_name: str,
        balance: Any,
        withdraw_limit: Any,
        is_locked: bool = False
    ) -> OperationResult:
        return self.admin_service.update_account(
            admin_card, card_number, holder_name, balance, withdraw_limit, is_locked
        )

    def delete_account(self, admin_card: str, card_number: str) -> OperationResult:
        return self.admin_service.delete_account(admin_card, card_number)

    def set_account_lock_status(self, admin_card: str, card_number: str, locked: bool) -> OperationResult:
        return self.admin_service.set_account_lock_status(admin_card, card_number, locked)

    def reset_pin(self, admin_card: str, card_number: str, new_pin: str) -> OperationResult:
        return self.admin_service.reset_pin(admin_card, card_number, new_pin)

    def set_withdraw_limit(self, admin_card: str, card_number: str, limit: Any) -> OperationResult:
        return self.admin_service.set_withdraw_limit(admin_card, card_number, limit)

    def get_all_accounts(self, admin_card: str) -> OperationResult:
        return self.admin_service.get_all_accounts(admin_card)

    # Analytics

    def predict_balance(
        self,
        card_number: str,
        days_ahead: int = 7,
        mode: Optional[ForecastMode] = None
    ) -> Decimal:
        return self.analytics_service.predict_balance(card_number, days_ahead, mode)

    def calculate_predicted_balance(self, card_number: str, days_ahead: int) -> OperationResult:
        return self.analytics_service.calculate_predicted_balance(card_number, days_ahead)

    def get_account_trend(self, card_number: str, days: int = 30) -> OperationResult:
        return self.analytics_service.get_account_trend(card_number, days)

    def get_transaction_frequency(self, card_number: str, days: int = 30) -> Decimal:
        return self.analytics_service.get_transaction_frequency(card_number, days)

    def get_balance_history(self, card_number: str) -> OperationResult:
        return self.analytics_service.get_balance_history(card_number)
