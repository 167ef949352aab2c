"""
Account Repository Module

CRUD over Account entities. The store-backed implementation keeps the full
account index in memory as the source of truth for reads and writes the
whole snapshot through to its document store on every mutation.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .accounts import Account, MAX_FAILED_ATTEMPTS, TEMPORARY_LOCK_MINUTES
from .config import SeedAccount
from .errors import NotFoundError, PersistenceError, ValidationError
from .logging_config import get_logger
from .results import OperationResult
from .storage import DocumentStore


class AccountRepository(ABC):
    """Abstract interface for account persistence"""

    @abstractmethod
    def find_by_card_number(self, card_number: str) -> Optional[Account]:
        """Return a copy of the stored account, or None"""
        pass

    @abstractmethod
    def save_account(self, account: Account) -> OperationResult:
        """Insert or replace an account and persist"""
        pass

    @abstractmethod
    def delete_account(self, card_number: str) -> OperationResult:
        pass

    @abstractmethod
    def get_all_accounts(self) -> List[Account]:
        pass

    @abstractmethod
    def account_exists(self, card_number: str) -> bool:
        pass

    @abstractmethod
    def load_all(self) -> bool:
        """Reload from backing storage; False when nothing was stored"""
        pass

    @abstractmethod
    def save_all(self) -> bool:
        pass

    def count_admins(self) -> int:
        return sum(1 for account in self.get_all_accounts() if account.is_admin)


class StoreAccountRepository(AccountRepository):
    """
    Account repository over a DocumentStore

    On first run (no stored document) the configured seed accounts are
    written. A failed write restores the in-memory index to its pre-call
    state, so the index never diverges from what is on disk.
    """

    def __init__(
        self,
        store: DocumentStore,
        document_name: str = "accounts",
        seed_accounts: Optional[Iterable[SeedAccount]] = None,
        max_failed_attempts: int = MAX_FAILED_ATTEMPTS,
        temporary_lock_minutes: int = TEMPORARY_LOCK_MINUTES
    ):
        self.store = store
        self.document_name = document_name
        self.seed_accounts = list(seed_accounts or [])
        self.max_failed_attempts = max_failed_attempts
        self.temporary_lock_minutes = temporary_lock_minutes
        self.logger = get_logger("card_ledger.repository")
        self._accounts: Dict[str, Account] = {}

        if not self.load_all():
            self.logger.info("No account store found, seeding demonstration accounts")
            self._seed(self.seed_accounts)
            self._persist()

    # Queries

    def find_by_card_number(self, card_number: str) -> Optional[Account]:
        account = self._accounts.get(card_number)
        return account.copy() if account else None

    def get_all_accounts(self) -> List[Account]:
        return [account.copy() for account in self._accounts.values()]

    def account_exists(self, card_number: str) -> bool:
        return card_number in self._accounts

    # Mutations

    def save_account(self, account: Account) -> OperationResult:
        if not account.is_valid():
            return OperationResult.fail(ValidationError("Invalid account data"))

        previous = self._accounts.get(account.card_number)
        self._accounts[account.card_number] = self._apply_policy(account.copy())

        try:
            self._persist()
        except PersistenceError as e:
            if previous is None:
                del self._accounts[account.card_number]
            else:
                self._accounts[account.card_number] = previous
            self.logger.error(f"Failed to save account {account.card_number}: {e}")
            return OperationResult.fail(e)

        return OperationResult.ok()

    def delete_account(self, card_number: str) -> OperationResult:
        if card_number not in self._accounts:
            return OperationResult.fail(NotFoundError("Account does not exist"))

        previous = self._accounts.pop(card_number)
        try:
            self._persist()
        except PersistenceError as e:
            self._accounts[card_number] = previous
            self.logger.error(f"Failed to delete account {card_number}: {e}")
            return OperationResult.fail(e)

        return OperationResult.ok()

    def load_all(self) -> bool:
        records = self.store.read(self.document_name)
        if records is None:
            return False

        accounts: Dict[str, Account] = {}
        migrated = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                account = self._apply_policy(Account.from_dict(record))
            except (LookupError, TypeError, ValueError, ArithmeticError) as e:
                raise PersistenceError(f"Malformed record in {self.document_name}: {e!r}") from e
            if "pin" in record:
                migrated += 1
            accounts[account.card_number] = account

        self._accounts = accounts
        dirty = migrated > 0

        if not any(a.is_admin for a in accounts.values()):
            admins = [seed for seed in self.seed_accounts if seed.is_admin]
            self.logger.warning(f"No admin account in store, restoring {len(admins)} seed admin(s)")
            self._seed(admins)
            dirty = dirty or bool(admins)

        if dirty:
            if migrated:
                self.logger.info(f"Migrated {migrated} plaintext PIN record(s) to hashed form")
            self._persist()

        self.logger.info(f"Loaded {len(self._accounts)} accounts")
        return True

    def save_all(self) -> bool:
        try:
            self._persist()
        except PersistenceError as e:
            self.logger.error(f"Failed to save accounts: {e}")
            return False
        return True

    # Internals

    def _persist(self) -> None:
        self.store.write(self.document_name, [a.to_dict() for a in self._accounts.values()])

    def _apply_policy(self, account: Account) -> Account:
        account.max_failed_attempts = self.max_failed_attempts
        account.temporary_lock_minutes = self.temporary_lock_minutes
        return account

    def _seed(self, seeds: Iterable[SeedAccount]) -> None:
        for seed in seeds:
            if seed.card_number in self._accounts:
                continue
            account = Account.create(
                card_number=seed.card_number,
                pin=seed.pin,
                holder_name=seed.holder_name,
                balance=seed.balance,
                withdraw_limit=seed.withdraw_limit,
                is_locked=seed.is_locked,
                is_admin=seed.is_admin,
            )
            self._accounts[account.card_number] = self._apply_policy(account)
