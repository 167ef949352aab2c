"""
Administration Module

Privileged account lifecycle operations. Every operation first checks that
the acting card is a usable administrator account, then runs its own
validation chain, commits through the repository and finally writes the
audit entries to the ledger.
"""

from enum import Enum
from typing import Any, List, Optional

from .accounts import Account
from .errors import PersistenceError
from .events import EventDispatcher, LedgerEvent
from .ledger import TransactionLedger, TransactionType
from .logging_config import get_logger, log_action
from .repository import AccountRepository
from .results import LoginResult, OperationResult
from .validation import AccountValidator, parse_amount


class AdminOperation(Enum):
    """Administrative operations and their audit labels"""
    LOGIN = "Admin login"
    LOGOUT = "Admin logout"
    PIN_CHANGE = "PIN change"
    CREATE_ACCOUNT = "Create account"
    UPDATE_ACCOUNT = "Update account"
    DELETE_ACCOUNT = "Delete account"
    LOCK_ACCOUNT = "Lock account"
    UNLOCK_ACCOUNT = "Unlock account"
    RESET_PIN = "Reset security info"
    SET_WITHDRAW_LIMIT = "Set withdrawal limit"


# Session and credential operations never enter the audit trail
UNAUDITED_OPERATIONS = frozenset({
    AdminOperation.LOGIN,
    AdminOperation.LOGOUT,
    AdminOperation.PIN_CHANGE,
})


class AdminService:
    """Administrator operations over the account repository"""

    def __init__(
        self,
        repository: AccountRepository,
        validator: AccountValidator,
        ledger: Optional[TransactionLedger] = None,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.repository = repository
        self.validator = validator
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.logger = get_logger("card_ledger.admin")

    def admin_login(self, card_number: str, pin: str) -> LoginResult:
        result = self.validator.validate_admin_login(card_number, pin)
        if not result.success:
            log_action(
                self.logger, "warning", f"Admin login failed: {result.error_message}",
                card_number=card_number, action="admin_login_failed"
            )
            self._publish(LedgerEvent.LOGIN_FAILED, card_number, reason=result.error_message)
            return LoginResult.from_failure(result)

        account = self.repository.find_by_card_number(card_number)
        log_action(self.logger, "info", "Admin login succeeded",
                   card_number=card_number, action="admin_login")
        self._publish(LedgerEvent.LOGIN_SUCCEEDED, card_number, is_admin=True)

        return LoginResult.logged_in(
            is_admin=True,
            holder_name=account.holder_name,
            balance=account.balance,
            withdraw_limit=account.withdraw_limit
        )

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
        """Create a new, unlocked account"""
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_create_account(
            card_number, pin, holder_name, balance, withdraw_limit
        )
        if not result.success:
            return result

        account = Account.create(
            card_number=card_number,
            pin=pin,
            holder_name=holder_name.strip(),
            balance=parse_amount(balance),
            withdraw_limit=parse_amount(withdraw_limit),
            is_locked=False,
            is_admin=is_admin
        )
        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        audited = self._log_admin_operation(
            admin_card, AdminOperation.CREATE_ACCOUNT, card_number,
            f"card {card_number}, holder {account.holder_name}"
        )
        self._publish(LedgerEvent.ACCOUNT_CREATED, card_number,
                      admin_card=admin_card, is_admin=is_admin)
        return OperationResult.ok(card_number=card_number, audit_recorded=audited)

    def update_account(
        self,
        admin_card: str,
        card_number: str,
        holder_name: str,
        balance: Any,
        withdraw_limit: Any,
        is_locked: bool = False
    ) -> OperationResult:
        """
        Update holder name, balance, limit and lock flag.

        The PIN and the admin flag are never changed here. Unlocking a
        locked account also clears its failed-login state.
        """
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_update_account(
            card_number, holder_name, balance, withdraw_limit, is_locked
        )
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        was_blocked = not account.is_usable(self.validator.clock())

        account.holder_name = holder_name.strip()
        account.balance = parse_amount(balance)
        account.withdraw_limit = parse_amount(withdraw_limit)
        account.is_locked = is_locked
        if not is_locked and was_blocked:
            account.reset_failed_login_attempts()

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        audited = self._log_admin_operation(
            admin_card, AdminOperation.UPDATE_ACCOUNT, card_number,
            f"card {card_number}, holder {account.holder_name}, balance {account.balance}"
        )
        self._publish(LedgerEvent.ACCOUNT_UPDATED, card_number, admin_card=admin_card)
        return OperationResult.ok(audit_recorded=audited)

    def delete_account(self, admin_card: str, card_number: str) -> OperationResult:
        """Delete an account and purge its transaction history"""
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_delete_account(card_number)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        deleted = self.repository.delete_account(card_number)
        if not deleted.success:
            return deleted

        purged = 0
        if self.ledger is not None:
            try:
                purged = self.ledger.clear_transactions_for_card(card_number)
            except PersistenceError as e:
                log_action(
                    self.logger, "error",
                    f"History purge failed, restoring account: {e.message}",
                    card_number=card_number, action="purge_failed"
                )
                restored = self.repository.save_account(account)
                if not restored.success:
                    log_action(
                        self.logger, "critical",
                        f"Account could not be restored after failed purge: {restored.error_message}",
                        card_number=card_number, action="restore_failed"
                    )
                return OperationResult.fail(e)

        audited = self._log_admin_operation(
            admin_card, AdminOperation.DELETE_ACCOUNT, card_number,
            f"card {card_number}, holder {account.holder_name}"
        )
        self._publish(LedgerEvent.ACCOUNT_DELETED, card_number, admin_card=admin_card)
        return OperationResult.ok(purged_transactions=purged, audit_recorded=audited)

    def set_account_lock_status(self, admin_card: str, card_number: str, locked: bool) -> OperationResult:
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_lock_change(card_number, locked)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        account.is_locked = locked
        if not locked:
            account.reset_failed_login_attempts()

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        operation = AdminOperation.LOCK_ACCOUNT if locked else AdminOperation.UNLOCK_ACCOUNT
        audited = self._log_admin_operation(
            admin_card, operation, card_number,
            f"card {card_number}, holder {account.holder_name}"
        )
        self._publish(LedgerEvent.LOCK_STATUS_CHANGED, card_number,
                      admin_card=admin_card, locked=locked)
        return OperationResult.ok(audit_recorded=audited)

    def reset_pin(self, admin_card: str, card_number: str, new_pin: str) -> OperationResult:
        """Set a new PIN and clear any lockout state"""
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_reset_pin(card_number, new_pin)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        account.set_pin(new_pin)
        account.reset_failed_login_attempts()

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        audited = self._log_admin_operation(
            admin_card, AdminOperation.RESET_PIN, card_number,
            f"card {card_number}, holder {account.holder_name}"
        )
        self._publish(LedgerEvent.PIN_CHANGED, card_number, admin_card=admin_card)
        return OperationResult.ok(audit_recorded=audited)

    def set_withdraw_limit(self, admin_card: str, card_number: str, limit: Any) -> OperationResult:
        result = self._check_admin(admin_card)
        if not result.success:
            return result

        result = self.validator.validate_withdraw_limit_change(card_number, limit)
        if not result.success:
            return result

        account = self.repository.find_by_card_number(card_number)
        account.withdraw_limit = parse_amount(limit)

        saved = self.repository.save_account(account)
        if not saved.success:
            return saved

        audited = self._log_admin_operation(
            admin_card, AdminOperation.SET_WITHDRAW_LIMIT, card_number,
            f"card {card_number}, new limit {account.withdraw_limit}"
        )
        self._publish(LedgerEvent.ACCOUNT_UPDATED, card_number, admin_card=admin_card)
        return OperationResult.ok(audit_recorded=audited)

    def get_all_accounts(self, admin_card: str) -> OperationResult:
        """All accounts, in the ``accounts`` payload entry"""
        result = self._check_admin(admin_card)
        if not result.success:
            return result
        return OperationResult.ok(accounts=self.repository.get_all_accounts())

    def check_admin_permission(self, admin_card: str) -> OperationResult:
        return self._check_admin(admin_card)

    def _check_admin(self, admin_card: str) -> OperationResult:
        result = self.validator.validate_admin_operation(admin_card)
        if not result.success:
            log_action(
                self.logger, "warning", f"Admin operation refused: {result.error_message}",
                card_number=admin_card, action="permission_denied"
            )
        return result

    def _log_admin_operation(
        self,
        admin_card: str,
        operation: AdminOperation,
        target_card: str,
        details: str = ""
    ) -> bool:
        """
        Write the audit entries for a committed operation.

        One entry goes on the admin's own card (counterparty = target) and
        one on the target card (counterparty = admin), skipping cards that
        no longer exist. Returns False if the ledger write failed; the
        operation itself stays committed.
        """
        log_action(
            self.logger, "info", operation.value,
            card_number=admin_card, action=operation.name.lower(),
            resource=f"account:{target_card}"
        )

        if operation in UNAUDITED_OPERATIONS or self.ledger is None:
            return True

        description = operation.value
        if details:
            description += f": {details}"

        entries: List[tuple] = [(admin_card, description, target_card)]
        if target_card and target_card != admin_card:
            entries.append((target_card, f"Administrator action: {description}", admin_card))

        for card_number, text, counterparty in entries:
            account = self.repository.find_by_card_number(card_number)
            if account is None:
                if card_number == admin_card:
                    # Self-deletion leaves no card to hold the entry
                    log_action(
                        self.logger, "warning", "Audit entry not recorded: admin card no longer exists",
                        card_number=card_number, action="audit_skipped",
                        extra={"operation": operation.name}
                    )
                    return False
                continue
            try:
                self.ledger.record_transaction(
                    card_number, TransactionType.OTHER, 0, account.balance, text, counterparty
                )
            except PersistenceError as e:
                log_action(
                    self.logger, "error", f"Audit entry not recorded: {e.message}",
                    card_number=card_number, action="audit_failed",
                    extra={"operation": operation.name}
                )
                return False
        return True

    def _publish(self, event_type: LedgerEvent, card_number: str, **data: Any) -> None:
        if self.dispatcher is not None:
            self.dispatcher.emit(event_type, card_number, **data)
