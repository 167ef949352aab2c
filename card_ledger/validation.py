"""
Validation Engine Module

Every account operation is checked by an ordered chain of rules before any
mutation happens. A rule is a zero-argument callable returning an
OperationResult; ``run_chain`` returns the first failure, or success when
all rules pass. The standard rules below are shared by every chain so a
given check means the same thing wherever it is applied.

The credential chain is the one deliberate exception to "validate, don't
mutate": a PIN mismatch increments the account's failure counter and
persists it before the failure is returned.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

from .accounts import Account, to_amount
from .errors import (
    InsufficientFundsError,
    InvariantViolation,
    LimitExceededError,
    LockedAccountError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .logging_config import get_logger, log_action
from .repository import AccountRepository
from .results import OperationResult

Rule = Callable[[], OperationResult]

DEFAULT_MAX_SINGLE_DEPOSIT = Decimal("1000000.00")
DEFAULT_MAX_SINGLE_TRANSFER = Decimal("1000000.00")


def run_chain(rules: Iterable[Rule]) -> OperationResult:
    """Evaluate rules in order and stop at the first failure"""
    for rule in rules:
        result = rule()
        if not result.success:
            return result
    return OperationResult.ok()


def parse_amount(value: Any) -> Decimal:
    """Convert an amount to a finite Decimal or raise ValidationError"""
    try:
        amount = to_amount(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def _fail(error) -> OperationResult:
    return OperationResult.fail(error)


def _has_sub_cent(value: Decimal) -> bool:
    return value.normalize().as_tuple().exponent < -2


class AccountValidator:
    """Validation chains for account, transfer and admin operations"""

    def __init__(
        self,
        repository: AccountRepository,
        clock: Optional[Callable[[], datetime]] = None,
        max_single_deposit: Decimal = DEFAULT_MAX_SINGLE_DEPOSIT,
        max_single_transfer: Decimal = DEFAULT_MAX_SINGLE_TRANSFER
    ):
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_single_deposit = max_single_deposit
        self.max_single_transfer = max_single_transfer
        self.logger = get_logger("card_ledger.validation")

    # Standard rules

    def check_required(self, value: Optional[str], message: str) -> OperationResult:
        if not value:
            return _fail(ValidationError(message))
        return OperationResult.ok()

    def check_card_format(self, card_number: str) -> OperationResult:
        if not Account.is_valid_card_number(card_number):
            return _fail(ValidationError("Invalid card number format, must be 16 digits"))
        return OperationResult.ok()

    def check_pin_format(self, pin: str, label: str = "PIN") -> OperationResult:
        if not Account.is_valid_pin(pin):
            return _fail(ValidationError(f"Invalid {label} format, must be 4-6 digits"))
        return OperationResult.ok()

    def check_account_exists(self, card_number: str, label: str = "Account") -> OperationResult:
        if not card_number:
            return _fail(ValidationError("Card number must not be empty"))
        if not self.repository.account_exists(card_number):
            return _fail(NotFoundError(f"{label} does not exist"))
        return OperationResult.ok()

    def check_account_not_locked(self, card_number: str, label: str = "Account") -> OperationResult:
        """Fails on a permanent lock or a running temporary lock"""
        existence = self.check_account_exists(card_number, label)
        if not existence.success:
            return existence

        account = self.repository.find_by_card_number(card_number)
        if account.is_locked:
            return _fail(LockedAccountError(f"{label} is locked"))

        now = self.clock()
        if account.is_temporarily_locked(now):
            return _fail(self._temporary_lock_error(account, now))

        return OperationResult.ok()

    def check_amount_positive(self, amount: Any, label: str = "Amount") -> OperationResult:
        try:
            value = parse_amount(amount)
        except ValidationError as e:
            return _fail(e)
        if value <= 0:
            return _fail(ValidationError(f"{label} must be positive"))
        if _has_sub_cent(value):
            return _fail(ValidationError(f"{label} cannot have more than two decimal places"))
        return OperationResult.ok()

    def check_amount_within_max(self, amount: Any, maximum: Decimal, label: str) -> OperationResult:
        if parse_amount(amount) > maximum:
            return _fail(LimitExceededError(f"A single {label} cannot exceed {maximum}"))
        return OperationResult.ok()

    def check_sufficient_balance(self, card_number: str, amount: Any) -> OperationResult:
        existence = self.check_account_exists(card_number)
        if not existence.success:
            return existence

        account = self.repository.find_by_card_number(card_number)
        if parse_amount(amount) > account.balance:
            return _fail(InsufficientFundsError("Insufficient balance"))
        return OperationResult.ok()

    def check_within_withdraw_limit(self, card_number: str, amount: Any) -> OperationResult:
        existence = self.check_account_exists(card_number)
        if not existence.success:
            return existence

        account = self.repository.find_by_card_number(card_number)
        if parse_amount(amount) > account.withdraw_limit:
            return _fail(LimitExceededError(
                f"Amount exceeds the single withdrawal limit of {account.withdraw_limit}"
            ))
        return OperationResult.ok()

    def check_holder_name(self, holder_name: Optional[str]) -> OperationResult:
        if not holder_name or not holder_name.strip():
            return _fail(ValidationError("Holder name must not be empty"))
        return OperationResult.ok()

    def check_non_negative_balance(self, balance: Any) -> OperationResult:
        try:
            value = parse_amount(balance)
        except ValidationError as e:
            return _fail(e)
        if value < 0:
            return _fail(ValidationError("Balance must not be negative"))
        if _has_sub_cent(value):
            return _fail(ValidationError("Balance cannot have more than two decimal places"))
        return OperationResult.ok()

    def check_positive_limit(self, withdraw_limit: Any) -> OperationResult:
        return self.check_amount_positive(withdraw_limit, "Withdrawal limit")

    def check_card_available(self, card_number: str) -> OperationResult:
        if self.repository.account_exists(card_number):
            return _fail(ValidationError("Card number already exists"))
        return OperationResult.ok()

    def check_distinct_cards(self, from_card: str, to_card: str) -> OperationResult:
        if from_card == to_card:
            return _fail(ValidationError("Source and target card numbers must differ"))
        return OperationResult.ok()

    def check_not_admin_lock(self, card_number: str, locked: bool) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if locked and account is not None and account.is_admin:
            return _fail(InvariantViolation("Administrator accounts cannot be locked"))
        return OperationResult.ok()

    def check_not_last_admin(self, card_number: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if account is not None and account.is_admin and self.repository.count_admins() <= 1:
            return _fail(InvariantViolation("Cannot delete the last administrator account"))
        return OperationResult.ok()

    def check_pin_matches(self, card_number: str, pin: str) -> OperationResult:
        """
        Compare the PIN and update the failure counter.

        A mismatch is recorded and persisted before failing; a match clears
        any earlier failures.
        """
        account = self.repository.find_by_card_number(card_number)
        now = self.clock()

        if not account.verify_pin(pin):
            locked_now = account.record_failed_login(now)
            saved = self.repository.save_account(account)
            if not saved.success:
                return saved

            log_action(
                self.logger, "warning", "PIN verification failed",
                card_number=card_number, action="login_failed",
                extra={"failed_attempts": account.failed_login_attempts, "locked": locked_now}
            )

            if locked_now:
                return _fail(LockedAccountError(
                    "Incorrect PIN; the account is temporarily locked after repeated failures, "
                    f"try again in {account.temporary_lock_minutes} minutes",
                    remaining_minutes=account.remaining_lock_minutes(now)
                ))
            return _fail(ValidationError(
                f"Invalid card number or PIN, {account.remaining_attempts} attempt(s) remaining"
            ))

        if account.failed_login_attempts > 0:
            account.reset_failed_login_attempts()
            saved = self.repository.save_account(account)
            if not saved.success:
                return saved

        return OperationResult.ok()

    # Chains

    def validate_credentials(self, card_number: str, pin: str) -> OperationResult:
        """Login credential chain, including the lockout policy"""
        return run_chain([
            lambda: self.check_required(card_number, "Please enter a card number"),
            lambda: self.check_required(pin, "Please enter a PIN"),
            lambda: self.check_card_format(card_number),
            lambda: self._check_known_card(card_number),
            lambda: self._check_not_permanently_locked(card_number),
            lambda: self._check_not_temporarily_locked(card_number),
            lambda: self.check_pin_matches(card_number, pin),
        ])

    def validate_admin_login(self, card_number: str, pin: str) -> OperationResult:
        return run_chain([
            lambda: self.validate_credentials(card_number, pin),
            lambda: self._check_is_admin(card_number),
        ])

    def validate_withdrawal(self, card_number: str, amount: Any) -> OperationResult:
        return run_chain([
            lambda: self.check_required(card_number, "Please log in first"),
            lambda: self.check_amount_positive(amount, "Withdrawal amount"),
            lambda: self.check_account_exists(card_number),
            lambda: self.check_account_not_locked(card_number),
            lambda: self.check_within_withdraw_limit(card_number, amount),
            lambda: self.check_sufficient_balance(card_number, amount),
        ])

    def validate_deposit(self, card_number: str, amount: Any) -> OperationResult:
        return run_chain([
            lambda: self.check_required(card_number, "Please log in first"),
            lambda: self.check_amount_positive(amount, "Deposit amount"),
            lambda: self.check_account_exists(card_number),
            lambda: self.check_account_not_locked(card_number),
            lambda: self.check_amount_within_max(amount, self.max_single_deposit, "deposit"),
        ])

    def validate_transfer(self, from_card: str, to_card: str, amount: Any) -> OperationResult:
        return run_chain([
            lambda: self.check_required(from_card, "Please log in first"),
            lambda: self.check_required(to_card, "Please enter the target card number"),
            lambda: self.check_amount_positive(amount, "Transfer amount"),
            lambda: self.check_distinct_cards(from_card, to_card),
            lambda: self.check_account_exists(from_card),
            lambda: self.check_account_not_locked(from_card),
            lambda: self.check_card_format(to_card),
            lambda: self.check_account_exists(to_card, "Target account"),
            lambda: self.check_account_not_locked(to_card, "Target account"),
            lambda: self.check_sufficient_balance(from_card, amount),
            lambda: self.check_amount_within_max(amount, self.max_single_transfer, "transfer"),
        ])

    def validate_account_exists(self, card_number: str) -> OperationResult:
        return run_chain([
            lambda: self.check_required(card_number, "Card number must not be empty"),
            lambda: self.check_account_exists(card_number),
        ])

    def validate_target_account(self, target_card: str) -> OperationResult:
        return run_chain([
            lambda: self.check_required(target_card, "Target card number must not be empty"),
            lambda: self.check_card_format(target_card),
            lambda: self.check_account_exists(target_card, "Target account"),
            lambda: self.check_account_not_locked(target_card, "Target account"),
        ])

    def validate_pin_change(
        self,
        card_number: str,
        current_pin: str,
        new_pin: str,
        confirm_pin: Optional[str] = None
    ) -> OperationResult:
        return run_chain([
            lambda: self.validate_credentials(card_number, current_pin),
            lambda: self.check_pin_format(new_pin, "new PIN"),
            lambda: self._check_confirmation(new_pin, confirm_pin),
            lambda: self._check_pin_differs(card_number, new_pin),
        ])

    def validate_admin_operation(self, admin_card: str) -> OperationResult:
        """Acting card must exist, be an admin and be usable"""
        return run_chain([
            lambda: (_fail(PermissionDeniedError("Administrator card number must not be empty"))
                     if not admin_card else OperationResult.ok()),
            lambda: (_fail(PermissionDeniedError("Administrator account does not exist"))
                     if not self.repository.account_exists(admin_card) else OperationResult.ok()),
            lambda: self._check_is_admin(admin_card),
            lambda: self._check_admin_usable(admin_card),
        ])

    def validate_create_account(
        self,
        card_number: str,
        pin: str,
        holder_name: str,
        balance: Any,
        withdraw_limit: Any
    ) -> OperationResult:
        return run_chain([
            lambda: self.check_card_format(card_number),
            lambda: self.check_card_available(card_number),
            lambda: self.check_pin_format(pin),
            lambda: self.check_holder_name(holder_name),
            lambda: self.check_non_negative_balance(balance),
            lambda: self.check_positive_limit(withdraw_limit),
        ])

    def validate_update_account(
        self,
        card_number: str,
        holder_name: str,
        balance: Any,
        withdraw_limit: Any,
        is_locked: bool = False
    ) -> OperationResult:
        return run_chain([
            lambda: self.check_account_exists(card_number),
            lambda: self.check_holder_name(holder_name),
            lambda: self.check_non_negative_balance(balance),
            lambda: self.check_positive_limit(withdraw_limit),
            lambda: self.check_not_admin_lock(card_number, is_locked),
        ])

    def validate_delete_account(self, card_number: str) -> OperationResult:
        return run_chain([
            lambda: self.check_account_exists(card_number),
            lambda: self.check_not_last_admin(card_number),
        ])

    def validate_lock_change(self, card_number: str, locked: bool) -> OperationResult:
        return run_chain([
            lambda: self.check_account_exists(card_number),
            lambda: self.check_not_admin_lock(card_number, locked),
        ])

    def validate_reset_pin(self, card_number: str, new_pin: str) -> OperationResult:
        return run_chain([
            lambda: self.check_pin_format(new_pin),
            lambda: self.check_account_exists(card_number),
        ])

    def validate_withdraw_limit_change(self, card_number: str, limit: Any) -> OperationResult:
        return run_chain([
            lambda: self.check_positive_limit(limit),
            lambda: self.check_account_exists(card_number),
        ])

    # Chain-specific rules

    def _check_known_card(self, card_number: str) -> OperationResult:
        # Same message as a wrong PIN so unknown cards cannot be probed
        if not self.repository.account_exists(card_number):
            return _fail(NotFoundError("Invalid card number or PIN"))
        return OperationResult.ok()

    def _check_not_permanently_locked(self, card_number: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if account.is_locked:
            return _fail(LockedAccountError("This account is locked, please contact an administrator"))
        return OperationResult.ok()

    def _check_not_temporarily_locked(self, card_number: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        now = self.clock()
        if account.is_temporarily_locked(now):
            return _fail(self._temporary_lock_error(account, now))
        return OperationResult.ok()

    def _check_is_admin(self, card_number: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if account is None or not account.is_admin:
            return _fail(PermissionDeniedError("This account has no administrative privileges"))
        return OperationResult.ok()

    def _check_admin_usable(self, card_number: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if not account.is_usable(self.clock()):
            return _fail(PermissionDeniedError("Administrator account is locked"))
        return OperationResult.ok()

    def _check_confirmation(self, new_pin: str, confirm_pin: Optional[str]) -> OperationResult:
        if confirm_pin is not None and new_pin != confirm_pin:
            return _fail(ValidationError("The new PIN entries do not match"))
        return OperationResult.ok()

    def _check_pin_differs(self, card_number: str, new_pin: str) -> OperationResult:
        account = self.repository.find_by_card_number(card_number)
        if account is None:
            return _fail(NotFoundError("Account does not exist"))
        if account.verify_pin(new_pin):
            return _fail(ValidationError("The new PIN must differ from the current PIN"))
        return OperationResult.ok()

    @staticmethod
    def _temporary_lock_error(account: Account, now: datetime) -> LockedAccountError:
        minutes = account.remaining_lock_minutes(now)
        return LockedAccountError(
            "Account temporarily locked after repeated failed logins, "
            f"try again in {minutes} minute(s)",
            remaining_minutes=minutes
        )
