"""
Tests for the validation engine

Tests rule chaining, the standard rules, and the credential chain's
failure-counter side effects.
"""

import pytest
from decimal import Decimal

from card_ledger.errors import (
    InsufficientFundsError, InvariantViolation, LimitExceededError,
    LockedAccountError, NotFoundError, PermissionDeniedError, ValidationError
)
from card_ledger.results import OperationResult
from card_ledger.validation import parse_amount, run_chain

from conftest import ADMIN, C1, C2, C3


class TestRunChain:
    """Test short-circuit evaluation"""

    def test_empty_chain_succeeds(self):
        assert run_chain([]).success

    def test_stops_at_first_failure(self):
        calls = []

        def passing():
            calls.append("pass")
            return OperationResult.ok()

        def failing():
            calls.append("fail")
            return OperationResult.fail(ValidationError("first"))

        def never():
            calls.append("never")
            return OperationResult.fail(ValidationError("second"))

        result = run_chain([passing, failing, never])

        assert result.error_message == "first"
        assert calls == ["pass", "fail"]


class TestParseAmount:
    """Test amount coercion"""

    def test_accepts_numbers_and_strings(self):
        assert parse_amount("12.50") == Decimal("12.50")
        assert parse_amount(3) == Decimal("3")

    @pytest.mark.parametrize("value", ["abc", None, "NaN", "Infinity"])
    def test_rejects_garbage(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)


class TestCredentials:
    """Test the login credential chain"""

    def test_valid_credentials(self, validator):
        assert validator.validate_credentials(C1, "1111").success

    @pytest.mark.parametrize("card,pin", [("", "1111"), (C1, "")])
    def test_empty_inputs(self, validator, card, pin):
        result = validator.validate_credentials(card, pin)
        assert result.error_type is ValidationError

    def test_bad_card_format(self, validator):
        result = validator.validate_credentials("1234", "1111")
        assert result.error_type is ValidationError

    def test_unknown_card_uses_generic_message(self, validator):
        result = validator.validate_credentials("0000000000000000", "1111")
        assert result.error_type is NotFoundError
        assert result.error_message == "Invalid card number or PIN"

    def test_wrong_pin_counts_failure_and_persists(self, validator, repository, store):
        result = validator.validate_credentials(C1, "0000")

        assert not result.success
        assert "2 attempt(s) remaining" in result.error_message
        assert repository.find_by_card_number(C1).failed_login_attempts == 1
        stored = next(r for r in store.read("accounts") if r["cardNumber"] == C1)
        assert stored["failedLoginAttempts"] == 1

    def test_third_failure_reports_temporary_lock(self, validator):
        validator.validate_credentials(C1, "0000")
        validator.validate_credentials(C1, "0000")
        result = validator.validate_credentials(C1, "0000")

        assert result.error_type is LockedAccountError
        assert result.error.remaining_minutes == 15

    def test_success_resets_counter(self, validator, repository):
        validator.validate_credentials(C1, "0000")
        assert validator.validate_credentials(C1, "1111").success
        assert repository.find_by_card_number(C1).failed_login_attempts == 0

    def test_permanently_locked_account(self, validator, repository):
        account = repository.find_by_card_number(C3)
        account.is_locked = True
        repository.save_account(account)

        result = validator.validate_credentials(C3, "3333")

        assert result.error_type is LockedAccountError
        assert not result.error.is_temporary

    def test_admin_login_requires_admin(self, validator):
        assert validator.validate_admin_login(ADMIN, "8888").success
        result = validator.validate_admin_login(C1, "1111")
        assert result.error_type is PermissionDeniedError


class TestMoneyChains:
    """Test withdrawal, deposit and transfer chains"""

    def test_withdrawal_limit_checked_before_balance(self, validator):
        result = validator.validate_withdrawal(C3, "600")
        assert result.error_type is LimitExceededError

    def test_withdrawal_insufficient_funds(self, validator, repository):
        account = repository.find_by_card_number(C3)
        account.balance = Decimal("100")
        repository.save_account(account)

        result = validator.validate_withdrawal(C3, "200")

        assert result.error_type is InsufficientFundsError

    @pytest.mark.parametrize("amount", [0, "-5", "abc"])
    def test_withdrawal_amount_must_be_positive(self, validator, amount):
        result = validator.validate_withdrawal(C1, amount)
        assert result.error_type is ValidationError

    @pytest.mark.parametrize("amount", ["0.001", "10.005", Decimal("1.999")])
    def test_sub_cent_amounts_rejected(self, validator, amount):
        result = validator.validate_deposit(C1, amount)

        assert result.error_type is ValidationError
        assert "two decimal places" in result.error_message

    def test_trailing_zeros_are_not_sub_cent(self, validator):
        assert validator.validate_deposit(C1, "10.500").success
        assert validator.validate_transfer(C1, C2, "0.01").success

    def test_withdrawal_requires_login(self, validator):
        result = validator.validate_withdrawal("", "10")
        assert result.error_message == "Please log in first"

    def test_withdrawal_from_temporarily_locked_account(self, validator):
        for _ in range(3):
            validator.validate_credentials(C1, "0000")

        result = validator.validate_withdrawal(C1, "10")

        assert result.error_type is LockedAccountError
        assert "15 minute" in result.error_message

    def test_deposit_maximum(self, validator):
        assert validator.validate_deposit(C1, "1000000").success
        result = validator.validate_deposit(C1, "1000000.01")
        assert result.error_type is LimitExceededError

    def test_transfer_to_same_card(self, validator):
        result = validator.validate_transfer(C1, C1, "10")
        assert result.error_type is ValidationError

    def test_transfer_to_unknown_card(self, validator):
        result = validator.validate_transfer(C1, "0000000000000000", "10")
        assert result.error_type is NotFoundError
        assert result.error_message == "Target account does not exist"

    def test_transfer_to_locked_card(self, validator, repository):
        account = repository.find_by_card_number(C2)
        account.is_locked = True
        repository.save_account(account)

        result = validator.validate_transfer(C1, C2, "10")

        assert result.error_type is LockedAccountError

    def test_transfer_insufficient_funds(self, validator):
        result = validator.validate_transfer(C3, C1, "900")
        assert result.error_type is InsufficientFundsError

    def test_transfer_maximum(self, validator, repository):
        account = repository.find_by_card_number(C2)
        account.balance = Decimal("2000000")
        repository.save_account(account)

        result = validator.validate_transfer(C2, C1, "1500000")

        assert result.error_type is LimitExceededError

    def test_target_account_precheck(self, validator):
        assert validator.validate_target_account(C2).success
        assert validator.validate_target_account("12").error_type is ValidationError


class TestPinChange:
    """Test the PIN change chain"""

    def test_valid_change(self, validator):
        assert validator.validate_pin_change(C1, "1111", "5678", "5678").success

    def test_confirmation_mismatch(self, validator):
        result = validator.validate_pin_change(C1, "1111", "5678", "5679")
        assert result.error_type is ValidationError

    def test_new_pin_format(self, validator):
        result = validator.validate_pin_change(C1, "1111", "12", "12")
        assert result.error_type is ValidationError

    def test_new_pin_must_differ(self, validator):
        result = validator.validate_pin_change(C1, "1111", "1111", "1111")
        assert "differ" in result.error_message

    def test_wrong_current_pin_counts_as_failed_login(self, validator, repository):
        validator.validate_pin_change(C1, "0000", "5678", "5678")
        assert repository.find_by_card_number(C1).failed_login_attempts == 1


class TestAdminChains:
    """Test admin and lifecycle chains"""

    def test_admin_operation_checks(self, validator):
        assert validator.validate_admin_operation(ADMIN).success
        assert validator.validate_admin_operation(C1).error_type is PermissionDeniedError
        assert validator.validate_admin_operation("").error_type is PermissionDeniedError
        assert validator.validate_admin_operation("0000000000000000").error_type is PermissionDeniedError

    def test_temporarily_locked_admin_is_refused(self, validator):
        for _ in range(3):
            validator.validate_credentials(ADMIN, "0000")
        assert validator.validate_admin_operation(ADMIN).error_type is PermissionDeniedError

    def test_create_duplicate_card(self, validator):
        result = validator.validate_create_account(C1, "1234", "Eve", "0", "100")
        assert result.error_type is ValidationError
        assert result.error_message == "Card number already exists"

    @pytest.mark.parametrize("pin,name,balance,limit", [
        ("12", "Eve", "0", "100"),
        ("1234", " ", "0", "100"),
        ("1234", "Eve", "-1", "100"),
        ("1234", "Eve", "0", "0"),
    ])
    def test_create_field_rules(self, validator, pin, name, balance, limit):
        result = validator.validate_create_account("4444333322221111", pin, name, balance, limit)
        assert result.error_type is ValidationError

    def test_update_cannot_lock_admin(self, validator):
        result = validator.validate_update_account(ADMIN, "Administrator", "0", "1000", True)
        assert result.error_type is InvariantViolation

    def test_delete_last_admin(self, validator):
        assert validator.validate_delete_account(ADMIN).error_type is InvariantViolation
        assert validator.validate_delete_account(C1).success

    def test_reset_pin_and_limit_rules(self, validator):
        assert validator.validate_reset_pin(C1, "12").error_type is ValidationError
        assert validator.validate_reset_pin("0000000000000000", "1234").error_type is NotFoundError
        assert validator.validate_withdraw_limit_change(C1, "0").error_type is ValidationError
        assert validator.validate_withdraw_limit_change(C1, "500").success

    def test_account_exists(self, validator):
        assert validator.validate_account_exists(C1).success
        assert validator.validate_account_exists("0000000000000000").error_type is NotFoundError
