"""
Test suite for the Account entity

Tests format checks, PIN hashing, the failed-login lockout state machine
and serialization, including migration of legacy plaintext-PIN records.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from card_ledger.accounts import Account, to_amount


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def account():
    return Account.create(
        card_number="1111222233334444",
        pin="1234",
        holder_name="Alice",
        balance=Decimal("5000.00"),
        withdraw_limit=Decimal("2000.00")
    )


class TestFormatChecks:
    """Test card number and PIN format rules"""

    @pytest.mark.parametrize("card", ["1111222233334444", "0000000000000000"])
    def test_valid_card_numbers(self, card):
        assert Account.is_valid_card_number(card)

    @pytest.mark.parametrize("card", ["", None, "111122223333444", "11112222333344445", "1111-2222-3333-44", "abcdabcdabcdabcd"])
    def test_invalid_card_numbers(self, card):
        assert not Account.is_valid_card_number(card)

    def test_non_ascii_digits_rejected(self):
        """Test that unicode digits do not pass as card digits"""
        assert not Account.is_valid_card_number("١١١١٢٢٢٢٣٣٣٣٤٤٤٤")

    @pytest.mark.parametrize("pin", ["1234", "12345", "123456"])
    def test_valid_pins(self, pin):
        assert Account.is_valid_pin(pin)

    @pytest.mark.parametrize("pin", ["", None, "123", "1234567", "12a4"])
    def test_invalid_pins(self, pin):
        assert not Account.is_valid_pin(pin)

    def test_is_valid_requires_positive_limit(self, account):
        """Test account invariants"""
        assert account.is_valid()
        account.withdraw_limit = Decimal("0")
        assert not account.is_valid()

    def test_is_valid_rejects_negative_balance(self, account):
        account.balance = Decimal("-0.01")
        assert not account.is_valid()

    def test_is_valid_rejects_blank_name(self, account):
        account.holder_name = "   "
        assert not account.is_valid()


class TestPinSecurity:
    """Test salted PIN hashing"""

    def test_pin_is_not_stored_in_clear(self, account):
        assert account.pin_hash != "1234"
        assert "1234" not in account.to_dict().values()
        assert "pin" not in account.to_dict()

    def test_verify_pin(self, account):
        assert account.verify_pin("1234")
        assert not account.verify_pin("4321")
        assert not account.verify_pin(None)

    def test_set_pin_regenerates_salt(self, account):
        """Test that changing the PIN always produces a new salt"""
        old_salt = account.salt
        old_hash = account.pin_hash

        account.set_pin("1234")

        assert account.salt != old_salt
        assert account.pin_hash != old_hash
        assert account.verify_pin("1234")

    def test_hash_is_sha256_of_pin_and_salt(self, account):
        import hashlib
        expected = hashlib.sha256(("1234" + account.salt).encode()).hexdigest()
        assert account.pin_hash == expected


class TestLockout:
    """Test the failed-login state machine"""

    def test_two_failures_do_not_lock(self, account):
        assert not account.record_failed_login(NOW)
        assert not account.record_failed_login(NOW)
        assert account.failed_login_attempts == 2
        assert account.remaining_attempts == 1
        assert not account.is_temporarily_locked(NOW)

    def test_third_failure_locks_for_fifteen_minutes(self, account):
        account.record_failed_login(NOW)
        account.record_failed_login(NOW)
        assert account.record_failed_login(NOW)

        assert account.temporary_lock_until == NOW + timedelta(minutes=15)
        assert account.is_temporarily_locked(NOW + timedelta(minutes=14, seconds=59))
        assert not account.is_temporarily_locked(NOW + timedelta(minutes=15))
        assert not account.is_usable(NOW)

    def test_remaining_lock_minutes_rounds_up(self, account):
        for _ in range(3):
            account.record_failed_login(NOW)

        assert account.remaining_lock_minutes(NOW) == 15
        assert account.remaining_lock_minutes(NOW + timedelta(minutes=14, seconds=1)) == 1
        assert account.remaining_lock_minutes(NOW + timedelta(minutes=16)) == 0

    def test_failure_after_expired_lock_starts_new_round(self, account):
        """Test that an expired lock does not relock on the next single failure"""
        for _ in range(3):
            account.record_failed_login(NOW)

        later = NOW + timedelta(minutes=20)
        assert not account.record_failed_login(later)
        assert account.failed_login_attempts == 1
        assert account.is_usable(later)

    def test_reset_clears_state(self, account):
        for _ in range(3):
            account.record_failed_login(NOW)

        account.reset_failed_login_attempts()

        assert account.failed_login_attempts == 0
        assert account.last_failed_login_at is None
        assert account.temporary_lock_until is None
        assert account.is_usable(NOW)

    def test_permanent_lock_makes_account_unusable(self, account):
        account.is_locked = True
        assert not account.is_usable(NOW)

    def test_configured_threshold(self, account):
        account.max_failed_attempts = 5
        for _ in range(4):
            assert not account.record_failed_login(NOW)
        assert account.record_failed_login(NOW)


class TestSerialization:
    """Test stored record format"""

    def test_round_trip_preserves_security_state(self, account):
        account.record_failed_login(NOW)
        data = account.to_dict()

        assert data["cardNumber"] == "1111222233334444"
        assert data["balance"] == "5000.00"
        assert data["failedLoginAttempts"] == 1

        restored = Account.from_dict(data)
        assert restored.balance == Decimal("5000.00")
        assert restored.last_failed_login_at == NOW
        assert restored.verify_pin("1234")

    def test_numeric_amounts_accepted_on_load(self):
        data = {
            "cardNumber": "1111222233334444", "pinHash": "abc", "salt": "def",
            "holderName": "Alice", "balance": 12.5, "withdrawLimit": 100,
        }
        restored = Account.from_dict(data)
        assert restored.balance == Decimal("12.5")
        assert restored.is_admin is False

    def test_legacy_plaintext_pin_is_migrated(self):
        legacy = {
            "cardNumber": "1111222233334444", "pin": "4321",
            "holderName": "Alice", "balance": "10.00", "withdrawLimit": "100.00",
        }
        assert Account.needs_migration(legacy)

        restored = Account.from_dict(legacy)

        assert restored.verify_pin("4321")
        assert "pin" not in restored.to_dict()

    def test_copy_is_independent(self, account):
        clone = account.copy()
        clone.balance = Decimal("1")
        assert account.balance == Decimal("5000.00")


def test_to_amount_avoids_float_artifacts():
    assert to_amount(0.1) == Decimal("0.1")
    assert to_amount("2.50") == Decimal("2.50")
