"""
Account Entity Module

The cardholder account record and its credential/lockout state machine.
PINs are only ever held as a salted SHA-256 digest. Methods here mutate
in-memory fields only; persisting changes is the caller's job.
"""

import hashlib
import hmac
import math
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

CARD_NUMBER_LENGTH = 16
PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6
MAX_FAILED_ATTEMPTS = 3
TEMPORARY_LOCK_MINUTES = 15


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_ascii_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_amount(value: Any) -> Decimal:
    """Coerce stored or user-supplied amounts to Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class Account:
    """
    Cardholder account with security state

    ``max_failed_attempts`` and ``temporary_lock_minutes`` are policy, not
    persisted state; the repository applies the configured values.
    """
    card_number: str
    pin_hash: str
    salt: str
    holder_name: str
    balance: Decimal
    withdraw_limit: Decimal
    is_locked: bool = False
    is_admin: bool = False
    failed_login_attempts: int = 0
    last_failed_login_at: Optional[datetime] = None
    temporary_lock_until: Optional[datetime] = None
    max_failed_attempts: int = MAX_FAILED_ATTEMPTS
    temporary_lock_minutes: int = TEMPORARY_LOCK_MINUTES

    def __post_init__(self):
        self.balance = to_amount(self.balance)
        self.withdraw_limit = to_amount(self.withdraw_limit)

    @classmethod
    def create(
        cls,
        card_number: str,
        pin: str,
        holder_name: str,
        balance: Decimal,
        withdraw_limit: Decimal,
        is_locked: bool = False,
        is_admin: bool = False
    ) -> 'Account':
        """Build a new account, hashing the PIN with a fresh salt"""
        account = cls(
            card_number=card_number,
            pin_hash="",
            salt="",
            holder_name=holder_name,
            balance=balance,
            withdraw_limit=withdraw_limit,
            is_locked=is_locked,
            is_admin=is_admin
        )
        account.set_pin(pin)
        return account

    # Format checks

    @staticmethod
    def is_valid_card_number(card_number: Optional[str]) -> bool:
        """Card numbers are exactly 16 digits"""
        return bool(card_number) and len(card_number) == CARD_NUMBER_LENGTH and _is_ascii_digits(card_number)

    @staticmethod
    def is_valid_pin(candidate: Optional[str]) -> bool:
        """PINs are 4 to 6 digits"""
        return (
            bool(candidate)
            and PIN_MIN_LENGTH <= len(candidate) <= PIN_MAX_LENGTH
            and _is_ascii_digits(candidate)
        )

    def has_valid_card_number(self) -> bool:
        return self.is_valid_card_number(self.card_number)

    def is_valid(self) -> bool:
        """Check the record satisfies the account invariants"""
        return (
            self.has_valid_card_number()
            and bool(self.pin_hash)
            and bool(self.salt)
            and bool(self.holder_name and self.holder_name.strip())
            and self.balance >= 0
            and self.withdraw_limit > 0
        )

    # Credentials

    @staticmethod
    def hash_pin(pin: str, salt: str) -> str:
        return hashlib.sha256((pin + salt).encode()).hexdigest()

    def set_pin(self, new_pin: str) -> None:
        """Replace the PIN; always regenerates the salt"""
        self.salt = secrets.token_hex(16)
        self.pin_hash = self.hash_pin(new_pin, self.salt)

    def verify_pin(self, candidate: str) -> bool:
        if not self.pin_hash or not self.salt or candidate is None:
            return False
        expected = self.hash_pin(candidate, self.salt)
        return hmac.compare_digest(expected, self.pin_hash)

    # Lockout state machine

    def record_failed_login(self, now: Optional[datetime] = None) -> bool:
        """
        Count a failed PIN attempt.

        Returns:
            True when this failure triggered the temporary lock
        """
        now = now or _utcnow()
        if self.temporary_lock_until is not None and now >= self.temporary_lock_until:
            # An expired lock starts a fresh round of attempts
            self.reset_failed_login_attempts()

        self.failed_login_attempts += 1
        self.last_failed_login_at = now

        if self.failed_login_attempts >= self.max_failed_attempts:
            self.temporary_lock_until = now + timedelta(minutes=self.temporary_lock_minutes)
            return True
        return False

    def reset_failed_login_attempts(self) -> None:
        self.failed_login_attempts = 0
        self.last_failed_login_at = None
        self.temporary_lock_until = None

    def is_temporarily_locked(self, now: Optional[datetime] = None) -> bool:
        if self.temporary_lock_until is None:
            return False
        return (now or _utcnow()) < self.temporary_lock_until

    def remaining_lock_minutes(self, now: Optional[datetime] = None) -> int:
        """Whole minutes left on the temporary lock, rounded up"""
        if not self.is_temporarily_locked(now):
            return 0
        remaining = (self.temporary_lock_until - (now or _utcnow())).total_seconds()
        return max(1, math.ceil(remaining / 60))

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_failed_attempts - self.failed_login_attempts)

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Usable only when neither permanently nor temporarily locked"""
        return not self.is_locked and not self.is_temporarily_locked(now)

    def copy(self) -> 'Account':
        return replace(self)

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored record; the PIN itself is never present"""
        return {
            "cardNumber": self.card_number,
            "pinHash": self.pin_hash,
            "salt": self.salt,
            "holderName": self.holder_name,
            "balance": str(self.balance),
            "withdrawLimit": str(self.withdraw_limit),
            "isLocked": self.is_locked,
            "isAdmin": self.is_admin,
            "failedLoginAttempts": self.failed_login_attempts,
            "lastFailedLoginAt": self.last_failed_login_at.isoformat() if self.last_failed_login_at else None,
            "temporaryLockUntil": self.temporary_lock_until.isoformat() if self.temporary_lock_until else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """
        Create an account from a stored record.

        Legacy records that carry a plaintext ``pin`` are re-hashed here;
        use ``needs_migration`` on the raw record to detect them.
        """
        account = cls(
            card_number=str(data.get("cardNumber", "")),
            pin_hash=data.get("pinHash") or "",
            salt=data.get("salt") or "",
            holder_name=data.get("holderName", ""),
            balance=to_amount(data.get("balance", "0")),
            withdraw_limit=to_amount(data.get("withdrawLimit", "0")),
            is_locked=bool(data.get("isLocked", False)),
            is_admin=bool(data.get("isAdmin", False)),
            failed_login_attempts=int(data.get("failedLoginAttempts") or 0),
            last_failed_login_at=_parse_datetime(data.get("lastFailedLoginAt")),
            temporary_lock_until=_parse_datetime(data.get("temporaryLockUntil")),
        )

        if cls.needs_migration(data):
            account.set_pin(str(data["pin"]))

        return account

    @staticmethod
    def needs_migration(data: Dict[str, Any]) -> bool:
        """True for legacy records holding a plaintext PIN"""
        return "pin" in data and not data.get("pinHash")
