"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Demonstration seed accounts are configuration, not constants in the repository.
"""

from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SeedAccount(BaseModel):
    """Account created on first run when no account store exists"""
    card_number: str
    pin: str
    holder_name: str
    balance: Decimal = Decimal("0.00")
    withdraw_limit: Decimal = Decimal("2000.00")
    is_locked: bool = False
    is_admin: bool = False


def _default_seed_accounts() -> List[SeedAccount]:
    return [
        SeedAccount(card_number="1234567890123456", pin="1234", holder_name="Zhang San",
                    balance=Decimal("50000.00"), withdraw_limit=Decimal("20000.00")),
        SeedAccount(card_number="2345678901234567", pin="2345", holder_name="Li Si",
                    balance=Decimal("100000.00"), withdraw_limit=Decimal("30000.00")),
        SeedAccount(card_number="3456789012345678", pin="3456", holder_name="Wang Wu",
                    balance=Decimal("75000.00"), withdraw_limit=Decimal("25000.00"),
                    is_locked=True),
        SeedAccount(card_number="9999888877776666", pin="8888", holder_name="Administrator",
                    balance=Decimal("500000.00"), withdraw_limit=Decimal("100000.00"),
                    is_admin=True),
    ]


class CardLedgerConfig(BaseSettings):
    """Card ledger engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="CARD_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    data_dir: Path = Path.home() / ".card_ledger"
    storage_backend: str = "json"  # json, sqlite or memory
    sqlite_path: Optional[Path] = None  # defaults to <data_dir>/card_ledger.db
    accounts_document: str = "accounts"
    transactions_document: str = "transactions"

    # Security configuration
    max_failed_attempts: int = 3
    temporary_lock_minutes: int = 15

    # Business rules configuration
    max_single_deposit: Decimal = Decimal("1000000.00")
    max_single_transfer: Decimal = Decimal("1000000.00")
    bank_label: str = "Card Ledger Bank"

    # Forecasting configuration
    forecast_mode: str = "weighted_average"  # weighted_average or linear_regression
    forecast_window_days: int = 90
    forecast_recency_decay: Decimal = Decimal("0.05")
    regression_min_points: int = 5

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Demonstration data, written only when no account store exists
    seed_accounts: List[SeedAccount] = Field(default_factory=_default_seed_accounts)

    def resolved_sqlite_path(self) -> Path:
        return self.sqlite_path or self.data_dir / "card_ledger.db"


# Global configuration instance
config = CardLedgerConfig()


def get_config() -> CardLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CardLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = CardLedgerConfig()
    return config
