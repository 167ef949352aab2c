"""
Card Ledger

Account & ledger engine for a card-based banking backend: account security,
deposits, withdrawals and transfers with write-through persistence, an
append-only transaction ledger and balance forecasting.
"""

__version__ = "1.0.0"
