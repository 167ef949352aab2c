"""
Analytics Module

Read-only balance forecasting and activity statistics computed from the
transaction ledger. All arithmetic is Decimal; forecasts are rounded to
cents and never negative.

Two forecasting strategies are available:

- WEIGHTED_AVERAGE: recency-weighted daily income and expense over a
  trailing window, damped by how active the account is.
- LINEAR_REGRESSION: least-squares line through the end-of-day balance
  series rebuilt by replaying the ledger backwards from today's balance.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import NotFoundError, ValidationError
from .ledger import Transaction, TransactionLedger
from .logging_config import get_logger
from .repository import AccountRepository
from .results import OperationResult

CENTS = Decimal('0.01')
ZERO = Decimal('0')


class ForecastMode(Enum):
    """Balance forecasting strategy"""
    WEIGHTED_AVERAGE = "weighted_average"
    LINEAR_REGRESSION = "linear_regression"


class AnalyticsService:
    """Forecasts and statistics over an account's ledger history"""

    def __init__(
        self,
        repository: AccountRepository,
        ledger: Optional[TransactionLedger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        mode: Union[ForecastMode, str] = ForecastMode.WEIGHTED_AVERAGE,
        window_days: int = 90,
        recency_decay: Decimal = Decimal('0.05'),
        min_regression_points: int = 5
    ):
        self.repository = repository
        self.ledger = ledger
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.mode = ForecastMode(mode)
        self.window_days = window_days
        self.recency_decay = recency_decay
        self.min_regression_points = min_regression_points
        self.logger = get_logger("card_ledger.analytics")

    # Forecasting

    def predict_balance(
        self,
        card_number: str,
        days_ahead: int = 7,
        mode: Union[ForecastMode, str, None] = None
    ) -> Decimal:
        """
        Forecast the balance ``days_ahead`` days from now.

        Returns the current balance unchanged when the horizon is not
        positive, the ledger is unavailable or fewer than two transactions
        exist; returns 0 for an unknown card.
        """
        account = self.repository.find_by_card_number(card_number)
        if account is None:
            return ZERO

        balance = account.balance
        if days_ahead <= 0:
            return balance

        if self.ledger is None:
            self.logger.warning("Transaction ledger unavailable, forecast is the current balance")
            return balance

        transactions = self.ledger.get_transactions_for_card(card_number)
        if len(transactions) < 2:
            self.logger.debug(f"Not enough history to forecast card {card_number}")
            return balance

        mode = ForecastMode(mode or self.mode)
        if mode == ForecastMode.LINEAR_REGRESSION:
            predicted = self._regression_forecast(balance, transactions, days_ahead)
            if predicted is None:
                self.logger.debug("Too few balance points for regression, using weighted average")
                predicted = self._weighted_forecast(balance, transactions, days_ahead)
        else:
            predicted = self._weighted_forecast(balance, transactions, days_ahead)

        predicted = max(ZERO, predicted).quantize(CENTS, rounding=ROUND_HALF_UP)
        self.logger.debug(
            f"Card {card_number}: balance {balance}, predicted {predicted} in {days_ahead} days ({mode.value})"
        )
        return predicted

    def calculate_predicted_balance(
        self,
        card_number: str,
        days_ahead: int,
        mode: Union[ForecastMode, str, None] = None
    ) -> OperationResult:
        """Validated form of predict_balance; payload key ``predicted_balance``"""
        if not card_number:
            return OperationResult.fail(ValidationError("Card number must not be empty"))
        if days_ahead <= 0:
            return OperationResult.fail(ValidationError("Forecast horizon must be a positive number of days"))
        if not self.repository.account_exists(card_number):
            return OperationResult.fail(NotFoundError("Account does not exist"))
        try:
            mode = ForecastMode(mode or self.mode)
        except ValueError:
            return OperationResult.fail(ValidationError(f"Unknown forecast mode: {mode}"))

        return OperationResult.ok(
            predicted_balance=self.predict_balance(card_number, days_ahead, mode),
            ledger_available=self.ledger is not None,
        )

    # Statistics

    def get_account_trend(self, card_number: str, days: int = 30) -> OperationResult:
        """
        Per-day income and expense over the last ``days`` calendar days.

        Payload keys ``income`` and ``expense`` map every date in
        [today - days + 1, today] to a total, zero for quiet days.
        """
        result = self._check_window(card_number, days)
        if not result.success:
            return result

        start, end = self._date_window(days)
        income: Dict[date, Decimal] = {}
        expense: Dict[date, Decimal] = {}
        day = start
        while day <= end:
            income[day] = ZERO
            expense[day] = ZERO
            day += timedelta(days=1)

        for transaction in self._transactions(card_number):
            day = self._day_of(transaction)
            if not start <= day <= end:
                continue
            if transaction.transaction_type.is_income:
                income[day] += transaction.amount
            elif transaction.transaction_type.is_expense:
                expense[day] += transaction.amount

        return OperationResult.ok(income=income, expense=expense)

    def get_transaction_frequency(self, card_number: str, days: int = 30) -> Decimal:
        """Transactions per day over the last ``days`` calendar days"""
        if not card_number or days <= 0 or not self.repository.account_exists(card_number):
            return ZERO

        start, end = self._date_window(days)
        count = sum(
            1 for t in self._transactions(card_number)
            if start <= self._day_of(t) <= end
        )
        return Decimal(count) / Decimal(days)

    def get_balance_history(self, card_number: str) -> OperationResult:
        """
        End-of-day balances rebuilt from the ledger.

        Payload key ``history`` is a list of (date, balance), oldest first,
        ending with today's current balance.
        """
        account = self.repository.find_by_card_number(card_number)
        if account is None:
            return OperationResult.fail(NotFoundError("Account does not exist"))

        series = self._reconstruct_daily_balances(account.balance, self._transactions(card_number))
        return OperationResult.ok(history=sorted(series.items()))

    # Strategies

    def _weighted_forecast(
        self,
        balance: Decimal,
        transactions: List[Transaction],
        days_ahead: int
    ) -> Decimal:
        now = self.clock()
        window_start = now - timedelta(days=self.window_days)
        window = [t for t in transactions if window_start <= t.timestamp <= now]
        if not window:
            return balance

        window_days = Decimal(self.window_days)
        frequency = Decimal(len(window)) / window_days
        damping = min(frequency, Decimal('1'))

        income_sum = income_weight = expense_sum = expense_weight = ZERO
        for transaction in window:
            days_ago = (now - transaction.timestamp).days
            weight = Decimal('1') / (Decimal('1') + Decimal(days_ago) * self.recency_decay)
            if transaction.transaction_type.is_income:
                income_sum += transaction.amount * weight
                income_weight += weight
            elif transaction.transaction_type.is_expense:
                expense_sum += transaction.amount * weight
                expense_weight += weight

        daily_income = income_sum / income_weight / window_days if income_weight else ZERO
        daily_expense = expense_sum / expense_weight / window_days if expense_weight else ZERO

        daily_change = (daily_income - daily_expense) * damping
        return balance + daily_change * Decimal(days_ahead)

    def _regression_forecast(
        self,
        balance: Decimal,
        transactions: List[Transaction],
        days_ahead: int
    ) -> Optional[Decimal]:
        """None when there are too few points or every point is on one day"""
        today = self.clock().date()
        series = self._reconstruct_daily_balances(balance, transactions)
        points: List[Tuple[Decimal, Decimal]] = [
            (Decimal((today - day).days), value) for day, value in series.items()
        ]
        if len(points) < self.min_regression_points:
            return None

        n = Decimal(len(points))
        sum_x = sum((x for x, _ in points), ZERO)
        sum_y = sum((y for _, y in points), ZERO)
        sum_xx = sum((x * x for x, _ in points), ZERO)
        sum_xy = sum((x * y for x, y in points), ZERO)

        denominator = n * sum_xx - sum_x * sum_x
        if denominator == 0:
            return None

        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n
        return intercept + slope * Decimal(-days_ahead)

    # Helpers

    def _reconstruct_daily_balances(
        self,
        balance: Decimal,
        transactions: List[Transaction]
    ) -> Dict[date, Decimal]:
        """
        Walk the ledger newest to oldest from the current balance.

        The balance before a day's transactions is the end-of-day balance
        of the previous active day, so inverting each day in turn yields
        one point per day with activity plus today.
        """
        today = self.clock().date()
        by_day: Dict[date, List[Transaction]] = defaultdict(list)
        for transaction in transactions:
            day = self._day_of(transaction)
            if day <= today:
                by_day[day].append(transaction)

        series: Dict[date, Decimal] = {today: balance}
        running = balance
        for day in sorted(by_day, reverse=True):
            series.setdefault(day, running)
            for transaction in by_day[day]:
                running -= transaction.transaction_type.signed(transaction.amount)
        return series

    def _check_window(self, card_number: str, days: int) -> OperationResult:
        if not card_number:
            return OperationResult.fail(ValidationError("Card number must not be empty"))
        if days <= 0:
            return OperationResult.fail(ValidationError("Number of days must be positive"))
        if not self.repository.account_exists(card_number):
            return OperationResult.fail(NotFoundError("Account does not exist"))
        return OperationResult.ok()

    def _date_window(self, days: int) -> Tuple[date, date]:
        end = self.clock().date()
        return end - timedelta(days=days - 1), end

    def _transactions(self, card_number: str) -> List[Transaction]:
        if self.ledger is None:
            return []
        return self.ledger.get_transactions_for_card(card_number)

    @staticmethod
    def _day_of(transaction: Transaction) -> date:
        return transaction.timestamp.astimezone(timezone.utc).date()
