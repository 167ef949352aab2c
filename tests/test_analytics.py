"""
Tests for balance forecasting and activity statistics
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from card_ledger.analytics import AnalyticsService, ForecastMode
from card_ledger.errors import NotFoundError, ValidationError
from card_ledger.ledger import Transaction, TransactionType

from conftest import C1, C2


@pytest.fixture
def analytics(repository, ledger, clock):
    return AnalyticsService(repository, ledger, clock=clock, window_days=10)


def add(ledger, clock, days_ago, transaction_type, amount, hours_ago=0):
    ledger.add_transaction(Transaction(
        card_number=C1,
        timestamp=clock() - timedelta(days=days_ago, hours=hours_ago),
        transaction_type=transaction_type,
        amount=Decimal(amount),
        balance_after=Decimal("0"),
    ))


def linear_history(ledger, clock):
    """One deposit of 100 per day for the last five days, including today"""
    for days_ago in range(5):
        add(ledger, clock, days_ago, TransactionType.DEPOSIT, "100")


class TestPredictBalanceEdges:
    """Test the cases that return the current balance"""

    def test_zero_horizon(self, analytics, ledger, clock):
        linear_history(ledger, clock)
        assert analytics.predict_balance(C1, 0) == Decimal("5000.00")
        assert analytics.predict_balance(C1, -3) == Decimal("5000.00")

    def test_unknown_card(self, analytics):
        assert analytics.predict_balance("0000000000000000", 7) == Decimal("0")

    def test_fewer_than_two_transactions(self, analytics, ledger, clock):
        add(ledger, clock, 0, TransactionType.DEPOSIT, "100")
        assert analytics.predict_balance(C1, 7) == Decimal("5000.00")

    def test_no_ledger(self, repository, clock):
        analytics = AnalyticsService(repository, None, clock=clock)
        assert analytics.predict_balance(C1, 7) == Decimal("5000.00")


class TestWeightedForecast:
    """Test the recency-weighted average strategy"""

    def test_daily_change_damped_by_frequency(self, analytics, ledger, clock):
        # income 100/10 per day, expense 50/10 per day, frequency 2/10
        add(ledger, clock, 0, TransactionType.DEPOSIT, "100")
        add(ledger, clock, 4, TransactionType.WITHDRAWAL, "50")

        assert analytics.predict_balance(C1, 7) == Decimal("5007.00")

    def test_weights_favour_recent_amounts(self, analytics, ledger, clock):
        # weights 1 and 1/1.4 give a weighted mean of 170/2.4 per deposit
        add(ledger, clock, 0, TransactionType.DEPOSIT, "100")
        add(ledger, clock, 8, TransactionType.DEPOSIT, "30")

        predicted = analytics.predict_balance(C1, 10)

        # An unweighted mean would give 5000 + 65/10 * 0.2 * 10 = 5013.00
        assert predicted > Decimal("5013.00")

    def test_frequency_capped_at_one(self, analytics, ledger, clock):
        for _ in range(20):
            add(ledger, clock, 0, TransactionType.DEPOSIT, "10")

        assert analytics.predict_balance(C1, 7) == Decimal("5007.00")

    def test_transactions_outside_window_ignored(self, analytics, ledger, clock):
        add(ledger, clock, 30, TransactionType.DEPOSIT, "1000")
        add(ledger, clock, 40, TransactionType.DEPOSIT, "1000")

        assert analytics.predict_balance(C1, 7) == Decimal("5000.00")

    def test_never_negative(self, analytics, ledger, clock):
        add(ledger, clock, 0, TransactionType.WITHDRAWAL, "5000")
        add(ledger, clock, 0, TransactionType.WITHDRAWAL, "5000")

        assert analytics.predict_balance(C1, 100) == Decimal("0")


class TestRegressionForecast:
    """Test the linear regression strategy"""

    def test_linear_history_is_extrapolated(self, analytics, ledger, clock):
        linear_history(ledger, clock)

        predicted = analytics.predict_balance(C1, 7, ForecastMode.LINEAR_REGRESSION)

        assert predicted == Decimal("5700.00")

    def test_falls_back_to_weighted_with_few_points(self, analytics, ledger, clock):
        add(ledger, clock, 0, TransactionType.DEPOSIT, "100")
        add(ledger, clock, 0, TransactionType.WITHDRAWAL, "50", hours_ago=1)

        regression = analytics.predict_balance(C1, 7, ForecastMode.LINEAR_REGRESSION)
        weighted = analytics.predict_balance(C1, 7, ForecastMode.WEIGHTED_AVERAGE)

        assert regression == weighted

    def test_mode_accepts_config_strings(self, repository, ledger, clock):
        analytics = AnalyticsService(repository, ledger, clock=clock, window_days=10,
                                     mode="linear_regression")
        linear_history(ledger, clock)

        assert analytics.predict_balance(C1, 7) == Decimal("5700.00")
        assert analytics.predict_balance(C1, 7, "linear_regression") == Decimal("5700.00")
        assert analytics.calculate_predicted_balance(C1, 7, "linear_regression").get(
            "predicted_balance") == Decimal("5700.00")

    def test_unknown_mode_string(self, analytics, ledger, clock):
        linear_history(ledger, clock)

        result = analytics.calculate_predicted_balance(C1, 7, "crystal_ball")

        assert result.error_type is ValidationError
        with pytest.raises(ValueError):
            analytics.predict_balance(C1, 7, "crystal_ball")

    def test_default_mode_from_constructor(self, repository, ledger, clock):
        analytics = AnalyticsService(repository, ledger, clock=clock,
                                     mode=ForecastMode.LINEAR_REGRESSION)
        linear_history(ledger, clock)

        assert analytics.predict_balance(C1, 7) == Decimal("5700.00")


class TestBalanceHistory:
    """Test end-of-day balance reconstruction"""

    def test_history_walks_back_from_current_balance(self, analytics, ledger, clock):
        linear_history(ledger, clock)

        result = analytics.get_balance_history(C1)

        assert result.success
        assert result.get("history") == [
            (date(2024, 6, 11), Decimal("4600.00")),
            (date(2024, 6, 12), Decimal("4700.00")),
            (date(2024, 6, 13), Decimal("4800.00")),
            (date(2024, 6, 14), Decimal("4900.00")),
            (date(2024, 6, 15), Decimal("5000.00")),
        ]

    def test_non_monetary_entries_do_not_move_balance(self, analytics, ledger, clock):
        add(ledger, clock, 2, TransactionType.BALANCE_INQUIRY, "0")
        add(ledger, clock, 1, TransactionType.OTHER, "0")

        history = analytics.get_balance_history(C1).get("history")

        assert {balance for _, balance in history} == {Decimal("5000.00")}

    def test_unknown_card(self, analytics):
        assert analytics.get_balance_history("0000000000000000").error_type is NotFoundError


class TestTrendAndFrequency:
    """Test per-day buckets and transaction frequency"""

    def test_trend_buckets(self, analytics, ledger, clock):
        add(ledger, clock, 1, TransactionType.DEPOSIT, "100")
        add(ledger, clock, 0, TransactionType.WITHDRAWAL, "30")
        add(ledger, clock, 0, TransactionType.TRANSFER, "20")
        add(ledger, clock, 0, TransactionType.OTHER, "0")
        add(ledger, clock, 5, TransactionType.DEPOSIT, "999")

        result = analytics.get_account_trend(C1, 3)

        assert result.success
        assert result.get("income") == {
            date(2024, 6, 13): Decimal("0"),
            date(2024, 6, 14): Decimal("100"),
            date(2024, 6, 15): Decimal("0"),
        }
        assert result.get("expense")[date(2024, 6, 15)] == Decimal("50")
        assert result.get("expense")[date(2024, 6, 13)] == Decimal("0")

    def test_trend_zero_filled_without_history(self, analytics):
        result = analytics.get_account_trend(C2, 7)

        assert len(result.get("income")) == 7
        assert all(v == 0 for v in result.get("expense").values())

    def test_trend_validation(self, analytics):
        assert analytics.get_account_trend("", 7).error_type is ValidationError
        assert analytics.get_account_trend(C1, 0).error_type is ValidationError
        assert analytics.get_account_trend("0000000000000000", 7).error_type is NotFoundError

    def test_frequency(self, analytics, ledger, clock):
        add(ledger, clock, 0, TransactionType.DEPOSIT, "1")
        add(ledger, clock, 1, TransactionType.OTHER, "0")
        add(ledger, clock, 2, TransactionType.WITHDRAWAL, "1")
        add(ledger, clock, 9, TransactionType.DEPOSIT, "1")

        assert analytics.get_transaction_frequency(C1, 3) == Decimal(3) / Decimal(3)
        assert analytics.get_transaction_frequency(C1, 10) == Decimal(4) / Decimal(10)

    def test_frequency_invalid_input(self, analytics):
        assert analytics.get_transaction_frequency(C1, 0) == Decimal("0")
        assert analytics.get_transaction_frequency("0000000000000000") == Decimal("0")


class TestCalculatePredictedBalance:
    """Test the validated forecast entry point"""

    def test_success(self, analytics, ledger, clock):
        linear_history(ledger, clock)

        result = analytics.calculate_predicted_balance(C1, 7)

        assert result.success
        assert result.get("predicted_balance") == analytics.predict_balance(C1, 7)

    def test_validation(self, analytics):
        assert analytics.calculate_predicted_balance("", 7).error_type is ValidationError
        assert analytics.calculate_predicted_balance(C1, 0).error_type is ValidationError
        assert analytics.calculate_predicted_balance("0000000000000000", 7).error_type is NotFoundError
