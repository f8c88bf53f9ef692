"""
Tests for hybrid_forecasting module
Standard algorithms, business rules and the weighted hybrid engine
"""

import pandas as pd
import pytest

import hybrid_forecasting
from hybrid_forecasting import (
    StandardLinearRegression,
    SimpleMovingAverage,
    SeasonalDecomposition,
    HybridForecastingEngine,
    apply_business_rules,
    compare_with_baseline,
    generate_hybrid_forecast,
)


class TestStandardAlgorithms:
    """Linear regression, moving average and seasonal decomposition"""

    def test_linear_regression_extends_line(self, point_factory):
        result = StandardLinearRegression.forecast(point_factory([10, 20, 30, 40]), 2)
        assert result['forecasts'] == pytest.approx([50.0, 60.0])
        assert result['r_squared'] == pytest.approx(1.0)

    def test_linear_regression_floors_at_zero(self, point_factory):
        result = StandardLinearRegression.forecast(point_factory([30, 20, 10]), 3)
        assert result['forecasts'] == pytest.approx([0.0, 0.0, 0.0])

    def test_linear_regression_requires_three_points(self, point_factory):
        with pytest.raises(ValueError):
            StandardLinearRegression.forecast(point_factory([1, 2]), 5)

    def test_moving_average_trend(self, point_factory):
        """Average of the last window plus the change from the window before"""
        result = SimpleMovingAverage.forecast(point_factory(range(1, 15)), 2, window=7)
        assert result['trend'] == pytest.approx(7.0)
        assert result['forecasts'] == pytest.approx([18.0, 25.0])

    def test_moving_average_requires_window(self, point_factory):
        with pytest.raises(ValueError):
            SimpleMovingAverage.forecast(point_factory([1, 2, 3]), 2, window=7)

    def test_weekly_pattern_normalised(self, month_series):
        pattern = SeasonalDecomposition.analyze_seasonality(month_series)['weekly_pattern']
        assert len(pattern) == 7
        assert sum(pattern) / 7 == pytest.approx(1.0)

    def test_single_month_has_no_monthly_strength(self, point_factory):
        data = point_factory([100.0, 150.0] * 10, start='2024-03-01')
        assert SeasonalDecomposition.analyze_seasonality(data)['monthly_strength'] == 0.0


class TestBusinessRules:
    """apply_business_rules"""

    def test_may_payday_wednesday(self):
        """1 May 2024: Ramadan season x Wednesday x payday"""
        value = apply_business_rules(100.0, pd.Timestamp('2024-05-01'))
        assert value == pytest.approx(100.0 * 1.30 * 1.10 * 1.25)

    def test_neutral_day(self):
        """5 March 2024 (Tuesday) has only the weekday multiplier"""
        value = apply_business_rules(100.0, pd.Timestamp('2024-03-05'))
        assert value == pytest.approx(100.0 * 1.00 * 1.00 * 1.0)


class TestHybridForecastingEngine:
    """HybridForecastingEngine.forecast"""

    def test_requires_seven_points(self, short_series):
        with pytest.raises(ValueError):
            HybridForecastingEngine().forecast(short_series, 10)

    def test_forecast_rows_valid(self, month_series, assert_valid_forecast):
        result = HybridForecastingEngine().forecast(month_series, 30)
        assert_valid_forecast(result['forecasts'], 30, month_series[-1]['date'])
        assert all(f['model'] == 'Hybrid Forecasting Engine' for f in result['forecasts'])

    def test_predictions_within_recent_range(self, month_series):
        """Predictions stay within 0.6x - 1.5x of the trailing 7-day average"""
        recent_avg = sum(p['value'] for p in month_series[-7:]) / 7
        forecasts = HybridForecastingEngine().forecast(month_series, 30)['forecasts']
        for f in forecasts:
            assert recent_avg * 0.6 - 1e-6 <= f['predicted'] <= recent_avg * 1.5 + 1e-6

    def test_confidence_range(self, month_series):
        forecasts = HybridForecastingEngine().forecast(month_series, 30)['forecasts']
        assert all(60 <= f['confidence'] <= 95 for f in forecasts)

    def test_metrics_weights(self, month_series):
        metrics = HybridForecastingEngine().forecast(month_series, 7)['metrics']
        assert metrics['algorithm_weights'] == {
            'linear_regression': 30,
            'moving_average': 25,
            'seasonal_decomposition': 25,
            'business_rules': 20,
        }
        assert 8 <= metrics['mape'] <= 35

    def test_fallback_on_failure(self, month_series, monkeypatch):
        """A failing algorithm switches to the 7-day average at confidence 70"""
        def _broken(data, periods):
            raise ValueError("singular fit")

        monkeypatch.setattr(hybrid_forecasting.StandardLinearRegression, 'forecast', staticmethod(_broken))
        result = generate_hybrid_forecast(month_series, 5)

        recent_avg = sum(p['value'] for p in month_series[-7:]) / 7
        assert all(f['model'] == 'Hybrid Forecasting Engine (Fallback)' for f in result['forecasts'])
        assert all(f['confidence'] == 70 for f in result['forecasts'])
        assert result['forecasts'][0]['predicted'] == pytest.approx(recent_avg)
        assert result['forecasts'][0]['upper_bound'] == pytest.approx(recent_avg * 1.2)
        assert any(log.startswith("WARNING:") for log in result['logs'])


class TestCompareWithBaseline:
    """compare_with_baseline"""

    def test_improvement_over_naive(self, point_factory):
        forecasts = [{'confidence': 80}, {'confidence': 70}]
        result = compare_with_baseline(forecasts, point_factory([100.0, 120.0]))
        assert result == {
            'hybrid_accuracy': 75,
            'baseline_accuracy': 50,
            'improvement': 25,
            'last_value': 120.0,
        }

    def test_empty_forecast(self):
        result = compare_with_baseline([], [])
        assert result['hybrid_accuracy'] == 0
        assert result['improvement'] == -50
