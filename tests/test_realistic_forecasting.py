"""
Tests for realistic_forecasting module
Market characteristics analysis and the natural-fluctuation forecaster
"""

import pytest

from realistic_forecasting import (
    analyze_market_characteristics,
    RealisticNaturalForecaster,
    generate_realistic_forecast,
)


class TestMarketCharacteristics:
    """analyze_market_characteristics"""

    def test_short_series_defaults(self, short_series):
        analysis = analyze_market_characteristics(short_series)
        assert analysis['base_volatility'] == 0.15
        assert analysis['regime'] == 'ranging'
        assert analysis['autocorrelations'] == [0.3, 0.2, 0.1]

    def test_ranges(self, quarter_series):
        analysis = analyze_market_characteristics(quarter_series)
        assert 0.08 <= analysis['base_volatility'] <= 0.35
        assert 0 <= analysis['trend_strength'] <= 1
        assert 0.03 <= analysis['natural_fluctuation'] <= 0.20
        assert analysis['regime'] in ('trending', 'volatile', 'ranging')
        assert len(analysis['autocorrelations']) == 5
        assert all(-1 <= a <= 1 for a in analysis['autocorrelations'])

    def test_cyclical_patterns_by_length(self, series_factory):
        assert len(analyze_market_characteristics(series_factory(30))['cyclical_patterns']) == 1
        assert len(analyze_market_characteristics(series_factory(50))['cyclical_patterns']) == 2
        assert len(analyze_market_characteristics(series_factory(120))['cyclical_patterns']) == 3

    def test_microstructure_bounds(self, quarter_series):
        micro = analyze_market_characteristics(quarter_series)['microstructure']
        assert 0 <= micro['persistence'] <= 1
        assert 0 <= micro['mean_reversion'] <= 1
        assert 0 <= micro['jump_frequency'] <= 0.3
        assert 0 <= micro['clustering_effect'] <= 1

    def test_perfect_trend_strength(self, point_factory):
        """Exponential growth is a straight line in log space"""
        data = point_factory([1000.0 * 1.02 ** i for i in range(30)])
        assert analyze_market_characteristics(data)['trend_strength'] == pytest.approx(1.0)


class TestRealisticNaturalForecaster:
    """RealisticNaturalForecaster.forecast"""

    def test_requires_seven_points(self, short_series):
        with pytest.raises(ValueError):
            RealisticNaturalForecaster().forecast(short_series, 10)

    def test_forecast_rows_valid(self, month_series, assert_valid_forecast):
        result = RealisticNaturalForecaster().forecast(month_series, 30)
        assert_valid_forecast(result['forecasts'], 30, month_series[-1]['date'])
        assert all(f['model'] == 'Realistic Natural Forecaster' for f in result['forecasts'])

    def test_components(self, month_series):
        forecast = RealisticNaturalForecaster().forecast(month_series, 1)['forecasts'][0]
        assert set(forecast['components']) == {'trend', 'seasonal', 'volatility', 'noise', 'momentum'}

    def test_step_constraint(self, month_series):
        """Each day moves at most -30% / +40% from the previous day"""
        forecasts = RealisticNaturalForecaster().forecast(month_series, 60)['forecasts']
        previous = month_series[-1]['value']
        for f in forecasts:
            assert previous * 0.70 - 1e-6 <= f['predicted'] <= previous * 1.40 + 1e-6
            previous = f['predicted']

    def test_confidence_range(self, quarter_series):
        forecasts = RealisticNaturalForecaster().forecast(quarter_series, 90)['forecasts']
        assert all(30 <= f['confidence'] <= 85 for f in forecasts)

    def test_validated_metrics(self, quarter_series):
        metrics = RealisticNaturalForecaster().forecast(quarter_series, 14)['metrics']
        assert 5 <= metrics['mape'] <= 40
        assert 65 <= metrics['confidence'] <= 95
        assert 0.15 <= metrics['r_squared'] <= 0.95
        assert abs(metrics['quality_score'] - metrics['confidence'] * 0.8) <= 1
        assert 'volatility_score' in metrics
        assert 'natural_score' in metrics

    def test_unvalidated_metrics(self, month_series):
        """Without validation MAPE comes from trend strength and no error sizes are measured"""
        metrics = RealisticNaturalForecaster().forecast(month_series, 14, validate=False)['metrics']
        assert metrics['mae'] == 0
        assert metrics['rmse'] == 0
        assert 10 <= metrics['mape'] <= 25

    def test_deterministic(self, month_series):
        first = RealisticNaturalForecaster().forecast(month_series, 20)['forecasts']
        second = RealisticNaturalForecaster().forecast(month_series, 20)['forecasts']
        assert [f['predicted'] for f in first] == [f['predicted'] for f in second]


class TestGenerateRealisticForecast:
    """Convenience wrapper"""

    def test_short_history_returns_empty(self, short_series):
        result = generate_realistic_forecast(short_series, 30)
        assert result['forecasts'] == []
        assert result['best_model'] == 'None'
        assert result['metrics']['confidence'] == 0

    def test_best_model_name(self, month_series):
        result = generate_realistic_forecast(month_series, 7)
        assert result['best_model'] == 'Realistic Natural Forecaster'
        assert len(result['forecasts']) == 7
