"""
Tests for advanced_hybrid_forecasting module
ARIMA-like and Prophet-like models, advanced business logic and the ensemble engine
"""

import numpy as np
import pandas as pd
import pytest

import advanced_hybrid_forecasting
from advanced_hybrid_forecasting import (
    ArimaLikeModel,
    ProphetLikeModel,
    AdvancedHybridForecastingEngine,
    calculate_average_order_value,
    apply_business_logic,
    generate_advanced_hybrid_forecast,
)


class TestArimaLikeModel:
    """Stationarity, order selection and extrapolation"""

    def test_requires_fifty_points(self, month_series):
        with pytest.raises(ValueError):
            ArimaLikeModel().forecast(month_series, 10)

    def test_constant_series_is_stationary(self):
        assert ArimaLikeModel.is_stationary(np.full(40, 5.0))

    def test_variance_shift_is_not_stationary(self):
        series = np.r_[np.tile([1.0, -1.0], 10), np.tile([10.0, -10.0], 10)]
        assert not ArimaLikeModel.is_stationary(series)

    def test_short_series_counts_as_stationary(self):
        assert ArimaLikeModel.is_stationary(np.array([1.0, 100.0, 1.0]))

    def test_constant_series_needs_no_differencing(self):
        assert ArimaLikeModel().select_diff_order(np.full(60, 3.0)) == 0

    def test_forecast_structure(self, quarter_series):
        result = ArimaLikeModel().forecast(quarter_series, 14)
        assert len(result['forecasts']) == 14
        assert all(value >= 0 for value in result['forecasts'])

        params = result['parameters']
        assert 1 <= params['ar_order'] <= 5
        assert 1 <= params['ma_order'] <= 5
        assert 0 <= params['diff_order'] <= 2
        assert 60 <= result['quality']['confidence'] <= 95
        assert np.isfinite(result['quality']['aic'])


class TestProphetLikeModel:
    """Additive decomposition"""

    def test_requires_hundred_points(self, month_series):
        with pytest.raises(ValueError):
            ProphetLikeModel().forecast(month_series, 10)

    def test_forecast_structure(self, quarter_series):
        result = ProphetLikeModel().forecast(quarter_series, 21)
        assert len(result['forecasts']) == 21
        assert all(value >= 0 for value in result['forecasts'])
        for name in ('trend', 'weekly_seasonal', 'yearly_seasonal', 'business_cycles'):
            assert len(result['components'][name]) == 21
        assert 70 <= result['quality']['confidence'] <= 95
        assert set(result['seasonality_strength']) == {'weekly', 'yearly', 'business'}

    def test_weekly_component_follows_weekday(self, quarter_series):
        """The same weekday one week apart gets the same weekly component"""
        weekly = ProphetLikeModel().forecast(quarter_series, 14)['components']['weekly_seasonal']
        assert weekly[:7] == pytest.approx(weekly[7:])

    def test_payday_business_component(self, quarter_series):
        """Only paydays and the days around them carry a business component"""
        result = ProphetLikeModel().forecast(quarter_series, 30)
        last_date = pd.Timestamp(quarter_series[-1]['date'])
        for i, business in enumerate(result['components']['business_cycles'], start=1):
            day = (last_date + pd.Timedelta(days=i)).day
            if abs(day - 1) > 2 and abs(day - 15) > 2:
                assert business == 0.0

    def test_month_end_follows_month_length(self):
        """The last three days of each month count as month-end, including a leap February"""
        frame = pd.DataFrame({
            'date': pd.to_datetime(['2024-01-28', '2024-01-29', '2024-02-20', '2024-02-27']),
            'value': [1000.0] * 4,
        })
        shares = advanced_hybrid_forecasting._business_component(frame)
        month_end = advanced_hybrid_forecasting.PROPHET_CONFIG['month_end_share'] * 1000
        assert shares.tolist() == pytest.approx([0.0, month_end, 0.0, month_end])


class TestAdvancedBusinessLogic:
    """Average order value and the advanced multipliers"""

    def test_average_order_value_uses_order_counts(self, point_factory):
        data = point_factory([300000.0, 200000.0])
        data[0]['metadata'] = {'orders_count': 2}
        data[1]['metadata'] = {'orders_count': 3}
        assert calculate_average_order_value(data) == pytest.approx(100000.0)

    def test_average_order_value_defaults(self):
        assert calculate_average_order_value([]) == 100000

    def test_may_first_factors(self, series_factory):
        """1 May 2024 (Wednesday) stacks fashion, payday, weekday and marketplace factors"""
        history = series_factory(30, start='2024-04-01')
        result = apply_business_logic([1_000_000.0], [pd.Timestamp('2024-05-01')], history)
        assert result['business_factors'][0] == pytest.approx(1.35 * 1.30 * 1.08 * 1.02)
        explanation = result['explanations'][0]
        assert 'Fashion seasonality: 35.0%' in explanation
        assert 'Payday effect: 30.0%' in explanation

    def test_adjusted_forecasts_constrained(self, series_factory):
        history = series_factory(30, start='2024-04-01')
        recent = [p['value'] for p in history[-14:]]
        avg14 = sum(recent) / 14
        result = apply_business_logic([avg14 * 5], [pd.Timestamp('2024-05-01')], history)
        assert result['adjusted_forecasts'][0] <= min(avg14 * 1.6, max(recent) * 1.3) + 1e-6


class TestAdvancedHybridEngine:
    """AdvancedHybridForecastingEngine.forecast"""

    def test_empty_data_raises(self):
        with pytest.raises(ValueError):
            AdvancedHybridForecastingEngine().forecast([], 10)

    def test_short_history_falls_back(self, month_series, assert_valid_forecast):
        result = AdvancedHybridForecastingEngine().forecast(month_series, 10)
        assert_valid_forecast(result['forecasts'], 10, month_series[-1]['date'])
        assert all(f['model'] == 'Advanced Hybrid Ensemble (Fallback)' for f in result['forecasts'])
        assert any(log.startswith("WARNING:") for log in result['logs'])
        assert result['explanations'] == ['Fallback: 7-day average'] * 10

    def test_ensemble_forecast(self, quarter_series, assert_valid_forecast):
        result = generate_advanced_hybrid_forecast(quarter_series, 30)
        assert_valid_forecast(result['forecasts'], 30, quarter_series[-1]['date'])
        assert all(f['model'] == 'Advanced Hybrid Ensemble' for f in result['forecasts'])
        assert all(65 <= f['confidence'] <= 95 for f in result['forecasts'])
        assert len(result['explanations']) == 30
        assert len(result['model_comparison']['arima_standalone']) == 30

    def test_ensemble_metrics(self, quarter_series):
        metrics = generate_advanced_hybrid_forecast(quarter_series, 14)['metrics']
        assert 8 <= metrics['mape'] <= 30
        assert metrics['r_squared'] == 0.8
        assert 'algorithm_performance' in metrics

    def test_model_error_falls_back(self, quarter_series, monkeypatch):
        """A numerical failure inside the ensemble is logged and the fallback is used"""
        def _broken(self, data, periods):
            raise np.linalg.LinAlgError("singular matrix")

        monkeypatch.setattr(advanced_hybrid_forecasting.ArimaLikeModel, 'forecast', _broken)
        result = AdvancedHybridForecastingEngine().forecast(quarter_series, 7)
        assert result['forecasts'][0]['model'] == 'Advanced Hybrid Ensemble (Fallback)'
        assert any(log.startswith("ERROR:") for log in result['logs'])
