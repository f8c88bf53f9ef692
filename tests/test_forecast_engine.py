"""
Tests for forecast_engine module
Cascading dispatcher, best-model selection, horizons and the dashboard entry point
"""

import pandas as pd
import pytest

import forecast_engine
from forecast_engine import (
    EMERGENCY_MODEL_NAME,
    INSUFFICIENT_DATA_MODEL_NAME,
    BASE_FORECAST_COLUMNS,
    emergency_forecast,
    generate_advanced_forecast,
    select_best_forecast,
    score_model,
    calculate_dynamic_horizons,
    forecast_to_dataframe,
    run_sales_forecast,
)


class BrokenEngine:
    """Engine stub that always fails"""

    model_name = 'Broken Engine'

    def forecast(self, data, periods):
        raise RuntimeError("boom")


class TestEmergencyForecast:
    """Last-resort forecast"""

    def test_full_horizon(self, month_series, assert_valid_forecast):
        result = emergency_forecast(month_series, 45)
        assert_valid_forecast(result['forecasts'], 45, month_series[-1]['date'])
        assert all(f['confidence'] == 40 for f in result['forecasts'])
        assert all(f['model'] == EMERGENCY_MODEL_NAME for f in result['forecasts'])

    def test_stays_near_last_value(self, month_series):
        last_value = month_series[-1]['value']
        for f in emergency_forecast(month_series, 30)['forecasts']:
            assert last_value * 0.98 - 1e-6 <= f['predicted'] <= last_value * 1.02 + 1e-6
            assert f['upper_bound'] == pytest.approx(f['predicted'] * 1.15)

    def test_metrics(self, point_factory):
        metrics = emergency_forecast(point_factory([100.0, 200.0]), 5)['metrics']
        assert metrics['mape'] == 25
        assert metrics['mae'] == pytest.approx(50.0)
        assert metrics['rmse'] == pytest.approx(60.0)
        assert metrics['confidence'] == 40
        assert metrics['quality_score'] == 12


class TestCascadingDispatcher:
    """generate_advanced_forecast"""

    def test_single_point_is_insufficient(self, point_factory):
        result = generate_advanced_forecast(point_factory([100.0]), 30)
        assert result['forecasts'] == []
        assert result['best_model'] == INSUFFICIENT_DATA_MODEL_NAME
        assert result['metrics']['confidence'] == 0

    def test_enhanced_volatility_first(self, month_series, assert_valid_forecast):
        result = generate_advanced_forecast(month_series, 30)
        assert result['best_model'] == 'Enhanced Volatility Forecaster'
        assert_valid_forecast(result['forecasts'], 30, month_series[-1]['date'])
        assert [entry['status'] for entry in result['model_comparison']] == ['used']

    def test_short_history_uses_simple_trend(self, short_series):
        """Five points skip the 7-point engines and land on the simple trend forecaster"""
        result = generate_advanced_forecast(short_series, 14)
        assert result['best_model'] == 'Enhanced Simple Trend Forecaster'
        assert len(result['forecasts']) == 14
        assert [entry['status'] for entry in result['model_comparison']] == ['skipped', 'skipped', 'used']

    def test_failure_falls_through(self, month_series, monkeypatch):
        monkeypatch.setattr(forecast_engine, 'CASCADE_ENGINES', [
            (BrokenEngine, 2),
            (forecast_engine.SimpleTrendForecaster, 2),
        ])
        result = generate_advanced_forecast(month_series, 10)
        assert result['best_model'] == 'Enhanced Simple Trend Forecaster'
        assert result['model_comparison'][0] == {'model': 'Broken Engine', 'status': 'failed', 'error': 'boom'}
        assert "ERROR: Broken Engine failed: boom" in result['logs']

    def test_all_failures_use_emergency(self, month_series, monkeypatch):
        monkeypatch.setattr(forecast_engine, 'CASCADE_ENGINES', [(BrokenEngine, 2)])
        result = generate_advanced_forecast(month_series, 20)
        assert result['best_model'] == EMERGENCY_MODEL_NAME
        assert len(result['forecasts']) == 20
        assert result['model_comparison'][-1]['model'] == EMERGENCY_MODEL_NAME


class TestModelSelection:
    """score_model and select_best_forecast"""

    def test_score_weights(self):
        metrics = {'confidence': 80, 'r_squared': 0.5, 'mape': 20}
        assert score_model(metrics) == pytest.approx(0.32 + 0.15 + 0.24)

    def test_preferred_model_bonus(self):
        metrics = {'confidence': 80, 'r_squared': 0.5, 'mape': 20}
        assert score_model(metrics, 'Realistic Natural Forecaster') == pytest.approx(0.71 * 1.15)

    def test_mape_above_hundred_scores_zero_accuracy(self):
        metrics = {'confidence': 0, 'r_squared': 0, 'mape': 250}
        assert score_model(metrics) == 0

    def test_select_best_ranks_candidates(self, month_series, assert_valid_forecast):
        result = select_best_forecast(month_series, 14)
        comparison = result['model_comparison']
        assert len(comparison) == 6
        scores = [entry['score'] for entry in comparison]
        assert scores == sorted(scores, reverse=True)
        assert result['best_model'] == comparison[0]['model']
        assert_valid_forecast(result['forecasts'], 14, month_series[-1]['date'])

    def test_select_best_includes_ensemble_for_long_history(self, quarter_series):
        result = select_best_forecast(quarter_series, 7)
        models = {entry['model'] for entry in result['model_comparison']}
        assert 'Advanced Hybrid Ensemble' in models
        assert len(models) == 7

    def test_select_best_failures_ranked_last(self, month_series, monkeypatch):
        monkeypatch.setattr(forecast_engine, 'CANDIDATE_ENGINES', [
            (BrokenEngine, 2),
            (forecast_engine.SimpleTrendForecaster, 2),
        ])
        result = select_best_forecast(month_series, 7)
        assert result['best_model'] == 'Enhanced Simple Trend Forecaster'
        assert result['model_comparison'][-1]['error'] == 'boom'

    def test_select_best_insufficient_data(self):
        result = select_best_forecast([], 7)
        assert result['best_model'] == INSUFFICIENT_DATA_MODEL_NAME


class TestHorizonsAndFrames:
    """calculate_dynamic_horizons and forecast_to_dataframe"""

    def test_horizons_leap_year(self):
        assert calculate_dynamic_horizons('2024-01-31') == {
            'horizon_30': '2024-03-01',
            'horizon_60': '2024-03-31',
            'horizon_90': '2024-04-30',
        }

    def test_forecast_to_dataframe_flattens_components(self, month_series):
        forecasts = generate_advanced_forecast(month_series, 10)['forecasts']
        df = forecast_to_dataframe(forecasts)
        assert len(df) == 10
        assert pd.api.types.is_datetime64_any_dtype(df['date'])
        assert 'component_trend' in df.columns
        assert 'components' not in df.columns

    def test_nested_extras_dropped(self):
        forecasts = [{
            'date': '2024-01-01', 'predicted': 1.0, 'lower_bound': 0.5, 'upper_bound': 1.5,
            'confidence': 70, 'model': 'X', 'components': {'trend': 0.1},
            'algorithm_contributions': {'arima_weight': 40},
        }]
        df = forecast_to_dataframe(forecasts)
        assert 'algorithm_contributions' not in df.columns
        assert df.loc[0, 'component_trend'] == pytest.approx(0.1)

    def test_empty_forecasts(self):
        df = forecast_to_dataframe([])
        assert df.empty
        assert list(df.columns) == BASE_FORECAST_COLUMNS


class TestRunSalesForecast:
    """Cached dashboard entry point"""

    def test_cascade(self, daily_sales_df):
        logs, forecast_df, metrics_df, comparison_df = run_sales_forecast(daily_sales_df, periods=30)
        assert len(forecast_df) == 30
        assert metrics_df.loc[0, 'model'] == 'Enhanced Volatility Forecaster'
        assert not comparison_df.empty
        assert any("Planning horizons" in log for log in logs)

    def test_best_model(self, daily_sales_df):
        logs, forecast_df, metrics_df, comparison_df = run_sales_forecast(
            daily_sales_df, periods=14, value_column='orders', method='best'
        )
        assert len(forecast_df) == 14
        assert 'score' in comparison_df.columns
        assert any(col.startswith('metric_') for col in comparison_df.columns)

    def test_unknown_method_warns(self, daily_sales_df):
        logs, forecast_df, _, _ = run_sales_forecast(daily_sales_df, periods=7, method='magic')
        assert any(log.startswith("WARNING: Unknown forecast method") for log in logs)
        assert len(forecast_df) == 7

    def test_empty_input(self):
        logs, forecast_df, metrics_df, comparison_df = run_sales_forecast(pd.DataFrame(), periods=7)
        assert forecast_df.empty
        assert any(log.startswith("ERROR:") for log in logs)
