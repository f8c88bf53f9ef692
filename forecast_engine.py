"""
Forecast Engine Module

Entry point for revenue forecasting in the sales dashboard. Chooses
between the individual forecasting engines, falls back gracefully when
one fails, and turns the result into DataFrames for display and export.

Key Features:
- Cascading dispatcher: Enhanced Volatility -> Business-Realistic ->
  Simple Trend -> Emergency Fallback
- Best-model selection across every engine by weighted score
- 30/60/90 day planning horizons from the last data date
- Cached Streamlit entry point returning (logs, forecast, metrics, comparison)
"""

import math
from datetime import datetime

import numpy as np
import pandas as pd
import streamlit as st

from advanced_hybrid_forecasting import AdvancedHybridForecastingEngine
from business_rules import MODEL_SCORING_RULES
from enhanced_volatility_forecasting import EnhancedVolatilityForecaster
from forecast_math import to_date, format_date, build_metrics
from forecasting_data_provider import format_data_for_engine
from hybrid_forecasting import HybridForecastingEngine
from market_forecasting import MarketRealisticForecaster, SimpleTrendForecaster
from realistic_forecasting import RealisticNaturalForecaster
from realistic_volatility_forecasting import RealisticVolatilityForecastingEngine

EMERGENCY_MODEL_NAME = 'Emergency Fallback'
INSUFFICIENT_DATA_MODEL_NAME = 'Insufficient Data'
MIN_POINTS = 2

# (engine class, minimum points); tried in order by the dispatcher
CASCADE_ENGINES = [
    (EnhancedVolatilityForecaster, 7),
    (MarketRealisticForecaster, 7),
    (SimpleTrendForecaster, 2),
]

# Engines competing in best-model selection
CANDIDATE_ENGINES = [
    (RealisticNaturalForecaster, 7),
    (EnhancedVolatilityForecaster, 7),
    (MarketRealisticForecaster, 7),
    (HybridForecastingEngine, 7),
    (RealisticVolatilityForecastingEngine, 7),
    (AdvancedHybridForecastingEngine, 100),
    (SimpleTrendForecaster, 2),
]

FORECAST_METHODS = {
    'cascade': 'Cascading dispatcher (Enhanced Volatility first)',
    'best': 'Best model by weighted score',
}

BASE_FORECAST_COLUMNS = ['date', 'predicted', 'lower_bound', 'upper_bound', 'confidence', 'model']


def _empty_metrics():
    return build_metrics(0, 0, 0, 0, 0, 0)


# ===== FALLBACKS =====

def emergency_forecast(data, periods):
    """
    Last-resort flat forecast around the last observed value.

    Args:
        data: List of {'date', 'value'} points (may be empty)
        periods: Number of future days

    Returns:
        dict: {'forecasts', 'metrics'} with confidence 40 throughout
    """
    if data:
        last_value = float(data[-1]['value'])
        last_date = to_date(data[-1]['date'])
    else:
        last_value = 0.0
        last_date = pd.Timestamp.today().normalize()

    forecasts = []
    for i in range(1, periods + 1):
        wave = math.sin(i * 0.1) * 0.02
        predicted = max(0.0, last_value * (1 + wave))
        uncertainty = predicted * 0.15
        forecasts.append({
            'date': format_date(last_date + pd.Timedelta(days=i)),
            'predicted': predicted,
            'lower_bound': max(0.0, predicted - uncertainty),
            'upper_bound': predicted + uncertainty,
            'confidence': 40,
            'model': EMERGENCY_MODEL_NAME,
            'components': {'trend': 0.0, 'seasonal': wave * predicted, 'residual': 0.0},
        })

    metrics = build_metrics(25, last_value * 0.25, last_value * 0.3, 40, 0.3, 12)
    return {'forecasts': forecasts, 'metrics': metrics}


# ===== DISPATCHER =====

def generate_advanced_forecast(data, periods):
    """
    Forecast with the first engine in the cascade that succeeds.

    Args:
        data: Chronological list of {'date', 'value', 'metadata'?} points
        periods: Number of future days

    Returns:
        dict: {'forecasts', 'metrics', 'best_model', 'model_comparison', 'logs'}
        where model_comparison lists every attempted engine in order
    """
    logs = ["--- Sales Forecast Dispatcher ---"]

    if len(data) < MIN_POINTS:
        logs.append(f"WARNING: Need at least {MIN_POINTS} data points to forecast, got {len(data)}")
        return {
            'forecasts': [],
            'metrics': _empty_metrics(),
            'best_model': INSUFFICIENT_DATA_MODEL_NAME,
            'model_comparison': [],
            'logs': logs,
        }

    comparison = []
    for engine_class, min_points in CASCADE_ENGINES:
        name = engine_class.model_name
        if len(data) < min_points:
            logs.append(f"INFO: Skipping {name} (needs {min_points} points, have {len(data)})")
            comparison.append({'model': name, 'status': 'skipped', 'error': None})
            continue

        try:
            result = engine_class().forecast(data, periods)
        except Exception as e:
            logs.append(f"ERROR: {name} failed: {e}")
            comparison.append({'model': name, 'status': 'failed', 'error': str(e)})
            continue

        metrics = result['metrics']
        comparison.append({
            'model': name,
            'status': 'used',
            'confidence': metrics['confidence'],
            'quality_score': metrics['quality_score'],
            'error': None,
        })
        logs.append(
            f"INFO: {name} produced {len(result['forecasts'])} forecasts "
            f"(confidence {metrics['confidence']}%)"
        )
        return {
            'forecasts': result['forecasts'],
            'metrics': metrics,
            'best_model': name,
            'model_comparison': comparison,
            'logs': logs,
        }

    logs.append("WARNING: All forecasting engines failed. Using emergency fallback.")
    result = emergency_forecast(data, periods)
    comparison.append({'model': EMERGENCY_MODEL_NAME, 'status': 'used', 'confidence': 40,
                       'quality_score': result['metrics']['quality_score'], 'error': None})
    return {
        'forecasts': result['forecasts'],
        'metrics': result['metrics'],
        'best_model': EMERGENCY_MODEL_NAME,
        'model_comparison': comparison,
        'logs': logs,
    }


# ===== MODEL SELECTION =====

def score_model(metrics, model_name=None):
    """Weighted score of confidence, R² and accuracy, with a bonus for the preferred engine."""
    rules = MODEL_SCORING_RULES
    score = (
        metrics['confidence'] / 100 * rules['confidence_weight']
        + metrics['r_squared'] * rules['r_squared_weight']
        + (100 - min(metrics['mape'], 100)) / 100 * rules['accuracy_weight']
    )
    if model_name == rules['preferred_model']:
        score *= rules['preferred_model_bonus']
    return score


def select_best_forecast(data, periods):
    """
    Run every engine the data supports and keep the highest scoring one.

    Returns:
        dict: {'forecasts', 'metrics', 'best_model', 'model_comparison', 'logs'}
        where model_comparison is sorted by score, failures last
    """
    logs = ["--- Forecast Model Selection ---"]

    if len(data) < MIN_POINTS:
        logs.append(f"WARNING: Need at least {MIN_POINTS} data points to forecast, got {len(data)}")
        return {
            'forecasts': [],
            'metrics': _empty_metrics(),
            'best_model': INSUFFICIENT_DATA_MODEL_NAME,
            'model_comparison': [],
            'logs': logs,
        }

    best_result, best_name, best_score = None, None, -1.0
    comparison = []
    for engine_class, min_points in CANDIDATE_ENGINES:
        if len(data) < min_points:
            continue
        name = engine_class.model_name
        try:
            result = engine_class().forecast(data, periods)
        except Exception as e:
            logs.append(f"ERROR: {name} failed: {e}")
            comparison.append({'model': name, 'score': 0.0, 'metrics': None, 'error': str(e)})
            continue

        score = score_model(result['metrics'], name)
        comparison.append({'model': name, 'score': round(score, 4), 'metrics': result['metrics'], 'error': None})
        logs.append(f"INFO: {name} scored {score:.3f}")

        if score > best_score:
            best_result, best_name, best_score = result, name, score

    if best_result is None:
        logs.append("WARNING: No engine produced a forecast. Using emergency fallback.")
        best_result = emergency_forecast(data, periods)
        best_name = EMERGENCY_MODEL_NAME
    else:
        logs.append(f"INFO: Best forecasting model: {best_name} (score: {best_score:.3f})")

    comparison.sort(key=lambda row: (row['error'] is None, row['score']), reverse=True)
    return {
        'forecasts': best_result['forecasts'],
        'metrics': best_result['metrics'],
        'best_model': best_name,
        'model_comparison': comparison,
        'logs': logs,
    }


def calculate_dynamic_horizons(last_date):
    """Planning horizons 30, 60 and 90 days after the last data date (ISO strings)."""
    last = to_date(last_date)
    return {
        'horizon_30': format_date(last + pd.Timedelta(days=30)),
        'horizon_60': format_date(last + pd.Timedelta(days=60)),
        'horizon_90': format_date(last + pd.Timedelta(days=90)),
    }


# ===== DATAFRAME CONVERSION =====

def forecast_to_dataframe(forecasts):
    """
    Flatten forecast rows into a DataFrame.

    Component values become `component_<name>` columns; other scalar
    extras (volatility_score, business_cycle_phase, ...) are kept as is.
    """
    if not forecasts:
        return pd.DataFrame(columns=BASE_FORECAST_COLUMNS)

    rows = []
    for forecast in forecasts:
        row = {}
        for key, value in forecast.items():
            if key == 'components':
                for component, amount in value.items():
                    row[f'component_{component}'] = amount
            elif not isinstance(value, dict):
                row[key] = value
        rows.append(row)

    df = pd.DataFrame(rows)
    df['date'] = pd.to_datetime(df['date'])
    return df


def _metrics_to_dataframe(metrics, best_model):
    flat = {'model': best_model}
    for key, value in (metrics or {}).items():
        if not isinstance(value, dict):
            flat[key] = value
    return pd.DataFrame([flat])


def _comparison_to_dataframe(comparison):
    if not comparison:
        return pd.DataFrame(columns=['model'])
    rows = []
    for entry in comparison:
        row = {key: value for key, value in entry.items() if key != 'metrics'}
        for key, value in (entry.get('metrics') or {}).items():
            if not isinstance(value, dict):
                row[f'metric_{key}'] = value
        rows.append(row)
    return pd.DataFrame(rows)


@st.cache_data(show_spinner="Generating sales forecast...")
def run_sales_forecast(daily_df, periods=30, value_column='revenue', method='cascade'):
    """
    Forecast a daily sales series for the dashboard.

    Args:
        daily_df: Output of aggregate_daily_sales (date, revenue, orders_count, ...)
        periods: Number of future days (default 30)
        value_column: 'revenue', 'orders' or 'profit'
        method: 'cascade' or 'best' (see FORECAST_METHODS)

    Returns:
        tuple: (logs, forecast_df, metrics_df, comparison_df)
    """
    logs = []
    start_time = datetime.now()
    logs.append("--- Sales Forecasting Engine ---")

    if daily_df is None or daily_df.empty:
        logs.append("ERROR: No daily sales data provided. Cannot generate forecasts.")
        return logs, pd.DataFrame(columns=BASE_FORECAST_COLUMNS), pd.DataFrame(), pd.DataFrame()

    if method not in FORECAST_METHODS:
        logs.append(f"WARNING: Unknown forecast method '{method}', using 'cascade'")
        method = 'cascade'

    format_logs, data = format_data_for_engine(daily_df, value_column)
    logs.extend(format_logs)
    if not data:
        logs.append("ERROR: No usable data points after formatting. Cannot generate forecasts.")
        return logs, pd.DataFrame(columns=BASE_FORECAST_COLUMNS), pd.DataFrame(), pd.DataFrame()

    logs.append(
        f"INFO: Forecasting {periods} days of {value_column} from {len(data)} daily points "
        f"({data[0]['date']} to {data[-1]['date']}) using {FORECAST_METHODS[method]}"
    )

    if method == 'best':
        result = select_best_forecast(data, periods)
    else:
        result = generate_advanced_forecast(data, periods)
    logs.extend(result['logs'])

    forecast_df = forecast_to_dataframe(result['forecasts'])
    metrics_df = _metrics_to_dataframe(result['metrics'], result['best_model'])
    comparison_df = _comparison_to_dataframe(result['model_comparison'])

    if not forecast_df.empty:
        horizons = calculate_dynamic_horizons(data[-1]['date'])
        logs.append(
            f"INFO: Planning horizons: 30d={horizons['horizon_30']}, "
            f"60d={horizons['horizon_60']}, 90d={horizons['horizon_90']}"
        )
        total_predicted = float(np.sum(forecast_df['predicted']))
        logs.append(f"INFO: Total forecasted {value_column} (next {periods} days): {total_predicted:,.0f}")

    total_time = (datetime.now() - start_time).total_seconds()
    logs.append(f"INFO: Forecast generation completed in {total_time:.2f} seconds")

    return logs, forecast_df, metrics_df, comparison_df
