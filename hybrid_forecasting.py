"""
Hybrid Forecasting Module

Production forecaster built mostly from standard algorithms with a thin
layer of D'Busana business rules on top.

Key Features:
- Linear regression (30%), moving average (25%), weekly seasonal
  decomposition (25%) and business rules (20%)
- Fashion month, day-of-week and payday multipliers from business_rules
- Predictions kept within 0.6x - 1.5x of the trailing 7-day average
- Uncertainty that widens with the square root of the horizon
- Fallback to the 7-day average when the blend cannot be computed
"""

import math

import numpy as np
import pandas as pd

from business_rules import (
    get_fashion_multiplier,
    get_day_of_week_multiplier,
    get_payday_multiplier,
    apply_standard_constraints,
)
from forecast_math import (
    clamp,
    to_date,
    format_date,
    js_weekday,
    extract_values,
    mean_of,
    linear_regression,
    moving_average,
    population_std,
    cap_confidence,
    build_metrics,
)

MIN_POINTS = 7

HYBRID_WEIGHTS = {
    'linear_regression': 0.30,
    'moving_average': 0.25,
    'seasonal_decomposition': 0.25,
    'business_rules': 0.20,
}

FALLBACK_WEIGHTS = {
    'linear_regression': 0,
    'moving_average': 80,
    'seasonal_decomposition': 0,
    'business_rules': 20,
}

NAIVE_BASELINE_ACCURACY = 50


# ===== STANDARD ALGORITHMS =====

class StandardLinearRegression:
    """Least squares line over the day index."""

    @staticmethod
    def forecast(data, periods):
        """
        Args:
            data: List of {'date', 'value'} points
            periods: Number of future days

        Returns:
            dict: forecasts (floored at 0), slope, intercept, r_squared

        Raises:
            ValueError: If fewer than 3 points are supplied
        """
        if len(data) < 3:
            raise ValueError("Need at least 3 data points for linear regression")

        values = extract_values(data)
        slope, intercept, r_squared = linear_regression(values)
        n = len(values)
        forecasts = [max(0.0, slope * (n + i - 1) + intercept) for i in range(1, periods + 1)]
        return {'forecasts': forecasts, 'slope': slope, 'intercept': intercept, 'r_squared': r_squared}


class SimpleMovingAverage:
    """Trailing window average extended with the change between consecutive windows."""

    @staticmethod
    def forecast(data, periods, window=7):
        if window < 1 or len(data) < window:
            raise ValueError(f"Need at least {window} data points for moving average")

        values = extract_values(data)
        recent = values[-window:]
        average = moving_average(values, window)

        previous = values[-window * 2:-window]
        previous_average = moving_average(previous, window) if len(previous) >= window else average
        trend = average - previous_average

        forecasts = [max(0.0, average + trend * i) for i in range(1, periods + 1)]
        return {'forecasts': forecasts, 'trend': trend, 'volatility': population_std(recent)}


class SeasonalDecomposition:
    """Weekday pattern and month-to-month strength of a daily series."""

    @staticmethod
    def analyze_seasonality(data):
        """
        Returns:
            dict: weekly_pattern (Sunday=0, normalised to mean 1), monthly_strength
            (0..1 share of variance explained by month averages) and seasonal_factors
        """
        frame = pd.DataFrame({
            'date': [to_date(point['date']) for point in data],
            'value': extract_values(data),
        })
        frame['weekday'] = frame['date'].map(js_weekday)

        weekday_avg = frame.groupby('weekday')['value'].mean().reindex(range(7), fill_value=0.0)
        weekly_mean = weekday_avg.sum() / 7
        if weekly_mean > 0:
            weekly_pattern = (weekday_avg / weekly_mean).tolist()
        else:
            weekly_pattern = [1.0] * 7

        month_avg = frame.groupby(frame['date'].dt.month)['value'].mean()
        monthly_variance = float(np.var(month_avg)) if len(month_avg) >= 2 else 0.0
        total_variance = float(np.var(frame['value'])) if len(frame) else 0.0
        monthly_strength = min(1.0, monthly_variance / total_variance) if total_variance > 0 else 0.0

        return {
            'weekly_pattern': weekly_pattern,
            'monthly_strength': monthly_strength,
            'seasonal_factors': weekly_pattern,
        }


# ===== BUSINESS RULES =====

def apply_business_rules(base_value, date):
    """Fashion month, day-of-week and payday multipliers on a base value."""
    return (
        base_value
        * get_fashion_multiplier(date.month)
        * get_day_of_week_multiplier(js_weekday(date))
        * get_payday_multiplier(date.day)
    )


# ===== HYBRID ENGINE =====

class HybridForecastingEngine:
    """Weighted blend of standard algorithms and business rules."""

    model_name = 'Hybrid Forecasting Engine'
    fallback_model_name = 'Hybrid Forecasting Engine (Fallback)'

    def forecast(self, data, periods):
        """
        Args:
            data: List of {'date', 'value'} points (at least 7), chronological
            periods: Number of future days

        Returns:
            dict: {'forecasts', 'metrics', 'logs'}

        Raises:
            ValueError: If fewer than 7 points are supplied
        """
        if len(data) < MIN_POINTS:
            raise ValueError(f"Need at least {MIN_POINTS} data points for hybrid forecasting")

        try:
            return self._hybrid_forecast(data, periods)
        except (ValueError, ZeroDivisionError, FloatingPointError) as e:
            result = self._fallback_forecast(data, periods)
            result['logs'].append(f"WARNING: Hybrid blend failed, using 7-day average fallback: {e}")
            return result

    def _hybrid_forecast(self, data, periods):
        linear = StandardLinearRegression.forecast(data, periods)
        moving = SimpleMovingAverage.forecast(data, periods, window=min(14, len(data) // 2))
        seasonality = SeasonalDecomposition.analyze_seasonality(data)

        historical = extract_values(data)
        last_date = to_date(data[-1]['date'])
        volatility = moving['volatility'] or 0.0

        forecasts = []
        confidence = None
        for i in range(1, periods + 1):
            future_date = last_date + pd.Timedelta(days=i)

            linear_part = linear['forecasts'][i - 1] * HYBRID_WEIGHTS['linear_regression']
            ma_part = moving['forecasts'][i - 1] * HYBRID_WEIGHTS['moving_average']

            seasonal_factor = seasonality['seasonal_factors'][js_weekday(future_date)] or 1.0
            base_value = (linear_part + ma_part) / (
                HYBRID_WEIGHTS['linear_regression'] + HYBRID_WEIGHTS['moving_average']
            )
            seasonal_part = base_value * seasonal_factor * HYBRID_WEIGHTS['seasonal_decomposition']

            blended = linear_part + ma_part + seasonal_part
            business_part = apply_business_rules(blended, future_date) * HYBRID_WEIGHTS['business_rules']

            predicted = apply_standard_constraints(blended + business_part, historical)

            uncertainty = (
                predicted
                * clamp(volatility / max(1.0, predicted), 0.10, 0.30)
                * math.sqrt(i / 7)
            )
            volatility_penalty = volatility / predicted * 100 if predicted > 0 else 0.0
            confidence = cap_confidence(clamp(90 - i * 1.5 - volatility_penalty, 60.0, 95.0), confidence)

            forecasts.append({
                'date': format_date(future_date),
                'predicted': max(0.0, predicted),
                'lower_bound': max(0.0, predicted - uncertainty),
                'upper_bound': predicted + uncertainty,
                'confidence': round(confidence),
                'model': self.model_name,
                'components': {
                    'linear_trend': linear_part,
                    'seasonal': seasonal_part,
                    'business_rules': business_part,
                    'moving_average': ma_part,
                },
            })

        metrics = self._metrics(historical, linear['r_squared'], volatility, seasonality['monthly_strength'])
        logs = [
            f"INFO: Hybrid forecast generated for {periods} days "
            f"(r²={linear['r_squared']:.3f}, MA trend={moving['trend']:,.0f})"
        ]
        return {'forecasts': forecasts, 'metrics': metrics, 'logs': logs}

    def _metrics(self, values, r_squared, volatility, monthly_strength):
        # MAPE is estimated from model characteristics, not a holdout
        avg = mean_of(values)
        volatility_penalty = volatility / avg * 20 if avg > 0 else 0.0
        mape = clamp(25 - r_squared * 100 * 0.2 + volatility_penalty - monthly_strength * 5, 8.0, 35.0)
        confidence = round(clamp(85 - mape * 0.8, 65.0, 90.0))

        metrics = build_metrics(mape, 0, 0, confidence, r_squared)
        metrics['algorithm_weights'] = {
            name: int(round(weight * 100)) for name, weight in HYBRID_WEIGHTS.items()
        }
        return metrics

    def _fallback_forecast(self, data, periods):
        values = extract_values(data)
        recent_avg = mean_of(values[-7:])
        last_date = to_date(data[-1]['date'])

        forecasts = []
        for i in range(1, periods + 1):
            uncertainty = recent_avg * 0.20
            forecasts.append({
                'date': format_date(last_date + pd.Timedelta(days=i)),
                'predicted': max(0.0, recent_avg),
                'lower_bound': max(0.0, recent_avg - uncertainty),
                'upper_bound': recent_avg + uncertainty,
                'confidence': 70,
                'model': self.fallback_model_name,
                'components': {
                    'linear_trend': 0.0,
                    'seasonal': 0.0,
                    'business_rules': recent_avg * 0.2,
                    'moving_average': recent_avg * 0.8,
                },
            })

        metrics = build_metrics(20, recent_avg * 0.15, recent_avg * 0.20, 70, 0.50)
        metrics['algorithm_weights'] = dict(FALLBACK_WEIGHTS)
        return {'forecasts': forecasts, 'metrics': metrics, 'logs': []}


def compare_with_baseline(hybrid_forecasts, historical_data):
    """
    Compare the hybrid forecast against a naive last-value forecast.

    Average forecast confidence stands in for accuracy; the naive forecast
    is assumed to be right half of the time.

    Returns:
        dict: hybrid_accuracy, baseline_accuracy, improvement, last_value
    """
    if not hybrid_forecasts:
        hybrid_accuracy = 0.0
    else:
        hybrid_accuracy = float(np.mean([f['confidence'] for f in hybrid_forecasts]))

    last_value = float(historical_data[-1]['value']) if historical_data else 0.0
    return {
        'hybrid_accuracy': round(hybrid_accuracy),
        'baseline_accuracy': NAIVE_BASELINE_ACCURACY,
        'improvement': round(hybrid_accuracy - NAIVE_BASELINE_ACCURACY),
        'last_value': last_value,
    }


def generate_hybrid_forecast(data, periods):
    return HybridForecastingEngine().forecast(data, periods)
