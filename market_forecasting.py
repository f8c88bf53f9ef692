"""
Market Forecasting Module

Business-realistic daily revenue forecasters for the D'Busana dashboard.
Produces forecasts that keep the day-to-day volatility of real fashion
sales instead of smooth straight lines.

Key Features:
- Outlier-capping preprocessing (IQR x 2.0 with weighted neighbour replacement)
- Market volatility analysis (daily volatility, trend strength, regime)
- Business-Realistic Forecaster: multi-wave hash-seeded fluctuations,
  momentum, regime bias and fashion seasonality
- Enhanced Simple Trend Forecaster: conservative fallback for short histories
- Validation-window metrics (MAPE, MAE, RMSE, R², confidence, quality)
"""

import math

import numpy as np
import pandas as pd

from forecast_math import (
    clamp,
    to_date,
    format_date,
    js_weekday,
    extract_values,
    sort_by_date,
    mean_of,
    linear_regression,
    quantile,
    relative_autocorrelation,
    daily_returns,
    population_std,
    hash_string,
    percent_error_metrics,
    build_metrics,
)

# ===== CONSTANTS =====

MIN_POINTS_REALISTIC = 7
MIN_POINTS_SIMPLE = 2

# Outlier handling
OUTLIER_IQR_MULTIPLIER = 2.0
OUTLIER_NEIGHBOR_SPAN = 3

# Volatility analysis
DEFAULT_DAILY_VOLATILITY = 0.18
VOLATILITY_RANGE = (0.08, 0.35)
REGIME_THRESHOLD = 0.02

# Business-realistic forecaster
ANNUAL_TREND_RANGE = (-0.40, 0.60)
ENHANCED_VOLATILITY_RANGE = (0.12, 0.30)
ENHANCED_VOLATILITY_MULTIPLIER = 1.8
MAX_DAILY_FLUCTUATION = 0.25
STEP_RANGE = (0.6, 1.6)
BASE_BUSINESS_UNCERTAINTY = 0.30

# Sunday -> Saturday, Jan -> Dec
SEASONAL_DAY_WEIGHTS = [0.65, 1.0, 1.15, 1.18, 1.25, 1.35, 0.85]
SEASONAL_MONTH_WEIGHTS = [0.8, 0.85, 1.1, 1.2, 1.15, 1.3, 1.25, 1.1, 0.95, 1.05, 1.2, 1.4]

REGIME_CONFIDENCE_MULTIPLIERS = {
    'bull': 1.08,
    'bear': 0.88,
    'sideways': 1.05,
}

# Simple trend forecaster
SIMPLE_TREND_RANGE = (-0.15, 0.20)
SIMPLE_STEP_RANGE = (0.85, 1.20)


# ===== PREPROCESSING =====

def clean_and_smooth(data):
    """
    Sort data chronologically and cap extreme outliers.

    Values outside [Q1 - 2*IQR, Q3 + 2*IQR] are replaced by an
    inverse-distance weighted average of up to 3 neighbours on each side.
    Everything else is kept as-is so genuine business swings survive.

    Args:
        data: List of {'date', 'value'} points

    Returns:
        New list of points with cleaned, non-negative values
    """
    if len(data) < 3:
        return [dict(point) for point in data]

    ordered = sort_by_date(data)
    values = extract_values(ordered)

    q1 = quantile(values, 0.25)
    q3 = quantile(values, 0.75)
    iqr = q3 - q1
    lower_bound = q1 - OUTLIER_IQR_MULTIPLIER * iqr
    upper_bound = q3 + OUTLIER_IQR_MULTIPLIER * iqr

    cleaned = []
    for index, point in enumerate(ordered):
        value = values[index]
        if value < lower_bound or value > upper_bound:
            start = max(0, index - OUTLIER_NEIGHBOR_SPAN)
            end = min(len(ordered), index + OUTLIER_NEIGHBOR_SPAN + 1)
            weighted_sum = 0.0
            total_weight = 0.0
            for j in range(start, end):
                if j == index:
                    continue
                weight = 1.0 / (abs(j - index) + 1)
                weighted_sum += values[j] * weight
                total_weight += weight
            if total_weight > 0:
                value = weighted_sum / total_weight

        new_point = dict(point)
        new_point['value'] = max(0.0, float(value))
        cleaned.append(new_point)

    return cleaned


# ===== VOLATILITY ANALYSIS =====

def analyze_market_volatility(data):
    """
    Analyze historical volatility to drive realistic fluctuations.

    Args:
        data: Chronological list of {'date', 'value'} points

    Returns:
        dict with daily_volatility, trend_strength, cyclical_patterns, market_regime
    """
    default = {
        'daily_volatility': DEFAULT_DAILY_VOLATILITY,
        'trend_strength': 0.0,
        'cyclical_patterns': [],
        'market_regime': 'sideways',
    }
    if len(data) < 7:
        return default

    values = extract_values(data)
    returns = daily_returns(values)
    if len(returns) == 0:
        return default

    daily_volatility = population_std(returns)

    # Trend strength is the slope of a log-linear fit
    log_values = np.log(np.maximum(1.0, values))
    trend_strength, _, _ = linear_regression(log_values)

    cyclical_patterns = []
    if len(values) >= 14:
        cyclical_patterns.append(relative_autocorrelation(values, 7))
    if len(values) >= 60:
        cyclical_patterns.append(relative_autocorrelation(values, 30))

    recent = returns[-10:]
    recent_trend = float(np.sum(recent)) / min(10, len(returns))
    if recent_trend > REGIME_THRESHOLD:
        regime = 'bull'
    elif recent_trend < -REGIME_THRESHOLD:
        regime = 'bear'
    else:
        regime = 'sideways'

    return {
        'daily_volatility': clamp(daily_volatility, *VOLATILITY_RANGE),
        'trend_strength': trend_strength,
        'cyclical_patterns': cyclical_patterns,
        'market_regime': regime,
    }


# ===== BUSINESS-REALISTIC FORECASTER =====

class MarketRealisticForecaster:
    """Business-realistic forecaster with hash-seeded multi-wave volatility."""

    model_name = 'Business-Realistic Forecaster'

    def forecast(self, data, periods):
        """
        Generate a day-by-day forecast.

        Args:
            data: List of {'date', 'value'} points (at least 7)
            periods: Number of future days

        Returns:
            dict: {'forecasts': [...], 'metrics': {...}, 'analysis': {...}}

        Raises:
            ValueError: If fewer than 7 points are supplied
        """
        if len(data) < MIN_POINTS_REALISTIC:
            raise ValueError(
                f"Insufficient data for market-realistic forecasting: need at least {MIN_POINTS_REALISTIC} points"
            )

        cleaned = clean_and_smooth(data)
        values = extract_values(cleaned)

        base_level = mean_of(values[-30:])
        business_trend = self._business_trend(values)

        analysis = analyze_market_volatility(cleaned)
        volatility = clamp(
            analysis['daily_volatility'] * ENHANCED_VOLATILITY_MULTIPLIER,
            *ENHANCED_VOLATILITY_RANGE,
        )
        regime = analysis['market_regime']

        last_date = to_date(cleaned[-1]['date'])
        current_value = float(values[-1])
        momentum = self._initial_momentum(values[-10:])

        forecasts = []
        for i in range(1, periods + 1):
            future_date = last_date + pd.Timedelta(days=i)

            trend_component = current_value * (1 + business_trend / 365)

            seed = hash_string(future_date.strftime('%Y-%m-%dT00:00:00.000Z')) % 10000
            fluctuation = self._business_fluctuation(seed, volatility, i, momentum, regime)
            seasonal_factor = self._seasonal_factor(i, future_date)

            raw_predicted = trend_component * (1 + fluctuation) * seasonal_factor
            predicted = clamp(raw_predicted, current_value * STEP_RANGE[0], current_value * STEP_RANGE[1])
            predicted = max(0.0, predicted)

            base_uncertainty = predicted * volatility * math.sqrt(i / 10)
            uncertainty = max(base_uncertainty, predicted * BASE_BUSINESS_UNCERTAINTY) * 1.5

            forecasts.append({
                'date': format_date(future_date),
                'predicted': predicted,
                'lower_bound': max(0.0, predicted - uncertainty),
                'upper_bound': predicted + uncertainty,
                'confidence': self._confidence(i, volatility, regime),
                'model': self.model_name,
                'components': {
                    'trend': trend_component - current_value,
                    'seasonal': (seasonal_factor - 1) * predicted,
                    'residual': fluctuation * predicted,
                },
            })

            current_value = predicted
            momentum = self._update_momentum(momentum, fluctuation, i)

        metrics = self._metrics(cleaned, base_level, business_trend, volatility)
        return {'forecasts': forecasts, 'metrics': metrics, 'analysis': analysis}

    def _business_trend(self, values):
        """Annualized composite trend from 14/30/60-day windows, clamped to [-40%, +60%]."""
        if len(values) < 7:
            return 0.0

        recent14 = values[-14:]
        recent30 = values[-30:]
        prior30 = values[-60:-30] if len(values) > 30 else values[:0]
        if len(prior30) == 0:
            return 0.0

        avg14 = mean_of(recent14)
        avg30 = mean_of(recent30)
        avg60 = mean_of(prior30)

        short_trend = (avg30 - avg60) / avg60 if avg60 > 0 else 0.0
        medium_trend = (avg14 - avg30) / avg30 if avg30 > 0 else 0.0

        composite = medium_trend * 0.7 + short_trend * 0.3
        return clamp(composite * (365 / 14), *ANNUAL_TREND_RANGE)

    def _business_fluctuation(self, seed, volatility, day_index, momentum, regime):
        waves = (
            math.sin(seed * 0.08 + day_index * 0.06) * 0.35
            + math.sin(seed * 0.12 + day_index * 0.04) * 0.25
            + math.sin(seed * 0.15 + day_index * 0.09) * 0.20
            + math.cos(seed * 0.11 + day_index * 0.07) * 0.15
            + math.cos(seed * 0.09 + day_index * 0.05) * 0.05
        )
        momentum_influence = momentum * 0.4
        regime_bias = self._regime_bias(regime, day_index)

        business_cycle = 1 + math.sin(day_index * 0.02) * 0.25 + math.sin(day_index * 0.007) * 0.15
        time_complexity = 1 + math.sin(day_index * 0.003) * 0.1

        fluctuation = (waves + momentum_influence + regime_bias) * volatility * business_cycle * time_complexity
        return clamp(fluctuation, -MAX_DAILY_FLUCTUATION, MAX_DAILY_FLUCTUATION)

    def _seasonal_factor(self, day_index, date):
        weekly = math.sin(2 * math.pi * day_index / 7) * 0.06
        monthly = math.sin(2 * math.pi * day_index / 30) * 0.04
        quarterly = math.sin(2 * math.pi * day_index / 90) * 0.03
        day_of_week = (SEASONAL_DAY_WEIGHTS[js_weekday(date)] - 1) * 0.08
        month_of_year = (SEASONAL_MONTH_WEIGHTS[date.month - 1] - 1) * 0.05
        return 1 + weekly + monthly + quarterly + day_of_week + month_of_year

    def _regime_bias(self, regime, day_index):
        # Regime effect fades over ~45 days
        strength = math.exp(-day_index / 45)
        if regime == 'bull':
            return 0.03 * strength
        if regime == 'bear':
            return -0.03 * strength
        return math.sin(day_index * 0.02) * 0.01 * strength

    def _confidence(self, day_index, volatility, regime):
        base = max(35.0, 70 - day_index * 0.4)
        base *= REGIME_CONFIDENCE_MULTIPLIERS.get(regime, 1.0)
        volatility_adjustment = (1 - min(volatility, 0.3) / 0.3) * 10
        return clamp(base + volatility_adjustment, 30.0, 75.0)

    def _initial_momentum(self, recent_values):
        """Recency-weighted average of the last day-over-day changes."""
        if len(recent_values) < 3:
            return 0.0
        changes = daily_returns(recent_values)
        if len(changes) == 0:
            return 0.0
        weights = np.arange(1, len(changes) + 1, dtype=float)
        return float(np.sum(changes * weights) / np.sum(weights))

    def _update_momentum(self, momentum, recent_change, day_index):
        decay = math.exp(-day_index / 20)
        updated = momentum * 0.7 * decay + recent_change * 0.3
        return clamp(updated, -0.1, 0.1)

    def _metrics(self, data, base_level, trend, volatility):
        default_metrics = build_metrics(20, base_level * 0.20, base_level * 0.25, 60, 0.45, 27)

        validation_size = min(16, int(len(data) * 0.35))
        errors = []
        for days_back in range(validation_size, 0, -1):
            actual = float(data[len(data) - days_back]['value'])
            base_predict = base_level * (1 + trend * days_back / 365)
            volatility_factor = 1 + math.sin(days_back * 0.1) * volatility * 0.5
            seasonal_factor = 1 + math.sin(2 * math.pi * days_back / 7) * 0.03
            predicted = base_predict * volatility_factor * seasonal_factor
            if actual > 0:
                errors.append(min(200.0, abs(actual - predicted) / actual * 100))

        if not errors:
            return default_metrics

        mape, mae, rmse = percent_error_metrics(errors, base_level)

        confidence = clamp(80 - mape * 0.6, 30.0, 75.0)
        confidence = min(75.0, confidence + (1 - min(volatility, 0.3) / 0.3) * 5)

        if abs(trend) < 0.1:
            trend_stability = 0.7
        elif abs(trend) < 0.2:
            trend_stability = 0.55
        else:
            trend_stability = 0.4
        volatility_factor = 0.6 - min(volatility, 0.3) / 0.3 * 0.2
        accuracy_factor = max(0.2, 1 - mape / 150)
        r_squared = min(0.82, trend_stability * volatility_factor * accuracy_factor)

        return build_metrics(mape, mae, rmse, confidence, r_squared)


# ===== SIMPLE TREND FORECASTER =====

class SimpleTrendForecaster:
    """Conservative trend-following forecaster used when richer models fail."""

    model_name = 'Enhanced Simple Trend Forecaster'

    def forecast(self, data, periods):
        """
        Forecast by compounding a bounded recent-vs-prior trend.

        Args:
            data: List of {'date', 'value'} points (at least 2)
            periods: Number of future days

        Returns:
            dict: {'forecasts': [...], 'metrics': {...}}

        Raises:
            ValueError: If fewer than 2 points are supplied
        """
        if len(data) < MIN_POINTS_SIMPLE:
            raise ValueError(
                f"Insufficient data for simple trend forecasting: need at least {MIN_POINTS_SIMPLE} points"
            )

        cleaned = clean_and_smooth(data)
        values = extract_values(cleaned)

        avg_revenue = mean_of(values[-20:])
        older = values[-40:-20] if len(values) > 20 else values[:0]
        older_avg = mean_of(older, default=avg_revenue)
        trend = (avg_revenue - older_avg) / older_avg if older_avg > 0 else 0.0
        trend = clamp(trend, *SIMPLE_TREND_RANGE)

        last_date = to_date(cleaned[-1]['date'])
        current_value = float(values[-1])

        forecasts = []
        for i in range(1, periods + 1):
            future_date = last_date + pd.Timedelta(days=i)

            trended_value = current_value * (1 + trend / 365)
            seasonal_factor = 1 + math.sin(i * 2 * math.pi / 7) * 0.025
            volatility_factor = 1 + math.sin(i * 0.13) * 0.02

            predicted = trended_value * seasonal_factor * volatility_factor
            predicted = clamp(predicted, current_value * SIMPLE_STEP_RANGE[0], current_value * SIMPLE_STEP_RANGE[1])
            predicted = max(0.0, predicted)

            uncertainty = predicted * 0.18 * math.sqrt(i / 25)

            forecasts.append({
                'date': format_date(future_date),
                'predicted': predicted,
                'lower_bound': max(0.0, predicted - uncertainty),
                'upper_bound': predicted + uncertainty,
                'confidence': max(60.0, 90 - i * 0.4),
                'model': self.model_name,
                'components': {
                    'trend': trended_value - current_value,
                    'seasonal': (seasonal_factor - 1) * predicted,
                    'residual': (volatility_factor - 1) * predicted,
                },
            })

            current_value = predicted

        metrics = self._metrics(cleaned, avg_revenue, trend)
        return {'forecasts': forecasts, 'metrics': metrics}

    def _metrics(self, data, avg_revenue, trend):
        if len(data) < 7:
            return build_metrics(0, 0, 0, 70, 0.55, 38.5)

        validation_size = min(12, int(len(data) * 0.30))
        errors = []
        for days_back in range(validation_size, 0, -1):
            actual = float(data[len(data) - days_back]['value'])
            base_predicted = avg_revenue * (1 + trend / 365) ** (-days_back)
            predicted = base_predicted * (1 + math.sin(days_back * 2 * math.pi / 7) * 0.025)
            if actual > 0:
                errors.append(min(150.0, abs(actual - predicted) / actual * 100))

        if not errors:
            return build_metrics(18, avg_revenue * 0.18, avg_revenue * 0.22, 70, 0.55, 38.5)

        mape, mae, rmse = percent_error_metrics(errors, avg_revenue)

        confidence = clamp(85 - mape * 0.7, 50.0, 85.0)
        trend_stability = 0.75 if abs(trend) < 0.08 else 0.6
        accuracy_factor = max(0.25, 1 - mape / 120)
        r_squared = min(0.8, trend_stability * accuracy_factor)

        return build_metrics(mape, mae, rmse, confidence, r_squared)
