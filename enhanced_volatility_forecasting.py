"""
Enhanced Volatility Forecasting Module

Primary revenue forecaster of the dashboard. Analyzes the business
volatility profile of the history and walks forward day by day with
regime-aware trend, multi-wave volatility, a 30-day business cycle and
day-of-week seasonality.

Key Features:
- 14-day rolling volatility profile with volatility-trend detection
- Business cycle strength from autocorrelation at 7/14/21/30 day lags
- Growth / decline / stable regime with asymmetric step constraints
- Business cycle phase labels (Expansion, Peak, Contraction, Trough)
- Metrics extended with volatility index and cycle strength
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
    mean_of,
    pearson_autocorrelation,
    daily_returns,
    population_std,
    percent_error_metrics,
    build_metrics,
)

MIN_POINTS = 7
MIN_POINTS_FOR_PROFILE = 14
ROLLING_WINDOW = 14
CYCLE_LAGS = [7, 14, 21, 30]

DEFAULT_VOLATILITY_PROFILE = {
    'base_volatility': 0.12,
    'business_cycle_strength': 0.5,
    'seasonality_strength': 0.3,
    'market_regime': 'stable',
    'volatility_trend': 'stable',
}

# Regime tables
REGIME_TREND_WEIGHTS = {'growth': 1.2, 'decline': 0.8, 'stable': 1.0}
REGIME_STEP_CONSTRAINTS = {
    'growth': {'max_drop': 0.15, 'max_rise': 0.30},
    'decline': {'max_drop': 0.25, 'max_rise': 0.15},
    'stable': {'max_drop': 0.20, 'max_rise': 0.20},
}
REGIME_UNCERTAINTY_MULTIPLIERS = {'growth': 1.1, 'decline': 1.3, 'stable': 0.9}
REGIME_CONFIDENCE_MULTIPLIERS = {'growth': 1.05, 'decline': 0.9, 'stable': 1.1}
REGIME_METRIC_CONFIDENCE_MULTIPLIERS = {'growth': 1.05, 'decline': 0.92, 'stable': 1.08}

# Sunday -> Saturday
SEASONAL_DAY_WEIGHTS = [0.7, 1.0, 1.1, 1.1, 1.2, 1.3, 0.9]
CYCLE_PHASE_NAMES = ['Expansion', 'Peak', 'Contraction', 'Trough']


# ===== VOLATILITY PROFILE =====

def _rolling_volatility(values, window):
    volatilities = []
    for end in range(window, len(values)):
        returns = daily_returns(values[end - window:end])
        if len(returns) > 0:
            volatilities.append(population_std(returns))
    return volatilities


def _business_cycle_strength(values):
    max_correlation = 0.0
    for lag in CYCLE_LAGS:
        if len(values) >= lag * 2:
            max_correlation = max(max_correlation, abs(pearson_autocorrelation(values, lag)))
    return min(0.8, max_correlation)


def _seasonality_strength(data):
    """Coefficient of variation of day-of-week averages, capped at 0.6."""
    frame = pd.DataFrame({
        'weekday': [js_weekday(point['date']) for point in data],
        'value': extract_values(data),
    })
    day_averages = frame.groupby('weekday')['value'].mean()
    if len(day_averages) < 2:
        return 0.0
    day_mean = day_averages.mean()
    if day_mean <= 0:
        return 0.0
    return min(0.6, float(np.sqrt(np.mean((day_averages - day_mean) ** 2)) / day_mean))


def analyze_volatility_profile(data):
    """
    Characterize the business volatility of a daily series.

    Args:
        data: Chronological list of {'date', 'value'} points

    Returns:
        dict with base_volatility, business_cycle_strength, seasonality_strength,
        market_regime ('growth'/'decline'/'stable') and volatility_trend
        ('increasing'/'decreasing'/'stable')
    """
    if len(data) < MIN_POINTS_FOR_PROFILE:
        return dict(DEFAULT_VOLATILITY_PROFILE)

    values = extract_values(data)
    rolling = _rolling_volatility(values, ROLLING_WINDOW)
    if not rolling:
        base_volatility = DEFAULT_VOLATILITY_PROFILE['base_volatility']
    else:
        base_volatility = clamp(float(np.mean(rolling)), 0.08, 0.30)

    recent_avg = mean_of(values[-30:])
    older_avg = mean_of(values[-60:-30], default=recent_avg)
    change_rate = (recent_avg - older_avg) / older_avg if older_avg > 0 else 0.0
    if change_rate > 0.05:
        regime = 'growth'
    elif change_rate < -0.05:
        regime = 'decline'
    else:
        regime = 'stable'

    volatility_trend = 'stable'
    half = len(rolling) // 2
    if half > 0:
        early_avg = float(np.mean(rolling[:half]))
        late_avg = float(np.mean(rolling[half:]))
        if late_avg > early_avg * 1.1:
            volatility_trend = 'increasing'
        elif late_avg < early_avg * 0.9:
            volatility_trend = 'decreasing'

    return {
        'base_volatility': base_volatility,
        'business_cycle_strength': _business_cycle_strength(values),
        'seasonality_strength': _seasonality_strength(data),
        'market_regime': regime,
        'volatility_trend': volatility_trend,
    }


# ===== FORECASTER =====

class EnhancedVolatilityForecaster:
    """Regime-aware forecaster with multi-wave business volatility."""

    model_name = 'Enhanced Volatility Forecaster'

    def forecast(self, data, periods):
        """
        Args:
            data: List of {'date', 'value'} points (at least 7), chronological
            periods: Number of future days

        Returns:
            dict: {'forecasts', 'metrics', 'volatility_analysis'}

        Raises:
            ValueError: If fewer than 7 points are supplied
        """
        if len(data) < MIN_POINTS:
            raise ValueError(
                f"Insufficient data for enhanced volatility forecasting: need at least {MIN_POINTS} points"
            )

        analysis = analyze_volatility_profile(data)
        values = extract_values(data)
        business_trend = self._business_trend(values, analysis)

        last_date = to_date(data[-1]['date'])
        current_value = float(values[-1])
        volatility_momentum = analysis['base_volatility']
        cycle_phase = 0.0

        forecasts = []
        for i in range(1, periods + 1):
            future_date = last_date + pd.Timedelta(days=i)

            trend_component = current_value * (1 + business_trend / 365)
            volatility_factor = self._business_volatility(i, volatility_momentum, analysis, future_date)

            cycle_phase = (cycle_phase + 2 * math.pi / 30) % (2 * math.pi)
            cycle_component = self._business_cycle_component(cycle_phase, analysis['business_cycle_strength'])
            seasonal_component = self._seasonal_component(i, future_date, analysis['seasonality_strength'])

            raw_predicted = (
                trend_component
                * (1 + volatility_factor)
                * (1 + cycle_component)
                * (1 + seasonal_component)
            )

            constraints = self._step_constraints(analysis['market_regime'], i)
            predicted = clamp(
                raw_predicted,
                current_value * (1 - constraints['max_drop']),
                current_value * (1 + constraints['max_rise']),
            )
            predicted = max(0.0, predicted)

            uncertainty = self._uncertainty(predicted, volatility_momentum, i, analysis)
            phase_index = int((cycle_phase / (2 * math.pi)) * 4) % 4

            forecasts.append({
                'date': format_date(future_date),
                'predicted': predicted,
                'lower_bound': max(0.0, predicted - uncertainty),
                'upper_bound': predicted + uncertainty,
                'confidence': self._confidence(i, analysis),
                'model': self.model_name,
                'volatility_factor': volatility_factor,
                'business_cycle_phase': CYCLE_PHASE_NAMES[phase_index],
                'components': {
                    'trend': trend_component - current_value,
                    'seasonal': seasonal_component * predicted,
                    'volatility': volatility_factor * predicted,
                    'business_cycle': cycle_component * predicted,
                },
            })

            current_value = predicted
            volatility_momentum = self._update_volatility_momentum(volatility_momentum, analysis, i)

        metrics = self._metrics(data, analysis)
        return {'forecasts': forecasts, 'metrics': metrics, 'volatility_analysis': analysis}

    def _business_trend(self, values, analysis):
        if len(values) < 14:
            return 0.0

        short_avg = mean_of(values[-14:])
        medium_avg = mean_of(values[-30:])
        long_avg = mean_of(values[-60:], default=medium_avg)

        short_medium = (short_avg - medium_avg) / medium_avg if medium_avg > 0 else 0.0
        medium_long = (medium_avg - long_avg) / long_avg if long_avg > 0 else 0.0

        weight = REGIME_TREND_WEIGHTS.get(analysis['market_regime'], 1.0)
        composite = (short_medium * 0.6 + medium_long * 0.4) * weight
        return clamp(composite * 365 / 14, -0.4, 0.6)

    def _business_volatility(self, day_index, current_volatility, analysis, date):
        combined_wave = (
            math.sin(day_index * 0.08) * 0.4
            + math.sin(day_index * 0.15 + math.pi / 4) * 0.3
            + math.sin(day_index * 0.05 + math.pi / 2) * 0.2
            + math.cos(day_index * 0.12 + math.pi / 3) * 0.1
        )
        weekday = js_weekday(date)
        weekend_factor = 0.7 if weekday in (0, 6) else 1.0
        month_factor = 1 + math.sin(2 * math.pi * (date.month - 1) / 12) * 0.2

        scaled = combined_wave * current_volatility * weekend_factor * month_factor

        if analysis['volatility_trend'] == 'increasing':
            scaled *= 1 + day_index * 0.001
        elif analysis['volatility_trend'] == 'decreasing':
            scaled *= 1 - day_index * 0.001

        return clamp(scaled, -0.25, 0.25)

    def _business_cycle_component(self, phase, strength):
        return math.sin(phase) * strength * 0.15 + math.sin(phase * 2) * strength * 0.05

    def _seasonal_component(self, day_index, date, strength):
        weekly = math.sin(2 * math.pi * day_index / 7) * strength * 0.08
        monthly = math.sin(2 * math.pi * day_index / 30) * strength * 0.05
        day_of_week = (SEASONAL_DAY_WEIGHTS[js_weekday(date)] - 1) * strength * 0.06
        return weekly + monthly + day_of_week

    def _step_constraints(self, regime, day_index):
        # Longer horizons are allowed wider daily moves, up to 1.5x
        base = REGIME_STEP_CONSTRAINTS.get(regime, REGIME_STEP_CONSTRAINTS['stable'])
        relaxation = min(1.5, 1 + day_index * 0.01)
        return {
            'max_drop': base['max_drop'] * relaxation,
            'max_rise': base['max_rise'] * relaxation,
        }

    def _uncertainty(self, predicted, volatility, day_index, analysis):
        base = predicted * volatility * math.sqrt(day_index / 10)
        business = predicted * 0.12
        multiplier = REGIME_UNCERTAINTY_MULTIPLIERS.get(analysis['market_regime'], 1.0)
        return max(base, business) * multiplier

    def _confidence(self, day_index, analysis):
        confidence = max(40.0, 78 - day_index * 0.5)
        confidence *= REGIME_CONFIDENCE_MULTIPLIERS.get(analysis['market_regime'], 1.0)
        if analysis['volatility_trend'] == 'increasing':
            confidence *= 0.95
        return clamp(confidence, 35.0, 75.0)

    def _update_volatility_momentum(self, current, analysis, day_index):
        trend = analysis['volatility_trend']
        if trend == 'increasing':
            evolution = 1 + day_index * 0.001
        elif trend == 'decreasing':
            evolution = 1 - day_index * 0.001
        else:
            evolution = 1 + math.sin(day_index * 0.1) * 0.02
        return clamp(current * evolution, 0.05, 0.35)

    def _metrics(self, data, analysis):
        volatility_index = round(analysis['base_volatility'] * 100, 2)
        cycle_strength = round(analysis['business_cycle_strength'] * 100, 2)

        def _with_profile(metrics):
            metrics['volatility_index'] = volatility_index
            metrics['business_cycle_strength'] = cycle_strength
            return metrics

        if len(data) < MIN_POINTS_FOR_PROFILE:
            return _with_profile(build_metrics(0, 0, 0, 65, 0.6, 39))

        values = extract_values(data)
        recent_avg = mean_of(values[-30:])
        validation_size = min(14, int(len(data) * 0.3))

        errors = []
        for days_back in range(validation_size, 0, -1):
            actual = values[len(values) - days_back]
            predicted = recent_avg * (1 + analysis['base_volatility'] * math.sin(days_back * 0.1))
            if actual > 0:
                errors.append(min(150.0, abs(actual - predicted) / actual * 100))

        if not errors:
            return _with_profile(build_metrics(18, recent_avg * 0.18, recent_avg * 0.22, 65, 0.6, 39))

        mape, mae, rmse = percent_error_metrics(errors, recent_avg)

        confidence = clamp(85 - mape * 0.7, 35.0, 75.0)
        confidence *= REGIME_METRIC_CONFIDENCE_MULTIPLIERS.get(analysis['market_regime'], 1.0)

        base_r2 = 0.4 + analysis['business_cycle_strength'] * 0.3 + analysis['seasonality_strength'] * 0.2
        r_squared = min(0.85, base_r2 * max(0.1, 1 - mape / 100))

        return _with_profile(build_metrics(mape, mae, rmse, confidence, r_squared))


def generate_enhanced_volatility_forecast(data, periods):
    """Convenience wrapper returning forecasts, metrics and the volatility profile."""
    return EnhancedVolatilityForecaster().forecast(data, periods)
