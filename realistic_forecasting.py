"""
Realistic Forecasting Module

Natural-fluctuation forecaster: studies the micro-structure of the
historical series (persistence, mean reversion, jumps, volatility
clustering) and reproduces similar day-to-day behaviour in the forecast.

Key Features:
- Market behaviour analysis (realized volatility, log-trend R², cyclical
  strengths, return autocorrelations, regime, natural fluctuation)
- Additive daily model: trend + mean reversion + seasonal + momentum +
  volatility waves + deterministic noise
- GARCH-like volatility state, momentum decay and regime switching
- Holdout-validated metrics with volatility and naturalness scores
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
    linear_regression,
    daily_returns,
    population_std,
    pseudo_random,
    calculate_mae,
    calculate_rmse,
    cap_confidence,
)

MIN_POINTS = 7
MIN_POINTS_FOR_ANALYSIS = 14
AUTOCORRELATION_LAGS = [1, 2, 3, 5, 7]

DEFAULT_MICROSTRUCTURE = {
    'persistence': 0.4,
    'mean_reversion': 0.6,
    'jump_frequency': 0.1,
    'clustering_effect': 0.3,
}

# Sunday -> Saturday
NATURAL_DAY_WEIGHTS = [0.85, 1.0, 1.1, 1.15, 1.2, 1.25, 0.9]

REGIME_VOLATILITY_MULTIPLIERS = {
    'trending': 0.8,
    'volatile': 1.4,
    'ranging': 1.1,
}

GARCH_ALPHA = 0.1
GARCH_BETA = 0.85
REGIME_SWITCH_THRESHOLD = 0.02


# ===== MARKET BEHAVIOUR ANALYSIS =====

def _realized_volatility(returns):
    if len(returns) < 5:
        return 0.15
    return clamp(population_std(returns), 0.08, 0.35)


def _log_trend_strength(values):
    """R² of a linear fit on log values, in [0, 1]."""
    if len(values) < 7:
        return 0.0
    _, _, r_squared = linear_regression(np.log(np.maximum(1.0, values)))
    return clamp(r_squared, 0.0, 1.0)


def _seasonal_strength(values, period):
    if len(values) < period * 2:
        return 0.0
    positions = np.arange(len(values)) % period
    averages = np.array([values[positions == k].mean() for k in range(period)])
    overall_mean = values.mean()
    total_variance = np.mean((values - overall_mean) ** 2)
    if total_variance <= 0:
        return 0.0
    seasonal_variance = np.mean((averages - overall_mean) ** 2)
    return min(1.0, float(seasonal_variance / total_variance))


def _cyclical_patterns(values):
    patterns = []
    for period, min_length in ((7, 21), (14, 42), (30, 90)):
        if len(values) >= min_length:
            patterns.append(_seasonal_strength(values, period))
    return patterns


def _return_autocorrelations(returns, lags):
    """Mean lagged cross-product of returns (not normalized), clamped to [-1, 1]."""
    correlations = []
    for lag in lags:
        if len(returns) <= lag:
            correlations.append(0.0)
            continue
        value = float(np.mean(returns[:-lag] * returns[lag:]))
        correlations.append(clamp(value, -1.0, 1.0))
    return correlations


def _classify_regime(returns, trend_strength):
    if len(returns) < 10:
        return 'ranging'
    volatility = _realized_volatility(returns)
    avg_return = float(np.mean(returns[-10:]))
    if trend_strength > 0.4 and abs(avg_return) > volatility * 0.5:
        return 'trending'
    if volatility > 0.25:
        return 'volatile'
    return 'ranging'


def _natural_fluctuation(values):
    """Median absolute day-over-day change, bounded to 3%-20%."""
    if len(values) < 7:
        return 0.08
    changes = np.abs(daily_returns(values))
    if len(changes) == 0:
        return 0.08
    median_change = float(np.sort(changes)[len(changes) // 2])
    return clamp(median_change, 0.03, 0.20)


def _microstructure(returns):
    if len(returns) < 20:
        return dict(DEFAULT_MICROSTRUCTURE)

    persistence = _return_autocorrelations(returns, [1])[0]
    longer = _return_autocorrelations(returns, [5, 10])
    mean_reversion = max(0.0, -sum(longer) / len(longer))

    threshold = _realized_volatility(returns) * 2
    jump_frequency = float(np.sum(np.abs(returns) > threshold)) / len(returns)

    clustering = _return_autocorrelations(np.abs(returns), [1])[0]

    return {
        'persistence': clamp(persistence, 0.0, 1.0),
        'mean_reversion': clamp(mean_reversion, 0.0, 1.0),
        'jump_frequency': clamp(jump_frequency, 0.0, 0.3),
        'clustering_effect': clamp(clustering, 0.0, 1.0),
    }


def analyze_market_characteristics(data):
    """
    Analyze the natural behaviour of a daily revenue series.

    Args:
        data: Chronological list of {'date', 'value'} points

    Returns:
        dict with base_volatility, trend_strength, cyclical_patterns,
        autocorrelations, regime, natural_fluctuation and microstructure
    """
    if len(data) < MIN_POINTS_FOR_ANALYSIS:
        return {
            'base_volatility': 0.15,
            'trend_strength': 0.0,
            'cyclical_patterns': [],
            'autocorrelations': [0.3, 0.2, 0.1],
            'regime': 'ranging',
            'natural_fluctuation': 0.08,
            'microstructure': dict(DEFAULT_MICROSTRUCTURE),
        }

    values = extract_values(data)
    returns = daily_returns(values)
    trend_strength = _log_trend_strength(values)

    return {
        'base_volatility': _realized_volatility(returns),
        'trend_strength': trend_strength,
        'cyclical_patterns': _cyclical_patterns(values),
        'autocorrelations': _return_autocorrelations(returns, AUTOCORRELATION_LAGS),
        'regime': _classify_regime(returns, trend_strength),
        'natural_fluctuation': _natural_fluctuation(values),
        'microstructure': _microstructure(returns),
    }


# ===== FORECASTER =====

class RealisticNaturalForecaster:
    """Forecaster that mimics the natural day-to-day behaviour of the history."""

    model_name = 'Realistic Natural Forecaster'

    def forecast(self, data, periods, validate=True):
        """
        Args:
            data: List of {'date', 'value'} points (at least 7), chronological
            periods: Number of future days
            validate: Run a holdout re-forecast to measure accuracy

        Returns:
            dict: {'forecasts', 'metrics', 'analysis'}

        Raises:
            ValueError: If fewer than 7 points are supplied
        """
        if len(data) < MIN_POINTS:
            raise ValueError(f"Need at least {MIN_POINTS} data points for realistic forecasting")

        analysis = analyze_market_characteristics(data)
        values = extract_values(data)
        recent_avg = mean_of(values[-14:])
        base_trend = self._smooth_trend(values)

        state = {
            'current_value': float(values[-1]),
            'momentum': self._initial_momentum(values[-10:]),
            'volatility': analysis['base_volatility'],
            'regime': analysis['regime'],
        }

        last_date = to_date(data[-1]['date'])
        forecasts = []
        confidence = None
        for i in range(1, periods + 1):
            future_date = last_date + pd.Timedelta(days=i)
            step = self._predict_step(state, base_trend, i, analysis, recent_avg, future_date)
            predicted = max(0.0, step['predicted'])

            confidence = cap_confidence(self._confidence(i, analysis, state['volatility']), confidence)
            uncertainty = self._uncertainty(predicted, i, analysis, state['volatility'])

            forecasts.append({
                'date': format_date(future_date),
                'predicted': predicted,
                'lower_bound': max(0.0, predicted - uncertainty),
                'upper_bound': predicted + uncertainty,
                'confidence': confidence,
                'model': self.model_name,
                'components': {
                    'trend': step['trend'],
                    'seasonal': step['seasonal'],
                    'volatility': step['volatility'],
                    'noise': step['noise'],
                    'momentum': step['momentum'],
                },
            })

            daily_return = step['daily_return']
            state['current_value'] = predicted
            state['momentum'] = self._update_momentum(state['momentum'], daily_return, i)
            state['volatility'] = self._update_volatility(state['volatility'], daily_return, analysis)
            state['regime'] = self._update_regime(state['regime'], daily_return, i)

        metrics = self._metrics(data, forecasts, analysis, validate)
        return {'forecasts': forecasts, 'metrics': metrics, 'analysis': analysis}

    def _smooth_trend(self, values):
        """Annualized trend from the last three weeks, bounded to [-30%, +50%]."""
        if len(values) < 14:
            return 0.0
        short_avg = mean_of(values[-7:])
        medium_avg = mean_of(values[-14:-7])
        long_avg = mean_of(values[-21:-14], default=medium_avg)

        short_trend = (short_avg - medium_avg) / medium_avg if medium_avg > 0 else 0.0
        medium_trend = (medium_avg - long_avg) / long_avg if long_avg > 0 else 0.0
        return clamp((short_trend * 0.7 + medium_trend * 0.3) * (365 / 7), -0.30, 0.50)

    def _initial_momentum(self, recent_values):
        if len(recent_values) < 3:
            return 0.0
        total = 0.0
        weight_sum = 0.0
        for i in range(1, len(recent_values)):
            if recent_values[i - 1] > 0:
                change = (recent_values[i] - recent_values[i - 1]) / recent_values[i - 1]
                total += change * i
                weight_sum += i
        return total / weight_sum if weight_sum > 0 else 0.0

    def _predict_step(self, state, base_trend, day_index, analysis, recent_avg, future_date):
        current = state['current_value']
        micro = analysis['microstructure']

        mean_reversion = (recent_avg - current) / recent_avg * 0.1 if recent_avg > 0 else 0.0
        trend = current * (base_trend / 365 + mean_reversion)
        seasonal = self._seasonal(current, day_index, future_date, analysis)
        momentum = current * state['momentum'] * micro['persistence'] * 0.3
        volatility = self._volatility_wave(current, day_index, state['volatility'], analysis, state['regime'])
        noise = self._noise(current, day_index, analysis['natural_fluctuation'], micro)

        raw = current + trend + seasonal + momentum + volatility + noise
        predicted = clamp(raw, current * 0.70, current * 1.40)
        daily_return = (predicted - current) / current if current > 0 else 0.0

        return {
            'predicted': predicted,
            'trend': trend,
            'seasonal': seasonal,
            'momentum': momentum,
            'volatility': volatility,
            'noise': noise,
            'daily_return': daily_return,
        }

    def _seasonal(self, current, day_index, date, analysis):
        seasonal = (
            math.sin(2 * math.pi * day_index / 7) * current * 0.04
            + math.sin(2 * math.pi * day_index / 14) * current * 0.02
            + math.sin(2 * math.pi * day_index / 30) * current * 0.015
            + (NATURAL_DAY_WEIGHTS[js_weekday(date)] - 1) * current * 0.03
        )
        patterns = analysis['cyclical_patterns']
        if patterns:
            seasonal *= 1 + sum(patterns) / len(patterns)
        return seasonal

    def _volatility_wave(self, current, day_index, volatility, analysis, regime):
        multiplier = REGIME_VOLATILITY_MULTIPLIERS.get(regime, 1.0)
        wave = (
            math.sin(day_index * 0.1 + math.pi * 0.3) * 0.4
            + math.sin(day_index * 0.15 + math.pi * 0.7) * 0.3
            + math.cos(day_index * 0.08 + math.pi * 0.5) * 0.2
            + math.cos(day_index * 0.12 + math.pi * 0.9) * 0.1
        )
        clustering = 1 + abs(math.sin(day_index * 0.05)) * analysis['microstructure']['clustering_effect']
        value = current * volatility * multiplier * wave * clustering
        return clamp(value, -current * 0.15, current * 0.15)

    def _noise(self, current, day_index, natural_fluctuation, micro):
        seed1 = pseudo_random(day_index * 1.3 + 0.7) - 0.5
        seed2 = pseudo_random(day_index * 2.1 + 1.3) - 0.5
        seed3 = pseudo_random(day_index * 0.9 + 2.1) - 0.5
        base_noise = seed1 * 0.5 + seed2 * 0.3 + seed3 * 0.2

        persistence_effect = 1 + base_noise * micro['persistence'] * 0.3
        jump_effect = base_noise * micro['jump_frequency'] * 2 if abs(base_noise) > 0.8 else 0.0

        total = (base_noise * persistence_effect + jump_effect) * natural_fluctuation * current
        return clamp(total, -current * 0.08, current * 0.08)

    def _update_momentum(self, momentum, daily_return, day_index):
        decay = math.exp(-day_index / 15)
        return clamp(momentum * 0.6 * decay + daily_return * 0.4, -0.15, 0.15)

    def _update_volatility(self, volatility, daily_return, analysis):
        updated = math.sqrt(GARCH_ALPHA * daily_return ** 2 + GARCH_BETA * volatility ** 2)
        base = analysis['base_volatility']
        return clamp(updated, base * 0.5, base * 2.0)

    def _update_regime(self, regime, daily_return, day_index):
        if day_index > 5:
            if daily_return > REGIME_SWITCH_THRESHOLD:
                return 'trending'
            if daily_return < -REGIME_SWITCH_THRESHOLD:
                return 'volatile'
        return regime

    def _confidence(self, day_index, analysis, volatility):
        base = max(40.0, 85 - day_index * 0.3)
        quality_bonus = analysis['trend_strength'] * 10
        base_volatility = analysis['base_volatility']
        penalty = (volatility - base_volatility) / base_volatility * 5 if base_volatility > 0 else 0.0
        return clamp(base + quality_bonus - penalty, 30.0, 85.0)

    def _uncertainty(self, predicted, day_index, analysis, volatility):
        base = predicted * volatility * math.sqrt(day_index / 7)
        business = predicted * 0.25
        regime = predicted * analysis['natural_fluctuation'] * 2
        return max(base, min(business, regime))

    def _metrics(self, data, forecasts, analysis, validate):
        natural_score = min(95.0, 50 + analysis['natural_fluctuation'] * 200 + analysis['base_volatility'] * 100)
        volatility_score = min(100.0, analysis['base_volatility'] * 300)

        mape = max(8.0, 25 - analysis['trend_strength'] * 15)
        mae = 0.0
        rmse = 0.0
        r_squared = clamp(analysis['trend_strength'] * 0.6 + 0.25, 0.3, 0.85)

        validation_size = min(7, int(len(data) * 0.2))
        if validate and validation_size > 0 and len(data) > validation_size + 7:
            training = data[:len(data) - validation_size]
            holdout = extract_values(data[len(data) - validation_size:])
            result = self.forecast(training, validation_size, validate=False)
            predicted = np.array([f['predicted'] for f in result['forecasts']])

            errors = holdout - predicted
            relative = np.where(holdout > 0, np.abs(errors) / np.where(holdout > 0, holdout, 1), 0.0)
            mape = clamp(float(np.mean(relative)) * 100, 5.0, 40.0)
            mae = calculate_mae(holdout, predicted)
            rmse = calculate_rmse(holdout, predicted)

            total_ss = float(np.sum((holdout - holdout.mean()) ** 2))
            if total_ss > 0:
                r_squared = clamp(1 - float(np.sum(errors ** 2)) / total_ss, 0.0, 0.95)

        confidence = clamp(100 - mape * 1.8, 65.0, 95.0)
        r_squared = clamp(r_squared, 0.15, 0.95)

        return {
            'mape': round(mape, 2),
            'mae': round(mae, 2),
            'rmse': round(rmse, 2),
            'confidence': round(confidence),
            'r_squared': round(r_squared, 3),
            'quality_score': round(confidence * 0.8),
            'volatility_score': round(volatility_score),
            'natural_score': round(natural_score),
        }


def generate_realistic_forecast(data, periods):
    """
    Run the natural forecaster, returning an empty result for short histories.

    Returns:
        dict: {'forecasts', 'metrics', 'best_model', 'analysis'}
    """
    if len(data) < MIN_POINTS:
        return {
            'forecasts': [],
            'metrics': {
                'mape': 0, 'mae': 0, 'rmse': 0, 'confidence': 0, 'r_squared': 0,
                'quality_score': 0, 'volatility_score': 0, 'natural_score': 0,
            },
            'best_model': 'None',
            'analysis': None,
        }

    result = RealisticNaturalForecaster().forecast(data, periods)
    return {
        'forecasts': result['forecasts'],
        'metrics': result['metrics'],
        'best_model': RealisticNaturalForecaster.model_name,
        'analysis': result['analysis'],
    }
