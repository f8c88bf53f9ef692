"""
Forecast Math Module

Shared numerical helpers used by every forecasting engine.
Plain numpy implementations over short daily revenue series.

Key Features:
- Linear regression with R² over an index axis
- Quantiles with linear interpolation (matches the IQR outlier rules)
- Pearson and relative-difference autocorrelation
- Deterministic pseudo-random sources (string hash and sine fraction)
- Moving average and exponential smoothing
- Forecast accuracy metrics (MAPE, MAE, RMSE)
"""

import math

import numpy as np
import pandas as pd


# ===== BASIC HELPERS =====

def clamp(value, low, high):
    """Clamp value into the closed range [low, high]."""
    return max(low, min(high, value))


def to_date(value) -> pd.Timestamp:
    """Normalize an ISO string / datetime / Timestamp to a midnight Timestamp."""
    return pd.Timestamp(value).normalize()


def format_date(value) -> str:
    """Return the ISO date (YYYY-MM-DD) for any date-like value."""
    return to_date(value).strftime('%Y-%m-%d')


def js_weekday(date) -> int:
    """Day of week with Sunday = 0 ... Saturday = 6 (the order all weight tables use)."""
    return (to_date(date).dayofweek + 1) % 7


def extract_values(data) -> np.ndarray:
    """Pull the value column out of a list of data points as a float array."""
    return np.array([float(point['value']) for point in data], dtype=float)


def sort_by_date(data) -> list:
    """Return a new list of data points ordered chronologically."""
    return sorted(data, key=lambda point: format_date(point['date']))


def mean_of(values, default=0.0) -> float:
    """Mean of a sequence, or default when empty."""
    if len(values) == 0:
        return default
    return float(np.mean(values))


# ===== REGRESSION & STATISTICS =====

def linear_regression(values) -> tuple:
    """
    Ordinary least squares of values against x = 0..n-1.

    Args:
        values: Sequence of numeric values

    Returns:
        tuple: (slope, intercept, r_squared). Degenerate inputs give a flat line.
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n == 0:
        return 0.0, 0.0, 0.0
    if n == 1:
        return 0.0, float(y[0]), 0.0

    x = np.arange(n, dtype=float)
    denominator = n * np.sum(x * x) - np.sum(x) ** 2
    if denominator == 0:
        return 0.0, float(np.mean(y)), 0.0

    slope = (n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denominator
    intercept = (np.sum(y) - slope * np.sum(x)) / n

    fitted = slope * x + intercept
    ss_res = np.sum((y - fitted) ** 2)
    ss_tot = np.sum((y - np.mean(y)) ** 2)
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    if not np.isfinite(slope):
        return 0.0, float(np.mean(y)), 0.0
    return float(slope), float(intercept), float(max(0.0, r_squared))


def quantile(values, q: float) -> float:
    """Quantile with linear interpolation between closest ranks."""
    arr = np.asarray(values, dtype=float)
    if len(arr) == 0:
        return 0.0
    return float(np.quantile(arr, q))


def pearson_autocorrelation(values, lag: int) -> float:
    """Pearson correlation between the series and itself shifted by lag."""
    arr = np.asarray(values, dtype=float)
    if lag <= 0 or len(arr) <= lag + 1:
        return 0.0
    head = arr[:-lag]
    tail = arr[lag:]
    head_dev = head - head.mean()
    tail_dev = tail - tail.mean()
    denominator = math.sqrt(float(np.sum(head_dev ** 2)) * float(np.sum(tail_dev ** 2)))
    if denominator == 0:
        return 0.0
    return float(np.sum(head_dev * tail_dev) / denominator)


def relative_autocorrelation(values, lag: int) -> float:
    """
    Average relative change between each value and the value lag days earlier.
    Used as a cheap cyclical-pattern strength; returns 0 for short series.
    """
    arr = np.asarray(values, dtype=float)
    if len(arr) < lag * 2:
        return 0.0
    current = arr[lag:]
    lagged = arr[:-lag]
    mask = (current > 0) & (lagged > 0)
    total = np.sum((current[mask] - lagged[mask]) / np.maximum(current[mask], lagged[mask]))
    return float(abs(total / len(current)))


def daily_returns(values) -> np.ndarray:
    """Day-over-day relative changes, skipping days whose previous value is not positive."""
    arr = np.asarray(values, dtype=float)
    if len(arr) < 2:
        return np.array([], dtype=float)
    previous = arr[:-1]
    mask = previous > 0
    return (arr[1:][mask] - previous[mask]) / previous[mask]


def population_std(values) -> float:
    """Standard deviation with the n denominator."""
    arr = np.asarray(values, dtype=float)
    if len(arr) == 0:
        return 0.0
    return float(np.std(arr))


# ===== DETERMINISTIC NOISE SOURCES =====

def hash_string(text: str) -> int:
    """
    32-bit rolling string hash (h = h * 31 + ch), returned as an absolute value.
    Gives a stable per-date seed so forecasts are reproducible.
    """
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def pseudo_random(seed: float) -> float:
    """Fractional part of sin(seed) * 10000, in [0, 1)."""
    x = math.sin(seed) * 10000
    return x - math.floor(x)


# ===== SMOOTHING =====

def moving_average(values, window: int) -> float:
    """Average of the last `window` values (all values if fewer)."""
    arr = np.asarray(values, dtype=float)
    if len(arr) == 0:
        return 0.0
    return float(np.mean(arr[-window:]))


def exponential_smoothing(values, alpha=0.3):
    """Simple exponential smoothing; returns the final smoothed level."""
    if len(values) == 0:
        return 0.0
    smoothed = float(values[0])
    for value in values[1:]:
        smoothed = alpha * float(value) + (1 - alpha) * smoothed
    return smoothed


# ===== ACCURACY METRICS =====

def calculate_mape(actual, forecast):
    """Mean Absolute Percentage Error, ignoring periods with zero actuals."""
    actual = np.asarray(actual, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    mask = actual != 0
    if not mask.any():
        return 0.0
    return float(np.mean(np.abs((actual[mask] - forecast[mask]) / actual[mask])) * 100)


def calculate_mae(actual, forecast):
    actual = np.asarray(actual, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    if len(actual) == 0:
        return 0.0
    return float(np.mean(np.abs(actual - forecast)))


def calculate_rmse(actual, forecast):
    actual = np.asarray(actual, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    if len(actual) == 0:
        return 0.0
    return float(np.sqrt(np.mean((actual - forecast) ** 2)))


def percent_error_metrics(percent_errors, level):
    """
    MAPE, MAE and RMSE from absolute percentage errors measured against a
    reference level (recent average revenue).

    Returns:
        tuple: (mape, mae, rmse)
    """
    errors = np.asarray(percent_errors, dtype=float)
    if len(errors) == 0:
        return 0.0, 0.0, 0.0
    absolute = errors * level / 100
    baseline = np.zeros_like(absolute)
    return float(np.mean(errors)), calculate_mae(absolute, baseline), calculate_rmse(absolute, baseline)


def cap_confidence(confidence, previous):
    """Confidence for the next forecast day, never above the day before."""
    if previous is None:
        return confidence
    return min(confidence, previous)


def build_metrics(mape, mae, rmse, confidence, r_squared, quality_score=None) -> dict:
    """Assemble a metrics dict with the rounding every engine reports."""
    if quality_score is None:
        quality_score = confidence * r_squared / 100
    return {
        'mape': round(float(mape), 2),
        'mae': round(float(mae), 2),
        'rmse': round(float(rmse), 2),
        'confidence': round(float(confidence), 2),
        'r_squared': round(float(r_squared), 3),
        'quality_score': round(float(quality_score), 2),
    }
