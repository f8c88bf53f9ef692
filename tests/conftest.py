"""
Pytest configuration and shared fixtures for all tests
Synthetic daily revenue series and raw marketplace sales exports
"""

import pytest
import numpy as np
import pandas as pd
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Sunday -> Saturday shape of a typical fashion week
WEEKLY_SHAPE = [0.75, 0.9, 1.0, 1.05, 1.1, 1.3, 0.95]


def make_daily_series(days, start='2024-01-01', base=1_000_000, growth=0.001, noise=0.05, seed=42):
    """
    Daily revenue points with a weekly pattern, gentle growth and mild noise.
    Values are always positive.
    """
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=days, freq='D')
    data = []
    for i, date in enumerate(dates):
        weekday = (date.dayofweek + 1) % 7
        value = base * WEEKLY_SHAPE[weekday] * (1 + growth * i) * (1 + rng.normal(0, noise))
        data.append({'date': date.strftime('%Y-%m-%d'), 'value': max(1000.0, float(value))})
    return data


def make_points(values, start='2024-01-01'):
    """Data points for an explicit list of values on consecutive days."""
    dates = pd.date_range(start, periods=len(values), freq='D')
    return [{'date': d.strftime('%Y-%m-%d'), 'value': float(v)} for d, v in zip(dates, values)]


# ===== DAILY SERIES FIXTURES =====

@pytest.fixture
def short_series():
    """Five days: too short for everything except the simple trend forecaster."""
    return make_daily_series(5)


@pytest.fixture
def month_series():
    """Thirty days of revenue."""
    return make_daily_series(30)


@pytest.fixture
def quarter_series():
    """120 days: enough for the ARIMA-like and Prophet-like ensemble."""
    return make_daily_series(120)


@pytest.fixture
def year_series():
    """400 days covering a full fashion year."""
    return make_daily_series(400, start='2023-01-01')


@pytest.fixture
def point_factory():
    return make_points


@pytest.fixture
def series_factory():
    return make_daily_series


# ===== SALES EXPORT FIXTURES =====

@pytest.fixture
def raw_sales_df():
    """
    Raw sales rows covering:
    - Settlement lower than order amount (revenue is the max)
    - Missing settlement (falls back to revenue for profit)
    - Delivered date preferred over created date
    - A zero-amount row and a row without any date (both dropped)
    """
    return pd.DataFrame({
        'order_id': ['SO-1', 'SO-2', 'SO-3', 'SO-4', 'SO-5'],
        'product_name': ['Kemeja Batik', 'Gamis Syari', 'Kemeja Batik', 'Rok Plisket', 'Gamis Syari'],
        'marketplace': ['Shopee', 'Tokopedia', 'Shopee', 'Lazada', 'Tokopedia'],
        'order_amount': [100000.0, 200000.0, 0.0, 50000.0, 150000.0],
        'settlement_amount': [90000.0, 0.0, 0.0, 45000.0, 140000.0],
        'hpp': [50000.0, 80000.0, 0.0, 20000.0, 60000.0],
        'quantity': [1, 2, 1, 1, 3],
        'created_time': pd.to_datetime(['2024-01-01', '2024-01-01', '2024-01-01', None, '2024-01-01']),
        'delivered_time': pd.to_datetime([None, '2024-01-02', None, None, None]),
    })


@pytest.fixture
def daily_sales_df():
    """Sixty days already aggregated to the daily layout of aggregate_daily_sales."""
    data = make_daily_series(60)
    orders = [10 + i % 7 for i in range(len(data))]
    return pd.DataFrame({
        'date': pd.to_datetime([p['date'] for p in data]),
        'revenue': [p['value'] for p in data],
        'orders': orders,
        'quantity': [o * 2 for o in orders],
        'profit': [p['value'] * 0.4 for p in data],
        'avg_order_value': [p['value'] / o for p, o in zip(data, orders)],
        'marketplace_breakdown': [{'Shopee': p['value'] * 0.6, 'Tokopedia': p['value'] * 0.4} for p in data],
    })


# ===== SHARED ASSERTIONS =====

def _check_forecast_rows(forecasts, periods, last_date=None):
    assert len(forecasts) == periods
    for row in forecasts:
        assert row['predicted'] >= 0
        assert row['lower_bound'] >= 0
        assert row['lower_bound'] <= row['predicted'] + 1e-6
        assert row['predicted'] <= row['upper_bound'] + 1e-6
        assert isinstance(row['model'], str) and row['model']
        assert isinstance(row['components'], dict)
    if last_date is not None and forecasts:
        expected = pd.date_range(pd.Timestamp(last_date) + pd.Timedelta(days=1), periods=periods, freq='D')
        assert [row['date'] for row in forecasts] == [d.strftime('%Y-%m-%d') for d in expected]


@pytest.fixture
def assert_valid_forecast():
    """Row-level checks every engine must pass: bounds, horizon length, consecutive dates."""
    return _check_forecast_rows
