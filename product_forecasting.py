"""
Product Forecasting Module

Per-product sales outlook and dataset-wide market insights for the
sales dashboard, plus a light ensemble forecast over daily, weekly or
monthly sales totals.

Key Features:
- Trend-aware product ranking with stock recommendations and risk levels
- Linear / moving average / exponential smoothing ensemble per granularity
- Hold-out accuracy check (MAPE, RMSE) for the ensemble
- Market insights: 30-day growth, best weekday, top product concentration
"""

import math

import pandas as pd
import streamlit as st

from business_rules import PRODUCT_RULES, INSIGHT_RULES
from forecast_math import (
    clamp,
    linear_regression,
    moving_average,
    exponential_smoothing,
    population_std,
    calculate_mape,
    calculate_rmse,
)
from forecasting_data_provider import GRANULARITIES, prepare_sales_records, group_sales_by_granularity
from utils import format_currency_short

GRANULAR_MODEL_NAME = 'Sales Trend Ensemble'
ENSEMBLE_WEIGHTS = {'trend': 0.4, 'moving_average': 0.3, 'exponential_smoothing': 0.3}
Z_SCORES = {90: 1.65, 95: 1.96}
DEFAULT_Z_SCORE = 2.58
MIN_ACCURACY_POINTS = 14
HOLDOUT_SHARE = 0.3

DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

PRODUCT_FORECAST_COLUMNS = [
    'product_name', 'total_revenue', 'total_quantity', 'sales_count',
    'daily_avg_revenue', 'daily_avg_quantity', 'trend', 'trend_strength',
    'forecast_revenue', 'forecast_90d', 'confidence_score',
    'recommended_action', 'risk_level',
]


# ===== GRANULAR ENSEMBLE =====

def _period_offset(granularity, steps):
    if granularity == 'weekly':
        return pd.DateOffset(weeks=steps)
    if granularity == 'monthly':
        return pd.DateOffset(months=steps)
    return pd.DateOffset(days=steps)


def generate_granular_forecast(grouped_df, metric='revenue', periods=30, confidence_level=95, granularity='daily'):
    """
    Forecast grouped sales totals with a 0.4 trend / 0.3 moving average /
    0.3 exponential smoothing blend.

    Args:
        grouped_df: Output of group_sales_by_granularity
        metric: 'revenue', 'orders' or 'quantity'
        periods: Number of future periods
        confidence_level: 90, 95 or 99 (anything else uses the 99% z-score)
        granularity: 'daily', 'weekly' or 'monthly'

    Returns:
        dict: forecasts (rows starting one period after the last grouped period)
        and models (name, accuracy as R² %, description)

    Raises:
        ValueError: For unknown granularities or metrics
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity '{granularity}'. Expected one of: {', '.join(GRANULARITIES)}")
    if grouped_df is None or grouped_df.empty:
        return {'forecasts': [], 'models': []}
    if metric not in grouped_df.columns:
        raise ValueError(f"Unknown metric '{metric}'")

    values = grouped_df[metric].astype(float).tolist()
    n = len(values)
    slope, intercept, r_squared = linear_regression(values)
    ma_prediction = moving_average(values, min(7, n))
    es_prediction = exponential_smoothing(values)
    std_dev = population_std(values)
    z_score = Z_SCORES.get(int(confidence_level), DEFAULT_Z_SCORE)

    # 'YYYY-MM' parses to the first of the month
    last_period = pd.Timestamp(str(grouped_df['period'].iloc[-1]))
    date_format = '%Y-%m' if granularity == 'monthly' else '%Y-%m-%d'

    forecasts = []
    for i in range(periods):
        trend_prediction = slope * (n + i) + intercept
        prediction = (
            trend_prediction * ENSEMBLE_WEIGHTS['trend']
            + ma_prediction * ENSEMBLE_WEIGHTS['moving_average']
            + es_prediction * ENSEMBLE_WEIGHTS['exponential_smoothing']
        )
        prediction = max(0.0, prediction)
        margin = std_dev * z_score * math.sqrt(1 + i * 0.1)

        forecasts.append({
            'date': (last_period + _period_offset(granularity, i + 1)).strftime(date_format),
            'predicted': round(prediction, 2),
            'lower_bound': round(max(0.0, prediction - margin), 2),
            'upper_bound': round(prediction + margin, 2),
            'confidence': max(50.0, float(confidence_level) - i * 0.5),
            'model': GRANULAR_MODEL_NAME,
            'components': {
                'trend': round(trend_prediction, 2),
                'moving_average': round(ma_prediction, 2),
                'exponential_smoothing': round(es_prediction, 2),
            },
        })

    return {
        'forecasts': forecasts,
        'models': [{
            'name': GRANULAR_MODEL_NAME,
            'accuracy': round(r_squared * 100, 2),
            'description': 'Combined linear regression, moving average, and exponential smoothing',
        }],
    }


def calculate_model_accuracy(grouped_df, metric='revenue'):
    """
    One-step-ahead exponential smoothing over the last 30% of periods.

    Returns:
        dict: mape, rmse, accuracy (100 - MAPE, floored at 0), or None
        with fewer than 14 periods
    """
    if grouped_df is None or len(grouped_df) < MIN_ACCURACY_POINTS:
        return None

    values = grouped_df[metric].astype(float).tolist()
    test_size = int(len(values) * HOLDOUT_SHARE)
    split = len(values) - test_size
    actual = values[split:]
    predictions = [exponential_smoothing(values[:split + j]) for j in range(test_size)]

    mape = calculate_mape(actual, predictions)
    return {
        'mape': round(mape, 2),
        'rmse': round(calculate_rmse(actual, predictions), 2),
        'accuracy': round(max(0.0, 100 - mape), 2),
    }


# ===== PRODUCT OUTLOOK =====

def calculate_product_trend(product_records, as_of):
    """
    Compare a product's recent revenue per selling day with its overall
    revenue per selling day.

    Args:
        product_records: Prepared sales records of a single product
        as_of: Last date of the whole dataset; the recent window ends here

    Returns:
        dict: direction ('increasing' | 'decreasing' | 'stable'),
        strength ('strong' | 'moderate') and ratio
    """
    rules = PRODUCT_RULES
    daily = product_records.groupby('date')['revenue'].sum()
    if daily.empty:
        return {'direction': 'stable', 'strength': 'moderate', 'ratio': 1.0}

    overall_avg = daily.mean()
    window_start = pd.Timestamp(as_of) - pd.Timedelta(days=rules['trend_window_days'])
    recent = daily[daily.index > window_start]
    recent_avg = recent.mean() if len(recent) else 0.0

    if overall_avg <= 0:
        return {'direction': 'stable', 'strength': 'moderate', 'ratio': 1.0}

    ratio = float(recent_avg / overall_avg)
    if ratio > rules['increasing_ratio']:
        direction = 'increasing'
    elif ratio < rules['decreasing_ratio']:
        direction = 'decreasing'
    else:
        direction = 'stable'
    strength = 'strong' if abs(ratio - 1) > rules['strong_trend_change'] else 'moderate'

    return {'direction': direction, 'strength': strength, 'ratio': round(ratio, 3)}


def get_recommended_action(direction, daily_revenue):
    """Stock action for a product: increase_stock, reduce_stock or maintain."""
    if direction == 'increasing' and daily_revenue > PRODUCT_RULES['increase_stock_min_daily_revenue']:
        return 'increase_stock'
    if direction == 'decreasing' and daily_revenue < PRODUCT_RULES['reduce_stock_max_daily_revenue']:
        return 'reduce_stock'
    return 'maintain'


def get_risk_level(direction, sales_count):
    if sales_count > PRODUCT_RULES['low_risk_min_sales'] and direction == 'increasing':
        return 'low'
    if sales_count < PRODUCT_RULES['high_risk_max_sales'] or direction == 'decreasing':
        return 'high'
    return 'medium'


def calculate_product_forecasts(records_df, top_products=10, forecast_days=30):
    """
    Revenue outlook for the best-selling products.

    Daily averages are per selling day. forecast_revenue covers forecast_days
    and forecast_90d a fixed 90 days at the product's daily average.

    Args:
        records_df: Output of prepare_sales_records
        top_products: Number of products to keep, by total revenue
        forecast_days: Horizon for forecast_revenue

    Returns:
        pd.DataFrame with PRODUCT_FORECAST_COLUMNS, highest revenue first
    """
    if records_df is None or records_df.empty:
        return pd.DataFrame(columns=PRODUCT_FORECAST_COLUMNS)

    rules = PRODUCT_RULES
    as_of = records_df['date'].max()

    rows = []
    for product_name, sales in records_df.groupby('product_name', sort=False):
        total_revenue = float(sales['revenue'].sum())
        total_quantity = float(sales['quantity'].sum())
        sales_count = len(sales)
        selling_days = max(1, sales['date'].nunique())
        daily_avg_revenue = total_revenue / selling_days
        trend = calculate_product_trend(sales, as_of)

        rows.append({
            'product_name': product_name,
            'total_revenue': total_revenue,
            'total_quantity': total_quantity,
            'sales_count': sales_count,
            'daily_avg_revenue': daily_avg_revenue,
            'daily_avg_quantity': total_quantity / selling_days,
            'trend': trend['direction'],
            'trend_strength': trend['strength'],
            'forecast_revenue': daily_avg_revenue * forecast_days,
            'forecast_90d': daily_avg_revenue * 90,
            'confidence_score': clamp(sales_count * rules['confidence_per_sale'],
                                      rules['min_confidence'], rules['max_confidence']),
            'recommended_action': get_recommended_action(trend['direction'], daily_avg_revenue),
            'risk_level': get_risk_level(trend['direction'], sales_count),
        })

    products = pd.DataFrame(rows, columns=PRODUCT_FORECAST_COLUMNS)
    products = products.sort_values('total_revenue', ascending=False, kind='stable')
    return products.head(int(top_products)).reset_index(drop=True)


# ===== MARKET INSIGHTS =====

def analyze_growth(records_df):
    """Revenue of the last 30 days against the 30 days before, ending at the last sale date."""
    rules = INSIGHT_RULES
    window = pd.Timedelta(days=rules['growth_window_days'])
    as_of = records_df['date'].max()
    recent_start = as_of - window
    previous_start = recent_start - window

    dates = records_df['date']
    recent_revenue = float(records_df.loc[dates > recent_start, 'revenue'].sum())
    previous_revenue = float(records_df.loc[(dates > previous_start) & (dates <= recent_start), 'revenue'].sum())
    if previous_revenue <= 0:
        return []

    growth_rate = (recent_revenue - previous_revenue) / previous_revenue * 100
    if abs(growth_rate) <= rules['growth_alert_pct']:
        return []

    growing = growth_rate > 0
    return [{
        'type': 'opportunity' if growing else 'risk',
        'title': 'Strong Growth Detected' if growing else 'Revenue Decline Alert',
        'description': (
            f"Revenue has {'increased' if growing else 'decreased'} by {abs(growth_rate):.1f}% "
            f"in the last {rules['growth_window_days']} days"
        ),
        'impact': 'high',
        'confidence': 85,
        'recommendation': (
            'Consider scaling up operations and marketing efforts' if growing
            else 'Review pricing strategy and customer satisfaction'
        ),
        'timeframe': 'Next 30-60 days',
        'data': {
            'growth_rate': growth_rate,
            'recent_revenue': recent_revenue,
            'previous_revenue': previous_revenue,
        },
    }]


def analyze_seasonal_patterns(records_df):
    weekdays = (records_df['date'].dt.dayofweek + 1) % 7
    by_weekday = records_df.groupby(weekdays)['revenue'].sum()
    if by_weekday.empty:
        return []

    best_day = DAY_NAMES[int(by_weekday.idxmax())]
    return [{
        'type': 'trend',
        'title': 'Weekly Pattern Detected',
        'description': f"{best_day} shows highest sales performance",
        'impact': 'medium',
        'confidence': 70,
        'recommendation': f"Focus marketing efforts and inventory preparation for {best_day}",
        'timeframe': 'Weekly recurring',
        'data': {'best_day': best_day, 'revenue': float(by_weekday.max())},
    }]


def analyze_top_products(records_df):
    """Flags a single product carrying more than 30% of revenue (a risk above 50%)."""
    rules = INSIGHT_RULES
    by_product = records_df.groupby('product_name')['revenue'].sum()
    total_revenue = by_product.sum()
    if len(by_product) <= 1 or total_revenue <= 0:
        return []

    top_product = by_product.idxmax()
    percentage = float(by_product.max() / total_revenue * 100)
    if percentage <= rules['top_product_share_pct']:
        return []

    concentrated = percentage > rules['concentration_risk_pct']
    return [{
        'type': 'risk' if concentrated else 'trend',
        'title': 'High Product Concentration Risk' if concentrated else 'Top Product Dominance',
        'description': f"{top_product} accounts for {percentage:.1f}% of total revenue",
        'impact': 'high' if concentrated else 'medium',
        'confidence': 80,
        'recommendation': (
            'Consider diversifying product portfolio to reduce dependency' if concentrated
            else 'Leverage success of top product for expansion opportunities'
        ),
        'timeframe': 'Strategic planning',
        'data': {'product': top_product, 'revenue': float(by_product.max()), 'percentage': percentage},
    }]


def generate_market_insights(records_df):
    """
    Growth, weekly pattern and product concentration insights.

    Returns:
        tuple: (logs, insights) where insights is a list of dicts with
        type, title, description, impact, confidence, recommendation, timeframe, data
    """
    logs = []
    if records_df is None or records_df.empty:
        logs.append("WARNING: No sales records available for market insights.")
        return logs, []

    insights = []
    insights.extend(analyze_growth(records_df))
    insights.extend(analyze_seasonal_patterns(records_df))
    insights.extend(analyze_top_products(records_df))

    logs.append(f"INFO: Generated {len(insights)} market insights from {len(records_df)} sales records.")
    return logs, insights


@st.cache_data(show_spinner="Generating sales trend forecast...")
def get_granular_forecast(sales_df, granularity='daily', metric='revenue', periods=30, confidence_level=95):
    """
    Group raw sales by day, week or month and forecast the chosen metric.

    Returns:
        tuple: (logs, grouped_df, forecast_df, accuracy) where accuracy is
        None when there are fewer than 14 periods
    """
    logs = []
    logs.append("--- Sales Trend Forecast ---")

    prep_logs, records = prepare_sales_records(sales_df)
    logs.extend(prep_logs)
    grouped_df = group_sales_by_granularity(records, granularity)
    if grouped_df.empty:
        logs.append("ERROR: No sales periods to forecast.")
        return logs, grouped_df, pd.DataFrame(), None

    result = generate_granular_forecast(grouped_df, metric, periods, confidence_level, granularity)
    accuracy = calculate_model_accuracy(grouped_df, metric)

    logs.append(f"INFO: {len(grouped_df)} {granularity} periods -> {periods} forecast periods of {metric}")
    if accuracy is None:
        logs.append(f"WARNING: Fewer than {MIN_ACCURACY_POINTS} periods, accuracy not measured.")
    else:
        logs.append(f"INFO: Hold-out MAPE {accuracy['mape']:.1f}%, accuracy {accuracy['accuracy']:.1f}%")

    forecast_df = pd.DataFrame(result['forecasts']).drop(columns=['components'], errors='ignore')
    return logs, grouped_df, forecast_df, accuracy


@st.cache_data(show_spinner="Generating product forecasts...")
def get_product_forecasts(sales_df, top_products=10, forecast_days=30):
    """
    Product outlook and market insights for the dashboard in one cached step.

    Args:
        sales_df: Raw sales DataFrame (see data_loader.load_sales_data)
        top_products: Number of products to keep
        forecast_days: Horizon for forecast_revenue

    Returns:
        tuple: (logs, product_df, insights)
    """
    logs = []
    logs.append("--- Product Forecasting ---")

    prep_logs, records = prepare_sales_records(sales_df)
    logs.extend(prep_logs)
    if records.empty:
        logs.append("ERROR: No valid sales records for product forecasting.")
        return logs, pd.DataFrame(columns=PRODUCT_FORECAST_COLUMNS), []

    products = calculate_product_forecasts(records, top_products, forecast_days)
    logs.append(
        f"INFO: Forecast {len(products)} of {records['product_name'].nunique()} products "
        f"over {forecast_days} days"
    )
    if not products.empty:
        top = products.iloc[0]
        logs.append(
            f"INFO: Top product '{top['product_name']}' "
            f"{format_currency_short(top['total_revenue'])} ({top['trend']})"
        )

    insight_logs, insights = generate_market_insights(records)
    logs.extend(insight_logs)

    return logs, products, insights
