"""
Forecasting Data Provider Module

Turns raw marketplace sales records into the daily series every
forecasting engine consumes.

Key Features:
- Revenue taken as the highest of settlement / total / order amount / revenue
- Profit as settlement amount minus HPP (cost of goods)
- Most reliable date chosen per record (delivered -> created -> order date)
- Daily aggregation with average order value and marketplace breakdown
- Dataset summary with a data quality tier and per-algorithm validation
- Daily, weekly (Sunday start) or monthly grouping of sales totals
"""

import pandas as pd
import numpy as np
import streamlit as st

from business_rules import classify_data_quality, get_algorithm_requirements
from data_loader import DATE_COLUMNS, REVENUE_COLUMNS
from utils import format_currency_short

DAILY_COLUMNS = ['date', 'revenue', 'orders', 'quantity', 'profit', 'avg_order_value', 'marketplace_breakdown']
ENGINE_VALUE_COLUMNS = {'revenue': 'revenue', 'orders': 'orders', 'profit': 'profit'}
GRANULARITIES = ('daily', 'weekly', 'monthly')
GROUPED_COLUMNS = ['period', 'revenue', 'orders', 'quantity']


def _numeric(df, col):
    if col not in df.columns:
        return pd.Series(0.0, index=df.index)
    return pd.to_numeric(df[col], errors='coerce').fillna(0.0)


def _text(df, candidates, default):
    result = pd.Series(default, index=df.index, dtype=object)
    for col in reversed(candidates):
        if col in df.columns:
            values = df[col].astype(object)
            valid = values.notna() & (values.astype(str).str.strip() != '')
            result = result.where(~valid, values)
    return result


def prepare_sales_records(sales_df):
    """
    Validate and normalize raw sales rows into forecasting records.

    A row is kept when it has a positive settlement, total, order or
    revenue amount and at least one date column.

    Args:
        sales_df: Raw sales DataFrame (see data_loader.load_sales_data)

    Returns:
        tuple: (logs, records_df) with columns date, revenue, orders, quantity,
        profit, settlement_amount, hpp, product_name, marketplace, customer, location
    """
    logs = []
    logs.append("--- Sales Record Preparation ---")

    if sales_df is None or sales_df.empty:
        logs.append("ERROR: No sales data provided.")
        return logs, pd.DataFrame()

    df = sales_df.copy()

    date_series = pd.Series(pd.NaT, index=df.index)
    for col in reversed(DATE_COLUMNS):
        if col in df.columns:
            parsed = pd.to_datetime(df[col], errors='coerce')
            date_series = parsed.where(parsed.notna(), date_series)
    date_series = pd.to_datetime(date_series)

    amounts = pd.concat([_numeric(df, col) for col in REVENUE_COLUMNS], axis=1)
    has_valid_revenue = (amounts > 0).any(axis=1)
    has_valid_date = date_series.notna()

    valid = has_valid_revenue & has_valid_date
    dropped = int((~valid).sum())
    if dropped:
        logs.append(f"WARNING: Dropped {dropped} rows without a positive amount or a valid date.")

    df = df[valid]
    if df.empty:
        logs.append("ERROR: No valid sales data after filtering.")
        return logs, pd.DataFrame()

    revenue = amounts[valid].max(axis=1)
    settlement = _numeric(df, 'settlement_amount')
    settlement = settlement.where(settlement != 0, revenue)
    hpp = _numeric(df, 'hpp')
    if 'product_cost' in df.columns:
        hpp = hpp.where(hpp != 0, _numeric(df, 'product_cost'))
    quantity = _numeric(df, 'quantity')

    records = pd.DataFrame({
        'date': date_series[valid].dt.normalize(),
        'revenue': revenue,
        'orders': 1,
        'quantity': quantity.where(quantity != 0, 1),
        'profit': settlement - hpp,
        'settlement_amount': settlement,
        'hpp': hpp,
        'product_name': _text(df, ['nama_produk', 'product_name', 'product'], 'Unknown Product'),
        'marketplace': _text(df, ['marketplace'], 'Unknown'),
        'customer': _text(df, ['customer_name', 'customer'], ''),
        'location': _text(df, ['location', 'regency_city', 'city', 'province'], ''),
    })
    records = records.sort_values('date', kind='stable').reset_index(drop=True)

    logs.append(f"INFO: {len(records)} valid sales records out of {len(sales_df)} raw rows.")
    return logs, records


def aggregate_daily_sales(records_df):
    """
    Aggregate prepared sales records into one row per day.

    Returns:
        pd.DataFrame with date, revenue, orders, quantity, profit,
        avg_order_value and marketplace_breakdown (dict of revenue by marketplace)
    """
    if records_df is None or records_df.empty:
        return pd.DataFrame(columns=DAILY_COLUMNS)

    daily = records_df.groupby('date', as_index=False).agg(
        revenue=('revenue', 'sum'),
        orders=('orders', 'sum'),
        quantity=('quantity', 'sum'),
        profit=('profit', 'sum'),
    )
    daily['avg_order_value'] = np.where(daily['orders'] > 0, daily['revenue'] / daily['orders'].clip(lower=1), 0.0)

    by_marketplace = records_df.groupby(['date', 'marketplace'], as_index=False)['revenue'].sum()
    breakdown = {
        date: dict(zip(group['marketplace'], group['revenue']))
        for date, group in by_marketplace.groupby('date')
    }
    daily['marketplace_breakdown'] = [breakdown.get(date, {}) for date in daily['date']]

    return daily.sort_values('date').reset_index(drop=True)[DAILY_COLUMNS]


def summarize_sales_data(records_df, daily_df):
    """
    Dataset summary used by the dashboard header and algorithm validation.

    Returns:
        dict: total_records, total_revenue, total_profit, earliest, latest,
        days_covered, daily_points, data_quality, unique_marketplaces, unique_products
    """
    if records_df is None or records_df.empty:
        return {
            'total_records': 0,
            'total_revenue': 0.0,
            'total_profit': 0.0,
            'earliest': None,
            'latest': None,
            'days_covered': 0,
            'daily_points': 0,
            'data_quality': classify_data_quality(0, 0),
            'unique_marketplaces': [],
            'unique_products': [],
        }

    earliest = records_df['date'].min()
    latest = records_df['date'].max()
    days_covered = int((latest - earliest).days)
    total_records = len(records_df)

    return {
        'total_records': total_records,
        'total_revenue': float(records_df['revenue'].sum()),
        'total_profit': float(records_df['profit'].sum()),
        'earliest': earliest.strftime('%Y-%m-%d'),
        'latest': latest.strftime('%Y-%m-%d'),
        'days_covered': days_covered,
        'daily_points': 0 if daily_df is None else len(daily_df),
        'data_quality': classify_data_quality(total_records, days_covered),
        'unique_marketplaces': list(pd.unique(records_df['marketplace'])),
        'unique_products': list(pd.unique(records_df['product_name'])),
    }


def validate_data_for_algorithm(summary, algorithm):
    """
    Check whether a dataset meets the data requirements of an algorithm family.

    Args:
        summary: Output of summarize_sales_data
        algorithm: 'basic', 'hybrid', 'arima', 'prophet' or 'advanced'

    Returns:
        dict: is_valid, recommendation, requirements (min_points, min_days, actual)

    Raises:
        ValueError: For unknown algorithm names
    """
    requirement = get_algorithm_requirements(algorithm)
    actual = {'points': summary.get('daily_points', 0), 'days': summary.get('days_covered', 0)}
    is_valid = actual['points'] >= requirement['min_points'] and actual['days'] >= requirement['min_days']

    if is_valid:
        recommendation = f"Dataset is suitable for {algorithm} forecasting"
    else:
        recommendation = (
            f"Dataset may have limited accuracy for {algorithm} forecasting. Need "
            f"{requirement['min_points']}+ data points and {requirement['min_days']}+ days coverage."
        )

    return {
        'is_valid': is_valid,
        'recommendation': recommendation,
        'requirements': {
            'min_points': requirement['min_points'],
            'min_days': requirement['min_days'],
            'actual': actual,
        },
    }


def group_sales_by_granularity(records_df, granularity='daily'):
    """
    Total revenue, orders and quantity per day, week or month.

    Weeks start on Sunday and are labelled by that Sunday's date.
    Months are labelled 'YYYY-MM'.

    Args:
        records_df: Output of prepare_sales_records
        granularity: 'daily', 'weekly' or 'monthly'

    Returns:
        DataFrame with columns period, revenue, orders, quantity, sorted by period

    Raises:
        ValueError: For unknown granularities
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity '{granularity}'. Expected one of: {', '.join(GRANULARITIES)}")

    if records_df is None or records_df.empty:
        return pd.DataFrame(columns=GROUPED_COLUMNS)

    dates = pd.to_datetime(records_df['date']).dt.normalize()
    if granularity == 'weekly':
        starts = dates - pd.to_timedelta((dates.dt.dayofweek + 1) % 7, unit='D')
        period = starts.dt.strftime('%Y-%m-%d')
    elif granularity == 'monthly':
        period = dates.dt.strftime('%Y-%m')
    else:
        period = dates.dt.strftime('%Y-%m-%d')

    grouped = (
        records_df.assign(period=period)
        .groupby('period', as_index=False)
        .agg(revenue=('revenue', 'sum'), orders=('orders', 'sum'), quantity=('quantity', 'sum'))
    )
    return grouped.sort_values('period').reset_index(drop=True)[GROUPED_COLUMNS]


def format_data_for_engine(daily_df, data_type='revenue'):
    """
    Convert the daily DataFrame into engine data points.

    Args:
        daily_df: Output of aggregate_daily_sales
        data_type: 'revenue', 'orders' or 'profit'

    Returns:
        tuple: (logs, data) where data is a chronological list of
        {'date', 'value', 'metadata'} dicts
    """
    logs = []
    if data_type not in ENGINE_VALUE_COLUMNS:
        logs.append(f"ERROR: Unknown data type '{data_type}'. Expected one of: {', '.join(ENGINE_VALUE_COLUMNS)}")
        return logs, []
    if daily_df is None or daily_df.empty:
        logs.append("WARNING: No daily data to format for forecasting.")
        return logs, []

    value_col = ENGINE_VALUE_COLUMNS[data_type]
    df = daily_df.sort_values('date')

    data = []
    for row in df.itertuples(index=False):
        breakdown = getattr(row, 'marketplace_breakdown', None)
        data.append({
            'date': pd.Timestamp(row.date).strftime('%Y-%m-%d'),
            'value': float(getattr(row, value_col)),
            'metadata': {
                'orders_count': int(getattr(row, 'orders', 0) or 0),
                'quantity': float(getattr(row, 'quantity', 0) or 0),
                'avg_order_value': float(getattr(row, 'avg_order_value', 0) or 0),
                'marketplace': breakdown if isinstance(breakdown, dict) else {},
            },
        })

    logs.append(f"INFO: Formatted {len(data)} daily {data_type} points for the forecasting engines.")
    return logs, data


@st.cache_data(show_spinner="Preparing forecasting data...")
def get_forecasting_data(sales_df):
    """
    Prepare, aggregate and summarize sales data in one cached step.

    Args:
        sales_df: Raw sales DataFrame

    Returns:
        tuple: (logs, daily_df, summary)
    """
    logs = []
    logs.append("--- Forecasting Data Provider ---")

    prep_logs, records = prepare_sales_records(sales_df)
    logs.extend(prep_logs)

    daily = aggregate_daily_sales(records)
    summary = summarize_sales_data(records, daily)

    if daily.empty:
        logs.append("ERROR: No daily sales data available for forecasting.")
        return logs, daily, summary

    logs.append(
        f"INFO: {summary['total_records']} records -> {len(daily)} daily points "
        f"({summary['earliest']} to {summary['latest']}, {summary['days_covered']} days covered)"
    )
    logs.append(
        f"INFO: Total revenue {format_currency_short(summary['total_revenue'])} across "
        f"{len(summary['unique_marketplaces'])} marketplaces and {len(summary['unique_products'])} products"
    )
    logs.append(f"INFO: Data quality: {summary['data_quality']}")

    return logs, daily, summary
