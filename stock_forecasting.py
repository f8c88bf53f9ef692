"""
Stock Forecasting Module

Estimates per-product stock levels from sales history and turns sales
forecasts into stock recommendations and reorder points.

D'Busana sales exports carry no inventory columns, so stock is derived
from demand: 1.5 months of sales on hand, reorder at 0.5 months.
"""

import pandas as pd
import streamlit as st

from business_rules import STOCK_RULES
from forecast_math import mean_of
from forecasting_data_provider import prepare_sales_records
from utils import format_currency_short

STOCK_COLUMNS = [
    'product_name', 'current_stock', 'stock_movement', 'stock_value',
    'reorder_point', 'max_stock', 'unit_cost', 'turnover_rate',
    'marketplace', 'last_sale_date', 'sales_frequency',
]

EMPTY_STOCK_METRICS = {
    'current_stock': 0,
    'stock_movement': 0,
    'stock_value': 0.0,
    'reorder_point': 0.0,
    'stockout_risk': 0.0,
    'turnover_rate': 0.0,
}


def estimate_stock_from_sales(records_df):
    """
    Derive a stock position per product from prepared sales records.

    Monthly demand is the product's quantity spread over the months the
    dataset covers (at least one). stock_movement is the average daily
    outflow, always zero or negative.

    Args:
        records_df: Output of prepare_sales_records

    Returns:
        pd.DataFrame with STOCK_COLUMNS
    """
    if records_df is None or records_df.empty:
        return pd.DataFrame(columns=STOCK_COLUMNS)

    rules = STOCK_RULES
    days_covered = max(1, int((records_df['date'].max() - records_df['date'].min()).days) + 1)
    months_covered = max(1.0, days_covered / 30)

    rows = []
    for product_name, sales in records_df.groupby('product_name', sort=False):
        total_quantity = float(sales['quantity'].sum())
        total_revenue = float(sales['revenue'].sum())
        unit_cost = total_revenue / total_quantity if total_quantity > 0 else 0.0

        monthly_sales = total_quantity / months_covered
        current_stock = max(rules['min_stock'], int(round(monthly_sales * rules['buffer_months'])))
        reorder_point = max(rules['min_reorder_point'], int(round(monthly_sales * rules['reorder_months'])))

        rows.append({
            'product_name': product_name,
            'current_stock': current_stock,
            'stock_movement': -int(round(total_quantity / days_covered)),
            'stock_value': current_stock * unit_cost,
            'reorder_point': reorder_point,
            'max_stock': current_stock * 2,
            'unit_cost': unit_cost,
            'turnover_rate': total_quantity / max(current_stock, 1),
            'marketplace': sales['marketplace'].iloc[-1],
            'last_sale_date': sales['date'].max().strftime('%Y-%m-%d'),
            'sales_frequency': len(sales),
        })

    return pd.DataFrame(rows, columns=STOCK_COLUMNS)


def calculate_stock_metrics(stock_df):
    """
    Totals and averages across all products.

    Returns:
        dict: current_stock, stock_movement and stock_value (totals),
        reorder_point and turnover_rate (averages), stockout_risk
        (% of products at or below their reorder point)
    """
    if stock_df is None or stock_df.empty:
        return dict(EMPTY_STOCK_METRICS)

    at_risk = (stock_df['current_stock'] <= stock_df['reorder_point']).sum()
    return {
        'current_stock': int(stock_df['current_stock'].sum()),
        'stock_movement': int(stock_df['stock_movement'].sum()),
        'stock_value': float(stock_df['stock_value'].sum()),
        'reorder_point': float(stock_df['reorder_point'].mean()),
        'stockout_risk': float(at_risk / len(stock_df) * 100),
        'turnover_rate': float(stock_df['turnover_rate'].mean()),
    }


def generate_stock_recommendations(stock_df, forecasts):
    """
    Plain-language stock advice from the stock position and a demand forecast.

    Args:
        stock_df: Output of estimate_stock_from_sales
        forecasts: List of forecast rows with a 'predicted' value

    Returns:
        list of recommendation strings (never empty)
    """
    rules = STOCK_RULES
    metrics = calculate_stock_metrics(stock_df)
    recommendations = []

    if metrics['stockout_risk'] > rules['high_stockout_risk_pct']:
        recommendations.append("High stockout risk detected. Consider increasing safety stock levels.")
    if metrics['turnover_rate'] < rules['low_turnover_rate']:
        recommendations.append("Low inventory turnover. Review slow-moving products.")
    if metrics['stock_movement'] < 0:
        recommendations.append("Negative stock trend. Plan for inventory replenishment.")

    if forecasts:
        avg_forecast = mean_of([row.get('predicted', 0) or 0 for row in forecasts])
        product_count = 0 if stock_df is None else len(stock_df)
        current_avg = metrics['current_stock'] / max(product_count, 1)
        if avg_forecast > current_avg * rules['demand_increase_ratio']:
            recommendations.append("Forecasts show increasing demand. Consider stock buildup.")
        elif avg_forecast < current_avg * rules['demand_decrease_ratio']:
            recommendations.append("Forecasts show decreasing demand. Monitor for overstock.")

    if not recommendations:
        recommendations.append("Stock levels appear optimized. Continue monitoring.")
    return recommendations


def optimize_reorder_points(stock_df, forecasts):
    """
    Recompute reorder points from forecast demand.

    Forecast rows apply to a product when their product_name matches or
    when they carry no product_name at all. Products without applicable
    forecasts keep their reorder point.

    Returns:
        pd.DataFrame: copy of stock_df with updated reorder_point and an
        'optimized' flag marking changed rows
    """
    rules = STOCK_RULES
    optimized = stock_df.copy()
    optimized['optimized'] = False
    if optimized.empty or not forecasts:
        return optimized

    for idx, item in optimized.iterrows():
        relevant = [
            row.get('predicted', 0) or 0 for row in forecasts
            if not row.get('product_name') or row.get('product_name') == item['product_name']
        ]
        if not relevant:
            continue

        new_reorder = max(
            int(round(mean_of(relevant) * rules['reorder_forecast_share'])),
            int(round(item['current_stock'] * rules['reorder_stock_share'])),
            rules['min_reorder_point'],
        )
        optimized.at[idx, 'optimized'] = new_reorder != item['reorder_point']
        optimized.at[idx, 'reorder_point'] = new_reorder

    return optimized


@st.cache_data(show_spinner="Planning stock levels...")
def get_stock_plan(sales_df, forecast_df=None):
    """
    Stock position, metrics and recommendations for the dashboard.

    Args:
        sales_df: Raw sales DataFrame
        forecast_df: Optional forecast DataFrame with a 'predicted' column
            (e.g. from forecast_engine.run_sales_forecast)

    Returns:
        tuple: (logs, stock_df, metrics, recommendations)
    """
    logs = []
    logs.append("--- Stock Forecasting ---")

    prep_logs, records = prepare_sales_records(sales_df)
    logs.extend(prep_logs)

    stock = estimate_stock_from_sales(records)
    if stock.empty:
        logs.append("WARNING: No sales records to derive stock levels from.")
        return logs, stock, calculate_stock_metrics(stock), []

    forecasts = [] if forecast_df is None or forecast_df.empty else forecast_df.to_dict('records')
    if forecasts:
        stock = optimize_reorder_points(stock, forecasts)
        logs.append(f"INFO: Reorder points updated for {int(stock['optimized'].sum())} of {len(stock)} products.")

    metrics = calculate_stock_metrics(stock)
    recommendations = generate_stock_recommendations(stock, forecasts)

    logs.append(
        f"INFO: {len(stock)} products, {metrics['current_stock']} units on hand worth "
        f"{format_currency_short(metrics['stock_value'])}"
    )
    logs.append(f"INFO: Stockout risk {metrics['stockout_risk']:.1f}%")
    return logs, stock, metrics, recommendations
