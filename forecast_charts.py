"""
Forecast Charts
Plotly figures for the sales forecast: history, forecast and confidence band
"""

import pandas as pd
import plotly.graph_objects as go

HISTORICAL_COLOR = '#2563eb'
FORECAST_COLOR = '#dc2626'
BAND_FILL_COLOR = 'rgba(251, 191, 36, 0.25)'   # amber #fbbf24


def _historical_frame(historical):
    if isinstance(historical, pd.DataFrame):
        return pd.DataFrame({'date': pd.to_datetime(historical['date']), 'value': historical['value']})
    return pd.DataFrame({
        'date': pd.to_datetime([point['date'] for point in historical]),
        'value': [point['value'] for point in historical],
    })


def _forecast_frame(forecasts):
    if isinstance(forecasts, pd.DataFrame):
        df = forecasts[['date', 'predicted', 'lower_bound', 'upper_bound']].copy()
    else:
        df = pd.DataFrame(
            [{key: f[key] for key in ('date', 'predicted', 'lower_bound', 'upper_bound')} for f in forecasts],
            columns=['date', 'predicted', 'lower_bound', 'upper_bound'],
        )
    df['date'] = pd.to_datetime(df['date'])
    return df


def build_forecast_figure(historical, forecasts, title="Sales Forecast", value_label="Revenue (IDR)"):
    """
    Line chart of history, forecast and the forecast confidence band.

    Args:
        historical: List of {'date', 'value'} points or a DataFrame with those columns
        forecasts: Forecast rows or a DataFrame from forecast_to_dataframe
        title: Chart title
        value_label: Y axis label

    Returns:
        plotly.graph_objects.Figure
    """
    hist_df = _historical_frame(historical)
    fc_df = _forecast_frame(forecasts)

    fig = go.Figure()

    fig.add_trace(go.Scatter(
        x=hist_df['date'],
        y=hist_df['value'],
        mode='lines',
        name='Historical',
        line=dict(color=HISTORICAL_COLOR, width=2),
    ))

    if not fc_df.empty:
        # Band first so the forecast line draws on top
        fig.add_trace(go.Scatter(
            x=fc_df['date'],
            y=fc_df['upper_bound'],
            mode='lines',
            name='Upper Bound',
            line=dict(width=0),
            showlegend=False,
        ))
        fig.add_trace(go.Scatter(
            x=fc_df['date'],
            y=fc_df['lower_bound'],
            mode='lines',
            name='Confidence Band',
            line=dict(width=0),
            fillcolor=BAND_FILL_COLOR,
            fill='tonexty',
        ))
        fig.add_trace(go.Scatter(
            x=fc_df['date'],
            y=fc_df['predicted'],
            mode='lines',
            name='Forecast',
            line=dict(color=FORECAST_COLOR, width=2, dash='dash'),
        ))

    fig.update_layout(
        title=title,
        xaxis_title="Date",
        yaxis_title=value_label,
        height=500,
        hovermode='x unified',
    )
    return fig


def build_model_comparison_figure(comparison_df):
    """Bar chart of model selection scores (failed models shown as 0)."""
    fig = go.Figure()
    if comparison_df is not None and not comparison_df.empty and 'score' in comparison_df.columns:
        scores = comparison_df['score'].fillna(0)
        fig.add_trace(go.Bar(
            x=comparison_df['model'],
            y=scores,
            marker_color=[HISTORICAL_COLOR if s > 0 else FORECAST_COLOR for s in scores],
            text=[f"{s:.3f}" for s in scores],
            textposition='outside',
        ))
    fig.update_layout(
        title="Forecast Model Scores",
        xaxis_title="Model",
        yaxis_title="Score",
        height=400,
    )
    return fig
