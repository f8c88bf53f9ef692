"""
Tests for forecast_charts module
Plotly figures for forecasts and model scores
"""

import pandas as pd

from forecast_charts import (
    BAND_FILL_COLOR,
    FORECAST_COLOR,
    build_forecast_figure,
    build_model_comparison_figure,
)
from forecast_engine import emergency_forecast, forecast_to_dataframe


class TestForecastFigure:
    """build_forecast_figure"""

    def test_trace_layout(self, month_series):
        forecasts = emergency_forecast(month_series, 10)['forecasts']
        fig = build_forecast_figure(month_series, forecasts)

        assert [trace.name for trace in fig.data] == ['Historical', 'Upper Bound', 'Confidence Band', 'Forecast']
        assert fig.data[1].showlegend is False
        assert fig.data[2].fill == 'tonexty'
        assert fig.data[2].fillcolor == BAND_FILL_COLOR
        assert fig.data[3].line.dash == 'dash'
        assert fig.data[3].line.color == FORECAST_COLOR
        assert len(fig.data[0].x) == 30
        assert len(fig.data[3].y) == 10

    def test_dataframe_inputs(self, month_series):
        forecast_df = forecast_to_dataframe(emergency_forecast(month_series, 5)['forecasts'])
        history_df = pd.DataFrame(month_series)
        fig = build_forecast_figure(history_df, forecast_df, title="Orders", value_label="Orders")

        assert len(fig.data) == 4
        assert fig.layout.title.text == "Orders"
        assert fig.layout.yaxis.title.text == "Orders"

    def test_history_only(self, month_series):
        fig = build_forecast_figure(month_series, [])
        assert len(fig.data) == 1
        assert fig.data[0].name == 'Historical'


class TestModelComparisonFigure:
    """build_model_comparison_figure"""

    def test_bar_chart(self):
        comparison_df = pd.DataFrame({
            'model': ['Enhanced Volatility Forecaster', 'Broken'],
            'score': [0.62, None],
        })
        fig = build_model_comparison_figure(comparison_df)
        assert len(fig.data) == 1
        assert fig.data[0].type == 'bar'
        assert list(fig.data[0].y) == [0.62, 0.0]
        assert fig.layout.title.text == "Forecast Model Scores"

    def test_cascade_comparison_has_no_bars(self):
        comparison_df = pd.DataFrame({'model': ['A'], 'status': ['used']})
        assert len(build_model_comparison_figure(comparison_df).data) == 0

    def test_none(self):
        assert len(build_model_comparison_figure(None).data) == 0
