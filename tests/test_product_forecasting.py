"""
Tests for product_forecasting module
Granular ensemble, hold-out accuracy, product outlook and market insights
"""

import pandas as pd
import pytest

from product_forecasting import (
    GRANULAR_MODEL_NAME,
    PRODUCT_FORECAST_COLUMNS,
    generate_granular_forecast,
    calculate_model_accuracy,
    calculate_product_trend,
    get_recommended_action,
    get_risk_level,
    calculate_product_forecasts,
    analyze_growth,
    analyze_seasonal_patterns,
    analyze_top_products,
    generate_market_insights,
    get_granular_forecast,
    get_product_forecasts,
)


def make_records(entries):
    """Prepared sales records from (date, product, revenue, quantity) tuples."""
    return pd.DataFrame({
        'date': pd.to_datetime([pd.Timestamp(e[0]) for e in entries]),
        'revenue': [float(e[2]) for e in entries],
        'orders': 1,
        'quantity': [e[3] for e in entries],
        'product_name': [e[1] for e in entries],
        'marketplace': 'Shopee',
    })


def daily_entries(product, start, days, revenue, quantity=1):
    dates = pd.date_range(start, periods=days, freq='D')
    return [(d, product, revenue, quantity) for d in dates]


def grouped(values, periods):
    return pd.DataFrame({
        'period': periods,
        'revenue': [float(v) for v in values],
        'orders': 1,
        'quantity': 1,
    })


class TestGranularForecast:
    """generate_granular_forecast"""

    def test_daily_dates_continue_from_last_period(self):
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=10)]
        result = generate_granular_forecast(grouped(range(100, 110), periods), periods=5)
        forecasts = result['forecasts']

        assert [f['date'] for f in forecasts] == [
            '2024-01-11', '2024-01-12', '2024-01-13', '2024-01-14', '2024-01-15',
        ]
        assert [f['confidence'] for f in forecasts] == [95.0, 94.5, 94.0, 93.5, 93.0]
        for row in forecasts:
            assert row['lower_bound'] <= row['predicted'] <= row['upper_bound']
            assert row['model'] == GRANULAR_MODEL_NAME
        assert result['models'][0]['accuracy'] == pytest.approx(100.0)

    def test_weekly_dates(self):
        result = generate_granular_forecast(
            grouped([500, 600], ['2023-12-31', '2024-01-07']), periods=2, granularity='weekly'
        )
        assert [f['date'] for f in result['forecasts']] == ['2024-01-14', '2024-01-21']

    def test_monthly_dates(self):
        result = generate_granular_forecast(
            grouped([500, 600, 700], ['2024-01', '2024-02', '2024-03']), periods=2, granularity='monthly'
        )
        assert [f['date'] for f in result['forecasts']] == ['2024-04', '2024-05']

    def test_flat_history(self):
        """Every component of a flat history agrees and the band collapses"""
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=8)]
        forecasts = generate_granular_forecast(grouped([100] * 8, periods), periods=3)['forecasts']
        for row in forecasts:
            assert row['predicted'] == pytest.approx(100.0)
            assert row['lower_bound'] == pytest.approx(100.0)
            assert row['upper_bound'] == pytest.approx(100.0)

    @pytest.mark.parametrize("level,z_score", [(90, 1.65), (95, 1.96), (99, 2.58)])
    def test_first_margin_uses_z_score(self, level, z_score):
        """Alternating 1000/3000 has a population std of 1000"""
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=8)]
        history = grouped([1000, 3000] * 4, periods)
        first = generate_granular_forecast(history, periods=1, confidence_level=level)['forecasts'][0]
        assert first['upper_bound'] - first['predicted'] == pytest.approx(1000 * z_score, abs=0.02)

    def test_confidence_floor(self):
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=5)]
        forecasts = generate_granular_forecast(grouped([1, 2, 3, 4, 5], periods), periods=100,
                                               confidence_level=90)['forecasts']
        assert forecasts[-1]['confidence'] == 50.0
        assert all(b['confidence'] <= a['confidence'] for a, b in zip(forecasts, forecasts[1:]))

    def test_empty_history(self):
        assert generate_granular_forecast(pd.DataFrame(), periods=5) == {'forecasts': [], 'models': []}

    def test_unknown_granularity(self):
        with pytest.raises(ValueError):
            generate_granular_forecast(grouped([1, 2], ['2024-01-01', '2024-01-02']), granularity='hourly')


class TestModelAccuracy:
    """calculate_model_accuracy"""

    def test_too_short(self):
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=13)]
        assert calculate_model_accuracy(grouped([100] * 13, periods)) is None

    def test_flat_history_is_exact(self):
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=20)]
        result = calculate_model_accuracy(grouped([100] * 20, periods))
        assert result == {'mape': 0.0, 'rmse': 0.0, 'accuracy': 100.0}

    def test_level_shift(self):
        """A jump in the hold-out lowers accuracy by exactly the MAPE"""
        periods = [d.strftime('%Y-%m-%d') for d in pd.date_range('2024-01-01', periods=20)]
        result = calculate_model_accuracy(grouped([100] * 14 + [200] * 6, periods))
        assert result['mape'] > 0
        assert result['rmse'] > 0
        assert result['accuracy'] == pytest.approx(100 - result['mape'], abs=0.01)


class TestProductTrend:
    """calculate_product_trend"""

    def test_increasing(self):
        records = make_records(
            daily_entries('Gamis', '2024-01-01', 60, 100) + daily_entries('Gamis', '2024-03-01', 30, 200)
        )
        trend = calculate_product_trend(records, records['date'].max())
        assert trend['direction'] == 'increasing'
        assert trend['strength'] == 'strong'
        assert trend['ratio'] == pytest.approx(1.5)

    def test_no_recent_sales(self):
        records = make_records(daily_entries('Rok', '2024-01-01', 10, 100))
        trend = calculate_product_trend(records, pd.Timestamp('2024-06-01'))
        assert trend['direction'] == 'decreasing'
        assert trend['strength'] == 'strong'

    def test_stable(self):
        records = make_records(daily_entries('Kemeja', '2024-01-01', 90, 100))
        trend = calculate_product_trend(records, records['date'].max())
        assert trend == {'direction': 'stable', 'strength': 'moderate', 'ratio': 1.0}


class TestActionsAndRisk:
    """get_recommended_action and get_risk_level"""

    @pytest.mark.parametrize("direction,daily_revenue,expected", [
        ('increasing', 150000, 'increase_stock'),
        ('increasing', 80000, 'maintain'),
        ('decreasing', 30000, 'reduce_stock'),
        ('decreasing', 60000, 'maintain'),
        ('stable', 500000, 'maintain'),
    ])
    def test_recommended_action(self, direction, daily_revenue, expected):
        assert get_recommended_action(direction, daily_revenue) == expected

    @pytest.mark.parametrize("direction,sales_count,expected", [
        ('increasing', 31, 'low'),
        ('increasing', 30, 'medium'),
        ('stable', 5, 'high'),
        ('decreasing', 100, 'high'),
        ('stable', 20, 'medium'),
    ])
    def test_risk_level(self, direction, sales_count, expected):
        assert get_risk_level(direction, sales_count) == expected


class TestProductForecasts:
    """calculate_product_forecasts"""

    @pytest.fixture
    def records(self):
        return make_records(
            daily_entries('Gamis Syari', '2024-01-01', 40, 150000, quantity=2)
            + daily_entries('Kemeja Batik', '2024-02-05', 5, 20000)
        )

    def test_ranked_by_revenue(self, records):
        products = calculate_product_forecasts(records, forecast_days=30)
        assert list(products.columns) == PRODUCT_FORECAST_COLUMNS
        assert products['product_name'].tolist() == ['Gamis Syari', 'Kemeja Batik']

    def test_product_outlook(self, records):
        gamis = calculate_product_forecasts(records, forecast_days=30).iloc[0]
        assert gamis['total_revenue'] == pytest.approx(6000000.0)
        assert gamis['sales_count'] == 40
        assert gamis['daily_avg_revenue'] == pytest.approx(150000.0)
        assert gamis['daily_avg_quantity'] == pytest.approx(2.0)
        assert gamis['forecast_revenue'] == pytest.approx(4500000.0)
        assert gamis['forecast_90d'] == pytest.approx(13500000.0)
        assert gamis['confidence_score'] == 80
        assert gamis['trend'] == 'stable'
        assert gamis['recommended_action'] == 'maintain'
        assert gamis['risk_level'] == 'medium'

    def test_few_sales_are_high_risk(self, records):
        kemeja = calculate_product_forecasts(records).iloc[1]
        assert kemeja['confidence_score'] == 50
        assert kemeja['risk_level'] == 'high'

    def test_top_products_limit(self, records):
        assert len(calculate_product_forecasts(records, top_products=1)) == 1

    def test_empty_records(self):
        products = calculate_product_forecasts(pd.DataFrame())
        assert products.empty
        assert list(products.columns) == PRODUCT_FORECAST_COLUMNS


class TestMarketInsights:
    """Growth, weekly pattern and product concentration"""

    def test_strong_growth(self):
        records = make_records(
            daily_entries('Gamis', '2024-01-01', 30, 100) + daily_entries('Gamis', '2024-01-31', 30, 200)
        )
        insights = analyze_growth(records)
        assert len(insights) == 1
        assert insights[0]['type'] == 'opportunity'
        assert insights[0]['data']['growth_rate'] == pytest.approx(100.0)
        assert "increased by 100.0%" in insights[0]['description']

    def test_revenue_decline(self):
        records = make_records(
            daily_entries('Gamis', '2024-01-01', 30, 200) + daily_entries('Gamis', '2024-01-31', 30, 100)
        )
        insights = analyze_growth(records)
        assert insights[0]['type'] == 'risk'
        assert insights[0]['title'] == 'Revenue Decline Alert'

    def test_small_change_ignored(self):
        records = make_records(
            daily_entries('Gamis', '2024-01-01', 30, 100) + daily_entries('Gamis', '2024-01-31', 30, 110)
        )
        assert analyze_growth(records) == []

    def test_best_weekday(self):
        """2024-01-06 is a Saturday"""
        records = make_records(daily_entries('Gamis', '2024-01-01', 7, 100) + [('2024-01-06', 'Gamis', 900, 1)])
        insight = analyze_seasonal_patterns(records)[0]
        assert insight['data']['best_day'] == 'Saturday'
        assert insight['data']['revenue'] == pytest.approx(1000.0)

    def test_concentration_risk(self):
        records = make_records([('2024-01-01', 'Gamis', 600, 1), ('2024-01-01', 'Rok', 400, 1)])
        insight = analyze_top_products(records)[0]
        assert insight['type'] == 'risk'
        assert insight['data']['percentage'] == pytest.approx(60.0)

    def test_top_product_dominance(self):
        records = make_records([
            ('2024-01-01', 'Gamis', 400, 1), ('2024-01-01', 'Rok', 300, 1), ('2024-01-01', 'Kemeja', 300, 1),
        ])
        insight = analyze_top_products(records)[0]
        assert insight['type'] == 'trend'
        assert insight['title'] == 'Top Product Dominance'

    def test_single_product_not_flagged(self):
        records = make_records([('2024-01-01', 'Gamis', 600, 1)])
        assert analyze_top_products(records) == []

    def test_empty_records(self):
        logs, insights = generate_market_insights(pd.DataFrame())
        assert insights == []
        assert logs[0].startswith("WARNING:")


class TestGetGranularForecast:
    """Cached grouped forecast entry point"""

    def test_weekly_revenue(self, raw_sales_df):
        logs, grouped_df, forecast_df, accuracy = get_granular_forecast(raw_sales_df, 'weekly', periods=4)
        assert logs[0] == "--- Sales Trend Forecast ---"
        assert grouped_df['period'].tolist() == ['2023-12-31']
        assert forecast_df['date'].tolist() == ['2024-01-07', '2024-01-14', '2024-01-21', '2024-01-28']
        assert 'components' not in forecast_df.columns
        assert accuracy is None
        assert any("accuracy not measured" in log for log in logs)

    def test_no_valid_rows(self):
        logs, grouped_df, forecast_df, accuracy = get_granular_forecast(pd.DataFrame({'order_amount': [0.0]}))
        assert grouped_df.empty
        assert forecast_df.empty
        assert logs[-1].startswith("ERROR:")


class TestGetProductForecasts:
    """Cached dashboard entry point"""

    def test_bundle(self, raw_sales_df):
        logs, products, insights = get_product_forecasts(raw_sales_df, top_products=5, forecast_days=30)
        assert logs[0] == "--- Product Forecasting ---"
        assert products['product_name'].tolist() == ['Gamis Syari', 'Kemeja Batik']
        assert products.iloc[0]['total_revenue'] == pytest.approx(350000.0)
        titles = [insight['title'] for insight in insights]
        assert 'Weekly Pattern Detected' in titles
        assert 'High Product Concentration Risk' in titles

    def test_no_valid_rows(self):
        logs, products, insights = get_product_forecasts(pd.DataFrame({'order_amount': [0.0]}))
        assert products.empty
        assert insights == []
        assert any(log.startswith("ERROR:") for log in logs)
