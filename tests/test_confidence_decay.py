"""
Confidence behaviour shared by every forecasting engine
Confidence never rises as the forecast horizon extends
"""

import pytest

from market_forecasting import MarketRealisticForecaster, SimpleTrendForecaster
from enhanced_volatility_forecasting import EnhancedVolatilityForecaster
from realistic_forecasting import RealisticNaturalForecaster
from realistic_volatility_forecasting import RealisticVolatilityForecastingEngine
from hybrid_forecasting import HybridForecastingEngine
from advanced_hybrid_forecasting import AdvancedHybridForecastingEngine
from forecast_engine import emergency_forecast

ENGINES = [
    MarketRealisticForecaster,
    SimpleTrendForecaster,
    EnhancedVolatilityForecaster,
    RealisticNaturalForecaster,
    RealisticVolatilityForecastingEngine,
    HybridForecastingEngine,
    AdvancedHybridForecastingEngine,
]

HORIZON = 60


def rising_days(forecasts):
    """(day, previous, current) for every day whose confidence went up."""
    return [
        (i, forecasts[i - 1]['confidence'], forecasts[i]['confidence'])
        for i in range(1, len(forecasts))
        if forecasts[i]['confidence'] > forecasts[i - 1]['confidence']
    ]


class TestConfidenceDecay:
    """Confidence is non-increasing with horizon"""

    @pytest.mark.parametrize("engine_class", ENGINES, ids=lambda cls: cls.__name__)
    @pytest.mark.parametrize("days", [30, 120, 400])
    def test_engine_confidence_never_rises(self, engine_class, days, series_factory):
        data = series_factory(days, start='2023-01-01')
        forecasts = engine_class().forecast(data, HORIZON)['forecasts']
        assert len(forecasts) == HORIZON
        assert rising_days(forecasts) == []

    @pytest.mark.parametrize("days", [30, 400])
    def test_volatile_history(self, days, series_factory):
        """A noisy history must not let the natural forecaster's confidence climb back"""
        data = series_factory(days, start='2023-01-01', noise=0.3, seed=7)
        forecasts = RealisticNaturalForecaster().forecast(data, HORIZON)['forecasts']
        assert rising_days(forecasts) == []

    def test_emergency_forecast_flat(self, month_series):
        forecasts = emergency_forecast(month_series, HORIZON)['forecasts']
        assert rising_days(forecasts) == []

    def test_ensemble_confidence_decays_with_horizon(self):
        near = AdvancedHybridForecastingEngine._ensemble_confidence(80, 80, 1.0, 1)
        far = AdvancedHybridForecastingEngine._ensemble_confidence(80, 80, 1.0, 60)
        assert far < near
        assert far >= 65
