"""
Forecast Monitor Module

Sanity checks that tell a planner whether a generated forecast behaves
like real sales: it should start near the last observed day, move about
as much as history did, and carry believable confidence.

Each check returns log lines in the dashboard's INFO / WARNING format
together with a structured result for display.
"""

import numpy as np

from forecast_math import mean_of, daily_returns

CHECK_THRESHOLDS = {
    'max_discontinuity': 0.30,      # first forecast vs last actual
    'min_volatility_ratio': 0.3,    # forecast vs historical return volatility
    'max_volatility_ratio': 3.0,
    'min_avg_confidence': 30,
    'max_avg_confidence': 90,
    'high_volatility_multiple': 1.5,
    'low_volatility_multiple': 0.5,
}


# ===== CHANGE STATISTICS =====

def _predicted(forecasts):
    return [f['predicted'] for f in forecasts]


def return_volatility(values):
    """Population standard deviation of day-over-day returns."""
    changes = daily_returns(values)
    if len(changes) == 0:
        return 0.0
    return float(np.std(changes))


def calculate_forecast_characteristics(forecasts):
    """
    Shape of a forecast path.

    Returns:
        dict: average_daily_change, max_daily_change, volatility (all as
        fractions) and confidence_decay (points lost per forecast day)
    """
    changes = np.abs(daily_returns(_predicted(forecasts)))
    if len(forecasts) >= 2:
        confidence_decay = (forecasts[0]['confidence'] - forecasts[-1]['confidence']) / len(forecasts)
    else:
        confidence_decay = 0.0

    return {
        'average_daily_change': float(changes.mean()) if len(changes) else 0.0,
        'max_daily_change': float(changes.max()) if len(changes) else 0.0,
        'volatility': return_volatility(_predicted(forecasts)),
        'confidence_decay': float(confidence_decay),
    }


# ===== BUSINESS LOGIC CHECKS =====

def validate_business_logic(historical_data, forecasts):
    """
    Check continuity, volatility realism and confidence realism.

    Args:
        historical_data: Chronological list of {'date', 'value'} points
        forecasts: Forecast rows from any engine

    Returns:
        tuple: (logs, checks) where checks maps each check name to a dict
        with 'status' ('ok' / 'warning') and its measured values
    """
    logs = ["--- Forecast Business Logic Validation ---"]
    checks = {}

    if not historical_data or not forecasts:
        logs.append("WARNING: Nothing to validate (empty history or forecast).")
        return logs, checks

    limits = CHECK_THRESHOLDS

    last_actual = float(historical_data[-1]['value'])
    first_forecast = float(forecasts[0]['predicted'])
    if last_actual > 0:
        gap = abs(first_forecast - last_actual) / last_actual
        status = 'warning' if gap > limits['max_discontinuity'] else 'ok'
        checks['continuity'] = {'status': status, 'gap': gap}
        if status == 'warning':
            logs.append(f"WARNING: Forecast starts {gap:.1%} away from the last actual value.")
        else:
            logs.append(f"INFO: Forecast continuity OK ({gap:.1%} gap).")
    else:
        checks['continuity'] = {'status': 'ok', 'gap': None}
        logs.append("INFO: Last actual value is zero; continuity check skipped.")

    historical_vol = return_volatility([p['value'] for p in historical_data])
    forecast_vol = return_volatility(_predicted(forecasts))
    if forecast_vol < historical_vol * limits['min_volatility_ratio']:
        status, verdict = 'warning', 'too_smooth'
        logs.append(
            f"WARNING: Forecast is too smooth (volatility {forecast_vol:.1%} vs historical {historical_vol:.1%})."
        )
    elif forecast_vol > historical_vol * limits['max_volatility_ratio']:
        status, verdict = 'warning', 'too_volatile'
        logs.append(
            f"WARNING: Forecast is too volatile (volatility {forecast_vol:.1%} vs historical {historical_vol:.1%})."
        )
    else:
        status, verdict = 'ok', 'realistic'
        logs.append(f"INFO: Forecast volatility is realistic ({forecast_vol:.1%} vs {historical_vol:.1%}).")
    checks['volatility'] = {
        'status': status,
        'verdict': verdict,
        'historical': historical_vol,
        'forecast': forecast_vol,
    }

    avg_confidence = mean_of([f['confidence'] for f in forecasts])
    decay = calculate_forecast_characteristics(forecasts)['confidence_decay']
    if avg_confidence < limits['min_avg_confidence']:
        status, verdict = 'warning', 'low'
        logs.append(f"WARNING: Average confidence {avg_confidence:.1f}% is low.")
    elif avg_confidence > limits['max_avg_confidence']:
        status, verdict = 'warning', 'unrealistic'
        logs.append(f"WARNING: Average confidence {avg_confidence:.1f}% is unrealistically high.")
    else:
        status, verdict = 'ok', 'realistic'
        logs.append(f"INFO: Average confidence {avg_confidence:.1f}% (decay {decay:.2f} pts/day).")
    checks['confidence'] = {
        'status': status,
        'verdict': verdict,
        'average': avg_confidence,
        'decay': decay,
    }

    return logs, checks


# ===== TRENDS & RANKING =====

def track_forecasting_trends(forecasts):
    """
    Summarize where a forecast is heading.

    Returns:
        dict: total_change, annualized_growth, high_volatility_days,
        low_volatility_days and confidence_evolution (start, end, average_decay)
    """
    if not forecasts:
        return {
            'total_change': 0.0,
            'annualized_growth': 0.0,
            'high_volatility_days': 0,
            'low_volatility_days': 0,
            'confidence_evolution': {'start': 0, 'end': 0, 'average_decay': 0.0},
        }

    start_value = float(forecasts[0]['predicted'])
    end_value = float(forecasts[-1]['predicted'])
    total_change = (end_value - start_value) / start_value if start_value > 0 else 0.0
    if total_change > -1:
        annualized_growth = (1 + total_change) ** (365 / len(forecasts)) - 1
    else:
        annualized_growth = -1.0

    predicted = _predicted(forecasts)
    volatility = return_volatility(predicted)
    changes = np.abs(daily_returns(predicted))
    high_days = int(np.sum(changes > volatility * CHECK_THRESHOLDS['high_volatility_multiple']))
    low_days = int(np.sum(changes < volatility * CHECK_THRESHOLDS['low_volatility_multiple']))

    start_conf = forecasts[0]['confidence']
    end_conf = forecasts[-1]['confidence']
    return {
        'total_change': total_change,
        'annualized_growth': float(annualized_growth),
        'high_volatility_days': high_days,
        'low_volatility_days': low_days,
        'confidence_evolution': {
            'start': start_conf,
            'end': end_conf,
            'average_decay': (start_conf - end_conf) / len(forecasts),
        },
    }


def rank_models(model_comparison):
    """
    Order model comparison entries by score, best first.

    Entries without a score (cascade attempts) rank by quality_score.

    Returns:
        tuple: (logs, ranked_entries)
    """
    logs = ["--- Forecast Model Ranking ---"]
    if not model_comparison:
        logs.append("INFO: No models to compare.")
        return logs, []

    def _score(entry):
        if entry.get('score') is not None:
            return entry['score']
        return entry.get('quality_score') or 0.0

    ranked = sorted(model_comparison, key=_score, reverse=True)
    for position, entry in enumerate(ranked, start=1):
        name = entry.get('model', 'Unknown')
        if entry.get('error'):
            logs.append(f"WARNING: #{position} {name} failed: {entry['error']}")
        else:
            logs.append(f"INFO: #{position} {name} (score {_score(entry):.3f})")
    return logs, ranked
