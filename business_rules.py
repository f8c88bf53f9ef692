"""
Business Rules Configuration
Centralized D'Busana business constants used by the forecasting engines.
This file allows multipliers and thresholds to be changed in one place
without modifying engine code.

All day-of-week tables are ordered Sunday -> Saturday (index 0..6).
All month tables are ordered January -> December (index 0..11).
"""

# ===== FASHION SEASONALITY (INDONESIA) =====

FASHION_SEASON_RULES = {
    "standard": [
        0.85,  # Jan - Post holiday slowdown
        0.90,  # Feb - Chinese New Year recovery
        1.00,  # Mar - Normal
        1.05,  # Apr - Pre-Ramadan shopping
        1.30,  # May - Ramadan & Eid preparation
        1.25,  # Jun - Eid celebration
        1.10,  # Jul - Post-Eid normal
        1.00,  # Aug - Normal
        0.95,  # Sep - Back to school
        1.05,  # Oct - Pre-holiday prep
        1.20,  # Nov - Year-end shopping
        1.15,  # Dec - Holiday season
    ],
    "advanced": [
        0.85,  # Jan
        0.88,  # Feb
        0.95,  # Mar
        1.08,  # Apr - Pre-Ramadan surge
        1.35,  # May - Ramadan & Eid peak
        1.28,  # Jun
        1.12,  # Jul
        0.98,  # Aug
        0.92,  # Sep
        1.05,  # Oct
        1.22,  # Nov - Year-end shopping
        1.18,  # Dec
    ],
}


# ===== DAY OF WEEK PATTERNS =====

DAY_OF_WEEK_RULES = {
    "standard": [0.75, 0.85, 1.00, 1.10, 1.20, 1.35, 1.00],
    "advanced": [0.75, 0.82, 0.95, 1.08, 1.25, 1.40, 1.05],
}


# ===== PAYDAY EFFECTS =====

PAYDAY_RULES = {
    "standard": {
        "payday_days": [1, 15],
        "payday_multiplier": 1.25,
        "near_payday_window": 2,      # days either side of a payday
        "near_payday_multiplier": 1.10,
        "dips": [
            {"start": 7, "end": 12, "multiplier": 0.90},
            {"start": 20, "end": 25, "multiplier": 0.85},
        ],
    },
    "advanced": {
        "day_multipliers": {1: 1.30, 15: 1.25, 2: 1.15, 16: 1.15, 3: 1.08, 17: 1.08},
        "month_end_from_day": 28,
        "month_end_multiplier": 1.10,
        "dips": [
            {"start": 8, "end": 12, "multiplier": 0.88},
            {"start": 20, "end": 25, "multiplier": 0.85},
        ],
    },
}


# ===== MARKETPLACE BEHAVIOR =====

MARKETPLACE_RULES = {
    "high_aov_threshold": 150000,     # IDR
    "weekend_high_aov_multiplier": 1.12,
    "weekend_low_aov_multiplier": 0.95,
    "weekday_multiplier": 1.02,
    "default_aov": 100000,
}


# ===== FORECAST CONSTRAINTS =====

CONSTRAINT_RULES = {
    "standard": {
        "window_days": 7,
        "max_ratio": 1.5,    # vs recent average
        "min_ratio": 0.6,
    },
    "advanced": {
        "window_days": 14,
        "max_avg_ratio": 1.6,
        "max_peak_ratio": 1.3,   # vs recent maximum
        "min_avg_ratio": 0.4,
    },
}


# ===== DATA QUALITY & ALGORITHM REQUIREMENTS =====

DATA_QUALITY_RULES = [
    # Evaluated top to bottom, first match wins
    {"tier": "Excellent", "min_records": 1000, "min_days": 365},
    {"tier": "Good", "min_records": 365, "min_days": 180},
    {"tier": "Fair", "min_records": 100, "min_days": 90},
]
DEFAULT_DATA_QUALITY = "Limited"

ALGORITHM_REQUIREMENTS = {
    "basic": {"min_points": 30, "min_days": 30},
    "hybrid": {"min_points": 60, "min_days": 60},
    "arima": {"min_points": 100, "min_days": 90},
    "prophet": {"min_points": 365, "min_days": 365},
    "advanced": {"min_points": 500, "min_days": 365},
}


# ===== MODEL SELECTION =====

MODEL_SCORING_RULES = {
    "confidence_weight": 0.4,
    "r_squared_weight": 0.3,
    "accuracy_weight": 0.3,
    "preferred_model": "Realistic Natural Forecaster",
    "preferred_model_bonus": 1.15,
}


# ===== PRODUCT FORECASTS & MARKET INSIGHTS =====

PRODUCT_RULES = {
    "trend_window_days": 30,          # recent window compared with the product's overall daily average
    "increasing_ratio": 1.10,
    "decreasing_ratio": 0.90,
    "strong_trend_change": 0.25,
    "increase_stock_min_daily_revenue": 100000,   # IDR
    "reduce_stock_max_daily_revenue": 50000,      # IDR
    "low_risk_min_sales": 30,
    "high_risk_max_sales": 10,
    "min_confidence": 50,
    "max_confidence": 95,
    "confidence_per_sale": 2,
}

INSIGHT_RULES = {
    "growth_window_days": 30,
    "growth_alert_pct": 15,
    "top_product_share_pct": 30,
    "concentration_risk_pct": 50,
}


# ===== STOCK PLANNING =====

STOCK_RULES = {
    "buffer_months": 1.5,        # stock kept on hand, in months of sales
    "reorder_months": 0.5,
    "min_stock": 10,
    "min_reorder_point": 5,
    "high_stockout_risk_pct": 30,
    "low_turnover_rate": 0.5,
    "demand_increase_ratio": 1.2,
    "demand_decrease_ratio": 0.8,
    "reorder_forecast_share": 0.3,   # of average forecast demand
    "reorder_stock_share": 0.2,      # of current stock
}


# ===== HELPER FUNCTIONS =====

def get_fashion_multiplier(month, table="standard"):
    """
    Fashion season multiplier for a calendar month.

    Args:
        month: Calendar month 1-12
        table: 'standard' or 'advanced'

    Returns:
        Multiplier (1.0 for unknown tables)
    """
    multipliers = FASHION_SEASON_RULES.get(table)
    if multipliers is None:
        return 1.0
    return multipliers[(int(month) - 1) % 12]


def get_day_of_week_multiplier(weekday, table="standard"):
    """Multiplier for a Sunday=0 weekday index."""
    multipliers = DAY_OF_WEEK_RULES.get(table)
    if multipliers is None:
        return 1.0
    return multipliers[int(weekday) % 7]


def get_payday_multiplier(day, table="standard"):
    """
    Payday / mid-month dip multiplier for a day of the month.

    Args:
        day: Day of month 1-31
        table: 'standard' or 'advanced'

    Returns:
        Multiplier, 1.0 when no rule applies
    """
    rules = PAYDAY_RULES.get(table)
    if rules is None:
        return 1.0

    if table == "advanced":
        if day in rules["day_multipliers"]:
            return rules["day_multipliers"][day]
        if day >= rules["month_end_from_day"]:
            return rules["month_end_multiplier"]
    else:
        if day in rules["payday_days"]:
            return rules["payday_multiplier"]
        window = rules["near_payday_window"]
        if any(abs(day - payday) <= window for payday in rules["payday_days"]):
            return rules["near_payday_multiplier"]

    for dip in rules["dips"]:
        if dip["start"] <= day <= dip["end"]:
            return dip["multiplier"]
    return 1.0


def get_marketplace_multiplier(weekday, avg_order_value):
    """Weekend activity depends on average order value; weekdays get a flat uplift."""
    is_weekend = weekday in (0, 6)
    if is_weekend:
        if avg_order_value > MARKETPLACE_RULES["high_aov_threshold"]:
            return MARKETPLACE_RULES["weekend_high_aov_multiplier"]
        return MARKETPLACE_RULES["weekend_low_aov_multiplier"]
    return MARKETPLACE_RULES["weekday_multiplier"]


def apply_standard_constraints(prediction, historical_values):
    """Keep a prediction within 0.6x - 1.5x of the trailing 7-day average."""
    prediction = max(0.0, prediction)
    if len(historical_values) == 0:
        return prediction

    rules = CONSTRAINT_RULES["standard"]
    recent = list(historical_values)[-rules["window_days"]:]
    recent_avg = sum(recent) / len(recent)
    return max(recent_avg * rules["min_ratio"], min(recent_avg * rules["max_ratio"], prediction))


def apply_advanced_constraints(prediction, historical_values):
    """Cap at 1.6x the 14-day average and 1.3x the 14-day peak, floor at 0.4x the average."""
    if len(historical_values) == 0:
        return prediction

    rules = CONSTRAINT_RULES["advanced"]
    recent = list(historical_values)[-rules["window_days"]:]
    recent_avg = sum(recent) / len(recent)
    recent_max = max(recent)

    constrained = min(prediction, recent_avg * rules["max_avg_ratio"])
    constrained = min(constrained, recent_max * rules["max_peak_ratio"])
    return max(constrained, recent_avg * rules["min_avg_ratio"])


def classify_data_quality(record_count, days_covered):
    """
    Classify a dataset into Excellent / Good / Fair / Limited.

    Args:
        record_count: Number of valid sales records
        days_covered: Days between the earliest and latest record

    Returns:
        Quality tier string
    """
    for rule in DATA_QUALITY_RULES:
        if record_count >= rule["min_records"] and days_covered >= rule["min_days"]:
            return rule["tier"]
    return DEFAULT_DATA_QUALITY


def get_algorithm_requirements(algorithm):
    """
    Minimum data requirements for an algorithm family.

    Raises:
        ValueError: For unknown algorithm names
    """
    if algorithm not in ALGORITHM_REQUIREMENTS:
        raise ValueError(
            f"Unknown algorithm '{algorithm}'. Expected one of: {', '.join(ALGORITHM_REQUIREMENTS)}"
        )
    return ALGORITHM_REQUIREMENTS[algorithm]
