import io  # Required for Excel export

import pandas as pd

# --- Constants ---
CURRENCY_SYMBOLS = {'IDR': 'Rp ', 'USD': '$'}

FORECAST_SHEET_NAMES = {
    'forecast': 'Forecast',
    'metrics': 'Metrics',
    'comparison': 'Model Comparison',
    'history': 'Daily History',
}


# --- Formatting ---

def format_currency_short(value, currency='IDR'):
    """
    Short currency label: Rp 1.25B, Rp 3.40M, Rp 12.5K, Rp 950.
    None / NaN are shown as 0.
    """
    try:
        safe_value = float(value)
    except (TypeError, ValueError):
        safe_value = 0.0
    if pd.isna(safe_value):
        safe_value = 0.0

    symbol = CURRENCY_SYMBOLS.get(currency, '')
    sign = '-' if safe_value < 0 else ''
    abs_value = abs(safe_value)

    if abs_value >= 1_000_000_000:
        return f"{sign}{symbol}{abs_value / 1_000_000_000:.2f}B"
    if abs_value >= 1_000_000:
        return f"{sign}{symbol}{abs_value / 1_000_000:.2f}M"
    if abs_value >= 1_000:
        return f"{sign}{symbol}{abs_value / 1_000:.1f}K"
    return f"{sign}{symbol}{abs_value:.0f}"


# --- Data Export Function ---

def _prepare_for_excel(df):
    """Dates as YYYY-MM-DD strings and dict cells (marketplace breakdowns) as text."""
    needs_copy = any(
        pd.api.types.is_datetime64_any_dtype(df[col])
        or (df[col].dtype == object and df[col].map(lambda v: isinstance(v, dict)).any())
        for col in df.columns
    )
    if not needs_copy:
        return df

    df = df.copy()
    for col in df.columns:
        if pd.api.types.is_datetime64_any_dtype(df[col]):
            if df[col].dt.tz is not None:
                df[col] = df[col].dt.tz_localize(None)
            df[col] = df[col].dt.strftime('%Y-%m-%d')
        elif df[col].dtype == object:
            df[col] = df[col].map(
                lambda v: ', '.join(f"{k}: {amount:,.0f}" for k, amount in v.items()) if isinstance(v, dict) else v
            )
    return df


def get_forecast_as_excel(dfs_to_export_dict):
    """
    Writes a dictionary of dataframes to an Excel workbook and returns the bytes
    for st.download_button.
    The dictionary format is { "sheet_name": (dataframe, include_index_bool) }

    Non-DataFrame and empty entries are skipped. Column widths are fitted
    to the longest value in each column.
    """
    output = io.BytesIO()

    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        written = 0
        for sheet_name, (df, include_index) in dfs_to_export_dict.items():
            if not isinstance(df, pd.DataFrame):
                print(f"Skipping {sheet_name}: Not a DataFrame.")
                continue
            if df.empty:
                print(f"Skipping {sheet_name}: DataFrame is empty.")
                continue

            df_to_export = _prepare_for_excel(df)
            # Excel limits sheet names to 31 characters
            sheet = str(sheet_name)[:31]
            df_to_export.to_excel(writer, sheet_name=sheet, index=include_index)
            written += 1

            worksheet = writer.sheets[sheet]
            offset = 1 if include_index else 0
            for idx, col in enumerate(df_to_export.columns):
                series = df_to_export[col]
                max_len = max(
                    series.astype(str).map(len).max(),
                    len(str(series.name))
                ) + 2
                worksheet.set_column(idx + offset, idx + offset, max_len)

        if written == 0:
            # xlsxwriter needs at least one sheet for a valid workbook
            pd.DataFrame({'info': ['No forecast data to export']}).to_excel(
                writer, sheet_name=FORECAST_SHEET_NAMES['forecast'], index=False
            )

    return output.getvalue()


def build_forecast_export(forecast_df, metrics_df=None, comparison_df=None, daily_df=None):
    """Standard sheet layout for a forecast download."""
    return get_forecast_as_excel({
        FORECAST_SHEET_NAMES['forecast']: (forecast_df, False),
        FORECAST_SHEET_NAMES['metrics']: (metrics_df, False),
        FORECAST_SHEET_NAMES['comparison']: (comparison_df, False),
        FORECAST_SHEET_NAMES['history']: (daily_df, False),
    })
