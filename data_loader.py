import time

import pandas as pd
import streamlit as st

from file_loader import safe_read_table

# === Helper Functions ===

SALES_FILE_NAME = "sales export"

# Canonical column -> accepted header spellings (after lower snake-casing)
SALES_COLUMN_ALIASES = {
    'order_id': ['order_id', 'orderid', 'order_number', 'order_no', 'id'],
    'product_name': ['product_name', 'productname', 'nama_produk', 'product', 'name'],
    'seller_sku': ['seller_sku', 'sellersku', 'sku', 'product_code'],
    'quantity': ['quantity', 'qty', 'jumlah', 'qty_sold'],
    'order_amount': ['order_amount', 'orderamount', 'total', 'harga'],
    'total_revenue': ['total_revenue', 'totalrevenue'],
    'settlement_amount': ['settlement_amount', 'settled_amount', 'jumlah_settlement'],
    'revenue': ['revenue', 'pendapatan'],
    'hpp': ['hpp', 'product_cost', 'cost_price', 'cost'],
    'created_time': ['created_time', 'createdtime', 'create_time', 'tanggal', 'waktu'],
    'delivered_time': ['delivered_time', 'deliveredtime', 'delivery_time'],
    'order_date': ['order_date', 'orderdate', 'date'],
    'marketplace': ['marketplace', 'platform', 'channel', 'toko'],
    'customer_name': ['customer_name', 'customer', 'customername', 'nama_customer', 'buyer'],
    'province': ['province', 'provinsi'],
    'regency_city': ['regency_city', 'city', 'kota', 'kabupaten'],
}

DATE_COLUMNS = ['delivered_time', 'created_time', 'order_date']
REVENUE_COLUMNS = ['settlement_amount', 'total_revenue', 'order_amount', 'revenue']
NUMERIC_COLUMNS = REVENUE_COLUMNS + ['quantity', 'hpp']
TEXT_COLUMNS = ['order_id', 'product_name', 'seller_sku', 'marketplace', 'customer_name', 'province', 'regency_city']


def clean_string_column(series: pd.Series) -> pd.Series:
    """
    Strip whitespace and collapse internal runs of spaces.

    Args:
        series: Pandas Series with string data

    Returns:
        Cleaned Series with normalized whitespace
    """
    return series.astype(str).str.strip().str.replace(r'\s+', ' ', regex=True)


def safe_numeric_column(series: pd.Series, remove_commas: bool = False) -> pd.Series:
    """
    Convert a column to numeric, treating unparseable values as 0.

    Args:
        series: Pandas Series to convert
        remove_commas: If True, remove thousands separators before conversion

    Returns:
        Numeric Series with NaN filled as 0
    """
    if remove_commas:
        series = series.astype(str).str.replace(',', '', regex=False)
    return pd.to_numeric(series, errors='coerce').fillna(0)


def check_columns(df, required_cols, filename, logs):
    """Helper function to check for missing columns."""
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        logs.append(f"ERROR: '{filename}' is missing required columns: {', '.join(missing_cols)}")
        return False
    return True


def check_any_column(df, candidate_cols, group_name, filename, logs):
    """At least one column of a group (e.g. any date column) must be present."""
    if not any(col in df.columns for col in candidate_cols):
        logs.append(
            f"ERROR: '{filename}' has no {group_name} column. Expected one of: {', '.join(candidate_cols)}"
        )
        return False
    return True


def normalize_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Lower snake-case headers, then map known aliases onto canonical sales columns."""
    df = df.copy()
    df.columns = (
        pd.Index(df.columns).astype(str)
        .str.strip()
        .str.lower()
        .str.replace(r'[\s\-]+', '_', regex=True)
    )

    rename_map = {}
    for canonical, aliases in SALES_COLUMN_ALIASES.items():
        if canonical in df.columns:
            continue
        for alias in aliases:
            if alias in df.columns and alias not in rename_map and alias not in SALES_COLUMN_ALIASES:
                rename_map[alias] = canonical
                break
    return df.rename(columns=rename_map)


# === Main Data Loaders ===

@st.cache_data(ttl=3600, show_spinner="Loading sales data...")
def load_sales_data(sales_path, file_key='sales'):
    """
    Load marketplace sales records from a CSV or Excel export.

    Args:
        sales_path: file path (used if no uploaded file exists)
        file_key: session state key for uploaded file

    Returns: logs (list), dataframe
    """
    logs = []
    start_time = time.time()
    logs.append("--- Sales Data Loader ---")

    try:
        df = safe_read_table(file_key, sales_path)
        logs.append(f"INFO: Found and loaded {len(df)} rows from {SALES_FILE_NAME}.")
    except Exception as e:
        logs.append(f"ERROR: Failed to read {SALES_FILE_NAME} '{sales_path}'. Error: {e}")
        return logs, pd.DataFrame()

    df = normalize_column_names(df)

    if not check_any_column(df, DATE_COLUMNS, "date", SALES_FILE_NAME, logs):
        return logs, pd.DataFrame()
    if not check_any_column(df, REVENUE_COLUMNS, "revenue", SALES_FILE_NAME, logs):
        return logs, pd.DataFrame()

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = safe_numeric_column(df[col], remove_commas=True)

    for col in DATE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors='coerce')

    for col in TEXT_COLUMNS:
        if col in df.columns:
            df[col] = clean_string_column(df[col]).replace(['nan', 'None', ''], pd.NA)

    if 'marketplace' in df.columns:
        df['marketplace'] = df['marketplace'].fillna('Unknown')
        logs.append(f"INFO: Marketplaces found: {', '.join(sorted(df['marketplace'].astype(str).unique()))}")

    missing_dates = df[[c for c in DATE_COLUMNS if c in df.columns]].isna().all(axis=1).sum()
    if missing_dates > 0:
        logs.append(f"WARNING: {missing_dates} rows have no parseable date and will be ignored for forecasting.")

    end_time = time.time()
    logs.append(f"INFO: Sales Data Loader finished in {end_time - start_time:.2f} seconds.")

    return logs, df
