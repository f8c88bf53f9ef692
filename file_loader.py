"""
Helper module to read sales exports (CSV or Excel) from either disk or
Streamlit uploaded buffers.
"""
import os

import pandas as pd
import streamlit as st

EXCEL_EXTENSIONS = ('.xlsx', '.xls')


def get_file_source(file_key: str, file_path: str):
    """
    Returns a file-like object or path for reading a sales export.

    Priority:
    1. If an uploaded file exists in session_state.uploaded_files, use that buffer
    2. Otherwise, use file_path if it exists on disk

    Args:
        file_key: key in st.session_state.uploaded_files (e.g., 'sales')
        file_path: fallback file path

    Returns:
        tuple: (source, is_uploaded) where source is file-like, a path, or None
    """
    try:
        uploaded_files = st.session_state.get('uploaded_files', {})
    except (AttributeError, RuntimeError):
        # Outside a Streamlit script run
        uploaded_files = {}

    if file_key in uploaded_files:
        return uploaded_files[file_key], True
    if file_path and os.path.isfile(os.path.abspath(file_path)):
        return file_path, False
    return None, False


def _source_name(source, file_path):
    """File name used to pick a reader; uploaded buffers carry their own name."""
    return getattr(source, 'name', None) or file_path or ''


def is_excel_file(name: str) -> bool:
    return str(name).lower().endswith(EXCEL_EXTENSIONS)


def safe_read_csv(file_key: str, file_path: str, **kwargs):
    """
    Read a CSV from either an uploaded buffer or disk.

    Args:
        file_key: key in st.session_state.uploaded_files
        file_path: fallback file path
        **kwargs: passed to pd.read_csv()

    Returns:
        pd.DataFrame

    Raises:
        FileNotFoundError: If neither an upload nor the file exists
    """
    source, _ = get_file_source(file_key, file_path)
    if source is None:
        raise FileNotFoundError(f"File not found: {file_path} (and no uploaded file)")
    return pd.read_csv(source, **kwargs)


def safe_read_excel(file_key: str, file_path: str, **kwargs):
    """
    Read an Excel workbook sheet from either an uploaded buffer or disk.

    Args:
        file_key: key in st.session_state.uploaded_files
        file_path: fallback file path
        **kwargs: passed to pd.read_excel() (e.g. sheet_name)

    Returns:
        pd.DataFrame

    Raises:
        FileNotFoundError: If neither an upload nor the file exists
    """
    source, _ = get_file_source(file_key, file_path)
    if source is None:
        raise FileNotFoundError(f"File not found: {file_path} (and no uploaded file)")
    return pd.read_excel(source, **kwargs)


def safe_read_table(file_key: str, file_path: str, **kwargs):
    """Read CSV or Excel depending on the uploaded file name or path extension."""
    source, _ = get_file_source(file_key, file_path)
    if source is None:
        raise FileNotFoundError(f"File not found: {file_path} (and no uploaded file)")
    if is_excel_file(_source_name(source, file_path)):
        return safe_read_excel(file_key, file_path, **kwargs)
    return safe_read_csv(file_key, file_path, **kwargs)
