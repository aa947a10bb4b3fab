import logging
from pathlib import Path

import numpy as np
import pandas as pd

from config_forecast import (
    DATE_COL, COUNT_COLS, VALUE_COLS, POSITION_COL, REQUIRED_COLUMNS, COLUMN_MAP
)

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename raw export headers to the internal snake_case schema."""
    rename = {}
    for col in df.columns:
        key = str(col).strip().lower()
        if key in COLUMN_MAP:
            rename[col] = COLUMN_MAP[key]
        else:
            rename[col] = key.replace(' ', '_')
    return df.rename(columns=rename)


def _to_number(series: pd.Series) -> pd.Series:
    """Strip currency symbols, thousands separators and percent signs, then coerce to float."""
    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)
    cleaned = (
        series.astype(str)
        .str.strip()
        .str.replace(r'[$€£,%\s]', '', regex=True)
        .replace({'': np.nan, '--': np.nan, 'nan': np.nan, 'None': np.nan})
    )
    return pd.to_numeric(cleaned, errors='coerce')


def check_contiguity(df: pd.DataFrame) -> list:
    """
    Return the calendar dates missing between the first and last date of df.

    Parameters:
        df: Daily data with a datetime 'date' column

    Returns:
        List of missing pd.Timestamp values (empty if contiguous)
    """
    if len(df) == 0:
        return []
    full_range = pd.date_range(df[DATE_COL].min(), df[DATE_COL].max(), freq='D')
    missing = full_range.difference(pd.DatetimeIndex(df[DATE_COL]))
    if len(missing) > 0:
        logging.warning(f"  {len(missing)} calendar days missing between "
                        f"{full_range[0].date()} and {full_range[-1].date()} (first: {missing[0].date()})")
    return list(missing)


def fetch_data(path) -> pd.DataFrame:
    """
    Load daily campaign metrics from a CSV or parquet export.

    Parameters:
        path: File path (.csv or .parquet)

    Returns:
        DataFrame sorted by date with columns date, impressions, clicks, conversions,
        cost, total_conversion_value, average_position (plus any extra columns)

    Raises:
        ValueError if required columns are missing or counts are negative
    """
    path = Path(path)
    logging.info(f"Loading daily campaign metrics from {path}...")

    if path.suffix.lower() == '.parquet':
        df_raw = pd.read_parquet(path)
    else:
        df_raw = pd.read_csv(path)

    logging.info(f"Rows: {df_raw.shape[0]} | Columns: {df_raw.shape[1]}")
    return prepare_daily(df_raw)


def prepare_daily(df_raw: pd.DataFrame) -> pd.DataFrame:
    """Normalize headers, coerce types, sort and de-duplicate a raw daily export."""
    df = _normalize_columns(df_raw.copy())

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Input is missing required columns: {missing_cols}. Found: {list(df.columns)}")

    df[DATE_COL] = pd.to_datetime(df[DATE_COL], errors='coerce')
    n_bad_dates = df[DATE_COL].isna().sum()
    if n_bad_dates > 0:
        logging.warning(f"  Dropping {n_bad_dates} rows with unparseable dates")
        df = df[df[DATE_COL].notna()]
    if len(df) == 0:
        raise ValueError("Input contains no rows with valid dates")

    for col in COUNT_COLS + VALUE_COLS + [POSITION_COL]:
        df[col] = _to_number(df[col])

    negative = {col: int((df[col] < 0).sum()) for col in COUNT_COLS + VALUE_COLS if (df[col] < 0).any()}
    if negative:
        raise ValueError(f"Negative values found in {negative}")

    # Same day exported twice -> sum counts, average the position
    if df[DATE_COL].duplicated().any():
        n_dupes = int(df[DATE_COL].duplicated().sum())
        logging.warning(f"  Merging {n_dupes} duplicated dates")
        agg = {col: lambda s: s.sum(min_count=1) for col in COUNT_COLS + VALUE_COLS}
        agg[POSITION_COL] = 'mean'
        df = df.groupby(DATE_COL, as_index=False).agg(agg)

    df = df.sort_values(DATE_COL).reset_index(drop=True)

    check_contiguity(df)
    logging.info(f"Successfully loaded {len(df)} days "
                 f"({df[DATE_COL].min().date()} to {df[DATE_COL].max().date()})")
    return df
