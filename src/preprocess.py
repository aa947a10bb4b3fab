import pandas as pd
import numpy as np
import logging

from config_forecast import (
    DATE_COL, COUNT_COLS, VALUE_COLS, POSITION_COL, BUCKET_DAYS,
    LGBM_LAGS, LGBM_ROLLING_WINDOWS
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

"""
PREPROCESSING WORKFLOW:

    df_daily = fetch_data('campaign.csv')
    df_daily, df_weekly = preprocess_data(df_daily)

    # df_daily: contiguous calendar days, ratio metrics, calendar features
    # df_weekly: 7-day buckets counted from the first day (same bucketing as redistribute())

    df_train, df_test = split_train_test(df_daily, holdout_days=28)
"""

def fill_missing_days(df: pd.DataFrame) -> pd.DataFrame:
    """
    Reindex daily data to a contiguous calendar range.

    Missing days are added with NaN metrics (not zeros) so that downstream code
    decides how to treat them explicitly, e.g. the redistributor's missing policy.

    Parameters:
        df: Daily data sorted by date

    Returns:
        DataFrame with one row per calendar day
    """
    logging.info("Filling missing days...")

    all_days = pd.date_range(start=df[DATE_COL].min(), end=df[DATE_COL].max(), freq='D')
    skeleton = pd.DataFrame({DATE_COL: all_days})
    df_complete = skeleton.merge(df, on=DATE_COL, how='left')

    added_rows = len(df_complete) - len(df)
    if added_rows > 0:
        logging.info(f"  Added {added_rows:,} missing day rows ({added_rows/len(df)*100:.1f}% increase)")
    logging.info(f"  Complete data: {len(df_complete):,} days")

    return df_complete


def _safe_ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    # Zero denominators give NaN rather than inf
    return numerator / denominator.where(denominator != 0)


def add_derived_metrics(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add ratio metrics used in the exploratory analysis.

    Features added:
    - ctr: clicks / impressions
    - conversion_rate: conversions / clicks
    - cpc: cost / clicks
    - cost_per_conversion: cost / conversions
    - roas: total_conversion_value / cost
    """
    logging.info("Adding derived ratio metrics...")
    df = df.copy()
    df['ctr'] = _safe_ratio(df['clicks'], df['impressions'])
    df['conversion_rate'] = _safe_ratio(df['conversions'], df['clicks'])
    df['cpc'] = _safe_ratio(df['cost'], df['clicks'])
    df['cost_per_conversion'] = _safe_ratio(df['cost'], df['conversions'])
    df['roas'] = _safe_ratio(df['total_conversion_value'], df['cost'])
    return df


def add_time_features(df: pd.DataFrame, bucket_days: int = BUCKET_DAYS) -> pd.DataFrame:
    """
    Add calendar features.

    Features added:
    - day_of_week: 0=Monday ... 6=Sunday
    - is_weekend: 1 on Saturday/Sunday
    - week_index: 7-day bucket number counted from the first row (not ISO weeks)

    Parameters:
        df: Contiguous daily data
        bucket_days: Days per bucket

    Returns:
        DataFrame with time features added
    """
    logging.info("Adding time features...")
    df = df.copy()
    df['day_of_week'] = df[DATE_COL].dt.weekday
    df['is_weekend'] = (df['day_of_week'] >= 5).astype(int)
    df['week_index'] = np.arange(len(df)) // bucket_days
    return df


def aggregate_to_weekly(df: pd.DataFrame, bucket_days: int = BUCKET_DAYS) -> pd.DataFrame:
    """
    Aggregate daily metrics to consecutive 7-day buckets starting at the first day.

    Missing values are ignored when summing (a bucket of all-missing days sums to 0).
    The last bucket may hold fewer than bucket_days days; n_days records how many.

    Parameters:
        df: Contiguous daily data sorted by date
        bucket_days: Days per bucket

    Returns:
        df_weekly with week_index, week_start, n_days, summed counts/values and mean position
    """
    logging.info("Aggregating daily metrics to weekly buckets...")

    df = df.reset_index(drop=True)
    week_index = np.arange(len(df)) // bucket_days

    sum_cols = [col for col in COUNT_COLS + VALUE_COLS if col in df.columns]
    agg = {col: 'sum' for col in sum_cols}
    if POSITION_COL in df.columns:
        agg[POSITION_COL] = 'mean'
    agg[DATE_COL] = 'min'

    df_weekly = df.groupby(week_index).agg(agg)
    df_weekly['n_days'] = df.groupby(week_index).size()
    df_weekly = df_weekly.rename(columns={DATE_COL: 'week_start'})
    df_weekly.index.name = 'week_index'
    df_weekly = df_weekly.reset_index()

    n_partial = int((df_weekly['n_days'] < bucket_days).sum())
    logging.info(f"  Weekly: {len(df_weekly):,} buckets ({n_partial} partial)")

    return df_weekly


def add_lag_features(df: pd.DataFrame, target_col: str = 'clicks',
                     lags: list = None, rolling_windows: list = None) -> pd.DataFrame:
    """
    Add lag and rolling average features of a daily target.

    Features added:
    - {target}_lag_{n}: value n days back
    - {target}_rolling_{w}d: mean of the w days ending yesterday

    Leading rows without enough history keep NaN (LightGBM handles missing values).

    Parameters:
        df: Contiguous daily data sorted by date
        target_col: Column to lag
        lags: Lag distances in days
        rolling_windows: Rolling window lengths in days

    Returns:
        DataFrame with lag features added
    """
    lags = LGBM_LAGS if lags is None else lags
    rolling_windows = LGBM_ROLLING_WINDOWS if rolling_windows is None else rolling_windows

    df = df.copy()
    for lag in lags:
        df[f'{target_col}_lag_{lag}'] = df[target_col].shift(lag)
    for window in rolling_windows:
        df[f'{target_col}_rolling_{window}d'] = df[target_col].shift(1).rolling(window=window, min_periods=1).mean()
    return df


def split_train_test(df: pd.DataFrame, holdout_days: int) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Temporal split: the last holdout_days rows are the test set.

    Raises:
        ValueError if holdout_days leaves no training data
    """
    if holdout_days <= 0 or holdout_days >= len(df):
        raise ValueError(f"holdout_days ({holdout_days}) must be between 1 and {len(df) - 1}")
    df_train = df.iloc[:-holdout_days].copy()
    df_test = df.iloc[-holdout_days:].copy()
    logging.info(f"  Train: {len(df_train)} days (to {df_train[DATE_COL].max().date()}) | "
                 f"Test: {len(df_test)} days (from {df_test[DATE_COL].min().date()})")
    return df_train, df_test


def preprocess_data(df_daily: pd.DataFrame, bucket_days: int = BUCKET_DAYS) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Prepare daily data for analysis and modelling.

    Parameters:
        df_daily: Output of fetch_data()
        bucket_days: Days per weekly bucket

    Returns:
        df_daily: Contiguous days with derived metrics and time features
        df_weekly: Weekly bucket aggregation
    """
    logging.info(f"Starting data preprocessing ({len(df_daily)} daily rows)...")

    df_daily = fill_missing_days(df_daily)
    df_daily = add_derived_metrics(df_daily)
    df_daily = add_time_features(df_daily, bucket_days=bucket_days)
    df_weekly = aggregate_to_weekly(df_daily, bucket_days=bucket_days)

    logging.info(f"✅ Preprocessing complete: {len(df_daily)} days, {len(df_weekly)} weeks")
    return df_daily, df_weekly
