"""
Shared fixtures: synthetic daily campaign metrics.

The synthetic series has a weekly pattern (weekends at ~60% of weekday clicks),
conversions at ~5% of clicks, and an average position that moves against CTR,
so the exploratory tests have real effects to find.
"""

import numpy as np
import pandas as pd
import pytest

from fetch_data import prepare_daily
from preprocess import preprocess_data


def make_daily(n_days: int = 730, start: str = '2022-01-03', seed: int = 42) -> pd.DataFrame:
    """Daily metrics in the internal schema (2022-01-03 is a Monday)."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start=start, periods=n_days, freq='D')

    weekday_factor = np.where(dates.weekday >= 5, 0.6, 1.0)
    trend = np.linspace(0, 40, n_days)
    clicks = rng.poisson(200 * weekday_factor + trend)

    ctr = np.clip(0.05 + 0.01 * rng.standard_normal(n_days), 0.02, 0.08)
    impressions = np.round(clicks / ctr).astype(int)
    conversions = rng.poisson(0.05 * clicks)
    cost = np.round(clicks * rng.uniform(1.0, 1.4, n_days), 2)
    value = np.round(conversions * rng.uniform(40, 60, n_days), 2)
    position = np.round(2.0 - 30 * (ctr - 0.05) + 0.05 * rng.standard_normal(n_days), 2)

    return pd.DataFrame({
        'date': dates,
        'impressions': impressions,
        'clicks': clicks,
        'conversions': conversions,
        'cost': cost,
        'total_conversion_value': value,
        'average_position': position,
    })


def make_raw_export(n_days: int = 30) -> pd.DataFrame:
    """The same data as make_daily, with ad-platform export headers and formatting."""
    df = make_daily(n_days)
    return pd.DataFrame({
        'Date': df['date'].dt.strftime('%Y-%m-%d'),
        'Impressions': df['impressions'].map(lambda v: f'{v:,}'),
        'Clicks': df['clicks'],
        'Conversions': df['conversions'],
        'Cost': df['cost'].map(lambda v: f'${v:,.2f}'),
        'Total conversion value': df['total_conversion_value'],
        'Avg. position': df['average_position'],
    })


@pytest.fixture
def daily_raw() -> pd.DataFrame:
    return make_daily()


@pytest.fixture
def daily_df() -> pd.DataFrame:
    """Two years of preprocessed daily data."""
    df_daily, _ = preprocess_data(prepare_daily(make_daily()))
    return df_daily


@pytest.fixture
def short_daily_df() -> pd.DataFrame:
    """Twenty weeks of preprocessed daily data, for quicker model fits."""
    df_daily, _ = preprocess_data(prepare_daily(make_daily(n_days=140)))
    return df_daily


@pytest.fixture
def raw_export_csv(tmp_path):
    path = tmp_path / 'campaign_daily.csv'
    make_raw_export().to_csv(path, index=False)
    return path


class RecordingModel:
    """Weekly model stub: predicts rate * clicks + offset and records every call."""

    def __init__(self, rate: float = 0.2, offset: float = 0.0):
        self.rate = rate
        self.offset = offset
        self.calls = []

    def predict(self, weekly_clicks):
        self.calls.append(weekly_clicks)
        return self.rate * weekly_clicks + self.offset


@pytest.fixture
def recording_model() -> RecordingModel:
    return RecordingModel()
