"""
Tests for loading daily campaign exports.
"""

import pandas as pd
import pytest

from config_forecast import REQUIRED_COLUMNS
from fetch_data import check_contiguity, fetch_data, prepare_daily
from conftest import make_daily, make_raw_export


class TestFetchData:

    def test_raw_export_headers_are_normalized(self, raw_export_csv):
        df = fetch_data(raw_export_csv)

        assert set(REQUIRED_COLUMNS) <= set(df.columns)
        assert len(df) == 30
        assert pd.api.types.is_datetime64_any_dtype(df['date'])

    def test_currency_and_thousands_are_parsed(self, raw_export_csv):
        expected = make_daily(30)

        df = fetch_data(raw_export_csv)

        assert df['cost'].tolist() == pytest.approx(expected['cost'].tolist())
        assert df['impressions'].tolist() == pytest.approx(expected['impressions'].tolist())

    def test_rows_are_sorted_by_date(self, tmp_path):
        path = tmp_path / 'shuffled.csv'
        make_daily(20).sample(frac=1, random_state=0).to_csv(path, index=False)

        df = fetch_data(path)

        assert df['date'].is_monotonic_increasing


class TestPrepareDaily:

    def test_missing_column_raises(self):
        df = make_daily(10).drop(columns=['conversions'])

        with pytest.raises(ValueError, match='conversions'):
            prepare_daily(df)

    def test_negative_counts_raise(self):
        df = make_daily(10)
        df.loc[3, 'clicks'] = -4

        with pytest.raises(ValueError, match='Negative'):
            prepare_daily(df)

    def test_duplicate_dates_are_summed(self):
        df = make_daily(10)
        duplicate = df.iloc[[2]].copy()
        df = pd.concat([df, duplicate], ignore_index=True)

        result = prepare_daily(df)

        assert len(result) == 10
        assert result.loc[2, 'clicks'] == 2 * df.loc[2, 'clicks']

    def test_unparseable_dates_are_dropped(self):
        df = make_daily(10)
        df['date'] = df['date'].dt.strftime('%Y-%m-%d')
        df.loc[4, 'date'] = 'not a date'

        result = prepare_daily(df)

        assert len(result) == 9

    def test_input_is_not_modified(self):
        df = make_raw_export(10)
        original = df.copy()

        prepare_daily(df)

        pd.testing.assert_frame_equal(df, original)


class TestCheckContiguity:

    def test_contiguous(self):
        assert check_contiguity(make_daily(14)) == []

    def test_reports_missing_days(self):
        df = make_daily(14).drop(index=[3, 4, 10]).reset_index(drop=True)

        missing = check_contiguity(df)

        assert missing == list(pd.to_datetime(['2022-01-06', '2022-01-07', '2022-01-13']))
