"""
Tests for weekly-to-daily redistribution of conversion predictions.
"""

import math
from decimal import Decimal
from fractions import Fraction

import numpy as np
import pandas as pd
import pytest

from redistribute import (
    DegenerateBucketError,
    InputShapeError,
    ModelInvocationError,
    RedistributionError,
    redistribute,
)
from conftest import RecordingModel


# =============================================================================
# SCENARIOS
# =============================================================================


class TestScenarios:

    def test_single_week_of_equal_clicks(self):
        model = RecordingModel(rate=0.2)  # 70 clicks -> 14 conversions

        result = redistribute(model, [10, 10, 10, 10, 10, 10, 10])

        assert model.calls == [70.0]
        assert list(result) == pytest.approx([2.0] * 7)

    def test_zero_click_week_defaults_to_zeros(self):
        model = RecordingModel(rate=0.2, offset=5.0)  # predicts 5 for 0 clicks

        result = redistribute(model, [0] * 7)

        assert list(result) == [0.0] * 7

    def test_partial_last_bucket(self):
        model = RecordingModel(rate=0.1)

        result = redistribute(model, [10] * 10)

        assert len(result) == 10
        assert model.calls == [70.0, 30.0]
        assert list(result) == pytest.approx([1.0] * 10)

    def test_negative_prediction_gives_zeros(self):
        result = redistribute(lambda total: -5, [3, 8, 1, 4, 9, 2, 6])

        assert len(result) == 7
        assert all(value == 0.0 for value in result)

    def test_proportional_split(self):
        model = RecordingModel(rate=1.0)

        result = redistribute(model, [1, 2, 3, 4, 0, 0, 0])

        # total 10, predicted 10 -> each day keeps its own clicks
        assert list(result) == pytest.approx([1, 2, 3, 4, 0, 0, 0])

    def test_negative_only_in_one_bucket(self):
        # First bucket 70 clicks -> 70 - 100 < 0, second bucket 140 -> 40
        model = RecordingModel(rate=1.0, offset=-100.0)

        result = redistribute(model, [10] * 7 + [20] * 7)

        assert list(result[:7]) == [0.0] * 7
        assert sum(result[7:]) == pytest.approx(40.0)


# =============================================================================
# PROPERTIES
# =============================================================================


class TestProperties:

    @pytest.mark.parametrize('length', [1, 6, 7, 8, 13, 14, 30, 365])
    def test_output_length_matches_input(self, length):
        rng = np.random.default_rng(length)
        clicks = rng.integers(1, 500, size=length)

        result = redistribute(RecordingModel(rate=0.05), clicks)

        assert len(result) == length

    @pytest.mark.parametrize('seed', range(5))
    def test_bucket_sums_equal_clamped_prediction(self, seed):
        rng = np.random.default_rng(seed)
        clicks = rng.integers(1, 300, size=rng.integers(7, 60))
        model = RecordingModel(rate=0.05, offset=rng.uniform(-20, 20))

        result = redistribute(model, clicks)

        for i, start in enumerate(range(0, len(clicks), 7)):
            expected = max(0.0, model.rate * clicks[start:start + 7].sum() + model.offset)
            assert result[start:start + 7].sum() == pytest.approx(expected)
            assert model.calls[i] == pytest.approx(float(clicks[start:start + 7].sum()))

    def test_outputs_non_negative(self):
        rng = np.random.default_rng(7)
        clicks = rng.integers(0, 50, size=100)

        result = redistribute(RecordingModel(rate=0.1, offset=-3.0), clicks)

        assert (result >= 0).all()

    def test_model_called_once_per_bucket(self, recording_model):
        redistribute(recording_model, list(range(1, 23)))

        assert len(recording_model.calls) == 4
        assert all(isinstance(call, float) for call in recording_model.calls)

    def test_series_input_keeps_index(self):
        index = pd.date_range('2024-01-01', periods=9, freq='D')
        clicks = pd.Series([5, 5, 5, 5, 5, 5, 5, 2, 8], index=index)

        result = redistribute(RecordingModel(rate=0.4), clicks)

        assert isinstance(result, pd.Series)
        assert result.index.equals(index)
        assert result.iloc[7:].tolist() == pytest.approx([0.8, 3.2])

    def test_list_input_returns_array(self):
        result = redistribute(RecordingModel(), [1, 2, 3])

        assert isinstance(result, np.ndarray)

    def test_custom_bucket_length(self):
        model = RecordingModel(rate=1.0)

        redistribute(model, [1] * 9, bucket_days=3)

        assert model.calls == [3.0, 3.0, 3.0]


# =============================================================================
# ZERO-CLICK BUCKET POLICIES
# =============================================================================


class TestZeroBucketPolicy:

    def test_even_policy_splits_prediction(self):
        model = RecordingModel(rate=0.2, offset=7.0)

        result = redistribute(model, [0] * 7, zero_bucket_policy='even')

        assert list(result) == pytest.approx([1.0] * 7)

    def test_even_policy_short_bucket(self):
        model = RecordingModel(rate=0.0, offset=6.0)

        result = redistribute(model, [10] * 7 + [0, 0, 0], zero_bucket_policy='even')

        assert list(result[7:]) == pytest.approx([2.0, 2.0, 2.0])

    def test_even_policy_still_clamps(self):
        result = redistribute(lambda total: -5.0, [0] * 7, zero_bucket_policy='even')

        assert list(result) == [0.0] * 7

    def test_error_policy_raises(self):
        with pytest.raises(DegenerateBucketError, match='zero clicks'):
            redistribute(RecordingModel(), [4] * 7 + [0] * 7, zero_bucket_policy='error')

    def test_zero_policy_only_affects_zero_buckets(self):
        model = RecordingModel(rate=0.1, offset=2.0)

        result = redistribute(model, [0] * 7 + [10] * 7, zero_bucket_policy='zero')

        assert list(result[:7]) == [0.0] * 7
        assert result[7:].sum() == pytest.approx(9.0)

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match='zero_bucket_policy'):
            redistribute(RecordingModel(), [1] * 7, zero_bucket_policy='spread')


# =============================================================================
# MISSING VALUES
# =============================================================================


class TestMissingValues:

    def test_missing_counts_as_zero(self):
        model = RecordingModel(rate=1.0)

        result = redistribute(model, [10, None, 10, np.nan, 10, 10, 10])

        assert model.calls == [50.0]
        assert result[1] == 0.0
        assert result[3] == 0.0
        assert result.sum() == pytest.approx(50.0)

    def test_all_missing_bucket_uses_zero_bucket_policy(self):
        result = redistribute(RecordingModel(offset=3.0), [np.nan] * 7)

        assert list(result) == [0.0] * 7

    def test_reject_policy_raises(self):
        with pytest.raises(InputShapeError, match='missing'):
            redistribute(RecordingModel(), [10, None, 10], missing_policy='reject')

    def test_reject_policy_accepts_complete_input(self):
        result = redistribute(RecordingModel(), [10, 10, 10], missing_policy='reject')

        assert len(result) == 3

    def test_pandas_na_counts_as_zero(self):
        model = RecordingModel(rate=0.1)

        result = redistribute(model, [10, pd.NA, 10, 10, 10, 10, 10])

        assert model.calls == [60.0]
        assert result[1] == 0.0
        assert result.sum() == pytest.approx(6.0)

    def test_object_series_with_na_and_none(self):
        index = pd.date_range('2024-01-01', periods=7, freq='D')
        clicks = pd.Series([10, pd.NA, None, 10, 10, 10, 10], index=index, dtype=object)

        result = redistribute(RecordingModel(rate=1.0), clicks)

        assert result.index.equals(index)
        assert result.iloc[1:3].tolist() == [0.0, 0.0]
        assert result.sum() == pytest.approx(50.0)

    def test_nullable_integer_series(self):
        clicks = pd.Series([10, None, 10, 10, 10, 10, 10], dtype='Int64')

        result = redistribute(RecordingModel(rate=1.0), clicks)

        assert result.sum() == pytest.approx(60.0)

    def test_reject_policy_catches_pandas_na(self):
        with pytest.raises(InputShapeError, match='missing'):
            redistribute(RecordingModel(), [10, pd.NA, 10], missing_policy='reject')

    def test_unknown_missing_policy(self):
        with pytest.raises(ValueError, match='missing_policy'):
            redistribute(RecordingModel(), [1], missing_policy='drop')


# =============================================================================
# ERRORS
# =============================================================================


class TestErrors:

    def test_empty_input(self):
        with pytest.raises(InputShapeError, match='empty'):
            redistribute(RecordingModel(), [])

    def test_negative_clicks(self):
        with pytest.raises(InputShapeError, match='negative'):
            redistribute(RecordingModel(), [5, -1, 5])

    def test_non_numeric_clicks(self):
        with pytest.raises(InputShapeError):
            redistribute(RecordingModel(), [5, 'many', 5])

    def test_infinite_clicks(self):
        with pytest.raises(InputShapeError):
            redistribute(RecordingModel(), [5, np.inf, 5])

    def test_model_exception_is_wrapped(self):
        def broken(total):
            raise RuntimeError('solver diverged')

        with pytest.raises(ModelInvocationError, match='solver diverged') as excinfo:
            redistribute(broken, [1] * 7)

        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_model_nan_prediction(self):
        with pytest.raises(ModelInvocationError):
            redistribute(lambda total: math.nan, [1] * 7)

    def test_model_non_numeric_prediction(self):
        with pytest.raises(ModelInvocationError, match='non-numeric'):
            redistribute(lambda total: 'twelve', [1] * 7)

    def test_model_multi_value_prediction(self):
        with pytest.raises(ModelInvocationError):
            redistribute(lambda total: np.array([1.0, 2.0]), [1] * 7)

    def test_model_single_element_array_accepted(self):
        result = redistribute(lambda total: np.array([7.0]), [1] * 7)

        assert list(result) == pytest.approx([1.0] * 7)

    def test_model_without_predict(self):
        with pytest.raises(ModelInvocationError, match='not callable'):
            redistribute(object(), [1] * 7)

    def test_scalar_input(self):
        with pytest.raises(InputShapeError, match='sequence'):
            redistribute(RecordingModel(), 5)

    def test_zero_dimensional_array(self):
        with pytest.raises(InputShapeError):
            redistribute(RecordingModel(), np.array(5.0))

    def test_two_dimensional_input(self):
        with pytest.raises(InputShapeError, match='one-dimensional'):
            redistribute(RecordingModel(), np.ones((7, 2)))

    def test_large_prediction_does_not_overflow(self):
        result = redistribute(lambda total: 1e306, [1000.0] * 7)

        assert np.isfinite(result).all()
        assert result.sum() == pytest.approx(1e306)

    def test_model_decimal_prediction_accepted(self):
        result = redistribute(lambda total: Decimal('7'), [1] * 7)

        assert list(result) == pytest.approx([1.0] * 7)

    def test_model_fraction_prediction_accepted(self):
        result = redistribute(lambda total: Fraction(14, 2), [1] * 7)

        assert list(result) == pytest.approx([1.0] * 7)

    def test_model_complex_prediction_rejected(self):
        with pytest.raises(ModelInvocationError, match='non-numeric'):
            redistribute(lambda total: complex(7, 1), [1] * 7)

    def test_model_decimal_nan_rejected(self):
        with pytest.raises(ModelInvocationError):
            redistribute(lambda total: Decimal('NaN'), [1] * 7)

    def test_error_hierarchy(self):
        assert issubclass(InputShapeError, RedistributionError)
        assert issubclass(ModelInvocationError, RedistributionError)
        assert issubclass(DegenerateBucketError, RedistributionError)
        assert issubclass(RedistributionError, ValueError)
