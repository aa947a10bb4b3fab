"""
Weekly-to-daily redistribution of conversion predictions.

A weekly conversion model maps a week's total clicks to a predicted number of
conversions for that week. To get a daily conversion forecast we:

1. Cut the daily click sequence into consecutive 7-day buckets (starting at
   index 0, last bucket may be short)
2. Ask the model for one prediction per bucket, using the bucket's click total
3. Clamp negative predictions to 0
4. Split each bucket's prediction across its days by share of the bucket's clicks

Usage:
    daily_conversions = redistribute(weekly_model, df_daily['clicks'])
"""

import logging
import math
import numbers

import numpy as np
import pandas as pd

from config_forecast import (
    BUCKET_DAYS, ZERO_BUCKET_POLICY, ZERO_BUCKET_POLICIES,
    MISSING_POLICY, MISSING_POLICIES
)


class RedistributionError(ValueError):
    """Base class for redistribution failures."""


class InputShapeError(RedistributionError):
    """Daily clicks are empty, negative, non-numeric or (under 'reject') missing."""


class ModelInvocationError(RedistributionError):
    """The weekly model failed or returned something that is not a finite number."""


class DegenerateBucketError(RedistributionError):
    """A bucket with zero total clicks under the 'error' zero-bucket policy."""


def _as_click_array(daily_clicks, missing_policy: str) -> np.ndarray:
    """Validate daily clicks and return them as a float array (NaN = missing)."""
    ndim = getattr(daily_clicks, 'ndim', None)
    if np.isscalar(daily_clicks) or ndim == 0:
        raise InputShapeError(f"Daily clicks must be an ordered sequence, got scalar {daily_clicks!r}")
    if ndim is not None and ndim != 1:
        raise InputShapeError(f"Daily clicks must be one-dimensional, got {ndim} dimensions")

    # pd.NA and None become NaN, like NaN itself
    try:
        values = (
            pd.to_numeric(pd.Series(daily_clicks), errors='raise')
            .astype('Float64')
            .to_numpy(dtype='float64', na_value=np.nan)
        )
    except (TypeError, ValueError) as e:
        raise InputShapeError(f"Daily clicks must be numeric: {e}") from e

    if len(values) == 0:
        raise InputShapeError("Daily clicks sequence is empty")

    missing = np.isnan(values)
    if missing.any() and missing_policy == 'reject':
        positions = np.flatnonzero(missing)[:10].tolist()
        raise InputShapeError(f"Daily clicks contain {int(missing.sum())} missing values (first positions: {positions})")

    if np.isinf(values).any():
        raise InputShapeError("Daily clicks contain infinite values")
    if (values[~missing] < 0).any():
        positions = np.flatnonzero(values < 0)[:10].tolist()
        raise InputShapeError(f"Daily clicks contain negative values (first positions: {positions})")

    return values


def _invoke_model(weekly_model, bucket_total: float) -> float:
    """Call the weekly model once and return its prediction as a finite float."""
    predict = getattr(weekly_model, 'predict', None)
    if predict is None:
        if not callable(weekly_model):
            raise ModelInvocationError(
                f"Weekly model of type {type(weekly_model).__name__} has no predict() and is not callable"
            )
        predict = weekly_model

    try:
        predicted = predict(bucket_total)
    except Exception as e:
        raise ModelInvocationError(f"Weekly model failed for bucket total {bucket_total:g}: {e}") from e

    # Accept 0-d / single-element arrays and Series, as statsmodels returns them
    if isinstance(predicted, (np.ndarray, pd.Series)):
        if predicted.size != 1:
            raise ModelInvocationError(
                f"Weekly model returned {predicted.size} values for bucket total {bucket_total:g}, expected one"
            )
        predicted = np.asarray(predicted).reshape(-1)[0]

    # Any real-valued number (Decimal, Fraction, numpy scalars); never complex or bool
    is_complex = isinstance(predicted, numbers.Complex) and not isinstance(predicted, numbers.Real)
    if isinstance(predicted, bool) or not isinstance(predicted, numbers.Number) or is_complex:
        raise ModelInvocationError(
            f"Weekly model returned non-numeric {type(predicted).__name__} for bucket total {bucket_total:g}"
        )
    predicted = float(predicted)
    if not math.isfinite(predicted):
        raise ModelInvocationError(f"Weekly model returned {predicted} for bucket total {bucket_total:g}")
    return predicted


def redistribute(weekly_model, daily_clicks, zero_bucket_policy: str = ZERO_BUCKET_POLICY,
                 missing_policy: str = MISSING_POLICY, bucket_days: int = BUCKET_DAYS):
    """
    Turn weekly conversion predictions into daily ones, weighted by daily clicks.

    Parameters:
        weekly_model: Object with predict(weekly_clicks) -> weekly_conversions, or a plain callable
        daily_clicks: Ordered daily click counts (list, numpy array or pandas Series)
        zero_bucket_policy: 'zero', 'even' or 'error' for buckets with zero total clicks
        missing_policy: 'zero' (missing counts as 0 clicks) or 'reject'
        bucket_days: Days per bucket (7)

    Returns:
        Daily predicted conversions, same length as daily_clicks. A pandas Series
        when daily_clicks is a Series (same index), otherwise a numpy array.

    Raises:
        InputShapeError, ModelInvocationError, DegenerateBucketError
    """
    if zero_bucket_policy not in ZERO_BUCKET_POLICIES:
        raise ValueError(f"Unknown zero_bucket_policy '{zero_bucket_policy}'. Use one of {ZERO_BUCKET_POLICIES}.")
    if missing_policy not in MISSING_POLICIES:
        raise ValueError(f"Unknown missing_policy '{missing_policy}'. Use one of {MISSING_POLICIES}.")
    if bucket_days < 1:
        raise ValueError(f"bucket_days must be positive, got {bucket_days}")

    clicks = np.nan_to_num(_as_click_array(daily_clicks, missing_policy), nan=0.0)
    output = np.zeros(len(clicks), dtype='float64')
    n_buckets = 0
    n_clamped = 0

    for start in range(0, len(clicks), bucket_days):
        bucket = clicks[start:start + bucket_days]
        bucket_total = float(bucket.sum())

        predicted = _invoke_model(weekly_model, bucket_total)
        if predicted < 0:
            n_clamped += 1
            predicted = 0.0

        if bucket_total > 0:
            output[start:start + len(bucket)] = predicted * (bucket / bucket_total)
        elif zero_bucket_policy == 'even':
            output[start:start + len(bucket)] = predicted / len(bucket)
        elif zero_bucket_policy == 'error':
            raise DegenerateBucketError(
                f"Bucket {start // bucket_days} (days {start}-{start + len(bucket) - 1}) has zero clicks; "
                f"cannot distribute prediction {predicted:g}"
            )
        # 'zero': bucket already 0

        logging.debug(f"  Bucket {start // bucket_days}: clicks={bucket_total:g}, predicted={predicted:.3f}")
        n_buckets += 1

    logging.info(f"Redistributed {n_buckets} weekly predictions over {len(clicks)} days "
                 f"({n_clamped} negative predictions clamped to 0)")

    if isinstance(daily_clicks, pd.Series):
        return pd.Series(output, index=daily_clicks.index, name='conversions_pred')
    return output
