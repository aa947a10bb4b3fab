"""
Campaign click and conversion forecasting.

Candidate models:
- ARIMA on daily clicks (pmdarima auto_arima, stepwise AIC search)
- Weekly Poisson GLM of conversions on clicks (statsmodels), redistributed to days
- Simple moving average with the window picked by one-step-ahead RMSE
- LightGBM on lagged daily clicks (recursive multi-step forecast)

Every model is fitted on the data it is given and forecasts forward from its last day.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import lightgbm as lgb
import pmdarima as pm
import statsmodels.api as sm

from config_forecast import (
    DATE_COL, BUCKET_DAYS, ARIMA_PARAMS, ARIMA_SEASONAL, ARIMA_SEASONAL_PERIOD,
    GLM_LINK, GLM_LINKS, MIN_WEEKS_FOR_GLM, MA_MAX_WINDOW, MA_MIN_WINDOW,
    LGBM_PARAMS, LGBM_NUM_BOOST_ROUND, LGBM_EARLY_STOPPING_ROUNDS, LGBM_LAGS, LGBM_ROLLING_WINDOWS,
    TRAIN_RATIO, ZERO_BUCKET_POLICY, MISSING_POLICY
)
from preprocess import aggregate_to_weekly, add_lag_features
from redistribute import redistribute

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def _clean_series(series) -> pd.Series:
    """Float series with gaps linearly interpolated (models below need complete input)."""
    values = pd.Series(series, dtype=float).reset_index(drop=True)
    if values.isna().all():
        raise ValueError("Series has no observed values")
    return values.interpolate(limit_direction='both')


def _future_index(start, horizon: int):
    if start is None:
        return pd.RangeIndex(horizon)
    return pd.date_range(start=pd.Timestamp(start), periods=horizon, freq='D', name=DATE_COL)


# ============================================================================
# ARIMA
# ============================================================================

def fit_click_arima(series, seasonal: bool = ARIMA_SEASONAL, m: int = ARIMA_SEASONAL_PERIOD, **overrides):
    """
    Fit an ARIMA model to daily clicks, choosing the order by AIC.

    Parameters:
        series: Daily clicks (gaps are interpolated)
        seasonal: Search seasonal orders with period m
        m: Seasonal period (7 = weekly)
        overrides: Extra auto_arima keyword arguments

    Returns:
        Fitted pmdarima ARIMA model
    """
    values = _clean_series(series)
    params = {**ARIMA_PARAMS, **overrides}
    logging.info(f"  Fitting ARIMA on {len(values)} days (seasonal={seasonal}, m={m if seasonal else 1})...")

    model = pm.auto_arima(values.to_numpy(), seasonal=seasonal, m=m if seasonal else 1, **params)

    logging.info(f"    Selected ARIMA{model.order}"
                 f"{model.seasonal_order if seasonal else ''} AIC={model.aic():.1f}")
    return model


def forecast_arima(model, horizon: int, start=None) -> pd.Series:
    """Forecast horizon days ahead; negative values are clipped to 0."""
    preds = np.clip(np.asarray(model.predict(n_periods=horizon), dtype=float), 0, None)
    return pd.Series(preds, index=_future_index(start, horizon), name='arima')


# ============================================================================
# WEEKLY CONVERSION MODEL (POISSON GLM)
# ============================================================================

class WeeklyConversionModel:
    """
    Poisson GLM of weekly conversions on weekly clicks.

    predict() takes a scalar weekly click total and returns a scalar weekly
    conversion prediction, which is what redistribute() expects.
    """

    def __init__(self, results, link: str, n_weeks: int):
        self.results = results
        self.link = link
        self.n_weeks = n_weeks

    def predict(self, weekly_clicks) -> float:
        exog = np.array([[1.0, float(weekly_clicks)]])
        return float(np.asarray(self.results.predict(exog)).reshape(-1)[0])

    @property
    def params(self) -> dict:
        return dict(zip(['const', 'clicks'], np.asarray(self.results.params, dtype=float)))

    @property
    def aic(self) -> float:
        return float(self.results.aic)

    def summary(self):
        return self.results.summary()


def fit_weekly_conversion_model(df_daily: pd.DataFrame, link: str = GLM_LINK,
                                bucket_days: int = BUCKET_DAYS) -> WeeklyConversionModel:
    """
    Fit conversions ~ clicks on weekly buckets with a Poisson GLM.

    Only full buckets are used so a trailing partial week does not drag the fit.
    With link='identity' the model can predict negative conversions for small
    click totals; redistribute() clamps those to 0.

    Parameters:
        df_daily: Contiguous daily data with clicks and conversions
        link: 'log' (canonical) or 'identity'
        bucket_days: Days per bucket

    Returns:
        WeeklyConversionModel

    Raises:
        ValueError if there are fewer than MIN_WEEKS_FOR_GLM full weeks
    """
    if link not in GLM_LINKS:
        raise ValueError(f"Unknown GLM link '{link}'. Use one of {GLM_LINKS}.")

    df_weekly = aggregate_to_weekly(df_daily, bucket_days=bucket_days)
    df_weekly = df_weekly[df_weekly['n_days'] == bucket_days]
    if len(df_weekly) < MIN_WEEKS_FOR_GLM:
        raise ValueError(f"Need at least {MIN_WEEKS_FOR_GLM} full weeks to fit the conversion model, got {len(df_weekly)}")

    link_fn = sm.families.links.Log() if link == 'log' else sm.families.links.Identity()
    X = sm.add_constant(df_weekly['clicks'].astype(float).to_numpy(), has_constant='add')
    y = df_weekly['conversions'].astype(float).to_numpy()

    results = sm.GLM(y, X, family=sm.families.Poisson(link=link_fn)).fit()
    model = WeeklyConversionModel(results, link=link, n_weeks=len(df_weekly))

    params = model.params
    logging.info(f"  Weekly Poisson GLM ({link} link) on {len(df_weekly)} weeks: "
                 f"const={params['const']:.4f}, clicks={params['clicks']:.6f}, AIC={model.aic:.1f}")
    return model


def forecast_conversions(weekly_model, clicks_forecast: pd.Series,
                         zero_bucket_policy: str = ZERO_BUCKET_POLICY,
                         missing_policy: str = MISSING_POLICY) -> pd.Series:
    """Daily conversions for a daily click forecast via weekly prediction + redistribution."""
    conversions = redistribute(
        weekly_model, clicks_forecast,
        zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy
    )
    return pd.Series(conversions, index=clicks_forecast.index, name='conversions_pred')


# ============================================================================
# MOVING AVERAGE
# ============================================================================

@dataclass
class MovingAverageModel:
    """Simple moving average of order `window`, forecast by iterating on its own output."""
    window: int
    history: np.ndarray
    rmse: float
    scores: dict = field(default_factory=dict)

    def forecast(self, horizon: int, start=None) -> pd.Series:
        buffer = list(self.history[-self.window:])
        preds = []
        for _ in range(horizon):
            value = float(np.mean(buffer[-self.window:]))
            preds.append(value)
            buffer.append(value)
        return pd.Series(preds, index=_future_index(start, horizon), name='moving_average')


def select_moving_average_window(series, max_window: int = MA_MAX_WINDOW,
                                 min_window: int = MA_MIN_WINDOW) -> tuple[int, dict]:
    """
    Pick the moving-average window with the lowest one-step-ahead RMSE.

    All windows are scored on the same days (from index max_window on) so
    longer windows are not rewarded for skipping the noisy start.

    Returns:
        (best_window, {window: rmse})
    """
    values = _clean_series(series)
    max_window = min(max_window, len(values) - 1)
    if max_window < min_window:
        raise ValueError(f"Need more than {min_window} observations to select a moving-average window, got {len(values)}")

    scores = {}
    for window in range(min_window, max_window + 1):
        fitted = values.rolling(window=window).mean().shift(1)
        resid = (values - fitted).iloc[max_window:]
        scores[window] = float(np.sqrt(np.mean(resid ** 2)))

    best_window = min(scores, key=scores.get)
    return best_window, scores


def fit_moving_average(series, max_window: int = MA_MAX_WINDOW) -> MovingAverageModel:
    values = _clean_series(series)
    window, scores = select_moving_average_window(values, max_window=max_window)
    logging.info(f"  Moving average: window={window} days (one-step RMSE={scores[window]:.2f})")
    return MovingAverageModel(window=window, history=values.to_numpy(), rmse=scores[window], scores=scores)


# ============================================================================
# LIGHTGBM LAG MODEL
# ============================================================================

def _lag_feature_names(target_col: str) -> list:
    return ([f'{target_col}_lag_{lag}' for lag in LGBM_LAGS] +
            [f'{target_col}_rolling_{window}d' for window in LGBM_ROLLING_WINDOWS] +
            ['day_of_week'])


def train_lgbm_click_model(df_daily: pd.DataFrame, target_col: str = 'clicks') -> dict:
    """
    Train a LightGBM regressor on lagged values of a daily target.

    Temporal split: first TRAIN_RATIO of the days for training, the rest for
    early stopping.

    Returns:
        Dict with 'model', 'features', 'target_col', 'best_iteration'
    """
    df = df_daily[[DATE_COL, target_col]].copy()
    df[target_col] = _clean_series(df[target_col]).to_numpy()
    df = add_lag_features(df, target_col=target_col)
    df['day_of_week'] = df[DATE_COL].dt.weekday

    features = _lag_feature_names(target_col)
    # Need at least one lag observed
    df = df[df[f'{target_col}_lag_1'].notna()].reset_index(drop=True)

    n = len(df)
    train_end = int(n * TRAIN_RATIO)
    if train_end < 10 or n - train_end < 5:
        raise ValueError(f"Not enough days to train the LightGBM model ({n} usable rows)")

    X_train, y_train = df[features].iloc[:train_end], df[target_col].iloc[:train_end]
    X_val, y_val = df[features].iloc[train_end:], df[target_col].iloc[train_end:]
    logging.info(f"  LightGBM ({target_col}): Train: {len(X_train)} | Val: {len(X_val)} (temporal split)")

    train_data = lgb.Dataset(X_train, label=y_train)
    val_data = lgb.Dataset(X_val, label=y_val, reference=train_data)

    model = lgb.train(
        LGBM_PARAMS,
        train_data,
        num_boost_round=LGBM_NUM_BOOST_ROUND,
        valid_sets=[val_data],
        callbacks=[lgb.log_evaluation(period=0), lgb.early_stopping(stopping_rounds=LGBM_EARLY_STOPPING_ROUNDS, verbose=False)]
    )

    feature_importance = pd.DataFrame({
        'feature': features,
        'importance': model.feature_importance(importance_type='gain')
    }).sort_values('importance', ascending=False)
    logging.info(f"    Best iteration: {model.best_iteration}. Top features by importance:")
    for _, row in feature_importance.head(5).iterrows():
        logging.info(f"      {row['feature']:<25} {row['importance']:>12,.0f}")

    return {
        'model': model,
        'features': features,
        'target_col': target_col,
        'best_iteration': model.best_iteration,
    }


def forecast_lgbm(model_info: dict, df_history: pd.DataFrame, horizon: int) -> pd.Series:
    """
    Recursive forecast: each predicted day is fed back as history for the next.

    Parameters:
        model_info: Output of train_lgbm_click_model()
        df_history: Daily data the forecast continues from (date + target column)
        horizon: Days to forecast

    Returns:
        Series indexed by the next `horizon` dates, clipped at 0
    """
    target_col = model_info['target_col']
    features = model_info['features']
    history = list(_clean_series(df_history[target_col]).to_numpy())
    last_date = df_history[DATE_COL].max()
    future_dates = _future_index(last_date + pd.Timedelta(days=1), horizon)

    preds = []
    for date in future_dates:
        row = {}
        for lag in LGBM_LAGS:
            row[f'{target_col}_lag_{lag}'] = history[-lag] if len(history) >= lag else np.nan
        for window in LGBM_ROLLING_WINDOWS:
            row[f'{target_col}_rolling_{window}d'] = float(np.mean(history[-window:]))
        row['day_of_week'] = date.weekday()

        X_pred = pd.DataFrame([row])[features]
        value = max(float(model_info['model'].predict(X_pred, num_iteration=model_info['best_iteration'])[0]), 0.0)
        preds.append(value)
        history.append(value)

    return pd.Series(preds, index=future_dates, name='lgbm')


# ============================================================================
# COMBINED FORECAST
# ============================================================================

def train_models(df_daily: pd.DataFrame, link: str = GLM_LINK, arima_seasonal: bool = ARIMA_SEASONAL) -> dict:
    """
    Fit every candidate model on df_daily.

    Returns:
        Dict with 'arima', 'moving_average_clicks', 'moving_average_conversions',
        'lgbm', 'weekly_conversions'
    """
    logging.info(f"\nTraining models on {len(df_daily)} days "
                 f"({df_daily[DATE_COL].min().date()} to {df_daily[DATE_COL].max().date()})...")
    models = {
        'arima': fit_click_arima(df_daily['clicks'], seasonal=arima_seasonal),
        'moving_average_clicks': fit_moving_average(df_daily['clicks']),
        'moving_average_conversions': fit_moving_average(df_daily['conversions']),
        'lgbm': train_lgbm_click_model(df_daily, target_col='clicks'),
        'weekly_conversions': fit_weekly_conversion_model(df_daily, link=link),
    }
    logging.info("✅ Models trained")
    return models


def predict(models: dict, df_history: pd.DataFrame, horizon: int,
            zero_bucket_policy: str = ZERO_BUCKET_POLICY,
            missing_policy: str = MISSING_POLICY) -> pd.DataFrame:
    """
    Generate forecasts from models trained by train_models().

    Conversions from the weekly GLM are redistributed over the ARIMA click forecast.

    Returns:
        DataFrame indexed by forecast date with clicks_* and conversions_* columns
    """
    start = df_history[DATE_COL].max() + pd.Timedelta(days=1)
    logging.info(f"\nGenerating {horizon}-day forecasts from {start.date()}...")

    clicks_arima = forecast_arima(models['arima'], horizon, start=start)
    df_forecast = pd.DataFrame({
        'clicks_arima': clicks_arima,
        'clicks_moving_average': models['moving_average_clicks'].forecast(horizon, start=start),
        'clicks_lgbm': forecast_lgbm(models['lgbm'], df_history, horizon),
        'conversions_poisson': forecast_conversions(
            models['weekly_conversions'], clicks_arima,
            zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy
        ),
        'conversions_moving_average': models['moving_average_conversions'].forecast(horizon, start=start),
    })
    df_forecast.index.name = DATE_COL

    logging.info(f"Generated {len(df_forecast)} days of forecasts")
    return df_forecast


def build_forecast(df_daily: pd.DataFrame, horizon_days: int,
                   zero_bucket_policy: str = ZERO_BUCKET_POLICY, missing_policy: str = MISSING_POLICY,
                   link: str = GLM_LINK, arima_seasonal: bool = ARIMA_SEASONAL) -> tuple[pd.DataFrame, dict]:
    """Fit all models on the full history and forecast horizon_days ahead."""
    models = train_models(df_daily, link=link, arima_seasonal=arima_seasonal)
    df_forecast = predict(models, df_daily, horizon_days,
                          zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy)
    return df_forecast, models
