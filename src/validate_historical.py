"""
Compare forecasting models against held-out history.

For each fold (walk-forward, most recent window last):
1. Train every candidate on the days before the holdout window
2. Forecast the holdout window
3. Score each forecast against actuals (RMSE, MAE, SMAPE)
"""

import logging
import argparse
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.model_selection import TimeSeriesSplit

from fetch_data import fetch_data
from preprocess import preprocess_data, split_train_test
from forecast import (
    fit_click_arima, forecast_arima, fit_moving_average, train_lgbm_click_model, forecast_lgbm,
    fit_weekly_conversion_model, forecast_conversions
)
from config_forecast import (
    DATE_COL, METRIC_FUNCTIONS, DEFAULT_HOLDOUT_DAYS, MIN_TRAINING_DAYS,
    ZERO_BUCKET_POLICY, MISSING_POLICY, GLM_LINK, ARIMA_SEASONAL, BUCKET_DAYS
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def score_forecast(actual, predicted) -> dict:
    """Apply every metric in METRIC_FUNCTIONS, ignoring days without an actual value."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    mask = ~np.isnan(actual) & ~np.isnan(predicted)
    if not mask.any():
        return {name: np.nan for name in METRIC_FUNCTIONS}
    return {name: float(func(actual[mask], predicted[mask])) for name, func in METRIC_FUNCTIONS.items()}


def _candidate_forecasts(df_train: pd.DataFrame, df_test: pd.DataFrame, zero_bucket_policy: str,
                         missing_policy: str, link: str, arima_seasonal: bool) -> dict:
    """
    Build the candidate forecasts for one fold.

    Returns:
        {(target, model_name): callable returning a forecast aligned to df_test}
    """
    horizon = len(df_test)
    start = df_test[DATE_COL].min()
    cache = {}

    def arima_clicks():
        if 'arima' not in cache:
            model = fit_click_arima(df_train['clicks'], seasonal=arima_seasonal)
            cache['arima'] = forecast_arima(model, horizon, start=start)
        return cache['arima']

    def weekly_model():
        if 'glm' not in cache:
            cache['glm'] = fit_weekly_conversion_model(df_train, link=link)
        return cache['glm']

    def naive_last_week():
        # Seasonal naive: repeat the last full week of training clicks
        last_week = df_train['clicks'].iloc[-BUCKET_DAYS:].to_numpy(dtype=float)
        return np.resize(last_week, horizon)

    def actual_clicks():
        return pd.Series(df_test['clicks'].to_numpy(dtype=float), index=pd.DatetimeIndex(df_test[DATE_COL]))

    return {
        ('clicks', 'arima'): arima_clicks,
        ('clicks', 'moving_average'): lambda: fit_moving_average(df_train['clicks']).forecast(horizon, start=start),
        ('clicks', 'lgbm'): lambda: forecast_lgbm(train_lgbm_click_model(df_train, 'clicks'), df_train, horizon),
        ('clicks', 'naive_last_week'): naive_last_week,
        ('conversions', 'poisson_redistributed'): lambda: forecast_conversions(
            weekly_model(), arima_clicks(), zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy),
        ('conversions', 'poisson_actual_clicks'): lambda: forecast_conversions(
            weekly_model(), actual_clicks(), zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy),
        ('conversions', 'moving_average'): lambda: fit_moving_average(df_train['conversions']).forecast(horizon, start=start),
    }


def evaluate_models(df_train: pd.DataFrame, df_test: pd.DataFrame, fold: int = 0,
                    zero_bucket_policy: str = ZERO_BUCKET_POLICY, missing_policy: str = MISSING_POLICY,
                    link: str = GLM_LINK, arima_seasonal: bool = ARIMA_SEASONAL) -> list:
    """
    Fit every candidate on df_train, forecast df_test and score it.

    A candidate that fails is logged and scored NaN so the rest still run.

    Returns:
        List of dicts: fold, target, model, train_end, test_start, test_end, RMSE, MAE, SMAPE
    """
    logging.info(f"\nFold {fold}: train to {df_train[DATE_COL].max().date()}, "
                 f"test {df_test[DATE_COL].min().date()} to {df_test[DATE_COL].max().date()}")

    candidates = _candidate_forecasts(df_train, df_test, zero_bucket_policy, missing_policy, link, arima_seasonal)
    results = []

    for (target, model_name), make_forecast in candidates.items():
        try:
            predicted = make_forecast()
            scores = score_forecast(df_test[target], predicted)
        except Exception as e:
            logging.error(f"  {target}/{model_name} failed: {e}")
            scores = {name: np.nan for name in METRIC_FUNCTIONS}

        logging.info(f"  {target:<12} {model_name:<22} RMSE={scores['RMSE']:>9.3f} "
                     f"MAE={scores['MAE']:>9.3f} SMAPE={scores['SMAPE']:>6.1f}%")
        results.append({
            'fold': fold,
            'target': target,
            'model': model_name,
            'train_end': df_train[DATE_COL].max(),
            'test_start': df_test[DATE_COL].min(),
            'test_end': df_test[DATE_COL].max(),
            **scores,
        })

    return results


def run_backtest(df_daily: pd.DataFrame, holdout_days: int = DEFAULT_HOLDOUT_DAYS, n_folds: int = 1,
                 zero_bucket_policy: str = ZERO_BUCKET_POLICY, missing_policy: str = MISSING_POLICY,
                 link: str = GLM_LINK, arima_seasonal: bool = ARIMA_SEASONAL) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Walk-forward backtest over n_folds consecutive holdout windows ending at the last day.

    Parameters:
        df_daily: Preprocessed contiguous daily data
        holdout_days: Days per holdout window
        n_folds: Number of windows; fold 0 is the earliest

    Returns:
        df_results: One row per (fold, target, model)
        df_ranking: Mean metrics per (target, model), sorted by RMSE within each target

    Raises:
        ValueError if holdout_days or n_folds is below 1, or the earliest fold would
        have fewer than MIN_TRAINING_DAYS training days
    """
    if n_folds < 1:
        raise ValueError(f"n_folds must be at least 1, got {n_folds}")
    if holdout_days < 1:
        raise ValueError(f"holdout_days must be at least 1, got {holdout_days}")
    min_train = len(df_daily) - n_folds * holdout_days
    if min_train < MIN_TRAINING_DAYS:
        raise ValueError(f"{n_folds} folds of {holdout_days} days leave {min_train} training days "
                         f"(minimum {MIN_TRAINING_DAYS})")

    if n_folds == 1:
        folds = [split_train_test(df_daily, holdout_days)]
    else:
        splitter = TimeSeriesSplit(n_splits=n_folds, test_size=holdout_days)
        folds = [(df_daily.iloc[train_idx].copy(), df_daily.iloc[test_idx].copy())
                 for train_idx, test_idx in splitter.split(df_daily)]

    all_results = []
    for fold, (df_train, df_test) in enumerate(folds):
        all_results.extend(evaluate_models(
            df_train, df_test, fold=fold,
            zero_bucket_policy=zero_bucket_policy, missing_policy=missing_policy,
            link=link, arima_seasonal=arima_seasonal
        ))

    df_results = pd.DataFrame(all_results)
    df_ranking = (
        df_results.groupby(['target', 'model'])[list(METRIC_FUNCTIONS)]
        .mean()
        .reset_index()
        .sort_values(['target', 'RMSE'])
        .reset_index(drop=True)
    )
    return df_results, df_ranking


def log_ranking(df_ranking: pd.DataFrame):
    logging.info("\n" + "="*80)
    logging.info("MODEL COMPARISON (mean over folds)")
    logging.info("="*80)
    for target, group in df_ranking.groupby('target'):
        logging.info(f"\n{target}:")
        for rank, (_, row) in enumerate(group.iterrows(), start=1):
            logging.info(f"  {rank}. {row['model']:<22} RMSE={row['RMSE']:>9.3f} "
                         f"MAE={row['MAE']:>9.3f} SMAPE={row['SMAPE']:>6.1f}%")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Backtest campaign forecasting models on held-out history')
    parser.add_argument('--input', required=True, type=str, help='Daily campaign metrics CSV/parquet')
    parser.add_argument('--holdout-days', type=int, default=DEFAULT_HOLDOUT_DAYS,
                        help=f'Days per holdout window (default: {DEFAULT_HOLDOUT_DAYS})')
    parser.add_argument('--folds', type=int, default=1, help='Number of walk-forward folds (default: 1)')
    parser.add_argument('--output', type=str, default='../data/output/backtest_results.csv',
                        help='Output CSV file for per-fold results')
    args = parser.parse_args(argv)

    if args.holdout_days < 1:
        raise ValueError(f"Holdout days must be >= 1, got {args.holdout_days}")
    if args.folds < 1:
        raise ValueError(f"Folds must be >= 1, got {args.folds}")

    logging.info("="*80)
    logging.info(f"HISTORICAL VALIDATION - {args.folds} fold(s) x {args.holdout_days} days")
    logging.info("="*80)

    df_daily = fetch_data(args.input)
    df_daily, _ = preprocess_data(df_daily)

    df_results, df_ranking = run_backtest(df_daily, holdout_days=args.holdout_days, n_folds=args.folds)
    log_ranking(df_ranking)

    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    df_results.to_csv(args.output, index=False)
    logging.info(f"\n✅ Results saved to {args.output}")


if __name__ == '__main__':
    main()
