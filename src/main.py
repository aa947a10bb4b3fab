"""
Main entry point for campaign metric analysis and forecasting.

Usage:
    python main.py --input ../data/campaign_daily.csv --horizon-days 14

This script orchestrates the complete workflow:
1. Load daily campaign metrics
2. Preprocess (contiguous days, ratio metrics, weekly buckets)
3. Exploratory analysis (statistics, correlations, hypothesis tests, decomposition)
4. Compare candidate models on a holdout window (RMSE)
5. Fit all models on the full history and forecast
6. Present and save results
"""

import argparse
import logging
import sys
from pathlib import Path

import joblib
import pandas as pd

from fetch_data import fetch_data
from preprocess import preprocess_data
from explore import run_eda, plot_forecast
from forecast import build_forecast
from validate_historical import run_backtest, log_ranking
from config_forecast import (
    DATE_COL,
    DEFAULT_FORECAST_HORIZON_DAYS,
    MAX_FORECAST_HORIZON_DAYS,
    MIN_FORECAST_HORIZON_DAYS,
    DEFAULT_HOLDOUT_DAYS,
    ZERO_BUCKET_POLICY,
    ZERO_BUCKET_POLICIES,
    MISSING_POLICY,
    MISSING_POLICIES,
    GLM_LINK,
    GLM_LINKS,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Campaign Metrics Analysis & Forecasting',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Two-week forecast with default settings
  python main.py --input ../data/campaign_daily.csv

  # Four-week forecast, spread zero-click weeks evenly, save plots and models
  python main.py --input ../data/campaign_daily.csv --horizon-days 28 --zero-bucket-policy even \\
      --plots-dir ../data/plots --model-dir ../data/models --output-file forecast.csv
        """
    )

    parser.add_argument('--input', required=True, type=str, help='Daily campaign metrics CSV/parquet')
    parser.add_argument('--horizon-days', type=int, default=DEFAULT_FORECAST_HORIZON_DAYS,
                        help=f'Days to forecast (default: {DEFAULT_FORECAST_HORIZON_DAYS})')
    parser.add_argument('--holdout-days', type=int, default=DEFAULT_HOLDOUT_DAYS,
                        help=f'Days held out for model comparison, 0 to skip (default: {DEFAULT_HOLDOUT_DAYS})')
    parser.add_argument('--zero-bucket-policy', choices=ZERO_BUCKET_POLICIES, default=ZERO_BUCKET_POLICY,
                        help='How weeks with zero clicks are redistributed')
    parser.add_argument('--missing-policy', choices=MISSING_POLICIES, default=MISSING_POLICY,
                        help='How missing daily clicks are treated when redistributing')
    parser.add_argument('--link', choices=GLM_LINKS, default=GLM_LINK,
                        help='Link function of the weekly Poisson conversion model')
    parser.add_argument('--no-seasonal-arima', action='store_true',
                        help='Search non-seasonal ARIMA orders only (faster)')
    parser.add_argument('--skip-eda', action='store_true', help='Skip the exploratory analysis step')
    parser.add_argument('--plots-dir', type=str, default=None, help='Save PNG plots to this directory (optional)')
    parser.add_argument('--model-dir', type=str, default=None, help='Save fitted models with joblib (optional)')
    parser.add_argument('--output-file', type=str, default=None, help='Save the forecast to CSV (optional)')

    return parser.parse_args(argv)


def validate_inputs(args):
    """
    Validate numeric arguments.

    Raises:
        ValueError if validation fails
    """
    logging.info("Validating inputs...")

    if not Path(args.input).exists():
        raise ValueError(f"Input file not found: {args.input}")

    if args.horizon_days < MIN_FORECAST_HORIZON_DAYS:
        raise ValueError(f"Forecast horizon ({args.horizon_days} days) is too short. Minimum: {MIN_FORECAST_HORIZON_DAYS} days.")
    if args.horizon_days > MAX_FORECAST_HORIZON_DAYS:
        raise ValueError(f"Forecast horizon ({args.horizon_days} days) is too long. Maximum: {MAX_FORECAST_HORIZON_DAYS} days.")
    if args.holdout_days < 0:
        raise ValueError(f"Holdout days must be >= 0, got {args.holdout_days}")

    logging.info(f"  Input: {args.input}")
    logging.info(f"  Forecast horizon: {args.horizon_days} days | Holdout: {args.holdout_days} days")
    logging.info(f"  Zero-click weeks: {args.zero_bucket_policy} | Missing clicks: {args.missing_policy} | GLM link: {args.link}")
    logging.info("  ✅ All inputs valid")


def save_models(models: dict, model_dir) -> list:
    """Persist each fitted model to model_dir/<name>.joblib."""
    model_dir = Path(model_dir)
    model_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, model in models.items():
        path = model_dir / f'{name}.joblib'
        joblib.dump(model, path)
        paths.append(path)
    logging.info(f"Saved {len(paths)} models to {model_dir}")
    return paths


def format_results(df_forecast: pd.DataFrame, df_daily: pd.DataFrame, df_ranking: pd.DataFrame = None):
    """
    Print the forecast next to recent history and the best model per target.

    Returns:
        DataFrame with the forecast (date as a column)
    """
    logging.info("\n" + "="*80)
    logging.info("FORECAST RESULTS")
    logging.info("="*80)

    if len(df_forecast) == 0:
        logging.error("❌ No forecasts generated!")
        return pd.DataFrame()

    recent = df_daily.tail(14)
    print(f"\n📊 Recent actuals (last {len(recent)} days):")
    print(f"   {'Date':<12} {'Clicks':>10} {'Conversions':>12}")
    for _, row in recent.iterrows():
        print(f"   {row[DATE_COL].strftime('%Y-%m-%d'):<12} {row['clicks']:>10,.0f} {row['conversions']:>12,.1f}")

    print(f"\n{'Date':<12} " + " ".join(f"{col:>26}" for col in df_forecast.columns))
    print("-"*80)
    for date, row in df_forecast.iterrows():
        print(f"{date.strftime('%Y-%m-%d'):<12} " + " ".join(f"{value:>26,.1f}" for value in row.values))

    totals = df_forecast.sum()
    print(f"\n{'Total':<12} " + " ".join(f"{value:>26,.1f}" for value in totals.values))

    if df_ranking is not None and len(df_ranking) > 0:
        print(f"\n{'Best model on holdout':<30}")
        print("-"*40)
        for target, group in df_ranking.groupby('target'):
            best = group.dropna(subset=['RMSE']).head(1)
            if len(best) > 0:
                print(f"{target:<12} {best.iloc[0]['model']:<22} RMSE={best.iloc[0]['RMSE']:.3f}")

    logging.info("\n" + "="*80 + "\n")
    return df_forecast.reset_index()


def main(argv=None):
    """Main execution function."""
    try:
        args = parse_arguments(argv)
        validate_inputs(args)
        arima_seasonal = not args.no_seasonal_arima

        # Step 1: Load data
        logging.info("\n" + "="*80)
        logging.info("STEP 1: Loading daily campaign metrics")
        logging.info("="*80)
        df_daily = fetch_data(args.input)

        # Step 2: Preprocess
        logging.info("\n" + "="*80)
        logging.info("STEP 2: Preprocessing data")
        logging.info("="*80)
        df_daily, _ = preprocess_data(df_daily)

        # Step 3: Exploratory analysis
        if not args.skip_eda:
            logging.info("\n" + "="*80)
            logging.info("STEP 3: Exploratory analysis")
            logging.info("="*80)
            run_eda(df_daily, plots_dir=args.plots_dir)

        # Step 4: Model comparison on holdout
        df_ranking = None
        if args.holdout_days > 0:
            logging.info("\n" + "="*80)
            logging.info(f"STEP 4: Comparing models on the last {args.holdout_days} days")
            logging.info("="*80)
            _, df_ranking = run_backtest(
                df_daily, holdout_days=args.holdout_days, n_folds=1,
                zero_bucket_policy=args.zero_bucket_policy, missing_policy=args.missing_policy,
                link=args.link, arima_seasonal=arima_seasonal
            )
            log_ranking(df_ranking)

        # Step 5: Final forecast on full history
        logging.info("\n" + "="*80)
        logging.info(f"STEP 5: Forecasting {args.horizon_days} days")
        logging.info("="*80)
        df_forecast, models = build_forecast(
            df_daily, args.horizon_days,
            zero_bucket_policy=args.zero_bucket_policy, missing_policy=args.missing_policy,
            link=args.link, arima_seasonal=arima_seasonal
        )

        # Step 6: Present and save
        logging.info("\n" + "="*80)
        logging.info("STEP 6: Presenting results")
        logging.info("="*80)
        results = format_results(df_forecast, df_daily, df_ranking)

        if args.plots_dir:
            history = df_daily.set_index(DATE_COL).tail(8 * 7)
            plot_forecast(history['clicks'], df_forecast.filter(like='clicks_'),
                          Path(args.plots_dir) / 'clicks_forecast.png', title='Daily clicks forecast')
            plot_forecast(history['conversions'], df_forecast.filter(like='conversions_'),
                          Path(args.plots_dir) / 'conversions_forecast.png', title='Daily conversions forecast')

        if args.model_dir:
            save_models(models, args.model_dir)

        if args.output_file:
            results.to_csv(args.output_file, index=False)
            logging.info(f"Results saved to {args.output_file}")

        logging.info("✅ Forecasting complete!")
        return results

    except ValueError as e:
        logging.error(f"❌ Input validation error: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"❌ Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
