"""
Exploratory analysis of daily campaign metrics.

- Descriptive statistics per metric
- Correlation matrix reordered by hierarchical clustering
- Hypothesis tests (weekday effect, weekend difference, position vs CTR, stationarity)
- STL seasonal-trend decomposition
- Plots written to disk (heatmap, decomposition, forecast)
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from scipy.cluster.hierarchy import linkage, leaves_list
from scipy.spatial.distance import squareform
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.stattools import adfuller

from config_forecast import (
    DATE_COL, COUNT_COLS, VALUE_COLS, POSITION_COL,
    SIGNIFICANCE_LEVEL, CORRELATION_METHOD, CORRELATION_LINKAGE, DECOMPOSITION_PERIOD
)

RATIO_COLS = ['ctr', 'conversion_rate', 'cpc', 'cost_per_conversion', 'roas']


def _metric_columns(df: pd.DataFrame) -> list:
    candidates = COUNT_COLS + VALUE_COLS + [POSITION_COL] + RATIO_COLS
    return [col for col in candidates if col in df.columns]


def describe_metrics(df: pd.DataFrame) -> pd.DataFrame:
    """Descriptive statistics per metric, plus skewness and coefficient of variation."""
    cols = _metric_columns(df)
    summary = df[cols].describe().T
    summary['skew'] = df[cols].skew()
    summary['cv'] = summary['std'] / summary['mean'].where(summary['mean'] != 0)
    return summary


def correlation_matrix(df: pd.DataFrame, method: str = CORRELATION_METHOD) -> pd.DataFrame:
    """Pairwise correlation of the metric columns ('pearson' or 'spearman')."""
    if method not in ('pearson', 'spearman'):
        raise ValueError(f"Unknown correlation method '{method}'. Use 'pearson' or 'spearman'.")
    return df[_metric_columns(df)].corr(method=method)


def reorder_by_clustering(corr: pd.DataFrame, method: str = CORRELATION_LINKAGE) -> pd.DataFrame:
    """
    Reorder a correlation matrix so strongly related metrics sit next to each other.

    Uses hierarchical clustering on the distance 1 - |r|. Undefined correlations
    (constant columns) are treated as r = 0.

    Parameters:
        corr: Square correlation matrix
        method: scipy linkage method

    Returns:
        Correlation matrix with rows and columns in dendrogram leaf order
    """
    if len(corr) < 3:
        return corr

    distance = 1 - corr.abs().fillna(0).to_numpy()
    np.fill_diagonal(distance, 0)
    distance = np.clip((distance + distance.T) / 2, 0, None)

    Z = linkage(squareform(distance, checks=False), method=method)
    order = corr.index[leaves_list(Z)]
    return corr.loc[order, order]


def _result(test: str, statistic: float, p_value: float, **extra) -> dict:
    result = {
        'test': test,
        'statistic': float(statistic),
        'p_value': float(p_value),
        'significant': bool(p_value < SIGNIFICANCE_LEVEL),
    }
    result.update(extra)
    return result


def weekday_effect(df: pd.DataFrame, metric: str = 'clicks') -> dict:
    """Kruskal-Wallis test: does the metric's distribution differ across weekdays?"""
    weekday = df[DATE_COL].dt.weekday
    groups = [df.loc[weekday == day, metric].dropna().to_numpy() for day in range(7)]
    groups = [g for g in groups if len(g) > 0]
    if len(groups) < 2:
        raise ValueError(f"Need at least two weekdays with {metric} data")
    statistic, p_value = stats.kruskal(*groups)
    return _result('kruskal', statistic, p_value, metric=metric, n_groups=len(groups))


def weekend_difference(df: pd.DataFrame, metric: str = 'clicks') -> dict:
    """Welch t-test of weekday vs weekend mean."""
    is_weekend = df[DATE_COL].dt.weekday >= 5
    weekday_vals = df.loc[~is_weekend, metric].dropna()
    weekend_vals = df.loc[is_weekend, metric].dropna()
    if len(weekday_vals) < 2 or len(weekend_vals) < 2:
        raise ValueError(f"Need at least two weekday and two weekend observations of {metric}")
    statistic, p_value = stats.ttest_ind(weekday_vals, weekend_vals, equal_var=False)
    return _result('welch_t', statistic, p_value, metric=metric,
                   weekday_mean=float(weekday_vals.mean()), weekend_mean=float(weekend_vals.mean()))


def correlation_significance(df: pd.DataFrame, x: str = POSITION_COL, y: str = 'ctr') -> dict:
    """Pearson correlation between two columns, with significance."""
    pair = df[[x, y]].dropna()
    if len(pair) < 3:
        raise ValueError(f"Need at least three rows with both {x} and {y}")
    statistic, p_value = stats.pearsonr(pair[x], pair[y])
    return _result('pearson', statistic, p_value, x=x, y=y, n=len(pair))


def stationarity_check(series: pd.Series) -> dict:
    """Augmented Dickey-Fuller test; significant means the series looks stationary."""
    values = pd.Series(series).dropna()
    adf_stat, p_value, used_lag, n_obs, critical_values, _ = adfuller(values, autolag='AIC')
    return _result('adf', adf_stat, p_value, used_lag=int(used_lag), n_obs=int(n_obs),
                   critical_values=dict(critical_values))


def decompose_series(series: pd.Series, period: int = DECOMPOSITION_PERIOD) -> pd.DataFrame:
    """
    STL (loess) seasonal-trend decomposition.

    Gaps are linearly interpolated first since STL needs a complete series.

    Returns:
        DataFrame with observed, trend, seasonal and resid columns (same index as series)
    """
    values = pd.Series(series, dtype=float).interpolate(limit_direction='both')
    if len(values) < 2 * period:
        raise ValueError(f"Need at least {2 * period} observations for period {period}, got {len(values)}")
    fit = STL(values.to_numpy(), period=period, robust=True).fit()
    return pd.DataFrame({
        'observed': values.to_numpy(),
        'trend': fit.trend,
        'seasonal': fit.seasonal,
        'resid': fit.resid,
    }, index=series.index)


def _prepare_path(path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def plot_correlation_heatmap(corr: pd.DataFrame, path) -> Path:
    path = _prepare_path(path)
    fig, ax = plt.subplots(figsize=(10, 8))
    sns.heatmap(corr, annot=True, fmt='.2f', cmap='coolwarm', vmin=-1, vmax=1, square=True, ax=ax)
    ax.set_title('Metric correlations (clustered order)')
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def plot_decomposition(decomposition: pd.DataFrame, path, title: str = 'STL decomposition') -> Path:
    path = _prepare_path(path)
    fig, axes = plt.subplots(4, 1, figsize=(12, 9), sharex=True)
    for ax, col in zip(axes, ['observed', 'trend', 'seasonal', 'resid']):
        ax.plot(decomposition.index, decomposition[col], color='steelblue', linewidth=0.8)
        ax.set_ylabel(col)
    axes[0].set_title(title)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def plot_forecast(history: pd.Series, forecasts: pd.DataFrame, path, title: str = 'Forecast') -> Path:
    """Plot the tail of a history series with one line per forecast column."""
    path = _prepare_path(path)
    fig, ax = plt.subplots(figsize=(12, 5))
    ax.plot(history.index, history.values, label='actual', color='black')
    for col in forecasts.columns:
        ax.plot(forecasts.index, forecasts[col], label=col, ls='--')
    ax.set_title(title)
    ax.legend()
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def run_eda(df_daily: pd.DataFrame, plots_dir=None) -> dict:
    """
    Run the full exploratory analysis and log the findings.

    Parameters:
        df_daily: Preprocessed daily data (with derived metrics)
        plots_dir: Optional directory for PNG output

    Returns:
        Dict with 'summary', 'correlation', 'tests' and 'decomposition'
    """
    logging.info("Describing metrics...")
    summary = describe_metrics(df_daily)
    logging.info(f"\n{summary[['mean', 'std', 'min', 'max', 'cv']].to_string(float_format=lambda v: f'{v:,.3f}')}")

    corr = reorder_by_clustering(correlation_matrix(df_daily))
    logging.info(f"\nCorrelation matrix (clustered order):\n{corr.round(2).to_string()}")

    tests = {}
    checks = {
        'weekday_effect_clicks': lambda: weekday_effect(df_daily, 'clicks'),
        'weekday_effect_conversions': lambda: weekday_effect(df_daily, 'conversions'),
        'weekend_difference_clicks': lambda: weekend_difference(df_daily, 'clicks'),
        'position_vs_ctr': lambda: correlation_significance(df_daily, POSITION_COL, 'ctr'),
        'stationarity_clicks': lambda: stationarity_check(df_daily['clicks']),
    }
    for name, check in checks.items():
        try:
            tests[name] = check()
        except ValueError as e:
            logging.warning(f"  Skipping {name}: {e}")
            continue
        result = tests[name]
        flag = 'significant' if result['significant'] else 'not significant'
        logging.info(f"  {name:<30} {result['test']:<8} stat={result['statistic']:>9.3f} "
                     f"p={result['p_value']:.4f} ({flag})")

    series = df_daily.set_index(DATE_COL)['clicks']
    decomposition = decompose_series(series)
    seasonal_strength = 1 - decomposition['resid'].var() / (decomposition['seasonal'] + decomposition['resid']).var()
    logging.info(f"  Weekly seasonal strength of clicks: {seasonal_strength:.2f}")

    if plots_dir is not None:
        plots_dir = Path(plots_dir)
        plot_correlation_heatmap(corr, plots_dir / 'correlation_heatmap.png')
        plot_decomposition(decomposition, plots_dir / 'clicks_decomposition.png', title='Clicks STL decomposition')
        logging.info(f"  Plots saved to {plots_dir}")

    return {
        'summary': summary,
        'correlation': corr,
        'tests': tests,
        'decomposition': decomposition,
        'seasonal_strength': float(seasonal_strength),
    }
