"""
Configuration for campaign metric loading, forecasting models and evaluation.
"""

# ============================================================================
# DATA SCHEMA
# ============================================================================
DATE_COL = 'date'

COUNT_COLS = ['impressions', 'clicks', 'conversions']
VALUE_COLS = ['cost', 'total_conversion_value']
POSITION_COL = 'average_position'

REQUIRED_COLUMNS = [DATE_COL] + COUNT_COLS + VALUE_COLS + [POSITION_COL]

# Raw export headers -> internal names (matching is case-insensitive, whitespace-trimmed)
COLUMN_MAP = {
    'date': 'date',
    'day': 'date',
    'impressions': 'impressions',
    'impr.': 'impressions',
    'clicks': 'clicks',
    'conversions': 'conversions',
    'conv.': 'conversions',
    'cost': 'cost',
    'total conversion value': 'total_conversion_value',
    'total conv. value': 'total_conversion_value',
    'conversion value': 'total_conversion_value',
    'avg. position': 'average_position',
    'average position': 'average_position',
    'avg position': 'average_position',
}

# ============================================================================
# WEEKLY BUCKETING / REDISTRIBUTION
# ============================================================================
BUCKET_DAYS = 7

# What to do with a bucket whose clicks sum to zero:
#   'zero'  -> all days in the bucket get 0, whatever the model predicts
#   'even'  -> clamped prediction is split evenly across the bucket's days
#   'error' -> raise DegenerateBucketError
ZERO_BUCKET_POLICIES = ['zero', 'even', 'error']
ZERO_BUCKET_POLICY = 'zero'

# Missing daily click values:
#   'zero'   -> count as 0 clicks
#   'reject' -> raise InputShapeError
MISSING_POLICIES = ['zero', 'reject']
MISSING_POLICY = 'zero'

# ============================================================================
# MODEL PARAMETERS
# ============================================================================
# pmdarima auto_arima search space (stepwise AIC minimisation)
ARIMA_PARAMS = {
    'start_p': 1,
    'start_q': 1,
    'max_p': 5,
    'max_q': 5,
    'max_d': 2,
    'start_P': 0,
    'max_P': 2,
    'max_Q': 2,
    'information_criterion': 'aic',
    'test': 'adf',
    'stepwise': True,
    'trace': False,
    'error_action': 'ignore',
    'suppress_warnings': True,
}
ARIMA_SEASONAL = True
ARIMA_SEASONAL_PERIOD = 7

# Weekly Poisson GLM of conversions on clicks
GLM_LINKS = ['log', 'identity']
GLM_LINK = 'log'
MIN_WEEKS_FOR_GLM = 4

# Moving-average window search
MA_MAX_WINDOW = 28
MA_MIN_WINDOW = 1

# LightGBM click model (lag features on daily clicks)
RANDOM_STATE = 42
LGBM_PARAMS = {
    'objective': 'regression',
    'metric': 'rmse',
    'boosting_type': 'gbdt',
    'num_leaves': 15,
    'learning_rate': 0.05,
    'feature_fraction': 0.9,
    'bagging_fraction': 0.8,
    'bagging_freq': 5,
    'max_depth': -1,
    'min_data_in_leaf': 10,
    'verbose': -1,
    'seed': RANDOM_STATE,
}
LGBM_NUM_BOOST_ROUND = 500
LGBM_EARLY_STOPPING_ROUNDS = 50
LGBM_LAGS = [1, 2, 3, 7, 14]
LGBM_ROLLING_WINDOWS = [7, 28]
TRAIN_RATIO = 0.80

# ============================================================================
# EXPLORATORY ANALYSIS
# ============================================================================
SIGNIFICANCE_LEVEL = 0.05
CORRELATION_METHOD = 'pearson'
DECOMPOSITION_PERIOD = 7
CORRELATION_LINKAGE = 'average'

# ============================================================================
# EVALUATION METRICS
# ============================================================================
def smape(y_true, y_pred):
    """Symmetric Mean Absolute Percentage Error"""
    import numpy as np
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    denominator = (np.abs(y_true) + np.abs(y_pred)) / 2.0
    diff = np.zeros_like(denominator)
    mask = denominator != 0
    diff[mask] = np.abs(y_true[mask] - y_pred[mask]) / denominator[mask]
    return 100.0 * np.mean(diff)

def mae(y_true, y_pred):
    """Mean Absolute Error"""
    import numpy as np
    return np.mean(np.abs(np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)))

def rmse(y_true, y_pred):
    """Root Mean Squared Error"""
    import numpy as np
    return np.sqrt(np.mean((np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)) ** 2))

METRIC_FUNCTIONS = {
    'RMSE': rmse,
    'MAE': mae,
    'SMAPE': smape,
}

# ============================================================================
# FORECAST CONFIGURATION
# ============================================================================
DEFAULT_FORECAST_HORIZON_DAYS = 14
MAX_FORECAST_HORIZON_DAYS = 91
MIN_FORECAST_HORIZON_DAYS = 1

DEFAULT_HOLDOUT_DAYS = 28
MIN_TRAINING_DAYS = 56
