import sys
import math
import logging
import numpy as np
import pandas as pd
from scipy import stats
from sklearn.metrics import mean_squared_error

from watershed_rf.training.model_training import prediction_column, out_of_bag_predictions

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

STATEWIDE = 'Statewide'
DATASETS = ['Training', 'Testing']
LM_COLUMNS = ['Region', 'Dataset', 'n', 'R2', 'Slope', 'Slope_p', 'Intercept', 'Intercept_p']

def fit_linear_model(measured, predicted):
    """
    Ordinary least squares regression of measured on predicted values.

    Returns:
        dict: n, R2, Slope, Slope_p, Intercept, Intercept_p (two-sided p-values). Statistics
              are NaN when fewer than three points or no spread in the predictions.
    """
    measured = np.asarray(measured, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    keep = ~(np.isnan(measured) | np.isnan(predicted))
    measured, predicted = measured[keep], predicted[keep]
    n = len(measured)

    lm = {'n': n, 'R2': np.nan, 'Slope': np.nan, 'Slope_p': np.nan, 'Intercept': np.nan, 'Intercept_p': np.nan}

    if n < 3 or np.ptp(predicted) == 0:
        logger.warning(f"Cannot fit linear model: {n} points, predicted spread {np.ptp(predicted) if n else 0}.")
        return lm

    fit = stats.linregress(predicted, measured)

    # Intercept t-test with n - 2 degrees of freedom
    if fit.intercept_stderr > 0:
        t_intercept = fit.intercept / fit.intercept_stderr
        intercept_p = 2 * stats.t.sf(abs(t_intercept), df=n - 2)
    else:
        intercept_p = 0.0 if fit.intercept != 0 else 1.0

    lm.update({
        'R2': fit.rvalue ** 2,
        'Slope': fit.slope,
        'Slope_p': fit.pvalue,
        'Intercept': fit.intercept,
        'Intercept_p': intercept_p
    })
    return lm

def validate_by_region(train_pred_df: pd.DataFrame, test_pred_df: pd.DataFrame, measured_col: str,
                       predicted_col: str = None, region_col: str = 'PSA6', regions: list = None):
    """
    Fit measured ~ predicted linear models statewide and for every region, separately for the
    training and testing partitions, collected into one flat table.
    """
    predicted_col = predicted_col or prediction_column(measured_col)
    partitions = {'Training': train_pred_df, 'Testing': test_pred_df}

    if regions is None:
        regions = sorted(set(train_pred_df[region_col].dropna()) | set(test_pred_df[region_col].dropna()))

    rows = []
    for region in [STATEWIDE] + list(regions):
        for dataset in DATASETS:
            partition_df = partitions[dataset]
            if region != STATEWIDE:
                partition_df = partition_df[partition_df[region_col] == region]

            lm = fit_linear_model(partition_df[measured_col], partition_df[predicted_col])
            rows.append({'Region': region, 'Dataset': dataset, **lm})

    lms_df = pd.DataFrame(rows, columns=LM_COLUMNS)
    logger.info(f"Validation linear models for '{measured_col}':\n{lms_df.to_string(index=False)}\n")

    return lms_df

def format_p_values(lms_df: pd.DataFrame, columns: list = None, floor: float = 1e-4, digits: int = 6):
    """
    Round p-values for export, writing anything below `floor` as e.g. '<0.0001'.
    """
    columns = columns or ['Slope_p', 'Intercept_p']
    formatted = lms_df.copy()

    for col in columns:
        formatted[col] = [
            p if pd.isna(p) else (f"<{floor:g}" if p < floor else round(float(p), digits))
            for p in formatted[col]
        ]
    return formatted

def compute_rmse(measured, predicted):
    measured = np.asarray(measured, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    keep = ~(np.isnan(measured) | np.isnan(predicted))
    return math.sqrt(mean_squared_error(measured[keep], predicted[keep]))

def rmse_summary(model, train_df: pd.DataFrame, test_df: pd.DataFrame, predictors: list, response_col: str):
    """
    Root mean squared error for the testing partition and for the training partition, the
    latter both through the full ensemble and out-of-bag. A full-ensemble training RMSE far
    below the testing RMSE points to over fitting.
    """
    rmse_test = compute_rmse(test_df[response_col], model.predict(test_df[predictors]))
    rmse_train = compute_rmse(train_df[response_col], model.predict(train_df[predictors]))
    rmse_train_oob = compute_rmse(train_df[response_col], out_of_bag_predictions(model, len(train_df)))

    logger.info(f"RMSE - testing: {rmse_test:.4f}, training (full ensemble): {rmse_train:.4f},"
                f" training (out-of-bag): {rmse_train_oob:.4f}")

    return {'rmse_test': rmse_test, 'rmse_train': rmse_train, 'rmse_train_oob': rmse_train_oob}
