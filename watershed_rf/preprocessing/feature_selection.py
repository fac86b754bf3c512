# Import Libraries
import sys
import math
import logging
import numpy as np
import pandas as pd
from tqdm import tqdm
from dataclasses import dataclass
from sklearn.model_selection import KFold
from sklearn.inspection import permutation_importance
from sklearn.metrics import mean_squared_error

from watershed_rf.training.model_training import build_forest

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

# Largest seed handed to sklearn estimators
MAX_SEED = 2**31 - 1

@dataclass
class RFEResult:
    """
    Cross-validated recursive feature elimination output.

    results: one row per subset size (size, RMSE, RMSE_sd, Rsquared).
    variables: ranked importance per fold and size (fold, size, variable, importance).
    """
    results: pd.DataFrame
    variables: pd.DataFrame

    @property
    def best_size(self):
        return int(self.results.loc[self.results['RMSE'].idxmin(), 'size'])

def _rank_predictors(model, X, y, predictors, importance_type, random_seed):
    """
    Rank predictors by forest importance, most important first.
    """
    if importance_type == 'impurity':
        importances = model.feature_importances_
    elif importance_type == 'permutation':
        importances = permutation_importance(model, X, y, n_repeats=3, random_state=random_seed,
                                             scoring='neg_mean_squared_error').importances_mean
    else:
        raise ValueError(f"Invalid importance_type: '{importance_type}'. Must be 'impurity' or 'permutation'.")

    return pd.Series(importances, index=predictors).sort_values(ascending=False, kind='mergesort')

def _candidate_sizes(sizes, n_predictors):
    """
    Subset sizes to score: requested sizes that fit the predictor count, plus the full set.
    """
    valid = sorted({int(size) for size in sizes if 0 < int(size) < n_predictors})
    dropped = sorted({int(size) for size in sizes if int(size) > n_predictors})
    if dropped:
        logger.info(f"Ignoring subset sizes larger than the {n_predictors} predictors: {dropped}")
    return valid + [n_predictors]

def recursive_feature_elimination(train_df: pd.DataFrame, response_col: str, predictors: list, sizes: list,
                                  random_seed: int, n_folds: int = 10, n_estimators: int = 500,
                                  importance_type: str = 'impurity', max_features: float = 1/3,
                                  min_samples_leaf: int = 1, n_jobs: int = None):
    """
    K-fold cross-validated recursive feature elimination for random forest regression.

    In every fold a forest is fitted on all predictors and the predictors are ranked by
    importance. For each subset size the top-ranked predictors are refitted and the held-out
    fold scored by RMSE. Performance is averaged over folds for each size.

    Args:
        train_df (pd.DataFrame): Training partition (complete rows).
        response_col (str): Measured index column.
        predictors (list): Candidate predictor columns.
        sizes (list): Ladder of subset sizes, e.g. [3, 4, ..., 10, 15, 20, 25, 30].
        random_seed (int): Seed for fold assignment and every forest fitted.
        n_folds (int): Number of CV folds.

    Returns:
        RFEResult: Per-size CV performance and per-fold variable rankings.
    """
    rng = np.random.default_rng(random_seed)
    X = train_df[predictors]
    y = train_df[response_col]
    n_predictors = len(predictors)
    candidate_sizes = _candidate_sizes(sizes, n_predictors)

    logger.info(f"Running {n_folds}-fold RFE for '{response_col}' over sizes {candidate_sizes}"
                f" ({n_predictors} candidate predictors, {len(train_df)} rows)...")

    folds = KFold(n_splits=n_folds, shuffle=True, random_state=int(rng.integers(MAX_SEED)))

    performance_rows = []
    variable_rows = []

    fold_loop = tqdm(enumerate(folds.split(X)), total=n_folds, desc="RFE folds", leave=False)
    for fold, (fit_idx, holdout_idx) in fold_loop:
        fold_seed = int(rng.integers(MAX_SEED))
        X_fit, X_holdout = X.iloc[fit_idx], X.iloc[holdout_idx]
        y_fit, y_holdout = y.iloc[fit_idx], y.iloc[holdout_idx]

        # Rank once per fold on the full predictor set
        full_model = build_forest(n_estimators=n_estimators, random_seed=fold_seed, max_features=max_features,
                                  min_samples_leaf=min_samples_leaf, n_jobs=n_jobs, n_predictors=n_predictors)
        full_model.fit(X_fit, y_fit)
        ranking = _rank_predictors(full_model, X_fit, y_fit, predictors, importance_type, fold_seed)

        for size in candidate_sizes:
            subset = ranking.index[:size].tolist()

            if size == n_predictors:
                # Full model was fitted on the predictors in input order
                model = full_model
                subset = list(predictors)
            else:
                model = build_forest(n_estimators=n_estimators, random_seed=fold_seed, max_features=max_features,
                                     min_samples_leaf=min_samples_leaf, n_jobs=n_jobs, n_predictors=size)
                model.fit(X_fit[subset], y_fit)

            predictions = model.predict(X_holdout[subset])
            rmse = math.sqrt(mean_squared_error(y_holdout, predictions))

            # caret reports R-squared as squared correlation of observed and predicted
            if np.std(predictions) > 0 and np.std(y_holdout) > 0:
                rsquared = float(np.corrcoef(y_holdout, predictions)[0, 1] ** 2)
            else:
                rsquared = np.nan

            performance_rows.append({'fold': fold, 'size': size, 'RMSE': rmse, 'Rsquared': rsquared})
            for variable in subset:
                variable_rows.append({'fold': fold, 'size': size, 'variable': variable,
                                      'importance': float(ranking[variable])})

    performance = pd.DataFrame(performance_rows)
    results = (performance.groupby('size')
               .agg(RMSE=('RMSE', 'mean'), RMSE_sd=('RMSE', 'std'), Rsquared=('Rsquared', 'mean'))
               .reset_index())
    variables = pd.DataFrame(variable_rows)

    result = RFEResult(results=results, variables=variables)
    logger.info(f"RFE complete. Best size by CV RMSE: {result.best_size}"
                f" (RMSE={results['RMSE'].min():.4f}).\n")

    return result

def pick_size_tolerance(results: pd.DataFrame, tol: float = 1.0, metric: str = 'RMSE'):
    """
    Smallest subset size whose RMSE is within `tol` percent of the best RMSE.
    Higher tolerance accepts smaller models, lower tolerance keeps closer to the best.
    """
    if tol < 0:
        raise ValueError(f"Tolerance must be non-negative, got {tol}.")

    best = results[metric].min()
    if best == 0:
        # Percent degradation is undefined, keep sizes that reach the minimum
        within = results.loc[results[metric] == best, 'size']
    else:
        degradation = (results[metric] - best) / best * 100
        within = results.loc[degradation <= tol, 'size']

    chosen = int(within.min())
    logger.info(f"Picked subset size {chosen} (tolerance {tol}% of best {metric}={best:.4f}).")
    return chosen

def pick_vars(variables: pd.DataFrame, size: int):
    """
    Top `size` predictors ranked by importance averaged over every fold and subset.
    """
    mean_importance = (variables.groupby('variable')['importance'].mean()
                       .sort_values(ascending=False, kind='mergesort'))
    selected = mean_importance.index[:size].tolist()

    logger.info(f"Selected {len(selected)} predictors: {selected}")
    return selected

def _rfcv_sizes(n_predictors, step, min_vars):
    """
    Geometric ladder of predictor counts, e.g. 34, 24, 17, 12, 8, 6, 4, 3, 2, 1 for step=0.7.
    """
    k = int(math.floor(math.log(n_predictors / min_vars) / math.log(1 / step))) + 1
    sizes = []
    for i in range(k):
        n_var = int(round(n_predictors * step ** i))
        if n_var >= min_vars and n_var not in sizes:
            sizes.append(n_var)
    if min_vars not in sizes:
        sizes.append(min_vars)
    return sizes

def rf_cross_validation(train_df: pd.DataFrame, response_col: str, predictors: list, random_seed: int,
                        n_folds: int = 5, step: float = 0.7, min_vars: int = 1, n_estimators: int = 500,
                        max_features: float = 1/3, n_jobs: int = None):
    """
    Cross-validated prediction error as the number of predictors is reduced geometrically,
    used to double check where error begins to climb as variables are removed.

    Returns:
        pd.DataFrame: Columns ['n_vars', 'cv_mse'].
    """
    if not 0 < step < 1:
        raise ValueError(f"step must be between 0 and 1, got {step}.")

    rng = np.random.default_rng(random_seed)
    X = train_df[predictors]
    y = train_df[response_col].to_numpy()
    sizes = _rfcv_sizes(len(predictors), step, min_vars)

    folds = KFold(n_splits=n_folds, shuffle=True, random_state=int(rng.integers(MAX_SEED)))
    cv_predictions = {size: np.empty(len(train_df)) for size in sizes}

    for fit_idx, holdout_idx in folds.split(X):
        fold_seed = int(rng.integers(MAX_SEED))
        X_fit = X.iloc[fit_idx]

        full_model = build_forest(n_estimators=n_estimators, random_seed=fold_seed,
                                  max_features=max_features, n_jobs=n_jobs, n_predictors=len(predictors))
        full_model.fit(X_fit, y[fit_idx])
        ranking = _rank_predictors(full_model, X_fit, y[fit_idx], predictors, 'impurity', fold_seed)

        for size in sizes:
            subset = ranking.index[:size].tolist()
            if size == len(predictors):
                model = full_model
                subset = list(predictors)
            else:
                model = build_forest(n_estimators=n_estimators, random_seed=fold_seed,
                                     max_features=max_features, n_jobs=n_jobs, n_predictors=size)
                model.fit(X_fit[subset], y[fit_idx])
            cv_predictions[size][holdout_idx] = model.predict(X.iloc[holdout_idx][subset])

    rfcv_df = pd.DataFrame({
        'n_vars': sizes,
        'cv_mse': [mean_squared_error(y, cv_predictions[size]) for size in sizes]
    })
    logger.info(f"rfcv error by predictor count:\n{rfcv_df.to_string(index=False)}\n")

    return rfcv_df
