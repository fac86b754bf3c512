import os
import sys
import math
import joblib
import logging
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor
from sklearn.inspection import permutation_importance
from sklearn.metrics import mean_squared_error

from watershed_rf.preprocessing.data_partitioning import partition_statewide

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

SET_TRAINING = 'Training'
SET_NON_TRAINING = 'Non-training'

class ModelFitError(ValueError):
    """
    Raised when a forest cannot be fitted, naming the response or predictor at fault.
    """
    def __init__(self, message, column=None):
        super().__init__(message)
        self.column = column

def prediction_column(response_col: str):
    return f"{response_col}_predicted"

def split_candidates(n_predictors: int, max_features: float = 1/3):
    """
    Predictors tried at each split (mtry): floor(p * fraction), at least one. A fraction within
    1e-6 of a whole count rounds up to it, so 0.3333333 gives floor(p/3).
    """
    if isinstance(max_features, (int, np.integer)) and not isinstance(max_features, bool):
        return max(1, min(int(max_features), n_predictors))
    return max(1, int(math.floor(n_predictors * float(max_features) + 1e-6)))

def build_forest(n_estimators: int = 500, random_seed: int = None, max_features: float = 1/3,
                 min_samples_leaf: int = 1, n_jobs: int = None, oob_score: bool = False,
                 n_predictors: int = None):
    """
    Random forest regressor with randomForest-style defaults (mtry = p/3, bootstrap sampling).
    When n_predictors is given, a fractional max_features is resolved to a whole mtry first.
    """
    if n_predictors is not None and max_features is not None:
        max_features = split_candidates(n_predictors, max_features)

    return RandomForestRegressor(
        n_estimators=n_estimators,
        max_features=max_features,
        min_samples_leaf=min_samples_leaf,
        bootstrap=True,
        oob_score=oob_score,
        random_state=random_seed,
        n_jobs=n_jobs
    )

def _check_training_inputs(train_df: pd.DataFrame, response_col: str, predictors: list):
    """
    Reject inputs that would give a degenerate or failed fit, naming the offending column.
    """
    if len(train_df) == 0:
        logger.error("Training set is empty.")
        raise ModelFitError("Training set is empty.", column=response_col)

    if not predictors:
        logger.error("No predictors supplied for model fit.")
        raise ModelFitError("No predictors supplied for model fit.")

    missing = [col for col in [response_col] + list(predictors) if col not in train_df.columns]
    if missing:
        logger.error(f"Columns missing from training data: {missing}")
        raise ModelFitError(f"Columns missing from training data: {missing}", column=missing[0])

    response = train_df[response_col]
    if response.isna().any():
        logger.error(f"Response '{response_col}' contains {response.isna().sum()} null values.")
        raise ModelFitError(f"Response '{response_col}' contains null values.", column=response_col)
    if response.nunique() < 2:
        logger.error(f"Response '{response_col}' is constant; cannot fit a regression forest.")
        raise ModelFitError(f"Response '{response_col}' is constant.", column=response_col)

    for predictor in predictors:
        values = train_df[predictor]
        if values.isna().all():
            logger.error(f"Predictor '{predictor}' is entirely null.")
            raise ModelFitError(f"Predictor '{predictor}' is entirely null.", column=predictor)
        if values.isna().any():
            logger.error(f"Predictor '{predictor}' has {values.isna().sum()} null values in training data.")
            raise ModelFitError(f"Predictor '{predictor}' contains null values.", column=predictor)

def fit_random_forest(train_df: pd.DataFrame, response_col: str, predictors: list, random_seed: int,
                      n_estimators: int = 500, max_features: float = 1/3, min_samples_leaf: int = 1,
                      n_jobs: int = None):
    """
    Fit a random forest regression of the measured index on the selected predictors.

    Args:
        train_df (pd.DataFrame): Training partition.
        response_col (str): Measured index column.
        predictors (list): Selected predictor columns (column order is kept for prediction).
        random_seed (int): Seed for bootstrap sampling and split candidates.
        n_estimators (int): Number of trees.

    Returns:
        RandomForestRegressor: Fitted forest with out-of-bag predictions available.
    """
    _check_training_inputs(train_df, response_col, predictors)

    logger.info(f"Fitting {n_estimators}-tree random forest for '{response_col}' on"
                f" {len(train_df)} rows and {len(predictors)} predictors...")

    model = build_forest(n_estimators=n_estimators, random_seed=random_seed, max_features=max_features,
                         min_samples_leaf=min_samples_leaf, n_jobs=n_jobs, oob_score=True,
                         n_predictors=len(predictors))
    model.fit(train_df[predictors], train_df[response_col])

    # oob_score_ is R^2 on out-of-bag predictions, i.e. '% variance explained'
    logger.info(f"    Forest fitted: {model.oob_score_:.2%} variance explained (out-of-bag).\n")

    return model

def variable_importance(model: RandomForestRegressor, train_df: pd.DataFrame, response_col: str,
                        predictors: list, random_seed: int, n_repeats: int = 5):
    """
    Per-predictor importance as percent increase in MSE when the predictor is permuted
    (%IncMSE) and total decrease in node impurity averaged over trees (IncNodePurity).
    """
    X = train_df[predictors]
    y = train_df[response_col]

    # Baseline is the out-of-bag MSE
    oob_prediction = out_of_bag_predictions(model, len(train_df))
    scored = ~np.isnan(oob_prediction)
    baseline_mse = mean_squared_error(y.to_numpy()[scored], oob_prediction[scored]) if scored.any() else np.nan
    permuted = permutation_importance(model, X, y, n_repeats=n_repeats, random_state=random_seed,
                                      scoring='neg_mean_squared_error')

    # Unnormalised impurity decrease is reported per root sample, scale back to total RSS decrease
    node_purity = np.mean([
        tree.tree_.compute_feature_importances(normalize=False) * tree.tree_.weighted_n_node_samples[0]
        for tree in model.estimators_
    ], axis=0)

    importance_df = pd.DataFrame({
        'variable': predictors,
        'IncMSE': permuted.importances_mean,
        '%IncMSE': 100 * permuted.importances_mean / baseline_mse if baseline_mse > 0 else np.nan,
        'IncNodePurity': node_purity
    })

    return importance_df.sort_values('%IncMSE', ascending=False).reset_index(drop=True)

def out_of_bag_counts(model: RandomForestRegressor, n_rows: int):
    """
    Number of trees whose bootstrap sample left out each training row.
    """
    in_bag = np.zeros((len(model.estimators_), n_rows), dtype=bool)
    for tree_idx, samples in enumerate(model.estimators_samples_):
        in_bag[tree_idx, samples] = True
    return (~in_bag).sum(axis=0)

def out_of_bag_predictions(model: RandomForestRegressor, n_rows: int):
    """
    OOB predictions with rows drawn into every bootstrap sample set to NaN (sklearn stores 0.0).
    """
    if len(model.oob_prediction_) != n_rows:
        raise ValueError("Training frame does not match the rows the forest was fitted on.")

    oob_prediction = np.asarray(model.oob_prediction_, dtype=float).ravel().copy()
    never_oob = out_of_bag_counts(model, n_rows) == 0
    if never_oob.any():
        logger.warning(f"{never_oob.sum()} training rows were in every bootstrap sample; no OOB prediction"
                       f" (set to null). Increase n_estimators.")
        oob_prediction[never_oob] = np.nan

    return oob_prediction

def predict_out_of_bag(model: RandomForestRegressor, train_df: pd.DataFrame, response_col: str):
    """
    Attach out-of-bag predictions to the training rows: each row is predicted only by trees
    whose bootstrap sample left it out. Rows no tree left out get a null prediction.
    """
    predicted_df = train_df.copy()
    predicted_df[prediction_column(response_col)] = out_of_bag_predictions(model, len(train_df))
    return predicted_df

def predict_new_data(model: RandomForestRegressor, df: pd.DataFrame, predictors: list, response_col: str):
    """
    Full-ensemble prediction for rows that were not part of training (e.g. the testing partition).
    """
    null_predictors = [col for col in predictors if df[col].isna().any()]
    if null_predictors:
        logger.error(f"Cannot predict rows with null predictors: {null_predictors}")
        raise ModelFitError(f"Null values in predictors: {null_predictors}", column=null_predictors[0])

    predicted_df = df.copy()
    predicted_df[prediction_column(response_col)] = model.predict(df[predictors])
    return predicted_df

def predict_statewide(model: RandomForestRegressor, covariates_df: pd.DataFrame, train_df: pd.DataFrame,
                      predictors: list, response_col: str, id_col: str = 'COMID'):
    """
    Predict the index for every catchment in the statewide covariate table.

    Catchments used for training receive out-of-bag predictions. All other catchments with a
    complete set of selected predictors receive a full-ensemble prediction; catchments with
    any null selected predictor are excluded (not imputed).

    Returns:
        tuple[pd.DataFrame, int]: Statewide prediction table tagged by 'Set', and the number of
                                  non-training catchments excluded for null predictors.
    """
    predicted_col = prediction_column(response_col)

    # --- Non-training catchments ---

    _, non_training_df = partition_statewide(covariates_df, train_df[id_col], id_col=id_col)

    complete_mask = non_training_df[predictors].notna().all(axis=1)
    excluded_count = int((~complete_mask).sum())
    if excluded_count > 0:
        logger.info(f"Excluding {excluded_count} non-training catchments with null selected predictors.")

    non_training_complete = non_training_df.loc[complete_mask, [id_col] + list(predictors)]
    non_training_pred = predict_new_data(model, non_training_complete, predictors, response_col)
    non_training_pred['Set'] = SET_NON_TRAINING

    # --- Training catchments ---

    training_pred = predict_out_of_bag(model, train_df, response_col)
    training_pred = training_pred[[id_col] + list(predictors) + [response_col, predicted_col]].copy()
    training_pred['Set'] = SET_TRAINING

    statewide_df = pd.concat([non_training_pred, training_pred], ignore_index=True)

    logger.info(f"Statewide predictions: {len(non_training_pred)} non-training and {len(training_pred)}"
                f" training catchments ({excluded_count} excluded).\n")

    return statewide_df, excluded_count

def save_model(model: RandomForestRegressor, predictors: list, model_dir: str, index_name: str):
    """
    Save the fitted forest and its ordered predictor list for later reuse.
    """
    os.makedirs(model_dir, exist_ok=True)

    model_path = os.path.join(model_dir, f"{index_name}_rf_model.joblib")
    predictors_path = os.path.join(model_dir, f"{index_name}_predictors.joblib")

    joblib.dump(model, model_path)
    logger.info(f"Random forest saved to: {model_path}")

    joblib.dump(list(predictors), predictors_path)
    logger.info(f"Predictor list saved to: {predictors_path}")

    return model_path
