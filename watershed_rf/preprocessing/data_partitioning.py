# Import Libraries
import sys
import math
import logging
import numpy as np
import pandas as pd

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

# Columns that identify a row rather than describe the catchment
NON_PREDICTOR_COLS = ['stationcode', 'COMID', 'PSA6', 'Length_Fin']

POOLED_STRATUM = 'pooled'

def predictor_columns(df: pd.DataFrame, response_col: str, id_cols: list = None):
    """
    All candidate predictors: every column except identifiers, region, reach length and response.
    """
    id_cols = NON_PREDICTOR_COLS if id_cols is None else id_cols
    excluded = set(id_cols) | {response_col}
    return [col for col in df.columns if col not in excluded]

def make_strata(regions: pd.Series, pool: float = 0.1):
    """
    Build the stratification variable, pooling regions holding less than `pool` of the rows
    into one shared stratum.
    """
    proportions = regions.value_counts(normalize=True)
    small = proportions[proportions < pool].index.tolist()

    if small:
        logger.info(f"Pooling {len(small)} small strata (< {pool:.0%} of rows) into one: {sorted(small)}")

    strata = regions.astype(object).where(~regions.isin(small), POOLED_STRATUM)
    return strata

def _check_split_success(train_ids, test_ids, all_ids):
    """
    Verify the partitions are disjoint and together cover every labeled catchment.
    """
    train_ids_set = set(train_ids)
    test_ids_set = set(test_ids)
    all_ids_set = set(all_ids)

    overlap = train_ids_set.intersection(test_ids_set)
    if overlap:
        logger.error(f"ERROR: Train and Test sets overlap! Overlapping IDs: {sorted(overlap)[:20]}")
        raise ValueError("Overlapping catchment assignments detected.")

    combined = train_ids_set.union(test_ids_set)
    if combined != all_ids_set:
        missing_ids = all_ids_set - combined
        extra_ids = combined - all_ids_set
        if missing_ids:
            logger.error(f"ERROR: Not all catchments were assigned. Missing IDs: {sorted(missing_ids)[:20]}")
        if extra_ids:
            logger.error(f"ERROR: Assigned IDs not in the source table. Extra IDs: {sorted(extra_ids)[:20]}")
        raise ValueError("Assigned catchments do not match the source catchments!")

def stratified_initial_split(df: pd.DataFrame, random_seed: int, strata_col: str = 'PSA6',
                             prop: float = 0.75, pool: float = 0.1, id_col: str = 'COMID'):
    """
    Split labeled catchments into training and testing sets, stratified by region so each
    region's share of the training set matches its share of the full labeled set.

    Within every stratum the rows are shuffled and floor(n * prop) go to training.

    Args:
        df (pd.DataFrame): Deduplicated labeled table.
        random_seed (int): Seed for the split.
        strata_col (str): Region column used for stratification.
        prop (float): Training fraction.
        pool (float): Strata below this fraction of all rows are pooled before splitting.

    Returns:
        tuple[pd.DataFrame, pd.DataFrame]: (train_df, test_df)
    """
    if not 0 < prop < 1:
        raise ValueError(f"Training proportion must be between 0 and 1, got {prop}.")

    rng = np.random.default_rng(random_seed)
    df = df.reset_index(drop=True)
    strata = make_strata(df[strata_col], pool=pool)

    train_positions = []
    for stratum in sorted(strata.unique()):
        positions = np.flatnonzero((strata == stratum).to_numpy())
        n_train = int(math.floor(len(positions) * prop))
        chosen = rng.permutation(positions)[:n_train]
        train_positions.extend(chosen.tolist())

        logger.info(f"    Stratum '{stratum}': {n_train} training of {len(positions)} rows")

    train_mask = np.zeros(len(df), dtype=bool)
    train_mask[train_positions] = True

    train_df = df[train_mask].reset_index(drop=True)
    test_df = df[~train_mask].reset_index(drop=True)

    _check_split_success(train_df[id_col], test_df[id_col], df[id_col])

    logger.info(f"Split complete: Train={len(train_df)}, Test={len(test_df)} (Total={len(df)}).\n")
    return train_df, test_df

def partition_statewide(covariates_df: pd.DataFrame, train_ids, id_col: str = 'COMID'):
    """
    Divide the statewide covariate table into catchments used for training and all others.
    """
    train_mask = covariates_df[id_col].isin(set(train_ids))

    training_df = covariates_df[train_mask].reset_index(drop=True)
    non_training_df = covariates_df[~train_mask].reset_index(drop=True)

    training_ids = set(training_df[id_col])
    non_training_ids = set(non_training_df[id_col])
    if training_ids & non_training_ids:
        raise ValueError("Catchment IDs appear in both training and non-training partitions.")
    if training_ids | non_training_ids != set(covariates_df[id_col]):
        raise ValueError("Training and non-training partitions do not cover the covariate table.")

    logger.info(f"Statewide partition: {len(training_df)} training, {len(non_training_df)} non-training catchments.")
    return training_df, non_training_df
