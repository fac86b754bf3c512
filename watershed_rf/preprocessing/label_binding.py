# Import Libraries
import os
import sys
import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass, asdict

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

@dataclass
class BindingSummary:
    """
    Row counts recorded while binding labels, kept for reproducibility audits.
    """
    labeled_rows: int
    joined_rows: int
    excluded_stations: int
    duplicate_rows_removed: int
    incomplete_rows_removed: int
    final_rows: int

    def to_dict(self):
        return asdict(self)

def load_labeled_observations(csv_path: str, response_col: str, rename_map: dict = None,
                              station_col: str = 'stationcode', id_col: str = 'COMID'):
    """
    Load field-measured index scores by station, standardise column names and drop stations
    with no measured response.
    """
    logger.info(f"Loading labeled observations from {csv_path}...")

    if not os.path.exists(csv_path):
        logger.error(f"Labeled observation table not found at: {csv_path}")
        raise FileNotFoundError(f"Labeled observation table not found at: {csv_path}")

    labels_df = pd.read_csv(csv_path)
    if rename_map:
        labels_df = labels_df.rename(columns=rename_map)

    missing = [col for col in [station_col, id_col, response_col] if col not in labels_df.columns]
    if missing:
        logger.error(f"Labeled observation table missing columns: {missing}")
        raise KeyError(f"Labeled observation table missing columns: {missing}")

    na_count = labels_df[response_col].isna().sum()
    if na_count > 0:
        logger.info(f"Dropping {na_count} stations with no '{response_col}' score.")
    labels_df = labels_df.dropna(subset=[response_col]).reset_index(drop=True)

    logger.info(f"{len(labels_df)} labeled stations loaded for '{response_col}'.\n")
    return labels_df

def _sample_one_per_catchment(bound_df: pd.DataFrame, id_col: str, random_seed: int):
    """
    Keep one uniformly sampled station per catchment ID (reproducible from random_seed).
    """
    rng = np.random.default_rng(random_seed)

    # Shuffle rows, then the first occurrence of each ID is a uniform draw within its group
    shuffled = bound_df.iloc[rng.permutation(len(bound_df))]
    sampled = shuffled.drop_duplicates(subset=id_col, keep='first')

    return sampled.sort_values(id_col).reset_index(drop=True)

def bind_labels(labels_df: pd.DataFrame, covariates_df: pd.DataFrame, regions_df: pd.DataFrame,
                response_col: str, random_seed: int, excluded_stations: list = None,
                station_col: str = 'stationcode', id_col: str = 'COMID'):
    """
    Bind measured index scores to StreamCat covariates and region assignments, giving one
    complete labeled row per catchment ID.

    Args:
        labels_df (pd.DataFrame): Station code, catchment ID and measured response.
        covariates_df (pd.DataFrame): Wide covariate table keyed by catchment ID.
        regions_df (pd.DataFrame): One region and reach length per catchment ID.
        response_col (str): Measured index column (e.g. 'asci', 'physicalstructure').
        random_seed (int): Seed for choosing one station per duplicated catchment.
        excluded_stations (list): Literal station codes to remove before deduplication.

    Returns:
        tuple[pd.DataFrame, BindingSummary]: Bound labeled table and row count summary.
    """
    excluded_stations = excluded_stations or []

    # --- Inner join scores to covariates and regions ---

    bound_df = labels_df[[station_col, id_col, response_col]].copy()
    bound_df = pd.merge(bound_df, covariates_df, on=id_col, how='inner')
    bound_df = pd.merge(bound_df, regions_df, on=id_col, how='inner')
    joined_rows = len(bound_df)
    logger.info(f"Inner join retained {joined_rows} of {len(labels_df)} stations"
                f" ({bound_df[id_col].nunique()} unique catchments).")

    # --- Remove manually excluded stations ---

    exclusion_mask = bound_df[station_col].isin(excluded_stations)
    excluded_count = int(exclusion_mask.sum())
    if excluded_count > 0:
        logger.info(f"Excluding {excluded_count} rows for stations: {sorted(set(bound_df.loc[exclusion_mask, station_col]))}")
    bound_df = bound_df[~exclusion_mask]

    # --- One station per catchment ---

    before_dedup = len(bound_df)
    bound_df = _sample_one_per_catchment(bound_df, id_col=id_col, random_seed=random_seed)
    duplicates_removed = before_dedup - len(bound_df)
    if duplicates_removed > 0:
        logger.info(f"Sampled one station per catchment: {duplicates_removed} duplicate rows removed.")

    # --- Completeness ---

    before_complete = len(bound_df)
    bound_df = bound_df.dropna().reset_index(drop=True)
    incomplete_removed = before_complete - len(bound_df)
    if incomplete_removed > 0:
        logger.warning(f"Removed {incomplete_removed} rows with missing covariate or label values.")

    assert bound_df[id_col].is_unique, "Duplicate catchment IDs remain after label binding."

    summary = BindingSummary(
        labeled_rows=len(labels_df),
        joined_rows=joined_rows,
        excluded_stations=excluded_count,
        duplicate_rows_removed=duplicates_removed,
        incomplete_rows_removed=incomplete_removed,
        final_rows=len(bound_df)
    )
    logger.info(f"Label binding complete: {summary.final_rows} labeled catchments.\n")

    return bound_df, summary
