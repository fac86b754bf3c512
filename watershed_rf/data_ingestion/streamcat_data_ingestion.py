# Import Libraries
import os
import sys
import logging
import pandas as pd
from functools import reduce

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

# NLCD classes making up each composite land use category
LAND_COVER_COMPOSITES = {
    'PctUrb': ['PctUrbHi', 'PctUrbMd', 'PctUrbLo', 'PctUrbOp'],
    'PctAg': ['PctCrop', 'PctHay'],
    'PctOp': ['PctDecid', 'PctConif', 'PctMxFst', 'PctBl', 'PctOw', 'PctIce', 'PctHbWet',
              'PctWdWet', 'PctShrb', 'PctGrs']
}

LAND_COVER_SCOPES = ['Cat', 'Ws']

def load_streamcat_table(csv_path: str, columns: list, id_col: str = 'COMID'):
    """
    Load a single StreamCat CSV and keep only the catchment ID and the requested columns.

    Args:
        csv_path (str): Path to the StreamCat CSV (one landscape variable family).
        columns (list): Covariate columns to retain.
        id_col (str): Catchment identifier column.

    Returns:
        pd.DataFrame: Catchment ID plus requested covariates.
    """
    logger.info(f"Loading StreamCat table from {csv_path}...")

    if not os.path.exists(csv_path):
        logger.error(f"StreamCat table not found at: {csv_path}")
        raise FileNotFoundError(f"StreamCat table not found at: {csv_path}")

    streamcat_df = pd.read_csv(csv_path)
    return select_streamcat_columns(streamcat_df, columns, id_col=id_col, source=csv_path)

def select_streamcat_columns(streamcat_df: pd.DataFrame, columns: list, id_col: str = 'COMID',
                             source: str = 'input'):
    """
    Subset a StreamCat table to the catchment ID and the listed covariates.
    """
    wanted = [id_col] + [col for col in columns if col != id_col]
    missing = [col for col in wanted if col not in streamcat_df.columns]
    if missing:
        logger.error(f"Columns {missing} not found in StreamCat table '{source}'.")
        raise KeyError(f"Columns {missing} not found in StreamCat table '{source}'.")

    return streamcat_df[wanted].copy()

def aggregate_land_cover_categories(land_cover_df: pd.DataFrame, suffix: str = '', year: int = 2016,
                                    id_col: str = 'COMID'):
    """
    Map NLCD land cover percentages from full class detail to three composite categories
    (urban, agricultural, open) at catchment and watershed scope to reduce dimensionality.

    Raw columns are expected as e.g. 'PctUrbHi2016Cat' or, for the riparian buffer table
    (suffix='Rp100'), 'PctUrbHi2016CatRp100'. Output columns are e.g. 'PctUrbCat' and
    'PctUrbWsRp100'.
    """
    composite_df = land_cover_df[[id_col]].copy()

    for scope in LAND_COVER_SCOPES:
        for composite, classes in LAND_COVER_COMPOSITES.items():
            source_cols = [f"{nlcd_class}{year}{scope}{suffix}" for nlcd_class in classes]

            missing = [col for col in source_cols if col not in land_cover_df.columns]
            if missing:
                logger.error(f"Land cover columns missing for {composite}{scope}{suffix}: {missing}")
                raise KeyError(f"Land cover columns missing: {missing}")

            # Plain column sum, NaN in any constituent propagates to the composite
            composite_df[f"{composite}{scope}{suffix}"] = land_cover_df[source_cols].sum(axis=1, min_count=len(source_cols))

    logger.info(f"Aggregated land cover into {len(composite_df.columns) - 1} composite columns"
                f" (suffix='{suffix}').")

    return composite_df

def combine_streamcat_tables(tables: list, id_col: str = 'COMID'):
    """
    Chain pairwise outer joins (left to right) on the catchment ID. Catchments missing from a
    table keep null values for that table's columns.
    """
    if not tables:
        raise ValueError("At least one StreamCat table is required to combine.")

    def _outer_join(left, right):
        overlap = [col for col in right.columns if col in left.columns and col != id_col]
        if overlap:
            logger.warning(f"Dropping duplicated covariate columns from right-hand table: {overlap}")
            right = right.drop(columns=overlap)

        merged = pd.merge(left, right, on=id_col, how='outer')
        logger.info(f"    Joined table: {len(merged)} catchments, {len(merged.columns) - 1} covariates")
        return merged

    logger.info(f"Combining {len(tables)} StreamCat tables by outer join on '{id_col}'...")
    combined_df = reduce(_outer_join, tables)
    combined_df = combined_df.sort_values(id_col).reset_index(drop=True)

    return combined_df

def build_streamcat_params(sources: list, output_path: str = None, id_col: str = 'COMID'):
    """
    Load every configured StreamCat source, reduce land cover tables to composites and
    outer join them into one wide covariate table keyed by catchment ID.

    Args:
        sources (list): Source dicts with 'name', 'path' and either 'columns' or
                        'land_cover' ({'suffix': str, 'year': int}).
        output_path (str): Optional CSV output path.

    Returns:
        pd.DataFrame: Wide covariate table, one row per catchment.
    """
    tables = []

    for source in sources:
        name = source.get('name', source['path'])

        # Land cover tables are collapsed to composite categories before joining
        if 'land_cover' in source:
            land_cover_settings = source['land_cover'] or {}
            raw_df = pd.read_csv(source['path'])
            table = aggregate_land_cover_categories(
                land_cover_df=raw_df,
                suffix=land_cover_settings.get('suffix', ''),
                year=land_cover_settings.get('year', 2016),
                id_col=id_col
            )
        else:
            table = load_streamcat_table(source['path'], source['columns'], id_col=id_col)

        logger.info(f"Source '{name}' loaded: {len(table)} catchments.")
        tables.append(table)

    streamcat_params = combine_streamcat_tables(tables, id_col=id_col)

    if output_path:
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
        streamcat_params.to_csv(output_path, index=False)
        logger.info(f"StreamCat parameters saved to {output_path}.\n")

    return streamcat_params

def drop_covariates(covariates_df: pd.DataFrame, columns: list):
    """
    Remove a configured list of covariates (e.g. variables known to be incomplete).
    """
    if not columns:
        return covariates_df.copy()

    present = [col for col in columns if col in covariates_df.columns]
    absent = [col for col in columns if col not in covariates_df.columns]
    if absent:
        logger.info(f"Covariates listed for exclusion but not present: {absent}")

    logger.info(f"Dropping {len(present)} covariates: {present}")
    return covariates_df.drop(columns=present)
