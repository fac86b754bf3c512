# Import Libraries
import os
import sys
import logging
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

def assign_max_length_regions(region_df: pd.DataFrame, id_col: str = 'COMID', region_col: str = 'PSA6',
                              length_col: str = 'Length_Fin'):
    """
    Reduce the survey frame to one region per catchment. Where a catchment has several
    length records, the maximum length is kept along with the region of that record.
    """
    region_df = region_df[[id_col, region_col, length_col]].copy()

    # Max length per catchment, then recover the matching region by joining back
    max_lengths = region_df.groupby(id_col, as_index=False)[length_col].max()
    assigned = pd.merge(region_df, max_lengths, on=[id_col, length_col], how='inner')

    # Equal max lengths in two regions would still duplicate, keep the first record
    duplicated = assigned.duplicated(subset=id_col, keep='first')
    if duplicated.any():
        logger.warning(f"{duplicated.sum()} catchments have tied maximum lengths; keeping first region.")
    assigned = assigned[~duplicated]

    logger.info(f"Region assignment reduced from {len(region_df)} records to {len(assigned)} catchments.")

    return assigned.sort_values(id_col).reset_index(drop=True)

def load_region_assignments(csv_path: str, id_col: str = 'COMID', region_col: str = 'PSA6',
                            length_col: str = 'Length_Fin', output_path: str = None):
    """
    Load the perennial stream assessment frame and assign one region and reach length per
    catchment ID.

    Args:
        csv_path (str): Survey frame CSV with catchment ID, region and reach length columns.
        output_path (str): Optional path to save the reduced table.

    Returns:
        pd.DataFrame: Columns [id_col, region_col, length_col], unique on id_col.
    """
    logger.info(f"Loading region assignments from {csv_path}...")

    if not os.path.exists(csv_path):
        logger.error(f"Region assignment table not found at: {csv_path}")
        raise FileNotFoundError(f"Region assignment table not found at: {csv_path}")

    region_df = pd.read_csv(csv_path)

    missing = [col for col in [id_col, region_col, length_col] if col not in region_df.columns]
    if missing:
        logger.error(f"Region assignment table missing columns: {missing}")
        raise KeyError(f"Region assignment table missing columns: {missing}")

    regions = assign_max_length_regions(region_df, id_col=id_col, region_col=region_col,
                                        length_col=length_col)

    if output_path:
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
        regions.to_csv(output_path, index=False)
        logger.info(f"Region assignments saved to {output_path}.\n")

    return regions
