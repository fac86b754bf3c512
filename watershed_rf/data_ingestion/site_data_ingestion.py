# Import Libraries
import os
import sys
import logging
import pandas as pd
import geopandas as gpd

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

def load_flowlines(shape_filepath: str, id_col: str = 'COMID'):
    """
    Load stream flowline geometry keyed by catchment ID, dropping Z values.
    """
    logger.info(f"Loading flowlines from {shape_filepath}...")

    if not os.path.exists(shape_filepath):
        logger.error(f"Flowline file not found at: {shape_filepath}")
        raise FileNotFoundError(f"Flowline file not found at: {shape_filepath}")

    flowlines_gdf = gpd.read_file(shape_filepath)
    flowlines_gdf[id_col] = pd.to_numeric(flowlines_gdf[id_col])
    flowlines_gdf['geometry'] = flowlines_gdf.geometry.force_2d()
    return flowlines_gdf

def load_field_sites(csv_path: str, lon_col: str = 'D_long', lat_col: str = 'D_lat', crs: str = 'EPSG:4269'):
    """
    Load field assessment sites from a CSV of decimal degree coordinates (NAD83 by default)
    as point geometry. Coordinate columns are kept.
    """
    logger.info(f"Loading field sites from {csv_path}...")

    if not os.path.exists(csv_path):
        logger.error(f"Field site table not found at: {csv_path}")
        raise FileNotFoundError(f"Field site table not found at: {csv_path}")

    sites_df = pd.read_csv(csv_path)

    missing = [col for col in [lon_col, lat_col] if col not in sites_df.columns]
    if missing:
        logger.error(f"Field site table missing coordinate columns: {missing}")
        raise KeyError(f"Field site table missing coordinate columns: {missing}")

    no_coords = sites_df[[lon_col, lat_col]].isna().any(axis=1)
    if no_coords.any():
        logger.warning(f"Dropping {no_coords.sum()} sites without coordinates.")
        sites_df = sites_df[~no_coords]

    sites_gdf = gpd.GeoDataFrame(
        sites_df.reset_index(drop=True),
        geometry=gpd.points_from_xy(sites_df[lon_col], sites_df[lat_col]),
        crs=crs
    )
    logger.info(f"{len(sites_gdf)} field sites loaded.")
    return sites_gdf

def assign_sites_to_flowlines(sites_gdf: gpd.GeoDataFrame, flowlines_gdf: gpd.GeoDataFrame,
                              distance: float = 40.0, projected_crs: str = 'EPSG:3310',
                              id_col: str = 'COMID'):
    """
    Match every site to each flowline lying within `distance` metres of it.

    Both layers are projected to a metre based CRS (California Albers by default) before the
    distance join. A site near several reaches yields one row per reach; sites with no reach
    in range are dropped.

    Args:
        sites_gdf (gpd.GeoDataFrame): Site points.
        flowlines_gdf (gpd.GeoDataFrame): Stream flowlines keyed by catchment ID.
        distance (float): Search distance in metres.
        projected_crs (str): CRS in metres used for the distance test.

    Returns:
        pd.DataFrame: Site attributes (no geometry) plus the matched catchment ID.
    """
    if sites_gdf.crs is None or flowlines_gdf.crs is None:
        logger.error("Sites and flowlines must both carry a CRS for a distance join.")
        raise ValueError("Sites and flowlines must both carry a CRS for a distance join.")

    sites_proj = sites_gdf.drop(columns=[id_col], errors='ignore').to_crs(projected_crs)
    flowlines_proj = flowlines_gdf[[id_col, 'geometry']].to_crs(projected_crs)

    logger.info(f"Joining {len(sites_proj)} sites to {len(flowlines_proj)} flowlines within {distance} m...")
    joined = gpd.sjoin(sites_proj, flowlines_proj, how='inner', predicate='dwithin', distance=distance)

    site_matches = (pd.DataFrame(joined.drop(columns=['geometry', 'index_right']))
                    .sort_values(id_col, kind='mergesort')
                    .reset_index(drop=True))

    matched_sites = joined.index.nunique()
    if matched_sites < len(sites_proj):
        logger.info(f"{len(sites_proj) - matched_sites} sites have no flowline within {distance} m.")
    multi_matched = joined.index.value_counts()
    if (multi_matched > 1).any():
        logger.warning(f"{(multi_matched > 1).sum()} sites matched more than one flowline"
                       f" ({len(joined) - matched_sites} extra rows).")

    logger.info(f"Site assignment complete: {matched_sites} sites matched to"
                f" {site_matches[id_col].nunique()} catchments.\n")
    return site_matches

def build_site_catchments(sites_path: str, flowlines_path: str, output_path: str = None,
                          lon_col: str = 'D_long', lat_col: str = 'D_lat', crs: str = 'EPSG:4269',
                          distance: float = 40.0, projected_crs: str = 'EPSG:3310', id_col: str = 'COMID',
                          output_columns: list = None):
    """
    Assign catchment IDs to a field site table by distance to flowlines and optionally save the
    matched sites (e.g. RipRAM sites, which are recorded by coordinates only). When output_columns
    is given only those columns are kept.
    """
    sites_gdf = load_field_sites(sites_path, lon_col=lon_col, lat_col=lat_col, crs=crs)
    flowlines_gdf = load_flowlines(flowlines_path, id_col=id_col)

    site_matches = assign_sites_to_flowlines(sites_gdf, flowlines_gdf, distance=distance,
                                             projected_crs=projected_crs, id_col=id_col)

    if output_columns:
        missing = [col for col in output_columns if col not in site_matches.columns]
        if missing:
            logger.error(f"Matched sites missing output columns: {missing}")
            raise KeyError(f"Matched sites missing output columns: {missing}")
        site_matches = site_matches[list(output_columns)]

    if output_path:
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
        site_matches.to_csv(output_path, index=False)
        logger.info(f"Matched sites saved to {output_path}.\n")

    return site_matches
