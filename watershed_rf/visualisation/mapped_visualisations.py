import os
import sys
import folium
import logging
import pandas as pd
import geopandas as gpd
import matplotlib.pyplot as plt
from matplotlib.lines import Line2D

from watershed_rf.data_ingestion.site_data_ingestion import load_flowlines

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

def join_predictions_to_flowlines(flowlines_gdf: gpd.GeoDataFrame, classified_df: pd.DataFrame,
                                  class_col: str = 'class_f', id_col: str = 'COMID'):
    """
    Keep only modelled reaches and attach their condition class.
    """
    modelled = flowlines_gdf[flowlines_gdf[id_col].isin(classified_df[id_col])]
    mapped_gdf = modelled.merge(classified_df, on=id_col, how='inner')

    logger.info(f"{len(mapped_gdf)} of {len(flowlines_gdf)} flowlines matched to predictions.")
    return mapped_gdf

def _draw_classes(ax, mapped_gdf, class_colours, class_col='class_f', title=None, legend=True,
                  linewidth=0.5):
    for label, colour in class_colours.items():
        subset = mapped_gdf[mapped_gdf[class_col] == label]
        if len(subset) > 0:
            subset.plot(ax=ax, color=colour, linewidth=linewidth)

    if legend:
        # Every class is listed, including classes with no reaches
        handles = [Line2D([0], [0], color=colour, lw=2, label=label) for label, colour in class_colours.items()]
        ax.legend(handles=handles, title='Condition', loc='lower left')
    if title:
        ax.set_title(title)
    ax.set_axis_off()

def plot_condition_map(mapped_gdf: gpd.GeoDataFrame, class_colours: dict, static_output_path: str,
                       interactive_output_path: str, esri: str = None, esri_attr: str = None,
                       class_col: str = 'class_f', title: str = None, interactive: bool = False):
    """
    Map predicted condition classes along stream reaches, as either a static Matplotlib plot
    or an interactive Folium map with tile layer toggles.

    Args:
        mapped_gdf (gpd.GeoDataFrame): Flowlines joined to classified predictions.
        class_colours (dict): Colour for each condition class label (config).
        esri (str): esri tile path (interactive only).
        esri_attr (str): esri tile attribution (required for use).
        interactive (bool): True generates an interactive folium map, False (default) a
                            static matplotlib map.
    """
    logger.info(f"PLOT_CONDITION_MAP: Plotting {len(mapped_gdf)} classified reaches.")
    title = title or "Predicted condition"

    # Static map when selected
    if not interactive:
        fig, ax = plt.subplots(figsize=(10, 10))
        _draw_classes(ax, mapped_gdf, class_colours, class_col=class_col, title=title)

        os.makedirs(os.path.dirname(static_output_path) or '.', exist_ok=True)
        plt.savefig(static_output_path, dpi=300)
        plt.close(fig)
        logger.info(f"Static map file saved to: {static_output_path}\n")
        return fig

    # Interactive map otherwise
    else:
        mapped_4326 = mapped_gdf.to_crs(epsg=4326)
        minx, miny, maxx, maxy = mapped_4326.total_bounds
        map_center = [(miny + maxy) / 2, (minx + maxx) / 2]

        map = folium.Map(location=map_center, zoom_start=7, tiles=None)

        if esri:
            folium.TileLayer(tiles=esri, attr=esri_attr, name='Topo', show=True).add_to(map)
        folium.TileLayer('CartoDB positron', name='Light', show=not esri).add_to(map)

        # One toggleable layer per condition class
        for label, colour in class_colours.items():
            subset = mapped_4326[mapped_4326[class_col] == label]
            if len(subset) == 0:
                continue
            subset = subset[[class_col, 'geometry']].astype({class_col: str})
            folium.GeoJson(subset, name=label,
                           style_function=lambda x, colour=colour: {'color': colour, 'weight': 1.5}).add_to(map)

        folium.LayerControl().add_to(map)

        os.makedirs(os.path.dirname(interactive_output_path) or '.', exist_ok=True)
        map.save(interactive_output_path)
        logger.info(f"Interactive map file saved to: {interactive_output_path}\n")
        return map

def plot_condition_insets(classified_df: pd.DataFrame, insets: list, class_colours: dict, output_dir: str,
                          index_name: str, class_col: str = 'class_f', id_col: str = 'COMID'):
    """
    Inset maps of predicted condition for individual watersheds, drawn from pre-clipped
    flowline layers. Each inset is saved on its own and all insets are stacked into one figure.

    Args:
        classified_df (pd.DataFrame): Statewide predictions with condition class.
        insets (list): Dicts with 'name' (panel title) and 'path' (clipped flowline layer).
        class_colours (dict): Colour for each condition class label.
        output_dir (str): Figure directory.
        index_name (str): Used in output file names.

    Returns:
        str: Path of the stacked figure.
    """
    if not insets:
        raise ValueError("At least one inset watershed is required.")

    logger.info(f"PLOT_CONDITION_INSETS: Plotting {len(insets)} watershed insets for {index_name}.")
    os.makedirs(output_dir, exist_ok=True)

    stacked_fig, stacked_axes = plt.subplots(len(insets), 1, figsize=(8, 5 * len(insets)), squeeze=False)

    for i, inset in enumerate(insets):
        clip_gdf = load_flowlines(inset['path'], id_col=id_col)
        mapped_gdf = join_predictions_to_flowlines(clip_gdf, classified_df, class_col=class_col, id_col=id_col)
        if len(mapped_gdf) == 0:
            logger.warning(f"No modelled reaches fall within inset '{inset['name']}'.")

        # Single inset
        fig, ax = plt.subplots(figsize=(8, 5))
        _draw_classes(ax, mapped_gdf, class_colours, class_col=class_col, title=inset['name'], linewidth=1.0)
        file_name = inset['name'].replace(' ', '')
        inset_path = os.path.join(output_dir, f"{index_name}_modeled_{file_name}.png")
        fig.savefig(inset_path, dpi=300, bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Inset map saved to: {inset_path}")

        # Legend on the first panel of the stacked figure only
        _draw_classes(stacked_axes[i, 0], mapped_gdf, class_colours, class_col=class_col, title=inset['name'],
                      legend=(i == 0), linewidth=1.0)

    stacked_path = os.path.join(output_dir, f"{index_name}_modeled_insets.png")
    stacked_fig.savefig(stacked_path, dpi=300, bbox_inches='tight')
    plt.close(stacked_fig)
    logger.info(f"Stacked inset figure saved to: {stacked_path}\n")

    return stacked_path
