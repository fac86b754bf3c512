import os
import sys
import logging
import numpy as np
import pandas as pd
import seaborn as sns
import matplotlib.pyplot as plt

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

def _save_figure(fig, output_path, dpi=300):
    os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    logger.info(f"Figure saved to: {output_path}")

def plot_variable_importance(importance_df: pd.DataFrame, output_path: str):
    """
    Two-panel dot plot of %IncMSE and IncNodePurity, predictors ordered by importance.
    """
    fig, axes = plt.subplots(1, 2, figsize=(12, max(4, 0.35 * len(importance_df))))

    for ax, metric, label in zip(axes, ['%IncMSE', 'IncNodePurity'], ['% Importance (MSE)', 'Node Purity']):
        ordered = importance_df.sort_values(metric)
        ax.scatter(ordered[metric], ordered['variable'], s=40, alpha=0.75, color='#2A3927')
        ax.set_xlabel(label)
        ax.set_ylabel('Variables')
        ax.grid(axis='x', linestyle='--', alpha=0.5)

    axes[0].set_title('A', loc='left')
    axes[1].set_title('B', loc='left')
    plt.tight_layout()

    _save_figure(fig, output_path)
    return fig

def plot_rfe_profile(rfe_results: pd.DataFrame, chosen_size: int, output_path: str):
    """
    Cross-validated RMSE by predictor subset size, marking the size picked.
    """
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.errorbar(rfe_results['size'], rfe_results['RMSE'], yerr=rfe_results['RMSE_sd'], marker='o',
                color='#3793EC', capsize=3)
    ax.axvline(chosen_size, color='black', linestyle='--', linewidth=1, label=f'Chosen size ({chosen_size})')

    ax.set_xlabel('Number of predictors')
    ax.set_ylabel('RMSE (cross-validation)')
    ax.legend()
    ax.grid(linestyle='--', alpha=0.5)

    _save_figure(fig, output_path)
    return fig

def plot_validation(train_pred_df: pd.DataFrame, test_pred_df: pd.DataFrame, measured_col: str,
                    predicted_col: str, output_path: str, region_col: str = 'PSA6', index_label: str = None):
    """
    Measured vs predicted scatter for training (out-of-bag) and testing rows, faceted by region,
    with fitted lines and the 1:1 line.
    """
    index_label = index_label or measured_col

    full_train_test = pd.concat([
        train_pred_df.assign(Set='Training'),
        test_pred_df.assign(Set='Testing')
    ], ignore_index=True)

    grid = sns.lmplot(
        data=full_train_test, x=predicted_col, y=measured_col, hue='Set', col=region_col, col_wrap=3,
        hue_order=['Training', 'Testing'], palette=['#2A3927', '#3793EC'], ci=None,
        scatter_kws={'alpha': 0.5}, height=3.5, facet_kws={'sharex': True, 'sharey': True}
    )

    # 1:1 reference line on every facet
    for ax in grid.axes.flat:
        limits = np.array([ax.get_xlim(), ax.get_ylim()])
        line = [limits.min(), limits.max()]
        ax.plot(line, line, color='black', linewidth=1)

    grid.set_axis_labels(f"{index_label} predicted", f"{index_label} measured")
    grid.set_titles("{col_name}")

    _save_figure(grid.figure, output_path)
    return grid
