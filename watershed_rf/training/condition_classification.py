import sys
import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass

# Set up logger config
logging.basicConfig(
    level=logging.INFO,
   format='%(levelname)s - %(message)s',
#    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set up logger for file
logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class ConditionScheme:
    """
    Ordered condition classes for one index. Class i covers [thresholds[i-1], thresholds[i]),
    so a value equal to a threshold falls in the higher class.
    """
    name: str
    thresholds: tuple
    labels: tuple
    round_digits: int = None

    def __post_init__(self):
        thresholds = tuple(float(t) for t in self.thresholds)
        labels = tuple(self.labels)

        if len(thresholds) == 0:
            raise ValueError(f"Scheme '{self.name}' needs at least one threshold.")
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError(f"Scheme '{self.name}' thresholds must be strictly increasing: {thresholds}")
        if len(labels) != len(thresholds) + 1:
            raise ValueError(f"Scheme '{self.name}' needs {len(thresholds) + 1} labels for"
                             f" {len(thresholds)} thresholds, got {len(labels)}.")
        if len(set(labels)) != len(labels):
            raise ValueError(f"Scheme '{self.name}' labels must be unique: {labels}")

        object.__setattr__(self, 'thresholds', thresholds)
        object.__setattr__(self, 'labels', labels)

    def classify(self, values):
        """
        Map values to class labels; null values map to None.
        """
        values = np.asarray(values, dtype=float)
        if self.round_digits is not None:
            values = np.round(values, self.round_digits)

        # side='right' counts thresholds <= value, so boundaries go to the higher class
        class_idx = np.searchsorted(np.asarray(self.thresholds), values, side='right')
        return [None if np.isnan(value) else self.labels[idx] for value, idx in zip(values, class_idx)]

def scheme_from_config(index_name: str, classification_config: dict):
    return ConditionScheme(
        name=index_name,
        thresholds=classification_config['thresholds'],
        labels=classification_config['labels'],
        round_digits=classification_config.get('round_digits')
    )

def classify_predictions(predictions_df: pd.DataFrame, prediction_col: str, scheme: ConditionScheme,
                         class_col: str = 'class_f'):
    """
    Add an ordered categorical condition class column derived from the predictions.
    """
    classified_df = predictions_df.copy()
    labels = scheme.classify(classified_df[prediction_col].to_numpy())
    classified_df[class_col] = pd.Categorical(labels, categories=list(scheme.labels), ordered=True)

    counts = classified_df[class_col].value_counts(sort=False)
    logger.info(f"Classified {len(classified_df)} predictions with '{scheme.name}' scheme:\n{counts.to_string()}\n")

    return classified_df

def summarise_classes(classified_df: pd.DataFrame, regions_df: pd.DataFrame = None, class_col: str = 'class_f',
                      length_col: str = 'Length_Fin', id_col: str = 'COMID'):
    """
    Count catchments and total stream length (m) in each condition class. Reach lengths are
    taken from the region assignment table when given; missing lengths count as zero.
    """
    summary_df = classified_df[[id_col, class_col]].copy()

    if regions_df is not None:
        summary_df = pd.merge(summary_df, regions_df[[id_col, length_col]], on=id_col, how='left')
    elif length_col in classified_df.columns:
        summary_df[length_col] = classified_df[length_col].to_numpy()
    else:
        summary_df[length_col] = np.nan

    summary_df[length_col] = summary_df[length_col].fillna(0.0)

    class_summary = (summary_df.groupby(class_col, observed=False)
                     .agg(n=(id_col, 'size'), length=(length_col, 'sum'))
                     .reset_index())

    return class_summary
