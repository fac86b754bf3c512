import numpy as np
import pandas as pd
import pytest
import matplotlib

matplotlib.use("Agg")

REGIONS = ['Central_Valley', 'Chaparral', 'Deserts_Modoc', 'North_Coast', 'Sierra', 'South_Coast']

# 20-row repeating pattern: 20%, 25%, 5%, 15%, 20%, 15%
REGION_PATTERN = (['Central_Valley'] * 4 + ['Chaparral'] * 5 + ['Deserts_Modoc'] * 1
                  + ['North_Coast'] * 3 + ['Sierra'] * 4 + ['South_Coast'] * 3)

N_CATCHMENTS = 400
N_LABELED = 200
PREDICTORS = [f'x{i}' for i in range(1, 9)]


@pytest.fixture
def covariates_df():
    """Statewide covariate table: 400 catchments, 8 uniform covariates."""
    rng = np.random.default_rng(0)
    df = pd.DataFrame({'COMID': np.arange(1000, 1000 + N_CATCHMENTS)})
    for col in PREDICTORS:
        df[col] = rng.uniform(0, 1, N_CATCHMENTS)
    return df


@pytest.fixture
def regions_df(covariates_df):
    rng = np.random.default_rng(1)
    return pd.DataFrame({
        'COMID': covariates_df['COMID'],
        'PSA6': REGION_PATTERN * (N_CATCHMENTS // len(REGION_PATTERN)),
        'Length_Fin': rng.uniform(100, 5000, N_CATCHMENTS)
    })


@pytest.fixture
def labeled_df(covariates_df, regions_df):
    """First 200 catchments carry a measured score driven mostly by x1 and x2."""
    rng = np.random.default_rng(2)
    df = covariates_df.iloc[:N_LABELED].merge(regions_df, on='COMID')
    df.insert(0, 'stationcode', [f'ST{i:04d}' for i in range(len(df))])
    df['score'] = 2 * df['x1'] + df['x2'] + rng.normal(0, 0.1, len(df))
    return df


@pytest.fixture
def split_frames(labeled_df):
    from watershed_rf.preprocessing.data_partitioning import stratified_initial_split
    return stratified_initial_split(labeled_df, random_seed=4)


@pytest.fixture
def fitted_forest(split_frames):
    from watershed_rf.training.model_training import fit_random_forest
    train_df, _ = split_frames
    return fit_random_forest(train_df, 'score', ['x1', 'x2', 'x3'], random_seed=2, n_estimators=60)


@pytest.fixture
def asci_classification():
    return {
        'thresholds': [0.67, 0.82, 0.93],
        'labels': ['Very Likely Altered', 'Likely Altered', 'Possibly Altered', 'Likely Unaltered'],
        'colours': ['#EE0000', '#FFB6C1', '#A4D3EE', '#4682B4']
    }
