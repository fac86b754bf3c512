import numpy as np
import pandas as pd
import pytest

from watershed_rf.data_ingestion.streamcat_data_ingestion import combine_streamcat_tables
from watershed_rf.preprocessing.label_binding import bind_labels, load_labeled_observations


@pytest.fixture
def scenario():
    """
    Three covariate tables of 100, 120 and 90 catchments with 80 in common, a region table
    covering 95 catchments and 50 stations on 40 distinct, fully covered catchments.
    """
    rng = np.random.default_rng(10)
    common = np.arange(0, 80)
    tables = [
        pd.DataFrame({'COMID': np.concatenate([common, np.arange(80, 100)]), 'FertCat': rng.uniform(size=100)}),
        pd.DataFrame({'COMID': np.concatenate([common, np.arange(100, 140)]), 'DamDensCat': rng.uniform(size=120)}),
        pd.DataFrame({'COMID': np.concatenate([common, np.arange(140, 150)]), 'MineDensWs': rng.uniform(size=90)}),
    ]
    covariates = combine_streamcat_tables(tables)

    regions = pd.DataFrame({'COMID': np.arange(0, 95), 'PSA6': 'Sierra', 'Length_Fin': 1000.0})

    station_ids = np.arange(50)
    labels = pd.DataFrame({
        'stationcode': [f'ST{i:04d}' for i in station_ids],
        'COMID': station_ids % 40,
        'asci': rng.uniform(0.3, 1.2, 50)
    })
    return labels, covariates, regions


def test_end_to_end_binding(scenario):
    labels, covariates, regions = scenario
    bound, summary = bind_labels(labels, covariates, regions, 'asci', random_seed=1)

    assert len(covariates) == 150
    assert len(bound) == 40
    assert bound['COMID'].is_unique
    assert bound[['FertCat', 'DamDensCat', 'MineDensWs', 'asci']].notna().all().all()

    assert summary.joined_rows == 50
    assert summary.duplicate_rows_removed == 10
    assert summary.incomplete_rows_removed == 0
    assert summary.final_rows == 40


def test_dedup_sampling_is_seeded(scenario):
    labels, covariates, regions = scenario
    first, _ = bind_labels(labels, covariates, regions, 'asci', random_seed=1)
    second, _ = bind_labels(labels, covariates, regions, 'asci', random_seed=1)
    assert first['stationcode'].tolist() == second['stationcode'].tolist()

    # Every kept station belongs to the catchment it is listed under
    kept = labels.set_index('stationcode').loc[first['stationcode'], 'COMID']
    assert kept.tolist() == first['COMID'].tolist()


def test_excluded_station_removed(scenario):
    labels, covariates, regions = scenario
    # Station 15 is the only station on catchment 15
    bound, summary = bind_labels(labels, covariates, regions, 'asci', random_seed=1,
                                 excluded_stations=['ST0015'])

    assert summary.excluded_stations == 1
    assert 'ST0015' not in bound['stationcode'].tolist()
    assert 15 not in bound['COMID'].tolist()
    assert len(bound) == 39


def test_incomplete_catchments_dropped(scenario):
    labels, covariates, regions = scenario
    # Catchment 85 is only in the first covariate table
    extra = pd.DataFrame({'stationcode': ['ST9999'], 'COMID': [85], 'asci': [0.9]})
    bound, summary = bind_labels(pd.concat([labels, extra], ignore_index=True), covariates, regions,
                                 'asci', random_seed=1)

    assert summary.incomplete_rows_removed == 1
    assert 85 not in bound['COMID'].tolist()
    assert len(bound) == 40


def test_unmatched_catchments_drop_on_join(scenario):
    labels, covariates, regions = scenario
    # Catchment 145 has covariates but no region assignment
    extra = pd.DataFrame({'stationcode': ['ST9998'], 'COMID': [145], 'asci': [0.9]})
    _, summary = bind_labels(pd.concat([labels, extra], ignore_index=True), covariates, regions,
                             'asci', random_seed=1)
    assert summary.joined_rows == 50
    assert summary.labeled_rows == 51


def test_load_labeled_observations(tmp_path):
    path = tmp_path / "cram_rf_data1.csv"
    pd.DataFrame({
        'stationcode': ['A', 'B', 'C'],
        'comid': [1, 2, 3],
        'indexscore': [70.0, np.nan, 55.0]
    }).to_csv(path, index=False)

    labels = load_labeled_observations(str(path), 'cram', rename_map={'comid': 'COMID', 'indexscore': 'cram'})

    assert labels['stationcode'].tolist() == ['A', 'C']
    assert {'COMID', 'cram'} <= set(labels.columns)

    with pytest.raises(KeyError):
        load_labeled_observations(str(path), 'cram')
    with pytest.raises(FileNotFoundError):
        load_labeled_observations(str(tmp_path / "absent.csv"), 'cram')
