import numpy as np
import pandas as pd
import pytest

from watershed_rf.preprocessing.data_partitioning import (POOLED_STRATUM, make_strata, partition_statewide,
                                                          predictor_columns, stratified_initial_split)

from conftest import PREDICTORS


def test_predictor_columns_exclude_identifiers(labeled_df):
    assert predictor_columns(labeled_df, 'score') == PREDICTORS


def test_small_regions_pooled(labeled_df):
    strata = make_strata(labeled_df['PSA6'], pool=0.1)
    assert (strata == POOLED_STRATUM).sum() == (labeled_df['PSA6'] == 'Deserts_Modoc').sum()
    assert 'Deserts_Modoc' not in set(strata)


def test_split_disjoint_and_covering(labeled_df, split_frames):
    train_df, test_df = split_frames
    train_ids, test_ids = set(train_df['COMID']), set(test_df['COMID'])

    assert not train_ids & test_ids
    assert train_ids | test_ids == set(labeled_df['COMID'])
    assert len(train_df) == 148
    assert len(test_df) == 52


def test_split_region_proportions(labeled_df, split_frames):
    train_df, _ = split_frames
    full_share = labeled_df['PSA6'].value_counts(normalize=True)
    train_share = train_df['PSA6'].value_counts(normalize=True)

    for region in full_share.index:
        if full_share[region] < 0.1:
            continue
        assert abs(train_share[region] - full_share[region]) <= 0.02


def test_split_is_seeded(labeled_df):
    first, _ = stratified_initial_split(labeled_df, random_seed=4)
    second, _ = stratified_initial_split(labeled_df, random_seed=4)
    other, _ = stratified_initial_split(labeled_df, random_seed=5)

    assert first['COMID'].tolist() == second['COMID'].tolist()
    assert set(first['COMID']) != set(other['COMID'])


def test_split_rejects_bad_proportion(labeled_df):
    with pytest.raises(ValueError):
        stratified_initial_split(labeled_df, random_seed=4, prop=1.0)


def test_partition_statewide(covariates_df, split_frames):
    train_df, _ = split_frames
    training, non_training = partition_statewide(covariates_df, train_df['COMID'])

    assert len(training) == len(train_df)
    assert len(training) + len(non_training) == len(covariates_df)
    assert not set(training['COMID']) & set(non_training['COMID'])
    assert set(training['COMID']) | set(non_training['COMID']) == set(covariates_df['COMID'])


def test_partition_statewide_keeps_every_row():
    covariates = pd.DataFrame({'COMID': [1, 1, 2], 'x1': np.arange(3.0)})
    training, non_training = partition_statewide(covariates, [1])
    assert len(training) == 2
    assert non_training['COMID'].tolist() == [2]
