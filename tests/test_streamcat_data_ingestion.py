import numpy as np
import pandas as pd
import pytest

from watershed_rf.data_ingestion import streamcat_data_ingestion as sdi


def _table(ids, col):
    return pd.DataFrame({'COMID': ids, col: np.arange(len(ids), dtype=float)})


def _land_cover_frame(ids, suffix='', year=2016, seed=0):
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({'COMID': ids})
    for scope in sdi.LAND_COVER_SCOPES:
        for classes in sdi.LAND_COVER_COMPOSITES.values():
            for nlcd_class in classes:
                df[f"{nlcd_class}{year}{scope}{suffix}"] = rng.uniform(0, 10, len(ids))
    return df


def test_two_table_outer_join_cardinality():
    # 100 and 120 IDs sharing 80 -> 100 + 120 - 80 rows
    left = _table(np.arange(0, 100), 'a')
    right = _table(np.concatenate([np.arange(0, 80), np.arange(100, 140)]), 'b')

    combined = sdi.combine_streamcat_tables([left, right])

    assert len(combined) == 140
    assert combined['COMID'].is_unique
    assert combined['b'].isna().sum() == 20
    assert combined['a'].isna().sum() == 40


def test_three_table_join_is_union_of_keys():
    common = np.arange(0, 80)
    tables = [
        _table(np.concatenate([common, np.arange(80, 100)]), 'a'),
        _table(np.concatenate([common, np.arange(100, 140)]), 'b'),
        _table(np.concatenate([common, np.arange(140, 150)]), 'c'),
    ]
    combined = sdi.combine_streamcat_tables(tables)

    assert len(combined) == 150
    assert list(combined.columns) == ['COMID', 'a', 'b', 'c']
    assert combined.dropna()['COMID'].tolist() == list(common)


def test_combine_requires_tables():
    with pytest.raises(ValueError):
        sdi.combine_streamcat_tables([])


@pytest.mark.parametrize("suffix", ["", "Rp100"])
def test_land_cover_composites_are_exact_sums(suffix):
    raw = _land_cover_frame(np.arange(50), suffix=suffix)
    composite = sdi.aggregate_land_cover_categories(raw, suffix=suffix)

    assert len(composite.columns) == 1 + 6
    for scope in sdi.LAND_COVER_SCOPES:
        for name, classes in sdi.LAND_COVER_COMPOSITES.items():
            expected = sum(raw[f"{nlcd_class}2016{scope}{suffix}"] for nlcd_class in classes)
            assert np.max(np.abs(composite[f"{name}{scope}{suffix}"] - expected)) < 1e-9


def test_land_cover_missing_class_raises():
    raw = _land_cover_frame(np.arange(5)).drop(columns=['PctHay2016Ws'])
    with pytest.raises(KeyError):
        sdi.aggregate_land_cover_categories(raw)


def test_land_cover_null_class_propagates():
    raw = _land_cover_frame(np.arange(5))
    raw.loc[0, 'PctCrop2016Cat'] = np.nan
    composite = sdi.aggregate_land_cover_categories(raw)
    assert np.isnan(composite.loc[0, 'PctAgCat'])
    assert composite['PctAgCat'].notna().sum() == 4


def test_load_streamcat_table(tmp_path):
    path = tmp_path / "Dams_CA.csv"
    pd.DataFrame({'COMID': [1, 2], 'DamDensCat': [0.1, 0.2], 'DamDensWs': [0.3, 0.4],
                  'CatAreaSqKm': [5.0, 6.0]}).to_csv(path, index=False)

    dams = sdi.load_streamcat_table(str(path), ['DamDensCat', 'DamDensWs'])
    assert list(dams.columns) == ['COMID', 'DamDensCat', 'DamDensWs']

    with pytest.raises(KeyError):
        sdi.load_streamcat_table(str(path), ['NotAColumn'])
    with pytest.raises(FileNotFoundError):
        sdi.load_streamcat_table(str(tmp_path / "absent.csv"), ['DamDensCat'])


def test_build_streamcat_params(tmp_path):
    dams_path = tmp_path / "Dams_CA.csv"
    _table(np.arange(0, 10), 'DamDensCat').to_csv(dams_path, index=False)
    nlcd_path = tmp_path / "NLCD2016RipBuf100_CA.csv"
    _land_cover_frame(np.arange(5, 15), suffix='Rp100').to_csv(nlcd_path, index=False)

    output_path = tmp_path / "out" / "streamcat_params.csv"
    params = sdi.build_streamcat_params(
        sources=[
            {'name': 'dams', 'path': str(dams_path), 'columns': ['DamDensCat']},
            {'name': 'nlcd16rp', 'path': str(nlcd_path), 'land_cover': {'suffix': 'Rp100', 'year': 2016}},
        ],
        output_path=str(output_path)
    )

    assert len(params) == 15
    assert 'PctUrbWsRp100' in params.columns
    assert output_path.exists()


def test_drop_covariates_ignores_absent_columns():
    df = pd.DataFrame({'COMID': [1], 'RdDensCatRp100': [0.1], 'RdDensWs': [0.2]})
    dropped = sdi.drop_covariates(df, ['RdDensCatRp100', 'NotThere'])
    assert list(dropped.columns) == ['COMID', 'RdDensWs']
    assert 'RdDensCatRp100' in df.columns
