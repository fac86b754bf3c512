import numpy as np
import pandas as pd
import pytest

from watershed_rf.training import model_testing as mte

from conftest import REGIONS


def test_perfect_line_fit():
    predicted = np.linspace(0, 1, 20)
    lm = mte.fit_linear_model(2 * predicted + 1, predicted)

    assert lm['n'] == 20
    assert lm['Slope'] == pytest.approx(2.0)
    assert lm['Intercept'] == pytest.approx(1.0)
    assert lm['R2'] == pytest.approx(1.0)
    assert lm['Slope_p'] < 1e-6
    assert lm['Intercept_p'] < 1e-6


def test_degenerate_fits_return_nan():
    short = mte.fit_linear_model([1.0, 2.0], [1.0, 2.0])
    flat = mte.fit_linear_model([1.0, 2.0, 3.0], [0.5, 0.5, 0.5])

    assert short['n'] == 2 and np.isnan(short['Slope'])
    assert np.isnan(flat['R2'])


def test_fit_ignores_nulls():
    lm = mte.fit_linear_model([1.0, 2.0, np.nan, 4.0, 5.0], [1.0, 2.0, 3.0, np.nan, 5.5])
    assert lm['n'] == 3


def test_validate_by_region(split_frames):
    rng = np.random.default_rng(3)
    train_df, test_df = split_frames
    train_pred = train_df.assign(score_predicted=train_df['score'] + rng.normal(0, 0.2, len(train_df)))
    test_pred = test_df.assign(score_predicted=test_df['score'] + rng.normal(0, 0.2, len(test_df)))

    lms = mte.validate_by_region(train_pred, test_pred, 'score')

    assert len(lms) == 2 * (1 + len(REGIONS))
    assert list(lms.columns) == mte.LM_COLUMNS
    assert lms.loc[0, 'Region'] == mte.STATEWIDE
    statewide = lms[lms['Region'] == mte.STATEWIDE].set_index('Dataset')
    assert statewide.loc['Training', 'n'] == len(train_df)
    assert statewide.loc['Testing', 'n'] == len(test_df)
    assert lms.groupby('Region')['n'].sum().drop(mte.STATEWIDE).sum() == len(train_df) + len(test_df)


def test_format_p_values():
    lms = pd.DataFrame({'Slope_p': [1e-6, 0.5, np.nan], 'Intercept_p': [0.0123456789, 2e-5, 0.9]})
    formatted = mte.format_p_values(lms)

    assert formatted['Slope_p'].tolist()[:2] == ['<0.0001', 0.5]
    assert pd.isna(formatted['Slope_p'].iloc[2])
    assert formatted['Intercept_p'].tolist() == [0.012346, '<0.0001', 0.9]
    assert lms['Slope_p'].iloc[0] == 1e-6


def test_compute_rmse():
    assert mte.compute_rmse([1.0, 2.0, 3.0], [1.0, 2.0, 5.0]) == pytest.approx(np.sqrt(4 / 3))
