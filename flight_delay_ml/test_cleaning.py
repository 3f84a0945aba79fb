"""
Tests for missing-value policies and column pruning.
"""

import numpy as np
import pandas as pd
import pytest

from .cleaning import clean_table, missing_value_summary, near_zero_variance_columns, prune_columns
from .config import CleaningConfig, TablePolicy
from .errors import ExcessiveMissingnessError, MissingValuePolicyError


def _weather():
    return pd.DataFrame({
        'month': [1, 1, 1, 1, 1, 1],
        'hour': [5, 6, 7, 8, 9, 10],
        'temp': [30.0, np.nan, 34.0, 36.0, 38.0, 40.0],
        'humid': [80.0, 75.0, 71.0, np.nan, 62.0, 58.0],
        'pressure': [np.nan, np.nan, np.nan, np.nan, 1012.0, 1013.0],
        'origin': ['EWR'] * 6,
    })


def test_missing_value_summary_orders_worst_first():
    summary = missing_value_summary(_weather())

    assert summary['column'].iloc[0] == 'pressure'
    assert set(summary['column']) == {'pressure', 'temp', 'humid'}
    assert summary['null_count'].tolist() == [4, 1, 1]
    assert summary['null_pct'].iloc[0] == pytest.approx(66.67)


def test_weather_policy_imputes_and_drops_sparse_column():
    policy = CleaningConfig().weather
    cleaned, report = clean_table(_weather(), policy, 'weather', protected=['month', 'hour'])

    assert not cleaned.isna().any().any()
    assert 'pressure' in report.dropped_columns
    assert 'origin' in report.dropped_columns
    assert report.imputed_cells == {'temp': 1, 'humid': 1}
    assert cleaned.loc[1, 'temp'] == pytest.approx(36.0)
    assert len(cleaned) == 6
    assert 'month' in cleaned.columns


def test_drop_row_policy_respects_loss_cap():
    df = pd.DataFrame({
        'hour': list(range(10)),
        'dep_delay': [1.0, np.nan, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0],
    })
    lenient = TablePolicy(default='drop_row', max_row_loss=0.2)
    cleaned, report = clean_table(df, lenient, 'flights', protected=['hour'])
    assert len(cleaned) == 9
    assert report.dropped_rows == 1

    strict = TablePolicy(default='drop_row', max_row_loss=0.01)
    with pytest.raises(ExcessiveMissingnessError) as excinfo:
        clean_table(df, strict, 'flights', protected=['hour'])
    assert excinfo.value.lost_fraction == pytest.approx(0.1)


def test_column_without_policy_fails_fast():
    df = pd.DataFrame({
        'hour': [1, 2, 3, 4],
        'temp': [10.0, np.nan, 12.0, 15.0],
        'dewp': [1.0, 2.0, np.nan, 5.0],
    })
    policy = TablePolicy(default=None, column_policies={'dewp': 'impute_median'})
    with pytest.raises(MissingValuePolicyError) as excinfo:
        clean_table(df, policy, 'weather', protected=['hour'])
    assert excinfo.value.columns == ['temp']


def test_column_policy_overrides_default():
    df = pd.DataFrame({
        'hour': [1, 2, 3, 4],
        'temp': [10.0, np.nan, 12.0, 15.0],
        'dewp': [1.0, 2.0, np.nan, 5.0],
    })
    policy = TablePolicy(default='impute_median', column_policies={'dewp': 'drop_column'})
    cleaned, report = clean_table(df, policy, 'weather', protected=['hour'])

    assert 'dewp' not in cleaned.columns
    assert cleaned['temp'].tolist() == [10.0, 12.0, 12.0, 15.0]


def test_prune_constant_and_identifier_columns():
    df = pd.DataFrame({
        'hour': [1, 1, 1, 1],
        'year': [2013, 2013, 2013, 2013],
        'tailnum': ['N1', 'N2', 'N3', 'N4'],
        'dep_delay': [3, -1, 14, 7],
    })
    pruned, dropped = prune_columns(df, TablePolicy(), protected=['hour'])

    assert list(pruned.columns) == ['hour', 'dep_delay']
    assert set(dropped) == {'year', 'tailnum'}


def test_near_zero_variance_flags():
    n = 100
    rng = np.random.default_rng(0)
    df = pd.DataFrame({
        'temp': rng.normal(50, 10, n),
        'humid': rng.normal(60, 15, n),
        'tiny': rng.normal(1.0, 0.01, n),
        'precip': [0.0] * 97 + [0.1, 0.2, 0.3],
    })
    flagged = near_zero_variance_columns(df, df.columns, TablePolicy())

    assert 'tiny' in flagged
    assert 'precip' in flagged
    assert 'temp' not in flagged
    assert 'humid' not in flagged


def test_protected_keys_are_never_imputed():
    weather = pd.DataFrame({
        'month': [1, 1, 1, 1, 1],
        'day': [1, 1, 1, 1, 1],
        'hour': [1, 2, np.nan, 4, 5],
        'temp': [30.0, 31.5, 33.0, 35.5, 36.0],
        'humid': [80.0, np.nan, 70.0, 65.0, 61.0],
    })
    cleaned, report = clean_table(weather, CleaningConfig().weather, 'weather',
                                  protected=['month', 'day', 'hour'])

    assert 'hour' not in report.imputed_cells
    assert 'hour' not in report.medians
    assert report.dropped_key_rows == 1
    assert cleaned['hour'].tolist() == [1, 2, 4, 5]
    assert report.imputed_cells == {'humid': 1}
    assert not cleaned.isna().any().any()
