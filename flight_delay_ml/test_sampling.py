"""
Tests for minority upsampling and the stratified split.
"""

import pandas as pd
import pytest

from .errors import DegenerateTrainingFoldError
from .sampling import class_counts, overlap_count, stratified_split, upsample_minority


def _table(n_pos=4, n_neg=6):
    n = n_pos + n_neg
    return pd.DataFrame({
        'duration': list(range(100, 100 + n)),
        'temp': [30.0 + i for i in range(n)],
        'arr_delay': ['Delay'] * n_pos + ['Not Delay'] * n_neg,
    })


def test_upsample_six_to_four_becomes_six_to_six():
    balanced = upsample_minority(_table(), 'arr_delay', seed=42)
    counts = class_counts(balanced, 'arr_delay')

    assert counts['Not Delay'] == 6
    assert counts['Delay'] == 6
    # Majority rows are untouched
    majority = balanced[balanced['arr_delay'] == 'Not Delay']
    assert sorted(majority['duration']) == list(range(104, 110))


def test_upsample_counts_differ_by_at_most_one():
    for n_pos, n_neg in [(3, 17), (10, 11), (1, 9)]:
        balanced = upsample_minority(_table(n_pos, n_neg), 'arr_delay', seed=7)
        counts = class_counts(balanced, 'arr_delay')
        assert abs(counts.iloc[0] - counts.iloc[1]) <= 1


def test_upsample_is_reproducible():
    first = upsample_minority(_table(), 'arr_delay', seed=3)
    second = upsample_minority(_table(), 'arr_delay', seed=3)
    pd.testing.assert_frame_equal(first, second)


def test_upsample_single_level_is_degenerate():
    with pytest.raises(DegenerateTrainingFoldError):
        upsample_minority(_table(n_pos=0, n_neg=5), 'arr_delay')


def test_stratified_split_bounds():
    df = _table(n_pos=13, n_neg=27)
    train, validation = stratified_split(df, 'arr_delay', train_fraction=0.70, seed=42)

    assert len(train) + len(validation) == len(df)
    for label, stratum in class_counts(df, 'arr_delay').items():
        n_train = int((train['arr_delay'] == label).sum())
        assert abs(n_train - 0.70 * stratum) <= 1

    # Disjoint by row: durations are unique in the input
    assert not set(train['duration']) & set(validation['duration'])


def test_overlap_count_sees_upsampled_duplicates():
    train = _table(2, 2)
    validation = pd.concat([train.iloc[[0]], _table(1, 1).assign(duration=[500, 501])])
    assert overlap_count(train, validation) == 1
    assert overlap_count(train, train.iloc[0:0]) == 0
