"""
Tests for packed-time parsing, scheduled duration and target labelling.
"""

import pandas as pd
import pytest

from .config import FeatureConfig
from .errors import InvalidPackedTimeError
from .features import (
    MINUTES_PER_DAY,
    add_scheduled_duration,
    extract_features,
    label_target,
    packed_time_to_minutes,
    split_packed_time,
)


def test_split_three_and_four_digit_times():
    assert split_packed_time(613) == ("6", "13")
    assert split_packed_time(1345) == ("13", "45")
    assert split_packed_time(2400) == ("24", "00")


def test_split_short_time_reads_as_first_hour():
    assert split_packed_time(5) == ("0", "05")
    assert split_packed_time(45) == ("0", "45")
    assert split_packed_time(0) == ("0", "00")
    assert split_packed_time(5.0) == ("0", "05")


@pytest.mark.parametrize('value', [-1, 12345, 675, 2460, 2501, 99, 6.5, float('nan'), '613', True, None])
def test_split_rejects_invalid_values(value):
    with pytest.raises(InvalidPackedTimeError):
        split_packed_time(value)


def test_packed_time_to_minutes_matches_split():
    values = pd.Series([613, 1345, 5, 2400, 0])
    minutes = packed_time_to_minutes(values)

    expected = []
    for value in values:
        hour, minute = split_packed_time(int(value))
        expected.append(int(hour) * 60 + int(minute))
    assert minutes.tolist() == expected
    assert minutes.iloc[3] == MINUTES_PER_DAY


def test_packed_time_to_minutes_rejects_bad_column():
    with pytest.raises(InvalidPackedTimeError):
        packed_time_to_minutes(pd.Series([613, 1375]))
    with pytest.raises(InvalidPackedTimeError):
        packed_time_to_minutes(pd.Series([613, None]))
    with pytest.raises(InvalidPackedTimeError):
        packed_time_to_minutes(pd.Series([613, 10000]))


def _flights():
    return pd.DataFrame({
        'month': [1, 1, 1],
        'day': [1, 1, 1],
        'hour': [5, 13, 23],
        'minute': [15, 45, 30],
        'sched_dep_time': [515, 1345, 2330],
        'sched_arr_time': [830, 1600, 130],
        'arr_delay': [-4, 12, 0],
    })


def test_duration_wraps_overnight_flights():
    data, counts = add_scheduled_duration(_flights(), FeatureConfig())

    assert data['duration'].tolist() == [195, 135, 120]
    assert counts == {'overnight_rows': 1}
    for column in ('sched_dep_time', 'sched_arr_time', 'minute'):
        assert column not in data.columns
    assert 'hour' in data.columns


def test_duration_overnight_drop_and_keep():
    dropped, _ = add_scheduled_duration(_flights(), FeatureConfig(overnight_policy='drop'))
    kept, _ = add_scheduled_duration(_flights(), FeatureConfig(overnight_policy='keep'))

    assert dropped['duration'].tolist() == [195, 135]
    assert kept['duration'].tolist() == [195, 135, -1320]


def test_departure_falls_back_to_packed_field():
    flights = _flights().drop(columns=['hour', 'minute'])
    data, _ = add_scheduled_duration(flights, FeatureConfig())

    assert data['hour'].tolist() == [5, 13, 23]
    assert data['duration'].tolist() == [195, 135, 120]


def test_label_target_numeric_delay():
    labelled = label_target(_flights(), FeatureConfig())
    assert labelled['arr_delay'].tolist() == ['Not Delay', 'Delay', 'Not Delay']


def test_label_target_rejects_unknown_levels():
    flights = _flights().assign(arr_delay=['Delay', 'Late', 'Not Delay'])
    with pytest.raises(ValueError):
        label_target(flights, FeatureConfig())


def test_extract_features_output_columns():
    data, counts = extract_features(_flights(), FeatureConfig())
    assert list(data.columns) == ['month', 'day', 'hour', 'arr_delay', 'duration']
    assert counts['overnight_rows'] == 1


def test_departure_past_midnight_hour_rejected():
    flights = _flights()
    flights.loc[0, ['hour', 'minute']] = [24, 30]
    with pytest.raises(InvalidPackedTimeError):
        add_scheduled_duration(flights, FeatureConfig())

    flights.loc[0, ['hour', 'minute']] = [24, 0]
    data, _ = add_scheduled_duration(flights, FeatureConfig())
    # 24:00 is minute 1440; the 08:30 arrival wraps to the next day
    assert data.loc[0, 'duration'] == 510
