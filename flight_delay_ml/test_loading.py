"""
Tests for reading the flight and weather record sets.
"""

import pandas as pd
import pytest

from .config import create_default_config
from .errors import SchemaMismatchError
from .loading import load_flights, load_tables


def _write(tmp_path, flights, weather):
    config = create_default_config()
    config.paths.flights_csv = str(tmp_path / 'flights.csv')
    config.paths.weather_csv = str(tmp_path / 'weather.csv')
    flights.to_csv(config.paths.flights_csv, index=False)
    weather.to_csv(config.paths.weather_csv, index=False)
    return config


def _flights(n=5):
    return pd.DataFrame({
        'month': [1] * n,
        'day': [1] * n,
        'dep_delay': list(range(n)),
        'sched_dep_time': [600 + i for i in range(n)],
        'sched_arr_time': [900 + i for i in range(n)],
        'arr_delay': ['NA'] + list(range(1, n)),
    })


def _weather():
    return pd.DataFrame({'month': [1], 'day': [1], 'hour': [6], 'temp': [39.0]})


def test_load_tables_reads_na_markers(tmp_path):
    config = _write(tmp_path, _flights(), _weather())
    flights, weather = load_tables(config)

    assert len(flights) == 5
    assert flights['arr_delay'].isna().sum() == 1
    assert list(weather.columns) == ['month', 'day', 'hour', 'temp']


def test_debug_mode_caps_flight_rows(tmp_path):
    config = _write(tmp_path, _flights(20), _weather())
    config.debug.debug = True
    config.debug.max_rows_debug = 7

    assert len(load_flights(config)) == 7


def test_missing_required_columns(tmp_path):
    config = _write(tmp_path, _flights().drop(columns=['sched_arr_time']), _weather())
    with pytest.raises(SchemaMismatchError) as excinfo:
        load_flights(config)
    assert excinfo.value.missing == ['sched_arr_time']

    config = _write(tmp_path, _flights().drop(columns=['sched_dep_time']), _weather())
    with pytest.raises(SchemaMismatchError):
        load_flights(config)

    config = _write(tmp_path, _flights(), _weather().drop(columns=['hour']))
    with pytest.raises(SchemaMismatchError):
        load_tables(config)
