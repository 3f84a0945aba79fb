"""
Loading of the flight and weather record sets.
"""

import logging
from typing import Optional, Tuple

import pandas as pd

from .config import Config
from .schema import require_any, require_columns

logger = logging.getLogger(__name__)

FLIGHT_REQUIRED = ['month', 'day', 'dep_delay']
# Scheduled departure is read from hour/minute when present, else from the packed field
DEPARTURE_COLUMNS = ['hour', 'minute']


def _read_table(path: str, config: Config, max_rows: Optional[int]) -> pd.DataFrame:
    return pd.read_csv(
        path,
        sep=config.paths.separator,
        na_values=config.paths.na_values,
        nrows=max_rows,
    )


def load_flights(config: Config, path: Optional[str] = None) -> pd.DataFrame:
    """Read the flight records and check the columns later stages rely on."""
    path = path or config.paths.flights_csv
    max_rows = config.debug.max_rows_debug if config.debug.debug else None
    df = _read_table(path, config, max_rows)

    required = FLIGHT_REQUIRED + [config.features.arrival_field, config.features.target]
    require_columns(df, required, 'load_flights')
    require_any(
        df,
        [DEPARTURE_COLUMNS, [config.features.departure_field]],
        'load_flights',
    )

    logger.info(f"Loaded {len(df):,} flight records with {df.shape[1]} columns from {path}")
    return df


def load_weather(config: Config, path: Optional[str] = None) -> pd.DataFrame:
    """Read the hourly weather records keyed by the join keys."""
    path = path or config.paths.weather_csv
    df = _read_table(path, config, None)
    require_columns(df, config.features.join_keys, 'load_weather')

    logger.info(f"Loaded {len(df):,} weather records with {df.shape[1]} columns from {path}")
    return df


def load_tables(config: Config) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load both record sets."""
    return load_flights(config), load_weather(config)
