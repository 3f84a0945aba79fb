"""
Joining flights to the hourly weather observation for their scheduled departure.
"""

import logging
from dataclasses import dataclass, asdict
from typing import List, Tuple

import pandas as pd

from .schema import forbid_columns, require_columns

logger = logging.getLogger(__name__)


@dataclass
class JoinReport:
    flight_rows: int
    weather_rows: int
    duplicate_weather_keys: int
    misses: int
    joined_rows: int

    def as_dict(self) -> dict:
        return asdict(self)


def join_weather(
    flights: pd.DataFrame,
    weather: pd.DataFrame,
    keys: List[str],
) -> Tuple[pd.DataFrame, JoinReport]:
    """
    Attach weather attributes to every flight by equality on `keys`.

    Flights whose key has no weather row are kept with missing weather
    attributes, so the post-join clean removes them; their number is
    counted and reported. Weather keys are made unique first (first row
    wins) so the join never multiplies flights.

    Returns:
        (joined table, report)
    """
    require_columns(flights, keys, 'join_weather[flights]')
    require_columns(weather, keys, 'join_weather[weather]')

    unique_weather = weather.drop_duplicates(subset=keys, keep='first')
    duplicates = len(weather) - len(unique_weather)
    if duplicates:
        logger.warning(f"Discarded {duplicates:,} weather rows with duplicate keys {keys}")

    joined = flights.merge(
        unique_weather,
        on=keys,
        how='left',
        suffixes=('', '_weather'),
        indicator=True,
        validate='many_to_one',
    )
    misses = int((joined['_merge'] == 'left_only').sum())
    joined = joined.drop(columns='_merge')

    report = JoinReport(
        flight_rows=len(flights),
        weather_rows=len(weather),
        duplicate_weather_keys=duplicates,
        misses=misses,
        joined_rows=len(joined) - misses,
    )
    if misses:
        logger.warning(f"{misses:,} of {len(flights):,} flights have no weather row for their "
                       f"{keys} key; they will be dropped by the post-join clean")
    else:
        logger.info(f"All {len(flights):,} flights matched a weather row")
    return joined, report


def drop_join_keys(df: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    """Remove the join keys once the weather lookup is done."""
    data = df.drop(columns=[k for k in keys if k in df.columns])
    return forbid_columns(data, keys, 'drop_join_keys')
