"""
Feature extraction: packed HMM/HHMM times, scheduled duration and the target.
"""

import logging
import numbers
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from .config import FeatureConfig
from .errors import InvalidPackedTimeError
from .schema import require_columns

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def split_packed_time(value) -> Tuple[str, str]:
    """
    Split a packed time-of-day integer into hour and minute strings.

    Three digits read as HMM and four as HHMM. Shorter values (times in the
    first hour after midnight, e.g. 5 for 00:05) read as hour "0" with the
    value as a two-digit minute.

    Examples:
        613  -> ("6", "13")
        1345 -> ("13", "45")
        5    -> ("0", "05")

    Raises:
        InvalidPackedTimeError: negative, non-integral, more than four digits,
            minute of 60 or more, or an hour past 24:00
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidPackedTimeError(value, "not a number")
    if isinstance(value, float) and (np.isnan(value) or not value.is_integer()):
        raise InvalidPackedTimeError(value, "not an integer")
    if value < 0:
        raise InvalidPackedTimeError(value, "negative")

    text = str(int(value))
    if len(text) > 4:
        raise InvalidPackedTimeError(value, "more than four digits")
    if len(text) < 3:
        hour, minute = "0", text.zfill(2)
    elif len(text) == 3:
        hour, minute = text[0], text[1:]
    else:
        hour, minute = text[:2], text[2:]

    _check_clock(value, int(hour), int(minute))
    return hour, minute


def _check_clock(value, hour: int, minute: int):
    if minute >= 60:
        raise InvalidPackedTimeError(value, "minute out of range")
    if hour > 24 or (hour == 24 and minute != 0):
        raise InvalidPackedTimeError(value, "hour out of range")


def packed_time_to_minutes(values: pd.Series) -> pd.Series:
    """
    Minutes since midnight for a column of packed times (24:00 -> 1440).

    Integer division by 100 yields the same hour/minute split as
    `split_packed_time` for every valid value.
    """
    numeric = pd.to_numeric(values, errors='coerce')
    bad = numeric.isna() | (numeric < 0) | (numeric % 1 != 0)
    if bad.any():
        first = values[bad].iloc[0]
        raise InvalidPackedTimeError(first, "not a non-negative integer")

    packed = numeric.astype(np.int64)
    hours = packed // 100
    minutes = packed % 100
    bad = (packed > 9999) | (minutes >= 60) | (hours > 24) | ((hours == 24) & (minutes != 0))
    if bad.any():
        first = int(packed[bad].iloc[0])
        hour, minute = divmod(first, 100)
        if first > 9999:
            raise InvalidPackedTimeError(first, "more than four digits")
        _check_clock(first, hour, minute)

    return hours * 60 + minutes


def _departure_minutes(df: pd.DataFrame, config: FeatureConfig) -> pd.Series:
    """Scheduled departure from hour/minute columns, else from the packed field."""
    if 'hour' in df.columns and 'minute' in df.columns:
        hours = df['hour'].astype(np.int64)
        minutes = df['minute'].astype(np.int64)
        bad = ((hours < 0) | (hours > 24) | (minutes < 0) | (minutes >= 60)
               | ((hours == 24) & (minutes != 0)))
        if bad.any():
            row = df.loc[bad].iloc[0]
            raise InvalidPackedTimeError(
                int(row['hour']) * 100 + int(row['minute']), "hour/minute out of range"
            )
        return hours * 60 + minutes
    return packed_time_to_minutes(df[config.departure_field])


def add_scheduled_duration(df: pd.DataFrame, config: FeatureConfig) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Derive the scheduled duration in minutes and drop the raw time fields.

    The departure hour is kept (it is a join key); a missing `hour` column
    is derived from the packed departure field.

    Returns:
        (table with the duration column, counts for the run summary)
    """
    require_columns(df, [config.arrival_field], 'add_scheduled_duration')
    data = df.copy()

    departure = _departure_minutes(data, config)
    arrival = packed_time_to_minutes(data[config.arrival_field])
    if 'hour' not in data.columns:
        data['hour'] = departure // 60

    duration = arrival - departure
    overnight = duration < 0
    n_overnight = int(overnight.sum())

    if config.overnight_policy == 'wrap':
        duration = duration.where(~overnight, duration + MINUTES_PER_DAY)
    data[config.duration_column] = duration

    if config.overnight_policy == 'drop':
        data = data.loc[~overnight]

    if n_overnight:
        logger.info(f"{n_overnight:,} overnight flights (negative duration) handled with "
                    f"policy '{config.overnight_policy}'")

    raw_fields = [config.arrival_field, config.departure_field, 'minute']
    data = data.drop(columns=[c for c in raw_fields if c in data.columns])
    return data.reset_index(drop=True), {'overnight_rows': n_overnight}


def label_target(df: pd.DataFrame, config: FeatureConfig) -> pd.DataFrame:
    """
    Turn the arrival delay into the two-level target.

    A numeric delay above `delay_threshold_minutes` becomes the positive
    label. An already-categorical target must only hold the two labels.
    """
    require_columns(df, [config.target], 'label_target')
    data = df.copy()
    target = data[config.target]

    if pd.api.types.is_numeric_dtype(target):
        data[config.target] = np.where(
            target > config.delay_threshold_minutes,
            config.positive_label,
            config.negative_label,
        )
    else:
        levels = set(target.dropna().unique())
        unknown = levels - {config.positive_label, config.negative_label}
        if unknown:
            raise ValueError(f"Target '{config.target}' has unexpected levels: {sorted(unknown)}")

    return data


def extract_features(df: pd.DataFrame, config: FeatureConfig) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """Duration feature plus target labelling for the cleaned flight table."""
    data, counts = add_scheduled_duration(df, config)
    data = label_target(data, config)
    return data, counts
