"""
Named-column schema checks applied at stage boundaries.
"""

from typing import Iterable, Sequence

import pandas as pd

from .errors import SchemaMismatchError


def require_columns(df: pd.DataFrame, columns: Iterable[str], stage: str) -> pd.DataFrame:
    """Fail fast when any of `columns` is absent from `df`."""
    missing = set(columns) - set(df.columns)
    if missing:
        raise SchemaMismatchError(stage, missing=missing)
    return df


def forbid_columns(df: pd.DataFrame, columns: Iterable[str], stage: str) -> pd.DataFrame:
    """Fail fast when any of `columns` is still present in `df`."""
    unexpected = set(columns) & set(df.columns)
    if unexpected:
        raise SchemaMismatchError(stage, unexpected=unexpected)
    return df


def require_any(df: pd.DataFrame, alternatives: Sequence[Sequence[str]], stage: str) -> Sequence[str]:
    """Return the first group of columns fully present, or fail listing the first group."""
    for group in alternatives:
        if set(group) <= set(df.columns):
            return group
    raise SchemaMismatchError(stage, missing=set(alternatives[0]) - set(df.columns))


def feature_columns(df: pd.DataFrame, target: str) -> list:
    """Every column except the target, in table order."""
    return [c for c in df.columns if c != target]
