"""
Class balancing by minority upsampling and the stratified train/validation split.

Upsampling happens before the split, so an upsampled row and its duplicate
can land on both sides. `overlap_count` reports how many validation rows
have an exact copy in training; the pipeline logs it with the split.
"""

import logging
from typing import Tuple

import pandas as pd
from sklearn.utils import resample

from .errors import DegenerateTrainingFoldError
from .schema import require_columns

logger = logging.getLogger(__name__)


def class_counts(df: pd.DataFrame, target: str) -> pd.Series:
    """Row count per target level, largest first."""
    return df[target].value_counts()


def upsample_minority(
    df: pd.DataFrame,
    target: str,
    ratio: float = 1.0,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Resample the minority level with replacement up to `round(ratio * M)` rows.

    Majority rows are kept untouched; the result is shuffled.

    Args:
        df: Table with a two-level target
        target: Target column
        ratio: Minority size as a fraction of the majority size
        seed: Random state for resampling and shuffling

    Raises:
        DegenerateTrainingFoldError: if the target does not have exactly two levels
    """
    require_columns(df, [target], 'upsample_minority')
    counts = class_counts(df, target)
    if len(counts) != 2:
        raise DegenerateTrainingFoldError(counts.index.tolist(), 'balancing')

    majority_label, minority_label = counts.index[0], counts.index[1]
    n_majority = int(counts.iloc[0])
    n_target = max(int(round(ratio * n_majority)), int(counts.iloc[1]))

    majority = df[df[target] == majority_label]
    minority = df[df[target] == minority_label]
    minority_upsampled = resample(
        minority,
        replace=True,
        n_samples=n_target,
        random_state=seed,
    )

    balanced = pd.concat([majority, minority_upsampled])
    balanced = balanced.sample(frac=1.0, random_state=seed).reset_index(drop=True)

    logger.info(f"Upsampled '{minority_label}' from {len(minority):,} to {n_target:,} rows "
                f"('{majority_label}': {n_majority:,})")
    return balanced


def stratified_split(
    df: pd.DataFrame,
    target: str,
    train_fraction: float = 0.70,
    seed: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Send `round(train_fraction * n)` rows of every target level to training.

    The remainder of each level goes to validation, so the two subsets are
    disjoint by row position and together cover the input.

    Returns:
        (train, validation)
    """
    require_columns(df, [target], 'stratified_split')
    data = df.reset_index(drop=True)

    train = data.groupby(target, group_keys=False).sample(frac=train_fraction, random_state=seed)
    validation = data.drop(index=train.index)

    train = train.sample(frac=1.0, random_state=seed).reset_index(drop=True)
    validation = validation.reset_index(drop=True)

    logger.info(f"Split {len(data):,} rows into {len(train):,} train / {len(validation):,} validation")
    return train, validation


def overlap_count(train: pd.DataFrame, validation: pd.DataFrame) -> int:
    """Number of validation rows that have an exact duplicate in training."""
    if train.empty or validation.empty:
        return 0
    train_rows = set(train.itertuples(index=False, name=None))
    return sum(1 for row in validation.itertuples(index=False, name=None) if row in train_rows)
