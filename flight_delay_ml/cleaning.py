"""
Missing-value policies and zero-information column pruning.

Every column that still holds missing values after pruning must be covered
by a policy: a per-column override or the table default. Columns with no
policy stop the run instead of leaking NaNs into model training.

Policies:
- drop_row: delete incomplete rows, bounded by `max_row_loss`
- impute_median: replace missing cells with the column median
- drop_column: delete the column outright
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

import numpy as np
import pandas as pd

from .config import TablePolicy
from .errors import ExcessiveMissingnessError, MissingValuePolicyError

logger = logging.getLogger(__name__)

DROP_ROW = 'drop_row'
IMPUTE_MEDIAN = 'impute_median'
DROP_COLUMN = 'drop_column'


@dataclass
class CleaningReport:
    """What cleaning did to one table."""

    table: str
    rows_in: int
    rows_out: int = 0
    dropped_columns: Dict[str, str] = field(default_factory=dict)
    imputed_cells: Dict[str, int] = field(default_factory=dict)
    medians: Dict[str, float] = field(default_factory=dict)
    dropped_key_rows: int = 0

    @property
    def dropped_rows(self) -> int:
        return self.rows_in - self.rows_out

    def log(self):
        logger.info(f"[{self.table}] rows: {self.rows_in:,} -> {self.rows_out:,} "
                    f"({self.dropped_rows:,} dropped)")
        for column, reason in self.dropped_columns.items():
            logger.info(f"[{self.table}] dropped column '{column}': {reason}")
        for column, count in self.imputed_cells.items():
            logger.info(f"[{self.table}] imputed {count:,} cells of '{column}' "
                        f"with median {self.medians[column]:.4g}")


def missing_value_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Null count and percentage for every column that has nulls, worst first."""
    null_counts = df.isna().sum()
    null_counts = null_counts[null_counts > 0]
    summary = pd.DataFrame({
        'column': null_counts.index,
        'null_count': null_counts.values,
        'null_pct': (null_counts.values * 100 / max(len(df), 1)).round(2),
    })
    return summary.sort_values('null_pct', ascending=False).reset_index(drop=True)


def near_zero_variance_columns(
    df: pd.DataFrame,
    columns: Iterable[str],
    policy: TablePolicy,
) -> Dict[str, str]:
    """
    Flag numeric columns that carry almost no variation.

    A column is flagged when its sample variance is tiny relative to the
    median variance of its numeric peers, or when one value dominates the
    runner-up by more than `freq_ratio_cut` while few distinct values exist.

    Returns:
        Mapping of flagged column to the reason it was flagged
    """
    numeric = [c for c in columns if pd.api.types.is_numeric_dtype(df[c])]
    flagged = {}
    if not numeric:
        return flagged

    variances = df[numeric].var()
    peer_median = float(variances.median())
    use_relative = (
        policy.relative_variance_threshold is not None
        and len(numeric) > 1
        and peer_median > 0
    )

    for column in numeric:
        if use_relative:
            ratio = float(variances[column]) / peer_median
            if ratio < policy.relative_variance_threshold:
                flagged[column] = f"variance {ratio:.2e} of peer median"
                continue

        counts = df[column].value_counts(dropna=True)
        if len(counts) < 2:
            continue
        freq_ratio = counts.iloc[0] / counts.iloc[1]
        unique_pct = 100.0 * len(counts) / counts.sum()
        if freq_ratio > policy.freq_ratio_cut and unique_pct < policy.unique_percent_cut:
            flagged[column] = (f"near-zero variance (freq ratio {freq_ratio:.1f}, "
                               f"{unique_pct:.2f}% unique)")

    return flagged


def prune_columns(
    df: pd.DataFrame,
    policy: TablePolicy,
    protected: Iterable[str] = (),
) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """
    Remove zero-information columns.

    Protected columns (join keys, the target, raw fields later stages need)
    are never pruned.

    Returns:
        (pruned table, mapping of dropped column to reason)
    """
    protected = set(protected)
    dropped = {}

    for column in policy.drop_columns:
        if column in df.columns and column not in protected:
            dropped[column] = 'not a modelling feature'

    candidates = [c for c in df.columns if c not in protected and c not in dropped]

    if policy.prune_constant:
        for column in candidates:
            if df[column].nunique(dropna=True) <= 1:
                dropped[column] = 'single distinct value'

    if policy.identifier_ratio is not None and len(df) > 0:
        for column in candidates:
            if column in dropped or pd.api.types.is_numeric_dtype(df[column]):
                continue
            ratio = df[column].nunique(dropna=True) / len(df)
            if ratio > policy.identifier_ratio:
                dropped[column] = f"identifier-like ({ratio:.0%} distinct)"

    remaining = [c for c in candidates if c not in dropped]
    dropped.update(near_zero_variance_columns(df, remaining, policy))

    return df.drop(columns=list(dropped)), dropped


def _columns_over_missing_threshold(
    df: pd.DataFrame,
    policy: TablePolicy,
    protected: Iterable[str],
) -> Dict[str, str]:
    dropped = {}
    protected = set(protected)
    missing_fraction = df.isna().mean()

    for column, fraction in missing_fraction.items():
        if column in protected:
            continue
        if policy.column_policies.get(column) == DROP_COLUMN:
            dropped[column] = 'drop_column policy'
        elif policy.max_missing_fraction is not None and fraction > policy.max_missing_fraction:
            dropped[column] = f"{fraction:.1%} missing"
    return dropped


def resolve_policies(df: pd.DataFrame, policy: TablePolicy, table: str) -> Dict[str, str]:
    """
    Map every column with missing values to its policy.

    Raises:
        MissingValuePolicyError: if any such column has no policy
    """
    with_missing = df.columns[df.isna().any()].tolist()
    resolved = {}
    unassigned = []
    for column in with_missing:
        column_policy = policy.column_policies.get(column, policy.default)
        if column_policy is None:
            unassigned.append(column)
        else:
            resolved[column] = column_policy
    if unassigned:
        raise MissingValuePolicyError(table, unassigned)
    return resolved


def clean_table(
    df: pd.DataFrame,
    policy: TablePolicy,
    table: str,
    protected: Iterable[str] = (),
) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Apply a table's cleaning policy.

    Args:
        df: Table to clean (not modified)
        policy: The table's policy
        table: Table name used in reports and errors
        protected: Columns exempt from column deletion and pruning; they are
            never imputed, so their incomplete rows are dropped instead

    Returns:
        (cleaned table with no missing values, report)
    """
    protected = list(protected)
    report = CleaningReport(table=table, rows_in=len(df))

    over_threshold = _columns_over_missing_threshold(df, policy, protected)
    data = df.drop(columns=list(over_threshold))
    report.dropped_columns.update(over_threshold)

    data, pruned = prune_columns(data, policy, protected)
    report.dropped_columns.update(pruned)

    resolved = resolve_policies(data, policy, table)

    # Protected columns (join keys, target) are never imputed
    key_cols = [c for c, p in resolved.items() if p == IMPUTE_MEDIAN and c in protected]
    impute_cols = [c for c, p in resolved.items() if p == IMPUTE_MEDIAN and c not in protected]
    row_cols = [c for c, p in resolved.items() if p == DROP_ROW] + key_cols

    if key_cols:
        report.dropped_key_rows = int(data[key_cols].isna().any(axis=1).sum())
        logger.warning(f"[{table}] dropping {report.dropped_key_rows:,} rows with missing "
                       f"protected columns {key_cols}")

    if impute_cols:
        data = data.copy()
        for column in impute_cols:
            if not pd.api.types.is_numeric_dtype(data[column]):
                raise MissingValuePolicyError(table, [column])
            median = float(data[column].median())
            if np.isnan(median):
                raise MissingValuePolicyError(table, [column])
            report.imputed_cells[column] = int(data[column].isna().sum())
            report.medians[column] = median
            data[column] = data[column].fillna(median)

    if row_cols:
        incomplete = data[row_cols].isna().any(axis=1)
        lost = float(incomplete.mean()) if len(data) else 0.0
        if policy.max_row_loss is not None and lost > policy.max_row_loss:
            raise ExcessiveMissingnessError(table, lost, policy.max_row_loss)
        data = data.loc[~incomplete]

    residual = data.columns[data.isna().any()].tolist()
    if residual:
        raise MissingValuePolicyError(table, residual)

    report.rows_out = len(data)
    report.log()
    return data.reset_index(drop=True), report
