"""
Forest hyperparameter search and decision-threshold sweep.
"""

import logging
from dataclasses import dataclass, replace
from itertools import product
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from .config import ForestConfig, TuningConfig
from .evaluation import evaluate, metrics_from_counts, ConfusionCounts
from .models import ForestClassifier

logger = logging.getLogger(__name__)


@dataclass
class ForestSearchResult:
    results: pd.DataFrame
    best_params: Dict[str, int]
    best_score: float
    best_model: ForestClassifier


def tune_forest(
    X_train: pd.DataFrame,
    y_train,
    X_val: pd.DataFrame,
    y_val,
    base_config: ForestConfig,
    tuning: TuningConfig,
    seed: int = 42,
    show_progress: bool = False,
) -> ForestSearchResult:
    """
    Grid over per-split feature count and tree count.

    Each candidate is refit on the training rows and scored by validation
    accuracy, or by out-of-bag accuracy when `tuning.selection == 'oob'`
    (the validation rows are then left untouched). Feature counts above
    the number of columns are skipped.
    """
    n_features = X_train.shape[1]
    grid = [m for m in tuning.max_features_grid if 1 <= m <= n_features]
    if not grid:
        raise ValueError(f"No max_features candidate within 1..{n_features}: {tuning.max_features_grid}")

    combinations = list(product(grid, tuning.n_estimators_grid))
    rows = []
    best_score = -np.inf
    best_params = None
    best_model = None

    for max_features, n_estimators in tqdm(combinations, desc='forest grid', disable=not show_progress):
        params = {'max_features': int(max_features), 'n_estimators': int(n_estimators)}
        config = replace(base_config, oob_score=base_config.oob_score or tuning.selection == 'oob', **params)
        model = ForestClassifier(config, seed=seed).fit(X_train, y_train)

        val_accuracy = float(np.mean(model.predict(X_val) == np.asarray(y_val)))
        oob = model.oob_score_
        score = oob if tuning.selection == 'oob' else val_accuracy

        rows.append({**params, 'val_accuracy': val_accuracy, 'oob_accuracy': oob, 'score': score})
        logger.info(f"Forest {params}: val_accuracy={val_accuracy:.4f} oob={oob}")

        if score > best_score:
            best_score = score
            best_params = params
            best_model = model

    logger.info(f"Best forest params ({tuning.selection}): {best_params} score={best_score:.4f}")
    return ForestSearchResult(
        results=pd.DataFrame(rows),
        best_params=best_params,
        best_score=float(best_score),
        best_model=best_model,
    )


def threshold_grid(start: float = 0.30, stop: float = 0.70, step: float = 0.01) -> np.ndarray:
    """Inclusive, rounded grid of cutoffs."""
    n_steps = int(round((stop - start) / step))
    return np.round(start + step * np.arange(n_steps + 1), 10)


def sweep_thresholds(
    y_true,
    proba: np.ndarray,
    positive,
    negative,
    thresholds: Optional[Sequence[float]] = None,
    tuning: Optional[TuningConfig] = None,
) -> pd.DataFrame:
    """
    Recompute every metric for each cutoff t, predicting positive when proba > t.

    Args:
        y_true: True labels
        proba: Predicted probability of the positive label
        positive: Positive label
        negative: Negative label
        thresholds: Explicit cutoffs; otherwise the grid from `tuning`

    Returns:
        One row per threshold with counts and metrics, in threshold order
    """
    if thresholds is None:
        tuning = tuning or TuningConfig()
        thresholds = threshold_grid(tuning.threshold_start, tuning.threshold_stop, tuning.threshold_step)

    y_true = np.asarray(y_true)
    proba = np.asarray(proba, dtype=float)
    is_positive = y_true == positive

    rows = []
    for t in thresholds:
        predicted_positive = proba > t
        counts = ConfusionCounts(
            tp=int(np.sum(predicted_positive & is_positive)),
            fp=int(np.sum(predicted_positive & ~is_positive)),
            tn=int(np.sum(~predicted_positive & ~is_positive)),
            fn=int(np.sum(~predicted_positive & is_positive)),
        )
        rows.append({'threshold': float(t), **metrics_from_counts(counts).as_dict()})

    return pd.DataFrame(rows).sort_values('threshold').reset_index(drop=True)


def select_threshold(sweep: pd.DataFrame, tie_tolerance: float = 1e-9) -> pd.Series:
    """
    Row with the highest mean score.

    Rows within `tie_tolerance` of the best are near-ties; among them the
    threshold closest to 0.5 wins, then the lower threshold.
    """
    if sweep.empty:
        raise ValueError("Threshold sweep is empty")
    best = sweep['mean_score'].max()
    candidates = sweep[sweep['mean_score'] >= best - tie_tolerance].copy()
    candidates['distance'] = (candidates['threshold'] - 0.5).abs().round(10)
    chosen = candidates.sort_values(['distance', 'threshold']).iloc[0]
    return chosen.drop(labels='distance')


def evaluate_at_threshold(y_true, proba: np.ndarray, threshold: float, positive, negative):
    """Metrics of the positive-probability vector cut at one threshold."""
    predicted = np.where(np.asarray(proba) > threshold, positive, negative)
    return evaluate(y_true, predicted, positive, negative)
