"""
Confusion-matrix metrics for the binary delay target.

Zero-denominator convention: precision, sensitivity and specificity are
ZERO_DIVISION_VALUE (0.0) when their denominator is zero, e.g. precision
when nothing was predicted positive. Accuracy of an empty set is also 0.0,
so its error rate is 1.0 and accuracy + error rate = 1 always holds.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Mapping

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix

logger = logging.getLogger(__name__)

ZERO_DIVISION_VALUE = 0.0


def _ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return ZERO_DIVISION_VALUE
    return numerator / denominator


@dataclass(frozen=True)
class ConfusionCounts:
    tp: int
    fp: int
    tn: int
    fn: int

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn

    def as_matrix(self) -> np.ndarray:
        """2x2 matrix, rows = true (negative, positive), columns = predicted."""
        return np.array([[self.tn, self.fp], [self.fn, self.tp]])


@dataclass(frozen=True)
class ClassificationMetrics:
    counts: ConfusionCounts
    accuracy: float
    precision: float
    sensitivity: float
    specificity: float

    @property
    def error_rate(self) -> float:
        return 1.0 - self.accuracy

    @property
    def mean_score(self) -> float:
        """Mean of the four headline metrics, used to pick a decision threshold."""
        return (self.accuracy + self.precision + self.sensitivity + self.specificity) / 4.0

    def as_dict(self) -> Dict[str, float]:
        result = asdict(self.counts)
        result.update({
            'accuracy': self.accuracy,
            'error_rate': self.error_rate,
            'precision': self.precision,
            'sensitivity': self.sensitivity,
            'specificity': self.specificity,
            'mean_score': self.mean_score,
        })
        return result


def confusion_counts(y_true, y_pred, positive, negative) -> ConfusionCounts:
    """Count outcomes with a fixed (negative, positive) label order."""
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    unknown = (set(np.unique(y_true)) | set(np.unique(y_pred))) - {positive, negative}
    if unknown:
        raise ValueError(f"Labels outside ({negative!r}, {positive!r}): {sorted(map(str, unknown))}")

    if len(y_true) == 0:
        return ConfusionCounts(0, 0, 0, 0)
    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[negative, positive]).ravel()
    return ConfusionCounts(tp=int(tp), fp=int(fp), tn=int(tn), fn=int(fn))


def metrics_from_counts(counts: ConfusionCounts) -> ClassificationMetrics:
    return ClassificationMetrics(
        counts=counts,
        accuracy=_ratio(counts.tp + counts.tn, counts.total),
        precision=_ratio(counts.tp, counts.tp + counts.fp),
        sensitivity=_ratio(counts.tp, counts.tp + counts.fn),
        specificity=_ratio(counts.tn, counts.tn + counts.fp),
    )


def evaluate(y_true, y_pred, positive, negative) -> ClassificationMetrics:
    """Accuracy, precision, sensitivity and specificity of predicted labels."""
    return metrics_from_counts(confusion_counts(y_true, y_pred, positive, negative))


def compare_models(
    models: Mapping[str, object],
    X: pd.DataFrame,
    y,
    positive,
    negative,
) -> pd.DataFrame:
    """One row of validation metrics per fitted model."""
    rows = []
    for name, model in models.items():
        metrics = evaluate(y, model.predict(X), positive, negative)
        rows.append({'model': name, **metrics.as_dict()})
        logger.info(f"{name}: accuracy={metrics.accuracy:.4f} precision={metrics.precision:.4f} "
                    f"sensitivity={metrics.sensitivity:.4f} specificity={metrics.specificity:.4f}")
    return pd.DataFrame(rows)
