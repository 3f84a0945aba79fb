"""
Tests for confusion counts and derived metrics.
"""

import numpy as np
import pytest

from .evaluation import (
    ZERO_DIVISION_VALUE,
    ConfusionCounts,
    compare_models,
    confusion_counts,
    evaluate,
    metrics_from_counts,
)

POS, NEG = 'Delay', 'Not Delay'


def test_confusion_counts_fixed_label_order():
    y_true = [POS, POS, NEG, NEG, NEG]
    y_pred = [POS, NEG, NEG, POS, NEG]
    counts = confusion_counts(y_true, y_pred, POS, NEG)

    assert counts == ConfusionCounts(tp=1, fp=1, tn=2, fn=1)
    assert counts.as_matrix().tolist() == [[2, 1], [1, 1]]


def test_metric_values():
    metrics = evaluate([POS, POS, NEG, NEG, NEG], [POS, NEG, NEG, POS, NEG], POS, NEG)

    assert metrics.accuracy == pytest.approx(3 / 5)
    assert metrics.precision == pytest.approx(1 / 2)
    assert metrics.sensitivity == pytest.approx(1 / 2)
    assert metrics.specificity == pytest.approx(2 / 3)
    assert metrics.mean_score == pytest.approx((0.6 + 0.5 + 0.5 + 2 / 3) / 4)


@pytest.mark.parametrize('counts', [
    ConfusionCounts(5, 0, 0, 0),
    ConfusionCounts(0, 3, 0, 2),
    ConfusionCounts(2, 1, 4, 3),
    ConfusionCounts(0, 0, 7, 0),
    ConfusionCounts(0, 0, 0, 0),
])
def test_metric_identities(counts):
    metrics = metrics_from_counts(counts)

    assert metrics.accuracy + metrics.error_rate == pytest.approx(1.0)
    for value in (metrics.precision, metrics.sensitivity, metrics.specificity):
        assert 0.0 <= value <= 1.0


def test_zero_denominators_use_documented_value():
    # Nothing predicted positive and no positives present
    metrics = metrics_from_counts(ConfusionCounts(tp=0, fp=0, tn=4, fn=0))

    assert metrics.precision == ZERO_DIVISION_VALUE
    assert metrics.sensitivity == ZERO_DIVISION_VALUE
    assert metrics.specificity == 1.0

    empty = metrics_from_counts(ConfusionCounts(0, 0, 0, 0))
    assert empty.accuracy == ZERO_DIVISION_VALUE
    assert empty.accuracy + empty.error_rate == 1.0


def test_unknown_labels_rejected():
    with pytest.raises(ValueError):
        confusion_counts([POS, 'Late'], [POS, NEG], POS, NEG)


class _Constant:
    def __init__(self, label):
        self.label = label

    def predict(self, X):
        return np.array([self.label] * len(X))


def test_compare_models_table():
    X = np.zeros((4, 2))
    y = [POS, NEG, NEG, NEG]
    table = compare_models({'always_neg': _Constant(NEG), 'always_pos': _Constant(POS)}, X, y, POS, NEG)

    assert table['model'].tolist() == ['always_neg', 'always_pos']
    assert table['accuracy'].tolist() == pytest.approx([0.75, 0.25])
    assert table.loc[0, 'precision'] == ZERO_DIVISION_VALUE
