"""
Figures for a pipeline run: confusion matrix, threshold trade-off,
forest feature importance and local explanations.

Every function saves the figure to `save_path` and closes it.
"""

import logging
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .evaluation import ConfusionCounts
from .explain import Explanation

logger = logging.getLogger(__name__)


def _save(fig, save_path: str):
    fig.tight_layout()
    fig.savefig(save_path)
    plt.close(fig)
    logger.info(f"Figure saved to: {save_path}")


def plot_confusion_matrix(
    counts: ConfusionCounts,
    labels: Sequence[str],
    save_path: str,
    title: str = 'Confusion Matrix',
):
    """Heatmap with counts and share of total; `labels` are (negative, positive)."""
    cm = counts.as_matrix()
    total = max(cm.sum(), 1)
    annotations = np.asarray(
        [f"{item:0.0f}\n{item / total:.2%}" for item in cm.flatten()]
    ).reshape(2, 2)

    fig, ax = plt.subplots(figsize=(6, 4))
    sns.heatmap(cm, annot=annotations, fmt="", cmap="Blues",
                xticklabels=labels, yticklabels=labels, ax=ax)
    ax.set_title(title)
    ax.set_ylabel("True label")
    ax.set_xlabel("Predicted label")
    _save(fig, save_path)


def plot_threshold_sweep(sweep: pd.DataFrame, chosen_threshold: float, save_path: str):
    """Metric curves across thresholds with the chosen cutoff marked."""
    fig, ax = plt.subplots(figsize=(8, 5))
    for metric in ['accuracy', 'precision', 'sensitivity', 'specificity', 'mean_score']:
        style = '--' if metric == 'mean_score' else '-'
        ax.plot(sweep['threshold'], sweep[metric], style, label=metric)
    ax.axvline(chosen_threshold, color='grey', linestyle=':', label=f'chosen = {chosen_threshold:.2f}')
    ax.set_xlabel('Threshold')
    ax.set_ylabel('Score')
    ax.set_title('Decision Threshold Sweep')
    ax.legend()
    ax.grid(True, alpha=0.3)
    _save(fig, save_path)


def plot_feature_importance(importance: pd.Series, save_path: str, title: str = 'Forest Feature Importance'):
    """Horizontal bar chart, most important feature on top."""
    fig, ax = plt.subplots(figsize=(6, max(3, 0.4 * len(importance))))
    sns.barplot(x=importance.values, y=importance.index, ax=ax, color='steelblue')
    ax.set_title(title)
    ax.set_xlabel(importance.name or 'importance')
    _save(fig, save_path)


def plot_explanations(explanations: Sequence[Explanation], save_path: str):
    """One panel per explained observation; green supports the label, red contradicts it."""
    n = len(explanations)
    if n == 0:
        return
    fig, axs = plt.subplots(1, n, figsize=(5 * n, 4), squeeze=False)
    for ax, explanation in zip(axs[0], explanations):
        contributions = explanation.contributions.iloc[::-1]
        colors = ['tab:green' if v >= 0 else 'tab:red' for v in contributions.values]
        ax.barh(contributions.index, contributions.values, color=colors)
        ax.set_title(f"Row {explanation.row_id}: {explanation.label}\n"
                     f"p={explanation.probability:.2f}, R²={explanation.score:.2f}")
        ax.axvline(0, color='black', linewidth=0.8)
    _save(fig, save_path)
