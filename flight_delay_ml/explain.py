"""
Post-hoc explanations of individual predictions.

The local explainer perturbs one observation many times, asks the opaque
classifier for the probability of the explained label at every perturbed
point, and fits a proximity-weighted ridge surrogate in standardized
feature space. The surrogate's coefficients times the observation's
standardized values are the signed per-feature contributions; its weighted
R^2 says how much of the opaque model's local behaviour the surrogate
captures. Positive contributions support the explained label, negative
ones contradict it.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.linear_model import Ridge
from sklearn.metrics import pairwise_distances

from .config import ExplainerConfig
from .models import Classifier, ForestClassifier

logger = logging.getLogger(__name__)


@dataclass
class Explanation:
    row_id: object
    label: object
    probability: float
    intercept: float
    local_prediction: float
    score: float
    contributions: pd.Series
    values: pd.Series

    def as_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({
            'feature': self.contributions.index,
            'value': self.values.reindex(self.contributions.index).to_numpy(),
            'contribution': self.contributions.to_numpy(),
        })
        frame.insert(0, 'row_id', self.row_id)
        frame['label'] = self.label
        frame['probability'] = self.probability
        frame['local_prediction'] = self.local_prediction
        frame['score'] = self.score
        return frame


class LocalSurrogateExplainer:
    """Weighted linear surrogate fitted around one observation at a time."""

    def __init__(
        self,
        training_features: pd.DataFrame,
        num_samples: int = 500,
        distance_metric: str = 'euclidean',
        kernel_width: Optional[float] = None,
        num_features: Optional[int] = None,
        ridge_alpha: float = 1.0,
        seed: int = 42,
    ):
        self.feature_names = list(training_features.columns)
        values = training_features.to_numpy(dtype=float)
        self.mean_ = values.mean(axis=0)
        scale = values.std(axis=0)
        self.scale_ = np.where(scale > 0, scale, 1.0)

        self.num_samples = num_samples
        self.distance_metric = distance_metric
        self.kernel_width = kernel_width or 0.75 * math.sqrt(len(self.feature_names))
        self.num_features = num_features
        self.ridge_alpha = ridge_alpha
        self.rng = np.random.default_rng(seed)

    @classmethod
    def from_config(cls, training_features: pd.DataFrame, config: ExplainerConfig, seed: int = 42):
        return cls(
            training_features,
            num_samples=config.num_samples,
            distance_metric=config.distance_metric,
            kernel_width=config.kernel_width,
            num_features=config.num_features,
            ridge_alpha=config.ridge_alpha,
            seed=seed,
        )

    def kernel(self, distances: np.ndarray) -> np.ndarray:
        """Exponential proximity kernel."""
        return np.sqrt(np.exp(-(distances ** 2) / self.kernel_width ** 2))

    def perturb(self, x: np.ndarray) -> np.ndarray:
        """Gaussian perturbations scaled by the training spread; row 0 is `x` itself."""
        noise = self.rng.normal(size=(self.num_samples, len(x))) * self.scale_
        samples = x + noise
        samples[0] = x
        return samples

    def _select_features(self, scaled: np.ndarray, target: np.ndarray, weights: np.ndarray) -> np.ndarray:
        n_features = scaled.shape[1]
        if self.num_features is None or self.num_features >= n_features:
            return np.arange(n_features)
        full = Ridge(alpha=self.ridge_alpha).fit(scaled, target, sample_weight=weights)
        order = np.argsort(-np.abs(full.coef_))
        return np.sort(order[:self.num_features])

    def explain_instance(self, model: Classifier, observation: pd.Series, label=None, row_id=None) -> Explanation:
        """
        Explain one observation.

        Args:
            model: Fitted classifier queried as a black box
            observation: Feature values keyed by feature name
            label: Label to explain (defaults to the model's prediction)
            row_id: Identifier carried into the explanation
        """
        x = observation[self.feature_names].to_numpy(dtype=float)
        original = pd.DataFrame([x], columns=self.feature_names)
        if label is None:
            label = model.predict(original)[0]

        samples = self.perturb(x)
        target = model.positive_proba(pd.DataFrame(samples, columns=self.feature_names), label)

        scaled = (samples - self.mean_) / self.scale_
        distances = pairwise_distances(scaled, scaled[:1], metric=self.distance_metric).ravel()
        weights = self.kernel(distances)

        selected = self._select_features(scaled, target, weights)
        surrogate = Ridge(alpha=self.ridge_alpha)
        surrogate.fit(scaled[:, selected], target, sample_weight=weights)
        score = float(surrogate.score(scaled[:, selected], target, sample_weight=weights))

        names = [self.feature_names[i] for i in selected]
        contributions = pd.Series(surrogate.coef_ * scaled[0, selected], index=names, name='contribution')
        contributions = contributions.reindex(contributions.abs().sort_values(ascending=False).index)
        local_prediction = float(surrogate.intercept_ + contributions.sum())

        return Explanation(
            row_id=row_id,
            label=label,
            probability=float(target[0]),
            intercept=float(surrogate.intercept_),
            local_prediction=local_prediction,
            score=score,
            contributions=contributions,
            values=pd.Series(x, index=self.feature_names),
        )

    def explain(self, model: Classifier, observations: pd.DataFrame, label=None) -> List[Explanation]:
        """Explain every row of `observations`, keyed by its index."""
        explanations = []
        for row_id, observation in observations.iterrows():
            explanation = self.explain_instance(model, observation, label=label, row_id=row_id)
            logger.info(f"Row {row_id}: '{explanation.label}' p={explanation.probability:.3f} "
                        f"R^2={explanation.score:.3f} top={explanation.contributions.index[0]}")
            explanations.append(explanation)
        return explanations


def explanations_frame(explanations: List[Explanation]) -> pd.DataFrame:
    """Long table: one row per (observation, feature)."""
    if not explanations:
        return pd.DataFrame(columns=['row_id', 'feature', 'value', 'contribution', 'label',
                                     'probability', 'local_prediction', 'score'])
    return pd.concat([e.as_frame() for e in explanations], ignore_index=True)


def tree_attribution_summary(
    forest: ForestClassifier,
    X: pd.DataFrame,
    label,
    max_rows: int = 500,
    seed: int = 42,
) -> pd.Series:
    """Mean absolute SHAP value per feature for one label of a fitted forest."""
    import shap

    if len(X) > max_rows:
        X = X.sample(n=max_rows, random_state=seed)
    X = X[forest.feature_names_]

    explainer = shap.TreeExplainer(forest.estimator_)
    shap_values = explainer.shap_values(X)
    class_index = int(np.flatnonzero(forest.classes_ == label)[0])

    if isinstance(shap_values, list):
        values = np.asarray(shap_values[class_index])
    else:
        values = np.asarray(shap_values)
        if values.ndim == 3:
            values = values[:, :, class_index]

    return pd.Series(
        np.abs(values).mean(axis=0),
        index=forest.feature_names_,
        name='mean_abs_shap',
    ).sort_values(ascending=False)
