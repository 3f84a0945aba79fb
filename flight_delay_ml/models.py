"""
Classifier capability and its interchangeable implementations.

Every variant exposes fit / predict / predict_proba over named-column
DataFrames and string labels, so the pipeline never branches on the model
type. Variants are looked up by name in MODEL_REGISTRY.
"""

import logging
import math
import os
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Dict, List, Optional, Type

import joblib
import numpy as np
import pandas as pd
from sklearn.dummy import DummyClassifier
from sklearn.ensemble import RandomForestClassifier
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .config import ForestConfig, KNNConfig, ModelConfig, NetworkConfig
from .errors import DegenerateTrainingFoldError

logger = logging.getLogger(__name__)


class Classifier(ABC):
    """fit(features, labels) -> predictor, shared by every model variant."""

    name = 'classifier'

    def __init__(self, seed: int = 42):
        self.seed = seed
        self.classes_: Optional[np.ndarray] = None
        self.feature_names_: Optional[List[str]] = None

    def fit(self, X: pd.DataFrame, y) -> 'Classifier':
        y = pd.Series(y).reset_index(drop=True)
        levels = sorted(y.unique())
        if len(levels) < 2:
            raise DegenerateTrainingFoldError(levels, self.name)

        self.feature_names_ = list(X.columns)
        self.classes_ = np.array(levels)
        logger.info(f"Fitting {self.name} on {len(X):,} rows x {X.shape[1]} features")
        self._fit(X.reset_index(drop=True), y)
        return self

    def _check_fitted(self, X: pd.DataFrame) -> pd.DataFrame:
        if self.classes_ is None:
            raise RuntimeError(f"{self.name} classifier is not fitted")
        missing = set(self.feature_names_) - set(X.columns)
        if missing:
            raise ValueError(f"{self.name}: missing feature columns {sorted(missing)}")
        return X[self.feature_names_]

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Class probabilities, columns ordered as `classes_`."""
        return self._predict_proba(self._check_fitted(X))

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        proba = self.predict_proba(X)
        return self.classes_[np.argmax(proba, axis=1)]

    def positive_proba(self, X: pd.DataFrame, positive_label) -> np.ndarray:
        """Probability of one class, for threshold sweeps."""
        matches = np.flatnonzero(self.classes_ == positive_label)
        if len(matches) == 0:
            raise ValueError(f"{positive_label!r} is not one of {list(self.classes_)}")
        return self.predict_proba(X)[:, matches[0]]

    def save(self, path: str):
        joblib.dump(self, path)
        logger.info(f"Saved {self.name} classifier to {path}")

    @abstractmethod
    def _fit(self, X: pd.DataFrame, y: pd.Series):
        ...

    @abstractmethod
    def _predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        ...


class SklearnClassifier(Classifier):
    """Shared plumbing for scikit-learn estimators."""

    def __init__(self, seed: int = 42):
        super().__init__(seed)
        self.estimator_ = None

    @abstractmethod
    def _build_estimator(self, n_rows: int, n_features: int):
        ...

    def _fit(self, X, y):
        self.estimator_ = self._build_estimator(len(X), X.shape[1])
        self.estimator_.fit(X, y)

    def _predict_proba(self, X):
        proba = self.estimator_.predict_proba(X)
        # Column order follows classes_
        order = [list(self.estimator_.classes_).index(c) for c in self.classes_]
        return proba[:, order]


class BaselineClassifier(SklearnClassifier):
    """Majority-vote baseline: always the most frequent training label."""

    name = 'baseline'

    def _build_estimator(self, n_rows, n_features):
        return DummyClassifier(strategy='most_frequent')


class KNNClassifier(SklearnClassifier):
    """
    Standardize, then vote among the k nearest training rows.

    The scaler's centering/scaling parameters are learnt on the training
    rows only and reused for every prediction.
    """

    name = 'knn'

    def __init__(self, config: Optional[KNNConfig] = None, seed: int = 42):
        super().__init__(seed)
        self.config = config or KNNConfig()
        self.n_neighbors_ = None

    @staticmethod
    def default_neighbors(n_rows: int) -> int:
        return max(1, int(round(math.sqrt(n_rows))))

    def _build_estimator(self, n_rows, n_features):
        k = self.config.n_neighbors or self.default_neighbors(n_rows)
        self.n_neighbors_ = min(k, n_rows)
        return Pipeline([
            ('scaler', StandardScaler()),
            ('knn', KNeighborsClassifier(n_neighbors=self.n_neighbors_, metric=self.config.metric)),
        ])


class ForestClassifier(SklearnClassifier):
    """Bootstrap-aggregated decision trees with per-split feature subsets."""

    name = 'forest'

    def __init__(self, config: Optional[ForestConfig] = None, seed: int = 42):
        super().__init__(seed)
        self.config = config or ForestConfig()

    def _build_estimator(self, n_rows, n_features):
        max_features = self.config.max_features
        if max_features is None:
            max_features = 'sqrt'
        else:
            max_features = min(int(max_features), n_features)
        return RandomForestClassifier(
            n_estimators=self.config.n_estimators,
            max_features=max_features,
            oob_score=self.config.oob_score,
            n_jobs=self.config.n_jobs,
            random_state=self.seed,
        )

    @property
    def oob_score_(self) -> Optional[float]:
        if self.estimator_ is None or not self.config.oob_score:
            return None
        return float(self.estimator_.oob_score_)

    def feature_importance(self) -> pd.Series:
        """Mean decrease in impurity per feature, largest first."""
        if self.estimator_ is None:
            raise RuntimeError("forest classifier is not fitted")
        return pd.Series(
            self.estimator_.feature_importances_,
            index=self.feature_names_,
            name='importance',
        ).sort_values(ascending=False)


def create_optimizer(optimizer_name: str, learning_rate: float):
    """Create a Keras optimizer by name."""
    from tensorflow.keras import optimizers

    if optimizer_name.lower() == 'adam':
        return optimizers.Adam(learning_rate=learning_rate)
    elif optimizer_name.lower() == 'adamw':
        return optimizers.AdamW(learning_rate=learning_rate)
    elif optimizer_name.lower() == 'rmsprop':
        return optimizers.RMSprop(learning_rate=learning_rate)
    else:
        raise ValueError(f"Optimizer {optimizer_name} not supported")


class NetworkClassifier(Classifier):
    """
    Small feed-forward network: hidden relu layers, one sigmoid unit per class.

    Labels are one-hot encoded and trained with binary cross-entropy. The two
    sigmoid outputs are independent, so predict_proba rescales them to sum
    to one.
    """

    name = 'network'

    def __init__(self, config: Optional[NetworkConfig] = None, seed: int = 42):
        super().__init__(seed)
        self.config = config or NetworkConfig()
        self.model_ = None
        self.scaler_ = None
        self.history_: Dict[str, list] = {}

    def build_model(self, n_features: int, n_classes: int):
        """Create and compile the Keras model."""
        import tensorflow as tf
        from tensorflow.keras import layers

        model = tf.keras.Sequential(name='flight_delay_mlp')
        model.add(layers.Input(shape=(n_features,)))
        for i, units in enumerate(self.config.hidden_units):
            model.add(layers.Dense(units, activation=self.config.activation, name=f'hidden_{i + 1}'))
        model.add(layers.Dense(n_classes, activation=self.config.output_activation, name='output'))

        model.compile(
            optimizer=create_optimizer(self.config.optimizer, self.config.learning_rate),
            loss=self.config.loss_function,
            metrics=['accuracy'],
        )
        return model

    def _transform(self, X: pd.DataFrame) -> np.ndarray:
        values = X.to_numpy(dtype=np.float32)
        if self.scaler_ is not None:
            values = self.scaler_.transform(values).astype(np.float32)
        return values

    def _fit(self, X, y):
        import tensorflow as tf

        tf.keras.utils.set_random_seed(self.seed)

        self.scaler_ = StandardScaler().fit(X.to_numpy(dtype=np.float32)) if self.config.standardize else None
        features = self._transform(X)
        indices = pd.Categorical(y, categories=self.classes_).codes
        targets = tf.keras.utils.to_categorical(indices, num_classes=len(self.classes_))

        self.model_ = self.build_model(features.shape[1], len(self.classes_))
        history = self.model_.fit(
            features,
            targets,
            epochs=self.config.epochs,
            batch_size=self.config.batch_size,
            validation_split=self.config.validation_split,
            shuffle=True,
            verbose=self.config.verbose,
        )
        self.history_ = {k: [float(v) for v in values] for k, values in history.history.items()}
        logger.info(f"Network final training loss: {self.history_['loss'][-1]:.4f}")

    def _predict_proba(self, X):
        raw = np.asarray(self.model_.predict(self._transform(X), verbose=0), dtype=np.float64)
        totals = raw.sum(axis=1, keepdims=True)
        uniform = np.full_like(raw, 1.0 / raw.shape[1])
        return np.where(totals > 0, raw / np.where(totals > 0, totals, 1.0), uniform)

    def save(self, path: str):
        """Save as a directory: Keras model plus scaler and label metadata."""
        os.makedirs(path, exist_ok=True)
        self.model_.save(os.path.join(path, 'model.keras'))
        joblib.dump({
            'config': asdict(self.config),
            'seed': self.seed,
            'classes': self.classes_,
            'feature_names': self.feature_names_,
            'scaler': self.scaler_,
            'history': self.history_,
        }, os.path.join(path, 'metadata.joblib'))
        logger.info(f"Saved network classifier to {path}")

    @classmethod
    def load(cls, path: str) -> 'NetworkClassifier':
        import tensorflow as tf

        metadata = joblib.load(os.path.join(path, 'metadata.joblib'))
        clf = cls(NetworkConfig(**metadata['config']), seed=metadata['seed'])
        clf.classes_ = metadata['classes']
        clf.feature_names_ = metadata['feature_names']
        clf.scaler_ = metadata['scaler']
        clf.history_ = metadata['history']
        clf.model_ = tf.keras.models.load_model(os.path.join(path, 'model.keras'))
        return clf


MODEL_REGISTRY: Dict[str, Type[Classifier]] = {
    'baseline': BaselineClassifier,
    'knn': KNNClassifier,
    'forest': ForestClassifier,
    'network': NetworkClassifier,
}


def create_classifier(name: str, config: Optional[ModelConfig] = None, seed: int = 42) -> Classifier:
    """Factory function to build a classifier variant by name."""
    if name not in MODEL_REGISTRY:
        raise ValueError(f"Model {name} not supported. Available: {list(MODEL_REGISTRY)}")

    config = config or ModelConfig()
    cls = MODEL_REGISTRY[name]
    if cls is BaselineClassifier:
        return cls(seed=seed)
    return cls(getattr(config, name), seed=seed)


def load_classifier(path: str) -> Classifier:
    """Load a classifier written by `Classifier.save`."""
    if os.path.isdir(path):
        return NetworkClassifier.load(path)
    return joblib.load(path)
