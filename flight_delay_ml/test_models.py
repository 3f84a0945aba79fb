"""
Tests for the classifier variants behind the shared capability.
"""

import numpy as np
import pandas as pd
import pytest

from .config import ForestConfig, KNNConfig, ModelConfig, NetworkConfig
from .errors import DegenerateTrainingFoldError
from .models import (
    MODEL_REGISTRY,
    BaselineClassifier,
    ForestClassifier,
    KNNClassifier,
    NetworkClassifier,
    create_classifier,
    load_classifier,
)

POS, NEG = 'Delay', 'Not Delay'


def _data(n=60, seed=0):
    rng = np.random.default_rng(seed)
    y = np.array([POS, NEG] * (n // 2))
    X = pd.DataFrame({
        'duration': np.where(y == POS, 200.0, 100.0) + rng.normal(0, 10, n),
        'temp': rng.normal(50, 10, n),
    })
    return X, pd.Series(y)


@pytest.mark.parametrize('name', ['baseline', 'knn', 'forest'])
def test_variants_share_the_capability(name):
    X, y = _data()
    config = ModelConfig(forest=ForestConfig(n_estimators=20))
    model = create_classifier(name, config, seed=1).fit(X, y)

    proba = model.predict_proba(X)
    assert proba.shape == (len(X), 2)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert list(model.classes_) == [POS, NEG]
    assert set(model.predict(X)) <= {POS, NEG}
    assert model.positive_proba(X, POS).shape == (len(X),)


def test_unknown_model_name():
    with pytest.raises(ValueError):
        create_classifier('svm')
    assert set(MODEL_REGISTRY) == {'baseline', 'knn', 'forest', 'network'}


def test_single_level_fold_is_degenerate():
    X, _ = _data(10)
    for model in (KNNClassifier(), ForestClassifier(ForestConfig(n_estimators=5)), BaselineClassifier()):
        with pytest.raises(DegenerateTrainingFoldError):
            model.fit(X, [NEG] * len(X))


def test_predict_before_fit():
    X, _ = _data(10)
    with pytest.raises(RuntimeError):
        KNNClassifier().predict(X)


def test_knn_default_neighbors():
    X, y = _data(50)
    model = KNNClassifier().fit(X, y)
    assert model.n_neighbors_ == 7
    assert KNNClassifier.default_neighbors(1) == 1

    capped = KNNClassifier(KNNConfig(n_neighbors=100)).fit(X[:8], y[:8])
    assert capped.n_neighbors_ == 8


def test_knn_learns_separable_signal():
    X, y = _data(seed=0)
    X_new, y_new = _data(seed=1)
    model = KNNClassifier().fit(X, y)
    assert np.mean(model.predict(X_new) == y_new.to_numpy()) >= 0.9


def test_baseline_predicts_majority():
    X, _ = _data(10)
    y = [NEG] * 7 + [POS] * 3
    model = BaselineClassifier().fit(X, y)
    assert set(model.predict(X)) == {NEG}


def test_forest_importance_and_oob():
    X, y = _data(80)
    model = ForestClassifier(ForestConfig(n_estimators=50, oob_score=True), seed=0).fit(X, y)

    importance = model.feature_importance()
    assert importance.index[0] == 'duration'
    assert importance.sum() == pytest.approx(1.0)
    assert 0.0 <= model.oob_score_ <= 1.0

    no_oob = ForestClassifier(ForestConfig(n_estimators=5, oob_score=False)).fit(X, y)
    assert no_oob.oob_score_ is None


def test_forest_is_reproducible_for_a_seed():
    X, y = _data()
    first = ForestClassifier(ForestConfig(n_estimators=10), seed=5).fit(X, y).predict_proba(X)
    second = ForestClassifier(ForestConfig(n_estimators=10), seed=5).fit(X, y).predict_proba(X)
    assert np.array_equal(first, second)


def test_save_and_load_sklearn_variant(tmp_path):
    X, y = _data()
    model = ForestClassifier(ForestConfig(n_estimators=10)).fit(X, y)
    path = str(tmp_path / 'forest.joblib')
    model.save(path)

    loaded = load_classifier(path)
    assert np.array_equal(loaded.predict_proba(X), model.predict_proba(X))


def test_network_trains_and_normalises_outputs(tmp_path):
    X, y = _data(40)
    config = NetworkConfig(hidden_units=[8, 4], epochs=2, batch_size=8)
    model = NetworkClassifier(config, seed=0).fit(X, y)

    proba = model.predict_proba(X)
    assert proba.shape == (40, 2)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert len(model.history_['loss']) == 2

    path = str(tmp_path / 'network')
    model.save(path)
    loaded = load_classifier(path)
    assert np.allclose(loaded.predict_proba(X), proba, atol=1e-5)


def test_network_reference_architecture():
    model = NetworkClassifier(NetworkConfig()).build_model(n_features=5, n_classes=2)

    hidden_1, hidden_2, output = (model.get_layer(name) for name in ('hidden_1', 'hidden_2', 'output'))
    assert [hidden_1.units, hidden_2.units, output.units] == [64, 32, 2]
    assert hidden_1.activation.__name__ == 'relu'
    assert hidden_2.activation.__name__ == 'relu'
    assert output.activation.__name__ == 'sigmoid'
    assert len([layer for layer in model.layers if hasattr(layer, 'units')]) == 3


def test_network_is_deterministic_for_a_seed():
    X, y = _data(40)
    first = NetworkClassifier(NetworkConfig(), seed=11).fit(X, y)
    second = NetworkClassifier(NetworkConfig(), seed=11).fit(X, y)

    assert np.allclose(first.predict_proba(X), second.predict_proba(X), atol=1e-6)
    assert first.history_['loss'] == pytest.approx(second.history_['loss'])
    assert len(first.history_['loss']) == 10
