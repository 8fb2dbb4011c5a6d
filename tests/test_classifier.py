import joblib
import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LogisticRegression

from cogbox.classifier.engine import StateClassifier
from cogbox.classifier.models import LABEL_MAPPING, CognitiveState
from cogbox.errors import (
    ArtifactError,
    ArtifactNotFoundError,
    LabelMappingError,
    SchemaMismatchError,
    SnapshotError,
)
from cogbox.features.engine import WindowedFeatureExtractor
from cogbox.pipeline.engine import InferencePipeline
from cogbox.rationale.engine import RationaleEngine

from conftest import FEATURE_NAMES, FixedModel, make_bundle


def test_label_mapping_is_fixed():
    assert LABEL_MAPPING == {"Optimal": 0, "High Load": 1, "Fatigued": 2, "Attentional Lapse": 3}
    assert CognitiveState.from_label("Fatigued") == CognitiveState.FATIGUED
    assert CognitiveState.ATTENTIONAL_LAPSE.label == "Attentional Lapse"
    with pytest.raises(ValueError):
        CognitiveState.from_label("Sleepy")


def test_load_fitted_artifact(artifact_path):
    classifier = StateClassifier.load(artifact_path)
    assert classifier.feature_names == FEATURE_NAMES
    prediction = classifier.predict(dict(zip(FEATURE_NAMES, [4.0, 0.5, 2.0, 0.01, 4.0])))
    assert sum(prediction.probabilities.values()) == pytest.approx(1.0)
    assert prediction.state in LABEL_MAPPING
    assert prediction.confidence == max(prediction.probabilities.values())
    assert classifier.describe()["meta"] == {"source": "fixture"}


def test_prediction_is_argmax_of_probabilities(fixed_classifier):
    prediction = fixed_classifier.predict(dict.fromkeys(FEATURE_NAMES, 1.0))
    assert prediction.state == "High Load"
    assert prediction.ordinal == 1
    assert prediction.confidence == pytest.approx(0.7)


def test_missing_artifact(tmp_path):
    with pytest.raises(ArtifactNotFoundError):
        StateClassifier.load(str(tmp_path / "nope.joblib"))


def test_artifact_missing_keys(tmp_path):
    path = str(tmp_path / "bad.joblib")
    joblib.dump({"model": FixedModel()}, path)
    with pytest.raises(ArtifactError):
        StateClassifier.load(path)


def test_wrong_label_mapping_is_rejected():
    swapped = dict(LABEL_MAPPING, Fatigued=3, **{"Attentional Lapse": 2})
    with pytest.raises(LabelMappingError):
        StateClassifier.from_bundle(make_bundle(FixedModel(), labels=swapped))
    with pytest.raises(LabelMappingError):
        StateClassifier.from_bundle(make_bundle(FixedModel(), n_classes=3))


def test_model_without_predict_proba():
    with pytest.raises(ArtifactError):
        StateClassifier.from_bundle(make_bundle(object()))


def test_model_input_width_must_match_feature_names():
    with pytest.raises(SchemaMismatchError):
        StateClassifier.from_bundle(make_bundle(FixedModel(n_features=4)))


def test_schema_with_extra_feature_fails_pipeline_construction(series_map):
    # artifact expects five inputs, pipeline is configured with four of them
    classifier = StateClassifier.from_bundle(make_bundle(FixedModel()))
    extractor = WindowedFeatureExtractor(WindowedFeatureExtractor().features[:4])
    with pytest.raises(SchemaMismatchError):
        InferencePipeline(series_map, extractor, classifier, RationaleEngine())


def test_feature_order_must_match():
    classifier = StateClassifier.from_bundle(make_bundle(FixedModel()))
    with pytest.raises(SchemaMismatchError):
        classifier.validate_schema(list(reversed(FEATURE_NAMES)))
    classifier.validate_schema(FEATURE_NAMES)


def test_bad_probabilities_are_a_data_error():
    classifier = StateClassifier.from_bundle(make_bundle(FixedModel(probs=(0.5, 0.5, 0.5, 0.5))))
    with pytest.raises(SnapshotError):
        classifier.predict(dict.fromkeys(FEATURE_NAMES, 1.0))


def test_undefined_features_are_a_data_error(fixed_classifier):
    values = dict.fromkeys(FEATURE_NAMES, 1.0)
    values[FEATURE_NAMES[0]] = float("nan")
    with pytest.raises(SnapshotError):
        fixed_classifier.predict(values)
    with pytest.raises(SnapshotError):
        fixed_classifier.predict({FEATURE_NAMES[0]: 1.0})


def test_predict_batch(fixed_classifier):
    predictions = fixed_classifier.predict_batch(np.ones((3, 5)))
    assert [p.state for p in predictions] == ["High Load"] * 3


def _fit_on_frame(columns, seed=0):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.standard_normal((200, len(FEATURE_NAMES))), columns=FEATURE_NAMES)
    y = np.arange(200) % 4
    X[FEATURE_NAMES[0]] += y
    return LogisticRegression(max_iter=500).fit(X[columns], y)


def test_model_fit_on_reordered_columns_is_rejected():
    model = _fit_on_frame(list(reversed(FEATURE_NAMES)))
    with pytest.raises(SchemaMismatchError):
        StateClassifier.from_bundle(make_bundle(model))


def test_model_fit_on_named_columns_predicts_in_schema_order():
    model = _fit_on_frame(FEATURE_NAMES)
    classifier = StateClassifier.from_bundle(make_bundle(model))
    rows = np.random.default_rng(1).standard_normal((10, len(FEATURE_NAMES)))
    expected = model.predict_proba(pd.DataFrame(rows, columns=FEATURE_NAMES))
    assert classifier.predict_proba(rows) == pytest.approx(expected)
