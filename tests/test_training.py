import numpy as np
import pandas as pd
import pytest

from cogbox.classifier.engine import StateClassifier
from cogbox.classifier.models import LABEL_MAPPING
from cogbox.classifier.training import save_artifact, train_classifier
from cogbox.data.simulator import LAPSE_WINDOWS, simulate_series, state_timeline

from conftest import FEATURE_NAMES

TINY_GRID = {"max_iter": [20], "max_depth": [2], "learning_rate": [0.1]}


def _training_frame(n=400, seed=0):
    rng = np.random.default_rng(seed)
    labels = np.array(list(LABEL_MAPPING))[np.arange(n) % 4]
    ordinals = np.arange(n) % 4
    frame = pd.DataFrame(rng.standard_normal((n, len(FEATURE_NAMES))), columns=FEATURE_NAMES)
    frame[FEATURE_NAMES[0]] += 4 * ordinals
    frame["cognitive_state"] = labels
    frame["warmup"] = False
    return frame


def test_state_timeline_phases():
    states = state_timeline(10800)
    assert states[0] == "Optimal"
    assert states[899] == "Optimal"
    assert states[900] == "High Load"
    assert states[6300] == "Fatigued"
    start, end = LAPSE_WINDOWS[0]
    assert set(states[start - 1:end]) == {"Attentional Lapse"}
    assert (states == "Attentional Lapse").sum() == 48


def test_simulator_is_deterministic():
    first = simulate_series(n_owners=2, duration_s=120, seed=7)
    second = simulate_series(n_owners=2, duration_s=120, seed=7)
    pd.testing.assert_frame_equal(first, second)
    assert len(first) == 240
    assert first["pupil_diameter_mm"].notna().all()
    assert (first["instrument_tremor_hz"] >= 0.1).all()


def test_train_classifier_reports_metrics():
    model, report = train_classifier(_training_frame(), FEATURE_NAMES, param_grid=TINY_GRID, cv_folds=2)
    assert report.test_accuracy > 0.8
    assert set(report.per_class) == set(LABEL_MAPPING)
    assert np.array(report.confusion).shape == (4, 4)
    assert set(report.feature_importance) == set(FEATURE_NAMES)
    assert report.meta["best_parameters"] == {"max_iter": 20, "max_depth": 2, "learning_rate": 0.1}
    assert report.n_train + report.n_test == 400


def test_train_drops_warmup_rows():
    frame = _training_frame()
    frame.loc[:39, "warmup"] = True
    _, report = train_classifier(frame, FEATURE_NAMES, param_grid=TINY_GRID, cv_folds=2)
    assert report.n_train + report.n_test == 360


def test_train_rejects_missing_states():
    frame = _training_frame()
    frame = frame[frame["cognitive_state"] != "Attentional Lapse"]
    with pytest.raises(ValueError):
        train_classifier(frame, FEATURE_NAMES, param_grid=TINY_GRID, cv_folds=2)


def test_balanced_training_artifact_loads(tmp_path):
    model, report = train_classifier(
        _training_frame(), FEATURE_NAMES, param_grid=TINY_GRID, cv_folds=2, balance_classes=True
    )
    path = save_artifact(model, FEATURE_NAMES, str(tmp_path / "out" / "model.joblib"), meta=report.meta)
    classifier = StateClassifier.load(path)
    assert classifier.schema.meta["balance_classes"] is True
    prediction = classifier.predict(dict.fromkeys(FEATURE_NAMES, 0.0))
    assert sum(prediction.probabilities.values()) == pytest.approx(1.0)
