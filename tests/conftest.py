import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LogisticRegression

from cogbox.classifier.engine import StateClassifier
from cogbox.classifier.models import LABEL_MAPPING
from cogbox.classifier.training import save_artifact
from cogbox.config import DEFAULT_CHANNELS, Settings
from cogbox.data.models import Series
from cogbox.features.engine import WindowedFeatureExtractor
from cogbox.features.models import DEFAULT_FEATURES
from cogbox.pipeline.engine import InferencePipeline
from cogbox.rationale.engine import RationaleEngine

FEATURE_NAMES = [f.name for f in DEFAULT_FEATURES]


class FixedModel:
    """predict_proba stand-in returning the same distribution for every row."""

    classes_ = np.arange(4)

    def __init__(self, probs=(0.1, 0.7, 0.1, 0.1), n_features=5):
        self.probs = np.asarray(probs, dtype=float)
        self.n_features_in_ = n_features

    def predict_proba(self, X):
        X = np.asarray(X)
        return np.tile(self.probs, (X.shape[0], 1))


def make_series(owner_id="1", n=60, seed=0, labels=True):
    rng = np.random.default_rng(seed)
    channels = {
        "pupil_diameter_mm": 4.0 + 0.2 * rng.standard_normal(n),
        "grip_force_newtons": 12.0 + 0.5 * rng.standard_normal(n),
        "instrument_tremor_hz": 2.0 + 0.1 * rng.standard_normal(n),
    }
    return Series(
        owner_id=owner_id,
        t=np.arange(1, n + 1),
        channels=channels,
        labels=np.array(["Optimal"] * n, dtype=object) if labels else None,
    )


def make_bundle(model, feature_names=None, labels=None, n_classes=4):
    return {
        "model": model,
        "feature_names": list(feature_names or FEATURE_NAMES),
        "n_classes": n_classes,
        "labels": dict(labels or LABEL_MAPPING),
        "meta": {},
    }


def fit_logistic(n_features=5, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((200, n_features))
    y = np.arange(200) % 4
    X[:, 0] += y
    return LogisticRegression(max_iter=500).fit(X, y)


@pytest.fixture
def series_map():
    return {"1": make_series("1", seed=1), "2": make_series("2", seed=2)}


@pytest.fixture
def fixed_classifier():
    return StateClassifier.from_bundle(make_bundle(FixedModel()))


@pytest.fixture
def pipeline(series_map, fixed_classifier):
    return InferencePipeline(
        series_map,
        WindowedFeatureExtractor(),
        fixed_classifier,
        RationaleEngine(),
    )


@pytest.fixture
def artifact_path(tmp_path):
    path = str(tmp_path / "model.joblib")
    save_artifact(fit_logistic(), FEATURE_NAMES, path, meta={"source": "fixture"})
    return path


@pytest.fixture
def raw_csv(tmp_path):
    frames = []
    for owner in ("1", "2"):
        s = make_series(owner, n=60, seed=int(owner))
        frame = pd.DataFrame({"surgeon_id": int(owner), "timestamp": s.t})
        for name in DEFAULT_CHANNELS:
            frame[name] = s.channels[name]
        frame["cognitive_state"] = "Optimal"
        frames.append(frame)
    path = tmp_path / "raw.csv"
    pd.concat(frames, ignore_index=True).to_csv(path, index=False)
    return str(path)


@pytest.fixture
def settings(raw_csv, artifact_path):
    return Settings(
        data_path=raw_csv,
        model_path=artifact_path,
        default_speed=10,
        tick_period=3600.0,
    )
