import logging
import os
from typing import Any, Dict, List, Mapping, Union

import joblib
import numpy as np
import pandas as pd

from cogbox.classifier.models import (
    LABEL_MAPPING,
    N_STATES,
    ArtifactSchema,
    CognitiveState,
    Prediction,
)
from cogbox.errors import (
    ArtifactError,
    ArtifactNotFoundError,
    LabelMappingError,
    SchemaMismatchError,
    SnapshotError,
)
from cogbox.features.models import FeatureVector

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("model", "feature_names", "n_classes", "labels")


class StateClassifier:
    """
    Wraps a trained artifact behind predict(FeatureVector) -> Prediction.

    The artifact is a joblib bundle: {"model", "feature_names", "n_classes",
    "labels", "meta"}. The model must expose predict_proba with one column per
    ordinal 0..3. Everything about the bundle is checked once, at load time.
    """

    def __init__(self, model: Any, schema: ArtifactSchema, tolerance: float = 1e-6):
        self.model = model
        self.schema = schema
        self.tolerance = tolerance
        self._check_model()

    @classmethod
    def load(cls, path: str) -> "StateClassifier":
        if not os.path.exists(path):
            raise ArtifactNotFoundError(f"Classifier artifact not found: {path}")
        try:
            bundle = joblib.load(path)
        except Exception as e:
            raise ArtifactError(f"Could not read classifier artifact {path}: {e}") from e
        classifier = cls.from_bundle(bundle)
        logger.info(
            f"[CLASSIFIER] Loaded {path}: {len(classifier.feature_names)} features, "
            f"{classifier.schema.n_classes} classes"
        )
        return classifier

    @classmethod
    def from_bundle(cls, bundle: Mapping[str, Any]) -> "StateClassifier":
        if not isinstance(bundle, Mapping):
            raise ArtifactError(f"Artifact must be a mapping, got {type(bundle).__name__}")
        missing = [k for k in REQUIRED_KEYS if k not in bundle]
        if missing:
            raise ArtifactError(f"Artifact is missing keys: {missing}")
        try:
            schema = ArtifactSchema(
                feature_names=list(bundle["feature_names"]),
                n_classes=int(bundle["n_classes"]),
                labels={str(k): int(v) for k, v in dict(bundle["labels"]).items()},
                meta=dict(bundle.get("meta") or {}),
            )
        except (TypeError, ValueError) as e:
            raise ArtifactError(f"Malformed artifact schema: {e}") from e
        return cls(bundle["model"], schema)

    def _check_model(self) -> None:
        if not callable(getattr(self.model, "predict_proba", None)):
            raise ArtifactError("Artifact model does not implement predict_proba")

        if self.schema.n_classes != N_STATES:
            raise LabelMappingError(
                f"Artifact declares {self.schema.n_classes} classes, expected {N_STATES}"
            )
        if self.schema.labels != LABEL_MAPPING:
            raise LabelMappingError(
                f"Artifact label mapping {self.schema.labels} does not match {LABEL_MAPPING}"
            )
        classes = getattr(self.model, "classes_", None)
        if classes is not None and [int(c) for c in classes] != list(range(N_STATES)):
            raise LabelMappingError(f"Model was fit on classes {list(classes)}, expected 0..3")

        names = self.schema.feature_names
        if len(set(names)) != len(names):
            raise ArtifactError(f"Artifact feature names are not unique: {names}")
        n_in = getattr(self.model, "n_features_in_", None)
        if n_in is not None and int(n_in) != len(names):
            raise SchemaMismatchError(
                f"Model expects {n_in} inputs but artifact lists {len(names)} feature names"
            )
        fitted_names = getattr(self.model, "feature_names_in_", None)
        if fitted_names is not None and [str(n) for n in fitted_names] != list(names):
            raise SchemaMismatchError(
                f"Model was fit on columns {list(fitted_names)}, artifact lists {names}"
            )

    @property
    def feature_names(self) -> List[str]:
        return list(self.schema.feature_names)

    def validate_schema(self, feature_names: List[str]) -> None:
        """Names and order of the configured features must equal the artifact's exactly."""
        expected = self.schema.feature_names
        if list(feature_names) != expected:
            raise SchemaMismatchError(
                f"Classifier expects features {expected} ({len(expected)}), "
                f"pipeline produces {list(feature_names)} ({len(feature_names)})"
            )

    def _model_input(self, matrix: np.ndarray) -> Union[np.ndarray, pd.DataFrame]:
        if getattr(self.model, "feature_names_in_", None) is not None:
            return pd.DataFrame(matrix, columns=self.schema.feature_names)
        return matrix

    def predict_proba(self, matrix: np.ndarray) -> np.ndarray:
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim == 1:
            matrix = matrix.reshape(1, -1)
        if matrix.shape[1] != len(self.schema.feature_names):
            raise SnapshotError(
                f"Expected {len(self.schema.feature_names)} feature columns, got {matrix.shape[1]}"
            )
        if not np.isfinite(matrix).all():
            raise SnapshotError("Feature matrix contains undefined values")

        probs = np.asarray(self.model.predict_proba(self._model_input(matrix)), dtype=float)
        if probs.shape != (matrix.shape[0], N_STATES):
            raise SnapshotError(f"Classifier returned probabilities of shape {probs.shape}")
        if not np.isfinite(probs).all() or np.any(np.abs(probs.sum(axis=1) - 1.0) > self.tolerance):
            raise SnapshotError("Classifier probabilities do not sum to 1")
        return probs

    def _to_prediction(self, row: np.ndarray) -> Prediction:
        state = CognitiveState(int(np.argmax(row)))
        return Prediction(
            state=state.label,
            ordinal=int(state),
            probabilities={s.label: float(row[int(s)]) for s in CognitiveState},
            confidence=float(row[int(state)]),
        )

    def predict_batch(self, matrix: np.ndarray) -> List[Prediction]:
        return [self._to_prediction(row) for row in self.predict_proba(matrix)]

    def predict(self, features: Union[FeatureVector, Dict[str, float]]) -> Prediction:
        values = features.values if isinstance(features, FeatureVector) else features
        try:
            row = np.array([values[name] for name in self.schema.feature_names], dtype=float)
        except KeyError as e:
            raise SnapshotError(f"Feature vector lacks {e.args[0]!r}") from e
        return self.predict_batch(row.reshape(1, -1))[0]

    def describe(self) -> Dict[str, Any]:
        return {
            "model_type": type(self.model).__name__,
            "feature_names": self.feature_names,
            "n_classes": self.schema.n_classes,
            "labels": self.schema.labels,
            "meta": self.schema.meta,
        }
