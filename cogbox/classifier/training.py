"""
Offline training of the state classifier artifact.

Fits a gradient-boosted tree classifier on the feature-engineering output,
evaluates it on a stratified hold-out split and writes the joblib bundle the
playback service loads at startup.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import joblib
import numpy as np
import pandas as pd
from sklearn.ensemble import HistGradientBoostingClassifier
from sklearn.inspection import permutation_importance
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix
from sklearn.model_selection import GridSearchCV, StratifiedKFold, train_test_split

from cogbox.classifier.models import LABEL_MAPPING, N_STATES, CognitiveState
from cogbox.features.engine import WARMUP_COLUMN

logger = logging.getLogger(__name__)

DEFAULT_PARAM_GRID: Dict[str, List[Any]] = {
    "max_iter": [50, 100],
    "max_depth": [3, 5],
    "learning_rate": [0.05, 0.1],
}


@dataclass
class TrainingReport:
    best_params: Dict[str, Any]
    cv_accuracy: float
    test_accuracy: float
    kappa: float
    confusion: List[List[int]]
    per_class: Dict[str, Dict[str, float]]
    feature_importance: Dict[str, float]
    n_train: int
    n_test: int
    meta: Dict[str, Any] = field(default_factory=dict)


def _per_class_metrics(cm: np.ndarray) -> Dict[str, Dict[str, float]]:
    total = cm.sum()
    metrics = {}
    for state in CognitiveState:
        i = int(state)
        tp = cm[i, i]
        fn = cm[i, :].sum() - tp
        fp = cm[:, i].sum() - tp
        tn = total - tp - fn - fp
        metrics[state.label] = {
            "sensitivity": float(tp / (tp + fn)) if tp + fn else 0.0,
            "specificity": float(tn / (tn + fp)) if tn + fp else 0.0,
        }
    return metrics


def train_classifier(
    data: pd.DataFrame,
    feature_names: List[str],
    label_column: str = "cognitive_state",
    param_grid: Optional[Dict[str, List[Any]]] = None,
    test_size: float = 0.2,
    cv_folds: int = 3,
    balance_classes: bool = False,
    random_state: int = 123,
):
    """
    Fit and evaluate. Returns (model, TrainingReport).

    Rows flagged in the `warmup` column (see build_feature_frame) are dropped.
    """
    if WARMUP_COLUMN in data.columns:
        data = data[~data[WARMUP_COLUMN].astype(bool)]
    missing = [c for c in feature_names + [label_column] if c not in data.columns]
    if missing:
        raise ValueError(f"Training data is missing columns: {missing}")

    unknown = sorted(set(data[label_column].dropna()) - set(LABEL_MAPPING))
    if unknown:
        raise ValueError(f"Unknown state labels in training data: {unknown}")

    data = data.dropna(subset=feature_names + [label_column])
    X = data[feature_names].to_numpy(dtype=float)
    y = data[label_column].map(LABEL_MAPPING).to_numpy(dtype=int)
    present = np.unique(y)
    if len(present) != N_STATES:
        raise ValueError(f"Training data must contain all {N_STATES} states, found ordinals {list(present)}")

    logger.info(
        "[TRAIN] Class distribution: "
        + ", ".join(f"{s.label}={int((y == int(s)).sum())}" for s in CognitiveState)
    )

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, stratify=y, random_state=random_state
    )

    estimator = HistGradientBoostingClassifier(
        random_state=random_state,
        class_weight="balanced" if balance_classes else None,
    )
    search = GridSearchCV(
        estimator,
        param_grid=param_grid or DEFAULT_PARAM_GRID,
        scoring="accuracy",
        cv=StratifiedKFold(n_splits=cv_folds, shuffle=True, random_state=random_state),
        refit=True,
    )
    logger.info(f"[TRAIN] Grid search over {_grid_size(search.param_grid)} combinations, {cv_folds}-fold CV")
    search.fit(X_train, y_train)
    model = search.best_estimator_

    y_pred = model.predict(X_test)
    cm = confusion_matrix(y_test, y_pred, labels=list(range(N_STATES)))
    importance = permutation_importance(
        model, X_test, y_test, n_repeats=5, random_state=random_state
    )

    report = TrainingReport(
        best_params={k: (v.item() if hasattr(v, "item") else v) for k, v in search.best_params_.items()},
        cv_accuracy=float(search.best_score_),
        test_accuracy=float(accuracy_score(y_test, y_pred)),
        kappa=float(cohen_kappa_score(y_test, y_pred)),
        confusion=cm.astype(int).tolist(),
        per_class=_per_class_metrics(cm),
        feature_importance={
            name: float(v) for name, v in zip(feature_names, importance.importances_mean)
        },
        n_train=int(len(y_train)),
        n_test=int(len(y_test)),
    )
    report.meta = {
        "model_type": "HistGradientBoostingClassifier (grid-searched)",
        "training_date": date.today().isoformat(),
        "training_samples": report.n_train,
        "testing_samples": report.n_test,
        "best_parameters": report.best_params,
        "cv_accuracy": round(report.cv_accuracy, 4),
        "test_accuracy": round(report.test_accuracy, 4),
        "kappa": round(report.kappa, 4),
        "balance_classes": balance_classes,
    }
    logger.info(
        f"[TRAIN] Test accuracy {report.test_accuracy:.4f}, kappa {report.kappa:.3f}, "
        f"best params {report.best_params}"
    )
    return model, report


def _grid_size(grid: Dict[str, List[Any]]) -> int:
    n = 1
    for values in grid.values():
        n *= len(values)
    return n


def save_artifact(model: Any, feature_names: List[str], path: str, meta: Optional[Dict[str, Any]] = None) -> str:
    bundle = {
        "model": model,
        "feature_names": list(feature_names),
        "n_classes": N_STATES,
        "labels": dict(LABEL_MAPPING),
        "meta": dict(meta or {}),
    }
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    joblib.dump(bundle, path)
    logger.info(f"[TRAIN] Artifact saved to {path}")
    return path
