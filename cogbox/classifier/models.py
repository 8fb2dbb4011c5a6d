from enum import IntEnum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class CognitiveState(IntEnum):
    OPTIMAL = 0
    HIGH_LOAD = 1
    FATIGUED = 2
    ATTENTIONAL_LAPSE = 3

    @property
    def label(self) -> str:
        return STATE_LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> "CognitiveState":
        for state, name in STATE_LABELS.items():
            if name == label:
                return state
        raise ValueError(f"Unknown cognitive state label: {label!r}")


STATE_LABELS = {
    CognitiveState.OPTIMAL: "Optimal",
    CognitiveState.HIGH_LOAD: "High Load",
    CognitiveState.FATIGUED: "Fatigued",
    CognitiveState.ATTENTIONAL_LAPSE: "Attentional Lapse",
}

# name -> ordinal, the mapping every artifact must carry verbatim
LABEL_MAPPING: Dict[str, int] = {name: int(state) for state, name in STATE_LABELS.items()}

N_STATES = len(CognitiveState)


class Prediction(BaseModel):
    state: str
    ordinal: int
    probabilities: Dict[str, float]
    confidence: float


class ArtifactSchema(BaseModel):
    feature_names: List[str]
    n_classes: int
    labels: Dict[str, int]
    meta: Dict[str, Any] = Field(default_factory=dict)
