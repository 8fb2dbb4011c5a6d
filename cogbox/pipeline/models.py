from typing import Dict, Optional

from pydantic import BaseModel

from cogbox.classifier.models import Prediction
from cogbox.features.models import FeatureVector
from cogbox.rationale.models import Rationale


class Snapshot(BaseModel):
    owner_id: str
    cursor: int
    t: int
    features: FeatureVector
    prediction: Prediction
    rationale: Rationale
    raw: Dict[str, Optional[float]]
    actual_state: Optional[str] = None
