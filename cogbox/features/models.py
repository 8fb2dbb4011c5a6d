from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field, model_validator


class FeatureKind(str, Enum):
    MEAN = "mean"
    STDDEV = "stddev"
    LAG = "lag"
    DELTA = "delta"


class FeatureSpec(BaseModel):
    name: str = Field(..., min_length=1)
    kind: FeatureKind
    channel: str = Field(..., min_length=1)
    window: int = Field(..., ge=1, description="Window length (mean/stddev/delta) or lag k, in samples")

    @model_validator(mode="after")
    def validate_window(self):
        if self.kind == FeatureKind.STDDEV and self.window < 2:
            raise ValueError(f"{self.name}: sample stddev needs a window of at least 2")
        return self

    @property
    def warmup(self) -> int:
        """Number of leading positions for which the feature is undefined."""
        if self.kind in (FeatureKind.MEAN, FeatureKind.STDDEV):
            return self.window - 1
        return self.window

    @property
    def required_length(self) -> int:
        """Shortest series on which the feature is defined at least once."""
        return self.warmup + 1


DEFAULT_FEATURES: List[FeatureSpec] = [
    FeatureSpec(name="tonic_pupil_level_30s", kind=FeatureKind.MEAN, channel="pupil_diameter_mm", window=30),
    FeatureSpec(name="grip_force_variability_15s", kind=FeatureKind.STDDEV, channel="grip_force_newtons", window=15),
    FeatureSpec(name="tremor_trend_10s", kind=FeatureKind.MEAN, channel="instrument_tremor_hz", window=10),
    FeatureSpec(name="phasic_pupil_change_5s", kind=FeatureKind.DELTA, channel="pupil_diameter_mm", window=5),
    FeatureSpec(name="pupil_diameter_lag_5s", kind=FeatureKind.LAG, channel="pupil_diameter_mm", window=5),
]


class FeatureVector(BaseModel):
    owner_id: str
    position: int
    t: int
    values: Dict[str, float]
    warmup: bool = False
