import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from cogbox.data.models import Series
from cogbox.errors import FeatureConfigError
from cogbox.features.models import DEFAULT_FEATURES, FeatureKind, FeatureSpec, FeatureVector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureTable:
    """
    Precomputed features for one owner, row p-1 holding position p.

    `warmup` marks rows where at least one feature was undefined before the
    fill policy ran; `undefined` marks rows still missing a value after it.
    Neither kind of row is fit for training or evaluation.
    """
    owner_id: str
    names: List[str]
    t: np.ndarray = field(repr=False)
    values: np.ndarray = field(repr=False)
    warmup: np.ndarray = field(repr=False)
    undefined: np.ndarray = field(repr=False)

    def __post_init__(self):
        for arr in (self.values, self.warmup, self.undefined):
            arr.setflags(write=False)

    def __len__(self) -> int:
        return int(self.t.size)

    def row(self, position: int) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.names, self.values[position - 1])}

    def vector(self, position: int) -> FeatureVector:
        idx = position - 1
        return FeatureVector(
            owner_id=self.owner_id,
            position=position,
            t=int(self.t[idx]),
            values=self.row(position),
            warmup=bool(self.warmup[idx]),
        )

    @property
    def usable(self) -> np.ndarray:
        return ~(self.warmup | self.undefined)


class WindowedFeatureExtractor:
    """
    Causal rolling-window features, computed independently per owner.

    Every window is right-aligned and ends at the current position, so a value
    at position p never reads a sample after p. Leading positions where a
    window is not yet full are filled with the first defined value of that
    feature; interior gaps caused by missing samples carry the last defined
    value forward.
    """

    def __init__(self, features: Optional[List[FeatureSpec]] = None):
        self.features = list(features if features is not None else DEFAULT_FEATURES)
        if not self.features:
            raise FeatureConfigError("At least one feature must be configured")
        names = [f.name for f in self.features]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise FeatureConfigError(f"Duplicate feature names: {dupes}")

    @property
    def feature_names(self) -> List[str]:
        return [f.name for f in self.features]

    @property
    def channels(self) -> List[str]:
        seen = []
        for f in self.features:
            if f.channel not in seen:
                seen.append(f.channel)
        return seen

    @property
    def required_length(self) -> int:
        return max(f.required_length for f in self.features)

    def validate_series(self, series: Series) -> None:
        missing = [c for c in self.channels if c not in series.channels]
        if missing:
            raise FeatureConfigError(
                f"Owner {series.owner_id}: features reference unknown channels {missing}"
            )
        for spec in self.features:
            if len(series) < spec.required_length:
                raise FeatureConfigError(
                    f"Owner {series.owner_id}: window of {spec.name} ({spec.kind.value}, "
                    f"{spec.window}) exceeds series length {len(series)}"
                )

    # ---- whole-series computation ----
    def _raw_feature(self, spec: FeatureSpec, values: pd.Series) -> pd.Series:
        w = spec.window
        if spec.kind == FeatureKind.MEAN:
            return values.rolling(window=w, min_periods=w).mean()
        if spec.kind == FeatureKind.STDDEV:
            return values.rolling(window=w, min_periods=w).std(ddof=1)
        if spec.kind == FeatureKind.LAG:
            return values.shift(w)
        # delta: current value against the baseline window ending one sample earlier
        baseline = values.rolling(window=w, min_periods=w).mean().shift(1)
        return values - baseline

    def compute_table(self, series: Series) -> FeatureTable:
        self.validate_series(series)

        raw = pd.DataFrame({
            spec.name: self._raw_feature(spec, pd.Series(series.channels[spec.channel]))
            for spec in self.features
        })
        warmup = raw.isna().any(axis=1).to_numpy()
        filled = raw.ffill().bfill()
        undefined = filled.isna().any(axis=1).to_numpy()
        if undefined.any():
            logger.warning(
                f"[FEATURES] Owner {series.owner_id}: {int(undefined.sum())} rows "
                f"remain undefined after fill"
            )

        return FeatureTable(
            owner_id=series.owner_id,
            names=self.feature_names,
            t=series.t,
            values=filled.to_numpy(dtype=float),
            warmup=warmup,
            undefined=undefined,
        )

    def compute_all(self, series_map: Dict[str, Series]) -> Dict[str, FeatureTable]:
        tables = {}
        for owner_id, series in series_map.items():
            tables[owner_id] = self.compute_table(series)
            logger.info(
                f"[FEATURES] Owner {owner_id}: {len(series)} rows, "
                f"{int(tables[owner_id].usable.sum())} usable for training"
            )
        return tables

    # ---- on-demand computation for a single position ----
    def _point(self, spec: FeatureSpec, values: np.ndarray, position: int) -> float:
        w = spec.window
        if position <= spec.warmup:
            return float("nan")
        if spec.kind == FeatureKind.MEAN:
            return float(np.mean(values[position - w:position]))
        if spec.kind == FeatureKind.STDDEV:
            return float(np.std(values[position - w:position], ddof=1))
        if spec.kind == FeatureKind.LAG:
            return float(values[position - 1 - w])
        baseline = np.mean(values[position - 1 - w:position - 1])
        return float(values[position - 1] - baseline)

    def _filled_point(self, spec: FeatureSpec, values: np.ndarray, position: int) -> Tuple[float, bool]:
        value = self._point(spec, values, position)
        if np.isfinite(value):
            return value, False
        # carry the last defined value forward
        for p in range(position - 1, spec.warmup, -1):
            value = self._point(spec, values, p)
            if np.isfinite(value):
                return value, True
        # nothing defined yet: first defined value of the series
        for p in range(max(position + 1, spec.warmup + 1), values.size + 1):
            value = self._point(spec, values, p)
            if np.isfinite(value):
                return value, True
        return float("nan"), True

    def extract_at(self, series: Series, position: int) -> FeatureVector:
        """Feature vector at one position, reading O(window) samples in the common case."""
        if not 1 <= position <= len(series):
            raise IndexError(f"Position {position} outside [1, {len(series)}]")
        self.validate_series(series)

        values = {}
        warmup = False
        for spec in self.features:
            value, filled = self._filled_point(spec, series.channels[spec.channel], position)
            values[spec.name] = value
            warmup = warmup or filled
        return FeatureVector(
            owner_id=series.owner_id,
            position=position,
            t=int(series.t[position - 1]),
            values=values,
            warmup=warmup,
        )


WARMUP_COLUMN = "warmup"


def build_feature_frame(
    series_map: Dict[str, Series],
    tables: Dict[str, FeatureTable],
    owner_column: str = "surgeon_id",
    time_column: str = "timestamp",
    label_column: Optional[str] = "cognitive_state",
    usable_only: bool = False,
) -> pd.DataFrame:
    """
    Feature-engineering output: owner, t, raw channels, features, the label
    when present, and a `warmup` flag for rows not fit for training.
    """
    frames = []
    for owner_id, series in series_map.items():
        table = tables[owner_id]
        frame = pd.DataFrame({owner_column: owner_id, time_column: series.t})
        for name, values in series.channels.items():
            frame[name] = values
        for i, name in enumerate(table.names):
            frame[name] = table.values[:, i]
        if label_column and series.labels is not None:
            frame[label_column] = series.labels
        frame[WARMUP_COLUMN] = ~table.usable
        if usable_only:
            frame = frame[table.usable]
        frames.append(frame)
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)
