import logging
import math
from typing import Dict, List, Optional

from cogbox.classifier.engine import StateClassifier
from cogbox.config import Settings
from cogbox.data.loader import SeriesLoader
from cogbox.data.models import OwnerInfo, Sample, Series
from cogbox.errors import FeatureConfigError, OwnerNotFound
from cogbox.features.engine import FeatureTable, WindowedFeatureExtractor
from cogbox.features.models import DEFAULT_FEATURES, FeatureVector
from cogbox.pipeline.models import Snapshot
from cogbox.rationale.engine import RationaleEngine, build_engine

logger = logging.getLogger(__name__)


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


class InferencePipeline:
    """
    Raw series -> feature table -> (classifier, rationale) keyed by cursor.

    Construction validates everything that can be validated up front: the
    classifier schema against the feature configuration, rule sources, and
    each owner's series length against the feature windows. Any failure there
    is a ConfigurationError and no pipeline is produced. After construction
    the series and feature tables are read-only and can be shared by any
    number of playback sessions.
    """

    def __init__(
        self,
        series: Dict[str, Series],
        extractor: WindowedFeatureExtractor,
        classifier: StateClassifier,
        rationale: RationaleEngine,
        precompute: bool = True,
        exclude_short_owners: bool = False,
    ):
        classifier.validate_schema(extractor.feature_names)
        self.extractor = extractor
        self.classifier = classifier
        self.rationale = rationale

        channels = set()
        for s in series.values():
            channels.update(s.channel_names)
        rationale.validate_sources(extractor.feature_names + sorted(channels))

        self.series: Dict[str, Series] = {}
        for owner_id, owner_series in series.items():
            try:
                extractor.validate_series(owner_series)
            except FeatureConfigError as e:
                if not exclude_short_owners:
                    raise
                logger.warning(f"[PIPELINE] Excluding owner {owner_id}: {e}")
                continue
            self.series[owner_id] = owner_series
        if not self.series:
            raise FeatureConfigError("No owner has a series long enough for the configured windows")

        self.precompute = precompute
        self.tables: Dict[str, FeatureTable] = extractor.compute_all(self.series) if precompute else {}
        logger.info(
            f"[PIPELINE] Ready: {len(self.series)} owners, features {extractor.feature_names}, "
            f"{'precomputed' if precompute else 'on-demand'} windows"
        )

    @classmethod
    def build(cls, settings: Settings) -> "InferencePipeline":
        """Load every collaborator named by settings. Configuration errors propagate."""
        extractor = WindowedFeatureExtractor(DEFAULT_FEATURES)
        classifier = StateClassifier.load(settings.model_path)
        # schema first: a mismatched artifact must fail before the data is even read
        classifier.validate_schema(extractor.feature_names)
        rationale = build_engine(settings.rules_path)

        loader = SeriesLoader(
            channels=settings.channels,
            owner_column=settings.owner_column,
            time_column=settings.time_column,
            label_column=settings.label_column,
            channel_ranges=settings.channel_ranges,
        )
        series = loader.load_csv(settings.data_path)
        return cls(
            series,
            extractor,
            classifier,
            rationale,
            precompute=settings.precompute,
            exclude_short_owners=settings.exclude_short_owners,
        )

    # ---- owners ----
    def owners(self) -> List[str]:
        return list(self.series)

    def series_for(self, owner_id: str) -> Series:
        try:
            return self.series[owner_id]
        except KeyError as e:
            raise OwnerNotFound(owner_id) from e

    def n_samples(self, owner_id: str) -> int:
        return len(self.series_for(owner_id))

    def owner_info(self, owner_id: str) -> OwnerInfo:
        s = self.series_for(owner_id)
        return OwnerInfo(
            owner_id=owner_id,
            n_samples=len(s),
            t_start=int(s.t[0]),
            t_end=int(s.t[-1]),
            channels=s.channel_names,
            has_labels=s.labels is not None,
        )

    def clamp(self, owner_id: str, cursor: int) -> int:
        return min(max(int(cursor), 1), self.n_samples(owner_id))

    # ---- per-cursor queries ----
    def feature_vector(self, owner_id: str, cursor: int) -> FeatureVector:
        series = self.series_for(owner_id)
        cursor = self.clamp(owner_id, cursor)
        if self.precompute:
            return self.tables[owner_id].vector(cursor)
        return self.extractor.extract_at(series, cursor)

    def get_snapshot(self, owner_id: str, cursor: int) -> Snapshot:
        """Features, prediction and rationale, all computed at one cursor."""
        series = self.series_for(owner_id)
        cursor = self.clamp(owner_id, cursor)
        features = self.feature_vector(owner_id, cursor)
        raw = series.raw_at(cursor)
        prediction = self.classifier.predict(features)
        rationale = self.rationale.explain(prediction, features, raw)
        return Snapshot(
            owner_id=owner_id,
            cursor=cursor,
            t=features.t,
            features=features,
            prediction=prediction,
            rationale=rationale,
            raw={name: _finite_or_none(v) for name, v in raw.items()},
            actual_state=series.label_at(cursor),
        )

    def history(self, owner_id: str, cursor: int, window: int = 30) -> List[Sample]:
        """Raw samples in the `window` positions ending at cursor (for live charts)."""
        series = self.series_for(owner_id)
        cursor = self.clamp(owner_id, cursor)
        start = max(1, cursor - window + 1)
        return [
            Sample(
                owner_id=owner_id,
                position=p,
                t=int(series.t[p - 1]),
                values={name: _finite_or_none(v) for name, v in series.raw_at(p).items()},
                label=series.label_at(p),
            )
            for p in range(start, cursor + 1)
        ]

