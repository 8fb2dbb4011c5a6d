import json
import logging
import math
import os
from typing import Dict, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from cogbox.classifier.models import STATE_LABELS, Prediction
from cogbox.errors import RuleConfigError
from cogbox.features.models import FeatureVector
from cogbox.rationale.models import BulletRule, Rationale, RuleTable, StateRules

logger = logging.getLogger(__name__)

# Pupil threshold (mm) below which fatigue is attributed to reduced arousal
CONSTRICTED_PUPIL_MM = 3.2
# Phasic change (mm) above which a dilation event is reported under high load
DILATION_EVENT_MM = 0.1


def default_rules() -> RuleTable:
    return {
        "Optimal": StateRules(
            headline="Surgeon is in a state of low cognitive load with stable physiological and motor control.",
            rules=[
                BulletRule(name="stable_pupil", source="pupil_diameter_mm", direction="always",
                           template="Stable Pupil Diameter ({value:.2f} mm)"),
                BulletRule(name="consistent_grip", source="grip_force_newtons", direction="always",
                           template="Consistent Grip Force ({value:.1f} N)"),
                BulletRule(name="low_tremor", source="instrument_tremor_hz", direction="always",
                           template="Low Tremor ({value:.2f} Hz)"),
            ],
        ),
        "High Load": StateRules(
            headline="Elevated cognitive demand detected. This is primarily driven by:",
            rules=[
                BulletRule(name="tonic_pupil", source="tonic_pupil_level_30s", direction="always",
                           template="Elevated Tonic Pupil Level ({value:.2f} mm)"),
                BulletRule(name="dilation_event", source="phasic_pupil_change_5s", direction="above",
                           threshold=DILATION_EVENT_MM,
                           template="Rapid Pupil Dilation Event ({value:.3f} mm change)"),
            ],
        ),
        "Fatigued": StateRules(
            headline="Signs of fatigue are present, indicated by a decline in fine motor control. Key drivers include:",
            rules=[
                BulletRule(name="tremor_trend", source="tremor_trend_10s", direction="always",
                           template="Increased Instrument Tremor ({value:.2f} Hz)"),
                BulletRule(name="grip_variability", source="grip_force_variability_15s", direction="always",
                           template="Elevated Grip Variability ({value:.3f} N)"),
                BulletRule(name="constricted_pupil", source="tonic_pupil_level_30s", direction="below",
                           threshold=CONSTRICTED_PUPIL_MM,
                           template="Constricted pupil indicating reduced arousal"),
            ],
        ),
        "Attentional Lapse": StateRules(
            headline="ALERT: High probability of an attentional lapse. The model detected:",
            rules=[
                BulletRule(name="grip_variability", source="grip_force_variability_15s", direction="always",
                           template="High Grip Force Variability ({value:.3f} N)"),
                BulletRule(name="constricted_pupil", source="pupil_diameter_mm", direction="always",
                           template="Constricted Pupil Diameter ({value:.2f} mm)"),
                BulletRule(name="elevated_tremor", source="instrument_tremor_hz", direction="always",
                           template="Elevated Tremor ({value:.2f} Hz)"),
            ],
        ),
    }


def load_rules(path: str) -> RuleTable:
    """Rule table from JSON: {state label: {"headline": ..., "rules": [...]}}."""
    if not os.path.exists(path):
        raise RuleConfigError(f"Rule table not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return {state: StateRules(**spec) for state, spec in raw.items()}
    except (json.JSONDecodeError, ValidationError, TypeError, AttributeError) as e:
        raise RuleConfigError(f"Malformed rule table {path}: {e}") from e


class RationaleEngine:
    """
    Maps (prediction, features, raw values) to a short explanation.

    Pure: the output depends only on the arguments and the rule table. All
    matching rules fire, in declared order.
    """

    def __init__(self, rules: Optional[RuleTable] = None):
        self.rules = rules if rules is not None else default_rules()
        missing = [label for label in STATE_LABELS.values() if label not in self.rules]
        if missing:
            raise RuleConfigError(f"Rule table has no headline for states: {missing}")
        unknown = [state for state in self.rules if state not in STATE_LABELS.values()]
        if unknown:
            raise RuleConfigError(f"Rule table names unknown states: {unknown}")
        for state, spec in self.rules.items():
            for rule in spec.rules:
                if rule.direction != "always" and rule.threshold is None:
                    raise RuleConfigError(f"{state}/{rule.name}: '{rule.direction}' rule needs a threshold")
                try:
                    rule.template.format(
                        value=0.0,
                        threshold=rule.threshold if rule.threshold is not None else 0.0,
                        source=rule.source,
                    )
                except (KeyError, IndexError, ValueError) as e:
                    raise RuleConfigError(f"{state}/{rule.name}: bad template {rule.template!r}: {e!r}") from e

    def validate_sources(self, known: Iterable[str]) -> None:
        known = set(known)
        for state, spec in self.rules.items():
            for rule in spec.rules:
                if rule.source not in known:
                    raise RuleConfigError(
                        f"{state}/{rule.name} cites '{rule.source}', which is neither a feature nor a channel"
                    )

    def explain(
        self,
        prediction: Prediction,
        features: Union[FeatureVector, Mapping[str, float]],
        raw_values: Optional[Mapping[str, float]] = None,
    ) -> Rationale:
        feature_values = features.values if isinstance(features, FeatureVector) else features
        raw_values = raw_values or {}
        spec = self.rules[prediction.state]

        bullets = []
        triggered = []
        for rule in spec.rules:
            value = feature_values.get(rule.source, raw_values.get(rule.source))
            if value is None or not math.isfinite(value):
                continue
            if not rule.fires(value):
                continue
            bullets.append(rule.template.format(value=value, threshold=rule.threshold, source=rule.source))
            triggered.append(rule.name)

        return Rationale(
            state=prediction.state,
            headline=spec.headline,
            bullet_points=bullets,
            triggered=triggered,
        )


def build_engine(rules_path: Optional[str] = None) -> RationaleEngine:
    rules = load_rules(rules_path) if rules_path else None
    if rules_path:
        logger.info(f"[RATIONALE] Loaded rule table from {rules_path}")
    return RationaleEngine(rules)


def rules_as_dict(rules: RuleTable) -> Dict[str, dict]:
    return {state: spec.model_dump() for state, spec in rules.items()}
