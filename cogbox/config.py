"""
Runtime settings for the cogbox service.

Values come from COGBOX_* environment variables (a local .env file is read
first). Anything not set falls back to the defaults below, which reproduce the
3-hour demo replay.
"""
import logging
import os
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

ENV_PREFIX = "COGBOX_"

DEFAULT_CHANNELS = ["pupil_diameter_mm", "grip_force_newtons", "instrument_tremor_hz"]

# Plausible physiological ranges. Values outside are treated as missing samples.
DEFAULT_CHANNEL_RANGES: Dict[str, Tuple[float, float]] = {
    "pupil_diameter_mm": (1.0, 9.0),
    "grip_force_newtons": (0.0, 60.0),
    "instrument_tremor_hz": (0.0, 30.0),
}

SURGERY_DURATION_SECONDS = 3 * 3600

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger().setLevel(level.upper())


class Settings(BaseModel):
    data_path: str = Field("data/processed/surgical_data.csv", description="Raw series CSV")
    model_path: str = Field("models/state_classifier.joblib", description="Trained classifier artifact")
    rules_path: Optional[str] = Field(None, description="Optional JSON rationale rule table")

    owner_column: str = "surgeon_id"
    time_column: str = "timestamp"
    label_column: Optional[str] = "cognitive_state"
    channels: List[str] = Field(default_factory=lambda: list(DEFAULT_CHANNELS))
    channel_ranges: Dict[str, Tuple[float, float]] = Field(
        default_factory=lambda: dict(DEFAULT_CHANNEL_RANGES)
    )

    duration_bound: int = Field(SURGERY_DURATION_SECONDS, ge=1)
    allowed_speeds: List[int] = Field(default_factory=lambda: [1, 10, 50, 100])
    default_speed: int = 50
    tick_period: float = Field(1.0, gt=0, description="Seconds between timer ticks")
    history_window: int = Field(30, ge=1, description="Samples returned for live charts")

    precompute: bool = True
    exclude_short_owners: bool = False
    log_level: str = "INFO"

    @field_validator("allowed_speeds")
    @classmethod
    def validate_speeds(cls, v):
        if not v:
            raise ValueError("allowed_speeds must not be empty")
        for speed in v:
            if speed < 1:
                raise ValueError(f"Speeds must be positive integers, got {speed}")
        return sorted(set(v))

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v):
        if not v:
            raise ValueError("At least one channel is required")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate channel names: {v}")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Build settings from COGBOX_* variables, ignoring unset ones."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            if name == "channels":
                values[name] = [c.strip() for c in raw.split(",") if c.strip()]
            elif name == "allowed_speeds":
                values[name] = [int(s) for s in raw.split(",") if s.strip()]
            elif name == "channel_ranges":
                # pupil_diameter_mm=1:9,grip_force_newtons=0:60
                ranges = {}
                for item in raw.split(","):
                    channel, _, bounds = item.partition("=")
                    low, _, high = bounds.partition(":")
                    ranges[channel.strip()] = (float(low), float(high))
                values[name] = ranges
            else:
                values[name] = raw
        return cls(**values)
