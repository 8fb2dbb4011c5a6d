"""
Synthetic surgical session generator.

Produces second-by-second pupil / grip / tremor readings for a 3-hour
procedure with a scripted cognitive state timeline, so the feature pipeline,
trainer and playback service can run end to end without recorded data.
"""
import logging
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

OPTIMAL_END = 900
HIGH_LOAD_END = 6300
LAPSE_WINDOWS: List[Tuple[int, int]] = [(7000, 7015), (8500, 8515), (10000, 10015)]
SMOOTHING_WINDOW = 5

# state -> channel -> (mean, sd)
CHANNEL_PROFILES: Dict[str, Dict[str, Tuple[float, float]]] = {
    "Optimal": {
        "pupil_diameter_mm": (3.5, 0.2),
        "grip_force_newtons": (15.0, 0.5),
        "instrument_tremor_hz": (1.0, 0.2),
    },
    "High Load": {
        "pupil_diameter_mm": (4.5, 0.5),
        "grip_force_newtons": (15.0, 1.0),
        "instrument_tremor_hz": (1.2, 0.3),
    },
    "Fatigued": {
        "pupil_diameter_mm": (3.0, 0.3),
        "grip_force_newtons": (13.0, 2.0),
        "instrument_tremor_hz": (2.0, 0.6),
    },
    "Attentional Lapse": {
        "pupil_diameter_mm": (2.8, 0.2),
        "grip_force_newtons": (13.0, 4.0),
        "instrument_tremor_hz": (2.2, 0.8),
    },
}

CHANNEL_FLOORS = {
    "pupil_diameter_mm": 1.0,
    "grip_force_newtons": 1.0,
    "instrument_tremor_hz": 0.1,
}


def state_timeline(duration_s: int) -> np.ndarray:
    t = np.arange(1, duration_s + 1)
    states = np.where(
        t <= OPTIMAL_END, "Optimal",
        np.where(t <= HIGH_LOAD_END, "High Load", "Fatigued"),
    ).astype(object)
    for start, end in LAPSE_WINDOWS:
        states[(t >= start) & (t <= end)] = "Attentional Lapse"
    return states


def simulate_series(n_owners: int = 3, duration_s: int = 10800, seed: int = 123) -> pd.DataFrame:
    """Return the raw series table: surgeon_id, timestamp, channels, cognitive_state."""
    if n_owners < 1 or duration_s < 1:
        raise ValueError("n_owners and duration_s must be positive")

    rng = np.random.default_rng(seed)
    states = state_timeline(duration_s)
    frames = []

    for owner in range(1, n_owners + 1):
        frame = pd.DataFrame({
            "surgeon_id": owner,
            "timestamp": np.arange(1, duration_s + 1),
        })
        for channel, floor in CHANNEL_FLOORS.items():
            values = np.empty(duration_s)
            for state, profile in CHANNEL_PROFILES.items():
                mask = states == state
                mean, sd = profile[channel]
                values[mask] = rng.normal(mean, sd, size=int(mask.sum()))
            values = np.maximum(values, floor)
            # right-aligned smoothing, leading gap back-filled with the first smoothed value
            smoothed = pd.Series(values).rolling(SMOOTHING_WINDOW, min_periods=SMOOTHING_WINDOW).mean()
            frame[channel] = smoothed.bfill().to_numpy()
        frame["cognitive_state"] = states
        frames.append(frame)

    data = pd.concat(frames, ignore_index=True)
    logger.info(
        f"[SIMULATOR] Generated {len(data)} rows for {n_owners} owners "
        f"({duration_s} s each, seed={seed})"
    )
    return data
