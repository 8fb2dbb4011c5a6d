import pytest
from pydantic import ValidationError

from cogbox.config import DEFAULT_CHANNELS, Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.channels == DEFAULT_CHANNELS
    assert settings.allowed_speeds == [1, 10, 50, 100]
    assert settings.default_speed == 50
    assert settings.duration_bound == 10800
    assert settings.rules_path is None


def test_from_env_parses_lists_and_ranges():
    settings = Settings.from_env({
        "COGBOX_DATA_PATH": "/tmp/data.csv",
        "COGBOX_ALLOWED_SPEEDS": "5, 1, 5",
        "COGBOX_CHANNEL_RANGES": "pupil_diameter_mm=2:8,grip_force_newtons=0:40",
        "COGBOX_TICK_PERIOD": "0.5",
        "COGBOX_PRECOMPUTE": "false",
        "COGBOX_LABEL_COLUMN": "",
    })
    assert settings.data_path == "/tmp/data.csv"
    assert settings.allowed_speeds == [1, 5]
    assert settings.channel_ranges["pupil_diameter_mm"] == (2.0, 8.0)
    assert settings.tick_period == 0.5
    assert settings.precompute is False
    assert settings.label_column == "cognitive_state"


def test_invalid_settings():
    with pytest.raises(ValidationError):
        Settings(allowed_speeds=[0, 10])
    with pytest.raises(ValidationError):
        Settings(channels=["a", "a"])
    with pytest.raises(ValidationError):
        Settings.from_env({"COGBOX_TICK_PERIOD": "0"})
