import pytest

from repsense.config import Settings, load_settings


def test_defaults():
    assert load_settings({}) == Settings()
    assert Settings().flush_interval_ms == 800
    assert Settings().min_confidence == 0.2


def test_env_overrides():
    settings = load_settings({
        "REPSENSE_MIN_CONFIDENCE": "0.35",
        "REPSENSE_FLUSH_INTERVAL_MS": "250",
        "REPSENSE_CAMERA_ID": "2",
        "REPSENSE_OUTPUT_DIR": "/tmp/reps",
        "REPSENSE_TARGET_FPS": "",
    })
    assert settings.min_confidence == 0.35
    assert settings.flush_interval_ms == 250
    assert settings.camera_id == 2
    assert settings.output_dir == "/tmp/reps"
    assert settings.target_fps == 20.0


@pytest.mark.parametrize("key,value", [
    ("REPSENSE_FLUSH_INTERVAL_MS", "soon"),
    ("REPSENSE_MIN_CONFIDENCE", "-0.1"),
    ("REPSENSE_CAMERA_ID", "1.5"),
])
def test_invalid_values(key, value):
    with pytest.raises(ValueError, match=key):
        load_settings({key: value})
