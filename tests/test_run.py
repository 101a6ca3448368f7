import json

import pytest

from repsense.config import Settings
from repsense.keypoints import KEYPOINT_NAMES
from run import run_replay


def _frame(t, wrist_y):
    slots = [None] * 17
    slots[KEYPOINT_NAMES.index("left_wrist")] = [300 / 640, wrist_y / 480, 0.9]
    slots[KEYPOINT_NAMES.index("left_shoulder")] = [300 / 640, 150 / 480, 0.9]
    return {"timestamp_ms": t, "keypoints": slots}


def test_replay_writes_session_counts(tmp_path):
    recording = tmp_path / "session.json"
    recording.write_text(json.dumps({
        "width": 640,
        "height": 480,
        "frames": [_frame(0, 100), None, _frame(100, 200), _frame(200, 100)],
    }))
    out_dir = tmp_path / "out"
    counts = run_replay(str(recording), Settings(), str(out_dir))
    assert counts["hand_lifts"] == 2

    saved = json.loads((out_dir / "session_counts.json").read_text())
    assert saved["counts"]["hand_lifts"] == 2
    assert saved["total"] == 2
    assert saved["frames_processed"] == 3
    assert saved["scheduler"]["skipped_empty"] == 1


def test_replay_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_replay(str(tmp_path / "missing.json"), Settings(), str(tmp_path))
