import json
import math

import pytest

from repsense.keypoints import (
    CONFIDENCE_THRESHOLD,
    KEYPOINT_NAMES,
    Keypoint,
    PoseFrame,
    filter_frame,
    filter_keypoint,
    frame_from_list,
    load_keypoint_frames,
)


def test_filter_rescales_normalized_coordinates():
    kp = filter_keypoint(Keypoint("nose", 0.5, 0.25, 0.9), 640, 480)
    assert kp is not None
    assert kp.x == pytest.approx(320)
    assert kp.y == pytest.approx(120)
    assert kp.name == "nose"


def test_filter_keeps_pixel_coordinates():
    kp = filter_keypoint(Keypoint("nose", 320, 120, 0.9), 640, 480, normalized=False)
    assert (kp.x, kp.y) == (320, 120)


@pytest.mark.parametrize("score", [None, 0.0, 0.19, float("nan")])
def test_filter_rejects_missing_or_low_confidence(score):
    assert filter_keypoint(Keypoint("nose", 0.5, 0.5, score), 640, 480) is None


def test_filter_accepts_threshold_confidence():
    assert filter_keypoint(Keypoint("nose", 0.5, 0.5, CONFIDENCE_THRESHOLD), 640, 480) is not None


@pytest.mark.parametrize("x,y", [(float("nan"), 0.5), (0.5, float("inf")), (None, 0.5), ("abc", 0.5)])
def test_filter_rejects_non_finite_positions(x, y):
    assert filter_keypoint(Keypoint("nose", x, y, 0.9), 640, 480) is None


def test_filter_rejects_absent_keypoint():
    assert filter_keypoint(None, 640, 480) is None


def test_filter_frame_names_slots_by_position():
    slots = [None] * 17
    slots[9] = Keypoint(None, 0.1, 0.2, 0.8)
    slots[5] = Keypoint(None, 0.1, 0.3, 0.1)
    points = filter_frame(PoseFrame(keypoints=slots, width=640, height=480))
    assert list(points) == ["left_wrist"]
    assert points["left_wrist"].y == pytest.approx(96)


def test_filter_frame_respects_min_confidence():
    slots = [Keypoint(None, 0.5, 0.5, 0.5)] * 17
    frame = PoseFrame(keypoints=slots, width=640, height=480)
    assert len(filter_frame(frame)) == 17
    assert filter_frame(frame, min_confidence=0.6) == {}


def test_frame_from_list_handles_gaps():
    raw = [[0.5, 0.5, 0.9]] * 16 + [None]
    frame = frame_from_list(raw, 640, 480, timestamp_ms=12.0)
    assert frame.complete
    assert frame.keypoints[16] is None
    assert frame.keypoints[0].name == KEYPOINT_NAMES[0]
    assert frame.timestamp_ms == 12.0


def test_short_frame_is_not_complete():
    frame = frame_from_list([[0.5, 0.5, 0.9]] * 10, 640, 480)
    assert not frame.complete


def test_missing_score_slot_is_filtered_out():
    frame = frame_from_list([[0.5, 0.5]] * 17, 640, 480)
    assert filter_frame(frame) == {}


def test_load_keypoint_frames(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({
        "width": 640,
        "height": 480,
        "frames": [
            {"timestamp_ms": 0, "keypoints": [[0.5, 0.5, 0.9]] * 17},
            None,
            {"timestamp_ms": 33, "keypoints": [[0.5, 0.5, 0.9]] * 17, "width": 1280},
        ],
    }))
    frames = load_keypoint_frames(str(path))
    assert len(frames) == 3
    assert frames[1] is None
    assert frames[0].timestamp_ms == 0
    assert frames[2].width == 1280
    assert math.isclose(filter_frame(frames[2])["nose"].x, 640)


def test_load_keypoint_frames_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_keypoint_frames(str(tmp_path / "nope.json"))


def test_non_sequence_items_become_empty_slots():
    raw = [{"x": 0.5, "y": 0.5}] * 16 + ["0.5,0.5", [0.5, 0.5, 0.9]]
    frame = frame_from_list(raw, 640, 480)
    assert all(slot is None for slot in frame.keypoints[:17])
    assert frame.keypoints[17].x == 0.5


def test_load_keypoint_frames_treats_non_objects_as_no_skeleton(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({
        "frames": [
            [[0.5, 0.5, 0.9]] * 17,
            42,
            "frame",
            {"timestamp_ms": 10, "keypoints": [[0.5, 0.5, 0.9]] * 17},
        ],
    }))
    frames = load_keypoint_frames(str(path))
    assert frames[:3] == [None, None, None]
    assert frames[3].timestamp_ms == 10
    assert frames[3].width == 640
