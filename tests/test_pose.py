from types import SimpleNamespace

from repsense.keypoints import KEYPOINT_NAMES, filter_frame
from repsense.pose import MEDIAPIPE_TO_COCO, MediaPipePoseSource, landmarks_to_frame


def _landmarks(n=33):
    return [SimpleNamespace(x=i / 100, y=i / 50, visibility=0.9) for i in range(n)]


def test_landmarks_map_onto_coco_slots():
    frame = landmarks_to_frame(_landmarks(), 640, 480, timestamp_ms=10.0)
    assert frame.complete
    assert [kp.name for kp in frame.keypoints] == list(KEYPOINT_NAMES)
    left_wrist = frame.keypoints[KEYPOINT_NAMES.index("left_wrist")]
    assert left_wrist.x == 15 / 100
    points = filter_frame(frame)
    assert points["right_ankle"].y == 28 / 50 * 480


def test_short_landmark_list_is_no_pose():
    assert landmarks_to_frame(_landmarks(20), 640, 480) is None
    assert landmarks_to_frame(None, 640, 480) is None


def test_mapping_covers_every_slot():
    assert len(MEDIAPIPE_TO_COCO) == len(KEYPOINT_NAMES)


def test_source_not_ready_until_model_loaded():
    frames = iter([])
    source = MediaPipePoseSource(frames)
    assert not source.ready
    assert source.estimate() is None
    assert source.exhausted
    source.close()
