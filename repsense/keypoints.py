"""
Keypoint model and filter. Raw keypoints arrive in the pose model's native
coordinates (normalized [0,1] per axis); the filter rejects low-confidence or
non-finite points and rescales the rest into pixel space of the frame.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

# Keypoints below this confidence are treated as absent.
CONFIDENCE_THRESHOLD = 0.2
# A full skeleton has exactly this many slots (COCO order).
KEYPOINT_COUNT = 17
# Reference frame the pixel thresholds in detectors.py are tuned for.
REFERENCE_WIDTH = 640
REFERENCE_HEIGHT = 480


class KeypointIdx:
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16


KEYPOINT_NAMES = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)


@dataclass(frozen=True)
class Keypoint:
    name: Optional[str]
    x: float
    y: float
    score: Optional[float] = None


@dataclass(frozen=True)
class PoseFrame:
    """
    One skeleton from the pose model. `keypoints` is in slot order and may
    contain None entries; `normalized` is False when x/y are already pixels.
    """
    keypoints: Sequence[Optional[Keypoint]]
    width: float
    height: float
    timestamp_ms: Optional[float] = None
    normalized: bool = True

    @property
    def complete(self) -> bool:
        return len(self.keypoints) >= KEYPOINT_COUNT


def filter_keypoint(
    kp: Optional[Keypoint],
    width: float,
    height: float,
    normalized: bool = True,
    min_confidence: float = CONFIDENCE_THRESHOLD,
    name: Optional[str] = None,
) -> Optional[Keypoint]:
    """
    Validate one keypoint and rescale it into pixel space.
    Returns None if the keypoint is missing, below `min_confidence`, or not
    finite after rescale.
    """
    if kp is None or kp.score is None:
        return None
    try:
        score = float(kp.score)
        x = float(kp.x)
        y = float(kp.y)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(score) or score < min_confidence:
        return None
    if normalized:
        x *= width
        y *= height
    if not (np.isfinite(x) and np.isfinite(y)):
        return None
    return Keypoint(name=name or kp.name, x=x, y=y, score=score)


def filter_frame(
    frame: PoseFrame,
    min_confidence: float = CONFIDENCE_THRESHOLD,
) -> dict[str, Keypoint]:
    """
    Filter every slot of a frame. Slots are named by position, since some
    models (MoveNet) do not label their keypoints. Absent keypoints are left
    out of the returned mapping.
    """
    points: dict[str, Keypoint] = {}
    for idx, kp in enumerate(frame.keypoints[:KEYPOINT_COUNT]):
        name = KEYPOINT_NAMES[idx]
        valid = filter_keypoint(
            kp,
            frame.width,
            frame.height,
            normalized=frame.normalized,
            min_confidence=min_confidence,
            name=name,
        )
        if valid is not None:
            points[name] = valid
    return points


def frame_from_list(
    keypoints: Sequence[Optional[Sequence[float]]],
    width: float,
    height: float,
    timestamp_ms: Optional[float] = None,
    normalized: bool = True,
) -> PoseFrame:
    """Build a PoseFrame from [x, y, score] triples (JSON payloads, replay files)."""
    slots: list[Optional[Keypoint]] = []
    for idx, item in enumerate(keypoints):
        if not isinstance(item, (list, tuple)) or len(item) < 2:
            slots.append(None)
            continue
        name = KEYPOINT_NAMES[idx] if idx < KEYPOINT_COUNT else None
        score = item[2] if len(item) > 2 else None
        slots.append(Keypoint(name=name, x=item[0], y=item[1], score=score))
    return PoseFrame(
        keypoints=slots,
        width=width,
        height=height,
        timestamp_ms=timestamp_ms,
        normalized=normalized,
    )


def load_keypoint_frames(path: str) -> list[Optional[PoseFrame]]:
    """
    Load a recorded keypoint session:
        {"width": 640, "height": 480, "normalized": true,
         "frames": [{"timestamp_ms": 0, "keypoints": [[x, y, score], ...]}, null, ...]}
    A null frame, or any entry that is not an object with keypoints, stands
    for "no skeleton".
    Frames may override width/height.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Keypoint file not found: {path}")
    with open(path) as f:
        data = json.load(f)
    width = float(data.get("width", REFERENCE_WIDTH))
    height = float(data.get("height", REFERENCE_HEIGHT))
    normalized = bool(data.get("normalized", True))
    frames: list[Optional[PoseFrame]] = []
    for item in data.get("frames", []):
        if not isinstance(item, dict) or not item.get("keypoints"):
            frames.append(None)
            continue
        frames.append(frame_from_list(
            item["keypoints"],
            float(item.get("width", width)),
            float(item.get("height", height)),
            timestamp_ms=item.get("timestamp_ms"),
            normalized=normalized,
        ))
    return frames
