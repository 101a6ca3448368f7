"""
MediaPipe Pose estimation, reduced to the 17 COCO keypoints the detectors use.
Keypoints stay normalized [0,1]; landmark visibility is the confidence score.
Uses Pose Landmarker task (MediaPipe 0.10+). CPU-only.
"""
from __future__ import annotations

import logging
import os
import threading
import urllib.request
from typing import Iterator, Optional

import cv2
import numpy as np

from .keypoints import KEYPOINT_NAMES, Keypoint, PoseFrame

logger = logging.getLogger(__name__)

# MediaPipe landmark index for each COCO slot, in KEYPOINT_NAMES order.
MEDIAPIPE_TO_COCO = (
    0,   # nose
    2,   # left_eye
    5,   # right_eye
    7,   # left_ear
    8,   # right_ear
    11,  # left_shoulder
    12,  # right_shoulder
    13,  # left_elbow
    14,  # right_elbow
    15,  # left_wrist
    16,  # right_wrist
    23,  # left_hip
    24,  # right_hip
    25,  # left_knee
    26,  # right_knee
    27,  # left_ankle
    28,  # right_ankle
)

# Pose Landmarker model URL (lite = faster, CPU-friendly)
_POSE_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
_POSE_MODEL_FILENAME = "pose_landmarker_lite.task"


def _get_model_path(cache_dir: Optional[str] = None) -> str:
    """Return path to pose landmarker model, downloading if needed."""
    if cache_dir is None:
        cache_dir = os.path.join(os.path.dirname(__file__), "..", "outputs")
    os.makedirs(cache_dir, exist_ok=True)
    path = os.path.join(cache_dir, _POSE_MODEL_FILENAME)
    if not os.path.isfile(path):
        logger.info("downloading pose model to %s", path)
        urllib.request.urlretrieve(_POSE_MODEL_URL, path)
    return path


def create_pose_detector(cache_dir: Optional[str] = None):
    """Create a single-person PoseLandmarker (MediaPipe 0.10+ tasks API)."""
    from mediapipe.tasks.python.core import base_options
    from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions
    from mediapipe.tasks.python.vision.core import vision_task_running_mode

    model_path = _get_model_path(cache_dir)
    base = base_options.BaseOptions(model_asset_path=model_path)
    options = PoseLandmarkerOptions(
        base_options=base,
        running_mode=vision_task_running_mode.VisionTaskRunningMode.IMAGE,
        num_poses=1,
        min_pose_detection_confidence=0.5,
        min_pose_presence_confidence=0.5,
        min_tracking_confidence=0.5,
    )
    return PoseLandmarker.create_from_options(options)


def landmarks_to_frame(
    landmarks,
    width: float,
    height: float,
    timestamp_ms: Optional[float] = None,
) -> Optional[PoseFrame]:
    """Map one MediaPipe landmark list (33 entries) onto the 17 COCO slots."""
    if landmarks is None or len(landmarks) <= max(MEDIAPIPE_TO_COCO):
        return None
    slots = []
    for name, mp_idx in zip(KEYPOINT_NAMES, MEDIAPIPE_TO_COCO):
        lm = landmarks[mp_idx]
        score = getattr(lm, "visibility", None)
        slots.append(Keypoint(name=name, x=lm.x, y=lm.y, score=score))
    return PoseFrame(keypoints=slots, width=width, height=height, timestamp_ms=timestamp_ms)


def estimate_pose(
    frame_bgr: np.ndarray,
    pose,
    timestamp_ms: Optional[float] = None,
) -> Optional[PoseFrame]:
    """
    Run pose estimation on one BGR frame.
    Returns a normalized 17-slot PoseFrame sized to the image, or None if no pose.
    """
    from mediapipe.tasks.python.vision.core import image as mp_image

    h, w = frame_bgr.shape[:2]
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    mp_img = mp_image.Image(image_format=mp_image.ImageFormat.SRGB, data=rgb)
    result = pose.detect(mp_img)
    if not result.pose_landmarks:
        return None
    return landmarks_to_frame(result.pose_landmarks[0], w, h, timestamp_ms)


class MediaPipePoseSource:
    """
    PoseSource over an iterator of (frame_bgr, frame_idx, timestamp_ms). The
    landmarker loads on a background thread; until then `ready` is False.
    The most recent image is kept in `last_image` for display.
    """

    def __init__(
        self,
        frames: Iterator[tuple[np.ndarray, int, float]],
        cache_dir: Optional[str] = None,
    ) -> None:
        self._frames = frames
        self._cache_dir = cache_dir
        self._pose = None
        self._lock = threading.Lock()
        self.error: Optional[BaseException] = None
        self.exhausted = False
        self.last_image: Optional[np.ndarray] = None
        self.last_frame: Optional[PoseFrame] = None

    def load(self) -> None:
        """Load the landmarker on the calling thread; raises on failure."""
        pose = create_pose_detector(self._cache_dir)
        with self._lock:
            self._pose = pose
        logger.info("pose model ready")

    def start(self) -> None:
        """Load the landmarker on a background thread; failures end up in `error`."""
        threading.Thread(target=self._load_in_background, name="pose_model_load", daemon=True).start()

    def _load_in_background(self) -> None:
        try:
            self.load()
        except Exception as e:
            logger.error("pose model failed to load: %s", e)
            self.error = e

    @property
    def ready(self) -> bool:
        return self._pose is not None and not self.exhausted

    def estimate(self) -> Optional[PoseFrame]:
        try:
            frame_bgr, _, timestamp_ms = next(self._frames)
        except StopIteration:
            self.exhausted = True
            return None
        self.last_image = frame_bgr
        with self._lock:
            if self._pose is None:
                return None
            self.last_frame = estimate_pose(frame_bgr, self._pose, timestamp_ms)
        return self.last_frame

    def close(self) -> None:
        with self._lock:
            if self._pose is not None and hasattr(self._pose, "close"):
                self._pose.close()
            self._pose = None
        close_frames = getattr(self._frames, "close", None)
        if close_frames is not None:
            close_frames()
