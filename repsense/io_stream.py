"""
Frame generators for video file or webcam.
Yield (frame_bgr, frame_idx, timestamp_ms) with graceful shutdown. The capture
is opened eagerly so a missing file or busy camera fails at call time.
"""
from __future__ import annotations

import os
from typing import Callable, Generator

import cv2
import numpy as np

from .session import monotonic_ms

FrameStream = Generator[tuple[np.ndarray, int, float], None, None]


def _read_frames(cap: cv2.VideoCapture, timestamp: Callable[[int], float]) -> FrameStream:
    try:
        idx = 0
        while True:
            ret, frame = cap.read()
            if not ret:
                break
            yield (frame, idx, timestamp(idx))
            idx += 1
    finally:
        cap.release()


def video_frames(video_path: str) -> FrameStream:
    """
    Frames from a video file. timestamp_ms is the frame's position in the
    video, so debounce intervals follow video time rather than processing speed.
    """
    if not os.path.isfile(video_path):
        raise FileNotFoundError(f"Cannot open video: {video_path}")
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FileNotFoundError(f"Cannot open video: {video_path}")
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    return _read_frames(cap, lambda idx: idx * 1000.0 / fps)


def webcam_frames(
    camera_id: int = 0,
    target_fps: float = 20,
    width: int = 640,
    height: int = 480,
) -> FrameStream:
    """
    Frames from a webcam, stamped with the monotonic clock.
    Requests the 640x480 reference resolution the detector thresholds are tuned for.
    """
    cap = cv2.VideoCapture(camera_id)
    if not cap.isOpened():
        raise RuntimeError(f"Cannot open camera {camera_id}. Check permissions and that no other app is using it.")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    cap.set(cv2.CAP_PROP_FPS, target_fps)
    return _read_frames(cap, lambda idx: monotonic_ms())
