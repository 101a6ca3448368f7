"""
Draw filtered keypoints and current counts on frames for the live window.
"""
from __future__ import annotations

from typing import Mapping, Optional

import cv2
import numpy as np

from .keypoints import Keypoint

# COCO skeleton edges by keypoint name
_SKELETON = (
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"),
    ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"),
    ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"),
    ("right_knee", "right_ankle"),
    ("nose", "left_eye"),
    ("nose", "right_eye"),
    ("left_eye", "left_ear"),
    ("right_eye", "right_ear"),
)


def _pt(p: Keypoint) -> tuple[int, int]:
    return (int(round(p.x)), int(round(p.y)))


def draw_keypoints(
    frame: np.ndarray,
    points: Mapping[str, Keypoint],
    color: tuple[int, int, int] = (0, 0, 255),
    thickness: int = 2,
) -> None:
    """Draw filtered (pixel-space) keypoints and the edges between them, in-place."""
    for a, b in _SKELETON:
        if a in points and b in points:
            cv2.line(frame, _pt(points[a]), _pt(points[b]), (0, 255, 0), thickness)
    for p in points.values():
        cv2.circle(frame, _pt(p), 4, color, -1)


def draw_counts_overlay(
    frame: np.ndarray,
    points: Optional[Mapping[str, Keypoint]],
    counts: Mapping[str, int],
    message: Optional[str] = None,
) -> None:
    """
    Draw realtime overlay on frame (in-place):
    - Keypoints if present
    - One line per exercise count
    - Optional message (e.g. "Move into frame")
    """
    h, w = frame.shape[:2]
    if points:
        draw_keypoints(frame, points)

    dy = 24
    panel_h = 16 + dy * len(counts)
    overlay = frame.copy()
    cv2.rectangle(overlay, (0, 0), (230, panel_h), (40, 40, 40), -1)
    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)

    font = cv2.FONT_HERSHEY_SIMPLEX
    for i, (exercise, value) in enumerate(counts.items()):
        label = exercise.replace("_", " ").title()
        cv2.putText(frame, f"{label}: {value}", (12, 28 + i * dy), font, 0.6, (255, 255, 255), 2, cv2.LINE_AA)

    if message:
        cv2.putText(
            frame, message, (w // 2 - 120, h // 2),
            font, 0.8, (0, 200, 255), 2, cv2.LINE_AA
        )
