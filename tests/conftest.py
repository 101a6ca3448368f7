from __future__ import annotations

from typing import Optional

import pytest

from repsense.keypoints import KEYPOINT_COUNT, KEYPOINT_NAMES, Keypoint, PoseFrame


def build_frame(
    points: dict[str, tuple[float, float]],
    t: Optional[float] = None,
    width: float = 640,
    height: float = 480,
    score: float = 0.9,
    slots: int = KEYPOINT_COUNT,
) -> PoseFrame:
    """Frame in the model's normalized convention from pixel positions by name."""
    keypoints: list[Optional[Keypoint]] = [None] * slots
    for name, (x, y) in points.items():
        idx = KEYPOINT_NAMES.index(name)
        keypoints[idx] = Keypoint(name=None, x=x / width, y=y / height, score=score)
    return PoseFrame(keypoints=keypoints, width=width, height=height, timestamp_ms=t)


def pixel_points(**points: tuple[float, float]) -> dict[str, Keypoint]:
    """Filtered (pixel-space) keypoints for calling detector steps directly."""
    return {name: Keypoint(name=name, x=x, y=y, score=0.9) for name, (x, y) in points.items()}


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def points():
    return pixel_points
