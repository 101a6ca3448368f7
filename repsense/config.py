"""
Runtime settings from environment variables (optionally loaded from .env by
the entry points).
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .counts import FLUSH_INTERVAL_MS
from .keypoints import CONFIDENCE_THRESHOLD


@dataclass(frozen=True)
class Settings:
    min_confidence: float = CONFIDENCE_THRESHOLD
    flush_interval_ms: float = FLUSH_INTERVAL_MS
    camera_id: int = 0
    target_fps: float = 20.0
    output_dir: str = "outputs"


def _number(env: Mapping[str, str], key: str, default: float, cast=float):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    if env is None:
        env = os.environ
    return Settings(
        min_confidence=_number(env, "REPSENSE_MIN_CONFIDENCE", CONFIDENCE_THRESHOLD),
        flush_interval_ms=_number(env, "REPSENSE_FLUSH_INTERVAL_MS", FLUSH_INTERVAL_MS),
        camera_id=_number(env, "REPSENSE_CAMERA_ID", 0, cast=int),
        target_fps=_number(env, "REPSENSE_TARGET_FPS", 20.0),
        output_dir=env.get("REPSENSE_OUTPUT_DIR") or "outputs",
    )
