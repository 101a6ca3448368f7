"""
Live webcam pipeline: capture, pose, exercise detectors, overlay window.
Saves the session counts on exit (q); r resets the session.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Optional

import cv2

from .config import Settings, load_settings
from .io_stream import webcam_frames
from .keypoints import filter_frame
from .overlay import draw_counts_overlay
from .pose import MediaPipePoseSource
from .scheduler import IDLE_SLEEP_S, FrameScheduler
from .session import WorkoutSession, monotonic_ms

logger = logging.getLogger(__name__)

# No-pose warning after this many milliseconds
NO_POSE_WARN_MS = 2000.0
WINDOW_NAME = "RepSense (q=quit, r=reset)"


def save_session(
    path: str,
    session: WorkoutSession,
    source: str,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write the published counts of a finished session as JSON."""
    data: dict[str, Any] = {
        "source": source,
        "counts": session.counts,
        "total": sum(session.counts.values()),
        "frames_processed": session.frames_processed,
    }
    if extra:
        data.update(extra)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info("session saved to %s", path)


def _log_count_change(exercise: str, old: int, new: int) -> None:
    logger.info("count %s: %s -> %s", exercise, old, new)


async def _live_loop(
    scheduler: FrameScheduler,
    source: MediaPipePoseSource,
    session: WorkoutSession,
) -> None:
    last_pose_ms = monotonic_ms()
    while not scheduler.closed:
        if source.error is not None:
            raise RuntimeError("Pose model failed to load") from source.error
        if source.exhausted:
            break
        if not source.ready:
            await asyncio.sleep(IDLE_SLEEP_S)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            continue

        await scheduler.process_next_frame()
        if source.last_frame is not None:
            last_pose_ms = monotonic_ms()

        image = source.last_image
        if image is not None:
            message = None
            if monotonic_ms() - last_pose_ms > NO_POSE_WARN_MS:
                message = "Move into frame"
            points = (
                filter_frame(source.last_frame, min_confidence=session.min_confidence)
                if source.last_frame is not None
                else None
            )
            out_frame = image.copy()
            draw_counts_overlay(out_frame, points, session.counts, message)
            cv2.imshow(WINDOW_NAME, out_frame)

        key = cv2.waitKey(1) & 0xFF
        if key == ord("q"):
            break
        if key == ord("r"):
            session.reset()


def run_live_pipeline(
    settings: Optional[Settings] = None,
    output_dir: Optional[str] = None,
) -> dict[str, int]:
    """
    Run the live capture loop until q or camera end. The pose model loads in
    the background; frames are only pulled once it is ready. On exit the
    session is flushed and saved to session_counts.json.
    """
    settings = settings or load_settings()
    output_dir = output_dir or settings.output_dir
    os.makedirs(output_dir, exist_ok=True)

    frames = webcam_frames(settings.camera_id, target_fps=settings.target_fps)
    source = MediaPipePoseSource(frames, cache_dir=output_dir)
    source.start()
    session = WorkoutSession(
        flush_interval_ms=settings.flush_interval_ms,
        min_confidence=settings.min_confidence,
    )
    session.store.subscribe(_log_count_change)
    scheduler = FrameScheduler(source, session)

    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
    try:
        asyncio.run(_live_loop(scheduler, source, session))
    finally:
        scheduler.close()
        cv2.destroyAllWindows()

    save_session(
        os.path.join(output_dir, "session_counts.json"),
        session,
        source="live",
        extra={"scheduler": dict(scheduler.stats)},
    )
    return session.counts
