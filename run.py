#!/usr/bin/env python3
"""
Exercise repetition counting: live (webcam), offline (video), or replay of a
recorded keypoint session.
Usage:
  Live:      python run.py --live [--camera 0]
  Offline:   python run.py --video path/to/video.mp4
  Replay:    python run.py --keypoints path/to/session.json
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

# Run from project root so repsense is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from repsense.config import Settings, load_settings
from repsense.io_stream import video_frames
from repsense.keypoints import load_keypoint_frames
from repsense.live import run_live_pipeline, save_session
from repsense.pose import MediaPipePoseSource
from repsense.scheduler import FrameScheduler, PoseSource, ReplaySource
from repsense.session import WorkoutSession

logger = logging.getLogger("repsense.run")


def _run_source(source: PoseSource, settings: Settings) -> tuple[WorkoutSession, FrameScheduler]:
    session = WorkoutSession(
        flush_interval_ms=settings.flush_interval_ms,
        min_confidence=settings.min_confidence,
    )
    scheduler = FrameScheduler(source, session)
    try:
        asyncio.run(scheduler.run())
    finally:
        scheduler.close()
    return session, scheduler


def run_offline(video_path: str, settings: Settings, output_dir: str) -> dict[str, int]:
    """Process video file: pose -> detectors -> session_counts.json."""
    os.makedirs(output_dir, exist_ok=True)
    source = MediaPipePoseSource(video_frames(video_path), cache_dir=output_dir)
    source.load()
    session, scheduler = _run_source(source, settings)
    save_session(
        os.path.join(output_dir, "session_counts.json"),
        session,
        source=video_path,
        extra={"scheduler": dict(scheduler.stats)},
    )
    return session.counts


def run_replay(keypoints_path: str, settings: Settings, output_dir: str) -> dict[str, int]:
    """Replay recorded keypoint frames through the detectors."""
    os.makedirs(output_dir, exist_ok=True)
    source = ReplaySource(load_keypoint_frames(keypoints_path))
    session, scheduler = _run_source(source, settings)
    save_session(
        os.path.join(output_dir, "session_counts.json"),
        session,
        source=keypoints_path,
        extra={"scheduler": dict(scheduler.stats)},
    )
    return session.counts


def main() -> None:
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    ap = argparse.ArgumentParser(description="Exercise repetition counter: live webcam, video file or keypoint replay")
    ap.add_argument("--live", action="store_true", help="Use live webcam")
    ap.add_argument("--video", type=str, default=None, help="Path to video file (offline mode)")
    ap.add_argument("--keypoints", type=str, default=None, help="Path to recorded keypoint JSON (replay mode)")
    ap.add_argument("--camera", type=int, default=None, help="Camera device id (default from REPSENSE_CAMERA_ID or 0)")
    ap.add_argument("--output-dir", type=str, default=None, help="Output directory")
    ap.add_argument("--log-level", type=str, default="INFO", help="Logging level (default INFO)")
    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    modes = [m for m in (args.live, args.video, args.keypoints) if m]
    if len(modes) != 1:
        print("Error: provide exactly one of --live, --video PATH or --keypoints PATH", file=sys.stderr)
        sys.exit(1)

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if args.camera is not None:
        settings = replace(settings, camera_id=args.camera)
    output_dir = args.output_dir or settings.output_dir

    try:
        if args.live:
            counts = run_live_pipeline(settings, output_dir=output_dir)
        elif args.video:
            counts = run_offline(args.video, settings, output_dir)
        else:
            counts = run_replay(args.keypoints, settings, output_dir)
    except (FileNotFoundError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    summary = ", ".join(f"{k}={v}" for k, v in counts.items())
    print(f"Done. {summary}. Saved: {output_dir}/session_counts.json")


if __name__ == "__main__":
    main()
