from __future__ import annotations

import asyncio
import base64
import concurrent.futures
import json
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

# Ensure rep and flush logging is visible when running under uvicorn
logging.getLogger("repsense").setLevel(logging.INFO)

from fastapi import FastAPI, Request
from fastapi import WebSocket, WebSocketDisconnect

import cv2
import numpy as np

from repsense.config import load_settings
from repsense.keypoints import frame_from_list
from repsense.pose import create_pose_detector, estimate_pose
from repsense.session import WorkoutSession, monotonic_ms
from repsense.steps import StepCounter

logger = logging.getLogger("repsense.web")

# Single worker: at most one pose estimate in flight across all live sockets.
_LIVE_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="live_pose")
_POSE = None
_POSE_LOCK = threading.Lock()


def _get_pose():
    global _POSE
    with _POSE_LOCK:
        if _POSE is None:
            _POSE = create_pose_detector()
        return _POSE


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    app.state.session = WorkoutSession(
        flush_interval_ms=settings.flush_interval_ms,
        min_confidence=settings.min_confidence,
    )
    app.state.steps = StepCounter()
    yield
    app.state.session.close()


app = FastAPI(title="RepSense", lifespan=lifespan)


def _counts_payload(app_: FastAPI, kind: str = "counts") -> dict[str, Any]:
    return {
        "type": kind,
        "counts": app_.state.session.counts,
        "steps": app_.state.steps.steps,
    }


def _decode_image(image_data: str) -> Optional[np.ndarray]:
    if image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(image_data)
    except ValueError:
        return None
    np_arr = np.frombuffer(img_bytes, np.uint8)
    if np_arr.size == 0:
        return None
    return cv2.imdecode(np_arr, cv2.IMREAD_COLOR)


def _process_image_sync(session: WorkoutSession, frame_bgr: np.ndarray) -> None:
    frame = estimate_pose(frame_bgr, _get_pose(), monotonic_ms())
    if frame is None or not frame.complete:
        return
    session.process(frame)


def _process_keypoints(session: WorkoutSession, payload: dict[str, Any]) -> None:
    keypoints = payload.get("keypoints")
    if not isinstance(keypoints, list):
        return
    try:
        frame = frame_from_list(
            keypoints,
            float(payload.get("width", 640)),
            float(payload.get("height", 480)),
            timestamp_ms=monotonic_ms(),
            normalized=bool(payload.get("normalized", True)),
        )
    except (LookupError, TypeError, ValueError):
        return
    if not frame.complete:
        return
    session.process(frame)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/counts")
def counts(request: Request) -> dict[str, Any]:
    return _counts_payload(request.app)


@app.post("/reset")
def reset(request: Request) -> dict[str, Any]:
    request.app.state.session.reset()
    request.app.state.steps.reset()
    return _counts_payload(request.app)


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket) -> None:
    """
    Messages in:  {"type": "keypoints", "keypoints": [[x, y, score] * 17], "width", "height"}
                  {"type": "image", "image": "<base64 jpeg>"}
                  {"type": "motion", "x", "y", "z"}
                  {"type": "reset"} | {"type": "stop"}
    Messages out: {"type": "counts", ...} whenever a published count changes,
                  {"type": "final", ...} after the teardown flush on stop.
    """
    await websocket.accept()
    session: WorkoutSession = websocket.app.state.session
    steps: StepCounter = websocket.app.state.steps
    loop = asyncio.get_event_loop()
    changed = asyncio.Event()

    def _on_change(exercise: str, old: int, new: int) -> None:
        loop.call_soon_threadsafe(changed.set)

    unsubscribe = session.store.subscribe(_on_change)
    logger.info("live: session started")
    frames = 0
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type", "image" if "image" in payload else "keypoints")

            if kind == "stop":
                session.flush(force=True)
                await websocket.send_text(json.dumps(_counts_payload(websocket.app, "final")))
                logger.info("live: stop received (frames=%s, counts=%s)", frames, session.counts)
                await websocket.close()
                return
            if kind == "reset":
                session.reset()
                steps.reset()
            elif kind == "motion":
                try:
                    counted = steps.push(float(payload["x"]), float(payload["y"]), float(payload["z"]))
                except (KeyError, TypeError, ValueError):
                    continue
                if counted:
                    changed.set()
            elif kind == "keypoints":
                _process_keypoints(session, payload)
                frames += 1
            elif kind == "image":
                image_data = payload.get("image")
                if not isinstance(image_data, str):
                    continue
                frame_bgr = _decode_image(image_data)
                if frame_bgr is None:
                    continue
                try:
                    await loop.run_in_executor(_LIVE_EXECUTOR, _process_image_sync, session, frame_bgr)
                except Exception as e:
                    logger.warning("live: pose estimation unavailable: %s", e)
                    await websocket.send_text(json.dumps({"type": "status", "status": "pose model unavailable"}))
                    continue
                frames += 1
            else:
                continue

            session.flush()
            # Listener callbacks from the executor thread are queued on the loop.
            await asyncio.sleep(0)
            if changed.is_set():
                changed.clear()
                await websocket.send_text(json.dumps(_counts_payload(websocket.app)))
    except WebSocketDisconnect:
        session.flush(force=True)
        logger.info("live: client disconnected (frames=%s, counts=%s)", frames, session.counts)
    finally:
        unsubscribe()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
