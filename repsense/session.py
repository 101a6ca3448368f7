"""
Workout session: one frame step is filter -> detector registry -> count
buffer -> rate-limited flush into the count store. Frame steps, resets and
teardown are serialized by a single lock.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from .counts import FLUSH_INTERVAL_MS, CountBuffer, CountStore
from .detectors import RepEvent
from .keypoints import CONFIDENCE_THRESHOLD, PoseFrame, filter_frame
from .registry import DetectorRegistry

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class WorkoutSession:
    def __init__(
        self,
        store: Optional[CountStore] = None,
        flush_interval_ms: float = FLUSH_INTERVAL_MS,
        min_confidence: float = CONFIDENCE_THRESHOLD,
        registry: Optional[DetectorRegistry] = None,
    ) -> None:
        self.registry = registry or DetectorRegistry()
        self.store = store or CountStore(self.registry.exercises)
        self.buffer = CountBuffer(self.store, flush_interval_ms=flush_interval_ms)
        self.min_confidence = min_confidence
        self.frames_processed = 0
        self.closed = False
        self._lock = threading.Lock()

    @property
    def counts(self) -> dict[str, int]:
        """Published counts."""
        return self.store.snapshot()

    @property
    def pending(self) -> dict[str, int]:
        """Local buffer counts, including events not yet flushed."""
        return self.buffer.snapshot()

    def process(self, frame: PoseFrame, now_ms: Optional[float] = None) -> list[RepEvent]:
        """
        Run one frame through every detector. `now_ms` defaults to the frame
        timestamp, then to the monotonic clock. Returns the events emitted by
        this frame; counts reach the store on the next allowed flush.
        """
        if now_ms is None:
            now_ms = frame.timestamp_ms if frame.timestamp_ms is not None else monotonic_ms()
        with self._lock:
            if self.closed:
                return []
            points = filter_frame(frame, min_confidence=self.min_confidence)
            events = self.registry.dispatch(points, frame.width, frame.height, now_ms)
            for event in events:
                self.buffer.record_event(event.exercise)
            self.buffer.maybe_flush(now_ms)
            self.frames_processed += 1
        return events

    def flush(self, now_ms: Optional[float] = None, force: bool = False) -> dict[str, int]:
        """
        Flush without a frame: rate-limited on idle ticks, unconditional with
        `force` (client teardown while the session lives on).
        """
        if now_ms is None:
            now_ms = monotonic_ms()
        with self._lock:
            if force:
                return self.buffer.flush(now_ms)
            return self.buffer.maybe_flush(now_ms)

    def reset(self) -> None:
        with self._lock:
            self.registry.reset()
            self.buffer.reset()
            self.frames_processed = 0
        logger.info("session reset")

    def close(self) -> dict[str, int]:
        """Final unconditional flush. Later frames are ignored."""
        with self._lock:
            if self.closed:
                return {}
            self.closed = True
            changed = self.buffer.flush(monotonic_ms())
        logger.info("session closed: %s", self.store.snapshot())
        return changed
