"""
Frame scheduler: pulls one pose estimate at a time from a PoseSource and
feeds it to a WorkoutSession. At most one estimate is in flight; frames the
source cannot deliver (model not ready, no skeleton, short skeleton) are
skipped without touching any count.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from collections import Counter
from typing import Callable, Iterable, Optional, Protocol

from .detectors import RepEvent
from .keypoints import PoseFrame
from .session import WorkoutSession, monotonic_ms

logger = logging.getLogger(__name__)

# Sleep between ticks when the source has nothing to deliver.
IDLE_SLEEP_S = 0.01


class PoseSource(Protocol):
    @property
    def ready(self) -> bool: ...

    def estimate(self) -> Optional[PoseFrame]: ...

    def close(self) -> None: ...


class ReplaySource:
    """Plays back a fixed sequence of frames (None entries mean 'no skeleton')."""

    def __init__(self, frames: Iterable[Optional[PoseFrame]], ready: bool = True) -> None:
        self._frames = list(frames)
        self._pos = 0
        self.ready = ready
        self.closed = False

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._frames)

    def estimate(self) -> Optional[PoseFrame]:
        if self.exhausted:
            return None
        frame = self._frames[self._pos]
        self._pos += 1
        return frame

    def close(self) -> None:
        self.closed = True


class FrameScheduler:
    def __init__(
        self,
        source: PoseSource,
        session: WorkoutSession,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.source = source
        self.session = session
        self.clock = clock
        self.stats: Counter[str] = Counter()
        self.closed = False
        self._in_flight = False
        self._frame_time_ms: Optional[float] = None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="pose_estimate"
        )

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def process_next_frame(self) -> list[RepEvent]:
        """
        Process the next available frame. Returns the repetition events it
        produced; an empty list when the frame was skipped.
        """
        if self.closed:
            return []
        if self._in_flight:
            self.stats["skipped_in_flight"] += 1
            logger.debug("scheduler: estimate still in flight, skipping tick")
            return []
        if not self.source.ready:
            self.stats["skipped_not_ready"] += 1
            self._idle_flush()
            return []

        self._in_flight = True
        try:
            frame = await asyncio.get_event_loop().run_in_executor(
                self._executor, self.source.estimate
            )
        except Exception:
            self.stats["estimate_errors"] += 1
            logger.warning("scheduler: pose estimation failed, skipping frame", exc_info=True)
            self._idle_flush()
            return []
        finally:
            self._in_flight = False

        if frame is None:
            self.stats["skipped_empty"] += 1
            logger.debug("scheduler: no skeleton")
            self._idle_flush()
            return []
        if not frame.complete:
            self.stats["skipped_malformed"] += 1
            logger.debug("scheduler: skeleton has %s of 17 slots", len(frame.keypoints))
            self._idle_flush()
            return []

        self._frame_time_ms = frame.timestamp_ms
        now_ms = frame.timestamp_ms if frame.timestamp_ms is not None else self.clock()
        self.stats["processed"] += 1
        return self.session.process(frame, now_ms)

    def _idle_flush(self) -> None:
        # Frames stamped with their own time base (video position, replay) keep
        # that base; the wall clock would not be comparable.
        if self._frame_time_ms is not None:
            self.session.flush(self._frame_time_ms)
        else:
            self.session.flush(self.clock())

    async def run(
        self,
        max_frames: Optional[int] = None,
        idle_sleep_s: float = IDLE_SLEEP_S,
    ) -> list[RepEvent]:
        """
        Tick until closed, until `max_frames` ticks have run, or until a
        replay source is exhausted. Returns all events produced.
        """
        logger.info("scheduler: started")
        events: list[RepEvent] = []
        ticks = 0
        while not self.closed:
            if max_frames is not None and ticks >= max_frames:
                break
            if getattr(self.source, "exhausted", False):
                break
            ready = self.source.ready
            events.extend(await self.process_next_frame())
            ticks += 1
            if not ready:
                await asyncio.sleep(idle_sleep_s)
            else:
                await asyncio.sleep(0)
        logger.info("scheduler: stopped after %s ticks (%s)", ticks, dict(self.stats))
        return events

    def close(self) -> dict[str, int]:
        """Stop ticking, release the pose source, publish everything buffered."""
        if self.closed:
            return {}
        self.closed = True
        self._executor.shutdown(wait=True)
        try:
            self.source.close()
        finally:
            changed = self.session.close()
        return changed
