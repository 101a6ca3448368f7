"""
Detector registry: owns one ExerciseState per detector and dispatches each
frame's filtered keypoints to all detectors in a fixed order.
"""
from __future__ import annotations

import logging
from typing import Sequence

from .detectors import DETECTORS, Detector, ExerciseState, Points, RepEvent

logger = logging.getLogger(__name__)


class DetectorRegistry:
    def __init__(self, detectors: Sequence[Detector] = DETECTORS) -> None:
        self.detectors = tuple(detectors)
        names = [d.exercise for d in self.detectors]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate detector for exercise in {names}")
        self._states: dict[str, ExerciseState] = {}
        self.reset()

    @property
    def exercises(self) -> tuple[str, ...]:
        return tuple(d.exercise for d in self.detectors)

    def state(self, exercise: str) -> ExerciseState:
        return self._states[exercise]

    def states(self) -> dict[str, ExerciseState]:
        return dict(self._states)

    def reset(self) -> None:
        """Return every detector to its rest phase and clear debounce history."""
        self._states = {d.exercise: d.initial_state() for d in self.detectors}

    def dispatch(
        self,
        points: Points,
        width: float,
        height: float,
        now_ms: float,
    ) -> list[RepEvent]:
        """Run every detector once on this frame; return the events emitted, in dispatch order."""
        events: list[RepEvent] = []
        for det in self.detectors:
            new_state, event = det.step(self._states[det.exercise], points, width, height, now_ms)
            if new_state != self._states[det.exercise]:
                logger.debug(
                    "detector %s: %s -> %s",
                    det.exercise, self._states[det.exercise].phase, new_state.phase,
                )
            self._states[det.exercise] = new_state
            if event is not None:
                events.append(event)
        return events

