"""
Step counter from accelerometer samples (acceleration including gravity).
A step is counted when the sample magnitude jumps by more than the threshold
relative to the previous sample.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# m/s^2 change in acceleration magnitude between consecutive samples.
STEP_THRESHOLD = 12.0


class StepCounter:
    def __init__(self, threshold: float = STEP_THRESHOLD) -> None:
        self.threshold = threshold
        self.steps = 0
        self._last_magnitude: Optional[float] = None
        self._lock = threading.Lock()

    def push(self, x: float, y: float, z: float) -> bool:
        """Feed one sample; returns True if it counted a step. Non-finite samples are ignored."""
        magnitude = float(np.sqrt(x * x + y * y + z * z))
        if not np.isfinite(magnitude):
            return False
        with self._lock:
            # The first sample compares against rest (0), like a fresh sensor.
            last = self._last_magnitude if self._last_magnitude is not None else 0.0
            self._last_magnitude = magnitude
            if abs(magnitude - last) > self.threshold:
                self.steps += 1
                logger.debug("step %s (|a|=%.2f)", self.steps, magnitude)
                return True
        return False

    def reset(self) -> None:
        with self._lock:
            self.steps = 0
            self._last_magnitude = None
