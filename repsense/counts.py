"""
Count store (published counts, change notification) and count buffer
(local per-event accumulation with rate-limited flush into the store).
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Mapping, Optional

from .detectors import ALL_EXERCISES

logger = logging.getLogger(__name__)

# Minimum time between two flush attempts.
FLUSH_INTERVAL_MS = 800.0

# listener(exercise, old_value, new_value)
CountListener = Callable[[str, int, int], None]


class CountStore:
    """
    Externally visible counts. Listeners are called once per exercise whose
    published value actually changes.
    """

    def __init__(self, exercises: Iterable[str] = ALL_EXERCISES) -> None:
        self._counts: dict[str, int] = {e: 0 for e in exercises}
        self._listeners: list[CountListener] = []
        self._lock = threading.Lock()

    @property
    def exercises(self) -> tuple[str, ...]:
        return tuple(self._counts)

    def get(self, exercise: str) -> int:
        with self._lock:
            return self._counts[exercise]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def subscribe(self, listener: CountListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, values: Mapping[str, int]) -> dict[str, int]:
        """Set published values; returns {exercise: new_value} for those that changed."""
        changes: list[tuple[str, int, int]] = []
        with self._lock:
            for exercise, value in values.items():
                if exercise not in self._counts:
                    raise KeyError(exercise)
                if value < 0:
                    raise ValueError(f"negative count for {exercise}: {value}")
                old = self._counts[exercise]
                if old != value:
                    self._counts[exercise] = value
                    changes.append((exercise, old, value))
            listeners = list(self._listeners)
        for exercise, old, new in changes:
            for listener in listeners:
                try:
                    listener(exercise, old, new)
                except Exception:
                    logger.exception("count listener failed for %s", exercise)
        return {exercise: new for exercise, _, new in changes}

    def reset(self) -> dict[str, int]:
        return self.publish({e: 0 for e in self.exercises})


class CountBuffer:
    """
    Local count accumulation. `record_event` is never rate-limited;
    `maybe_flush` propagates all differing entries at once, at most once per
    flush interval. The first flush after construction or reset is immediate.
    """

    def __init__(
        self,
        store: CountStore,
        flush_interval_ms: float = FLUSH_INTERVAL_MS,
    ) -> None:
        if flush_interval_ms < 0:
            raise ValueError("flush_interval_ms must be >= 0")
        self.store = store
        self.flush_interval_ms = flush_interval_ms
        self._local: dict[str, int] = {e: 0 for e in store.exercises}
        self._last_flush_ms: Optional[float] = None
        self._lock = threading.RLock()

    @property
    def last_flush_ms(self) -> Optional[float]:
        return self._last_flush_ms

    def get(self, exercise: str) -> int:
        with self._lock:
            return self._local[exercise]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._local)

    def record_event(self, exercise: str) -> int:
        with self._lock:
            if exercise not in self._local:
                raise KeyError(exercise)
            self._local[exercise] += 1
            return self._local[exercise]

    def pending(self) -> dict[str, int]:
        """Buffer entries that differ from the published store."""
        with self._lock:
            published = self.store.snapshot()
            return {e: v for e, v in self._local.items() if published.get(e) != v}

    def maybe_flush(self, now_ms: float) -> dict[str, int]:
        """
        Publish pending entries if the flush interval has elapsed since the
        last flush attempt. Every attempt that passes the gate restarts the
        interval, whether or not anything was pending. Returns the published
        changes (empty when gated or nothing was pending).
        """
        with self._lock:
            if (
                self._last_flush_ms is not None
                and now_ms - self._last_flush_ms < self.flush_interval_ms
            ):
                return {}
            self._last_flush_ms = now_ms
            diffs = self.pending()
            if not diffs:
                return {}
            return self._publish(diffs, now_ms)

    def flush(self, now_ms: Optional[float] = None) -> dict[str, int]:
        """Unconditional flush (teardown)."""
        with self._lock:
            diffs = self.pending()
            if not diffs:
                return {}
            return self._publish(diffs, now_ms if now_ms is not None else self._last_flush_ms)

    def reset(self) -> None:
        with self._lock:
            self._local = {e: 0 for e in self._local}
            self._last_flush_ms = None
            self.store.reset()
        logger.info("count buffer reset")

    def _publish(self, diffs: dict[str, int], now_ms: Optional[float]) -> dict[str, int]:
        changed = self.store.publish(diffs)
        self._last_flush_ms = now_ms
        logger.info("flush: %s", changed)
        return changed
