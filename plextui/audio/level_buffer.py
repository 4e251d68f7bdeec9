"""
Thread-safe rolling buffer of loudness levels.

This module provides LevelRingBuffer, the fixed-capacity history of recent
levels that feeds the waveform view. The pipe reader thread is the only
writer; the renderer and level queries are readers. Readers always receive
a copy, so a render never holds the lock longer than the copy takes.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List

DEFAULT_CAPACITY = 200


@dataclass
class LevelRingBufferStats:
    """
    Statistics for LevelRingBuffer.

    Attributes:
        capacity: Maximum number of levels held
        count: Number of levels currently held
        total_pushed: Levels pushed since construction (survives clear())
    """
    capacity: int
    count: int
    total_pushed: int


def _clamp(level: float) -> float:
    return max(0.0, min(1.0, float(level)))


class LevelRingBuffer:
    """
    Bounded FIFO of loudness levels in [0.0, 1.0].

    Length never exceeds capacity; when full, the oldest level is evicted.
    All operations take a single reentrant lock around mutation and copy-out.

    Attributes:
        capacity: Maximum number of levels the buffer can hold
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """
        Initialize level buffer.

        Args:
            capacity: Maximum number of levels (must be > 0)

        Raises:
            ValueError: If capacity <= 0
        """
        if capacity <= 0:
            raise ValueError(f"LevelRingBuffer capacity must be > 0, got {capacity}")

        self._capacity = capacity
        # deque with maxlen evicts from the left on append
        self._levels: deque[float] = deque(maxlen=capacity)
        self._lock = threading.RLock()
        self._current_level = 0.0
        self._total_pushed = 0

    def push(self, level: float) -> None:
        """Clamp and append one level, evicting the oldest if full."""
        value = _clamp(level)
        with self._lock:
            self._levels.append(value)
            self._current_level = value
            self._total_pushed += 1

    def push_batch(self, levels: Iterable[float]) -> None:
        """
        Append several levels under one lock acquisition.

        Used when one pipe read yields more than one analysis window, to
        bound lock contention with the renderer.
        """
        values = [_clamp(level) for level in levels]
        if not values:
            return
        with self._lock:
            self._levels.extend(values)
            self._current_level = values[-1]
            self._total_pushed += len(values)

    def snapshot(self, count: int) -> List[float]:
        """
        Return the most recent `count` levels, oldest first.

        If fewer than `count` levels exist the result is left-padded with 0.0,
        so len(result) == count always holds for count >= 0.
        """
        if count <= 0:
            return []
        with self._lock:
            if count >= len(self._levels):
                recent = list(self._levels)
            else:
                recent = list(self._levels)[-count:]
        if len(recent) < count:
            recent = [0.0] * (count - len(recent)) + recent
        return recent

    def clear(self) -> None:
        """Reset to `capacity` zeros and a current level of 0.0."""
        with self._lock:
            self._levels.clear()
            self._levels.extend([0.0] * self._capacity)
            self._current_level = 0.0

    def current_level(self) -> float:
        with self._lock:
            return self._current_level

    def stats(self) -> LevelRingBufferStats:
        with self._lock:
            return LevelRingBufferStats(
                capacity=self._capacity,
                count=len(self._levels),
                total_pushed=self._total_pushed,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._levels)

    @property
    def capacity(self) -> int:
        return self._capacity
