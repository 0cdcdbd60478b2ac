"""Positional stability tracking across consecutive frames."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

import numpy as np

from .quality import clamp_score
from .types import Point


@dataclass
class StabilityTracker:
    """Ring buffer of recent face centres scored by average inter-frame movement."""

    maxlen: int = 10
    min_samples: int = 5
    movement_factor: float = 1.5
    _positions: deque[Point] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.maxlen = max(2, int(self.maxlen))
        self.min_samples = min(self.maxlen, max(2, int(self.min_samples)))
        self._positions = deque(maxlen=self.maxlen)

    def add(self, center: Point) -> None:
        self._positions.append(center)

    def average_movement(self) -> float:
        if len(self._positions) < 2:
            return 0.0
        coords = np.array([(point.x, point.y) for point in self._positions], dtype=float)
        steps = np.linalg.norm(np.diff(coords, axis=0), axis=1)
        return float(steps.mean())

    def score(self) -> float:
        """Return 0 until enough samples are buffered, then ``100 - movement * factor``."""

        if len(self._positions) < self.min_samples:
            return 0.0
        return clamp_score(100.0 - self.average_movement() * self.movement_factor)

    def snapshot(self) -> list[Point]:
        return list(self._positions)

    def clear(self) -> None:
        self._positions.clear()

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._positions)


__all__ = ["StabilityTracker"]
