"""Blink-based liveness signal for the check-in verifier.

A blink is an eye-aspect-ratio dip below the closed threshold that
recovers within a plausible duration. Accepted blinks add a fixed bonus to
the liveness score, and sustained good framing adds a small trickle so a
steady subject still accumulates evidence between blinks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .quality import clamp_score
from .types import EyeContour

logger = logging.getLogger(__name__)

EAR_CLOSED_THRESHOLD = 0.3
BLINK_MIN_SECONDS = 0.05
BLINK_MAX_SECONDS = 0.4
BLINK_REFRACTORY_SECONDS = 1.0
BLINK_BONUS = 30.0
HIGH_QUALITY_TRICKLE_FLOOR = 85.0
HIGH_QUALITY_TRICKLE = 2.0
BASE_TRICKLE = 0.5


def to_millis(seconds: float) -> int:
    """Round a timestamp difference to whole milliseconds."""

    return round(seconds * 1000)


def eye_aspect_ratio(eye: EyeContour) -> Optional[float]:
    """Return ``(|p1-p5| + |p2-p4|) / (2 |p0-p3|)`` or ``None`` for a zero-width eye."""

    horizontal = eye.corner_start.distance_to(eye.corner_end)
    if horizontal <= 0:
        return None
    vertical = eye.top_a.distance_to(eye.bottom_a) + eye.top_b.distance_to(eye.bottom_b)
    return vertical / (2.0 * horizontal)


@dataclass
class LivenessTracker:
    """Accumulates a 0-100 liveness score from blinks and steady framing."""

    ear_threshold: float = EAR_CLOSED_THRESHOLD
    blink_min_seconds: float = BLINK_MIN_SECONDS
    blink_max_seconds: float = BLINK_MAX_SECONDS
    refractory_seconds: float = BLINK_REFRACTORY_SECONDS
    blink_bonus: float = BLINK_BONUS
    score: float = 0.0
    blink_detected: bool = False
    blink_window_start: Optional[float] = None
    last_blink_at: Optional[float] = None

    @property
    def eyes_closed(self) -> bool:
        return self.blink_window_start is not None

    def observe_eyes(self, left: EyeContour, right: EyeContour, now: float) -> bool:
        """Advance the blink state machine; return ``True`` when a blink is accepted."""

        left_ear = eye_aspect_ratio(left)
        right_ear = eye_aspect_ratio(right)
        if left_ear is None or right_ear is None:
            return False

        average_ear = (left_ear + right_ear) / 2.0
        if average_ear < self.ear_threshold:
            if self.blink_window_start is None:
                self.blink_window_start = now
            return False

        if self.blink_window_start is None:
            return False

        duration = now - self.blink_window_start
        self.blink_window_start = None
        if not to_millis(self.blink_min_seconds) < to_millis(duration) < to_millis(self.blink_max_seconds):
            logger.debug(
                "Eye closure outside blink window",
                extra={"event": "blink_rejected", "duration_seconds": duration},
            )
            return False
        if self.last_blink_at is not None and to_millis(now - self.last_blink_at) < to_millis(
            self.refractory_seconds
        ):
            logger.debug(
                "Blink within refractory period",
                extra={"event": "blink_rejected", "duration_seconds": duration},
            )
            return False

        self.blink_detected = True
        self.last_blink_at = now
        self.score = clamp_score(self.score + self.blink_bonus)
        logger.debug(
            "Blink accepted",
            extra={"event": "blink_accepted", "duration_seconds": duration, "score": self.score},
        )
        return True

    def accrue(self, quality: float, stability: float, *, quality_floor: float, stability_floor: float) -> None:
        """Add the steady-framing trickle when both floors are met."""

        if quality < quality_floor or stability < stability_floor:
            return
        increment = HIGH_QUALITY_TRICKLE if quality > HIGH_QUALITY_TRICKLE_FLOOR else BASE_TRICKLE
        self.score = clamp_score(self.score + increment)

    def is_real_person(self, stability: float, *, stability_threshold: float = 70.0) -> bool:
        return self.blink_detected or stability >= stability_threshold

    def reset(self) -> None:
        self.score = 0.0
        self.blink_detected = False
        self.blink_window_start = None
        self.last_blink_at = None


__all__ = ["EAR_CLOSED_THRESHOLD", "LivenessTracker", "eye_aspect_ratio", "to_millis"]
