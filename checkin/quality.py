"""Frame-quality scoring derived from face size and detector confidence."""

from __future__ import annotations

from .types import BoundingBox, FrameSize

# A face filling 1/8 of the frame saturates the size component.
SIZE_SCORE_MULTIPLIER = 800.0


def clamp_score(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


def score_quality(
    box: BoundingBox,
    frame_size: FrameSize,
    detector_confidence: float,
    *,
    size_multiplier: float = SIZE_SCORE_MULTIPLIER,
) -> int:
    """Return a 0-100 score averaging face coverage and detector confidence."""

    if frame_size.area <= 0:
        size_score = 0.0
    else:
        size_ratio = box.area / frame_size.area
        size_score = min(100.0, size_ratio * size_multiplier)
    confidence_score = clamp_score(detector_confidence * 100.0)
    return int(clamp_score(round((size_score + confidence_score) / 2.0)))


__all__ = ["SIZE_SCORE_MULTIPLIER", "clamp_score", "score_quality"]
