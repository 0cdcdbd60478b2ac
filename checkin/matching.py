"""Descriptor comparison against an enrolled reference."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .quality import clamp_score

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 50.0


def euclidean_distance(candidate: np.ndarray, reference: np.ndarray) -> Optional[float]:
    """Return the L2 distance, or ``None`` when the vectors cannot be compared."""

    candidate = np.asarray(candidate, dtype=float).ravel()
    reference = np.asarray(reference, dtype=float).ravel()
    if candidate.size == 0 or candidate.shape != reference.shape:
        logger.debug(
            "Descriptor shapes differ: %s vs %s",
            candidate.shape,
            reference.shape,
            extra={"event": "match_skipped", "reason": "shape_mismatch"},
        )
        return None
    distance = float(np.linalg.norm(candidate - reference))
    if not np.isfinite(distance):
        return None
    return distance


def match_score(current: Optional[np.ndarray], reference: Optional[np.ndarray]) -> float:
    """Map descriptor distance onto 0-100, where distance >= 1 scores 0."""

    if current is None or reference is None:
        logger.debug(
            "Match score unavailable",
            extra={
                "event": "match_skipped",
                "reason": "no_reference" if reference is None else "no_descriptor",
            },
        )
        return 0.0
    distance = euclidean_distance(current, reference)
    if distance is None:
        return 0.0
    return clamp_score((1.0 - min(distance, 1.0)) * 100.0)


@dataclass(frozen=True)
class MatchResult:
    score: float
    threshold: float = MATCH_THRESHOLD

    @property
    def face_detected(self) -> bool:
        return self.score > 0

    @property
    def is_match(self) -> bool:
        return self.score > self.threshold

    @property
    def message(self) -> str:
        if not self.face_detected:
            return "No face detected"
        if not self.is_match:
            return "Face not recognised"
        return "Face recognised"


def evaluate_match(
    current: Optional[np.ndarray],
    reference: Optional[np.ndarray],
    *,
    threshold: float = MATCH_THRESHOLD,
) -> MatchResult:
    return MatchResult(score=match_score(current, reference), threshold=threshold)


__all__ = ["MATCH_THRESHOLD", "MatchResult", "euclidean_distance", "evaluate_match", "match_score"]
