"""Verdict records and frozen evidence produced at capture time."""

from __future__ import annotations

import datetime as _dt
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterator, Optional

import cv2
import numpy as np

from .matching import MATCH_THRESHOLD

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 5
DEFAULT_JPEG_QUALITY = 90


@dataclass(frozen=True)
class VerificationAttempt:
    """Immutable outcome of a single capture cycle."""

    match_score: float
    liveness_score: float
    quality_score: float
    stability_score: float
    success: bool
    timestamp: float
    is_real_person: bool = False
    captured_at: _dt.datetime = field(
        default_factory=lambda: _dt.datetime.now(tz=_dt.timezone.utc), compare=False
    )

    def as_dict(self) -> dict[str, object]:
        return {
            "match_score": self.match_score,
            "liveness_score": self.liveness_score,
            "quality_score": self.quality_score,
            "stability_score": self.stability_score,
            "success": self.success,
            "timestamp": self.timestamp,
            "is_real_person": self.is_real_person,
            "captured_at": self.captured_at.isoformat(),
        }


def encode_jpeg(frame: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode a BGR frame as JPEG bytes."""

    if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
        raise ValueError("Cannot encode an empty frame")
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


@dataclass(frozen=True)
class CapturedEvidence:
    """Frame and descriptor frozen at the capture instant."""

    attempt: VerificationAttempt
    frame: Optional[np.ndarray]
    descriptor: Optional[np.ndarray]
    jpeg_quality: int = DEFAULT_JPEG_QUALITY

    def to_jpeg(self) -> bytes:
        if self.frame is None:
            raise ValueError("No frame was captured")
        return encode_jpeg(self.frame, self.jpeg_quality)


@dataclass
class AttemptHistory:
    """Most-recent-first bounded list of attempts."""

    maxlen: int = DEFAULT_HISTORY_SIZE
    _attempts: deque[VerificationAttempt] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.maxlen = max(1, int(self.maxlen))
        self._attempts = deque(maxlen=self.maxlen)

    def add(self, attempt: VerificationAttempt) -> None:
        # appendleft on a bounded deque evicts from the right, i.e. the oldest.
        self._attempts.appendleft(attempt)

    def snapshot(self) -> list[VerificationAttempt]:
        return list(self._attempts)

    def latest(self) -> Optional[VerificationAttempt]:
        return self._attempts[0] if self._attempts else None

    def clear(self) -> None:
        self._attempts.clear()

    def __iter__(self) -> Iterator[VerificationAttempt]:
        return iter(list(self._attempts))

    def __len__(self) -> int:
        return len(self._attempts)


class VerificationRecorder:
    """Builds attempts, freezes evidence and keeps the bounded history."""

    def __init__(
        self,
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        match_threshold: float = MATCH_THRESHOLD,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        require_liveness: bool = False,
    ) -> None:
        self.history = AttemptHistory(maxlen=history_size)
        self.match_threshold = match_threshold
        self.jpeg_quality = jpeg_quality
        self.require_liveness = require_liveness
        self.last_evidence: Optional[CapturedEvidence] = None

    def build_attempt(
        self,
        *,
        match_score: float,
        liveness_score: float,
        quality_score: float,
        stability_score: float,
        is_real_person: bool,
        now: float,
    ) -> VerificationAttempt:
        success = match_score > self.match_threshold
        if self.require_liveness:
            success = success and is_real_person
        return VerificationAttempt(
            match_score=match_score,
            liveness_score=liveness_score,
            quality_score=quality_score,
            stability_score=stability_score,
            success=success,
            timestamp=now,
            is_real_person=is_real_person,
        )

    def record(
        self,
        attempt: VerificationAttempt,
        *,
        frame: Optional[np.ndarray],
        descriptor: Optional[np.ndarray],
    ) -> CapturedEvidence:
        frozen_frame = frame.copy() if isinstance(frame, np.ndarray) else None
        frozen_descriptor = (
            np.array(descriptor, dtype=float, copy=True) if descriptor is not None else None
        )
        evidence = CapturedEvidence(
            attempt=attempt,
            frame=frozen_frame,
            descriptor=frozen_descriptor,
            jpeg_quality=self.jpeg_quality,
        )
        self.history.add(attempt)
        self.last_evidence = evidence
        logger.info(
            "Verification attempt captured",
            extra={
                "event": "checkin_capture",
                "status": "success" if attempt.success else "failure",
                "match_score": attempt.match_score,
                "liveness_score": attempt.liveness_score,
            },
        )
        return evidence


__all__ = [
    "AttemptHistory",
    "CapturedEvidence",
    "VerificationAttempt",
    "VerificationRecorder",
    "encode_jpeg",
]
