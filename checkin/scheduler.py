"""Per-frame capture state machine for the check-in verifier.

The scheduler owns no state of its own. Every frame is folded into an
explicit :class:`SessionState` by :meth:`CaptureScheduler.step`, which keeps
the whole verifier reproducible from a sequence of synthetic observations.

Phases::

    Idle -> Tracking -> Stabilizing(since) -> Captured(attempt)
      ^________|______________|                    |
      |____________________ rearm / reset _________|
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from .accessories import AccessoryWarning, detect_accessory
from .conf import VerifierConfig
from .liveness import LivenessTracker, to_millis
from .matching import match_score
from .quality import score_quality
from .recorder import CapturedEvidence, VerificationAttempt, VerificationRecorder
from .stability import StabilityTracker
from .types import FaceObservation, FrameSize, Point

logger = logging.getLogger(__name__)

INSTRUCTION_POSITION_FACE = "Position your face in the frame"
INSTRUCTION_MOVE_CLOSER = "Move slightly closer"
INSTRUCTION_HOLD_STILL = "Hold still"
INSTRUCTION_GOOD_POSITION = "Great position! Hold it..."
INSTRUCTION_CAPTURED = "Capture complete"


@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Tracking:
    name = "tracking"


@dataclass(frozen=True)
class Stabilizing:
    since: float
    name = "stabilizing"


@dataclass(frozen=True)
class Captured:
    attempt: VerificationAttempt
    name = "captured"


Phase = Union[Idle, Tracking, Stabilizing, Captured]

IDLE = Idle()
TRACKING = Tracking()


def countdown_instruction(seconds: int) -> str:
    return f"Auto-capture in {seconds}s..."


@dataclass
class SessionState:
    """Mutable per-session verifier state, owned by exactly one session."""

    stability: StabilityTracker
    liveness: LivenessTracker
    phase: Phase = IDLE
    quality_score: float = 0.0
    stability_score: float = 0.0
    match_score: float = 0.0
    accessory_warning: Optional[AccessoryWarning] = None
    instruction_text: str = INSTRUCTION_POSITION_FACE
    capture_countdown_seconds: int = 0

    @classmethod
    def create(cls, config: Optional[VerifierConfig] = None) -> "SessionState":
        config = config or VerifierConfig()
        return cls(
            stability=StabilityTracker(
                maxlen=config.stability_window,
                min_samples=config.stability_min_samples,
                movement_factor=config.stability_movement_factor,
            ),
            liveness=LivenessTracker(
                ear_threshold=config.ear_threshold,
                blink_min_seconds=config.blink_min_seconds,
                blink_max_seconds=config.blink_max_seconds,
                refractory_seconds=config.blink_refractory_seconds,
                blink_bonus=config.blink_liveness_bonus,
            ),
        )

    @property
    def liveness_score(self) -> float:
        return self.liveness.score

    @property
    def blink_detected(self) -> bool:
        return self.liveness.blink_detected

    @property
    def blink_window_start(self) -> Optional[float]:
        return self.liveness.blink_window_start

    @property
    def last_blink_at(self) -> Optional[float]:
        return self.liveness.last_blink_at

    @property
    def good_quality_since(self) -> Optional[float]:
        if isinstance(self.phase, Stabilizing):
            return self.phase.since
        return None

    @property
    def position_history(self) -> list[Point]:
        return self.stability.snapshot()

    @property
    def face_detected(self) -> bool:
        return not isinstance(self.phase, Idle)

    def reset(self) -> None:
        """Return every field to its default. Safe to call repeatedly."""

        self.phase = IDLE
        self.quality_score = 0.0
        self.stability_score = 0.0
        self.match_score = 0.0
        self.accessory_warning = None
        self.instruction_text = INSTRUCTION_POSITION_FACE
        self.capture_countdown_seconds = 0
        self.stability.clear()
        self.liveness.reset()


@dataclass(frozen=True)
class LiveSnapshot:
    """What the caller renders after each frame."""

    instruction_text: str
    face_detected: bool
    quality_score: float
    stability_score: float
    match_score: float
    liveness_score: float
    accessory_warning: Optional[AccessoryWarning]
    capture_countdown_seconds: int
    phase: str
    blink_detected: bool = False
    is_real_person: bool = False

    @classmethod
    def of(cls, state: SessionState, *, real_person_stability: float = 70.0) -> "LiveSnapshot":
        return cls(
            instruction_text=state.instruction_text,
            face_detected=state.face_detected,
            quality_score=state.quality_score,
            stability_score=state.stability_score,
            match_score=state.match_score,
            liveness_score=state.liveness_score,
            accessory_warning=state.accessory_warning,
            capture_countdown_seconds=state.capture_countdown_seconds,
            phase=state.phase.name,
            blink_detected=state.blink_detected,
            is_real_person=state.liveness.is_real_person(
                state.stability_score, stability_threshold=real_person_stability
            ),
        )


@dataclass(frozen=True)
class FrameOutcome:
    snapshot: LiveSnapshot
    evidence: Optional[CapturedEvidence] = field(default=None)

    @property
    def attempt(self) -> Optional[VerificationAttempt]:
        return self.evidence.attempt if self.evidence is not None else None

    @property
    def captured(self) -> bool:
        return self.evidence is not None


class CaptureScheduler:
    """Single transition function driving :class:`SessionState` frame by frame."""

    def __init__(
        self,
        config: Optional[VerifierConfig] = None,
        recorder: Optional[VerificationRecorder] = None,
    ) -> None:
        self.config = config or VerifierConfig()
        self.recorder = recorder or VerificationRecorder(
            history_size=self.config.history_size,
            match_threshold=self.config.match_threshold,
            jpeg_quality=self.config.evidence_jpeg_quality,
            require_liveness=self.config.require_liveness,
        )

    def new_state(self) -> SessionState:
        return SessionState.create(self.config)

    def rearm(self, state: SessionState) -> None:
        """Drop back to ``Idle`` so a new capture cycle can start."""

        state.reset()

    def _snapshot(self, state: SessionState) -> LiveSnapshot:
        return LiveSnapshot.of(state, real_person_stability=self.config.real_person_stability)

    def step(
        self,
        state: SessionState,
        observation: Optional[FaceObservation],
        *,
        frame_size: FrameSize,
        now: float,
        reference: Optional[np.ndarray] = None,
        frame: Optional[np.ndarray] = None,
    ) -> FrameOutcome:
        """Fold one frame into ``state`` and return the caller-facing result."""

        if isinstance(state.phase, Captured):
            return FrameOutcome(self._snapshot(state))

        if observation is None:
            if not isinstance(state.phase, Idle):
                logger.debug("Face lost; resetting session state", extra={"event": "face_lost"})
            state.reset()
            return FrameOutcome(self._snapshot(state))

        config = self.config
        landmarks = observation.landmarks
        warning = detect_accessory(
            landmarks,
            observation.box,
            glasses_ratio=config.glasses_eye_ratio,
            hat_ratio=config.hat_forehead_ratio,
            mask_ratio=config.mask_span_ratio,
        )
        state.accessory_warning = warning
        if warning is not None:
            state.phase = TRACKING
            state.quality_score = 0.0
            state.stability_score = 0.0
            state.capture_countdown_seconds = 0
            state.instruction_text = warning.instruction
            return FrameOutcome(self._snapshot(state))

        state.liveness.observe_eyes(landmarks.left_eye, landmarks.right_eye, now)

        quality = float(
            score_quality(
                observation.box,
                frame_size,
                observation.detector_confidence,
                size_multiplier=config.quality_size_multiplier,
            )
        )
        state.quality_score = quality
        state.stability.add(observation.box.center)
        stability = state.stability.score()
        state.stability_score = float(round(stability))
        state.match_score = match_score(observation.descriptor, reference)

        good_framing = quality >= config.quality_floor and stability >= config.stability_floor
        if good_framing:
            state.liveness.accrue(
                quality,
                stability,
                quality_floor=config.quality_floor,
                stability_floor=config.stability_floor,
            )

        if not good_framing:
            state.phase = TRACKING
            state.capture_countdown_seconds = 0
            state.instruction_text = (
                INSTRUCTION_MOVE_CLOSER if quality < config.quality_floor else INSTRUCTION_HOLD_STILL
            )
            return FrameOutcome(self._snapshot(state))

        if not isinstance(state.phase, Stabilizing):
            state.phase = Stabilizing(since=now)
            state.capture_countdown_seconds = int(math.ceil(config.capture_hold_seconds))
            state.instruction_text = INSTRUCTION_GOOD_POSITION
            logger.debug("Capture timer started", extra={"event": "capture_timer_start"})
            return FrameOutcome(self._snapshot(state))

        # Whole milliseconds, so 2.3 - 0.3 counts as the full 2000 ms hold.
        elapsed_ms = to_millis(now - state.phase.since)
        hold_ms = to_millis(config.capture_hold_seconds)
        if elapsed_ms < hold_ms:
            remaining = -(-(hold_ms - elapsed_ms) // 1000)
            state.capture_countdown_seconds = remaining
            state.instruction_text = countdown_instruction(remaining)
            return FrameOutcome(self._snapshot(state))

        evidence = self._capture(state, observation, now=now, frame=frame)
        return FrameOutcome(self._snapshot(state), evidence)

    def _capture(
        self,
        state: SessionState,
        observation: FaceObservation,
        *,
        now: float,
        frame: Optional[np.ndarray],
    ) -> CapturedEvidence:
        attempt = self.recorder.build_attempt(
            match_score=state.match_score,
            liveness_score=state.liveness_score,
            quality_score=state.quality_score,
            stability_score=state.stability_score,
            is_real_person=state.liveness.is_real_person(
                state.stability_score, stability_threshold=self.config.real_person_stability
            ),
            now=now,
        )
        evidence = self.recorder.record(attempt, frame=frame, descriptor=observation.descriptor)
        state.phase = Captured(attempt=attempt)
        state.capture_countdown_seconds = 0
        state.instruction_text = INSTRUCTION_CAPTURED
        return evidence


__all__ = [
    "CaptureScheduler",
    "Captured",
    "FrameOutcome",
    "Idle",
    "LiveSnapshot",
    "Phase",
    "SessionState",
    "Stabilizing",
    "Tracking",
]
