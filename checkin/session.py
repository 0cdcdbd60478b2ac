"""Verification session: one owner for one camera's verifier state."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional, Protocol

import numpy as np

from . import monitoring
from .conf import VerifierConfig
from .observer import FaceObserver
from .recorder import CapturedEvidence, VerificationAttempt
from .scheduler import CaptureScheduler, FrameOutcome, LiveSnapshot, SessionState
from .types import FrameSize

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class FrameSource(Protocol):
    def read(self, timeout: Optional[float] = ...) -> Optional[np.ndarray]:
        ...


class VerificationSession:
    """Feeds frames through the scheduler for a single check-in.

    The session is the only holder of its :class:`SessionState`; sharing one
    session between threads is not supported. Stopping is always safe and
    never leaves a partial attempt behind.
    """

    def __init__(
        self,
        observer: FaceObserver,
        *,
        reference: Optional[np.ndarray] = None,
        identity: str = "",
        config: Optional[VerifierConfig] = None,
        clock: Clock = time.monotonic,
        on_capture: Optional[Callable[[CapturedEvidence], None]] = None,
    ) -> None:
        self.config = config or VerifierConfig.from_settings()
        self.observer = observer
        self.identity = identity
        self.reference = None if reference is None else np.asarray(reference, dtype=float)
        self.scheduler = CaptureScheduler(self.config)
        self.state: SessionState = self.scheduler.new_state()
        self.clock = clock
        self.on_capture = on_capture
        self.stopped = False
        if self.reference is None:
            logger.warning(
                "No reference descriptor; captures cannot succeed",
                extra={"event": "reference_missing", "identity": identity},
            )

    @property
    def history(self) -> list[VerificationAttempt]:
        return self.scheduler.recorder.history.snapshot()

    @property
    def last_evidence(self) -> Optional[CapturedEvidence]:
        return self.scheduler.recorder.last_evidence

    def snapshot(self) -> LiveSnapshot:
        return LiveSnapshot.of(self.state, real_person_stability=self.config.real_person_stability)

    def process_frame(
        self, frame: Optional[np.ndarray], now: Optional[float] = None
    ) -> FrameOutcome:
        """Run one verifier step on ``frame``."""

        if self.stopped:
            monitoring.record_frame_outcome("ignored")
            return FrameOutcome(self.snapshot())

        started = time.perf_counter()
        now = self.clock() if now is None else now
        was_captured = self.state.phase.name == "captured"

        observation = self.observer.detect(frame)
        if isinstance(frame, np.ndarray) and frame.ndim >= 2:
            frame_size = FrameSize.of(frame)
        else:
            frame_size = FrameSize(0, 0)

        outcome = self.scheduler.step(
            self.state,
            observation,
            frame_size=frame_size,
            now=now,
            reference=self.reference,
            frame=frame,
        )

        if was_captured:
            label = "ignored"
        elif outcome.captured:
            label = "captured"
        elif observation is None:
            label = "no_face"
        elif outcome.snapshot.accessory_warning is not None:
            label = "obstructed"
        else:
            label = outcome.snapshot.phase
        monitoring.record_frame_outcome(label)
        monitoring.observe_stage_duration(
            "frame_processing", time.perf_counter() - started, threshold_key="frame_processing"
        )

        if outcome.evidence is not None:
            attempt = outcome.evidence.attempt
            monitoring.record_capture(attempt.success, attempt.match_score, attempt.liveness_score)
            if self.on_capture is not None:
                self.on_capture(outcome.evidence)
        return outcome

    def iter_outcomes(
        self,
        source: FrameSource,
        *,
        read_timeout: Optional[float] = 1.0,
    ) -> Iterator[FrameOutcome]:
        """Yield one outcome per processed frame until capture, stop or timeout.

        ``source`` must hand out the newest frame on each read so a slow
        detector never builds a backlog.
        """

        started = self.clock()
        timeout = self.config.session_timeout_seconds
        monitoring.session_started()
        reason = "stopped"
        try:
            while not self.stopped:
                if timeout is not None and self.clock() - started >= timeout:
                    reason = "timeout"
                    logger.info(
                        "Verification session timed out",
                        extra={"event": "session_timeout", "identity": self.identity},
                    )
                    break
                frame = source.read(timeout=read_timeout)
                if frame is None:
                    continue
                outcome = self.process_frame(frame)
                if outcome.captured:
                    reason = "captured"
                yield outcome
                if outcome.captured:
                    break
        finally:
            monitoring.session_finished(reason)

    def run(
        self, source: FrameSource, *, read_timeout: Optional[float] = 1.0
    ) -> Optional[CapturedEvidence]:
        """Block until a capture completes; ``None`` on stop or timeout."""

        evidence = None
        for outcome in self.iter_outcomes(source, read_timeout=read_timeout):
            if outcome.evidence is not None:
                evidence = outcome.evidence
        return evidence

    def rearm(self) -> None:
        """Start a fresh capture cycle, keeping the attempt history."""

        self.stopped = False
        self.scheduler.rearm(self.state)

    def reset(self) -> None:
        self.scheduler.rearm(self.state)

    def stop(self) -> None:
        """Discard live state. Safe at any point, including mid-countdown."""

        self.stopped = True
        self.state.reset()
        logger.debug("Verification session stopped", extra={"event": "session_stop"})


__all__ = ["FrameSource", "VerificationSession"]
