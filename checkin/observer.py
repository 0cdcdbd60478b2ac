"""Face observation backends and the fault-isolating :class:`FaceObserver`.

Detection runs through DeepFace's detector zoo (a primary detector and a
lighter fallback), then ``face_recognition`` supplies the dlib 68-point
landmarks and the 128-d descriptor for the detected box. Every backend
error, and an optional per-call timeout, is converted into a "no face"
frame so the verification loop never sees an exception.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from django.conf import settings

import cv2
import numpy as np

from . import monitoring
from .types import (
    BoundingBox,
    EyeContour,
    FaceLandmarks,
    FaceObservation,
    JawOutline,
    NoseLandmarks,
)

logger = logging.getLogger(__name__)

PRIMARY_DETECTOR = "ssd"
PRIMARY_MIN_CONFIDENCE = 0.5
FALLBACK_DETECTOR = "opencv"
FALLBACK_MIN_CONFIDENCE = 0.4


class DetectorBackend(Protocol):
    name: str

    def detect(self, frame: np.ndarray) -> Optional[FaceObservation]:
        ...


def landmarks_from_groups(groups: Mapping[str, Sequence[Sequence[float]]]) -> FaceLandmarks:
    """Build fixed-shape landmarks from ``face_recognition``'s named point groups."""

    return FaceLandmarks(
        left_eye=EyeContour.from_points(groups["left_eye"]),
        right_eye=EyeContour.from_points(groups["right_eye"]),
        nose=NoseLandmarks(bridge=tuple(groups["nose_bridge"]), tip=tuple(groups["nose_tip"])),
        jaw=JawOutline(points=tuple(groups["chin"])),
    )


def _largest_face(faces: Sequence[Dict[str, Any]], min_confidence: float) -> Optional[Dict[str, Any]]:
    best = None
    best_area = 0.0
    for face in faces:
        confidence = float(face.get("confidence") or 0.0)
        if confidence < min_confidence:
            continue
        area = face.get("facial_area") or {}
        size = float(area.get("w", 0) or 0) * float(area.get("h", 0) or 0)
        if size > best_area:
            best, best_area = face, size
    return best


class DeepFaceLandmarkBackend:
    """DeepFace detector for the box, ``face_recognition`` for landmarks and descriptor."""

    def __init__(
        self,
        detector_backend: str = PRIMARY_DETECTOR,
        *,
        min_confidence: float = PRIMARY_MIN_CONFIDENCE,
        landmark_model: str = "large",
        num_jitters: int = 1,
    ) -> None:
        self.detector_backend = detector_backend
        self.min_confidence = min_confidence
        self.landmark_model = landmark_model
        self.num_jitters = num_jitters
        self.name = detector_backend

    def _extract_faces(self, frame: np.ndarray) -> Sequence[Dict[str, Any]]:
        from deepface import DeepFace

        return DeepFace.extract_faces(
            img_path=frame,
            detector_backend=self.detector_backend,
            enforce_detection=False,
            align=False,
        )

    def detect(self, frame: np.ndarray) -> Optional[FaceObservation]:
        import face_recognition

        face = _largest_face(self._extract_faces(frame), self.min_confidence)
        if face is None:
            return None

        area = face["facial_area"]
        x, y = int(area.get("x", 0)), int(area.get("y", 0))
        w, h = int(area.get("w", 0)), int(area.get("h", 0))
        if w <= 0 or h <= 0:
            return None

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        location = (y, x + w, y + h, x)
        landmark_sets = face_recognition.face_landmarks(
            rgb, face_locations=[location], model=self.landmark_model
        )
        if not landmark_sets:
            return None
        encodings = face_recognition.face_encodings(
            rgb, known_face_locations=[location], num_jitters=self.num_jitters
        )
        return FaceObservation(
            box=BoundingBox(x=x, y=y, width=w, height=h),
            landmarks=landmarks_from_groups(landmark_sets[0]),
            detector_confidence=float(face.get("confidence") or 0.0),
            descriptor=np.asarray(encodings[0], dtype=float) if encodings else None,
        )


class _DetectorWorker:
    """A single detector thread for one backend.

    A call that outlives its timeout keeps the thread until it returns, and
    frames arriving meanwhile are dropped rather than queued behind it.
    """

    def __init__(self, name: str) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"checkin-detector-{name}"
        )
        self._pending: Optional[Future] = None

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def run(self, backend: DetectorBackend, frame: np.ndarray, timeout: float) -> Optional[FaceObservation]:
        self._pending = self._executor.submit(backend.detect, frame)
        try:
            return self._pending.result(timeout=timeout)
        except FutureTimeoutError:
            self._pending.cancel()
            raise

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._pending = None


class FaceObserver:
    """Tries the primary backend, then the fallback; failures count as no face."""

    def __init__(
        self,
        primary: DetectorBackend,
        fallback: Optional[DetectorBackend] = None,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.timeout = timeout if timeout and timeout > 0 else None
        self._workers: Dict[int, _DetectorWorker] = {}

    @classmethod
    def from_settings(cls) -> "FaceObserver":
        primary = DeepFaceLandmarkBackend(
            getattr(settings, "CHECKIN_PRIMARY_DETECTOR", PRIMARY_DETECTOR),
            min_confidence=getattr(settings, "CHECKIN_PRIMARY_MIN_CONFIDENCE", PRIMARY_MIN_CONFIDENCE),
        )
        fallback_name = getattr(settings, "CHECKIN_FALLBACK_DETECTOR", FALLBACK_DETECTOR)
        fallback = None
        if fallback_name:
            fallback = DeepFaceLandmarkBackend(
                fallback_name,
                min_confidence=getattr(
                    settings, "CHECKIN_FALLBACK_MIN_CONFIDENCE", FALLBACK_MIN_CONFIDENCE
                ),
            )
        return cls(
            primary,
            fallback,
            timeout=getattr(settings, "CHECKIN_DETECTION_TIMEOUT_SECONDS", None),
        )

    def _call(self, backend: DetectorBackend, frame: np.ndarray) -> Optional[FaceObservation]:
        started = time.perf_counter()
        try:
            if self.timeout is None:
                result = backend.detect(frame)
            else:
                worker = self._workers.get(id(backend))
                if worker is None:
                    worker = self._workers[id(backend)] = _DetectorWorker(backend.name)
                if worker.busy:
                    logger.debug(
                        "Detector %s still running a timed-out call; skipping frame",
                        backend.name,
                        extra={"event": "detector_busy", "detector": backend.name},
                    )
                    return None
                result = worker.run(backend, frame, self.timeout)
        except FutureTimeoutError:
            monitoring.record_detector_failure(backend.name, "timeout")
            return None
        except Exception as exc:
            logger.debug("Detector %s raised", backend.name, exc_info=True)
            monitoring.record_detector_failure(backend.name, "error", error=str(exc))
            return None
        finally:
            monitoring.observe_stage_duration(
                f"detect_{backend.name}", time.perf_counter() - started
            )
        return result

    def detect(self, frame: Optional[np.ndarray]) -> Optional[FaceObservation]:
        if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
            return None
        observation = self._call(self.primary, frame)
        if observation is None and self.fallback is not None:
            observation = self._call(self.fallback, frame)
        return observation

    def close(self) -> None:
        for worker in self._workers.values():
            worker.shutdown()
        self._workers.clear()


__all__ = [
    "DeepFaceLandmarkBackend",
    "DetectorBackend",
    "FaceObserver",
    "landmarks_from_groups",
]
