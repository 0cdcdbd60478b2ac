"""Shared camera feed that always hands consumers the newest frame."""

from __future__ import annotations

import atexit
import logging
import threading
import time
from typing import Optional, Tuple

from django.conf import settings

import numpy as np
from imutils.video import VideoStream

from . import monitoring

logger = logging.getLogger(__name__)

_EMPTY_READ_BACKOFF = 0.01
_JOIN_TIMEOUT = 1.0


class _FrameConsumer:
    """Context manager handed out by :class:`WebcamManager` to read frames.

    Frames captured while the consumer was busy are never queued: ``read``
    returns the latest frame and counts the skipped ones as coalesced.
    """

    def __init__(self, manager: "WebcamManager") -> None:
        self._manager = manager
        self._last_frame_id = -1
        self._active = False
        self.coalesced = 0

    def __enter__(self) -> "_FrameConsumer":
        self._manager._register_consumer()
        self._active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if self._active:
            self._manager._release_consumer()
            self._active = False

    def read(self, timeout: Optional[float] = 1.0) -> Optional[np.ndarray]:
        """Return the newest unseen frame or ``None`` if none arrives in time."""

        if not self._active:
            return None

        frame, frame_id = self._manager._wait_for_frame(self._last_frame_id, timeout)
        if frame is None:
            return None
        if self._last_frame_id >= 0:
            skipped = frame_id - self._last_frame_id - 1
            if skipped > 0:
                self.coalesced += skipped
                monitoring.record_frames_coalesced(skipped)
        self._last_frame_id = frame_id
        return frame


class WebcamManager:
    """Owns the physical camera so sessions never reopen it per check-in.

    A daemon thread keeps only the most recent frame; each consumer tracks
    the id of the last frame it saw.
    """

    def __init__(self, src: int = 0, warmup_time: float = 2.0) -> None:
        self._src = src
        self._warmup_time = max(0.0, warmup_time)
        self._stream: Optional[VideoStream] = None
        self._reader: Optional[threading.Thread] = None
        self._running = False
        self._new_frame = threading.Condition()
        self._frame: Optional[np.ndarray] = None
        self._frame_id = 0
        self._consumers = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return

        began = time.perf_counter()
        try:
            self._stream = VideoStream(src=self._src).start()
            time.sleep(self._warmup_time)
        except Exception as exc:
            self._stream = None
            monitoring.record_camera_start(False, time.perf_counter() - began, error=str(exc))
            logger.exception(
                "Camera %s could not be opened",
                self._src,
                extra={"event": "camera_start", "status": "failure"},
            )
            raise

        self._running = True
        self._reader = threading.Thread(
            target=self._read_frames, name="checkin-camera", daemon=True
        )
        self._reader.start()
        monitoring.record_camera_start(True, time.perf_counter() - began)

    def shutdown(self) -> None:
        """Stop the reader thread and release the device; re-raises stop errors."""

        if not self._running:
            return

        began = time.perf_counter()
        with self._new_frame:
            self._running = False
            self._new_frame.notify_all()

        reader, self._reader = self._reader, None
        timed_out = False
        if reader is not None:
            reader.join(timeout=_JOIN_TIMEOUT)
            timed_out = reader.is_alive()

        stream, self._stream = self._stream, None
        self._frame = None
        self._frame_id = 0
        try:
            if stream is not None:
                stream.stop()
        except Exception as exc:
            monitoring.record_camera_stop(
                False, time.perf_counter() - began, error=str(exc), timed_out=timed_out
            )
            logger.exception(
                "Camera %s did not stop cleanly",
                self._src,
                extra={"event": "camera_stop", "status": "failure"},
            )
            raise
        monitoring.record_camera_stop(True, time.perf_counter() - began, timed_out=timed_out)

    def frame_consumer(self) -> _FrameConsumer:
        self.start()
        return _FrameConsumer(self)

    def _register_consumer(self) -> None:
        self._change_consumers(1)

    def _release_consumer(self) -> None:
        self._change_consumers(-1)

    def _change_consumers(self, delta: int) -> None:
        with self._new_frame:
            self._consumers = max(0, self._consumers + delta)
            monitoring.update_consumer_count(self._consumers)

    def _read_frames(self) -> None:
        previous = None
        while self._running:
            stream = self._stream
            frame = stream.read() if stream is not None else None
            if frame is None:
                monitoring.record_frame_drop()
                time.sleep(_EMPTY_READ_BACKOFF)
                continue

            arrived = time.monotonic()
            monitoring.record_frame_delay(
                0.0 if previous is None else arrived - previous, capture_time=time.time()
            )
            previous = arrived

            with self._new_frame:
                self._frame = frame.copy()
                self._frame_id += 1
                self._new_frame.notify_all()

    def _wait_for_frame(
        self, after_frame_id: int, timeout: Optional[float]
    ) -> Tuple[Optional[np.ndarray], int]:
        if timeout is not None:
            timeout = max(timeout, 0.0)
        with self._new_frame:
            self._new_frame.wait_for(
                lambda: not self._running or self._frame_id > after_frame_id, timeout=timeout
            )
            if self._frame is None or self._frame_id <= after_frame_id:
                return None, after_frame_id
            return self._frame.copy(), self._frame_id


_shared_lock = threading.Lock()
_shared: Optional[WebcamManager] = None


def get_webcam_manager() -> WebcamManager:
    """Return the process-wide camera configured from ``CHECKIN_CAMERA_*`` settings."""

    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = WebcamManager(
                src=getattr(settings, "CHECKIN_CAMERA_SOURCE", 0),
                warmup_time=getattr(settings, "CHECKIN_CAMERA_WARMUP_SECONDS", 2.0),
            )
        return _shared


def reset_webcam_manager() -> None:
    """Shut the shared camera down and forget it."""

    global _shared
    with _shared_lock:
        manager, _shared = _shared, None
    if manager is not None:
        manager.shutdown()


atexit.register(reset_webcam_manager)


__all__ = ["WebcamManager", "get_webcam_manager", "reset_webcam_manager"]
