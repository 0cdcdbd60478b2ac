"""Tests for attempt records, bounded history and evidence freezing."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from checkin.recorder import (
    AttemptHistory,
    CapturedEvidence,
    VerificationRecorder,
    encode_jpeg,
)


def _attempt(recorder: VerificationRecorder, *, match: float = 80.0, now: float = 0.0, real=True):
    return recorder.build_attempt(
        match_score=match,
        liveness_score=40.0,
        quality_score=90.0,
        stability_score=95.0,
        is_real_person=real,
        now=now,
    )


def test_success_uses_strict_threshold():
    recorder = VerificationRecorder()
    assert _attempt(recorder, match=50.0001).success
    assert not _attempt(recorder, match=50.0).success


def test_liveness_gate_is_optional():
    assert _attempt(VerificationRecorder(), real=False).success
    gated = VerificationRecorder(require_liveness=True)
    assert not _attempt(gated, real=False).success
    assert _attempt(gated, real=True).success


def test_history_keeps_five_most_recent_first():
    recorder = VerificationRecorder()
    for index in range(7):
        recorder.record(_attempt(recorder, now=float(index)), frame=None, descriptor=None)

    timestamps = [attempt.timestamp for attempt in recorder.history.snapshot()]
    assert timestamps == [6.0, 5.0, 4.0, 3.0, 2.0]
    assert recorder.history.latest().timestamp == 6.0


def test_history_clear():
    history = AttemptHistory(maxlen=2)
    recorder = VerificationRecorder()
    history.add(_attempt(recorder))
    history.clear()
    assert len(history) == 0
    assert history.latest() is None


def test_record_freezes_frame_and_descriptor():
    recorder = VerificationRecorder()
    frame = np.zeros((8, 8, 3), dtype=np.uint8)
    descriptor = np.ones(4)

    evidence = recorder.record(_attempt(recorder), frame=frame, descriptor=descriptor)
    frame[:] = 255
    descriptor[:] = 0

    assert evidence.frame.max() == 0
    assert evidence.descriptor.tolist() == [1.0, 1.0, 1.0, 1.0]
    assert recorder.last_evidence is evidence


def test_evidence_encodes_to_jpeg():
    recorder = VerificationRecorder(jpeg_quality=80)
    frame = np.full((32, 32, 3), 127, dtype=np.uint8)
    evidence = recorder.record(_attempt(recorder), frame=frame, descriptor=None)

    payload = evidence.to_jpeg()
    assert payload[:2] == b"\xff\xd8"
    decoded = cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert decoded.shape == (32, 32, 3)


def test_evidence_without_frame_cannot_encode():
    recorder = VerificationRecorder()
    evidence = CapturedEvidence(attempt=_attempt(recorder), frame=None, descriptor=None)
    with pytest.raises(ValueError):
        evidence.to_jpeg()


def test_encode_rejects_empty_frame():
    with pytest.raises(ValueError):
        encode_jpeg(np.zeros((0, 0, 3), dtype=np.uint8))


def test_attempt_as_dict_is_serialisable():
    payload = _attempt(VerificationRecorder()).as_dict()
    assert payload["success"] is True
    assert isinstance(payload["captured_at"], str)
