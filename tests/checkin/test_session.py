"""End-to-end session tests with scripted detectors and a fake clock."""

from __future__ import annotations

import numpy as np

from checkin import monitoring
from checkin.conf import VerifierConfig
from checkin.observer import FaceObserver
from checkin.session import VerificationSession

from .factories import blank_frame, make_observation

REFERENCE = np.linspace(0.0, 0.5, 128)


class _ScriptedBackend:
    name = "scripted"

    def __init__(self, script):
        self._script = list(script)
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, Exception):
            raise item
        return item


class _StaticSource:
    def __init__(self, frame=None, missing=0):
        self._frame = blank_frame() if frame is None else frame
        self._missing = missing
        self.reads = 0

    def read(self, timeout=None):
        self.reads += 1
        if self._missing:
            self._missing -= 1
            return None
        return self._frame


class _SteppedClock:
    def __init__(self, step=0.25):
        self.now = 0.0
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


def _good():
    return make_observation(descriptor=REFERENCE.copy())


def _session(script, *, clock=None, reference=REFERENCE, **config):
    observer = FaceObserver(_ScriptedBackend(script))
    return VerificationSession(
        observer,
        reference=reference,
        identity="A123",
        config=VerifierConfig(**config),
        clock=clock or _SteppedClock(),
    )


def _frame_count(outcome):
    return monitoring.REGISTRY.get_sample_value(
        "checkin_frames_processed_total", {"outcome": outcome}
    ) or 0


def test_run_returns_evidence_on_capture():
    captured = []
    session = _session([_good()])
    session.on_capture = captured.append

    evidence = session.run(_StaticSource())

    assert evidence is not None
    assert evidence.attempt.success
    assert captured == [evidence]
    assert session.history == [evidence.attempt]
    assert session.last_evidence is evidence
    assert _frame_count("captured") == 1

    snapshot = monitoring.get_health_snapshot()
    assert snapshot["verifier"]["active_sessions"] == 0
    assert snapshot["metrics"]["captures"]["success"] == 1


def test_session_times_out_without_face():
    session = _session([None], session_timeout_seconds=3.0)
    source = _StaticSource()

    assert session.run(source) is None
    assert session.history == []
    assert source.reads > 0
    alert_types = {alert["type"] for alert in monitoring.get_health_snapshot()["alerts"]}
    assert "session_timeout" in alert_types
    assert _frame_count("no_face") == source.reads


def test_missing_frames_are_skipped():
    session = _session([_good()])
    source = _StaticSource(missing=3)
    assert session.run(source) is not None
    assert source.reads > 3


def test_detector_exception_counts_as_no_face():
    session = _session([RuntimeError("boom"), _good()])
    outcome = session.process_frame(blank_frame(), now=0.0)
    assert not outcome.snapshot.face_detected
    assert _frame_count("no_face") == 1
    outcome = session.process_frame(blank_frame(), now=0.25)
    assert outcome.snapshot.face_detected


def test_obstructed_frames_are_labelled():
    session = _session([make_observation(mask=True)])
    outcome = session.process_frame(blank_frame(), now=0.0)
    assert outcome.snapshot.instruction_text == "Please remove your mask"
    assert _frame_count("obstructed") == 1


def test_missing_reference_never_succeeds():
    session = _session([_good()], reference=None)
    evidence = session.run(_StaticSource())
    assert evidence is not None
    assert evidence.attempt.match_score == 0.0
    assert not evidence.attempt.success


def test_stop_mid_countdown_discards_state():
    session = _session([_good()])
    for index in range(6):
        session.process_frame(blank_frame(), now=index * 0.25)
    assert session.snapshot().phase == "stabilizing"

    session.stop()
    snapshot = session.snapshot()
    assert snapshot.phase == "idle"
    assert snapshot.liveness_score == 0.0
    assert session.history == []

    outcome = session.process_frame(blank_frame(), now=5.0)
    assert outcome.snapshot.phase == "idle"
    assert _frame_count("ignored") == 1

    assert session.run(_StaticSource()) is None


def test_rearm_starts_a_new_cycle_and_keeps_history():
    session = _session([_good()])
    first = session.run(_StaticSource())
    assert first is not None

    assert session.process_frame(blank_frame()).snapshot.phase == "captured"
    session.rearm()
    assert session.snapshot().phase == "idle"

    second = session.run(_StaticSource())
    assert second is not None
    assert session.history == [second.attempt, first.attempt]


def test_iter_outcomes_stops_after_capture():
    session = _session([_good()])
    outcomes = list(session.iter_outcomes(_StaticSource()))
    assert outcomes[-1].captured
    assert not any(outcome.captured for outcome in outcomes[:-1])
