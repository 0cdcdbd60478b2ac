"""Tests for the blink state machine and liveness accumulation."""

from __future__ import annotations

import pytest

from checkin.liveness import LivenessTracker, eye_aspect_ratio
from checkin.types import EyeContour, Point

from .factories import CLOSED_EYE, OPEN_EYE, make_eye

OPEN = make_eye(0, 50, 30, OPEN_EYE)
CLOSED = make_eye(0, 50, 30, CLOSED_EYE)


def _closure(tracker: LivenessTracker, start: float, duration: float) -> bool:
    tracker.observe_eyes(CLOSED, CLOSED, start)
    return tracker.observe_eyes(OPEN, OPEN, start + duration)


def test_eye_aspect_ratio_matches_formula():
    assert eye_aspect_ratio(OPEN) == pytest.approx(0.4)
    assert eye_aspect_ratio(CLOSED) == pytest.approx(0.125)


def test_zero_width_eye_has_no_ratio():
    flat = EyeContour(*(Point(5, 5) for _ in range(6)))
    assert eye_aspect_ratio(flat) is None
    tracker = LivenessTracker()
    assert tracker.observe_eyes(flat, flat, 0.0) is False
    assert not tracker.eyes_closed


def test_two_spaced_blinks_each_add_bonus():
    tracker = LivenessTracker()
    tracker.observe_eyes(OPEN, OPEN, 0.0)

    assert _closure(tracker, 0.1, 0.15)
    assert tracker.blink_detected
    assert tracker.score == 30.0

    assert _closure(tracker, 1.3, 0.15)
    assert tracker.score == 60.0
    assert tracker.last_blink_at == pytest.approx(1.45)


@pytest.mark.parametrize("duration", [0.02, 0.05, 0.4, 0.5])
def test_closures_outside_blink_window_are_ignored(duration):
    tracker = LivenessTracker()
    assert not _closure(tracker, 0.0, duration)
    assert not tracker.blink_detected
    assert tracker.score == 0.0
    assert not tracker.eyes_closed


def test_blink_within_refractory_period_is_ignored():
    tracker = LivenessTracker()
    assert _closure(tracker, 0.0, 0.15)
    assert not _closure(tracker, 0.5, 0.15)
    assert tracker.score == 30.0
    assert _closure(tracker, 1.5, 0.15)
    assert tracker.score == 60.0


def test_blink_accepted_when_refractory_ends_on_decimal_timestamp():
    tracker = LivenessTracker()
    assert _closure(tracker, 0.0, 0.15)
    assert tracker.last_blink_at == 0.15
    # 1.15 - 0.15 is slightly below 1.0 in binary floating point.
    assert _closure(tracker, 1.0, 0.15)
    assert tracker.score == 60.0


def test_score_is_capped_at_100():
    tracker = LivenessTracker()
    for index in range(5):
        _closure(tracker, index * 2.0, 0.2)
    assert tracker.score == 100.0


def test_trickle_requires_both_floors():
    tracker = LivenessTracker()
    tracker.accrue(90, 60, quality_floor=75, stability_floor=50)
    assert tracker.score == 2.0
    tracker.accrue(80, 60, quality_floor=75, stability_floor=50)
    assert tracker.score == 2.5
    tracker.accrue(90, 40, quality_floor=75, stability_floor=50)
    tracker.accrue(70, 90, quality_floor=75, stability_floor=50)
    assert tracker.score == 2.5


def test_real_person_from_blink_or_stability():
    tracker = LivenessTracker()
    assert not tracker.is_real_person(69)
    assert tracker.is_real_person(70)
    _closure(tracker, 0.0, 0.2)
    assert tracker.is_real_person(0)


def test_reset_clears_blink_state():
    tracker = LivenessTracker()
    _closure(tracker, 0.0, 0.2)
    tracker.observe_eyes(CLOSED, CLOSED, 3.0)
    tracker.reset()
    assert tracker == LivenessTracker()
