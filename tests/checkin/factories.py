"""Synthetic face observations for driving the verifier without a camera.

Landmarks are laid out as fractions of the face box so a geometry that is
obstruction-free at one size stays obstruction-free at every size.
"""

from __future__ import annotations

import numpy as np

from checkin.types import (
    BoundingBox,
    EyeContour,
    FaceLandmarks,
    FaceObservation,
    JawOutline,
    NoseLandmarks,
    Point,
)

FRAME_WIDTH = 640
FRAME_HEIGHT = 480

# Lid gaps as fractions of eye width: (outer pair, inner pair).
OPEN_EYE = (0.4, 0.4)
CLOSED_EYE = (0.25, 0.0)
GLASSES_EYE = (0.1, 0.4)


def make_eye(x0: float, y: float, width: float, gaps=OPEN_EYE) -> EyeContour:
    outer, inner = gaps[0] * width, gaps[1] * width
    return EyeContour(
        corner_start=Point(x0, y),
        top_a=Point(x0 + width / 3, y - outer / 2),
        top_b=Point(x0 + 2 * width / 3, y - inner / 2),
        corner_end=Point(x0 + width, y),
        bottom_b=Point(x0 + 2 * width / 3, y + inner / 2),
        bottom_a=Point(x0 + width / 3, y + outer / 2),
    )


def make_landmarks(
    box: BoundingBox,
    *,
    eyes=OPEN_EYE,
    hat: bool = False,
    mask: bool = False,
) -> FaceLandmarks:
    x, y, size = box.x, box.y, box.height
    mid_x = x + box.width / 2
    eye_width = 0.125 * size
    eye_y = y + 0.3 * size
    nose_top = y + 0.375 * size
    chin_y = y + (1.2 if hat else 0.875) * size
    jaw_start_y = y + (0.5 if mask else 0.25) * size

    bridge = [(mid_x, nose_top + step * 0.04 * size) for step in range(4)]
    tip = [(mid_x - 0.1 * size + step * 0.05 * size, y + 0.56 * size) for step in range(5)]

    jaw = []
    for index in range(17):
        fraction = index / 16
        jaw_x = x + fraction * box.width
        if index <= 8:
            jaw_y = jaw_start_y + (chin_y - jaw_start_y) * index / 8
        else:
            jaw_y = chin_y - (chin_y - jaw_start_y) * (index - 8) / 8
        jaw.append((jaw_x, jaw_y))

    return FaceLandmarks(
        left_eye=make_eye(x + 0.2 * size, eye_y, eye_width, eyes),
        right_eye=make_eye(x + 0.675 * size, eye_y, eye_width, eyes),
        nose=NoseLandmarks(bridge=tuple(bridge), tip=tuple(tip)),
        jaw=JawOutline(points=tuple(jaw)),
    )


def make_observation(
    *,
    size: float = 240.0,
    center=(320.0, 240.0),
    confidence: float = 0.99,
    descriptor=None,
    eyes=OPEN_EYE,
    hat: bool = False,
    mask: bool = False,
) -> FaceObservation:
    box = BoundingBox(center[0] - size / 2, center[1] - size / 2, size, size)
    return FaceObservation(
        box=box,
        landmarks=make_landmarks(box, eyes=eyes, hat=hat, mask=mask),
        detector_confidence=confidence,
        descriptor=descriptor,
    )


def blank_frame() -> np.ndarray:
    return np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8)
