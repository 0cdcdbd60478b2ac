"""Landmark-geometry heuristics for face obstructions (mask, glasses, hat)."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .types import BoundingBox, EyeContour, FaceLandmarks

logger = logging.getLogger(__name__)

GLASSES_EYE_RATIO = 0.18
HAT_FOREHEAD_RATIO = 0.12
MASK_SPAN_RATIO = 0.6
# Forehead height as a fraction of the nose-to-chin span.
FOREHEAD_TO_LOWER_FACE = 0.85


class AccessoryWarning(str, Enum):
    """Obstructions that block the capture countdown until removed."""

    MASK = "mask"
    GLASSES = "glasses"
    HAT = "hat"

    @property
    def instruction(self) -> str:
        return _INSTRUCTIONS[self]


_INSTRUCTIONS = {
    AccessoryWarning.MASK: "Please remove your mask",
    AccessoryWarning.GLASSES: "Please remove your glasses",
    AccessoryWarning.HAT: "Please remove your hat or cap",
}


def eye_openness_ratio(eye: EyeContour) -> Optional[float]:
    """Vertical lid gap over eye width, ``None`` for a degenerate contour."""

    width = eye.width
    if width <= 0:
        return None
    return eye.vertical_gap / width


def estimate_forehead_top(landmarks: FaceLandmarks) -> float:
    nose_top = landmarks.nose.top.y
    return nose_top - (landmarks.jaw.chin.y - nose_top) * FOREHEAD_TO_LOWER_FACE


def detect_glasses(landmarks: FaceLandmarks, *, threshold: float = GLASSES_EYE_RATIO) -> bool:
    for eye in (landmarks.left_eye, landmarks.right_eye):
        ratio = eye_openness_ratio(eye)
        if ratio is not None and ratio < threshold:
            return True
    return False


def detect_hat(
    landmarks: FaceLandmarks, box: BoundingBox, *, threshold: float = HAT_FOREHEAD_RATIO
) -> bool:
    forehead_space = box.y - estimate_forehead_top(landmarks)
    return forehead_space > box.height * threshold


def detect_mask(landmarks: FaceLandmarks, *, span_ratio: float = MASK_SPAN_RATIO) -> bool:
    """Flag a mask when the bridge sits above the jaw line and the lower face is compressed."""

    jaw_line = landmarks.jaw.start.y
    nose_visible = all(point.y > jaw_line for point in landmarks.nose.points[:3])
    if nose_visible:
        return False
    chin_y = landmarks.jaw.chin.y
    nose_to_chin = chin_y - landmarks.nose.top.y
    expected_span = chin_y - estimate_forehead_top(landmarks)
    return nose_to_chin < expected_span * span_ratio


def detect_accessory(
    landmarks: FaceLandmarks,
    box: BoundingBox,
    *,
    glasses_ratio: float = GLASSES_EYE_RATIO,
    hat_ratio: float = HAT_FOREHEAD_RATIO,
    mask_ratio: float = MASK_SPAN_RATIO,
) -> Optional[AccessoryWarning]:
    """Return the single highest-priority warning: mask, then glasses, then hat."""

    if detect_mask(landmarks, span_ratio=mask_ratio):
        warning: Optional[AccessoryWarning] = AccessoryWarning.MASK
    elif detect_glasses(landmarks, threshold=glasses_ratio):
        warning = AccessoryWarning.GLASSES
    elif detect_hat(landmarks, box, threshold=hat_ratio):
        warning = AccessoryWarning.HAT
    else:
        warning = None

    if warning is not None:
        logger.debug(
            "Accessory detected", extra={"event": "accessory_warning", "warning": warning.value}
        )
    return warning


__all__ = [
    "AccessoryWarning",
    "detect_accessory",
    "detect_glasses",
    "detect_hat",
    "detect_mask",
    "estimate_forehead_top",
    "eye_openness_ratio",
]
