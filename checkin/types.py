"""Fixed-shape records describing a single face observation.

Detector backends return landmark groups as plain point lists indexed by
convention (six points per eye, nine for the nose, seventeen for the jaw).
The records below pin those conventions down with named fields so the
geometry helpers never index into anonymous arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

EYE_POINT_COUNT = 6
NOSE_BRIDGE_POINT_COUNT = 4
NOSE_TIP_POINT_COUNT = 5
JAW_POINT_COUNT = 17


@dataclass(frozen=True)
class Point:
    """A 2D landmark position in frame pixel coordinates."""

    x: float
    y: float

    @classmethod
    def coerce(cls, value: "Point | Sequence[float]") -> "Point":
        if isinstance(value, Point):
            return value
        x, y = value[0], value[1]
        return cls(float(x), float(y))

    def distance_to(self, other: "Point") -> float:
        return float(np.hypot(self.x - other.x, self.y - other.y))


def _coerce_points(values: Iterable["Point | Sequence[float]"], expected: int, group: str) -> Tuple[Point, ...]:
    points = tuple(Point.coerce(value) for value in values)
    if len(points) != expected:
        raise ValueError(f"{group} requires {expected} points, got {len(points)}")
    return points


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face box as reported by the detector."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass(frozen=True)
class FrameSize:
    width: int
    height: int

    @property
    def area(self) -> float:
        return float(max(0, self.width) * max(0, self.height))

    @classmethod
    def of(cls, frame: np.ndarray) -> "FrameSize":
        height, width = frame.shape[:2]
        return cls(width=int(width), height=int(height))


@dataclass(frozen=True)
class EyeContour:
    """Six-point eye contour, ordered clockwise from the outer corner.

    ``corner_start`` and ``corner_end`` are the horizontal extremes;
    ``top_a``/``bottom_a`` and ``top_b``/``bottom_b`` are the vertically
    opposed lid pairs used by the eye aspect ratio.
    """

    corner_start: Point
    top_a: Point
    top_b: Point
    corner_end: Point
    bottom_b: Point
    bottom_a: Point

    @classmethod
    def from_points(cls, values: Iterable["Point | Sequence[float]"]) -> "EyeContour":
        return cls(*_coerce_points(values, EYE_POINT_COUNT, "eye contour"))

    @property
    def points(self) -> Tuple[Point, ...]:
        return (
            self.corner_start,
            self.top_a,
            self.top_b,
            self.corner_end,
            self.bottom_b,
            self.bottom_a,
        )

    @property
    def width(self) -> float:
        return abs(self.corner_end.x - self.corner_start.x)

    @property
    def vertical_gap(self) -> float:
        return abs(self.top_a.y - self.bottom_a.y)


@dataclass(frozen=True)
class NoseLandmarks:
    """Nose bridge (top to bottom) followed by the nostril line."""

    bridge: Tuple[Point, ...]
    tip: Tuple[Point, ...]

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "bridge", _coerce_points(self.bridge, NOSE_BRIDGE_POINT_COUNT, "nose bridge")
        )
        object.__setattr__(self, "tip", _coerce_points(self.tip, NOSE_TIP_POINT_COUNT, "nose tip"))

    @classmethod
    def from_points(cls, values: Iterable["Point | Sequence[float]"]) -> "NoseLandmarks":
        points = _coerce_points(
            values, NOSE_BRIDGE_POINT_COUNT + NOSE_TIP_POINT_COUNT, "nose"
        )
        return cls(
            bridge=points[:NOSE_BRIDGE_POINT_COUNT],
            tip=points[NOSE_BRIDGE_POINT_COUNT:],
        )

    @property
    def points(self) -> Tuple[Point, ...]:
        return self.bridge + self.tip

    @property
    def top(self) -> Point:
        return self.bridge[0]


@dataclass(frozen=True)
class JawOutline:
    """Seventeen-point jaw line running ear to ear through the chin."""

    points: Tuple[Point, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", _coerce_points(self.points, JAW_POINT_COUNT, "jaw outline"))

    @property
    def start(self) -> Point:
        return self.points[0]

    @property
    def chin(self) -> Point:
        return self.points[8]


@dataclass(frozen=True)
class FaceLandmarks:
    left_eye: EyeContour
    right_eye: EyeContour
    nose: NoseLandmarks
    jaw: JawOutline


@dataclass(frozen=True)
class FaceObservation:
    """Everything the detector reports about the face in one frame."""

    box: BoundingBox
    landmarks: FaceLandmarks
    detector_confidence: float
    descriptor: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        confidence = float(self.detector_confidence)
        object.__setattr__(self, "detector_confidence", min(1.0, max(0.0, confidence)))
        if self.descriptor is not None:
            object.__setattr__(self, "descriptor", np.asarray(self.descriptor, dtype=float))


__all__ = [
    "BoundingBox",
    "EyeContour",
    "FaceLandmarks",
    "FaceObservation",
    "FrameSize",
    "JawOutline",
    "NoseLandmarks",
    "Point",
]
