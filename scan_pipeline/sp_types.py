from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import numpy as np

from .errors import InvalidGeometry


class CoordinateSpace(str, Enum):
    NORMALIZED = "normalized"  # detector space, origin bottom-left, [0, 1]
    PREVIEW = "preview"  # preview surface pixels, origin top-left
    IMAGE = "image"  # still image pixels, origin top-left


@dataclass
class CameraIntrinsics:
    camera_matrix: Any  # (3,3) ndarray
    dist_coeffs: Any | None = None


@dataclass
class Frame:
    idx: int
    ts_iso: str
    image: Any  # numpy array
    pixel_format: str = "BGR"
    intrinsics: Optional[CameraIntrinsics] = None
    orientation: int = 1  # EXIF orientation tag

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def copy(self) -> "Frame":
        return Frame(
            self.idx,
            self.ts_iso,
            np.array(self.image, copy=True),
            self.pixel_format,
            self.intrinsics,
            self.orientation,
        )


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    space: CoordinateSpace

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Quadrilateral:
    """Four labelled corners in a single coordinate space.

    Labels are kept exactly as given; nothing in the pipeline reorders them.
    """

    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def __post_init__(self):
        spaces = {p.space for p in self.labelled()}
        if len(spaces) != 1:
            raise InvalidGeometry(f"corners mix coordinate spaces: {sorted(s.value for s in spaces)}")

    @property
    def space(self) -> CoordinateSpace:
        return self.top_left.space

    def labelled(self) -> tuple[Point, Point, Point, Point]:
        return (self.top_left, self.top_right, self.bottom_left, self.bottom_right)

    def corners(self) -> list[Point]:
        """Corners in polygon drawing order: TL, TR, BR, BL."""
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]

    def as_array(self) -> np.ndarray:
        return np.array([p.as_tuple() for p in self.corners()], dtype=np.float64)

    def area(self) -> float:
        pts = self.as_array()
        x, y = pts[:, 0], pts[:, 1]
        return 0.5 * abs(float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))

    @classmethod
    def from_corners(
        cls,
        top_left: tuple[float, float],
        top_right: tuple[float, float],
        bottom_left: tuple[float, float],
        bottom_right: tuple[float, float],
        space: CoordinateSpace,
    ) -> "Quadrilateral":
        return cls(
            Point(float(top_left[0]), float(top_left[1]), space),
            Point(float(top_right[0]), float(top_right[1]), space),
            Point(float(bottom_left[0]), float(bottom_left[1]), space),
            Point(float(bottom_right[0]), float(bottom_right[1]), space),
        )


@dataclass(frozen=True)
class DetectionResult:
    frame_idx: int
    quad: Optional[Quadrilateral] = None
    score: float = 0.0

    @classmethod
    def empty(cls, frame_idx: int = 0) -> "DetectionResult":
        return cls(frame_idx, None, 0.0)

    @property
    def found(self) -> bool:
        return self.quad is not None


@dataclass(frozen=True)
class CaptureRequest:
    frame: Frame
    detection: DetectionResult


@dataclass
class RectifiedImage:
    image: Any  # numpy array
    width: int
    height: int
    orientation: int = 1
    source_quad: Optional[Quadrilateral] = field(default=None, repr=False)
