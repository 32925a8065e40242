"""Coordinate-space conversions between detector, preview and image pixels.

Three spaces are involved:

- normalized detector space: origin bottom-left, both axes in [0, 1]
- preview space: origin top-left, pixels of the on-screen preview surface
- image space: origin top-left, pixels of the captured still image

The detector labels corners by ascending y in its own bottom-left-origin
frame, so its ``top_left``/``top_right`` corners sit visually at the BOTTOM
of the image. ``quad_to_image_pixels`` swaps the roles while flipping;
``quad_to_preview`` keeps the raw labels because a closed polygon does not
care which corner is which.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Tuple

from .errors import InvalidGeometry
from .sp_types import CoordinateSpace, Point, Quadrilateral

Size = Tuple[float, float]

_EPS = 1e-6
_MIN_NORMALIZED_AREA = 1e-12


class DeviceOrientation(str, Enum):
    PORTRAIT = "portrait"
    PORTRAIT_UPSIDE_DOWN = "portrait_upside_down"
    LANDSCAPE_RIGHT = "landscape_right"  # sensor native orientation
    LANDSCAPE_LEFT = "landscape_left"


class PreviewGravity(str, Enum):
    RESIZE = "resize"
    ASPECT_FIT = "aspect_fit"
    ASPECT_FILL = "aspect_fill"


def _check_size(size: Size, what: str) -> tuple[float, float]:
    try:
        w, h = float(size[0]), float(size[1])
    except (TypeError, ValueError, IndexError) as exc:
        raise InvalidGeometry(f"{what} must be a (width, height) pair, got {size!r}") from exc
    if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
        raise InvalidGeometry(f"{what} must be positive and finite, got {size!r}")
    return w, h


def _check_normalized(point: Point) -> None:
    if point.space is not CoordinateSpace.NORMALIZED:
        raise InvalidGeometry(f"expected a normalized point, got {point.space.value}")
    if not point.is_finite():
        raise InvalidGeometry(f"non-finite point {point.as_tuple()}")
    if not (-_EPS <= point.x <= 1 + _EPS and -_EPS <= point.y <= 1 + _EPS):
        raise InvalidGeometry(f"normalized point out of range: {point.as_tuple()}")


def _check_quad(quad: Quadrilateral, space: CoordinateSpace, min_area: float) -> None:
    if quad.space is not space:
        raise InvalidGeometry(f"expected a {space.value} quadrilateral, got {quad.space.value}")
    for p in quad.labelled():
        if not p.is_finite():
            raise InvalidGeometry(f"non-finite corner {p.as_tuple()}")
    if quad.area() <= min_area:
        raise InvalidGeometry(f"degenerate quadrilateral (area={quad.area():.3g})")


def flip_vertical(point: Point) -> Tuple[float, float]:
    """Detector point to top-left-origin unit coordinates: y' = 1 - y."""
    _check_normalized(point)
    return point.x, 1.0 - point.y


def _rotate_for_orientation(u: float, v: float, orientation: DeviceOrientation) -> Tuple[float, float]:
    if orientation is DeviceOrientation.LANDSCAPE_RIGHT:
        return u, v
    if orientation is DeviceOrientation.LANDSCAPE_LEFT:
        return 1.0 - u, 1.0 - v
    if orientation is DeviceOrientation.PORTRAIT:
        return 1.0 - v, u
    if orientation is DeviceOrientation.PORTRAIT_UPSIDE_DOWN:
        return v, 1.0 - u
    raise InvalidGeometry(f"unknown orientation: {orientation!r}")


def to_preview(
    point: Point,
    preview_size: Size,
    orientation: DeviceOrientation = DeviceOrientation.LANDSCAPE_RIGHT,
    frame_size: Optional[Size] = None,
    gravity: PreviewGravity = PreviewGravity.RESIZE,
) -> Point:
    """
    Map a normalized detector point into preview-surface pixels.

    Args:
        point: Point in normalized detector space
        preview_size: (width, height) of the preview surface
        orientation: Current device orientation
        frame_size: (width, height) of the camera frame in sensor orientation.
            Required for aspect fit/fill; without it the mapping stretches.
        gravity: How the frame is laid into the preview

    Returns:
        Point in preview space
    """
    pw, ph = _check_size(preview_size, "preview_size")
    u, v = flip_vertical(point)
    orientation = DeviceOrientation(orientation)
    a, b = _rotate_for_orientation(u, v, orientation)

    gravity = PreviewGravity(gravity)
    if frame_size is None or gravity is PreviewGravity.RESIZE:
        return Point(a * pw, b * ph, CoordinateSpace.PREVIEW)

    fw, fh = _check_size(frame_size, "frame_size")
    if orientation in (DeviceOrientation.PORTRAIT, DeviceOrientation.PORTRAIT_UPSIDE_DOWN):
        fw, fh = fh, fw

    if gravity is PreviewGravity.ASPECT_FILL:
        scale = max(pw / fw, ph / fh)
    else:
        scale = min(pw / fw, ph / fh)
    off_x = (pw - fw * scale) / 2.0
    off_y = (ph - fh * scale) / 2.0
    return Point(a * fw * scale + off_x, b * fh * scale + off_y, CoordinateSpace.PREVIEW)


def to_image_pixels(point: Point, image_size: Size) -> Point:
    """Map a normalized detector point into still-image pixels (flip, then scale)."""
    w, h = _check_size(image_size, "image_size")
    u, v = flip_vertical(point)
    return Point(u * w, v * h, CoordinateSpace.IMAGE)


def from_image_pixels(point: Point, image_size: Size) -> Point:
    """Inverse of to_image_pixels: un-scale, then un-flip."""
    w, h = _check_size(image_size, "image_size")
    if point.space is not CoordinateSpace.IMAGE:
        raise InvalidGeometry(f"expected an image point, got {point.space.value}")
    if not point.is_finite():
        raise InvalidGeometry(f"non-finite point {point.as_tuple()}")
    return Point(point.x / w, 1.0 - point.y / h, CoordinateSpace.NORMALIZED)


def quad_to_preview(
    quad: Quadrilateral,
    preview_size: Size,
    orientation: DeviceOrientation = DeviceOrientation.LANDSCAPE_RIGHT,
    frame_size: Optional[Size] = None,
    gravity: PreviewGravity = PreviewGravity.RESIZE,
) -> Quadrilateral:
    _check_quad(quad, CoordinateSpace.NORMALIZED, _MIN_NORMALIZED_AREA)
    conv = [to_preview(p, preview_size, orientation, frame_size, gravity) for p in quad.labelled()]
    return Quadrilateral(*conv)


def quad_to_image_pixels(quad: Quadrilateral, image_size: Size) -> Quadrilateral:
    """
    Map a detector quadrilateral into image pixels with VISUAL corner roles.

    After the vertical flip the detector's bottom corners become the image's
    top corners, so the roles are swapped:

        visual top-left     <- detector bottom_left
        visual top-right    <- detector bottom_right
        visual bottom-left  <- detector top_left
        visual bottom-right <- detector top_right
    """
    _check_quad(quad, CoordinateSpace.NORMALIZED, _MIN_NORMALIZED_AREA)
    return Quadrilateral(
        top_left=to_image_pixels(quad.bottom_left, image_size),
        top_right=to_image_pixels(quad.bottom_right, image_size),
        bottom_left=to_image_pixels(quad.top_left, image_size),
        bottom_right=to_image_pixels(quad.top_right, image_size),
    )


def quad_from_image_pixels(quad: Quadrilateral, image_size: Size) -> Quadrilateral:
    """Inverse of quad_to_image_pixels, restoring detector labels."""
    _check_quad(quad, CoordinateSpace.IMAGE, 0.0)
    return Quadrilateral(
        top_left=from_image_pixels(quad.bottom_left, image_size),
        top_right=from_image_pixels(quad.bottom_right, image_size),
        bottom_left=from_image_pixels(quad.top_left, image_size),
        bottom_right=from_image_pixels(quad.top_right, image_size),
    )


def full_image_quad() -> Quadrilateral:
    """Frame bounds in normalized detector space, labelled like a detection."""
    return Quadrilateral.from_corners(
        (0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0), CoordinateSpace.NORMALIZED
    )
