"""Perspective correction of an image-space quadrilateral into a flat raster."""

import itertools

import cv2
import numpy as np

from ..errors import InvalidGeometry
from ..sp_types import CoordinateSpace, Quadrilateral, RectifiedImage


def _source_points(quad: Quadrilateral) -> np.ndarray:
    """Corners as float32 (4,2) in TL, TR, BL, BR order."""
    return np.array([p.as_tuple() for p in quad.labelled()], dtype=np.float32)


def output_size(quad: Quadrilateral) -> tuple[int, int]:
    """
    Destination rectangle size from the mean opposite edge lengths.

    Returns:
        (width, height), each at least 1
    """
    tl, tr, bl, br = _source_points(quad).astype(np.float64)
    width = (np.linalg.norm(tr - tl) + np.linalg.norm(br - bl)) / 2.0
    height = (np.linalg.norm(bl - tl) + np.linalg.norm(br - tr)) / 2.0
    return max(1, int(round(width))), max(1, int(round(height)))


def compute_homography(quad: Quadrilateral, size: tuple[int, int]) -> np.ndarray:
    """
    Solve the 3x3 projective transform sending the quad to an upright rectangle.

    Args:
        quad: Image-space quadrilateral with visual corner roles
        size: (width, height) of the destination rectangle

    Returns:
        3x3 homography (source pixels -> destination pixels)
    """
    w, h = size
    dst = np.array([[0, 0], [w, 0], [0, h], [w, h]], dtype=np.float32)
    try:
        H = cv2.getPerspectiveTransform(_source_points(quad), dst)
    except cv2.error as exc:
        raise InvalidGeometry(f"cannot solve homography: {exc}") from exc
    if not np.all(np.isfinite(H)) or abs(np.linalg.det(H)) < 1e-12:
        raise InvalidGeometry("singular homography")
    return H


class PerspectiveRectifier:
    def __init__(self, min_area: float = 1.0, collinear_tol: float = 1e-3,
                 border_mode: int = cv2.BORDER_REPLICATE):
        self.min_area = min_area
        self.collinear_tol = collinear_tol
        self.border_mode = border_mode

    def validate(self, quad: Quadrilateral) -> None:
        if quad.space is not CoordinateSpace.IMAGE:
            raise InvalidGeometry(f"rectifier needs image-space corners, got {quad.space.value}")
        pts = _source_points(quad).astype(np.float64)
        if not np.all(np.isfinite(pts)):
            raise InvalidGeometry("non-finite corner")
        area = quad.area()
        if area < self.min_area:
            raise InvalidGeometry(f"degenerate quadrilateral (area={area:.3g})")

        # Any three collinear corners make the homography meaningless.
        scale = max(float(np.ptp(pts[:, 0])), float(np.ptp(pts[:, 1])), 1.0)
        for a, b, c in itertools.combinations(pts, 3):
            cross = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
            if abs(cross) <= self.collinear_tol * scale * scale:
                raise InvalidGeometry("three corners are collinear")

        # Walked TL, TR, BR, BL every turn must bend the same way.
        ring = np.array([p.as_tuple() for p in quad.corners()], dtype=np.float64)
        turns = []
        for i in range(4):
            a, b, c = ring[i - 1], ring[i], ring[(i + 1) % 4]
            turns.append((b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0]))
        if not (all(t > 0 for t in turns) or all(t < 0 for t in turns)):
            raise InvalidGeometry("corners cross or fold the quadrilateral")

    def rectify(self, image: np.ndarray, quad: Quadrilateral, orientation: int = 1) -> RectifiedImage:
        """
        Flatten the quadrilateral region of ``image``.

        Each destination pixel is inverse-mapped through the homography and
        sampled bilinearly, so the output has no holes.
        """
        if image is None or getattr(image, "size", 0) == 0:
            raise InvalidGeometry("empty source image")
        self.validate(quad)
        w, h = output_size(quad)
        H = compute_homography(quad, (w, h))
        out = cv2.warpPerspective(
            image, H, (w, h), flags=cv2.INTER_LINEAR, borderMode=self.border_mode
        )
        return RectifiedImage(out, w, h, orientation, quad)
