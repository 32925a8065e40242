import logging

import cv2
import numpy as np

from ..errors import DetectionTransientFailure
from ..sp_types import CoordinateSpace, DetectionResult, Frame, Quadrilateral
from ..transforms import quad_from_image_pixels
from .preprocess import GrayscaleFrame

log = logging.getLogger(__name__)


def order_points(pts: np.ndarray) -> np.ndarray:
    """Order 4 image points visually: top-left, top-right, bottom-right, bottom-left."""
    rect = np.zeros((4, 2), dtype=np.float64)
    s = pts.sum(axis=1)
    rect[0] = pts[np.argmin(s)]
    rect[2] = pts[np.argmax(s)]
    diff = np.diff(pts, axis=1)
    rect[1] = pts[np.argmin(diff)]
    rect[3] = pts[np.argmax(diff)]
    return rect


def _interior_angles(rect: np.ndarray) -> list[float]:
    angles = []
    for i in range(4):
        prev_pt, pt, next_pt = rect[i - 1], rect[i], rect[(i + 1) % 4]
        a, b = prev_pt - pt, next_pt - pt
        denom = np.linalg.norm(a) * np.linalg.norm(b)
        if denom == 0:
            return []
        cos = float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))
        angles.append(float(np.degrees(np.arccos(cos))))
    return angles


class QuadrilateralDetector:
    """
    Strategy: find the best document-like quadrilateral in a frame.

    Candidates come from OpenCV contour extraction ranked by area. The first
    candidate that passes the size, quadrature and aspect tolerances is
    returned; nothing is re-ranked. Corners are reported in normalized
    detector space (origin bottom-left) with detector labels, i.e. ``top_*``
    are the corners with the smaller y in that space.
    """

    def __init__(
        self,
        minimum_size: float = 0.3,
        quadrature_tolerance: float = 20.0,
        minimum_aspect_ratio: float = 0.3,
        maximum_aspect_ratio: float = 1.0,
        canny_low: int = 40,
        canny_high: int = 120,
        approx_epsilon: float = 0.02,
        blur_kernel: int = 5,
    ):
        if not 0.0 <= minimum_size <= 1.0:
            raise ValueError("minimum_size must be within [0, 1]")
        if not 0.0 <= quadrature_tolerance <= 45.0:
            raise ValueError("quadrature_tolerance must be within [0, 45] degrees")
        if not 0.0 <= minimum_aspect_ratio <= maximum_aspect_ratio <= 1.0:
            raise ValueError("aspect ratio bounds must satisfy 0 <= min <= max <= 1")
        self.minimum_size = minimum_size
        self.quadrature_tolerance = quadrature_tolerance
        self.minimum_aspect_ratio = minimum_aspect_ratio
        self.maximum_aspect_ratio = maximum_aspect_ratio
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.approx_epsilon = approx_epsilon
        self.blur_kernel = blur_kernel if blur_kernel % 2 == 1 else blur_kernel + 1
        self._gray = GrayscaleFrame()
        self._kernel = np.ones((3, 3), dtype=np.uint8)

    def detect(self, f: Frame) -> DetectionResult:
        """One detection pass. Failures drop the frame (empty result)."""
        try:
            return self._detect(f)
        except Exception as exc:
            log.debug("frame %s dropped by detector: %s", getattr(f, "idx", "?"), exc)
            return DetectionResult.empty(getattr(f, "idx", 0))

    def _detect(self, f: Frame) -> DetectionResult:
        if f.image is None or f.image.size == 0:
            raise DetectionTransientFailure("empty frame buffer")
        gray = self._gray.apply(f).image
        h, w = gray.shape[:2]

        blurred = cv2.GaussianBlur(gray, (self.blur_kernel, self.blur_kernel), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        edges = cv2.dilate(edges, self._kernel, iterations=1)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        for contour in sorted(contours, key=cv2.contourArea, reverse=True):
            peri = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.approx_epsilon * peri, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue
            rect = order_points(approx.reshape(4, 2).astype(np.float64))
            # Tolerances apply to the lens-corrected shape; reported corners
            # stay in the raw frame's pixel grid.
            if not self._accept(self._undistort(rect, f), w, h):
                continue

            rect[:, 0] = np.clip(rect[:, 0], 0, w)
            rect[:, 1] = np.clip(rect[:, 1], 0, h)
            image_quad = Quadrilateral.from_corners(
                rect[0], rect[1], rect[3], rect[2], CoordinateSpace.IMAGE
            )
            score = image_quad.area() / float(w * h)
            return DetectionResult(f.idx, quad_from_image_pixels(image_quad, (w, h)), score)

        return DetectionResult.empty(f.idx)

    def _accept(self, rect: np.ndarray, w: int, h: int) -> bool:
        top = np.linalg.norm(rect[1] - rect[0])
        right = np.linalg.norm(rect[2] - rect[1])
        bottom = np.linalg.norm(rect[3] - rect[2])
        left = np.linalg.norm(rect[0] - rect[3])

        if min(top, right, bottom, left) < self.minimum_size * min(w, h):
            return False

        angles = _interior_angles(rect)
        if len(angles) != 4:
            return False
        if max(abs(a - 90.0) for a in angles) > self.quadrature_tolerance:
            return False

        width, height = (top + bottom) / 2.0, (left + right) / 2.0
        ratio = min(width, height) / max(width, height)
        return self.minimum_aspect_ratio <= ratio <= self.maximum_aspect_ratio

    @staticmethod
    def _undistort(rect: np.ndarray, f: Frame) -> np.ndarray:
        """Lens-corrected copy of ``rect`` for the acceptance checks."""
        intr = f.intrinsics
        if intr is None or intr.dist_coeffs is None:
            return rect
        K = np.asarray(intr.camera_matrix, dtype=np.float64)
        dist = np.asarray(intr.dist_coeffs, dtype=np.float64)
        pts = cv2.undistortPoints(rect.reshape(-1, 1, 2), K, dist, P=K)
        return pts.reshape(4, 2).astype(np.float64)
