from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from scan_pipeline.errors import InvalidGeometry
from scan_pipeline.sp_types import DetectionResult
from scan_pipeline.transforms import (
    DeviceOrientation,
    PreviewGravity,
    Size,
    quad_to_preview,
)


class OverlayStatus(str, Enum):
    EMPTY = "empty"
    SHOWING = "showing"


class OverlayState:
    """
    Projection of the latest detection into preview space.

    Every update fully replaces the previous overlay: a present quad becomes a
    closed polygon (TL, TR, BR, BL), an empty result clears it.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._polygon: Optional[list[tuple[float, float]]] = None
        self.animated = False
        self.frame_idx = 0

    @property
    def status(self) -> OverlayStatus:
        return OverlayStatus.EMPTY if self._polygon is None else OverlayStatus.SHOWING

    @property
    def is_showing(self) -> bool:
        return self._polygon is not None

    @property
    def polygon(self) -> Optional[list[tuple[float, float]]]:
        return None if self._polygon is None else list(self._polygon)

    def update(
        self,
        result: DetectionResult,
        preview_size: Size,
        orientation: DeviceOrientation = DeviceOrientation.LANDSCAPE_RIGHT,
        frame_size: Optional[Size] = None,
        gravity: PreviewGravity = PreviewGravity.RESIZE,
        animated: bool = False,
    ) -> Optional[list[tuple[float, float]]]:
        self.frame_idx = result.frame_idx
        self.animated = animated
        if result.quad is None:
            self._polygon = None
            return None
        try:
            quad = quad_to_preview(result.quad, preview_size, orientation, frame_size, gravity)
        except InvalidGeometry as exc:
            self.logger.warning("overlay cleared, frame=%d: %s", result.frame_idx, exc)
            self._polygon = None
            return None
        self._polygon = [p.as_tuple() for p in quad.corners()]
        return self.polygon

    def draw(self, image: np.ndarray, color=(0, 255, 0), thickness: int = 4) -> np.ndarray:
        if self._polygon is None:
            return image
        pts = np.array(self._polygon, dtype=np.float64).round().astype(np.int32)
        cv2.polylines(image, [pts.reshape(-1, 1, 2)], True, color, thickness, cv2.LINE_AA)
        return image
