from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from scan_pipeline.errors import CaptureDeviceFailure, CaptureInProgress, InvalidGeometry
from scan_pipeline.sp_types import CaptureRequest, RectifiedImage
from scan_pipeline.strategies.rectify_perspective import PerspectiveRectifier
from scan_pipeline.transforms import full_image_quad, quad_to_image_pixels

from .config import FALLBACK_POLICIES
from .capture import StillCapture
from .output import OutputSink
from .slots import DetectionSlot


class CaptureController:
    """
    One-shot capture: still frame + last completed detection -> rectified image.

    At most one capture runs at a time; a trigger arriving meanwhile is
    rejected with CaptureInProgress. Nothing is retried.
    """

    def __init__(
        self,
        still: StillCapture,
        slot: DetectionSlot,
        rectifier: Optional[PerspectiveRectifier] = None,
        outputs: Optional[list[OutputSink]] = None,
        fallback: str = "full_image",
        logger: Optional[logging.Logger] = None,
    ):
        if fallback not in FALLBACK_POLICIES:
            raise ValueError(f"fallback must be one of {FALLBACK_POLICIES}")
        self.still = still
        self.slot = slot
        self.rectifier = rectifier or PerspectiveRectifier()
        self.outputs = outputs if outputs is not None else []
        self.fallback = fallback
        self.logger = logger or logging.getLogger(__name__)
        self._busy = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def capture(self) -> RectifiedImage:
        if not self._busy.acquire(blocking=False):
            raise CaptureInProgress("a capture is already running")
        return self._run_locked()

    def trigger(self) -> Future:
        """Run a capture as a background task; the future is its only completion channel."""
        if not self._busy.acquire(blocking=False):
            raise CaptureInProgress("a capture is already running")
        try:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
            return self._executor.submit(self._run_locked)
        except BaseException:
            self._busy.release()
            raise

    def build_request(self) -> CaptureRequest:
        detection = self.slot.snapshot()
        try:
            frame = self.still.capture_still()
        except CaptureDeviceFailure:
            raise
        except Exception as exc:
            raise CaptureDeviceFailure(f"still capture failed: {exc}") from exc
        if frame is None:
            raise CaptureDeviceFailure("still capture returned nothing")
        return CaptureRequest(frame.copy(), detection)

    def rectify(self, request: CaptureRequest) -> RectifiedImage:
        quad = request.detection.quad
        if quad is None:
            if self.fallback == "reject":
                raise InvalidGeometry("no quadrilateral detected yet")
            self.logger.info("no detection, using full image bounds")
            quad = full_image_quad()
        frame = request.frame
        image_quad = quad_to_image_pixels(quad, frame.size)
        return self.rectifier.rectify(frame.image, image_quad, frame.orientation)

    def _run_locked(self) -> RectifiedImage:
        try:
            request = self.build_request()
            result = self.rectify(request)
            self.logger.info(
                "capture: still=%d detection=%d -> %dx%d",
                request.frame.idx,
                request.detection.frame_idx,
                result.width,
                result.height,
            )
            for out in self.outputs:
                out.write_image(result)
            return result
        except (CaptureDeviceFailure, InvalidGeometry) as exc:
            self.logger.warning("capture failed: %s", exc)
            raise
        finally:
            self._busy.release()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
