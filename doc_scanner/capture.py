import threading
import time
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import cv2
import numpy as np

from scan_pipeline.errors import CaptureDeviceFailure, NoCameraAvailable
from scan_pipeline.sp_types import CameraIntrinsics, Frame


class BaseCapture(ABC):
    """Live frame stream."""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...


class StillCapture(ABC):
    """One-shot still image source used by the capture trigger."""

    @abstractmethod
    def capture_still(self) -> Frame: ...


class USBOpenCVCapture(BaseCapture):
    def __init__(
        self,
        device: int | str,
        fps: int,
        width: int,
        height: int,
        intrinsics: Optional[CameraIntrinsics] = None,
    ):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.intrinsics = intrinsics
        self.cap: Any = None
        self.idx = 0

    def start(self) -> None:
        if isinstance(self.device, int):
            self.cap = cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        else:
            dev_str = str(self.device)
            match = re.match(r"^/dev/video(\d+)$", dev_str)
            if match:
                self.cap = cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
            else:
                self.cap = cv2.VideoCapture(dev_str)

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.cap.isOpened():
            raise NoCameraAvailable(f"Failed to open camera: {self.device}")

    def next_frame(self) -> Frame | None:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok:
            return None
        self.idx += 1
        ts = time.strftime("%Y-%m-%dT%H:%M:%S")
        return Frame(self.idx, ts, img, "BGR", self.intrinsics)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


# Page corners as fractions of the frame: TL, TR, BR, BL.
SYNTHETIC_PAGE = ((0.25, 0.20), (0.72, 0.17), (0.78, 0.82), (0.22, 0.80))


def render_page(
    width: int,
    height: int,
    corners=SYNTHETIC_PAGE,
    background: int = 40,
    page: int = 235,
) -> np.ndarray:
    """Dark frame with a bright, slightly skewed page and a few text lines."""
    img = np.full((height, width, 3), background, dtype=np.uint8)
    if corners is None:
        return img
    pts = np.array([[x * width, y * height] for x, y in corners], dtype=np.int32)
    cv2.fillPoly(img, [pts], (page, page, page))

    tl, tr, br, bl = pts.astype(np.float64)
    for t in np.linspace(0.2, 0.8, 6):
        left = tl + (bl - tl) * t
        right = tr + (br - tr) * t
        a = left + (right - left) * 0.15
        b = left + (right - left) * 0.85
        cv2.line(img, tuple(int(v) for v in a), tuple(int(v) for v in b), (90, 90, 90), 2)
    return img


class SyntheticCapture(BaseCapture):
    """Paced synthetic camera showing a page, for dry runs and tests."""

    def __init__(self, fps: int, width: int, height: int, corners=SYNTHETIC_PAGE):
        self.fps = fps
        self.width = width
        self.height = height
        self.corners = corners
        self.idx = 0
        self._last = 0.0
        self._image: Optional[np.ndarray] = None

    def start(self) -> None:
        self._last = time.time()
        self._image = render_page(self.width, self.height, self.corners)

    def next_frame(self) -> Frame | None:
        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()
        if self._image is None:
            self._image = render_page(self.width, self.height, self.corners)
        self.idx += 1
        ts = time.strftime("%Y-%m-%dT%H:%M:%S")
        return Frame(self.idx, ts, self._image.copy())

    def stop(self) -> None:
        return None


class LatestFrameStill(StillCapture):
    """Still capture served from the most recent live frame."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[Frame] = None

    def offer(self, frame: Frame) -> None:
        copied = frame.copy()
        with self._lock:
            self._frame = copied

    def capture_still(self) -> Frame:
        with self._lock:
            frame = self._frame
        if frame is None:
            raise CaptureDeviceFailure("no frame has been delivered yet")
        return frame


class SourceStill(StillCapture):
    """Still capture taking the next frame of a dedicated capture source."""

    def __init__(self, source: BaseCapture):
        self.source = source
        self._started = False

    def capture_still(self) -> Frame:
        if not self._started:
            self.source.start()
            self._started = True
        frame = self.source.next_frame()
        if frame is None:
            raise CaptureDeviceFailure("still source returned no frame")
        return frame

    def close(self) -> None:
        if self._started:
            self.source.stop()
            self._started = False
