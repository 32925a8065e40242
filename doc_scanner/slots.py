"""Single-slot handoffs between the frame reader, detector and capture path."""

from __future__ import annotations

import threading
from typing import Optional

from scan_pipeline.sp_types import DetectionResult, Frame


class DetectionSlot:
    """Latest completed detection result.

    One writer (the detection pass) replaces the whole immutable result with a
    single assignment; readers take a snapshot and never see a partial update.
    """

    def __init__(self) -> None:
        self._latest = DetectionResult.empty()

    def publish(self, result: DetectionResult) -> None:
        self._latest = result

    def snapshot(self) -> DetectionResult:
        return self._latest


class LatestFrameMailbox:
    """Holds at most one pending frame; a newer frame replaces an unconsumed one."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._frame: Optional[Frame] = None
        self._closed = False

    def put(self, frame: Frame) -> bool:
        """Store ``frame``. Returns True if an unconsumed frame was dropped."""
        with self._cond:
            dropped = self._frame is not None
            self._frame = frame
            self._cond.notify()
            return dropped

    def take(self, timeout: Optional[float] = None) -> Optional[Frame]:
        with self._cond:
            if self._frame is None and not self._closed:
                self._cond.wait(timeout)
            frame, self._frame = self._frame, None
            return frame

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> bool:
        with self._cond:
            return self._frame is not None
