from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import cv2

from scan_pipeline.sp_types import RectifiedImage


class OutputSink(ABC):
    """Receives each rectified capture. Display/storage belong to the sink."""

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def write_image(self, result: RectifiedImage) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CallbackOutput(OutputSink):
    def __init__(self, callback: Callable[[RectifiedImage], None]):
        self.callback = callback

    def open(self) -> None:
        return None

    def write_image(self, result: RectifiedImage) -> None:
        self.callback(result)

    def close(self) -> None:
        return None


class LogOutput(OutputSink):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.count = 0

    def open(self) -> None:
        self.count = 0

    def write_image(self, result: RectifiedImage) -> None:
        self.count += 1
        self.logger.info(
            "capture #%d: %dx%d orientation=%d",
            self.count,
            result.width,
            result.height,
            result.orientation,
        )

    def close(self) -> None:
        return None


class WindowOutput(OutputSink):
    """Shows the latest capture in an OpenCV window (GUI builds only)."""

    def __init__(self, window_name: str = "scan"):
        self.window_name = window_name
        self._opened = False

    def open(self) -> None:
        cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
        self._opened = True

    def write_image(self, result: RectifiedImage) -> None:
        if not self._opened:
            self.open()
        cv2.imshow(self.window_name, result.image)

    def close(self) -> None:
        if self._opened:
            cv2.destroyWindow(self.window_name)
            self._opened = False

