from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

from scan_pipeline.errors import CaptureInProgress, ScannerError
from scan_pipeline.services.calib import load_intrinsics
from scan_pipeline.sp_types import DetectionResult, Frame
from scan_pipeline.strategies.detect_rectangles import QuadrilateralDetector
from scan_pipeline.strategies.rectify_perspective import PerspectiveRectifier
from scan_pipeline.transforms import DeviceOrientation, PreviewGravity

from .capture import BaseCapture, LatestFrameStill, StillCapture, SyntheticCapture, USBOpenCVCapture
from .config import ScannerConfig
from .controller import CaptureController
from .logging_utils import setup_logger
from .output import LogOutput, OutputSink
from .overlay import OverlayState
from .slots import DetectionSlot, LatestFrameMailbox


@dataclass
class SessionSummary:
    frames_read: int
    frames_detected: int
    frames_dropped: int
    quads_found: int
    captures: int
    capture_errors: int
    read_errors: int
    avg_fps: float


def build_detector(config: ScannerConfig) -> QuadrilateralDetector:
    d = config.detector
    return QuadrilateralDetector(
        minimum_size=d.minimum_size,
        quadrature_tolerance=d.quadrature_tolerance,
        minimum_aspect_ratio=d.minimum_aspect_ratio,
        maximum_aspect_ratio=d.maximum_aspect_ratio,
        canny_low=d.canny_low,
        canny_high=d.canny_high,
        approx_epsilon=d.approx_epsilon,
        blur_kernel=d.blur_kernel,
    )


class ScannerWorker:
    """
    Live scanning session.

    A reader thread feeds a single-slot mailbox (unconsumed frames are
    dropped), a detector thread publishes each result into the detection slot
    and queues it for the overlay, and the caller's thread (the UI context)
    applies overlay updates in order and fires captures.
    """

    def __init__(
        self,
        config: ScannerConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        still: Optional[StillCapture] = None,
        detector: Optional[QuadrilateralDetector] = None,
        overlay_backlog: int = 32,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name, log_path=config.log_path)
        self.outputs = outputs if outputs is not None else [LogOutput(self.logger)]
        self.capture = capture
        self.detector = detector or build_detector(config)

        self.slot = DetectionSlot()
        self.mailbox = LatestFrameMailbox()
        self.overlay = OverlayState(self.logger)
        self.overlay_updates: "queue.Queue[tuple[int, DetectionResult, tuple[int, int]]]" = queue.Queue(
            maxsize=max(1, overlay_backlog)
        )

        self._latest_still = LatestFrameStill()
        self.still = still or self._latest_still
        self.controller = CaptureController(
            self.still,
            self.slot,
            PerspectiveRectifier(),
            self.outputs,
            config.capture_fallback,
            self.logger,
        )

        self._stop_event = threading.Event()
        self._reader_done = threading.Event()
        self._seq = 0
        self.frames_read = 0
        self.frames_detected = 0
        self.frames_dropped = 0
        self.overlay_skipped = 0
        self.quads_found = 0
        self.read_errors = 0
        self.captures = 0
        self.capture_errors = 0

    def stop(self) -> None:
        self._stop_event.set()
        self.mailbox.close()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        if self.config.dry_run:
            return SyntheticCapture(self.config.fps, self.config.width, self.config.height)
        intrinsics = None
        if self.config.calibration_path:
            intrinsics = load_intrinsics(self.config.calibration_path)
        return USBOpenCVCapture(
            self.config.device,
            self.config.fps,
            self.config.width,
            self.config.height,
            intrinsics,
        )

    # -- detection path -------------------------------------------------

    def process_frame(self, frame: Frame) -> DetectionResult:
        """Run one detection pass and hand the result to the slot and overlay queue."""
        result = self.detector.detect(frame)
        self.slot.publish(result)
        self._seq += 1
        self._queue_overlay((self._seq, result, frame.size))
        self.frames_detected += 1
        if result.found:
            self.quads_found += 1
        return result

    def _queue_overlay(self, item: tuple[int, DetectionResult, tuple[int, int]]) -> None:
        # Single producer: once the oldest entry is gone the put cannot block.
        try:
            self.overlay_updates.put_nowait(item)
            return
        except queue.Full:
            pass
        try:
            self.overlay_updates.get_nowait()
            self.overlay_skipped += 1
        except queue.Empty:
            pass
        self.overlay_updates.put_nowait(item)

    def _reader_loop(self, cap: BaseCapture) -> None:
        try:
            while not self._stop_event.is_set():
                if self.config.max_frames and self.frames_read >= self.config.max_frames:
                    break
                f = cap.next_frame()
                if f is None:
                    self.read_errors += 1
                    time.sleep(0.005)
                    continue
                self.frames_read += 1
                if self.still is self._latest_still:
                    self._latest_still.offer(f)
                if self.mailbox.put(f):
                    self.frames_dropped += 1
        except Exception:
            self.logger.exception("frame reader stopped")
        finally:
            self._reader_done.set()

    def _detect_loop(self) -> None:
        while not self._stop_event.is_set():
            f = self.mailbox.take(timeout=0.1)
            if f is None:
                if self._reader_done.is_set() and not self.mailbox.pending():
                    break
                continue
            self.process_frame(f)

    # -- UI context -----------------------------------------------------

    def drain_overlay(
        self,
        preview_size: Optional[tuple[int, int]] = None,
        orientation: Optional[DeviceOrientation] = None,
        gravity: Optional[PreviewGravity] = None,
    ) -> int:
        """Apply queued detection results to the overlay in production order."""
        pv = self.config.preview
        orientation = DeviceOrientation(orientation or pv.orientation)
        gravity = PreviewGravity(gravity or pv.gravity)
        applied = 0
        while True:
            try:
                _seq, result, frame_size = self.overlay_updates.get_nowait()
            except queue.Empty:
                return applied
            size = preview_size
            if size is None:
                size = (pv.width, pv.height) if pv.width > 0 and pv.height > 0 else frame_size
            self.overlay.update(result, size, orientation, frame_size, gravity)
            applied += 1

    def trigger_capture(self) -> Optional[Future]:
        try:
            fut = self.controller.trigger()
        except CaptureInProgress:
            self.logger.info("capture ignored: another capture is running")
            return None
        fut.add_done_callback(self._capture_done)
        return fut

    def _capture_done(self, fut: Future) -> None:
        exc = fut.exception()
        if exc is None:
            self.captures += 1
        else:
            self.capture_errors += 1
            if not isinstance(exc, ScannerError):
                self.logger.error("capture crashed: %r", exc)

    def run(self, on_tick: Optional[Callable[["ScannerWorker"], bool]] = None) -> SessionSummary:
        """
        Run the session until stopped, out of frames, or out of time.

        Args:
            on_tick: Called on the caller's thread after each overlay drain;
                returning False ends the session.
        """
        cap = self._build_capture()
        for out in self.outputs:
            out.open()

        self.logger.info("session started: %s", self.config.camera_name)
        self.logger.info("config: %s", self.config.as_dict())

        cap.start()
        reader = threading.Thread(target=self._reader_loop, args=(cap,), name="reader", daemon=True)
        detector = threading.Thread(target=self._detect_loop, name="detector", daemon=True)
        t0 = time.time()
        reader.start()
        detector.start()

        try:
            while not self._stop_event.is_set():
                if self.config.duration_sec and (time.time() - t0) >= self.config.duration_sec:
                    break
                if not detector.is_alive():
                    break
                self.drain_overlay()
                if on_tick is not None and on_tick(self) is False:
                    break
                time.sleep(0.01)
        finally:
            self.stop()
            reader.join(timeout=2.0)
            detector.join(timeout=2.0)
            self.drain_overlay()
            self.controller.close()
            try:
                cap.stop()
            except Exception:
                pass
            for out in self.outputs:
                try:
                    out.close()
                except Exception:
                    pass

        avg = self.frames_detected / max(1e-6, (time.time() - t0))
        self.logger.info(
            "summary frames=%d detected=%d dropped=%d quads=%d captures=%d errors=%d avg_fps=%.2f",
            self.frames_read,
            self.frames_detected,
            self.frames_dropped,
            self.quads_found,
            self.captures,
            self.capture_errors,
            avg,
        )
        return SessionSummary(
            self.frames_read,
            self.frames_detected,
            self.frames_dropped,
            self.quads_found,
            self.captures,
            self.capture_errors,
            self.read_errors,
            avg,
        )
