import argparse
import signal
import sys

import cv2

from .config import FALLBACK_POLICIES, ScannerConfig, load_config
from .output import WindowOutput
from .worker import ScannerWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Run a live document scanner")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--camera-name")
    ap.add_argument("--device")
    ap.add_argument("--fps", type=int)
    ap.add_argument("--width", type=int)
    ap.add_argument("--height", type=int)
    ap.add_argument("--calib")
    ap.add_argument("--duration", type=float)
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--fallback", choices=FALLBACK_POLICIES)
    ap.add_argument("--log-file")
    ap.add_argument("--show", action="store_true", help="Preview window: 'c' captures, 'q' quits")
    ap.add_argument("--capture-after", type=int, help="Capture once N frames were detected")

    return ap


def _apply_args(cfg: ScannerConfig, args: argparse.Namespace) -> ScannerConfig:
    device = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)

    cfg.apply_overrides(
        camera_name=args.camera_name,
        device=device,
        fps=args.fps,
        width=args.width,
        height=args.height,
        calibration_path=args.calib,
        duration_sec=args.duration,
        max_frames=args.max_frames,
        dry_run=args.dry_run if args.dry_run else None,
        capture_fallback=args.fallback,
        log_path=args.log_file,
    )
    return cfg


class _Preview:
    """Live window for --show: draws the overlay on the latest still."""

    def __init__(self, window_name: str = "preview"):
        self.window_name = window_name

    def __call__(self, worker: ScannerWorker) -> bool:
        try:
            frame = worker.still.capture_still()
        except Exception:
            frame = None
        if frame is not None:
            cv2.imshow(self.window_name, worker.overlay.draw(frame.image.copy()))
        key = cv2.waitKey(1) & 0xFF
        if key == ord("q"):
            return False
        if key == ord("c"):
            worker.trigger_capture()
        return True


class _CaptureAfter:
    def __init__(self, frames: int):
        self.frames = frames
        self.fired = False

    def __call__(self, worker: ScannerWorker) -> bool:
        if not self.fired and worker.frames_detected >= self.frames:
            self.fired = worker.trigger_capture() is not None
        return True


def main() -> int:
    ap = _build_parser()
    args = ap.parse_args()

    cfg = load_config(args.config) if args.config else ScannerConfig()
    cfg = _apply_args(cfg, args)

    worker = ScannerWorker(cfg)
    # The controller shares this list; captures go to every sink.
    if args.show:
        worker.outputs.append(WindowOutput())

    on_tick = None
    if args.show:
        on_tick = _Preview()
    elif args.capture_after is not None:
        on_tick = _CaptureAfter(args.capture_after)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    summary = worker.run(on_tick)
    if args.show:
        cv2.destroyAllWindows()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
