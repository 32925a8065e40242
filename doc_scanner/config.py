from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

from scan_pipeline.transforms import DeviceOrientation, PreviewGravity

FALLBACK_POLICIES = ("full_image", "reject")


@dataclass
class DetectorConfig:
    minimum_size: float = 0.3  # shortest edge / shorter frame dimension
    quadrature_tolerance: float = 20.0  # degrees off a right angle
    minimum_aspect_ratio: float = 0.3
    maximum_aspect_ratio: float = 1.0
    canny_low: int = 40
    canny_high: int = 120
    approx_epsilon: float = 0.02  # ratio of contour perimeter
    blur_kernel: int = 5

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PreviewConfig:
    """Preview surface the overlay is drawn on. Zero size = the frame itself."""

    width: int = 0
    height: int = 0
    orientation: str = DeviceOrientation.LANDSCAPE_RIGHT.value
    gravity: str = PreviewGravity.RESIZE.value

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScannerConfig:
    camera_name: str = "scanner"
    device: int | str = 0
    fps: int = 30
    width: int = 1280
    height: int = 720
    calibration_path: Optional[str] = None
    duration_sec: float = 0.0  # 0 = until stopped
    max_frames: Optional[int] = None
    dry_run: bool = False
    capture_fallback: str = "full_image"
    log_path: Optional[str] = None
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "ScannerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    import yaml

    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _load_detector(raw: dict[str, Any]) -> DetectorConfig:
    d = DetectorConfig()
    d.minimum_size = float(raw.get("minimum_size", d.minimum_size))
    d.quadrature_tolerance = float(raw.get("quadrature_tolerance", d.quadrature_tolerance))
    d.minimum_aspect_ratio = float(raw.get("minimum_aspect_ratio", d.minimum_aspect_ratio))
    d.maximum_aspect_ratio = float(raw.get("maximum_aspect_ratio", d.maximum_aspect_ratio))
    d.canny_low = int(raw.get("canny_low", d.canny_low))
    d.canny_high = int(raw.get("canny_high", d.canny_high))
    d.approx_epsilon = float(raw.get("approx_epsilon", d.approx_epsilon))
    d.blur_kernel = int(raw.get("blur_kernel", d.blur_kernel))
    return d


def _load_preview(raw: dict[str, Any]) -> PreviewConfig:
    p = PreviewConfig()
    p.width = int(raw.get("width", p.width))
    p.height = int(raw.get("height", p.height))
    p.orientation = DeviceOrientation(raw.get("orientation", p.orientation)).value
    p.gravity = PreviewGravity(raw.get("gravity", p.gravity)).value
    return p


def load_config(path: str | Path) -> ScannerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = ScannerConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.device = raw.get("device", cfg.device)
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.calibration_path = raw.get("calibration_path", cfg.calibration_path)
    cfg.duration_sec = float(raw.get("duration_sec", cfg.duration_sec))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.log_path = raw.get("log_path", cfg.log_path)

    cfg.capture_fallback = str(raw.get("capture_fallback", cfg.capture_fallback))
    if cfg.capture_fallback not in FALLBACK_POLICIES:
        raise ValueError(
            f"capture_fallback must be one of {FALLBACK_POLICIES}, got {cfg.capture_fallback!r}"
        )

    det_raw = raw.get("detector")
    if det_raw is not None:
        if not isinstance(det_raw, dict):
            raise ValueError("detector must be a mapping")
        cfg.detector = _load_detector(det_raw)

    prev_raw = raw.get("preview")
    if prev_raw is not None:
        if not isinstance(prev_raw, dict):
            raise ValueError("preview must be a mapping")
        cfg.preview = _load_preview(prev_raw)

    return cfg
