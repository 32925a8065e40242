"""Live document scanner: detection overlay and perspective-corrected capture."""

from .config import ScannerConfig
from .controller import CaptureController
from .overlay import OverlayState
from .worker import ScannerWorker

__all__ = ["ScannerConfig", "CaptureController", "OverlayState", "ScannerWorker"]
