class ScannerError(Exception):
    """Base class for document scanner errors."""


class InvalidGeometry(ScannerError, ValueError):
    """Malformed or degenerate points/quadrilateral."""


class DetectionTransientFailure(ScannerError):
    """Per-frame detector failure. Never escapes QuadrilateralDetector.detect()."""


class CaptureDeviceFailure(ScannerError, RuntimeError):
    """The still capture call failed."""


class CaptureInProgress(ScannerError):
    """A capture trigger arrived while another capture was running."""


class NoCameraAvailable(ScannerError, RuntimeError):
    """The live frame source could not be opened."""
