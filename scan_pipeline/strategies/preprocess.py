from abc import ABC, abstractmethod
import cv2
from ..sp_types import Frame

_TO_GRAY = {
    "BGR": cv2.COLOR_BGR2GRAY,
    "BGRA": cv2.COLOR_BGRA2GRAY,
    "RGB": cv2.COLOR_RGB2GRAY,
    "RGBA": cv2.COLOR_RGBA2GRAY,
}

class PreprocessStrategy(ABC):
    @abstractmethod
    def apply(self, f: Frame) -> Frame: ...

class GrayscaleFrame(PreprocessStrategy):
    """Single-channel view of any supported pixel format."""
    def apply(self, f: Frame) -> Frame:
        fmt = f.pixel_format.upper()
        if fmt == "GRAY":
            return f
        if fmt not in _TO_GRAY:
            raise ValueError(f"unsupported pixel format: {f.pixel_format}")
        g = cv2.cvtColor(f.image, _TO_GRAY[fmt])
        return Frame(f.idx, f.ts_iso, g, "GRAY", f.intrinsics, f.orientation)
