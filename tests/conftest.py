import numpy as np
import pytest

from doc_scanner.capture import SYNTHETIC_PAGE, render_page
from scan_pipeline.sp_types import CoordinateSpace, Frame, Quadrilateral


@pytest.fixture
def page_frame():
    """640x480 frame with a bright skewed page (corners in SYNTHETIC_PAGE)."""
    return Frame(1, "ts", render_page(640, 480))


@pytest.fixture
def blank_frame():
    return Frame(1, "ts", np.full((480, 640, 3), 40, dtype=np.uint8))


@pytest.fixture
def page_corners_px():
    """Expected page corners in image pixels, TL, TR, BR, BL."""
    return np.array([[x * 640, y * 480] for x, y in SYNTHETIC_PAGE])


@pytest.fixture
def detector_quad():
    """Detector-labelled quad: x in [0.2, 0.8], y in [0.1, 0.6] (bottom-left origin)."""
    return Quadrilateral.from_corners(
        (0.2, 0.1), (0.8, 0.1), (0.2, 0.6), (0.8, 0.6), CoordinateSpace.NORMALIZED
    )
