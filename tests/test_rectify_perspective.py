import cv2
import numpy as np
import pytest

from scan_pipeline.errors import InvalidGeometry
from scan_pipeline.sp_types import CoordinateSpace, Quadrilateral
from scan_pipeline.strategies.rectify_perspective import (
    PerspectiveRectifier,
    compute_homography,
    output_size,
)

I = CoordinateSpace.IMAGE

RED, GREEN, BLUE, WHITE = (0, 0, 255), (0, 255, 0), (255, 0, 0), (255, 255, 255)


def _document(w=200, h=100):
    doc = np.zeros((h, w, 3), dtype=np.uint8)
    doc[: h // 2, : w // 2] = RED
    doc[: h // 2, w // 2 :] = GREEN
    doc[h // 2 :, : w // 2] = BLUE
    doc[h // 2 :, w // 2 :] = WHITE
    return doc


SKEWED = Quadrilateral.from_corners((60, 50), (330, 30), (40, 260), (350, 280), I)


def _skewed_scene():
    doc = _document()
    src = np.float32([[0, 0], [200, 0], [0, 100], [200, 100]])
    dst = np.float32([p.as_tuple() for p in SKEWED.labelled()])
    M = cv2.getPerspectiveTransform(src, dst)
    scene = cv2.warpPerspective(doc, M, (400, 300), flags=cv2.INTER_LINEAR)
    return scene, M


def test_full_bounds_is_identity():
    rng = np.random.default_rng(0)
    img = rng.integers(0, 256, size=(40, 60, 3), dtype=np.uint8)
    quad = Quadrilateral.from_corners((0, 0), (60, 0), (0, 40), (60, 40), I)

    out = PerspectiveRectifier().rectify(img, quad)

    assert (out.width, out.height) == (60, 40)
    assert out.image.shape == img.shape
    assert np.abs(out.image.astype(int) - img.astype(int)).max() <= 1


def test_output_size_averages_opposite_edges():
    w, h = output_size(SKEWED)
    top = np.hypot(270, 20)
    bottom = np.hypot(310, 20)
    left = np.hypot(20, 210)
    right = np.hypot(20, 250)
    assert w == round((top + bottom) / 2)
    assert h == round((left + right) / 2)


def test_homography_matches_analytic_inverse():
    _scene, M = _skewed_scene()
    H = compute_homography(SKEWED, (200, 100))
    expected = np.linalg.inv(M)
    expected /= expected[2, 2]
    assert np.allclose(H / H[2, 2], expected, rtol=1e-4, atol=1e-6)


def test_skewed_document_is_flattened():
    scene, _M = _skewed_scene()
    out = PerspectiveRectifier().rectify(scene, SKEWED)
    h, w = out.image.shape[:2]
    assert (w, h) == (out.width, out.height)

    def at(fx, fy):
        return out.image[int(fy * h), int(fx * w)].astype(int)

    # corner pixels carry the source corner colours
    for (fx, fy), color in {
        (0.05, 0.05): RED,
        (0.95, 0.05): GREEN,
        (0.05, 0.95): BLUE,
        (0.95, 0.95): WHITE,
    }.items():
        assert np.abs(at(fx, fy) - np.array(color)).max() <= 10


def test_orientation_is_carried_through():
    img = np.zeros((20, 20, 3), dtype=np.uint8)
    quad = Quadrilateral.from_corners((0, 0), (20, 0), (0, 20), (20, 20), I)
    out = PerspectiveRectifier().rectify(img, quad, orientation=6)
    assert out.orientation == 6
    assert out.source_quad is quad


def test_grayscale_rasters_are_supported():
    img = np.full((30, 30), 128, dtype=np.uint8)
    quad = Quadrilateral.from_corners((5, 5), (25, 5), (5, 25), (25, 25), I)
    out = PerspectiveRectifier().rectify(img, quad)
    assert out.image.shape == (20, 20)
    assert (out.image == 128).all()


@pytest.mark.parametrize(
    "corners",
    [
        ((0, 0), (100, 0), (50, 0), (100, 100)),  # three collinear corners
        ((0, 0), (0, 0), (0, 0), (0, 0)),  # placeholder quad at the origin
        ((0, 0), (100, 0), (0, 0.001), (100, 0.001)),  # near-zero area
        ((150, 10), (20, 20), (10, 190), (190, 180)),  # top corners swapped: bow-tie
        ((0, 0), (100, 0), (100, 100), (0, 100)),  # bottom corners swapped: bow-tie
        ((0, 0), (100, 0), (0, 100), (30, 30)),  # dart, one corner pushed inside
    ],
)
def test_degenerate_quads_raise_invalid_geometry(corners):
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    with pytest.raises(InvalidGeometry):
        PerspectiveRectifier().rectify(img, Quadrilateral.from_corners(*corners, I))


def test_rejects_non_image_space_and_empty_images():
    quad = Quadrilateral.from_corners((0, 0), (1, 0), (0, 1), (1, 1), CoordinateSpace.NORMALIZED)
    with pytest.raises(InvalidGeometry):
        PerspectiveRectifier().rectify(np.zeros((10, 10, 3), np.uint8), quad)

    ok = Quadrilateral.from_corners((0, 0), (10, 0), (0, 10), (10, 10), I)
    with pytest.raises(InvalidGeometry):
        PerspectiveRectifier().rectify(np.zeros((0, 0, 3), np.uint8), ok)
