import cv2
import numpy as np
import pytest

from doc_scanner.capture import render_page
from scan_pipeline.sp_types import CameraIntrinsics, CoordinateSpace, Frame
from scan_pipeline.strategies.detect_rectangles import QuadrilateralDetector, order_points
from scan_pipeline.transforms import quad_to_image_pixels


def _image_corners(result, size=(640, 480)):
    q = quad_to_image_pixels(result.quad, size)
    return np.array([p.as_tuple() for p in q.corners()])


def test_detects_page_in_normalized_space(page_frame, page_corners_px):
    result = QuadrilateralDetector().detect(page_frame)

    assert result.found
    assert result.frame_idx == 1
    assert result.quad.space is CoordinateSpace.NORMALIZED
    assert 0.25 < result.score < 0.5
    assert np.allclose(_image_corners(result), page_corners_px, atol=6.0)


def test_detector_labels_are_bottom_left_origin(page_frame):
    """Detector 'top' corners have the smaller y in normalized space, i.e. visually bottom."""
    q = QuadrilateralDetector().detect(page_frame).quad
    assert q.top_left.y < q.bottom_left.y
    assert q.top_right.y < q.bottom_right.y
    assert q.top_left.x < q.top_right.x


def test_no_quadrilateral_returns_none(blank_frame):
    result = QuadrilateralDetector().detect(blank_frame)
    assert not result.found
    assert result.quad is None


def test_small_candidates_are_rejected():
    img = render_page(640, 480, ((0.45, 0.45), (0.55, 0.45), (0.55, 0.55), (0.45, 0.55)))
    assert not QuadrilateralDetector().detect(Frame(3, "ts", img)).found
    assert QuadrilateralDetector(minimum_size=0.05).detect(Frame(3, "ts", img)).found


def test_quadrature_tolerance_rejects_skewed_pages(page_frame):
    # synthetic page corners deviate up to ~10 degrees from square
    assert not QuadrilateralDetector(quadrature_tolerance=3.0).detect(page_frame).found


def test_aspect_ratio_bounds(page_frame):
    assert not QuadrilateralDetector(minimum_aspect_ratio=0.9).detect(page_frame).found


@pytest.mark.parametrize(
    "frame",
    [
        Frame(7, "ts", np.zeros((0, 0, 3), dtype=np.uint8)),
        Frame(7, "ts", np.zeros((10, 10, 3), dtype=np.uint8), pixel_format="YUV"),
        Frame(7, "ts", None),
    ],
)
def test_internal_failures_drop_the_frame(frame):
    result = QuadrilateralDetector().detect(frame)
    assert not result.found
    assert result.frame_idx == 7


def test_bgra_frames_are_supported(page_frame):
    bgra = cv2.cvtColor(page_frame.image, cv2.COLOR_BGR2BGRA)
    assert QuadrilateralDetector().detect(Frame(2, "ts", bgra, "BGRA")).found


def test_intrinsics_are_optional_and_used(page_frame, page_corners_px):
    K = np.array([[500.0, 0, 320], [0, 500.0, 240], [0, 0, 1]])
    page_frame.intrinsics = CameraIntrinsics(K, np.zeros(5))
    result = QuadrilateralDetector().detect(page_frame)
    assert result.found
    assert np.allclose(_image_corners(result), page_corners_px, atol=6.0)

    page_frame.intrinsics = CameraIntrinsics(K, None)
    assert QuadrilateralDetector().detect(page_frame).found


def test_lens_distortion_keeps_corners_on_raw_frame(page_frame, page_corners_px):
    plain = _image_corners(QuadrilateralDetector().detect(page_frame))

    K = np.array([[500.0, 0, 320], [0, 500.0, 240], [0, 0, 1]])
    page_frame.intrinsics = CameraIntrinsics(K, np.array([-0.3, 0.1, 0.0, 0.0, 0.0]))
    result = QuadrilateralDetector().detect(page_frame)

    assert result.found
    corners = _image_corners(result)
    assert np.allclose(corners, page_corners_px, atol=6.0)
    assert np.allclose(corners, plain, atol=1e-6)


def test_order_points():
    pts = np.array([[10, 90], [90, 10], [10, 10], [90, 90]], dtype=np.float64)
    assert order_points(pts).tolist() == [[10, 10], [90, 10], [90, 90], [10, 90]]


def test_invalid_configuration():
    with pytest.raises(ValueError):
        QuadrilateralDetector(minimum_size=1.5)
    with pytest.raises(ValueError):
        QuadrilateralDetector(minimum_aspect_ratio=0.8, maximum_aspect_ratio=0.5)
