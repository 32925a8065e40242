import logging
from unittest.mock import patch

import numpy as np

from doc_scanner.output import LogOutput, WindowOutput
from scan_pipeline.sp_types import RectifiedImage


def _result():
    return RectifiedImage(np.zeros((5, 8, 3), np.uint8), 8, 5, orientation=1)


def test_log_output_counts_captures(caplog):
    out = LogOutput(logging.getLogger("test.output"))
    out.open()
    with caplog.at_level(logging.INFO, logger="test.output"):
        out.write_image(_result())
        out.write_image(_result())
    out.close()
    assert out.count == 2
    assert "capture #2: 8x5" in caplog.text


@patch("doc_scanner.output.cv2.destroyWindow")
@patch("doc_scanner.output.cv2.imshow")
@patch("doc_scanner.output.cv2.namedWindow")
def test_window_output_opens_on_demand(mock_named, mock_show, mock_destroy):
    out = WindowOutput("scan")
    result = _result()
    out.write_image(result)
    out.close()
    mock_named.assert_called_once()
    mock_show.assert_called_once_with("scan", result.image)
    mock_destroy.assert_called_once_with("scan")
