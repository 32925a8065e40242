import cv2, numpy as np
from pathlib import Path
from typing import Tuple
from ..sp_types import CameraIntrinsics

def load_calib(path: str) -> Tuple[np.ndarray, np.ndarray, tuple[int,int]]:
    if not Path(path).exists():
        raise FileNotFoundError(f"Calibration not found: {path}")
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    K = fs.getNode("camera_matrix").mat()
    dist = fs.getNode("dist_coeffs").mat()
    w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    fs.release()
    if K is None or np.asarray(K).shape != (3, 3):
        raise ValueError(f"camera_matrix missing or not 3x3 in {path}")
    return K, dist, (w, h)

def load_intrinsics(path: str) -> CameraIntrinsics:
    """Intrinsics attached to live frames; the calibrated size is not needed."""
    K, dist, _ = load_calib(path)
    dist = None if dist is None else np.asarray(dist, dtype=np.float64)
    return CameraIntrinsics(np.asarray(K, dtype=np.float64), dist)
