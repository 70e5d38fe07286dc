"""Camera intrinsics handling for the marker-map pose tracker.

The pose tracker only understands a plumb-bob model with four coefficients
(k1, k2, p1, p2). Intrinsics arriving from a camera driver or a calibration
file are converted here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import cv2
import numpy as np
import yaml

from .ip_types import CameraIntrinsics, CameraParameters

logger = logging.getLogger(__name__)

NUM_DISTORTION_COEFFS = 4


def to_camera_parameters(intrinsics: CameraIntrinsics) -> CameraParameters:
    """
    Convert a camera intrinsics record into tracker camera parameters.

    K is copied element by element. When D has 4 or 5 entries the first 4
    are kept (a 5th k3 term is dropped). Any other length is replaced by
    zero distortion and a warning is logged.

    Args:
        intrinsics: Intrinsics of the frame being processed

    Returns:
        CameraParameters, possibly degraded to an undistorted model
    """
    camera_matrix = np.array(intrinsics.K, dtype=np.float64).reshape(3, 3)

    coeffs = list(intrinsics.D) if intrinsics.D is not None else []
    distortion = np.zeros((NUM_DISTORTION_COEFFS, 1), dtype=np.float64)
    if len(coeffs) in (4, 5):
        for i in range(NUM_DISTORTION_COEFFS):
            distortion[i, 0] = float(coeffs[i])
    else:
        logger.warning(
            "Length of distortion vector is %d, not 4, assuming zero distortion.",
            len(coeffs),
        )

    return CameraParameters(
        camera_matrix,
        distortion,
        (int(intrinsics.width), int(intrinsics.height)),
    )


def _require(raw: dict[str, Any], key: str, path: Path) -> Any:
    if key not in raw:
        raise ValueError(f"{path}: missing '{key}'")
    return raw[key]


def load_camera_info(path: str | Path) -> CameraIntrinsics:
    """Read a ROS camera_info YAML file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Camera info not found: {p}")
    with p.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    if not isinstance(raw, dict):
        raise ValueError("camera_info root must be a mapping")

    K = _require(raw, "camera_matrix", p)
    K = K.get("data") if isinstance(K, dict) else K
    D = raw.get("distortion_coefficients", {"data": []})
    D = D.get("data") if isinstance(D, dict) else D
    if K is None or len(K) != 9:
        raise ValueError(f"{p}: camera_matrix must have 9 values")

    return CameraIntrinsics(
        K=[float(v) for v in K],
        D=[float(v) for v in (D or [])],
        width=int(_require(raw, "image_width", p)),
        height=int(_require(raw, "image_height", p)),
    )


def load_calibration(path: str | Path) -> CameraIntrinsics:
    """Read an OpenCV FileStorage calibration (camera_matrix, dist_coeffs, size)."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Calibration not found: {p}")
    fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        w_node = fs.getNode("image_width")
        h_node = fs.getNode("image_height")
        if K is None or w_node.empty() or h_node.empty():
            raise ValueError(f"{p}: incomplete calibration")
        w = int(w_node.real())
        h = int(h_node.real())
    finally:
        fs.release()

    D = [] if dist is None else np.asarray(dist, dtype=np.float64).reshape(-1).tolist()
    return CameraIntrinsics(
        K=np.asarray(K, dtype=np.float64).reshape(-1).tolist(),
        D=D,
        width=w,
        height=h,
    )


def load_intrinsics(path: str | Path) -> CameraIntrinsics:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Intrinsics not found: {p}")
    with p.open("r", encoding="utf-8") as fp:
        head = fp.readline()
    if head.startswith("%YAML"):
        return load_calibration(p)
    return load_camera_info(p)
