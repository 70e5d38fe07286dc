from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import cv2
import numpy as np

from .ip_types import CameraParameters, Marker, PoseEstimate

logger = logging.getLogger(__name__)

# ArUco library dictionary names and OpenCV short names -> cv2.aruco attribute
_DICT_TABLE = {
    "aruco": "DICT_ARUCO_ORIGINAL",
    "aruco_mip_36h12": "DICT_ARUCO_MIP_36H12",
    "tag36h11": "DICT_APRILTAG_36H11",
    "tag36h10": "DICT_APRILTAG_36H10",
    "tag25h9": "DICT_APRILTAG_25H9",
    "tag16h5": "DICT_APRILTAG_16H5",
    "4x4_50": "DICT_4X4_50",
    "4x4_100": "DICT_4X4_100",
    "4x4_250": "DICT_4X4_250",
    "5x5_50": "DICT_5X5_50",
    "5x5_100": "DICT_5X5_100",
    "5x5_250": "DICT_5X5_250",
    "6x6_50": "DICT_6X6_50",
    "6x6_100": "DICT_6X6_100",
    "6x6_250": "DICT_6X6_250",
    "7x7_50": "DICT_7X7_50",
    "7x7_100": "DICT_7X7_100",
}

_DEFAULT_DICT = "DICT_4X4_50"


def get_dict(name: str):
    """
    Resolve a marker-map dictionary name to an OpenCV predefined dictionary.

    Accepts ArUco library names (``ARUCO_MIP_36h12``, ``TAG36h11``) and OpenCV
    short names (``4x4_50``, ``DICT_6X6_250``). Unknown names, or names this
    OpenCV build does not provide, fall back to 4x4_50.
    """
    key = (name or "").strip().lower()
    if key.startswith("dict_"):
        key = key[5:]
    attr = _DICT_TABLE.get(key)
    if attr is None or not hasattr(cv2.aruco, attr):
        logger.warning("unknown marker dictionary '%s', using %s", name, _DEFAULT_DICT)
        attr = _DEFAULT_DICT
    code = getattr(cv2.aruco, attr)

    if hasattr(cv2.aruco, "getPredefinedDictionary"):           # OpenCV >= 4.7
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)


def _make_params():
    """Detector parameters with contour-based corner refinement."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        params = cv2.aruco.DetectorParameters_create()
    else:
        params = cv2.aruco.DetectorParameters()
    params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_CONTOUR
    return params


class MarkerDetector(ABC):
    @abstractmethod
    def detect(self, image) -> list[Marker]: ...


class ArucoMarkerDetector(MarkerDetector):
    """
    Detect ArUco markers of one dictionary in a BGR or grayscale image.
    Returns a list[Marker] with (marker_id, corners).
    """
    def __init__(self, dict_name: str = "4x4_50"):
        self.dictionary = get_dict(dict_name)
        self.params = _make_params()
        self._detector = None
        # Prefer the newer ArucoDetector API if present
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def detect(self, image) -> list[Marker]:
        if self._detector is not None:
            corners, ids, _rej = self._detector.detectMarkers(image)
        else:
            corners, ids, _rej = cv2.aruco.detectMarkers(
                image, self.dictionary, parameters=self.params
            )

        markers: list[Marker] = []
        if ids is not None and len(ids) > 0:
            for i, mid in enumerate(ids.flatten()):
                markers.append(Marker(int(mid), np.asarray(corners[i]).reshape(4, 2)))
        return markers


def draw_markers(image, markers: list[Marker], color=(0, 0, 255)) -> None:
    if not markers:
        return
    ids = np.array([m.marker_id for m in markers], dtype=np.int32).reshape(-1, 1)
    corners = [np.asarray(m.corners, dtype=np.float32).reshape(1, 4, 2) for m in markers]
    cv2.aruco.drawDetectedMarkers(image, corners, ids, color)


def draw_axis(image, params: CameraParameters, estimate: PoseEstimate, length: float) -> None:
    cv2.drawFrameAxes(
        image,
        params.camera_matrix,
        params.distortion,
        np.asarray(estimate.rvec, dtype=np.float64).reshape(3, 1),
        np.asarray(estimate.tvec, dtype=np.float64).reshape(3, 1),
        length,
    )
