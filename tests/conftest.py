from pathlib import Path

import cv2
import numpy as np
import pytest

from aruco_localization.detect import MarkerDetector
from aruco_localization.ip_types import CameraIntrinsics
from aruco_localization.output import TransformBroadcaster
from aruco_localization.tracker import PoseTracker


def marker_line(marker_id, corners):
    pts = ", ".join("[ %r, %r, %r ]" % tuple(float(v) for v in c) for c in corners)
    return f"   - {{ id: {marker_id}, corners: [ {pts} ] }}\n"


def square(cx, cy, side):
    h = side / 2.0
    return [
        (cx - h, cy + h, 0.0),
        (cx + h, cy + h, 0.0),
        (cx + h, cy - h, 0.0),
        (cx - h, cy - h, 0.0),
    ]


def write_marker_map(path: Path, markers, info_type=0, dictionary="DICT_4X4_50") -> Path:
    """Write a marker map in the ArUco FileStorage layout. markers: {id: corners}."""
    text = (
        "%YAML:1.0\n---\n"
        f"aruco_bc_dict: {dictionary}\n"
        f"aruco_bc_nmarkers: {len(markers)}\n"
        f"aruco_bc_mInfoType: {info_type}\n"
        "aruco_bc_markers:\n"
    )
    for mid, corners in markers.items():
        text += marker_line(mid, corners)
    path.write_text(text, encoding="utf-8")
    return path


def render_marker(marker_id: int, side: int, dict_code=None) -> np.ndarray:
    code = cv2.aruco.DICT_4X4_50 if dict_code is None else dict_code
    if hasattr(cv2.aruco, "getPredefinedDictionary"):
        dictionary = cv2.aruco.getPredefinedDictionary(code)
    else:
        dictionary = cv2.aruco.Dictionary_get(code)
    if hasattr(cv2.aruco, "generateImageMarker"):
        return cv2.aruco.generateImageMarker(dictionary, marker_id, side)
    return cv2.aruco.drawMarker(dictionary, marker_id, side)


class FakeDetector(MarkerDetector):
    def __init__(self, markers=None):
        self.markers = list(markers or [])
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        return list(self.markers)


class FakeTracker(PoseTracker):
    def __init__(self, result=(None, None, False)):
        self.result = result
        self.configured = []
        self.estimate_calls = 0

    def configure(self, params, marker_map):
        self.configured.append((params, marker_map))

    def estimate_pose(self, markers):
        self.estimate_calls += 1
        return self.result


class RecordingBroadcaster(TransformBroadcaster):
    def __init__(self):
        self.sent = []

    def send_transform(self, transform):
        self.sent.append(transform)


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(
        K=[500.0, 0.0, 320.0, 0.0, 500.0, 240.0, 0.0, 0.0, 1.0],
        D=[0.0, 0.0, 0.0, 0.0, 0.0],
        width=640,
        height=480,
    )


@pytest.fixture
def pixel_map_path(tmp_path):
    return write_marker_map(
        tmp_path / "map.yml",
        {1: square(-100, 0, 100), 2: square(100, 0, 100)},
    )
