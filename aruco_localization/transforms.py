"""Vision-to-robot frame conversion for marker-map poses."""

from __future__ import annotations

import math
from typing import Optional, Sequence

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .ip_types import PoseEstimate, StampedTransform

# Vision axes (x right, y down, z forward) -> robot axes (x forward, y left, z up).
ROTATE_TO_ROBOT = np.array([
    [-1.0, 0.0, 0.0],
    [0.0, 0.0, 1.0],
    [0.0, 1.0, 0.0],
])

DEFAULT_MAP_HEIGHT_M = 0.4064
DEFAULT_CAMERA_PITCH_RAD = -math.pi / 2


def rodrigues(rvec) -> np.ndarray:
    """Axis-angle vector (3,) or (3,1) to a 3x3 rotation matrix."""
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
    R, _ = cv2.Rodrigues(rvec)
    return R


def rpy_to_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Fixed-axis roll/pitch/yaw (about x, then y, then z) to a rotation matrix."""
    return Rotation.from_euler("xyz", [roll, pitch, yaw]).as_matrix()


def to_robot_frame(rvec, tvec) -> tuple[np.ndarray, np.ndarray]:
    """
    Convert a tracker pose to robot convention.

    Only the orientation is remapped (R * ROTATE_TO_ROBOT^T); the translation
    is returned as given by the tracker.

    Returns:
        (R, t) with R (3,3) and t (3,)
    """
    R = rodrigues(rvec) @ ROTATE_TO_ROBOT.T
    t = np.asarray(tvec, dtype=np.float64).reshape(3).copy()
    return R, t


def to_homogeneous(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t).reshape(3)
    return T


def chain_matrix(chain: Sequence[StampedTransform]) -> np.ndarray:
    """
    Compose parent->child links in order into one 4x4 matrix.

    Each link's child must be the next link's parent.
    """
    T = np.eye(4)
    for i, link in enumerate(chain):
        if i > 0 and chain[i - 1].child != link.parent:
            raise ValueError(
                f"broken chain: '{chain[i - 1].child}' does not match '{link.parent}'"
            )
        T = T @ to_homogeneous(link.rotation, link.translation)
    return T


class FrameConverter:
    """
    Builds the published transform chain world -> map -> camera -> body.

    The map -> camera link comes from each pose estimate. The other two are
    fixed physical offsets: the board sits map_height_m above the world origin
    and the camera is pitched by camera_pitch_rad on the body.
    """

    def __init__(
        self,
        world_frame: str = "world",
        map_frame: str = "aruco",
        camera_frame: str = "camera",
        body_frame: str = "body",
        map_height_m: float = DEFAULT_MAP_HEIGHT_M,
        camera_pitch_rad: float = DEFAULT_CAMERA_PITCH_RAD,
    ):
        self.world_frame = world_frame
        self.map_frame = map_frame
        self.camera_frame = camera_frame
        self.body_frame = body_frame
        self.map_height_m = float(map_height_m)
        self.camera_pitch_rad = float(camera_pitch_rad)

    def map_to_camera(self, estimate: PoseEstimate, stamp: float) -> StampedTransform:
        R, t = to_robot_frame(estimate.rvec, estimate.tvec)
        return StampedTransform(self.map_frame, self.camera_frame, R, t, stamp)

    def camera_to_body(self, stamp: float) -> StampedTransform:
        R = rpy_to_matrix(0.0, self.camera_pitch_rad, 0.0)
        return StampedTransform(self.camera_frame, self.body_frame, R, np.zeros(3), stamp)

    def world_to_map(self, stamp: float) -> StampedTransform:
        t = np.array([0.0, 0.0, -self.map_height_m])
        return StampedTransform(self.world_frame, self.map_frame, np.eye(3), t, stamp)

    def static_transforms(self, stamp: float) -> list[StampedTransform]:
        return [self.world_to_map(stamp), self.camera_to_body(stamp)]

    def transform_chain(
        self, estimate: Optional[PoseEstimate], stamp: float
    ) -> list[StampedTransform]:
        """
        All links to broadcast this cycle, in chain order.

        Without an estimate only the two static links are returned.
        """
        if estimate is None:
            return self.static_transforms(stamp)
        return [
            self.world_to_map(stamp),
            self.map_to_camera(estimate, stamp),
            self.camera_to_body(stamp),
        ]
