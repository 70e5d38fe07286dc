from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation


@dataclass(frozen=True)
class CameraIntrinsics:
    K: Sequence[float]  # 9 values row-major, or a 3x3 array
    D: Sequence[float]  # 0, 4 or 5 values
    width: int
    height: int


@dataclass
class Frame:
    idx: int
    stamp: float
    image: Any  # BGR ndarray or encoded bytes
    intrinsics: Optional[CameraIntrinsics] = None


@dataclass
class CameraParameters:
    camera_matrix: np.ndarray  # (3,3)
    distortion: np.ndarray  # (4,1) k1, k2, p1, p2
    size: tuple[int, int]  # (width, height)

    def is_valid(self) -> bool:
        K = np.asarray(self.camera_matrix)
        if K.shape != (3, 3) or not np.all(np.isfinite(K)):
            return False
        if K[0, 0] <= 0 or K[1, 1] <= 0:
            return False
        width, height = self.size
        return width > 0 and height > 0


@dataclass
class Marker:
    marker_id: int
    corners: Any  # (4,2) ndarray


@dataclass
class PoseEstimate:
    rvec: np.ndarray  # axis-angle (3,)
    tvec: np.ndarray  # (3,)


@dataclass
class StampedTransform:
    parent: str
    child: str
    rotation: np.ndarray  # (3,3)
    translation: np.ndarray  # (3,)
    stamp: float

    @property
    def quaternion(self) -> np.ndarray:
        """Rotation as (x, y, z, w)."""
        return Rotation.from_matrix(self.rotation).as_quat()
