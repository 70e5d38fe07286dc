"""Marker-map pose tracking and its one-shot lazy configuration."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

import cv2
import numpy as np

from .ip_types import CameraParameters, Marker, PoseEstimate
from .marker_map import MarkerMapConfig

logger = logging.getLogger(__name__)

EstimateResult = tuple[Optional[np.ndarray], Optional[np.ndarray], bool]


class PoseTracker(ABC):
    @abstractmethod
    def configure(self, params: CameraParameters, marker_map: MarkerMapConfig) -> None: ...

    @abstractmethod
    def estimate_pose(self, markers: list[Marker]) -> EstimateResult: ...


class MarkerMapPoseTracker(PoseTracker):
    """
    Estimate the camera pose relative to a metric marker map.

    All corners of the detected markers that belong to the map are used in a
    single solvePnP. The last successful pose seeds the next solve.
    """

    def __init__(self):
        self.params: CameraParameters | None = None
        self.marker_map: MarkerMapConfig | None = None
        self._rvec: np.ndarray | None = None
        self._tvec: np.ndarray | None = None

    def is_valid(self) -> bool:
        return self.params is not None and self.marker_map is not None

    def configure(self, params: CameraParameters, marker_map: MarkerMapConfig) -> None:
        if not marker_map.is_expressed_in_meters():
            raise ValueError("marker map must be expressed in meters")
        if not params.is_valid():
            raise ValueError("camera parameters are not valid")
        self.params = params
        self.marker_map = marker_map
        self._rvec = None
        self._tvec = None

    def _correspondences(self, markers: list[Marker]) -> tuple[np.ndarray, np.ndarray]:
        obj_pts, img_pts = [], []
        for m in markers:
            info = self.marker_map.get(m.marker_id)
            if info is None:
                continue
            obj_pts.append(info.corners)
            img_pts.append(np.asarray(m.corners, dtype=np.float64).reshape(4, 2))
        if not obj_pts:
            return np.empty((0, 3)), np.empty((0, 2))
        return np.vstack(obj_pts), np.vstack(img_pts)

    def estimate_pose(self, markers: list[Marker]) -> EstimateResult:
        if not self.is_valid():
            return None, None, False

        obj_pts, img_pts = self._correspondences(markers)
        if len(obj_pts) < 4:
            return None, None, False

        seed = {}
        if self._rvec is not None:
            seed = dict(rvec=self._rvec.copy(), tvec=self._tvec.copy(), useExtrinsicGuess=True)
        try:
            ok, rvec, tvec = cv2.solvePnP(
                obj_pts,
                img_pts,
                self.params.camera_matrix,
                self.params.distortion,
                flags=cv2.SOLVEPNP_ITERATIVE,
                **seed,
            )
        except cv2.error as exc:
            logger.debug("solvePnP failed: %s", exc)
            ok = False

        if not ok or not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
            self._rvec = self._tvec = None
            return None, None, False

        self._rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        self._tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)
        return self._rvec.reshape(3).copy(), self._tvec.reshape(3).copy(), True


@dataclass(frozen=True)
class Uninitialized:
    pass


@dataclass(frozen=True)
class Ready:
    tracker: PoseTracker


GateState = Union[Uninitialized, Ready]


class PoseTrackerGate:
    """
    Holds the pose tracker back until it can be configured, then configures it once.

    The gate starts Uninitialized and becomes Ready the first time
    try_initialize() sees a metric marker map and valid camera parameters.
    Ready is final: later calls never reconfigure the tracker, even if the
    camera intrinsics change.
    """

    def __init__(self, tracker: PoseTracker):
        self._tracker = tracker
        self.state: GateState = Uninitialized()

    @property
    def is_ready(self) -> bool:
        return isinstance(self.state, Ready)

    @property
    def tracker(self) -> PoseTracker | None:
        if isinstance(self.state, Ready):
            return self.state.tracker
        return None

    def try_initialize(self, marker_map: MarkerMapConfig, params: CameraParameters | None) -> bool:
        if isinstance(self.state, Ready):
            return True
        if not marker_map.is_expressed_in_meters():
            return False
        if params is None or not params.is_valid():
            return False

        self._tracker.configure(params, marker_map)
        self.state = Ready(self._tracker)
        logger.info("pose tracker configured with %d map markers", len(marker_map.markers))
        return True

    def estimate_pose(self, markers: list[Marker]) -> EstimateResult:
        if not isinstance(self.state, Ready):
            return None, None, False
        return self.state.tracker.estimate_pose(markers)


def to_estimate(result: EstimateResult) -> PoseEstimate | None:
    rvec, tvec, ok = result
    if not ok or rvec is None or tvec is None:
        return None
    return PoseEstimate(np.asarray(rvec, dtype=np.float64).reshape(3),
                        np.asarray(tvec, dtype=np.float64).reshape(3))
