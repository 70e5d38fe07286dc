"""Marker-map configuration: geometry of a board of ArUco markers.

Files use the ArUco library's FileStorage layout::

    %YAML:1.0
    aruco_bc_dict: ARUCO_MIP_36h12
    aruco_bc_nmarkers: 2
    aruco_bc_mInfoType: 0
    aruco_bc_markers:
       - { id:1, corners:[ [ -50., 50., 0. ], [ 50., 50., 0. ], ... ] }

``aruco_bc_mInfoType`` is 0 when corners are in pixels, 1 when in meters.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

import cv2
import numpy as np

from .ip_types import Marker

PIXELS = "pixels"
METERS = "meters"

_UNIT_FLAGS = {0: PIXELS, 1: METERS}


class MarkerMapError(ValueError):
    """Raised when a marker map cannot be read or converted."""


@dataclass(frozen=True, eq=False)
class MarkerInfo:
    marker_id: int
    corners: np.ndarray  # (4,3)

    def edge_length(self) -> float:
        return float(np.linalg.norm(self.corners[0] - self.corners[1]))


@dataclass(frozen=True)
class MarkerMapConfig:
    dictionary: str
    markers: tuple[MarkerInfo, ...]
    units: str = PIXELS
    _by_id: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._by_id.update({m.marker_id: m for m in self.markers})

    def is_expressed_in_meters(self) -> bool:
        return self.units == METERS

    def is_expressed_in_pixels(self) -> bool:
        return self.units == PIXELS

    def ids(self) -> list[int]:
        return [m.marker_id for m in self.markers]

    def get(self, marker_id: int) -> MarkerInfo | None:
        return self._by_id.get(marker_id)

    def marker_size(self) -> float:
        return self.markers[0].edge_length()

    def indices_of(self, detected: Iterable[Marker]) -> list[int]:
        """Indices of detected markers whose id belongs to this map."""
        return [i for i, m in enumerate(detected) if m.marker_id in self._by_id]

    def convert_to_meters(self, marker_size: float) -> "MarkerMapConfig":
        """
        Rescale a pixel map so every marker edge has the given physical length.

        The scale factor is taken from the first edge of the first marker.
        """
        if not self.is_expressed_in_pixels():
            raise MarkerMapError("marker map is not expressed in pixels")
        if marker_size <= 0:
            raise MarkerMapError(f"marker size must be positive, got {marker_size}")
        pix_size = self.marker_size()
        if pix_size <= 0:
            raise MarkerMapError("first marker has a degenerate edge")
        factor = marker_size / pix_size
        markers = tuple(
            MarkerInfo(m.marker_id, m.corners * factor) for m in self.markers
        )
        return replace(self, markers=markers, units=METERS)


def ensure_metric(config: MarkerMapConfig, marker_size: float) -> MarkerMapConfig:
    if config.is_expressed_in_pixels():
        return config.convert_to_meters(marker_size)
    return config


def _read_corners(node, marker_id: int) -> np.ndarray:
    if node.empty() or not node.isSeq() or node.size() != 4:
        raise MarkerMapError(f"marker {marker_id}: expected 4 corners")
    pts = []
    for i in range(4):
        c = node.at(i)
        if not c.isSeq() or c.size() != 3:
            raise MarkerMapError(f"marker {marker_id}: corner {i} must have 3 values")
        pts.append([c.at(k).real() for k in range(3)])
    return np.array(pts, dtype=np.float64)


def load_marker_map(path: str | Path) -> MarkerMapConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Marker map not found: {p}")

    try:
        fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    except cv2.error as exc:
        raise MarkerMapError(f"{p}: unreadable marker map: {exc}") from exc
    if not fs.isOpened():
        raise MarkerMapError(f"{p}: unreadable marker map")

    try:
        info_type = fs.getNode("aruco_bc_mInfoType")
        if info_type.empty():
            raise MarkerMapError(f"{p}: missing aruco_bc_mInfoType")
        units = _UNIT_FLAGS.get(int(info_type.real()))
        if units is None:
            raise MarkerMapError(f"{p}: unknown unit flag {int(info_type.real())}")

        dict_node = fs.getNode("aruco_bc_dict")
        dictionary = dict_node.string() if not dict_node.empty() else "ARUCO"

        markers_node = fs.getNode("aruco_bc_markers")
        if markers_node.empty() or not markers_node.isSeq() or markers_node.size() == 0:
            raise MarkerMapError(f"{p}: no markers defined")

        markers = []
        for i in range(markers_node.size()):
            m = markers_node.at(i)
            id_node = m.getNode("id")
            if id_node.empty():
                raise MarkerMapError(f"{p}: marker #{i} has no id")
            marker_id = int(id_node.real())
            markers.append(MarkerInfo(marker_id, _read_corners(m.getNode("corners"), marker_id)))
    finally:
        fs.release()

    return MarkerMapConfig(dictionary=dictionary, markers=tuple(markers), units=units)
