from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import cv2
import numpy as np

from .camera_model import to_camera_parameters
from .detect import MarkerDetector, draw_axis, draw_markers
from .ip_types import CameraParameters, Frame, Marker, PoseEstimate, StampedTransform
from .marker_map import MarkerMapConfig
from .output import ImageSink, NullImageSink, TransformBroadcaster
from .tracker import PoseTracker, PoseTrackerGate, to_estimate
from .transforms import FrameConverter


class ImageDecodeError(ValueError):
    """Raised when a frame's image payload cannot be turned into a BGR image."""


def _to_uint8(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.uint8:
        return data
    if data.dtype == np.uint16:
        return (data >> 8).astype(np.uint8)
    if np.issubdtype(data.dtype, np.floating):
        img = np.nan_to_num(data.astype(np.float64), nan=0.0, posinf=255.0, neginf=0.0)
        if img.max() <= 1.0:
            img = img * 255.0
        return np.clip(np.rint(img), 0, 255).astype(np.uint8)
    if np.issubdtype(data.dtype, np.integer) or data.dtype == np.bool_:
        return np.clip(data.astype(np.int64), 0, 255).astype(np.uint8)
    raise ImageDecodeError(f"unsupported image dtype {data.dtype}")


def decode_image(data: Any) -> np.ndarray:
    """
    Return a BGR uint8 copy of the frame image.

    Accepts decoded arrays (gray, BGR or BGRA) and encoded bytes (PNG/JPEG).
    Float arrays in 0..1 are scaled to 0..255; other floats and integers are
    clipped to 0..255 and 16-bit images are shifted down to 8 bits.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(data, dtype=np.uint8)
        if buf.size == 0:
            raise ImageDecodeError("empty image buffer")
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if img is None:
            raise ImageDecodeError(f"could not decode {buf.size} bytes")
        return img

    if isinstance(data, np.ndarray):
        if data.size == 0:
            raise ImageDecodeError("empty image array")
        img = _to_uint8(data)
        try:
            if img.ndim == 2:
                return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
            if img.ndim == 3 and img.shape[2] == 3:
                return img.copy()
            if img.ndim == 3 and img.shape[2] == 4:
                return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
        except cv2.error as exc:
            raise ImageDecodeError(f"could not convert image: {exc}") from exc
        raise ImageDecodeError(f"unsupported image shape {data.shape}")

    raise ImageDecodeError(f"unsupported image payload {type(data).__name__}")


@dataclass
class FrameResult:
    idx: int
    dropped: bool = False
    image: Optional[np.ndarray] = None
    markers: list[Marker] = field(default_factory=list)
    estimate: Optional[PoseEstimate] = None
    transforms: list[StampedTransform] = field(default_factory=list)


class ArucoLocalizer:
    """
    Per-frame callback: detect the marker map and broadcast the camera pose.

    Frames must be handed over one at a time, in arrival order. The only state
    kept between frames is the pose tracker gate.
    """

    def __init__(
        self,
        marker_map: MarkerMapConfig,
        detector: MarkerDetector,
        tracker: PoseTracker,
        broadcaster: TransformBroadcaster,
        image_sink: Optional[ImageSink] = None,
        converter: Optional[FrameConverter] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.marker_map = marker_map
        self.detector = detector
        self.gate = PoseTrackerGate(tracker)
        self.broadcaster = broadcaster
        self.image_sink = image_sink or NullImageSink()
        self.converter = converter or FrameConverter()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.camera_params: Optional[CameraParameters] = None

    def _publish(self, estimate: Optional[PoseEstimate]) -> list[StampedTransform]:
        chain = self.converter.transform_chain(estimate, self.clock())
        for tf in chain:
            self.broadcaster.send_transform(tf)
        return chain

    def process(self, frame: Frame) -> FrameResult:
        try:
            image = decode_image(frame.image)
        except ImageDecodeError as exc:
            self.logger.error("frame=%d dropped: %s", frame.idx, exc)
            return FrameResult(frame.idx, dropped=True)

        if frame.intrinsics is not None:
            self.camera_params = to_camera_parameters(frame.intrinsics)
        else:
            self.camera_params = None

        if not self.gate.is_ready:
            self.gate.try_initialize(self.marker_map, self.camera_params)

        result = FrameResult(frame.idx, image=image)
        try:
            result.markers = self.detector.detect(image)

            in_map = [result.markers[i] for i in self.marker_map.indices_of(result.markers)]
            draw_markers(image, in_map)

            if self.gate.is_ready:
                result.estimate = to_estimate(self.gate.estimate_pose(result.markers))
        except cv2.error as exc:
            self.logger.error("frame=%d detection failed: %s", frame.idx, exc)
            result.markers = []
            result.estimate = None

        if result.estimate is not None and self.camera_params is not None:
            try:
                draw_axis(image, self.camera_params, result.estimate,
                          self.marker_map.marker_size() * 2)
            except cv2.error as exc:
                self.logger.debug("frame=%d axis drawing failed: %s", frame.idx, exc)

        result.transforms = self._publish(result.estimate)
        self.image_sink.publish(frame.idx, image)
        return result
