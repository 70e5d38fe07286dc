from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from .ip_types import StampedTransform


class TransformBroadcaster(ABC):
    def open(self, session_dir: Path) -> None:
        return None

    @abstractmethod
    def send_transform(self, transform: StampedTransform) -> None: ...

    def close(self) -> None:
        return None


class CsvTransformOutput(TransformBroadcaster):
    HEADER = [
        "stamp",
        "parent", "child",
        "tx", "ty", "tz",
        "qx", "qy", "qz", "qw",
    ]

    def __init__(self, filename: str = "transforms.csv"):
        self.filename = filename
        self.path: Optional[Path] = None
        self._fh = None
        self._w = None

    def open(self, session_dir: Path) -> None:
        self.path = Path(session_dir) / self.filename
        self._fh = open(self.path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)

    @staticmethod
    def to_row(transform: StampedTransform) -> list:
        t = np.asarray(transform.translation, dtype=np.float64).reshape(3).tolist()
        q = transform.quaternion.tolist()
        return [f"{transform.stamp:.6f}", transform.parent, transform.child, *t, *q]

    def send_transform(self, transform: StampedTransform) -> None:
        if self._w is None:
            return
        self._w.writerow(self.to_row(transform))

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None


class LogTransformOutput(TransformBroadcaster):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def send_transform(self, transform: StampedTransform) -> None:
        t = np.asarray(transform.translation).reshape(3)
        q = transform.quaternion
        self.logger.debug(
            "tf %s->%s t=(%.4f, %.4f, %.4f) q=(%.4f, %.4f, %.4f, %.4f)",
            transform.parent, transform.child, *t, *q,
        )


class NullTransformOutput(TransformBroadcaster):
    def send_transform(self, transform: StampedTransform) -> None:
        return None


class ImageSink(ABC):
    def open(self, session_dir: Path) -> None:
        return None

    @abstractmethod
    def publish(self, idx: int, image) -> None: ...

    def close(self) -> None:
        return None


class DirectoryImageSink(ImageSink):
    """Writes each annotated frame as f{idx:06d}_aruco.jpg."""

    def __init__(self, subdir: str = "annotated"):
        self.subdir = subdir
        self.out_dir: Optional[Path] = None
        self.last_path: Optional[str] = None

    def open(self, session_dir: Path) -> None:
        self.out_dir = Path(session_dir) / self.subdir
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def publish(self, idx: int, image) -> None:
        if self.out_dir is None:
            return
        p = self.out_dir / f"f{idx:06d}_aruco.jpg"
        cv2.imwrite(str(p), image)
        self.last_path = str(p)


class NullImageSink(ImageSink):
    def publish(self, idx: int, image) -> None:
        return None


class WindowImageSink(ImageSink):
    """Shows frames in an OpenCV window."""

    def __init__(self, window_name: str = "detections"):
        self.window_name = window_name

    def publish(self, idx: int, image) -> None:
        cv2.imshow(self.window_name, image)
        cv2.waitKey(1)

    def close(self) -> None:
        cv2.destroyWindow(self.window_name)


class BroadcasterGroup(TransformBroadcaster):
    def __init__(self, members: list[TransformBroadcaster]):
        self.members = list(members)

    def open(self, session_dir: Path) -> None:
        for m in self.members:
            m.open(session_dir)

    def send_transform(self, transform: StampedTransform) -> None:
        for m in self.members:
            m.send_transform(transform)

    def close(self) -> None:
        for m in self.members:
            m.close()


class ImageSinkGroup(ImageSink):
    def __init__(self, members: list[ImageSink]):
        self.members = list(members)

    def open(self, session_dir: Path) -> None:
        for m in self.members:
            m.open(session_dir)

    def publish(self, idx: int, image) -> None:
        for m in self.members:
            m.publish(idx, image)

    def close(self) -> None:
        for m in self.members:
            m.close()
