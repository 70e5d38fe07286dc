"""Frame sources delivering synchronized (image, intrinsics) pairs.

- Image folders (encoded files, decoded by the localizer)
- Device cameras (USB via V4L2)
- Synthetic blank frames for dry runs
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import cv2
import numpy as np

from .ip_types import CameraIntrinsics, Frame


class FrameSource(ABC):
    """Abstract base class for frame sources.

    ``exhausted`` turns True once a finite source has nothing left to read.
    """

    exhausted: bool = False

    @abstractmethod
    def start(self) -> None:
        """Start the frame source. Called before any read() calls."""
        ...

    @abstractmethod
    def read(self) -> Frame | None:
        """Next frame, or None if no frame is available right now."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the frame source and release resources."""
        ...


class ImageFolderSource(FrameSource):
    """Replays image files from a folder in sorted name order.

    File bytes are passed on undecoded, paired with the same intrinsics.
    """

    def __init__(
        self,
        folder: str | Path,
        intrinsics: Optional[CameraIntrinsics],
        pattern: str = "*",
    ):
        self.folder = Path(folder)
        self.intrinsics = intrinsics
        self.pattern = pattern
        self.files: list[Path] = []
        self.frame_id = 0
        self.exhausted = False

    def start(self) -> None:
        if not self.folder.is_dir():
            raise FileNotFoundError(f"Image folder not found: {self.folder}")
        self.files = sorted(p for p in self.folder.glob(self.pattern) if p.is_file())
        self.frame_id = 0
        self.exhausted = not self.files

    def read(self) -> Frame | None:
        if self.frame_id >= len(self.files):
            self.exhausted = True
            return None
        path = self.files[self.frame_id]
        self.frame_id += 1
        return Frame(self.frame_id, time.time(), path.read_bytes(), self.intrinsics)

    def stop(self) -> None:
        self.files = []


class DeviceCameraSource(FrameSource):
    """USB camera source using OpenCV's V4L2 interface."""

    def __init__(
        self,
        device: int | str,
        fps: int,
        width: int,
        height: int,
        intrinsics: Optional[CameraIntrinsics],
    ):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.intrinsics = intrinsics
        self.cap: Any = None
        self.frame_id = 0

    def start(self) -> None:
        """Open the camera device."""
        if isinstance(self.device, int):
            self.cap = cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        else:
            dev_str = str(self.device)
            match = re.match(r"^/dev/video(\d+)$", dev_str)
            if match:
                self.cap = cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
            else:
                self.cap = cv2.VideoCapture(dev_str)

        self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")
        self.frame_id = 0

    def read(self) -> Frame | None:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok:
            return None
        self.frame_id += 1
        return Frame(self.frame_id, time.time(), img, self.intrinsics)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticSource(FrameSource):
    def __init__(self, width: int, height: int, intrinsics: Optional[CameraIntrinsics] = None):
        self.width = width
        self.height = height
        self.intrinsics = intrinsics
        self.frame_id = 0

    def start(self) -> None:
        self.frame_id = 0

    def read(self) -> Frame | None:
        self.frame_id += 1
        img = np.full((self.height, self.width, 3), 255, dtype=np.uint8)
        return Frame(self.frame_id, time.time(), img, self.intrinsics)

    def stop(self) -> None:
        return None
