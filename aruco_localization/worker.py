from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .camera_model import load_intrinsics
from .config import LocalizerConfig
from .detect import ArucoMarkerDetector, MarkerDetector
from .frame_source import DeviceCameraSource, FrameSource, ImageFolderSource, SyntheticSource
from .ip_types import CameraIntrinsics
from .localizer import ArucoLocalizer
from .logging_utils import add_file_handler, remove_handler, setup_logger
from .marker_map import MarkerMapConfig, ensure_metric, load_marker_map
from .output import (
    BroadcasterGroup,
    CsvTransformOutput,
    DirectoryImageSink,
    ImageSink,
    ImageSinkGroup,
    LogTransformOutput,
    NullImageSink,
    TransformBroadcaster,
    WindowImageSink,
)
from .tracker import MarkerMapPoseTracker, PoseTracker
from .transforms import FrameConverter, chain_matrix


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    poses_published: int
    frames_dropped: int
    avg_fps: float
    csv_path: Optional[str]
    log_path: str


class LocalizerWorker:
    def __init__(
        self,
        config: LocalizerConfig,
        logger: Optional[logging.Logger] = None,
        source: Optional[FrameSource] = None,
        broadcasters: Optional[list[TransformBroadcaster]] = None,
        image_sinks: Optional[list[ImageSink]] = None,
        detector: Optional[MarkerDetector] = None,
        tracker: Optional[PoseTracker] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.name)

        # No frame is processed without valid map geometry
        self.marker_map: MarkerMapConfig = ensure_metric(
            load_marker_map(config.markermap_config), config.marker_size
        )

        if broadcasters is None:
            broadcasters = [CsvTransformOutput(), LogTransformOutput(self.logger)]
        if image_sinks is None:
            image_sinks = []
            if config.save_annotated:
                image_sinks.append(DirectoryImageSink())
            if config.show_output_video:
                image_sinks.append(WindowImageSink())
            if not image_sinks:
                image_sinks.append(NullImageSink())

        self.broadcasters = broadcasters
        self.image_sinks = image_sinks
        self.source = source
        self.detector = detector or ArucoMarkerDetector(self.marker_map.dictionary)
        self.tracker = tracker or MarkerMapPoseTracker()
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _load_intrinsics(self) -> Optional[CameraIntrinsics]:
        if not self.config.calibration_path:
            return None
        return load_intrinsics(self.config.calibration_path)

    def _build_source(self) -> FrameSource:
        if self.source is not None:
            return self.source
        intrinsics = self._load_intrinsics()
        if intrinsics is None:
            self.logger.warning("no calibration configured; pose tracking stays disabled")
        if self.config.dry_run:
            return SyntheticSource(self.config.width, self.config.height, intrinsics)
        if self.config.image_dir:
            return ImageFolderSource(self.config.image_dir, intrinsics, self.config.image_pattern)
        return DeviceCameraSource(
            self.config.device,
            self.config.fps,
            self.config.width,
            self.config.height,
            intrinsics,
        )

    def _begin_session(self) -> Path:
        sid = f"{self.config.name}_session_{time.strftime('%Y%m%d_%H%M%S')}"
        session_dir = Path(self.config.session_root) / sid
        (session_dir / "logs").mkdir(parents=True, exist_ok=True)
        return session_dir

    def run(self) -> SessionSummary:
        session_dir = self._begin_session()
        log_file = str(session_dir / "logs" / "session.log")
        file_handler = add_file_handler(self.config.name, log_file)

        broadcaster = BroadcasterGroup(self.broadcasters)
        image_sink = ImageSinkGroup(self.image_sinks)

        converter = FrameConverter(
            world_frame=self.config.world_frame,
            map_frame=self.config.map_frame,
            camera_frame=self.config.camera_frame,
            body_frame=self.config.body_frame,
            map_height_m=self.config.map_height_m,
            camera_pitch_rad=self.config.camera_pitch_rad,
        )
        localizer = ArucoLocalizer(
            self.marker_map,
            self.detector,
            self.tracker,
            broadcaster,
            image_sink=image_sink,
            converter=converter,
            logger=self.logger,
        )

        self.logger.info("session started: %s", session_dir)
        self.logger.info(
            "marker map: dict=%s markers=%s", self.marker_map.dictionary, self.marker_map.ids()
        )

        src = None
        t0 = time.time()
        frames = 0
        poses = 0
        dropped = 0

        try:
            broadcaster.open(session_dir)
            image_sink.open(session_dir)
            src = self._build_source()
            src.start()
            t0 = time.time()

            while not self._stop_event.is_set():
                if self.config.max_frames and frames >= self.config.max_frames:
                    break

                f = src.read()
                if f is None:
                    if src.exhausted:
                        break
                    dropped += 1
                    continue

                result = localizer.process(f)
                frames += 1
                if result.dropped:
                    dropped += 1
                    continue

                if result.estimate is not None:
                    poses += 1
                    T = chain_matrix(result.transforms)
                    self.logger.debug(
                        "frame=%d %s->%s xyz=(%.3f, %.3f, %.3f)",
                        f.idx, self.config.world_frame, self.config.body_frame,
                        T[0, 3], T[1, 3], T[2, 3],
                    )
                self.logger.info(
                    "frame=%d markers=%d pose=%s",
                    f.idx, len(result.markers), result.estimate is not None,
                )

        finally:
            if src is not None:
                try:
                    src.stop()
                except Exception as exc:
                    self.logger.warning("source stop failed: %s", exc)
            for out in (broadcaster, image_sink):
                try:
                    out.close()
                except Exception as exc:
                    self.logger.warning("output close failed: %s", exc)
            avg = frames / max(1e-6, (time.time() - t0))
            self.logger.info(
                "summary frames=%d poses=%d dropped=%d avg_fps=%.2f", frames, poses, dropped, avg
            )
            remove_handler(file_handler)

        csv_path = None
        for b in self.broadcasters:
            if isinstance(b, CsvTransformOutput) and b.path is not None:
                csv_path = str(b.path)
        return SessionSummary(
            str(session_dir),
            frames,
            poses,
            dropped,
            avg,
            csv_path,
            log_file,
        )
