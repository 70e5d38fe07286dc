from __future__ import annotations

import json
import math
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class LocalizerConfig:
    name: str = "aruco"
    markermap_config: str = ""
    marker_size: float = 0.0298
    show_output_video: bool = False
    calibration_path: Optional[str] = None  # camera_info YAML or OpenCV calibration
    image_dir: Optional[str] = None  # replay images instead of a device
    image_pattern: str = "*"
    device: int | str = 0
    fps: int = 30
    width: int = 640
    height: int = 480
    dry_run: bool = False
    max_frames: Optional[int] = None
    session_root: str = "data/sessions"
    save_annotated: bool = False
    world_frame: str = "world"
    map_frame: str = "aruco"
    camera_frame: str = "camera"
    body_frame: str = "body"
    map_height_m: float = 0.4064
    camera_pitch_rad: float = -math.pi / 2

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "LocalizerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _optional(value: Any, cast):
    return None if value is None else cast(value)


def load_config(path: str | Path) -> LocalizerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = LocalizerConfig()
    cfg.name = str(raw.get("name", cfg.name))
    cfg.markermap_config = str(raw.get("markermap_config", cfg.markermap_config))
    cfg.marker_size = float(raw.get("marker_size", cfg.marker_size))
    if cfg.marker_size <= 0:
        raise ValueError(f"marker_size must be positive, got {cfg.marker_size}")
    cfg.show_output_video = bool(raw.get("show_output_video", cfg.show_output_video))
    cfg.calibration_path = _optional(raw.get("calibration_path", cfg.calibration_path), str)
    cfg.image_dir = _optional(raw.get("image_dir", cfg.image_dir), str)
    cfg.image_pattern = str(raw.get("image_pattern", cfg.image_pattern))
    cfg.device = raw.get("device", cfg.device)
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.max_frames = _optional(raw.get("max_frames", cfg.max_frames), int)
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.save_annotated = bool(raw.get("save_annotated", cfg.save_annotated))
    cfg.world_frame = str(raw.get("world_frame", cfg.world_frame))
    cfg.map_frame = str(raw.get("map_frame", cfg.map_frame))
    cfg.camera_frame = str(raw.get("camera_frame", cfg.camera_frame))
    cfg.body_frame = str(raw.get("body_frame", cfg.body_frame))
    cfg.map_height_m = float(raw.get("map_height_m", cfg.map_height_m))
    cfg.camera_pitch_rad = float(raw.get("camera_pitch_rad", cfg.camera_pitch_rad))
    return cfg
