import json
import math
from pathlib import Path

import pytest

from aruco_localization.config import LocalizerConfig, load_config


def test_config_defaults():
    cfg = LocalizerConfig()
    assert cfg.marker_size == 0.0298
    assert cfg.show_output_video is False
    assert cfg.map_height_m == 0.4064
    assert cfg.camera_pitch_rad == -math.pi / 2
    assert (cfg.world_frame, cfg.map_frame, cfg.camera_frame) == ("world", "aruco", "camera")


def test_load_config_json(tmp_path: Path):
    cfg_path = tmp_path / "loc.json"
    cfg_path.write_text(
        json.dumps(
            {
                "name": "quad",
                "markermap_config": "maps/board.yml",
                "marker_size": 0.05,
                "show_output_video": True,
                "max_frames": 10,
                "body_frame": "chiny",
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(cfg_path)
    assert cfg.name == "quad"
    assert cfg.markermap_config == "maps/board.yml"
    assert cfg.marker_size == 0.05
    assert cfg.show_output_video is True
    assert cfg.max_frames == 10
    assert cfg.body_frame == "chiny"
    assert cfg.calibration_path is None

    cfg.apply_overrides(name="other", marker_size=None)
    assert cfg.name == "other"
    assert cfg.marker_size == 0.05


def test_load_config_yaml(tmp_path: Path):
    cfg_path = tmp_path / "loc.yaml"
    cfg_path.write_text(
        "markermap_config: board.yml\ncalibration_path: cam.yaml\nmap_height_m: 1.2\ndevice: /dev/video2\n",
        encoding="utf-8",
    )
    cfg = load_config(cfg_path)
    assert cfg.calibration_path == "cam.yaml"
    assert cfg.map_height_m == 1.2
    assert cfg.device == "/dev/video2"
    assert cfg.as_dict()["markermap_config"] == "board.yml"


def test_load_config_rejects_bad_values(tmp_path: Path):
    p = tmp_path / "bad.json"
    p.write_text(json.dumps({"marker_size": -1}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(p)

    p.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(p)

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")
