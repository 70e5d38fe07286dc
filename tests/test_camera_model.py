import logging

import cv2
import numpy as np
import pytest

from aruco_localization.camera_model import (
    load_calibration,
    load_camera_info,
    load_intrinsics,
    to_camera_parameters,
)
from aruco_localization.ip_types import CameraIntrinsics, CameraParameters

K = [500.0, 0.0, 320.0, 0.0, 510.0, 240.0, 0.0, 0.0, 1.0]


def _intrinsics(D, width=640, height=480):
    return CameraIntrinsics(K=K, D=D, width=width, height=height)


def test_four_coefficients_copied():
    params = to_camera_parameters(_intrinsics([0.1, -0.05, 0.0, 0.0]))
    assert params.distortion.shape == (4, 1)
    assert params.distortion.flatten().tolist() == [0.1, -0.05, 0.0, 0.0]


def test_fifth_coefficient_dropped():
    params = to_camera_parameters(_intrinsics([0.1, -0.05, 0.001, 0.002, 0.3]))
    assert params.distortion.flatten().tolist() == [0.1, -0.05, 0.001, 0.002]


@pytest.mark.parametrize("D", [[], [0.1], [0.1, 0.2, 0.3], [0.1] * 8])
def test_other_lengths_fall_back_to_zero(D, caplog):
    with caplog.at_level(logging.WARNING, logger="aruco_localization.camera_model"):
        params = to_camera_parameters(_intrinsics(D))
    assert params.distortion.flatten().tolist() == [0.0, 0.0, 0.0, 0.0]
    assert "assuming zero distortion" in caplog.text


def test_conforming_length_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING):
        to_camera_parameters(_intrinsics([0.0] * 4))
    assert caplog.records == []


def test_camera_matrix_is_row_major_copy():
    params = to_camera_parameters(_intrinsics([0.0] * 4))
    assert params.camera_matrix.shape == (3, 3)
    assert params.camera_matrix[0, 0] == 500.0
    assert params.camera_matrix[1, 1] == 510.0
    assert params.camera_matrix[0, 2] == 320.0
    assert params.camera_matrix[1, 2] == 240.0
    assert params.camera_matrix[2, 2] == 1.0
    assert params.size == (640, 480)
    assert params.is_valid()


def test_camera_matrix_accepts_3x3_array():
    intr = CameraIntrinsics(K=np.array(K).reshape(3, 3), D=[], width=640, height=480)
    params = to_camera_parameters(intr)
    assert np.allclose(params.camera_matrix, np.array(K).reshape(3, 3))


def test_validity_requires_focal_lengths_and_size():
    zero_k = to_camera_parameters(CameraIntrinsics(K=[0.0] * 9, D=[], width=640, height=480))
    assert not zero_k.is_valid()

    no_size = to_camera_parameters(_intrinsics([0.0] * 4, width=0, height=0))
    assert not no_size.is_valid()

    bad_shape = CameraParameters(np.eye(2), np.zeros((4, 1)), (640, 480))
    assert not bad_shape.is_valid()


def test_load_camera_info(tmp_path):
    path = tmp_path / "camera_info.yaml"
    path.write_text(
        "image_width: 640\n"
        "image_height: 480\n"
        "camera_name: cam\n"
        "camera_matrix:\n"
        "  rows: 3\n"
        "  cols: 3\n"
        f"  data: {K}\n"
        "distortion_model: plumb_bob\n"
        "distortion_coefficients:\n"
        "  rows: 1\n"
        "  cols: 5\n"
        "  data: [0.1, -0.2, 0.0, 0.0, 0.05]\n",
        encoding="utf-8",
    )
    intr = load_camera_info(path)
    assert intr.width == 640
    assert intr.height == 480
    assert list(intr.K) == K
    assert list(intr.D) == [0.1, -0.2, 0.0, 0.0, 0.05]
    assert load_intrinsics(path) == intr


def test_load_camera_info_missing_key(tmp_path):
    path = tmp_path / "camera_info.yaml"
    path.write_text(f"camera_matrix:\n  data: {K}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_camera_info(path)


def test_load_calibration_filestorage(tmp_path):
    path = tmp_path / "calib.yml"
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", np.array(K).reshape(3, 3))
    fs.write("dist_coeffs", np.array([[0.1], [0.2], [0.0], [0.0], [0.3]]))
    fs.write("image_width", 1280)
    fs.write("image_height", 720)
    fs.release()

    intr = load_calibration(path)
    assert intr.width == 1280
    assert intr.height == 720
    assert np.allclose(intr.K, K)
    assert np.allclose(intr.D, [0.1, 0.2, 0.0, 0.0, 0.3])

    # dispatched by the %YAML header
    assert np.allclose(load_intrinsics(path).K, K)


def test_missing_intrinsics_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_intrinsics(tmp_path / "nope.yaml")
