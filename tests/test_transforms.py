import math

import numpy as np
import pytest

from aruco_localization.ip_types import PoseEstimate, StampedTransform
from aruco_localization.transforms import (
    ROTATE_TO_ROBOT,
    FrameConverter,
    chain_matrix,
    rodrigues,
    rpy_to_matrix,
    to_robot_frame,
)


def test_rotate_to_robot_constant():
    expected = np.array([[-1, 0, 0], [0, 0, 1], [0, 1, 0]], dtype=np.float64)
    assert np.array_equal(ROTATE_TO_ROBOT, expected)
    assert np.linalg.det(ROTATE_TO_ROBOT) == pytest.approx(1.0)


def test_identity_rotation_maps_to_remap_matrix():
    R, t = to_robot_frame(np.zeros(3), np.zeros(3))
    assert np.array_equal(R, ROTATE_TO_ROBOT)
    assert np.array_equal(t, np.zeros(3))


def test_quarter_turn_about_vision_y():
    R, t = to_robot_frame(np.array([0.0, math.pi / 2, 0.0]), np.array([1.0, 2.0, 3.0]))

    expected = rodrigues([0.0, math.pi / 2, 0.0]) @ ROTATE_TO_ROBOT.T
    assert np.allclose(R, expected)
    assert np.allclose(R, [[0, 1, 0], [0, 0, 1], [1, 0, 0]], atol=1e-12)
    assert np.allclose(R @ np.array([0.0, 0.0, 1.0]), [0.0, 1.0, 0.0], atol=1e-12)
    assert t.tolist() == [1.0, 2.0, 3.0]


def test_translation_is_not_remapped():
    tvec = np.array([[0.3], [-0.2], [1.5]])
    _, t = to_robot_frame(np.array([0.4, 0.1, -0.3]), tvec)
    assert t.shape == (3,)
    assert np.array_equal(t, tvec.reshape(3))


def test_converted_rotation_is_proper():
    R, _ = to_robot_frame(np.array([0.3, -1.2, 0.7]), np.zeros(3))
    assert np.allclose(R @ R.T, np.eye(3), atol=1e-9)
    assert np.linalg.det(R) == pytest.approx(1.0)


def test_rpy_pitch_down():
    R = rpy_to_matrix(0.0, -math.pi / 2, 0.0)
    assert np.allclose(R, [[0, 0, -1], [0, 1, 0], [1, 0, 0]], atol=1e-12)


def test_static_links():
    conv = FrameConverter()
    cam_body = conv.camera_to_body(10.0)
    assert (cam_body.parent, cam_body.child) == ("camera", "body")
    assert np.array_equal(cam_body.translation, np.zeros(3))
    q = cam_body.quaternion
    expected = np.array([0.0, -math.sqrt(0.5), 0.0, math.sqrt(0.5)])
    assert np.allclose(q, expected) or np.allclose(q, -expected)

    world_map = conv.world_to_map(10.0)
    assert (world_map.parent, world_map.child) == ("world", "aruco")
    assert np.array_equal(world_map.rotation, np.eye(3))
    assert world_map.translation.tolist() == [0.0, 0.0, -0.4064]
    assert np.allclose(world_map.quaternion, [0, 0, 0, 1])


def test_static_links_identical_across_cycles():
    conv = FrameConverter()
    first = conv.static_transforms(1.0)
    second = conv.static_transforms(2.0)
    for a, b in zip(first, second):
        assert (a.parent, a.child) == (b.parent, b.child)
        assert np.array_equal(a.rotation, b.rotation)
        assert np.array_equal(a.translation, b.translation)
    assert [tf.stamp for tf in second] == [2.0, 2.0]


def test_transform_chain_with_and_without_estimate():
    conv = FrameConverter(map_height_m=0.5)
    est = PoseEstimate(np.zeros(3), np.array([1.0, 2.0, 3.0]))

    chain = conv.transform_chain(est, 7.0)
    assert [(tf.parent, tf.child) for tf in chain] == [
        ("world", "aruco"),
        ("aruco", "camera"),
        ("camera", "body"),
    ]
    assert all(tf.stamp == 7.0 for tf in chain)
    assert np.array_equal(chain[1].rotation, ROTATE_TO_ROBOT)

    T = chain_matrix(chain)
    assert np.allclose(T[:3, 3], [1.0, 2.0, 2.5])

    statics = conv.transform_chain(None, 7.0)
    assert [(tf.parent, tf.child) for tf in statics] == [("world", "aruco"), ("camera", "body")]


def test_custom_frame_names():
    conv = FrameConverter("map", "board", "cam", "base_link", camera_pitch_rad=0.0)
    chain = conv.transform_chain(PoseEstimate(np.zeros(3), np.zeros(3)), 0.0)
    assert [tf.child for tf in chain] == ["board", "cam", "base_link"]
    assert np.allclose(chain[2].rotation, np.eye(3))


def test_chain_matrix_rejects_broken_chain():
    a = StampedTransform("world", "aruco", np.eye(3), np.zeros(3), 0.0)
    b = StampedTransform("camera", "body", np.eye(3), np.zeros(3), 0.0)
    with pytest.raises(ValueError):
        chain_matrix([a, b])
