from __future__ import annotations

import numpy as np
import pytest

from camsys.core.camera import Camera, CameraInfo, IntrinsicParam, intrinsics_from_dict
from camsys.core.distortion import LensDistortionModel
from camsys.core.rigid_body import euler_rotation_matrix
from camsys.errors import InvalidArgumentError


def _camera(**kwargs) -> Camera:
    intrinsics = intrinsics_from_dict(
        {
            IntrinsicParam.CX: 612.0,
            IntrinsicParam.CY: 510.5,
            IntrinsicParam.FX: 2400.0,
            IntrinsicParam.FY: 2405.0,
            IntrinsicParam.FS: 1.5,
            IntrinsicParam.K1: -0.08,
            IntrinsicParam.K2: 0.02,
            IntrinsicParam.P1: 2e-4,
            IntrinsicParam.P2: -1e-4,
        }
    )
    info = CameraInfo(
        image_height=1024,
        image_width=1224,
        lens_distortion_model=LensDistortionModel.OPENCV_DIS,
        id="cam",
        intrinsics=intrinsics,
        tx=-80.0,
        ty=2.0,
        tz=5.0,
        rotation_matrix=euler_rotation_matrix(0.02, 0.2, -0.01),
    )
    return Camera(info, **kwargs)


def _pixels() -> tuple[np.ndarray, np.ndarray]:
    uu, vv = np.meshgrid(np.linspace(20.0, 1200.0, 9), np.linspace(15.0, 1000.0, 7))
    return uu.reshape(-1), vv.reshape(-1)


def test_image_sensor_roundtrip():
    cam = _camera()
    u, v = _pixels()
    sx, sy = cam.image_to_sensor(u, v)
    u2, v2 = cam.sensor_to_image(sx, sy)
    assert np.max(np.abs(u2 - u)) < 1e-8
    assert np.max(np.abs(v2 - v)) < 1e-8


def test_cam_world_roundtrip():
    cam = _camera()
    rng = np.random.default_rng(0)
    w = rng.uniform(-100.0, 100.0, size=(3, 50))
    c = cam.world_to_cam(*w)
    expected = cam.rotation_matrix @ w + np.array([cam.tx, cam.ty, cam.tz])[:, None]
    assert np.max(np.abs(np.stack(c) - expected)) < 1e-10
    w2 = cam.cam_to_world(*c)
    assert np.max(np.abs(np.stack(w2) - w)) < 1e-10


def test_sensor_to_cam_lands_on_the_plane():
    cam = _camera()
    u, v = _pixels()
    sx, sy = cam.image_to_sensor(u, v)
    zp, theta, phi = 900.0, 0.4, 0.25
    X, Y, Z = cam.sensor_to_cam(sx, sy, [zp, theta, phi])
    normal = np.array([np.sin(phi) * np.cos(theta), np.sin(phi) * np.sin(theta), np.cos(phi)])
    offset = normal[0] * X + normal[1] * Y + normal[2] * (Z - zp)
    assert np.max(np.abs(offset)) < 1e-9
    sx2, sy2 = cam.cam_to_sensor(X, Y, Z)
    assert np.max(np.abs(sx2 - sx)) < 1e-12
    assert np.max(np.abs(sy2 - sy)) < 1e-12


def test_sensor_to_cam_partials_match_central_differences():
    cam = _camera()
    sx, sy = cam.image_to_sensor(*_pixels())
    params = np.array([900.0, 0.4, 0.25])
    _, _, _, dX, dY, dZ = cam.sensor_to_cam(sx, sy, params, partials=True)
    steps = (1e-3, 1e-6, 1e-6)
    for k, h in enumerate(steps):
        p_plus = params.copy()
        p_minus = params.copy()
        p_plus[k] += h
        p_minus[k] -= h
        numeric = (np.stack(cam.sensor_to_cam(sx, sy, p_plus)) - np.stack(cam.sensor_to_cam(sx, sy, p_minus))) / (2 * h)
        np.testing.assert_allclose(np.stack([dX[k], dY[k], dZ[k]]), numeric, rtol=1e-6, atol=1e-6)


def test_sensor_to_image_propagates_partials():
    cam = _camera()
    sx, sy = cam.image_to_sensor(*_pixels())
    # partials of the sensor coordinates wrt themselves give the image Jacobian columns
    ones = np.ones_like(sx)
    zeros = np.zeros_like(sx)
    _, _, du, dv = cam.sensor_to_image(sx, sy, np.stack([ones, zeros]), np.stack([zeros, ones]))
    h = 1e-7
    u_p, v_p = cam.sensor_to_image(sx + h, sy)
    u_m, v_m = cam.sensor_to_image(sx - h, sy)
    np.testing.assert_allclose(du[0], (u_p - u_m) / (2 * h), rtol=1e-6, atol=1e-4)
    np.testing.assert_allclose(dv[0], (v_p - v_m) / (2 * h), rtol=1e-6, atol=1e-4)


def test_euler_angles_are_degrees():
    info = CameraInfo(image_height=10, image_width=10).with_euler_angles(0.0, 0.0, 90.0)
    expected = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    assert np.max(np.abs(info.rotation_matrix - expected)) < 1e-12


def test_camera_rejects_invalid_calibration():
    with pytest.raises(ValueError, match="must be > 0"):
        Camera(CameraInfo(image_height=0, image_width=640))
    with pytest.raises(ValueError, match="3x3"):
        Camera(CameraInfo(image_height=480, image_width=640, rotation_matrix=np.eye(4)))
    cam = Camera(CameraInfo(image_height=480, image_width=640))
    with pytest.raises(InvalidArgumentError, match="FX and FY"):
        cam.image_to_sensor(np.array([1.0]), np.array([2.0]))
    with pytest.raises(InvalidArgumentError, match="FX and FY"):
        cam.sensor_to_image(np.array([0.1]), np.array([0.2]))


def test_camera_info_compares_and_hashes_by_value():
    a = CameraInfo(image_height=480, image_width=640, id="c", rotation_matrix=euler_rotation_matrix(0.1, 0.2, 0.3))
    b = CameraInfo(image_height=480, image_width=640, id="c", rotation_matrix=euler_rotation_matrix(0.1, 0.2, 0.3))
    assert a == b
    assert hash(a) == hash(b)
    assert a != CameraInfo(image_height=480, image_width=640, id="c")
    assert len({a, b}) == 1
    np.testing.assert_array_equal(Camera(a).rotation_matrix, euler_rotation_matrix(0.1, 0.2, 0.3))
