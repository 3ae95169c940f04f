from __future__ import annotations

import numpy as np
import pytest

from camsys.core.distortion import LensDistortion, LensDistortionModel

_MODELS = [
    LensDistortion(model=LensDistortionModel.K1R1_K2R2_K3R3, k1=0.03, k2=-0.02, k3=0.01),
    LensDistortion(model=LensDistortionModel.K1R2_K2R4_K3R6, k1=-0.12, k2=0.03, k3=-0.002),
    LensDistortion(model=LensDistortionModel.K1R3_K2R5_K3R7, k1=0.05, k2=-0.01, k3=0.002),
    LensDistortion(model=LensDistortionModel.VIC3D_DIS, k1=-0.08, k2=0.01),
    LensDistortion(
        model=LensDistortionModel.OPENCV_DIS,
        k1=-0.1,
        k2=0.02,
        k3=0.001,
        k4=0.01,
        k5=-0.002,
        p1=1e-3,
        p2=-5e-4,
        s1=2e-4,
        s2=-1e-4,
        s3=1e-4,
        s4=3e-5,
    ),
]


def _points() -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(0)
    x = rng.uniform(-0.4, 0.4, size=500)
    y = rng.uniform(-0.3, 0.3, size=500)
    return x, y


@pytest.mark.parametrize("dist", _MODELS, ids=lambda d: d.model.value)
def test_undistort_inverts_distort(dist):
    x, y = _points()
    xd, yd = dist.distort(x, y)
    assert np.max(np.abs(xd - x)) > 1e-6
    x2, y2 = dist.undistort(xd, yd)
    assert np.max(np.abs(x2 - x)) < 1e-10
    assert np.max(np.abs(y2 - y)) < 1e-10


@pytest.mark.parametrize("dist", _MODELS, ids=lambda d: d.model.value)
def test_jacobian_matches_central_differences(dist):
    x, y = _points()
    _, _, (j_xx, j_xy, j_yx, j_yy) = dist.distort_with_jacobian(x, y)
    h = 1e-7
    xd_px, yd_px = dist.distort(x + h, y)
    xd_mx, yd_mx = dist.distort(x - h, y)
    xd_py, yd_py = dist.distort(x, y + h)
    xd_my, yd_my = dist.distort(x, y - h)
    np.testing.assert_allclose(j_xx, (xd_px - xd_mx) / (2 * h), atol=1e-7)
    np.testing.assert_allclose(j_yx, (yd_px - yd_mx) / (2 * h), atol=1e-7)
    np.testing.assert_allclose(j_xy, (xd_py - xd_my) / (2 * h), atol=1e-7)
    np.testing.assert_allclose(j_yy, (yd_py - yd_my) / (2 * h), atol=1e-7)


def test_jacobian_is_finite_at_the_optical_axis():
    dist = LensDistortion(model=LensDistortionModel.K1R1_K2R2_K3R3, k1=0.05, k2=0.01, k3=0.001)
    _, _, jac = dist.distort_with_jacobian(np.array([0.0, 1e-3]), np.array([0.0, 0.0]))
    for j in jac:
        assert np.all(np.isfinite(j))
    assert jac[0][0] == 1.0
    assert jac[1][0] == 0.0


def test_none_model_is_identity():
    dist = LensDistortion()
    x, y = _points()
    xd, yd = dist.distort(x, y)
    np.testing.assert_array_equal(xd, x)
    np.testing.assert_array_equal(yd, y)
    x2, _ = dist.undistort(xd, yd)
    np.testing.assert_array_equal(x2, x)


def test_model_from_string():
    assert LensDistortionModel.from_string(" OPENCV_DIS ") is LensDistortionModel.OPENCV_DIS
    with pytest.raises(ValueError, match="valid models"):
        LensDistortionModel.from_string("BROWN")
