from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from camsys.config import DEFAULT_CONFIG, CameraSystemConfig
from camsys.core.distortion import LensDistortion, LensDistortionModel
from camsys.core.rigid_body import euler_rotation_matrix
from camsys.errors import InvalidArgumentError


class IntrinsicParam(IntEnum):
    CX = 0
    CY = 1
    FX = 2
    FY = 3
    FS = 4
    K1 = 5
    K2 = 6
    K3 = 7
    K4 = 8
    K5 = 9
    K6 = 10
    P1 = 11
    P2 = 12
    S1 = 13
    S2 = 14
    S3 = 15
    S4 = 16
    T1 = 17
    T2 = 18


NUM_INTRINSIC_PARAMS = len(IntrinsicParam)


class ProjectionParam(IntEnum):
    ZP = 0
    THETA = 1
    PHI = 2


NUM_PROJECTION_PARAMS = len(ProjectionParam)


def _as_rows(matrix) -> tuple[tuple[float, ...], ...]:
    return tuple(tuple(float(v) for v in row) for row in np.atleast_2d(np.asarray(matrix, dtype=np.float64)))


_IDENTITY = _as_rows(np.eye(3))


@dataclass(frozen=True)
class CameraInfo:
    """
    Calibration record of one physical camera.

    `rotation_matrix` together with (tx, ty, tz) maps world coordinates to
    this camera's coordinates: X_cam = R X_world + T. It is stored as a tuple
    of rows so records compare and hash by value; any array-like is accepted.
    """

    image_height: int
    image_width: int
    lens_distortion_model: LensDistortionModel = LensDistortionModel.NONE
    id: str = ""
    intrinsics: tuple[float, ...] = (0.0,) * NUM_INTRINSIC_PARAMS
    tx: float = 0.0
    ty: float = 0.0
    tz: float = 0.0
    rotation_matrix: tuple[tuple[float, ...], ...] = _IDENTITY
    pixel_depth: int = 0
    lens: str = ""
    comments: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "intrinsics", tuple(float(v) for v in self.intrinsics))
        object.__setattr__(self, "rotation_matrix", _as_rows(self.rotation_matrix))

    def intrinsic(self, param: IntrinsicParam) -> float:
        return float(self.intrinsics[param])

    def with_euler_angles(self, alpha_deg: float, beta_deg: float, gamma_deg: float) -> "CameraInfo":
        """Copy with the rotation matrix built from Euler angles given in degrees."""
        R = euler_rotation_matrix(np.deg2rad(alpha_deg), np.deg2rad(beta_deg), np.deg2rad(gamma_deg))
        return dataclasses.replace(self, rotation_matrix=R)


def intrinsics_from_dict(values: dict[IntrinsicParam, float]) -> tuple[float, ...]:
    out = [0.0] * NUM_INTRINSIC_PARAMS
    for k, v in values.items():
        out[IntrinsicParam(k)] = float(v)
    return tuple(out)


class Camera:
    """
    Pinhole + lens distortion optical model of one camera.

    Coordinate chain: image (pixels) <-> sensor (undistorted, normalized
    X/Z, Y/Z) <-> camera frame <-> world frame. Every mapping that can sit
    after a parameter-dependent stage accepts upstream partials shaped
    (P,N) and returns the propagated partials.
    """

    def __init__(self, info: CameraInfo, config: CameraSystemConfig | None = None) -> None:
        if int(info.image_height) <= 0 or int(info.image_width) <= 0:
            raise ValueError(
                f"camera {info.id!r}: image height and width must be > 0, "
                f"got {info.image_height} x {info.image_width}"
            )
        if len(info.intrinsics) != NUM_INTRINSIC_PARAMS:
            raise ValueError(f"camera {info.id!r}: expected {NUM_INTRINSIC_PARAMS} intrinsics, got {len(info.intrinsics)}")
        R = np.asarray(info.rotation_matrix, dtype=np.float64)
        if R.shape != (3, 3):
            raise ValueError(f"camera {info.id!r}: rotation matrix must be 3x3, got {R.shape}")
        if not np.all(np.isfinite(R)) or not np.all(np.isfinite(info.intrinsics)):
            raise ValueError(f"camera {info.id!r}: non-finite calibration values")

        self._info = info
        self._config = config or DEFAULT_CONFIG
        self._R = R.copy()
        self._R.setflags(write=False)
        self._T = np.array([info.tx, info.ty, info.tz], dtype=np.float64)
        self._T.setflags(write=False)
        p = info.intrinsics
        self._distortion = LensDistortion(
            model=info.lens_distortion_model,
            k1=p[IntrinsicParam.K1],
            k2=p[IntrinsicParam.K2],
            k3=p[IntrinsicParam.K3],
            k4=p[IntrinsicParam.K4],
            k5=p[IntrinsicParam.K5],
            k6=p[IntrinsicParam.K6],
            p1=p[IntrinsicParam.P1],
            p2=p[IntrinsicParam.P2],
            s1=p[IntrinsicParam.S1],
            s2=p[IntrinsicParam.S2],
            s3=p[IntrinsicParam.S3],
            s4=p[IntrinsicParam.S4],
        )

    def __repr__(self) -> str:
        return f"Camera(id={self.id!r}, {self.image_width}x{self.image_height}, {self.lens_distortion_model.value})"

    @property
    def info(self) -> CameraInfo:
        return self._info

    @property
    def id(self) -> str:
        return self._info.id

    @property
    def image_height(self) -> int:
        return int(self._info.image_height)

    @property
    def image_width(self) -> int:
        return int(self._info.image_width)

    @property
    def pixel_depth(self) -> int:
        return int(self._info.pixel_depth)

    @property
    def lens(self) -> str:
        return self._info.lens

    @property
    def comments(self) -> str:
        return self._info.comments

    @property
    def lens_distortion_model(self) -> LensDistortionModel:
        return self._info.lens_distortion_model

    @property
    def intrinsics(self) -> tuple[float, ...]:
        return self._info.intrinsics

    @property
    def tx(self) -> float:
        return float(self._info.tx)

    @property
    def ty(self) -> float:
        return float(self._info.ty)

    @property
    def tz(self) -> float:
        return float(self._info.tz)

    @property
    def rotation_matrix(self) -> np.ndarray:
        return self._R

    @property
    def distortion(self) -> LensDistortion:
        return self._distortion

    def _pinhole(self) -> tuple[float, float, float, float, float]:
        p = self._info.intrinsics
        fx = float(p[IntrinsicParam.FX])
        fy = float(p[IntrinsicParam.FY])
        if fx == 0.0 or fy == 0.0:
            raise InvalidArgumentError(f"camera {self.id!r}: FX and FY must be non-zero for projection")
        return fx, fy, float(p[IntrinsicParam.FS]), float(p[IntrinsicParam.CX]), float(p[IntrinsicParam.CY])

    def image_to_sensor(self, img_x: np.ndarray, img_y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        fx, fy, fs, cx, cy = self._pinhole()
        img_x = np.asarray(img_x, dtype=np.float64)
        img_y = np.asarray(img_y, dtype=np.float64)
        yd = (img_y - cy) / fy
        xd = (img_x - cx - fs * yd) / fx
        return self._distortion.undistort(
            xd,
            yd,
            max_iterations=self._config.undistort_max_iterations,
            tolerance=self._config.undistort_tolerance,
        )

    def sensor_to_image(self, sensor_x: np.ndarray, sensor_y: np.ndarray, sensor_dx=None, sensor_dy=None):
        fx, fy, fs, cx, cy = self._pinhole()
        if sensor_dx is None:
            xd, yd = self._distortion.distort(sensor_x, sensor_y)
            return fx * xd + fs * yd + cx, fy * yd + cy

        xd, yd, (j_xx, j_xy, j_yx, j_yy) = self._distortion.distort_with_jacobian(sensor_x, sensor_y)
        dxd = j_xx * sensor_dx + j_xy * sensor_dy
        dyd = j_yx * sensor_dx + j_yy * sensor_dy
        return fx * xd + fs * yd + cx, fy * yd + cy, fx * dxd + fs * dyd, fy * dyd

    def sensor_to_cam(self, sensor_x: np.ndarray, sensor_y: np.ndarray, params, partials: bool = False):
        """
        Back-project sensor points onto the plane [zp, theta, phi] in this camera's frame.

        The plane contains (0, 0, zp) and has the unit normal
        (sin(phi) cos(theta), sin(phi) sin(theta), cos(phi)).
        """
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        if params.shape[0] != NUM_PROJECTION_PARAMS:
            raise ValueError(f"projection plane needs {NUM_PROJECTION_PARAMS} parameters, got {params.shape[0]}")
        zp = params[ProjectionParam.ZP]
        theta = params[ProjectionParam.THETA]
        phi = params[ProjectionParam.PHI]
        ct, st = np.cos(theta), np.sin(theta)
        cp, sp = np.cos(phi), np.sin(phi)

        sx = np.asarray(sensor_x, dtype=np.float64)
        sy = np.asarray(sensor_y, dtype=np.float64)
        denom = sp * (ct * sx + st * sy) + cp
        t = zp * cp / denom
        cam_x = t * sx
        cam_y = t * sy
        cam_z = t
        if not partials:
            return cam_x, cam_y, cam_z

        d_denom_theta = sp * (-st * sx + ct * sy)
        d_denom_phi = cp * (ct * sx + st * sy) - sp
        dt = np.stack(
            [
                cp / denom,
                -zp * cp * d_denom_theta / (denom * denom),
                (-zp * sp * denom - zp * cp * d_denom_phi) / (denom * denom),
            ]
        )
        return cam_x, cam_y, cam_z, dt * sx, dt * sy, dt

    def cam_to_sensor(self, cam_x, cam_y, cam_z, cam_dx=None, cam_dy=None, cam_dz=None):
        cam_x = np.asarray(cam_x, dtype=np.float64)
        cam_y = np.asarray(cam_y, dtype=np.float64)
        cam_z = np.asarray(cam_z, dtype=np.float64)
        sensor_x = cam_x / cam_z
        sensor_y = cam_y / cam_z
        if cam_dx is None:
            return sensor_x, sensor_y
        inv_z = 1.0 / cam_z
        sensor_dx = (cam_dx - sensor_x * cam_dz) * inv_z
        sensor_dy = (cam_dy - sensor_y * cam_dz) * inv_z
        return sensor_x, sensor_y, sensor_dx, sensor_dy

    def cam_to_world(self, cam_x, cam_y, cam_z, cam_dx=None, cam_dy=None, cam_dz=None):
        # X_world = R^T (X_cam - T)
        Rt = self._R.T
        c = np.stack(
            [
                np.asarray(cam_x, dtype=np.float64) - self._T[0],
                np.asarray(cam_y, dtype=np.float64) - self._T[1],
                np.asarray(cam_z, dtype=np.float64) - self._T[2],
            ]
        )
        w = np.tensordot(Rt, c, axes=1)
        if cam_dx is None:
            return w[0], w[1], w[2]
        dw = np.tensordot(Rt, np.stack([cam_dx, cam_dy, cam_dz]), axes=1)
        return w[0], w[1], w[2], dw[0], dw[1], dw[2]

    def world_to_cam(self, world_x, world_y, world_z, world_dx=None, world_dy=None, world_dz=None):
        w = np.stack(
            [
                np.asarray(world_x, dtype=np.float64),
                np.asarray(world_y, dtype=np.float64),
                np.asarray(world_z, dtype=np.float64),
            ]
        )
        c = np.tensordot(self._R, w, axes=1) + self._T.reshape((3,) + (1,) * (w.ndim - 1))
        if world_dx is None:
            return c[0], c[1], c[2]
        dc = np.tensordot(self._R, np.stack([world_dx, world_dy, world_dz]), axes=1)
        return c[0], c[1], c[2], dc[0], dc[1], dc[2]
