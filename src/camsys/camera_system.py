from __future__ import annotations

import dataclasses
import logging
import operator
from enum import Enum
from pathlib import Path
from typing import Sequence

import numpy as np

from camsys.config import DEFAULT_CONFIG, CameraSystemConfig
from camsys.core.camera import NUM_PROJECTION_PARAMS, Camera, CameraInfo
from camsys.core.rigid_body import NUM_RIGID_BODY_PARAMS, apply_rot_trans, rot_trans_coefficients, rotate_translate
from camsys.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


class SystemType(Enum):
    UNKNOWN_SYSTEM = "UNKNOWN_SYSTEM"
    GENERIC_SYSTEM = "GENERIC_SYSTEM"
    OPENCV = "OPENCV"
    VIC3D = "VIC3D"
    DICE = "DICE"

    @classmethod
    def from_string(cls, text: str) -> "SystemType":
        try:
            return cls(text.strip())
        except ValueError:
            valid = " ".join(m.value for m in cls)
            raise ValueError(f"unknown system type {text!r}, valid types are: {valid}") from None


def default_camera_id(index: int) -> str:
    return f"CAMERA {index}"


class CameraSystem:
    """
    A set of calibrated cameras sharing one world frame.

    The system owns its cameras; callers address them by index, which is the
    identity used by `project`. Once built the system is read-only, so one
    instance can serve concurrent `project` calls.
    """

    def __init__(
        self,
        cameras: Sequence[CameraInfo] = (),
        system_type: SystemType = SystemType.UNKNOWN_SYSTEM,
        *,
        user_6_param_transform: Sequence[float] | None = None,
        user_4x4_param_transform: np.ndarray | None = None,
        config: CameraSystemConfig | None = None,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        if len(cameras) > self._config.max_num_cameras:
            raise ValueError(f"too many cameras: {len(cameras)} > max_num_cameras={self._config.max_num_cameras}")

        built = []
        seen_ids: set[str] = set()
        for index, info in enumerate(cameras):
            if not info.id:
                info = dataclasses.replace(info, id=default_camera_id(index))
            if info.id in seen_ids:
                raise ValueError(f"duplicate camera id {info.id!r}")
            seen_ids.add(info.id)
            built.append(Camera(info, config=self._config))
        self._cameras = tuple(built)
        self._system_type = SystemType(system_type)

        self._user_6 = None
        if user_6_param_transform is not None:
            t6 = tuple(float(v) for v in user_6_param_transform)
            if len(t6) != 6:
                raise ValueError(f"user 6 parameter transform needs 6 values, got {len(t6)}")
            self._user_6 = t6

        self._user_4x4 = None
        if user_4x4_param_transform is not None:
            t44 = np.array(user_4x4_param_transform, dtype=np.float64)
            if t44.shape != (4, 4):
                raise ValueError(f"user 4x4 transform must be 4x4, got {t44.shape}")
            t44.setflags(write=False)
            self._user_4x4 = t44

    @classmethod
    def from_calibration_file(cls, path: str | Path, config: CameraSystemConfig | None = None) -> "CameraSystem":
        from camsys.calibration.reader import read_calibration_file

        return read_calibration_file(path, config=config)

    def write_calibration_file(self, path: str | Path) -> Path:
        from camsys.calibration.writer import write_calibration_file

        return write_calibration_file(self, path)

    def __repr__(self) -> str:
        return f"CameraSystem(system_type={self._system_type.value}, num_cameras={self.num_cameras})"

    @property
    def config(self) -> CameraSystemConfig:
        return self._config

    @property
    def system_type(self) -> SystemType:
        return self._system_type

    @property
    def num_cameras(self) -> int:
        return len(self._cameras)

    @property
    def cameras(self) -> tuple[Camera, ...]:
        return self._cameras

    def camera(self, index: int) -> Camera:
        return self._cameras[self._camera_index(index, "camera")]

    @property
    def user_6_param_transform(self) -> tuple[float, ...] | None:
        return self._user_6

    @property
    def user_4x4_param_transform(self) -> np.ndarray | None:
        return self._user_4x4

    @property
    def has_6_transform(self) -> bool:
        return self._user_6 is not None

    @property
    def has_4x4_transform(self) -> bool:
        return self._user_4x4 is not None

    def _camera_index(self, index: int, role: str) -> int:
        try:
            i = operator.index(index)
        except TypeError:
            raise InvalidArgumentError(f"invalid {role} id {index!r}: must be an integer") from None
        if i < 0 or i >= len(self._cameras):
            raise InvalidArgumentError(f"invalid {role} id {i}: system has {len(self._cameras)} cameras")
        return i

    @staticmethod
    def rotate_translate(
        source_x: np.ndarray,
        source_y: np.ndarray,
        source_z: np.ndarray,
        params: Sequence[float] | np.ndarray,
        *,
        derivatives: bool = False,
    ) -> tuple[np.ndarray, ...]:
        return rotate_translate(source_x, source_y, source_z, params, derivatives=derivatives)

    def project(
        self,
        source_id: int,
        target_id: int,
        img_source_x: np.ndarray,
        img_source_y: np.ndarray,
        params: Sequence[float] | np.ndarray,
        *,
        rigid_body_params: Sequence[float] | np.ndarray | None = None,
        derivatives: bool = False,
    ) -> tuple[np.ndarray, ...]:
        """
        Map image points of the source camera into the image of the target camera.

        `params` = [zp, theta, phi] is the plane (source camera frame) on which
        the source pixels are back-projected. The optional `rigid_body_params`
        = [angle_x, angle_y, angle_z, tx, ty, tz] move the world points before
        they are imaged by the target camera.

        Returns (img_target_x, img_target_y). With `derivatives=True` also
        returns (img_target_dx, img_target_dy) shaped (P,N). Without a rigid
        body P=3: partials wrt [zp, theta, phi]. With a rigid body P=6: the 3
        plane partials propagated through the rigid body rotation, followed by
        the partials wrt [angle_x, angle_y, angle_z].
        """
        source = self._cameras[self._camera_index(source_id, "source")]
        target = self._cameras[self._camera_index(target_id, "target")]
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        if params.shape[0] != NUM_PROJECTION_PARAMS:
            raise InvalidArgumentError(f"params needs {NUM_PROJECTION_PARAMS} values, got {params.shape[0]}")
        img_source_x = np.asarray(img_source_x, dtype=np.float64).reshape(-1)
        img_source_y = np.asarray(img_source_y, dtype=np.float64).reshape(-1)
        n = img_source_x.shape[0]
        if img_source_y.shape[0] != n:
            raise InvalidArgumentError(f"img_source_x and img_source_y lengths differ: {n} != {img_source_y.shape[0]}")
        if n == 0:
            raise InvalidArgumentError("no points to project")
        if rigid_body_params is not None:
            rigid_body_params = np.asarray(rigid_body_params, dtype=np.float64).reshape(-1)
            if rigid_body_params.shape[0] != NUM_RIGID_BODY_PARAMS:
                raise InvalidArgumentError(
                    f"rigid_body_params needs {NUM_RIGID_BODY_PARAMS} values, got {rigid_body_params.shape[0]}"
                )

        sensor_x, sensor_y = source.image_to_sensor(img_source_x, img_source_y)

        if not derivatives:
            cam = source.sensor_to_cam(sensor_x, sensor_y, params)
            world = source.cam_to_world(*cam)
            if rigid_body_params is not None:
                world = rotate_translate(*world, rigid_body_params)
            cam = target.world_to_cam(*world)
            sensor = target.cam_to_sensor(*cam)
            return target.sensor_to_image(*sensor)

        cam = source.sensor_to_cam(sensor_x, sensor_y, params, partials=True)
        world = source.cam_to_world(*cam)
        if rigid_body_params is not None:
            coeffs = rot_trans_coefficients(rigid_body_params, partials=True)
            world = apply_rot_trans(coeffs, *world)
        cam = target.world_to_cam(*world)
        sensor = target.cam_to_sensor(*cam)
        return target.sensor_to_image(*sensor)
