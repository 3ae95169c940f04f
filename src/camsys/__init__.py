import logging

from camsys.calibration import probe_canonical, read_calibration_file, write_calibration_file
from camsys.camera_system import CameraSystem, SystemType
from camsys.config import CameraSystemConfig, load_config
from camsys.core import CameraInfo, IntrinsicParam, LensDistortionModel, ProjectionParam, RigidBodyParam, rotate_translate
from camsys.errors import (
    CalibrationParseError,
    CalibrationWriteError,
    CameraSystemError,
    ConfigValidationError,
    InvalidArgumentError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CameraSystem",
    "SystemType",
    "CameraInfo",
    "IntrinsicParam",
    "LensDistortionModel",
    "ProjectionParam",
    "RigidBodyParam",
    "rotate_translate",
    "read_calibration_file",
    "write_calibration_file",
    "probe_canonical",
    "CameraSystemConfig",
    "load_config",
    "CameraSystemError",
    "CalibrationParseError",
    "CalibrationWriteError",
    "InvalidArgumentError",
    "ConfigValidationError",
]
