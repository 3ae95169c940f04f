from camsys.core.camera import Camera, CameraInfo, IntrinsicParam, ProjectionParam
from camsys.core.distortion import LensDistortion, LensDistortionModel
from camsys.core.rigid_body import RigidBodyParam, RotTransCoefficients, euler_rotation_matrix, rotate_translate

__all__ = [
    "Camera",
    "CameraInfo",
    "IntrinsicParam",
    "ProjectionParam",
    "LensDistortion",
    "LensDistortionModel",
    "RigidBodyParam",
    "RotTransCoefficients",
    "euler_rotation_matrix",
    "rotate_translate",
]
