from __future__ import annotations

# canonical parameter list keys
CALIBRATION_FILE_MARKER = "DICe_XML_Calibration_File"
SYSTEM_TYPE = "system_type_3D"
CAMERA_GROUP = "CAMERA {index}"
CAMERA_ID = "CAMERA_ID"
IMAGE_HEIGHT_WIDTH = "IMAGE_HEIGHT_WIDTH"
LENS_DISTORTION_MODEL = "LENS_DISTORTION_MODEL"
TX = "TX"
TY = "TY"
TZ = "TZ"
ALPHA = "ALPHA"
BETA = "BETA"
GAMMA = "GAMMA"
ROTATION_3X3_MATRIX = "rotation_3x3_matrix"
ROW = "ROW {index}"
PIXEL_DEPTH = "PIXEL_DEPTH"
LENS = "LENS"
COMMENTS = "COMMENTS"
USER_6_PARAM_TRANSFORM = "user_6_param_transform"
USER_4X4_PARAM_TRANSFORM = "user_4x4_param_transform"


def camera_group(index: int) -> str:
    return CAMERA_GROUP.format(index=index)


def row(index: int) -> str:
    return ROW.format(index=index)
