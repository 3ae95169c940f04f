from __future__ import annotations

import logging
from pathlib import Path

from camsys.calibration import fields
from camsys.calibration.parameter_list import ParameterListWriter, format_array
from camsys.camera_system import CameraSystem, SystemType
from camsys.core.camera import IntrinsicParam
from camsys.core.distortion import LensDistortionModel
from camsys.errors import CalibrationWriteError

logger = logging.getLogger(__name__)


def _header(w: ParameterListWriter) -> None:
    w.comment("camsys formatted calibration file")
    w.comment(f"{fields.CALIBRATION_FILE_MARKER} with a value of true denotes a canonical calibration file")
    w.boolean(fields.CALIBRATION_FILE_MARKER, True)

    valid_types = " ".join(t.value for t in SystemType if t is not SystemType.UNKNOWN_SYSTEM)
    w.comment(f"type of 3D system, valid values are: {valid_types}")


def _field_comments(w: ParameterListWriter) -> None:
    w.comment("camera intrinsic parameters (zero valued parameters may be omitted)")
    w.comment("each camera is a separate parameter list named CAMERA <#>, numbered from 0 without gaps")
    w.comment("valid camera intrinsic parameter names are: " + " ".join(p.name for p in IntrinsicParam))
    w.comment("CX,CY image center (pix), FX,FY pinhole distances (pix), FS skew")
    w.comment("K1-K6 radial, P1-P2 tangential, S1-S4 thin prism distortion, T1-T2 Scheimpflug tilt")
    w.comment("valid LENS_DISTORTION_MODEL values are: " + " ".join(m.value for m in LensDistortionModel))
    w.comment("camera extrinsic parameters TX TY TZ (zero valued translations may be omitted)")
    w.comment(
        f"rotations are given by ALPHA BETA GAMMA (degrees) or a {fields.ROTATION_3X3_MATRIX} list, not both"
    )
    w.comment("without euler angles or a rotation matrix the rotation is the identity")
    w.comment("additional camera fields: CAMERA_ID, IMAGE_HEIGHT_WIDTH { h, w }, PIXEL_DEPTH, LENS, COMMENTS")


def write_calibration_file(system: CameraSystem, path: str | Path) -> Path:
    """
    Write the camera system as a canonical calibration file.

    Output is deterministic and floats use their shortest round-trip form, so
    reading the file back and writing it again yields the same bytes.
    """
    path = Path(path)
    if system.system_type is SystemType.UNKNOWN_SYSTEM:
        raise CalibrationWriteError(f"cannot write {path}: camera system type is {SystemType.UNKNOWN_SYSTEM.value}")
    logger.debug("writing calibration file %s", path)

    w = ParameterListWriter()
    _header(w)
    w.string(fields.SYSTEM_TYPE, system.system_type.value)
    _field_comments(w)

    for index, camera in enumerate(system.cameras):
        logger.debug("writing %s", fields.camera_group(index))
        with w.sublist(fields.camera_group(index)):
            w.string(fields.CAMERA_ID, camera.id)
            for param, value in zip(IntrinsicParam, camera.intrinsics):
                if value != 0.0:
                    w.double(param.name, value)
            w.string(fields.LENS_DISTORTION_MODEL, camera.lens_distortion_model.value)
            for name, value in ((fields.TX, camera.tx), (fields.TY, camera.ty), (fields.TZ, camera.tz)):
                if value != 0.0:
                    w.double(name, value)

            w.comment("3x3 camera rotation matrix, with TX TY TZ maps world coordinates to camera coordinates")
            with w.sublist(fields.ROTATION_3X3_MATRIX):
                R = camera.rotation_matrix
                for i in range(3):
                    w.string(fields.row(i), format_array(float(v) for v in R[i]))

            w.string(fields.IMAGE_HEIGHT_WIDTH, format_array((camera.image_height, camera.image_width)))
            if camera.pixel_depth != 0:
                w.integer(fields.PIXEL_DEPTH, camera.pixel_depth)
            if camera.lens:
                w.string(fields.LENS, camera.lens)
            if camera.comments:
                w.string(fields.COMMENTS, camera.comments)

    if system.user_6_param_transform is not None:
        logger.debug("writing user 6 parameter transform")
        w.comment("user supplied 6 parameter transform, independent of the camera parameters (optional)")
        w.string(fields.USER_6_PARAM_TRANSFORM, format_array(system.user_6_param_transform))

    if system.user_4x4_param_transform is not None:
        logger.debug("writing user 4x4 transform")
        w.comment("user supplied 4x4 homogeneous transform, independent of the camera parameters (optional)")
        with w.sublist(fields.USER_4X4_PARAM_TRANSFORM):
            T = system.user_4x4_param_transform
            for i in range(4):
                w.string(fields.row(i), format_array(float(v) for v in T[i]))

    return w.write(path)
