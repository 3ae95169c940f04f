from __future__ import annotations

import dataclasses
import itertools
import logging
import re
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np

from camsys.calibration import fields
from camsys.calibration.parameter_list import PARAMETER_LIST_TAG, ParameterList
from camsys.camera_system import CameraSystem, SystemType, default_camera_id
from camsys.config import DEFAULT_CONFIG, CameraSystemConfig
from camsys.core.camera import CameraInfo, IntrinsicParam, intrinsics_from_dict
from camsys.core.distortion import LensDistortionModel
from camsys.errors import CalibrationParseError

logger = logging.getLogger(__name__)

# intrinsic order used by both legacy dialects
LEGACY_INTRINSIC_ORDER = (
    IntrinsicParam.CX,
    IntrinsicParam.CY,
    IntrinsicParam.FX,
    IntrinsicParam.FY,
    IntrinsicParam.FS,
    IntrinsicParam.K1,
    IntrinsicParam.K2,
    IntrinsicParam.K3,
)
LEGACY_DISTORTION_MODEL = LensDistortionModel.K1R1_K2R2_K3R3

VIC3D_MAX_CAMERA_INDEX = 10
VIC3D_MIN_CAMERA_TOKENS = 18
TXT_NUM_VALUES_WITH_EULERS = 24
TXT_NUM_VALUES_WITH_MATRIX = 30

_VIC3D_DELIMITERS = re.compile(r'[ \t<>"]+')
_TXT_DELIMITERS = re.compile(r"[ \t<>]+")


@dataclass(frozen=True)
class CanonicalProbe:
    is_canonical: bool
    reason: str
    parameters: ParameterList | None = None


@contextmanager
def _field(path: Path, name: str) -> Iterator[None]:
    try:
        yield
    except CalibrationParseError:
        raise
    except (KeyError, ValueError, IndexError) as e:
        msg = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
        raise CalibrationParseError(f"invalid {name}: {msg}", path=path, field=name) from e


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise CalibrationParseError(f"calibration file does not exist or cannot be read: {e}", path=path) from e


def probe_canonical(path: str | Path, data: bytes | None = None) -> CanonicalProbe:
    """
    Decide whether a file is a canonical parameter-list calibration file.

    A negative answer is not an error: the caller moves on to the legacy
    dialects. Only an unreadable file raises.
    """
    path = Path(path)
    if data is None:
        data = _read_bytes(path)
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        return CanonicalProbe(False, f"not well-formed XML ({e})")
    if root.tag != PARAMETER_LIST_TAG:
        return CanonicalProbe(False, f"root element is <{root.tag}>, not <{PARAMETER_LIST_TAG}>")
    try:
        plist = ParameterList.from_element(root)
    except ValueError as e:
        return CanonicalProbe(False, f"not a parameter list ({e})")
    if not plist.is_parameter(fields.CALIBRATION_FILE_MARKER):
        return CanonicalProbe(False, f"missing {fields.CALIBRATION_FILE_MARKER} marker")
    return CanonicalProbe(True, "canonical calibration file", plist)


def read_calibration_file(path: str | Path, config: CameraSystemConfig | None = None) -> CameraSystem:
    """
    Load a camera system from a canonical, VIC3D (.xml) or legacy text (.txt) calibration file.
    """
    path = Path(path)
    config = config or DEFAULT_CONFIG
    data = _read_bytes(path)

    probe = probe_canonical(path, data)
    if probe.is_canonical:
        logger.debug("%s: canonical calibration file", path)
        system = _read_canonical(path, probe.parameters, config)
    else:
        logger.debug("%s: not canonical (%s), trying legacy formats", path, probe.reason)
        text = data.decode("utf-8", errors="replace")
        suffix = path.suffix.lower()
        if suffix == ".xml":
            logger.debug("%s: assuming VIC3D xml format", path)
            legacy_reader = _read_vic3d
        elif suffix == ".txt":
            logger.debug("%s: assuming legacy text format", path)
            legacy_reader = _read_legacy_text
        else:
            raise CalibrationParseError(f"unrecognized calibration file format ({probe.reason})", path=path)
        try:
            system = legacy_reader(path, text, config)
        except CalibrationParseError as e:
            raise CalibrationParseError(
                f"{e.msg} (not a canonical calibration file: {probe.reason})", path=e.path, field=e.field
            ) from e

    _log_summary(path, system)
    return system


def _build_system(path: Path, infos: list[CameraInfo], system_type: SystemType, config: CameraSystemConfig, **kwargs) -> CameraSystem:
    try:
        return CameraSystem(infos, system_type, config=config, **kwargs)
    except ValueError as e:
        raise CalibrationParseError(str(e), path=path) from e


def _read_canonical(path: Path, plist: ParameterList, config: CameraSystemConfig) -> CameraSystem:
    with _field(path, fields.SYSTEM_TYPE):
        system_type = SystemType.from_string(plist.get_string(fields.SYSTEM_TYPE))
    logger.debug("%s: %s = %s", path, fields.SYSTEM_TYPE, system_type.value)

    infos = []
    for index in itertools.count():
        group = fields.camera_group(index)
        if not plist.is_sublist(group):
            break
        if index >= config.max_num_cameras:
            raise CalibrationParseError(
                f"too many cameras defined, max_num_cameras={config.max_num_cameras}", path=path, field=group
            )
        logger.debug("%s: reading %s", path, group)
        infos.append(_read_canonical_camera(path, index, plist.sublist(group)))

    user_6 = None
    if plist.is_parameter(fields.USER_6_PARAM_TRANSFORM):
        with _field(path, fields.USER_6_PARAM_TRANSFORM):
            user_6 = plist.get_double_array(fields.USER_6_PARAM_TRANSFORM, size=6)
        logger.debug("%s: found %s", path, fields.USER_6_PARAM_TRANSFORM)

    user_4x4 = None
    if plist.is_sublist(fields.USER_4X4_PARAM_TRANSFORM):
        with _field(path, fields.USER_4X4_PARAM_TRANSFORM):
            user_4x4 = _read_matrix(plist.sublist(fields.USER_4X4_PARAM_TRANSFORM), 4)
        logger.debug("%s: found %s", path, fields.USER_4X4_PARAM_TRANSFORM)

    return _build_system(
        path,
        infos,
        system_type,
        config,
        user_6_param_transform=user_6,
        user_4x4_param_transform=user_4x4,
    )


def _read_matrix(plist: ParameterList, size: int) -> np.ndarray:
    rows = []
    for j in range(size):
        name = fields.row(j)
        if not plist.is_parameter(name):
            raise ValueError(f"missing {name!r}")
        rows.append(plist.get_double_array(name, size=size))
    return np.array(rows, dtype=np.float64)


def _read_canonical_camera(path: Path, index: int, cam: ParameterList) -> CameraInfo:
    group = fields.camera_group(index)
    for required in (fields.IMAGE_HEIGHT_WIDTH, fields.LENS_DISTORTION_MODEL):
        if not cam.is_parameter(required):
            raise CalibrationParseError(f"{group} is missing {required}", path=path, field=required)

    with _field(path, fields.LENS_DISTORTION_MODEL):
        model = LensDistortionModel.from_string(cam.get_string(fields.LENS_DISTORTION_MODEL))
    with _field(path, fields.IMAGE_HEIGHT_WIDTH):
        height, width = cam.get_int_array(fields.IMAGE_HEIGHT_WIDTH, size=2)

    intrinsics = {}
    for param in IntrinsicParam:
        if cam.is_parameter(param.name):
            with _field(path, param.name):
                intrinsics[param] = cam.get_double(param.name)

    extrinsics = {}
    for name in (fields.TX, fields.TY, fields.TZ):
        if cam.is_parameter(name):
            with _field(path, name):
                extrinsics[name.lower()] = cam.get_double(name)

    eulers = {}
    for name in (fields.ALPHA, fields.BETA, fields.GAMMA):
        if cam.is_parameter(name):
            with _field(path, name):
                eulers[name] = cam.get_double(name)

    camera_id = default_camera_id(index)
    if cam.is_parameter(fields.CAMERA_ID):
        camera_id = cam.get_string(fields.CAMERA_ID)

    pixel_depth = 0
    if cam.is_parameter(fields.PIXEL_DEPTH):
        with _field(path, fields.PIXEL_DEPTH):
            pixel_depth = cam.get_int(fields.PIXEL_DEPTH)

    info = CameraInfo(
        image_height=height,
        image_width=width,
        lens_distortion_model=model,
        id=camera_id,
        intrinsics=intrinsics_from_dict(intrinsics),
        pixel_depth=pixel_depth,
        lens=cam.get_string(fields.LENS) if cam.is_parameter(fields.LENS) else "",
        comments=cam.get_string(fields.COMMENTS) if cam.is_parameter(fields.COMMENTS) else "",
        **extrinsics,
    )

    if cam.is_sublist(fields.ROTATION_3X3_MATRIX):
        if eulers:
            raise CalibrationParseError(
                f"{group}: cannot specify euler angles ({', '.join(eulers)}) and {fields.ROTATION_3X3_MATRIX}",
                path=path,
                field=fields.ROTATION_3X3_MATRIX,
            )
        with _field(path, fields.ROTATION_3X3_MATRIX):
            R = _read_matrix(cam.sublist(fields.ROTATION_3X3_MATRIX), 3)
        info = dataclasses.replace(info, rotation_matrix=R)
    elif eulers:
        info = info.with_euler_angles(
            eulers.get(fields.ALPHA, 0.0), eulers.get(fields.BETA, 0.0), eulers.get(fields.GAMMA, 0.0)
        )

    logger.debug("%s: loaded camera %r (%s, %dx%d)", path, camera_id, model.value, width, height)
    return info


def _parse_int(text: str) -> int:
    value = float(text)
    if not value.is_integer():
        raise ValueError(f"expected an integer, got {text!r}")
    return int(value)


def _read_vic3d(path: Path, text: str, config: CameraSystemConfig) -> CameraSystem:
    # VIC3D orientation is world to camera: alpha beta gamma (degrees) then tx ty tz
    infos: list[CameraInfo] = []
    width = 0
    height = 0
    for line_no, line in enumerate(text.splitlines(), start=1):
        tokens = [t for t in _VIC3D_DELIMITERS.split(line) if t]
        if not tokens:
            continue
        if tokens[0] == "POLYGONMASK":
            if len(tokens) < 5 or tokens[1] != "WIDTH=" or tokens[3] != "HEIGHT=":
                raise CalibrationParseError(
                    f"line {line_no}: expected 'POLYGONMASK WIDTH= <w> HEIGHT= <h>'", path=path, field="POLYGONMASK"
                )
            with _field(path, "POLYGONMASK"):
                width = _parse_int(tokens[2])
                height = _parse_int(tokens[4])
            continue
        if tokens[0] != "CAMERA":
            continue
        if len(infos) >= 2:
            raise CalibrationParseError("VIC3D calibration files may only define 2 cameras", path=path, field="CAMERA")
        # CAMERA id= <index>, 8 intrinsics, ORIENTATION, 6 pose values, closing tag
        if len(tokens) <= VIC3D_MIN_CAMERA_TOKENS:
            raise CalibrationParseError(
                f"line {line_no}: CAMERA record needs more than {VIC3D_MIN_CAMERA_TOKENS} tokens, got {len(tokens)}",
                path=path,
                field="CAMERA",
            )
        if tokens[11] != "ORIENTATION":
            raise CalibrationParseError(
                f"line {line_no}: expected ORIENTATION token, got {tokens[11]!r}", path=path, field="ORIENTATION"
            )
        with _field(path, "CAMERA"):
            camera_index = _parse_int(tokens[2])
            if camera_index < 0 or camera_index >= VIC3D_MAX_CAMERA_INDEX:
                raise ValueError(f"line {line_no}: camera index {camera_index} out of range")
            intrinsics = {p: float(tokens[3 + i]) for i, p in enumerate(LEGACY_INTRINSIC_ORDER)}
            alpha, beta, gamma, tx, ty, tz = (float(t) for t in tokens[12:18])
        info = CameraInfo(
            image_height=0,
            image_width=0,
            lens_distortion_model=LEGACY_DISTORTION_MODEL,
            id=default_camera_id(camera_index),
            intrinsics=intrinsics_from_dict(intrinsics),
            tx=tx,
            ty=ty,
            tz=tz,
        ).with_euler_angles(alpha, beta, gamma)
        infos.append(info)
        logger.debug("%s: found VIC3D camera %d", path, camera_index)

    if width <= 0 or height <= 0:
        raise CalibrationParseError("missing or invalid POLYGONMASK image width/height", path=path, field="POLYGONMASK")
    if len(infos) != 2:
        raise CalibrationParseError(f"VIC3D calibration needs 2 cameras, found {len(infos)}", path=path, field="CAMERA")
    infos = [dataclasses.replace(info, image_height=height, image_width=width) for info in infos]
    return _build_system(path, infos, SystemType.VIC3D, config)


def _read_legacy_text(path: Path, text: str, config: CameraSystemConfig) -> CameraSystem:
    values: list[str] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        tokens = [t for t in _TXT_DELIMITERS.split(stripped) if t]
        if "TRANSFORM" in tokens:
            raise CalibrationParseError(
                "custom transforms are not supported in the txt calibration file format", path=path, field="TRANSFORM"
            )
        if len(tokens) > 1 and not tokens[1].startswith("#"):
            raise CalibrationParseError(f"line {line_no}: expected one value per line, got {tokens}", path=path)
        values.append(tokens[0])

    n = len(values)
    if n not in (TXT_NUM_VALUES_WITH_EULERS, TXT_NUM_VALUES_WITH_MATRIX):
        raise CalibrationParseError(
            f"invalid number of values in txt calibration file: expected {TXT_NUM_VALUES_WITH_EULERS} "
            f"(euler angles) or {TXT_NUM_VALUES_WITH_MATRIX} (rotation matrix), got {n}. "
            "Note that the image height and width must be the last two values.",
            path=path,
        )
    with _field(path, "values"):
        numbers = [float(v) for v in values[:-2]]
        height = _parse_int(values[-2])
        width = _parse_int(values[-1])

    intrinsics_0 = {p: numbers[i] for i, p in enumerate(LEGACY_INTRINSIC_ORDER)}
    intrinsics_1 = {p: numbers[8 + i] for i, p in enumerate(LEGACY_INTRINSIC_ORDER)}
    extrinsics = numbers[16:]
    tx, ty, tz = extrinsics[-3:]

    camera_0 = CameraInfo(
        image_height=height,
        image_width=width,
        lens_distortion_model=LEGACY_DISTORTION_MODEL,
        id=default_camera_id(0),
        intrinsics=intrinsics_from_dict(intrinsics_0),
    )
    camera_1 = CameraInfo(
        image_height=height,
        image_width=width,
        lens_distortion_model=LEGACY_DISTORTION_MODEL,
        id=default_camera_id(1),
        intrinsics=intrinsics_from_dict(intrinsics_1),
        tx=tx,
        ty=ty,
        tz=tz,
    )
    if n == TXT_NUM_VALUES_WITH_EULERS:
        alpha, beta, gamma = extrinsics[:3]
        camera_1 = camera_1.with_euler_angles(alpha, beta, gamma)
    else:
        R = np.array(extrinsics[:9], dtype=np.float64).reshape(3, 3)
        camera_1 = dataclasses.replace(camera_1, rotation_matrix=R)
    return _build_system(path, [camera_0, camera_1], SystemType.GENERIC_SYSTEM, config)


def _log_summary(path: Path, system: CameraSystem) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug("%s: system type %s, %d cameras", path, system.system_type.value, system.num_cameras)
    for i, camera in enumerate(system.cameras):
        nonzero = {p.name: v for p, v in zip(IntrinsicParam, camera.intrinsics) if v != 0.0}
        logger.debug(
            "camera %d id=%r model=%s image=%dx%d intrinsics=%s T=(%g, %g, %g) R=%s",
            i,
            camera.id,
            camera.lens_distortion_model.value,
            camera.image_width,
            camera.image_height,
            nonzero,
            camera.tx,
            camera.ty,
            camera.tz,
            camera.rotation_matrix.tolist(),
        )
    if system.user_6_param_transform is not None:
        logger.debug("6 parameter user transformation: %s", list(system.user_6_param_transform))
    if system.user_4x4_param_transform is not None:
        logger.debug("4x4 user transformation: %s", system.user_4x4_param_transform.tolist())
